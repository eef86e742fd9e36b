from __future__ import annotations

from kestrel.core.embedding_cache import hash_text, normalize_text
from kestrel.core.page_text import html_to_text


def test_normalize_collapses_whitespace_and_lowercases() -> None:
    assert normalize_text("  Senior\tPython \n\n Engineer  ") == "senior python engineer"


def test_normalize_keeps_case_for_case_sensitive_models() -> None:
    assert normalize_text(" Senior  Python ", lowercase=False) == "Senior Python"


def test_normalization_is_idempotent() -> None:
    once = normalize_text("  Staff   ML Engineer ")
    assert normalize_text(once) == once
    assert hash_text(normalize_text(once)) == hash_text(once)


def test_differently_spaced_titles_share_a_hash() -> None:
    assert hash_text(normalize_text("Backend  Engineer")) == hash_text(normalize_text("backend engineer\n"))


def test_hash_is_sha256_hex() -> None:
    digest = hash_text("backend engineer")
    assert len(digest) == 64
    assert int(digest, 16) >= 0


def test_html_to_text_reads_selected_region_without_scripts() -> None:
    html = """
    <html><body>
      <nav>Home | Jobs</nav>
      <main><h1>Backend Engineer</h1><script>track()</script><p>Build   APIs.</p></main>
    </body></html>
    """

    assert html_to_text(html, "main") == "Backend Engineer\nBuild   APIs."


def test_html_to_text_falls_back_to_whole_page() -> None:
    html = "<html><body><div>Only text</div></body></html>"

    assert html_to_text(html, "main") == "Only text"
