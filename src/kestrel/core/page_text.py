from __future__ import annotations

import logging

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)


def html_to_text(html: str, selector: str | None = None) -> str:
    """Visible text of ``html``, one non-blank line per line.

    When ``selector`` matches, only that element is read; otherwise the whole
    document is.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.extract()

    root = soup
    if selector:
        node = soup.select_one(selector)
        if node is None:
            logger.debug("Selector %s matched nothing, reading full page", selector)
        else:
            root = node

    text = root.get_text("\n")
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return "\n".join(lines)
