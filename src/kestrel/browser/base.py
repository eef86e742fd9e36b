from __future__ import annotations

from typing import Any, Protocol

from kestrel.types import PageLink


class BrowserDriver(Protocol):
    """The page operations the crawl and the controller need from a browser.

    Implementations raise ``NavigationError`` for pages or selectors that fail
    to load and ``DriverClosedError`` once the browser itself is gone.
    """

    async def navigate(self, url: str) -> None: ...

    async def find_links(self, selector: str, *, marker_selector: str | None = None) -> list[PageLink]: ...

    async def scroll_position(self) -> Any: ...

    async def restore_scroll(self, position: Any) -> None: ...

    async def load_more(self) -> bool: ...

    async def type_text(self, selector: str, text: str) -> None: ...

    async def page_html(self) -> str: ...

    async def has_marker(self, selector: str) -> bool: ...

    async def close(self) -> None: ...
