from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any
from urllib.parse import urljoin

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from kestrel.config import Settings
from kestrel.errors import DriverClosedError, NavigationError
from kestrel.types import PageLink

logger = logging.getLogger(__name__)

_CARD_ANCESTOR = "xpath=ancestor::*[self::li or self::article or self::tr][1]"
_CLOSED_MARKERS = ("has been closed", "target closed", "browser closed", "connection closed")


class PlaywrightDriver:
    """Single shared Playwright page driven one step at a time."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.timeout_ms = settings.browser_nav_timeout_sec * 1000
        self._playwright = None
        self._context = None
        self._page = None

    async def start(self) -> PlaywrightDriver:
        user_data_dir = Path(self.settings.browser_user_data_dir).expanduser().resolve()
        user_data_dir.mkdir(parents=True, exist_ok=True)

        launch_kwargs: dict[str, Any] = {"headless": self.settings.browser_headless}
        if self.settings.browser_channel.strip():
            launch_kwargs["channel"] = self.settings.browser_channel.strip()

        self._playwright = await async_playwright().start()
        self._context = await self._playwright.chromium.launch_persistent_context(
            str(user_data_dir), **launch_kwargs
        )
        self._page = self._context.pages[0] if self._context.pages else await self._context.new_page()
        self._page.set_default_timeout(self.timeout_ms)
        return self

    @property
    def page(self):
        if self._page is None or self._page.is_closed():
            raise DriverClosedError("browser page is not available")
        return self._page

    @contextmanager
    def _errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except PlaywrightTimeoutError as exc:
            raise NavigationError(f"{action} timed out: {exc}") from exc
        except PlaywrightError as exc:
            message = str(exc).lower()
            if any(marker in message for marker in _CLOSED_MARKERS):
                raise DriverClosedError(f"{action} failed, browser is gone: {exc}") from exc
            raise NavigationError(f"{action} failed: {exc}") from exc

    async def navigate(self, url: str) -> None:
        with self._errors(f"navigate {url}"):
            await self.page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)

    async def find_links(self, selector: str, *, marker_selector: str | None = None) -> list[PageLink]:
        links: list[PageLink] = []
        seen: set[str] = set()
        with self._errors(f"find links {selector}"):
            page = self.page
            anchors = page.locator(selector)
            for idx in range(await anchors.count()):
                anchor = anchors.nth(idx)
                href = await anchor.get_attribute("href")
                if not href:
                    continue
                url = urljoin(page.url, href).split("#", 1)[0]
                if url in seen:
                    continue
                seen.add(url)

                text = " ".join((await anchor.inner_text()).split())
                has_marker = False
                if marker_selector:
                    card = anchor.locator(_CARD_ANCESTOR)
                    has_marker = await card.count() > 0 and await card.locator(marker_selector).count() > 0
                links.append(PageLink(url=url, text=text, has_marker=has_marker))
        return links

    async def scroll_position(self) -> Any:
        with self._errors("read scroll position"):
            return await self.page.evaluate("() => [window.scrollX, window.scrollY]")

    async def restore_scroll(self, position: Any) -> None:
        x, y = position
        with self._errors("restore scroll position"):
            page = self.page
            # lazily loaded listings must be re-grown before the old offset exists again
            for _ in range(50):
                reachable = await page.evaluate("() => document.body.scrollHeight - window.innerHeight")
                if reachable >= y:
                    break
                if not await self.load_more():
                    break
            await page.evaluate("([x, y]) => window.scrollTo(x, y)", [x, y])

    async def load_more(self) -> bool:
        with self._errors("load more listings"):
            page = self.page
            before = await page.evaluate("() => document.body.scrollHeight")
            await page.evaluate("() => window.scrollTo(0, document.body.scrollHeight)")
            await page.wait_for_timeout(1500)
            after = await page.evaluate("() => document.body.scrollHeight")
        return after > before

    async def type_text(self, selector: str, text: str) -> None:
        with self._errors(f"fill {selector}"):
            await self.page.locator(selector).first.fill(text, timeout=self.timeout_ms)

    async def page_html(self) -> str:
        with self._errors("read page content"):
            return await self.page.content()

    async def has_marker(self, selector: str) -> bool:
        with self._errors(f"look for {selector}"):
            return await self.page.locator(selector).count() > 0

    async def close(self) -> None:
        try:
            if self._context is not None:
                await self._context.close()
            if self._playwright is not None:
                await self._playwright.stop()
        except PlaywrightError as exc:
            logger.warning("Browser shutdown failed: %s", exc)
        finally:
            self._page = None
            self._context = None
            self._playwright = None
