from __future__ import annotations

from collections.abc import Awaitable, Callable, Generator

from sqlalchemy.orm import Session, sessionmaker

from kestrel.browser.base import BrowserDriver
from kestrel.config import Settings
from kestrel.db.session import SessionLocal, get_db_session
from kestrel.llm.router import LLMRouter

DriverFactory = Callable[[Settings], Awaitable[BrowserDriver]]


def get_db() -> Generator[Session, None, None]:
    yield from get_db_session()


def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_llm_router() -> LLMRouter:
    return LLMRouter()


async def _start_playwright(settings: Settings) -> BrowserDriver:
    from kestrel.browser.driver import PlaywrightDriver

    return await PlaywrightDriver(settings).start()


def get_driver_factory() -> DriverFactory:
    return _start_playwright
