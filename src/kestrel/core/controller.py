from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from sqlalchemy.orm import Session

from kestrel.browser.base import BrowserDriver
from kestrel.config import Settings, get_settings
from kestrel.core.crawler import CrawlDriver, crawl_selectors
from kestrel.core.dedup import DedupLedger
from kestrel.core.embedding_cache import EmbeddingCache
from kestrel.core.events import LogSink
from kestrel.core.page_text import html_to_text
from kestrel.core.relevance import RelevanceFilter, TitleCheckCache
from kestrel.core.runtime import get_event_bus
from kestrel.db.repositories import Repository
from kestrel.errors import DriverClosedError, InvalidTransitionError, NavigationError
from kestrel.llm.prompts import FALLBACK_COVER_LETTER
from kestrel.llm.router import LLMRouter
from kestrel.types import (
    AutomationState,
    AutomationStatus,
    CrawlItem,
    LogEvent,
    LogEventType,
    ProfileEmbedding,
    SkipReason,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AutomationController:
    """Runs one owner's crawl as a pausable background task.

    Jobs are processed one at a time in the order the crawl yields them.
    ``pause`` takes effect at the next checkpoint (before the next job is
    pulled from the crawl and again before it is processed), ``stop``
    cancels at the current await and is terminal. The session passed in is
    owned by the controller and closed when the run ends.
    """

    def __init__(
        self,
        session: Session,
        *,
        owner_id: str,
        driver: BrowserDriver,
        profile: ProfileEmbedding | None,
        llm: LLMRouter | None = None,
        settings: Settings | None = None,
        sink: LogSink | None = None,
        title_cache: TitleCheckCache | None = None,
        listings_url: str | None = None,
    ):
        self.settings = settings or get_settings()
        self.owner_id = owner_id
        self.driver = driver
        self.profile = profile
        self.repo = Repository(session)
        self.llm = llm or LLMRouter(self.settings)
        self.sink = sink or get_event_bus().sink_for(owner_id)
        self.selectors = crawl_selectors(self.settings)
        self.nav_timeout_sec = float(self.settings.browser_nav_timeout_sec)
        self.provider_timeout_sec = self.settings.provider_timeout_sec

        self.embeddings = EmbeddingCache(
            self.repo,
            self.llm,
            case_sensitive=self.settings.embedding_case_sensitive,
        )
        self.title_cache = title_cache if title_cache is not None else TitleCheckCache(self.settings.title_cache_size)
        self.relevance: RelevanceFilter | None = None
        self.crawler = CrawlDriver(
            driver,
            DedupLedger(self.repo),
            self.repo,
            owner_id=owner_id,
            listings_url=listings_url or self.settings.listings_url,
            selectors=self.selectors,
            emit=self._emit,
            max_companies=self.settings.max_companies,
        )

        self.state = AutomationState.IDLE
        self.error = ""
        self.processed = 0
        self.matched = 0
        self.skipped = 0
        self.errors = 0

        self._resume = asyncio.Event()
        self._items = None
        self._task: asyncio.Task | None = None
        self._closed = False

    async def start(self) -> AutomationStatus:
        if self.state is not AutomationState.IDLE:
            raise InvalidTransitionError(f"cannot start automation in state {self.state.value}")
        if self.profile is None:
            raise InvalidTransitionError("a profile embedding is required before starting")

        self.relevance = RelevanceFilter(
            self.embeddings,
            self.profile,
            title_threshold=self.settings.title_threshold,
            description_threshold=self.settings.description_threshold,
            timeout_sec=self.provider_timeout_sec,
            title_cache=self.title_cache,
        )
        self.state = AutomationState.RUNNING
        self._resume.set()
        self._items = self.crawler.crawl()
        self._emit("info", "Automation started.")
        self._task = asyncio.create_task(self._run(), name=f"kestrel-automation-{self.owner_id}")
        return self.status()

    def pause(self) -> AutomationStatus:
        if self.state is not AutomationState.RUNNING:
            raise InvalidTransitionError(f"cannot pause automation in state {self.state.value}")
        self.state = AutomationState.PAUSED
        self._resume.clear()
        self._emit("info", "Automation paused.")
        return self.status()

    def resume(self) -> AutomationStatus:
        if self.state is not AutomationState.PAUSED:
            raise InvalidTransitionError(f"cannot resume automation in state {self.state.value}")
        self.state = AutomationState.RUNNING
        self._resume.set()
        self._emit("info", "Automation resumed.")
        return self.status()

    async def stop(self) -> AutomationStatus:
        if self.state.is_terminal:
            return self.status()
        if self.state is AutomationState.IDLE:
            raise InvalidTransitionError("cannot stop automation that was never started")

        self.state = AutomationState.STOPPED
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await self._shutdown()
        self._emit("info", "Automation stopped.")
        self._closed = True
        return self.status()

    async def wait(self) -> AutomationStatus:
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        return self.status()

    def status(self) -> AutomationStatus:
        return AutomationStatus(
            owner_id=self.owner_id,
            state=self.state,
            processed=self.processed,
            matched=self.matched,
            skipped=self.skipped,
            errors=self.errors,
            error=self.error,
        )

    async def _run(self) -> None:
        try:
            while True:
                await self._resume.wait()
                try:
                    item = await anext(self._items)
                except StopAsyncIteration:
                    break
                # a pause requested while the crawl was on company pages holds this job
                await self._resume.wait()
                await self._process(item)
        except DriverClosedError as exc:
            await self._fail(f"Browser closed, automation cannot continue: {exc}")
            return
        except Exception as exc:
            logger.exception("Crawl failed owner=%s", self.owner_id)
            await self._fail(f"Crawl failed: {exc}")
            return

        await self._shutdown()
        self._emit(
            "info",
            f"Finished. {self.processed} jobs processed, {self.matched} matched, "
            f"{self.skipped} skipped, {self.errors} errors.",
        )
        self.state = AutomationState.STOPPED
        self._closed = True

    async def _fail(self, message: str) -> None:
        self.error = message
        await self._shutdown()
        self._emit("error", message)
        self.state = AutomationState.FAILED
        self._closed = True

    async def _shutdown(self) -> None:
        if self._items is not None:
            await self._items.aclose()
        try:
            await self.driver.close()
        except Exception as exc:
            logger.warning("Browser driver did not close cleanly owner=%s: %s", self.owner_id, exc)
        self.repo.session.close()

    async def _process(self, item: CrawlItem) -> None:
        self.processed += 1
        try:
            await self._process_job(item)
        except DriverClosedError:
            raise
        except Exception as exc:
            self.errors += 1
            logger.exception("Job failed owner=%s url=%s", self.owner_id, item.job.url)
            self._emit("error", f"Failed to process {item.job.title}: {exc}", job_title=item.job.title)

    async def _process_job(self, item: CrawlItem) -> None:
        job, company = item.job, item.company
        if job.already_applied:
            self._skip(item, SkipReason.ALREADY_APPLIED, None, f"Already applied to {job.title}.")
            return

        title_check = await self.relevance.check_title(job.title)
        if not title_check.relevant:
            self._skip(
                item,
                SkipReason.TITLE_BELOW_THRESHOLD,
                title_check.score,
                f"Title not relevant: {job.title}",
            )
            return

        await self._bounded(self.driver.navigate(job.url), self.nav_timeout_sec)
        if await self._bounded(self.driver.has_marker(self.selectors.applied_marker), self.nav_timeout_sec):
            self._skip(item, SkipReason.ALREADY_APPLIED, None, f"Already applied to {job.title}.")
            return

        html = await self._bounded(self.driver.page_html(), self.nav_timeout_sec)
        description = html_to_text(html, self.selectors.job_description)
        if not description:
            raise NavigationError(f"no job description found at {job.url}")

        description_check = await self.relevance.check_description(description)
        if not description_check.relevant:
            self._skip(
                item,
                SkipReason.DESCRIPTION_BELOW_THRESHOLD,
                description_check.score,
                f"Description not relevant: {job.title}",
            )
            return

        score = description_check.score
        try:
            cover_letter = await self._bounded(
                self.llm.draft_cover_letter(job_description=description, persona=self.profile.persona_text),
                self.provider_timeout_sec,
            )
        except asyncio.TimeoutError:
            logger.warning("Cover letter generation timed out owner=%s url=%s", self.owner_id, job.url)
            cover_letter = FALLBACK_COVER_LETTER

        await self._bounded(self.driver.type_text(self.selectors.cover_letter, cover_letter), self.nav_timeout_sec)

        record = self.repo.record_application(
            owner_id=self.owner_id,
            job_title=job.title,
            company_name=company.name,
            job_url=job.url,
            status="submitted",
            cover_letter=cover_letter,
            match_score=score,
        )
        if record is None:
            self._emit("info", f"{job.title} is already handled by another run.", job_title=job.title)
            return
        self.matched += 1
        self._emit("match", f"Match found: {job.title} at {company.name}", job_title=job.title, match_score=score)
        self._emit(
            "success",
            f"Drafted application for {job.title} at {company.name}.",
            job_title=job.title,
            match_score=score,
        )

    def _skip(self, item: CrawlItem, reason: SkipReason, score: int | None, message: str) -> None:
        record = self.repo.record_application(
            owner_id=self.owner_id,
            job_title=item.job.title,
            company_name=item.company.name,
            job_url=item.job.url,
            status="skipped",
            match_score=score,
            skip_reason=reason.value,
        )
        if record is None:
            self._emit("info", f"{item.job.title} is already handled by another run.", job_title=item.job.title)
            return
        self.skipped += 1
        self._emit("skip", message, job_title=item.job.title, match_score=score)

    @staticmethod
    async def _bounded(awaitable: Awaitable[T], timeout: float) -> T:
        return await asyncio.wait_for(awaitable, timeout=timeout)

    def _emit(
        self,
        event_type: LogEventType,
        message: str,
        *,
        job_title: str | None = None,
        match_score: int | None = None,
    ) -> None:
        if self._closed:
            return
        event = LogEvent(
            type=event_type,
            message=message,
            job_title=job_title,
            match_score=match_score,
            owner_id=self.owner_id,
        )
        logger.debug("event owner=%s type=%s %s", self.owner_id, event_type, message)
        payload: dict[str, Any] = event.model_dump(mode="json")
        self.sink(payload)
