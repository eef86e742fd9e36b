from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from kestrel.browser.base import BrowserDriver
from kestrel.config import Settings
from kestrel.core.dedup import DedupLedger
from kestrel.db.repositories import Repository
from kestrel.errors import NavigationError
from kestrel.types import CompanyLink, CrawlItem, CrawlSelectors, JobLink

logger = logging.getLogger(__name__)

Emit = Callable[..., None]


def _discard(*args: Any, **kwargs: Any) -> None:
    return None


class CrawlDriver:
    """Walks the listings page company by company and yields unseen job links.

    ``crawl()`` produces a finite sequence that can be consumed exactly once.
    The browser is left on whatever page the consumer navigated to between
    items; the crawl returns to the listings page (at the remembered scroll
    offset) only after a company's jobs are exhausted.
    """

    def __init__(
        self,
        driver: BrowserDriver,
        ledger: DedupLedger,
        repo: Repository,
        *,
        owner_id: str,
        listings_url: str,
        selectors: CrawlSelectors,
        emit: Emit | None = None,
        max_companies: int = 0,
    ):
        self.driver = driver
        self.ledger = ledger
        self.repo = repo
        self.owner_id = owner_id
        self.listings_url = listings_url
        self.selectors = selectors
        self.emit = emit or _discard
        self.max_companies = max_companies
        self.companies_visited = 0
        self._started = False

    async def crawl(self) -> AsyncIterator[CrawlItem]:
        if self._started:
            raise RuntimeError("a crawl sequence cannot be restarted")
        self._started = True

        await self.driver.navigate(self.listings_url)
        seen_companies: set[str] = set()
        seen_jobs: set[str] = set()

        while True:
            links = await self.driver.find_links(self.selectors.company_link)
            fresh = [link for link in links if link.url not in seen_companies]
            if not fresh:
                return
            seen_companies.update(link.url for link in fresh)

            new_companies = [link for link in fresh if self.ledger.is_new_company(self.owner_id, link.url)]
            self.emit("info", f"Found {len(new_companies)} new companies.")

            for link in new_companies:
                if self.max_companies and self.companies_visited >= self.max_companies:
                    logger.info("Company limit reached owner=%s limit=%s", self.owner_id, self.max_companies)
                    return

                company = CompanyLink(url=link.url, name=link.text or link.url)
                position = await self.driver.scroll_position()
                jobs = await self._visit_company(company)

                if jobs is not None:
                    for job in jobs:
                        if job.url in seen_jobs:
                            continue
                        seen_jobs.add(job.url)
                        if not self.ledger.is_new_job(self.owner_id, job.url):
                            continue
                        yield CrawlItem(company=company, job=job)
                    self.repo.update_company_status(self.owner_id, company.url, "exhausted")

                await self._return_to_listings(position)

            if not await self.driver.load_more():
                return

    async def _visit_company(self, company: CompanyLink) -> list[JobLink] | None:
        """Open a company page and list its jobs; ``None`` if this run does not own the company."""
        try:
            await self.driver.navigate(company.url)
        except NavigationError as exc:
            logger.warning("Company page failed to load url=%s: %s", company.url, exc)
            self.emit("error", f"Could not open {company.name}: {exc}")
            return None

        if self.repo.record_company(owner_id=self.owner_id, url=company.url, name=company.name) is None:
            self.emit("info", f"{company.name} is already handled by another run.")
            return None
        self.companies_visited += 1

        links = await self.driver.find_links(
            self.selectors.job_link,
            marker_selector=self.selectors.applied_marker,
        )
        jobs = [
            JobLink(url=link.url, title=link.text or link.url, already_applied=link.has_marker)
            for link in links
        ]
        self.emit("info", f"{company.name}: {len(jobs)} job postings.")
        return jobs

    async def _return_to_listings(self, position: Any) -> None:
        try:
            await self.driver.navigate(self.listings_url)
        except NavigationError:
            logger.warning("Retrying return to listings page %s", self.listings_url)
            await self.driver.navigate(self.listings_url)
        await self.driver.restore_scroll(position)


def crawl_selectors(settings: Settings) -> CrawlSelectors:
    return CrawlSelectors(
        company_link=settings.company_link_selector,
        job_link=settings.job_link_selector,
        applied_marker=settings.applied_marker_selector,
        job_description=settings.job_description_selector,
        cover_letter=settings.cover_letter_selector,
    )
