"""Per-category crawl: login, size the listing, fetch every page concurrently."""
from __future__ import annotations

import functools
import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from catalog_etl.antibot import UserAgentPool, browser_headers
from catalog_etl.config import SITE_URL, Settings
from catalog_etl.errors import FetchError, PipelineError
from catalog_etl.models import Category, PageResult

from .auth import login
from .channel import Channel
from .fetcher import CatalogSession, fetch_page_with_retry
from .pool import WorkerPool

LOGGER = logging.getLogger(__name__)


@dataclass
class PipelineReport:
    """Outcome of one category pipeline run."""

    category: Category
    total_count: int = 0
    max_page: int = 0
    pages_published: int = 0
    failed_pages: List[int] = field(default_factory=list)
    jobs_failed: int = 0
    first_error: Optional[BaseException] = None

    @property
    def complete(self) -> bool:
        return self.jobs_failed == 0 and self.pages_published == self.max_page


class CategoryPipeline:
    """Crawl one category into a bounded output channel.

    Each pipeline owns its HTTP client, credential and worker pool. Page
    failures are logged and recorded in :attr:`report` while the remaining
    pages keep going; the output channel is always closed when :meth:`run`
    returns, whether it succeeded or raised.
    """

    def __init__(
        self,
        settings: Settings,
        category: Category,
        base_url: str,
        *,
        cancel_event: Optional[threading.Event] = None,
        transport: Optional[httpx.BaseTransport] = None,
        user_agents: Optional[UserAgentPool] = None,
    ) -> None:
        self.settings = settings
        self.category = category
        self.base_url = base_url.rstrip("/")
        self.cancel_event = cancel_event or threading.Event()
        self.output: Channel[PageResult] = Channel(settings.channel_capacity, name=category.label)
        self.report = PipelineReport(category=category)
        self._transport = transport
        self._user_agents = user_agents or UserAgentPool()
        self._lock = threading.Lock()

    def _build_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self.settings.request_timeout),
            headers=browser_headers(SITE_URL, self._user_agents.get_random()),
            transport=self._transport,
            follow_redirects=True,
        )

    def run(self) -> PipelineReport:
        """Log in and crawl every page.

        Raises
        ------
        AuthError
            Login failed; no page was requested.
        PipelineError
            The first page, which sizes the listing, could not be fetched.
        """
        label = self.category.label
        try:
            with self._build_client() as client:
                authorization = login(client, self.base_url, self.settings.account, self.settings.password)
                LOGGER.info("[%s] logged in as %s", label, self.settings.account)
                self._crawl(CatalogSession(client, self.base_url, authorization))
        finally:
            self.output.close()
        return self.report

    def _fetch(self, session: CatalogSession, page: int) -> PageResult:
        return fetch_page_with_retry(
            session,
            page,
            self.category,
            max_retries=self.settings.max_failed_retry,
            wait_seconds=self.settings.retry_wait,
            cancel_event=self.cancel_event,
        )

    def _crawl(self, session: CatalogSession) -> None:
        label = self.category.label
        try:
            first = self._fetch(session, 1)
        except FetchError as exc:
            raise PipelineError(f"[{label}] index page unavailable: {exc}") from exc

        pagination = first.pagination
        max_page = pagination.max_page
        if self.settings.page_limit is not None and self.settings.page_limit < max_page:
            LOGGER.info("[%s] page_limit=%d caps %d pages", label, self.settings.page_limit, max_page)
            max_page = self.settings.page_limit
        self.report.total_count = pagination.total_count
        self.report.max_page = max_page
        LOGGER.info(
            "[%s] total=%d page_size=%d, fetching %d page(s) with %d worker(s)",
            label,
            pagination.total_count,
            pagination.page_size,
            max_page,
            self.settings.max_workers,
        )

        with WorkerPool(
            self.settings.max_workers,
            cancel_event=self.cancel_event,
            name=f"{label}-page",
        ) as pool:
            for page in range(1, max_page + 1):
                pool.submit(functools.partial(self._fetch_and_publish, session, page))
            error = pool.wait()
            self.report.jobs_failed = pool.failed

        if error is not None:
            self.report.first_error = error
            LOGGER.warning(
                "[%s] %d of %d page job(s) failed, first error: %s",
                label,
                self.report.jobs_failed,
                max_page,
                error,
            )
        LOGGER.info("[%s] published %d/%d page(s)", label, self.report.pages_published, max_page)

    def _fetch_and_publish(self, session: CatalogSession, page: int) -> None:
        try:
            result = self._fetch(session, page)
        except FetchError as exc:
            LOGGER.warning("[%s] page %d failed: %s", self.category.label, page, exc)
            with self._lock:
                self.report.failed_pages.append(page)
            raise
        # blocks while the aggregator is behind
        self.output.put(result)
        with self._lock:
            self.report.pages_published += 1
        LOGGER.info("[%s] got page %d (%d items)", self.category.label, page, len(result.items))
