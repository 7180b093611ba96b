"""Run the category pipelines concurrently and feed one consumer."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

import httpx

from catalog_etl.config import Settings
from catalog_etl.models import Category, PageResult

from .channel import Channel, merge_channels
from .pipeline import CategoryPipeline, PipelineReport

LOGGER = logging.getLogger(__name__)


class PageConsumer(Protocol):
    def drain(self, channel: Channel[PageResult]) -> int:
        ...


@dataclass
class CrawlSummary:
    pages: int = 0
    reports: List[PipelineReport] = field(default_factory=list)

    @property
    def failed_jobs(self) -> int:
        """Jobs that did not publish, including cancelled ones."""
        return sum(report.jobs_failed for report in self.reports)

    @property
    def failed_pages(self) -> int:
        """Pages whose fetch failed after retries."""
        return sum(len(report.failed_pages) for report in self.reports)


def run_crawl(
    settings: Settings,
    consumer: PageConsumer,
    categories: Sequence[Category],
    *,
    base_url: str,
    cancel_event: Optional[threading.Event] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> CrawlSummary:
    """Crawl ``categories`` in parallel and drain them through a merged fan-in.

    The consumer runs on the calling thread. If it raises, the crawl is
    cancelled and the error propagates once every pipeline has stopped. After
    a full drain, the first pipeline failure (login or index page) is raised;
    pages from the other pipelines have already been consumed by then.
    """
    cancel_event = cancel_event or threading.Event()
    pipelines = [
        CategoryPipeline(settings, category, base_url, cancel_event=cancel_event, transport=transport)
        for category in categories
    ]
    merged = merge_channels([pipeline.output for pipeline in pipelines], capacity=settings.channel_capacity)
    summary = CrawlSummary()

    with ThreadPoolExecutor(max_workers=max(len(pipelines), 1), thread_name_prefix="pipeline") as executor:
        futures = [executor.submit(pipeline.run) for pipeline in pipelines]
        try:
            summary.pages = consumer.drain(merged)
        except BaseException:
            cancel_event.set()
            merged.abort()
            raise

    errors: List[BaseException] = []
    for pipeline, future in zip(pipelines, futures):
        exc = future.exception()
        if exc is not None:
            LOGGER.error("[%s] pipeline failed: %s", pipeline.category.label, exc)
            errors.append(exc)
        summary.reports.append(pipeline.report)

    LOGGER.info(
        "Crawl finished: pages=%d failed_pages=%d failed_jobs=%d",
        summary.pages,
        summary.failed_pages,
        summary.failed_jobs,
    )
    if errors:
        raise errors[0]
    return summary
