"""Concurrent paginated collector for the ASMR catalog API.

- Credential exchange (``auth``)
- Page fetching with bounded retries (``fetcher``)
- Bounded worker pool and hand-off channels (``pool``, ``channel``)
- Per-category pipelines and the dedup aggregator (``pipeline``, ``aggregator``)
"""

from .aggregator import Aggregator, DrainStats
from .channel import Channel, merge_channels
from .crawl import CrawlSummary, run_crawl
from .fetcher import CatalogSession, fetch_page, fetch_page_with_retry
from .pipeline import CategoryPipeline, PipelineReport
from .pool import WorkerPool

__all__ = [
    "Aggregator",
    "DrainStats",
    "Channel",
    "merge_channels",
    "CrawlSummary",
    "run_crawl",
    "CatalogSession",
    "fetch_page",
    "fetch_page_with_retry",
    "CategoryPipeline",
    "PipelineReport",
    "WorkerPool",
]
