"""Helpers for fetching listing pages from the catalog ``/api/works`` endpoint."""
from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
)

from catalog_etl.errors import FetchError, JobCancelled
from catalog_etl.models import Category, PageResult

LISTING_PATH = "/api/works"
MAX_BACKOFF = 30.0
LOGGER = logging.getLogger(__name__)


@dataclass
class CatalogSession:
    """HTTP client plus credential owned by one category pipeline."""

    client: httpx.Client
    base_url: str
    authorization: str


def generate_seed() -> int:
    return random.randint(1, 99)


def build_listing_params(page: int, category: Category, seed: Optional[int] = None) -> Dict[str, Any]:
    """Query string for one listing page (pages are 1-based)."""
    if page < 1:
        raise ValueError("page index starts at 1")
    return {
        "order": "create_date",
        "sort": "desc",
        "page": page,
        "seed": generate_seed() if seed is None else seed,
        "subtitle": int(category),
    }


def parse_page(payload: Any, page: int) -> PageResult:
    try:
        return PageResult.model_validate(payload)
    except ValidationError as exc:
        raise FetchError(
            f"page {page}: malformed listing payload ({exc.error_count()} error(s))",
            page=page,
            transient=False,
        ) from exc


def fetch_page(
    session: CatalogSession,
    page: int,
    category: Category,
    *,
    cancel_event: Optional[threading.Event] = None,
) -> PageResult:
    """Fetch and parse a single listing page with one HTTP request.

    Raises
    ------
    FetchError
        Transport failure, non-2xx status or unparsable body
    JobCancelled
        ``cancel_event`` was set before the request went out
    """
    if cancel_event is not None and cancel_event.is_set():
        raise JobCancelled(f"page {page} skipped, crawl cancelled")

    url = f"{session.base_url}{LISTING_PATH}"
    try:
        response = session.client.get(
            url,
            params=build_listing_params(page, category),
            headers={"Authorization": session.authorization},
        )
    except httpx.HTTPError as exc:
        raise FetchError(f"page {page}: transport error: {exc}", page=page) from exc

    if not response.is_success:
        raise FetchError(
            f"page {page}: unexpected status {response.status_code}",
            page=page,
            status_code=response.status_code,
        )

    try:
        payload = response.json()
    except ValueError as exc:
        raise FetchError(f"page {page}: response is not JSON", page=page) from exc

    result = parse_page(payload, page)
    LOGGER.debug("Fetched %s page %s (%d items)", category.label, page, len(result.items))
    return result


def _is_transient(exc: BaseException) -> bool:
    if not isinstance(exc, FetchError) or not exc.transient:
        return False
    # 4xx other than 429 will not heal on retry
    return exc.status_code is None or exc.status_code == 429 or exc.status_code >= 500


def fetch_page_with_retry(
    session: CatalogSession,
    page: int,
    category: Category,
    *,
    max_retries: int,
    wait_seconds: float = 1.0,
    cancel_event: Optional[threading.Event] = None,
) -> PageResult:
    """:func:`fetch_page` with up to ``max_retries`` extra attempts on transient errors.

    Setting ``cancel_event`` stops further attempts and cuts the backoff sleep short.
    """
    cancel_event = cancel_event or threading.Event()
    retrying = Retrying(
        stop=stop_after_attempt(max_retries + 1) | stop_when_event_set(cancel_event),
        sleep=cancel_event.wait,
        wait=wait_exponential(multiplier=wait_seconds, max=MAX_BACKOFF),
        retry=retry_if_exception(_is_transient),
        before_sleep=before_sleep_log(LOGGER, logging.WARNING),
        reraise=True,
    )
    return retrying(fetch_page, session, page, category, cancel_event=cancel_event)
