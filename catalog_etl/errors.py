"""Exception hierarchy for the collector."""
from __future__ import annotations

from typing import Optional


class CatalogError(Exception):
    """Base class for collector failures."""


class AuthError(CatalogError):
    """Login did not produce a usable credential."""


class FetchError(CatalogError):
    """A listing page could not be fetched or parsed."""

    def __init__(
        self,
        message: str,
        *,
        page: Optional[int] = None,
        status_code: Optional[int] = None,
        transient: bool = True,
    ) -> None:
        super().__init__(message)
        self.page = page
        self.status_code = status_code
        self.transient = transient


class PipelineError(CatalogError):
    """A category pipeline could not determine its page range."""


class JobCancelled(CatalogError):
    """A pool job was skipped because the crawl was cancelled."""


class ChannelClosed(CatalogError):
    """Write to a closed or aborted channel."""


class StoreLookupError(CatalogError):
    """The existence check against the store failed (not a plain miss)."""


class StoreInsertError(CatalogError):
    """Inserting or committing a single record failed."""
