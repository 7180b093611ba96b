"""Drain page results and persist unseen works."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from psycopg2.extensions import connection as PGConnection

from catalog_etl.errors import StoreInsertError, StoreLookupError
from catalog_etl.models import DownloadRecord, PageResult
from catalog_etl.upsert import insert_download_if_absent

from .channel import Channel

LOGGER = logging.getLogger(__name__)


@dataclass
class DrainStats:
    pages: int = 0
    items: int = 0
    inserted: int = 0
    skipped: int = 0
    failed: int = 0


class Aggregator:
    """Single writer that dedups works by source id before inserting them."""

    def __init__(self, conn: PGConnection, *, id_prefix: str = "RJ") -> None:
        self.conn = conn
        self.id_prefix = id_prefix
        self.stats = DrainStats()

    def drain(self, channel: Channel[PageResult]) -> int:
        """Consume ``channel`` until it is closed; return pages processed.

        A failed existence check aborts the channel (releasing blocked
        producers) and re-raises :class:`StoreLookupError`.
        """
        pages = 0
        for page in channel:
            try:
                self.store_page(page)
            except StoreLookupError as exc:
                LOGGER.error("Store lookup failed, stopping drain: %s", exc)
                channel.abort()
                raise
            pages += 1
        LOGGER.info(
            "Drained %d page(s): items=%d inserted=%d skipped=%d failed=%d",
            pages,
            self.stats.items,
            self.stats.inserted,
            self.stats.skipped,
            self.stats.failed,
        )
        return pages

    def store_page(self, page: PageResult) -> None:
        self.stats.pages += 1
        for item in page.items:
            self.stats.items += 1
            record = DownloadRecord.from_item(item, prefix=self.id_prefix)
            try:
                inserted = insert_download_if_absent(self.conn, record)
            except StoreInsertError as exc:
                self.stats.failed += 1
                LOGGER.error("Rolled back %s: %s", record.external_id, exc)
                continue
            if inserted:
                self.stats.inserted += 1
                LOGGER.debug("Stored %s %r", record.external_id, record.title)
            else:
                self.stats.skipped += 1
