import threading

import pytest

from catalog_etl.collector_asmr.aggregator import Aggregator
from catalog_etl.collector_asmr.crawl import run_crawl
from catalog_etl.errors import AuthError, StoreLookupError
from catalog_etl.models import Category

from tests.fakes import BASE_URL, FakeCatalogAPI


def test_duplicate_across_pages_is_stored_once(settings, db_conn, duplicate_catalog):
    aggregator = Aggregator(db_conn)

    summary = run_crawl(
        settings,
        aggregator,
        [Category.SUBTITLED],
        base_url=BASE_URL,
        transport=duplicate_catalog.transport,
    )

    assert summary.pages == 2
    assert summary.failed_pages == 0
    assert summary.failed_jobs == 0
    assert {row["external_id"]: row["title"] for row in db_conn.rows.values()} == {"RJ1": "Foo", "RJ2": "Bar"}


def test_both_categories_are_merged_into_one_store(settings, db_conn):
    catalog = FakeCatalogAPI(
        {
            1: {1: [{"id": 1, "title": "sub a"}, {"id": 2, "title": "sub b"}], 2: [{"id": 3, "title": "sub c"}]},
            0: {1: [{"id": 3, "title": "sub c"}, {"id": 4, "title": "raw d"}], 2: [{"id": 5, "title": "raw e"}]},
        },
        page_size=2,
    )
    aggregator = Aggregator(db_conn)

    summary = run_crawl(
        settings,
        aggregator,
        [Category.SUBTITLED, Category.UNSUBTITLED],
        base_url=BASE_URL,
        transport=catalog.transport,
    )

    assert summary.pages == 4
    assert sorted(db_conn.rows) == [1, 2, 3, 4, 5]
    assert catalog.login_calls == 2
    assert [report.category for report in summary.reports] == [Category.SUBTITLED, Category.UNSUBTITLED]


def test_login_failure_aborts_without_fetching(settings, db_conn, duplicate_catalog):
    duplicate_catalog.login_status = 403

    with pytest.raises(AuthError):
        run_crawl(
            settings,
            Aggregator(db_conn),
            [Category.SUBTITLED],
            base_url=BASE_URL,
            transport=duplicate_catalog.transport,
        )

    assert duplicate_catalog.listing_calls == []
    assert db_conn.rows == {}


def test_page_failures_leave_partial_result(settings, db_conn):
    catalog = FakeCatalogAPI(
        {1: {1: [{"id": 1, "title": "a"}], 2: [{"id": 2, "title": "b"}], 3: [{"id": 3, "title": "c"}]}},
        page_size=1,
        failing_pages=[(1, 2)],
    )

    summary = run_crawl(settings, Aggregator(db_conn), [Category.SUBTITLED], base_url=BASE_URL, transport=catalog.transport)

    assert summary.pages == 2
    assert summary.failed_pages == 1
    assert summary.failed_jobs == 1
    assert summary.reports[0].failed_pages == [2]
    assert sorted(db_conn.rows) == [1, 3]


def test_store_lookup_failure_cancels_the_crawl(settings, db_conn):
    settings = settings.model_copy(update={"channel_capacity": 1, "max_workers": 2})
    works = {flag: {page: [{"id": flag * 100 + page, "title": "t"}] for page in range(1, 21)} for flag in (0, 1)}
    catalog = FakeCatalogAPI(works, page_size=1)
    db_conn.fail_lookup = True
    cancel = threading.Event()

    with pytest.raises(StoreLookupError):
        run_crawl(
            settings,
            Aggregator(db_conn),
            [Category.SUBTITLED, Category.UNSUBTITLED],
            base_url=BASE_URL,
            cancel_event=cancel,
            transport=catalog.transport,
        )

    assert cancel.is_set()
    # cancelled before the full 2 x 21 requests went out
    assert len(catalog.listing_calls) < 42


def test_cancelled_crawl_stops_early(settings, db_conn):
    works = {1: {page: [{"id": page, "title": "t"}] for page in range(1, 31)}}
    catalog = FakeCatalogAPI(works, page_size=1, delay=0.01)
    settings = settings.model_copy(update={"max_workers": 1})
    cancel = threading.Event()

    class CancellingAggregator(Aggregator):
        def store_page(self, page):
            super().store_page(page)
            if self.stats.pages == 2:
                cancel.set()

    aggregator = CancellingAggregator(db_conn)
    summary = run_crawl(
        settings,
        aggregator,
        [Category.SUBTITLED],
        base_url=BASE_URL,
        cancel_event=cancel,
        transport=catalog.transport,
    )

    assert summary.pages < 30
    # cancelled jobs are not fetch failures
    assert summary.failed_jobs > 0
    assert summary.failed_pages == 0
    assert len(db_conn.rows) == summary.pages
