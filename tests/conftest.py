import pytest

from catalog_etl.config import Settings

from tests.fakes import BASE_URL, FakeCatalogAPI, FakeConnection


@pytest.fixture
def settings():
    return Settings(
        account="guest",
        password="guest",
        max_workers=3,
        max_failed_retry=1,
        retry_wait=0,
        base_url=BASE_URL,
    )


@pytest.fixture
def db_conn():
    return FakeConnection()


@pytest.fixture
def duplicate_catalog():
    return FakeCatalogAPI(
        {
            1: {
                1: [{"id": 1, "title": " Foo "}, {"id": 2, "title": "Bar"}],
                2: [{"id": 2, "title": "Bar"}],
            }
        },
        page_size=2,
    )
