import pytest
from pydantic import ValidationError

from catalog_etl.models import Category, DownloadRecord, Item, PageResult, PaginationInfo, calculate_max_page


@pytest.mark.parametrize(
    ("total", "size", "expected"),
    [(0, 10, 1), (25, 10, 3), (20, 10, 2), (1, 10, 1), (10, 10, 1), (11, 10, 2)],
)
def test_calculate_max_page(total, size, expected):
    assert calculate_max_page(total, size) == expected


def test_calculate_max_page_rejects_zero_page_size():
    with pytest.raises(ValueError):
        calculate_max_page(10, 0)


def test_pagination_info_validates_page_size():
    with pytest.raises(ValidationError):
        PaginationInfo(totalCount=5, pageSize=0)


def test_page_result_parses_api_payload():
    payload = {
        "pagination": {"currentPage": 1, "pageSize": 12, "totalCount": 25},
        "works": [
            {"id": 403038, "title": "Work A", "circle_id": 1, "tags": []},
            {"id": 403039, "title": "Work B"},
        ],
    }
    page = PageResult.model_validate(payload)
    assert page.pagination.max_page == 3
    assert [item.id for item in page.items] == [403038, 403039]


def test_null_title_does_not_drop_the_page():
    payload = {
        "pagination": {"currentPage": 1, "pageSize": 12, "totalCount": 2},
        "works": [{"id": 1, "title": "ok"}, {"id": 2, "title": None}],
    }
    result = PageResult.model_validate(payload)
    assert [(item.id, item.title) for item in result.items] == [(1, "ok"), (2, "")]
    assert DownloadRecord.from_item(result.items[1]).title == ""


def test_page_result_requires_pagination():
    with pytest.raises(ValidationError):
        PageResult.model_validate({"works": []})


def test_download_record_from_item_trims_title():
    record = DownloadRecord.from_item(Item(id=1, title="  Foo \n"))
    assert record.external_id == "RJ1"
    assert record.source_id == 1
    assert record.title == "Foo"


def test_download_record_custom_prefix():
    assert DownloadRecord.from_item(Item(id=7, title="x"), prefix="VJ").external_id == "VJ7"


def test_category_labels_round_trip():
    assert Category.SUBTITLED.label == "subtitle"
    assert Category.from_label("nosubtitle") is Category.UNSUBTITLED
    assert int(Category.SUBTITLED) == 1
    with pytest.raises(ValueError):
        Category.from_label("dubbed")
