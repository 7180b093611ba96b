"""Pydantic models shared across ETL components."""
from __future__ import annotations

import math
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def calculate_max_page(total_count: int, page_size: int) -> int:
    """Return the number of pages needed for ``total_count`` items (at least 1)."""
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    if total_count <= 0:
        return 1
    return math.ceil(total_count / page_size)


class Category(int, Enum):
    """Listing partition crawled by its own pipeline."""

    UNSUBTITLED = 0
    SUBTITLED = 1

    @property
    def label(self) -> str:
        return "subtitle" if self is Category.SUBTITLED else "nosubtitle"

    @classmethod
    def from_label(cls, label: str) -> "Category":
        for category in cls:
            if category.label == label:
                return category
        raise ValueError(f"unknown category: {label}")


class PaginationInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_count: int = Field(alias="totalCount", ge=0)
    page_size: int = Field(alias="pageSize", gt=0)
    current_page: Optional[int] = Field(default=None, alias="currentPage")

    @property
    def max_page(self) -> int:
        return calculate_max_page(self.total_count, self.page_size)


class Item(BaseModel):
    """One work from the listing; fields beyond id/title are ignored."""

    model_config = ConfigDict(extra="ignore")

    id: int
    title: str = ""

    @field_validator("title", mode="before")
    @classmethod
    def _null_title(cls, value):
        return "" if value is None else value


class PageResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pagination: PaginationInfo
    items: List[Item] = Field(default_factory=list, alias="works")


class DownloadRecord(BaseModel):
    external_id: str
    source_id: int
    title: str

    @classmethod
    def from_item(cls, item: Item, prefix: str = "RJ") -> "DownloadRecord":
        return cls(
            external_id=f"{prefix}{item.id}",
            source_id=item.id,
            title=item.title.strip(),
        )
