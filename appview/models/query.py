"""Query, pagination and result models."""

from typing import Any, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from appview.models.listing import ListingView
from appview.utils.settings import AppViewConfig


def split_tags(value: Any) -> list[str]:
    """Split comma-separated tag input into trimmed, lower-cased tags."""
    if value is None:
        return []
    items = [value] if isinstance(value, str) else list(value)
    tags = []
    for item in items:
        for tag in str(item).split(","):
            tag = tag.strip().lower()
            if tag:
                tags.append(tag)
    return tags


class ListingFilters(BaseModel):
    """Browse/search filters. Every supplied filter must match (AND)."""
    model_config = ConfigDict(populate_by_name=True)

    category: Optional[str] = Field(None, description="Exact category match")
    location: Optional[str] = Field(None, description="Case-insensitive substring of the location")
    min_price: Optional[float] = Field(None, alias="minPrice")
    max_price: Optional[float] = Field(None, alias="maxPrice")
    tags: list[str] = Field(default_factory=list, description="Any-of tag match")
    condition: list[str] = Field(default_factory=list)
    has_images: Optional[bool] = Field(None, alias="hasImages")
    posted_since: Optional[str] = Field(None, alias="postedSince")

    @field_validator("category", "location", "posted_since", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("min_price", "max_price", mode="before")
    @classmethod
    def _blank_price(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value: Any) -> list[str]:
        return split_tags(value)

    @field_validator("condition", mode="before")
    @classmethod
    def _split_condition(cls, value: Any) -> list[str]:
        if value is None:
            return []
        items = [value] if isinstance(value, str) else list(value)
        return [c.strip() for item in items for c in str(item).split(",") if c.strip()]

    @property
    def has_price_bound(self) -> bool:
        return self.min_price is not None or self.max_price is not None


class Pagination(BaseModel):
    """Offset/limit pagination. Negative values are clamped to zero."""

    offset: int = 0
    limit: int = Field(default_factory=lambda: AppViewConfig.DEFAULT_PAGE_LIMIT)

    @field_validator("offset", "limit")
    @classmethod
    def _clamp(cls, value: int) -> int:
        return max(value, 0)


class ListingPage(BaseModel):
    """One page of a filtered and sorted result set."""
    model_config = ConfigDict(populate_by_name=True)

    listings: list[ListingView] = Field(default_factory=list)
    total: int = 0
    has_more: bool = Field(False, alias="hasMore")

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class SearchPage(ListingPage):
    """Search results echo the original query string."""
    query: str


class ListingLookup(BaseModel):
    """Result of a direct URI lookup."""
    status: Literal["available", "unavailable", "not_found"]
    listing: Optional[ListingView] = None
    reason: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.status == "available"


class IndexResult(BaseModel):
    """Outcome of indexing one listing."""
    uri: str
    index_keys: list[str] = Field(default_factory=list)
    failed_indexes: list[str] = Field(default_factory=list)

    @property
    def fully_indexed(self) -> bool:
        return not self.failed_indexes


class CursorPage(BaseModel):
    """Client-facing page addressed by an opaque cursor.

    ``error`` is set when results could not be fetched at all; listings are
    then empty.
    """
    listings: list[ListingView] = Field(default_factory=list)
    total: int = 0
    cursor: Optional[str] = None
    source: Literal["appview", "fallback", "none"] = "appview"
    error: Optional[str] = None
