"""Listing models matching the com.marketplace.listing lexicon."""

from datetime import datetime, timezone
from typing import Any, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


ListingStatus = Literal["active", "sold", "expired", "draft"]
ListingCondition = Literal["new", "like-new", "good", "fair", "poor"]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, returning an aware UTC datetime or None."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class Location(BaseModel):
    """Listing location."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    zip_code: str = Field("", alias="zipCode", description="ZIP / postal code")
    address: Optional[str] = Field(None, description="Street address")
    city: Optional[str] = None
    state: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def parts(self) -> list[str]:
        """Non-empty textual parts used for matching and index tokens."""
        return [p.strip() for p in (self.zip_code, self.address, self.city, self.state) if p and p.strip()]


class ImageRef(BaseModel):
    """Image attachment. The blob reference is carried through untouched."""
    model_config = ConfigDict(extra="allow")

    alt: str = ""
    image: Optional[dict] = Field(None, description="Blob reference")


class Author(BaseModel):
    """Denormalized author snapshot captured at index time."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    did: str = Field(..., min_length=1, description="Stable identity (DID)")
    handle: Optional[str] = None
    display_name: Optional[str] = Field(None, alias="displayName")
    avatar: Optional[str] = None


class ListingRecord(BaseModel):
    """A marketplace listing record as stored in the author's repository."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    title: str = Field(..., min_length=1, description="Listing title")
    description: str = Field(..., min_length=1, description="Listing description")
    price: str = Field("", description='Free-form price, e.g. "$100", "Free", "Negotiable"')
    category: Optional[str] = None
    condition: Optional[ListingCondition] = None
    location: Optional[Location] = None
    tags: list[str] = Field(default_factory=list)
    images: list[ImageRef] = Field(default_factory=list)
    status: ListingStatus = Field(default="active", description="Status: active, sold, expired, draft")
    allow_messages: bool = Field(default=True, alias="allowMessages")
    expires_at: Optional[str] = Field(None, alias="expiresAt")
    created_at: Optional[str] = Field(None, alias="createdAt")
    updated_at: Optional[str] = Field(None, alias="updatedAt")
    view_count: Optional[int] = Field(None, alias="viewCount")
    featured: Optional[bool] = None
    cross_posted_to: Optional[list[str]] = Field(None, alias="crossPostedTo")

    @field_validator("title", "description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("price", mode="before")
    @classmethod
    def _coerce_price(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return f"{value:g}" if isinstance(value, float) else str(value)
        return value

    @field_validator("location", mode="before")
    @classmethod
    def _coerce_location(cls, value: Any) -> Any:
        # Older clients sent a bare ZIP / place string
        if isinstance(value, str):
            return {"zipCode": value} if value.strip() else None
        return value

    @field_validator("tags", "images", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("tags")
    @classmethod
    def _strip_tags(cls, value: list[str]) -> list[str]:
        return [t.strip() for t in value if t and t.strip()]

    def created_at_dt(self) -> Optional[datetime]:
        return parse_timestamp(self.created_at)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True when ``expiresAt`` is set and already in the past."""
        expires = parse_timestamp(self.expires_at)
        if expires is None:
            return False
        return expires < (now or datetime.now(timezone.utc))


class ListingView(BaseModel):
    """Indexed listing as served to clients."""
    model_config = ConfigDict(populate_by_name=True)

    uri: str = Field(..., description="at://<did>/<collection>/<rkey>")
    cid: Optional[str] = Field(None, description="Content hash of the record revision")
    author: Author
    record: ListingRecord
    indexed_at: str = Field(..., alias="indexedAt")

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
