"""Filter, match and sort rules shared by the query engine and the fallback aggregator."""

import re
from datetime import datetime, timezone
from typing import Iterable, Optional

from appview.models.listing import ListingRecord, ListingView, parse_timestamp
from appview.models.query import ListingFilters, ListingPage, Pagination

_THOUSANDS = re.compile(r"(?<=\d),(?=\d{3}\b)")
_NUMBER = re.compile(r"\d+(?:\.\d+)?")

# Sorts listings without a usable createdAt after everything else
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)

FALLBACK_HIDDEN_STATUSES = ("expired", "draft")


def parse_price(price: object) -> Optional[float]:
    """Parse the first numeric run of a free-form price.

    ``"$1,200 OBO"`` -> 1200.0, ``"Free"`` -> None.
    """
    if isinstance(price, bool) or price is None:
        return None
    if isinstance(price, (int, float)):
        return float(price)
    match = _NUMBER.search(_THOUSANDS.sub("", str(price)))
    return float(match.group()) if match else None


def price_sort_value(price: object) -> float:
    """Price used for sorting; unparseable prices sort as 0."""
    value = parse_price(price)
    return value if value is not None else 0.0


def created_at_key(view: ListingView) -> datetime:
    return view.record.created_at_dt() or _OLDEST


def is_listed(record: ListingRecord, now: Optional[datetime] = None) -> bool:
    """Visible in browse/search: active and not past ``expiresAt``."""
    return record.status == "active" and not record.is_expired(now)


def is_fallback_listed(record: ListingRecord, now: Optional[datetime] = None) -> bool:
    """Visible in fallback aggregation: not expired/draft and not past ``expiresAt``."""
    return record.status not in FALLBACK_HIDDEN_STATUSES and not record.is_expired(now)


def location_matches(record: ListingRecord, needle: str) -> bool:
    if record.location is None:
        return False
    needle = needle.lower()
    return any(needle in part.lower() for part in record.location.parts())


def matches_filters(view: ListingView, filters: Optional[ListingFilters]) -> bool:
    """True when the listing satisfies every supplied filter."""
    if filters is None:
        return True
    record = view.record

    if filters.category and record.category != filters.category:
        return False

    if filters.location and not location_matches(record, filters.location):
        return False

    if filters.has_price_bound:
        price = parse_price(record.price)
        if price is None:
            return False
        if filters.min_price is not None and price < filters.min_price:
            return False
        if filters.max_price is not None and price > filters.max_price:
            return False

    if filters.tags:
        own_tags = {t.lower() for t in record.tags}
        if not own_tags.intersection(filters.tags):
            return False

    if filters.condition and record.condition not in filters.condition:
        return False

    if filters.has_images is not None and bool(record.images) != filters.has_images:
        return False

    if filters.posted_since:
        since = parse_timestamp(filters.posted_since)
        created = record.created_at_dt()
        if since is not None and (created is None or created < since):
            return False

    return True


def matches_query(view: ListingView, term: str) -> bool:
    """Case-insensitive substring match on title, description, category or any tag."""
    term = term.lower()
    record = view.record
    if term in record.title.lower() or term in record.description.lower():
        return True
    if record.category and term in record.category.lower():
        return True
    return any(term in tag.lower() for tag in record.tags)


def sort_newest_first(views: Iterable[ListingView]) -> list[ListingView]:
    """Stable sort by createdAt descending."""
    return sorted(views, key=created_at_key, reverse=True)


def rank_search_results(views: Iterable[ListingView], term: str) -> list[ListingView]:
    """Exact (case-insensitive) title matches first, then newest first.

    Both passes are stable, so ties keep catalog order.
    """
    term = term.lower()
    ordered = sort_newest_first(views)
    return sorted(ordered, key=lambda v: v.record.title.lower() != term)


def paginate(views: list[ListingView], pagination: Pagination) -> ListingPage:
    """Slice a sorted result set; ``has_more`` is ``offset + limit < total``."""
    total = len(views)
    start, limit = pagination.offset, pagination.limit
    return ListingPage(
        listings=views[start:start + limit],
        total=total,
        has_more=start + limit < total,
    )
