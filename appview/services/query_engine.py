"""Query engine - browse, search, author listing and direct lookup over the catalog.

Browse and search scan the whole catalog and filter in memory, which is
O(catalog size) per query. Author listing is served from the ``user`` index,
cross-checked against the primary store because index entries are never
removed.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from appview.models.listing import ListingView
from appview.models.query import (
    ListingFilters,
    ListingLookup,
    ListingPage,
    Pagination,
    SearchPage,
)
from appview.services.catalog_store import CatalogStore, bounded, user_index_key
from appview.services.listing_filters import (
    is_listed,
    matches_filters,
    matches_query,
    paginate,
    rank_search_results,
    sort_newest_first,
)
from appview.utils.errors import InternalError, StorageError, StorageReadError, ValidationError
from appview.utils.settings import AppViewConfig
from appview.utils.logging import (
    get_structured_logger,
    log_timing,
    mask_did,
    sanitize_listing_text,
)

logger = get_structured_logger(__name__)


def _to_view(document: dict) -> ListingView:
    try:
        return ListingView.model_validate(document)
    except PydanticValidationError as e:
        uri = document.get("uri") if isinstance(document, dict) else None
        raise StorageReadError(f"Malformed listing document {uri}: {e.error_count()} errors") from e


class QueryEngine:
    """Answers read queries; any storage failure aborts with InternalError."""

    def __init__(self, store: CatalogStore, timeout: Optional[float] = None):
        self.store = store
        self.timeout = timeout if timeout is not None else AppViewConfig.STORAGE_TIMEOUT_SECONDS

    async def _load_catalog(self) -> list[ListingView]:
        with log_timing("catalog scan", logger=logger):
            documents = await bounded(self.store.list_listings(), self.timeout, "scan listings")
            return [_to_view(d) for d in documents]

    async def _visible_catalog(self) -> list[ListingView]:
        now = datetime.now(timezone.utc)
        try:
            views = await self._load_catalog()
        except StorageError as e:
            logger.error("Catalog read failed", error=str(e))
            raise InternalError("Failed to read listings") from e
        return [v for v in views if is_listed(v.record, now)]

    async def list_all(
        self,
        filters: Optional[ListingFilters] = None,
        pagination: Optional[Pagination] = None,
    ) -> ListingPage:
        """Filtered listings, newest first, one page at a time."""
        pagination = pagination or Pagination()
        views = await self._visible_catalog()
        matched = sort_newest_first(v for v in views if matches_filters(v, filters))
        page = paginate(matched, pagination)

        logger.info(
            "Browse query answered",
            total=page.total,
            returned=len(page.listings),
            offset=pagination.offset,
            limit=pagination.limit,
            category=filters.category if filters else None,
        )
        return page

    async def search(
        self,
        query: Optional[str],
        filters: Optional[ListingFilters] = None,
        pagination: Optional[Pagination] = None,
    ) -> SearchPage:
        """Keyword search; exact title matches rank ahead of newer partial matches."""
        if query is None or not query.strip():
            raise ValidationError("Search query is required")

        pagination = pagination or Pagination()
        term = query.strip().lower()
        views = await self._visible_catalog()
        matched = [v for v in views if matches_query(v, term) and matches_filters(v, filters)]
        page = paginate(rank_search_results(matched, term), pagination)

        logger.info(
            "Search query answered",
            query=sanitize_listing_text(query),
            total=page.total,
            returned=len(page.listings),
        )
        return SearchPage(
            listings=page.listings,
            total=page.total,
            has_more=page.has_more,
            query=query,
        )

    async def list_by_author(self, did: str, pagination: Optional[Pagination] = None) -> ListingPage:
        """Listings by one author, resolved through the author index."""
        if not did or not did.strip():
            raise ValidationError("Author is required")

        did = did.strip()
        pagination = pagination or Pagination()
        now = datetime.now(timezone.utc)

        try:
            uris = await bounded(self.store.get_index(user_index_key(did)), self.timeout, "read author index")
            documents = await asyncio.gather(
                *(bounded(self.store.get_listing(uri), self.timeout, f"get listing {uri}") for uri in uris)
            )
            views = [_to_view(d) for d in documents if d is not None]
        except StorageError as e:
            logger.error("Author listing read failed", author_did=mask_did(did), error=str(e))
            raise InternalError("Failed to read listings") from e

        stale = len(uris) - len(views)
        if stale:
            logger.debug("Skipped stale index entries", author_did=mask_did(did), stale_count=stale)

        visible = [v for v in views if v.author.did == did and is_listed(v.record, now)]
        return paginate(sort_newest_first(visible), pagination)

    async def get_listing(self, uri: str) -> ListingLookup:
        """Look up one listing; inactive or expired listings are reported unavailable."""
        if not uri or not uri.strip():
            raise ValidationError("Listing uri is required")

        try:
            document = await bounded(self.store.get_listing(uri.strip()), self.timeout, f"get listing {uri}")
            view = _to_view(document) if document is not None else None
        except StorageError as e:
            logger.error("Listing lookup failed", uri=uri, error=str(e))
            raise InternalError("Failed to read listing") from e

        if view is None:
            return ListingLookup(status="not_found")

        record = view.record
        if record.status != "active":
            return ListingLookup(status="unavailable", listing=view, reason=f"Listing is {record.status}")
        if record.is_expired():
            return ListingLookup(status="unavailable", listing=view, reason="Listing has expired")
        return ListingLookup(status="available", listing=view)
