"""Client-side marketplace API: AppView first, known-users crawl as fallback."""

import asyncio
from typing import Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from appview.models.listing import ListingView
from appview.models.query import CursorPage, ListingFilters
from appview.services.fallback_aggregator import (
    FallbackAggregator,
    apply_client_filters,
    apply_client_sort,
    paginate_with_cursor,
)
from appview.services.known_users import KnownUsersCache
from appview.services.listing_filters import is_fallback_listed, matches_query, rank_search_results, sort_newest_first
from appview.services.repo_client import RepoClient
from appview.utils.errors import NoKnownUsersError, RepoClientError, ValidationError
from appview.utils.settings import AppViewConfig
from appview.utils.logging import get_structured_logger, mask_did, sanitize_listing_text

logger = get_structured_logger(__name__)


class AppViewUnavailable(Exception):
    """The indexed AppView could not answer; callers fall back."""


def filters_to_params(filters: Optional[ListingFilters]) -> dict:
    """Query parameters understood by the AppView handlers."""
    if filters is None:
        return {}
    params = {
        "category": filters.category,
        "location": filters.location,
        "minPrice": f"{filters.min_price:g}" if filters.min_price is not None else None,
        "maxPrice": f"{filters.max_price:g}" if filters.max_price is not None else None,
        "tags": ",".join(filters.tags) or None,
        "condition": ",".join(filters.condition) or None,
        "hasImages": str(filters.has_images).lower() if filters.has_images is not None else None,
        "postedSince": filters.posted_since,
    }
    return {k: v for k, v in params.items() if v is not None}


class MarketplaceClient:
    """Browse and search that degrade to a client-side crawl when the AppView fails."""

    def __init__(
        self,
        appview_url: Optional[str] = None,
        repo_client: Optional[RepoClient] = None,
        known_users: Optional[KnownUsersCache] = None,
        current_did: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.appview_url = (appview_url if appview_url is not None else AppViewConfig.APPVIEW_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else AppViewConfig.REPO_FETCH_TIMEOUT_SECONDS
        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(timeout=self.timeout)
        self.repo_client = repo_client or RepoClient(http_client=self.http)
        self.known_users = known_users or KnownUsersCache()
        self.current_did = current_did
        self.aggregator = FallbackAggregator(self.repo_client, self.known_users)

    async def __aenter__(self) -> "MarketplaceClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    async def _appview_page(self, endpoint: str, params: dict) -> CursorPage:
        if not self.appview_url:
            raise AppViewUnavailable("AppView endpoint not configured")

        url = f"{self.appview_url}/{endpoint}"
        try:
            response = await self.http.get(url, params=params, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise AppViewUnavailable(f"Request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise AppViewUnavailable(f"{url} returned {response.status_code}")

        try:
            data = response.json()
            listings = [ListingView.model_validate(item) for item in data.get("listings") or []]
            total = int(data.get("total") or 0)
        except (ValueError, AttributeError, PydanticValidationError) as e:
            raise AppViewUnavailable(f"Malformed response from {url}") from e

        offset = int(params.get("offset") or 0)
        next_offset = offset + len(listings)
        return CursorPage(
            listings=listings,
            total=total,
            cursor=str(next_offset) if data.get("hasMore") else None,
            source="appview",
        )

    async def _crawl(self) -> list[ListingView]:
        return await self.aggregator.aggregate_known_users(self.known_users.all(), self.current_did)

    async def get_all_listings(
        self,
        filters: Optional[ListingFilters] = None,
        sort_by: str = "createdAt",
        order: str = "desc",
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> CursorPage:
        """Browse listings; never raises for unavailable backends."""
        limit = limit if limit is not None else AppViewConfig.DEFAULT_PAGE_LIMIT
        params = {**filters_to_params(filters), "limit": limit, "offset": cursor or 0}

        try:
            return await self._appview_page("get_listings", params)
        except AppViewUnavailable as e:
            logger.warning("AppView failed, falling back to direct repository queries", error=str(e))

        try:
            listings = await self._crawl()
        except NoKnownUsersError as e:
            logger.info("No known marketplace users for fallback browse")
            return CursorPage(source="none", error=str(e))

        filtered = apply_client_filters(listings, filters)
        return paginate_with_cursor(apply_client_sort(filtered, sort_by, order), cursor, limit)

    async def search_listings(
        self,
        query: str,
        filters: Optional[ListingFilters] = None,
        sort_by: str = "relevance",
        order: str = "desc",
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> CursorPage:
        """Keyword search with the same fallback as browse."""
        if not query or not query.strip():
            raise ValidationError("Search query is required")

        limit = limit if limit is not None else AppViewConfig.DEFAULT_PAGE_LIMIT
        params = {**filters_to_params(filters), "q": query, "limit": limit, "offset": cursor or 0}

        try:
            return await self._appview_page("search_listings", params)
        except AppViewUnavailable as e:
            logger.warning(
                "AppView search failed, falling back to direct repository queries",
                query=sanitize_listing_text(query),
                error=str(e),
            )

        try:
            listings = await self._crawl()
        except NoKnownUsersError as e:
            return CursorPage(source="none", error=str(e))

        term = query.strip().lower()
        matched = [v for v in apply_client_filters(listings, filters) if matches_query(v, term)]
        if sort_by == "relevance":
            ordered = rank_search_results(matched, term)
        else:
            ordered = apply_client_sort(matched, sort_by, order)
        return paginate_with_cursor(ordered, cursor, limit)

    async def notify_new_listing(self, uri: str, listing: dict, author: dict) -> bool:
        """
        Tell the AppView about a listing just written to the author's repository.

        The author is remembered as a known user first, so the fallback crawl
        finds the listing even when the AppView never indexes it. Returns
        False when the AppView could not be notified.
        """
        did = (author or {}).get("did")
        if not did:
            raise ValidationError("Author did is required")

        await asyncio.to_thread(self.known_users.add, did)

        if not self.appview_url:
            logger.info("AppView endpoint not configured, skipping notification", uri=uri)
            return False

        url = f"{self.appview_url}/notify_new_listing"
        try:
            response = await self.http.post(
                url,
                json={"uri": uri, "listing": listing, "author": author},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("Failed to notify AppView", uri=uri, error=str(e))
            return False

        if response.status_code != 200:
            logger.warning("AppView rejected listing notification", uri=uri, status_code=response.status_code)
            return False
        return True

    async def get_user_listings(
        self,
        did: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> CursorPage:
        """
        One author's listings read straight from their repository.

        A failure for another author yields an empty page with an error; a
        failure for the current identity raises RepoClientError.
        """
        if not did or not did.strip():
            raise ValidationError("Author is required")

        did = did.strip()
        limit = limit if limit is not None else AppViewConfig.DEFAULT_PAGE_LIMIT

        try:
            views = await self.repo_client.fetch_author_listings(did)
        except RepoClientError as e:
            if did == self.current_did:
                raise
            logger.warning("Returning empty results for author", did=mask_did(did), error=str(e))
            return CursorPage(source="none", error=str(e))

        visible = sort_newest_first(v for v in views if is_fallback_listed(v.record))
        if visible:
            await asyncio.to_thread(self.known_users.add, did)

        return paginate_with_cursor(visible, cursor, limit)
