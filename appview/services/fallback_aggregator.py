"""Fallback aggregator - approximate browse/search by crawling known authors' repositories."""

import asyncio
from typing import Iterable, Optional

from pydantic import ValidationError as PydanticValidationError

from appview.models.listing import ListingView
from appview.models.query import CursorPage, ListingFilters
from appview.services.known_users import KnownUsersCache
from appview.services.listing_filters import (
    created_at_key,
    is_fallback_listed,
    matches_filters,
    price_sort_value,
    sort_newest_first,
)
from appview.services.repo_client import RepoClient
from appview.utils.errors import NoKnownUsersError, PerIdentityFetchError, RepoClientError, ValidationError
from appview.utils.settings import AppViewConfig
from appview.utils.logging import get_structured_logger, log_timing, mask_did

logger = get_structured_logger(__name__)

SORT_FIELDS = ("createdAt", "price", "relevance")
SORT_ORDERS = ("asc", "desc")


def apply_client_filters(listings: Iterable[ListingView], filters: Optional[ListingFilters]) -> list[ListingView]:
    """Same filter semantics as the indexed browse query."""
    return [v for v in listings if matches_filters(v, filters)]


def apply_client_sort(
    listings: Iterable[ListingView],
    sort_by: str = "createdAt",
    order: str = "desc",
) -> list[ListingView]:
    """
    Stable sort by ``createdAt`` or ``price``.

    ``relevance`` has no score client-side and orders like ``createdAt``.
    Unparseable prices sort as 0 here, while the price filter excludes them.
    """
    if sort_by not in SORT_FIELDS:
        raise ValidationError(f"Unsupported sort field: {sort_by}")
    if order not in SORT_ORDERS:
        raise ValidationError(f"Unsupported sort order: {order}")

    if sort_by == "price":
        key = lambda v: price_sort_value(v.record.price)  # noqa: E731
    else:
        key = created_at_key
    return sorted(listings, key=key, reverse=(order == "desc"))


def paginate_with_cursor(listings: list[ListingView], cursor: Optional[str], limit: int) -> CursorPage:
    """Offset pagination where the cursor is the next offset as a string."""
    try:
        start = max(int(cursor), 0) if cursor else 0
    except ValueError as e:
        raise ValidationError(f"Invalid cursor: {cursor}") from e
    limit = max(limit, 0)

    end = start + limit
    return CursorPage(
        listings=listings[start:end],
        total=len(listings),
        cursor=str(end) if end < len(listings) else None,
        source="fallback",
    )


class FallbackAggregator:
    """Collects listings from each known author, tolerating per-author failures."""

    def __init__(
        self,
        repo_client: RepoClient,
        known_users: Optional[KnownUsersCache] = None,
        timeout: Optional[float] = None,
    ):
        self.repo_client = repo_client
        self.known_users = known_users
        self.timeout = timeout if timeout is not None else AppViewConfig.REPO_FETCH_TIMEOUT_SECONDS

    async def aggregate_known_users(
        self,
        known_user_ids: Iterable[str],
        current_did: Optional[str] = None,
    ) -> list[ListingView]:
        """
        Fetch, merge and sort listings from every known identity.

        The current identity is queried first when it is not already known.
        Raises NoKnownUsersError only when there is nobody to query.
        """
        dids = [d for d in dict.fromkeys(known_user_ids) if d]
        if current_did and current_did not in dids:
            dids.insert(0, current_did)

        if not dids:
            raise NoKnownUsersError("No known marketplace users to query")

        merged: list[ListingView] = []
        failures: list[PerIdentityFetchError] = []
        posters: list[str] = []

        with log_timing("known users aggregation", logger=logger, identity_count=len(dids)):
            for did in dids:
                try:
                    views = await self._fetch_identity(did)
                except PerIdentityFetchError as e:
                    failures.append(e)
                    logger.warning("Skipping identity after fetch failure", did=mask_did(did), error=e.reason)
                    continue

                merged.extend(views)
                if views:
                    posters.append(did)

        await self._remember(posters)

        logger.info(
            "Aggregated listings from known users",
            identity_count=len(dids),
            failed_identity_count=len(failures),
            listing_count=len(merged),
        )
        return sort_newest_first(merged)

    async def _fetch_identity(self, did: str) -> list[ListingView]:
        try:
            views = await asyncio.wait_for(self.repo_client.fetch_author_listings(did), self.timeout)
        except asyncio.TimeoutError as e:
            raise PerIdentityFetchError(did, f"timed out after {self.timeout}s") from e
        except RepoClientError as e:
            raise PerIdentityFetchError(did, str(e)) from e
        except PydanticValidationError as e:
            raise PerIdentityFetchError(did, f"malformed repository data: {e.error_count()} errors") from e

        visible = [v for v in views if is_fallback_listed(v.record)]
        logger.debug(
            "Fetched identity listings",
            did=mask_did(did),
            fetched=len(views),
            visible=len(visible),
        )
        return visible

    async def _remember(self, dids: list[str]) -> None:
        """Add identities that have listings to the known-users cache off the event loop."""
        if dids and self.known_users is not None:
            await asyncio.to_thread(self.known_users.add_many, dids)
