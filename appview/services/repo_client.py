"""Read-only AT Protocol repository client (XRPC over httpx)."""

from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from appview.models.listing import Author, ListingRecord, ListingView
from appview.utils.errors import RepoClientError
from appview.utils.settings import AppViewConfig
from appview.utils.logging import get_structured_logger, mask_did

logger = get_structured_logger(__name__)


def split_at_uri(uri: str) -> tuple[str, str, str]:
    """Split ``at://<repo>/<collection>/<rkey>`` into its three parts."""
    if not uri.startswith("at://"):
        raise RepoClientError(f"Not an at:// URI: {uri}")
    parts = uri[len("at://"):].split("/")
    if len(parts) != 3 or not all(parts):
        raise RepoClientError(f"Malformed at:// URI: {uri}")
    return parts[0], parts[1], parts[2]


class RepoClient:
    """Fetches listing records straight from authors' repositories.

    Usable as an async context manager; an injected ``http_client`` is left
    open for its owner to close.
    """

    def __init__(
        self,
        service_url: Optional[str] = None,
        profile_service_url: Optional[str] = None,
        plc_directory_url: Optional[str] = None,
        collection: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        resolve_pds: bool = True,
    ):
        self.service_url = (service_url or AppViewConfig.PDS_SERVICE_URL).rstrip("/")
        self.profile_service_url = (profile_service_url or AppViewConfig.PROFILE_SERVICE_URL).rstrip("/")
        self.plc_directory_url = (plc_directory_url or AppViewConfig.PLC_DIRECTORY_URL).rstrip("/")
        self.collection = collection or AppViewConfig.LISTING_COLLECTION
        self.timeout = timeout if timeout is not None else AppViewConfig.REPO_FETCH_TIMEOUT_SECONDS
        self.resolve_pds = resolve_pds
        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(timeout=self.timeout)
        self._pds_cache: dict[str, str] = {}

    async def __aenter__(self) -> "RepoClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    async def _get_json(self, url: str, params: Optional[dict] = None) -> dict:
        try:
            response = await self.http.get(url, params=params, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise RepoClientError(f"Request to {url} timed out") from e
        except httpx.HTTPError as e:
            raise RepoClientError(f"Request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise RepoClientError(f"Request to {url} returned {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise RepoClientError(f"Invalid JSON from {url}") from e
        if not isinstance(data, dict):
            raise RepoClientError(f"Unexpected response shape from {url}")
        return data

    async def _xrpc(self, base_url: str, nsid: str, params: dict) -> dict:
        return await self._get_json(f"{base_url}/xrpc/{nsid}", {k: v for k, v in params.items() if v is not None})

    async def pds_for(self, did: str) -> str:
        """Resolve the PDS hosting ``did``; falls back to the configured service."""
        if not self.resolve_pds or not did.startswith("did:plc:"):
            return self.service_url
        if did in self._pds_cache:
            return self._pds_cache[did]

        endpoint = self.service_url
        try:
            document = await self._get_json(f"{self.plc_directory_url}/{did}")
            for service in document.get("service") or []:
                if isinstance(service, dict) and service.get("id") == "#atproto_pds" and service.get("serviceEndpoint"):
                    endpoint = str(service["serviceEndpoint"]).rstrip("/")
                    break
        except RepoClientError as e:
            logger.debug("PDS resolution failed, using default service", did=mask_did(did), error=str(e))

        self._pds_cache[did] = endpoint
        return endpoint

    async def list_records(
        self,
        did: str,
        collection: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> tuple[list[dict], Optional[str]]:
        """One page of raw ``{uri, cid, value}`` records; defaults to the listing collection."""
        base_url = await self.pds_for(did)
        data = await self._xrpc(base_url, "com.atproto.repo.listRecords", {
            "repo": did,
            "collection": collection or self.collection,
            "limit": limit or AppViewConfig.REPO_FETCH_LIMIT,
            "cursor": cursor,
        })
        records = data.get("records")
        if not isinstance(records, list):
            raise RepoClientError(f"listRecords for {did} returned no records array")
        return [r for r in records if isinstance(r, dict)], data.get("cursor")

    async def get_record(self, uri: str) -> dict:
        """Raw ``{uri, cid, value}`` for one record."""
        repo, collection, rkey = split_at_uri(uri)
        base_url = await self.pds_for(repo)
        return await self._xrpc(base_url, "com.atproto.repo.getRecord", {
            "repo": repo,
            "collection": collection,
            "rkey": rkey,
        })

    async def get_profile(self, did: str) -> Author:
        data = await self._xrpc(self.profile_service_url, "app.bsky.actor.getProfile", {"actor": did})
        try:
            return Author(
                did=did,
                handle=data.get("handle"),
                display_name=data.get("displayName"),
                avatar=data.get("avatar"),
            )
        except PydanticValidationError as e:
            raise RepoClientError(f"Malformed profile for {did}: {e.error_count()} errors") from e

    async def fetch_author_listings(self, did: str, limit: Optional[int] = None) -> list[ListingView]:
        """
        Listings published by ``did``, with a profile snapshot as author.

        Malformed records are skipped. A failed profile lookup leaves the
        author as the bare DID. Lifecycle filtering is left to the caller.
        """
        records, _ = await self.list_records(did, limit=limit)

        try:
            author = await self.get_profile(did)
        except RepoClientError as e:
            logger.warning("Failed to fetch profile", did=mask_did(did), error=str(e))
            author = Author(did=did)

        views = []
        skipped = 0
        for raw in records:
            view = self._to_view(raw, author)
            if view is None:
                skipped += 1
            else:
                views.append(view)

        if skipped:
            logger.info("Skipped malformed listing records", did=mask_did(did), skipped=skipped)
        return views

    @staticmethod
    def _to_view(raw: dict, author: Author) -> Optional[ListingView]:
        uri = raw.get("uri")
        value: Any = raw.get("value")
        if not isinstance(uri, str) or not isinstance(value, dict):
            return None
        try:
            record = ListingRecord.model_validate(value)
            return ListingView(
                uri=uri,
                cid=raw.get("cid"),
                author=author,
                record=record,
                indexed_at=record.created_at or datetime.now(timezone.utc).isoformat(),
            )
        except PydanticValidationError:
            return None
