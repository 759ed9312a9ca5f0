"""Test helper functions."""

import json
from typing import Any, Dict, Iterable, Optional

from appview.services.catalog_store import CatalogStore, MemoryCatalogStore
from appview.services.indexer import ListingIndexer
from tests.utils.factories import create_author_data, create_listing_data, create_listing_uri


def create_function_request(
    method: str = "GET",
    query: Optional[Dict[str, Any]] = None,
    body: Any = None,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Create a serverless function request object for testing."""
    return {
        "method": method,
        "path": "/api/marketplace",
        "headers": headers or {"content-type": "application/json"},
        "body": json.dumps(body) if isinstance(body, (dict, list)) else body,
        "query": query or {},
    }


def response_json(response: Dict[str, Any]) -> Any:
    return json.loads(response["body"])


async def index_listings(
    store: CatalogStore,
    listings: Iterable[dict],
    author: Optional[dict] = None,
) -> list[str]:
    """Index listing payloads through the real indexer; returns their URIs."""
    indexer = ListingIndexer(store)
    author = author or create_author_data()
    uris = []
    for listing in listings:
        uri = create_listing_uri(author["did"])
        await indexer.index_listing(uri, listing, author)
        uris.append(uri)
    return uris


class FailingIndexStore(MemoryCatalogStore):
    """Memory store whose writes to selected index keys fail."""

    def __init__(self, failing_keys: Iterable[str]):
        super().__init__()
        self.failing_keys = set(failing_keys)

    async def add_to_index(self, index_key: str, uri: str) -> None:
        if index_key in self.failing_keys:
            raise ConnectionError(f"index {index_key} unavailable")
        await super().add_to_index(index_key, uri)


class BrokenReadStore(MemoryCatalogStore):
    """Memory store whose reads always fail."""

    async def list_listings(self) -> list[dict]:
        raise ConnectionError("catalog unreachable")

    async def get_listing(self, uri: str):
        raise ConnectionError("catalog unreachable")

    async def get_index(self, index_key: str) -> list[str]:
        raise ConnectionError("catalog unreachable")
