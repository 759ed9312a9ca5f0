"""Catalog storage: primary listing records plus append-only secondary indexes."""

import asyncio
from typing import Awaitable, Optional, TypeVar

from appview.utils.errors import StorageError, StorageReadError
from appview.utils.settings import AppViewConfig
from appview.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

T = TypeVar("T")


def category_index_key(category: str) -> str:
    return f"category:{category}"


def location_index_key(token: str) -> str:
    return f"location:{token.lower()}"


def tag_index_key(tag: str) -> str:
    return f"tag:{tag.lower()}"


def user_index_key(did: str) -> str:
    return f"user:{did}:listings"


async def bounded(
    awaitable: Awaitable[T],
    timeout: Optional[float],
    operation: str,
    error_cls: type[StorageError] = StorageReadError,
) -> T:
    """Await a store call, converting timeouts and unexpected failures to ``error_cls``."""
    try:
        if timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout)
    except StorageError:
        raise
    except asyncio.TimeoutError as e:
        raise error_cls(f"{operation} timed out after {timeout}s") from e
    except Exception as e:
        raise error_cls(f"{operation} failed: {e}") from e


class CatalogStore:
    """Interface shared by catalog backends.

    Listing documents are the JSON form of ``ListingView`` keyed by URI.
    Index entries are logically sets: adding a URI twice keeps one entry,
    and insertion order is preserved.
    """

    async def put_listing(self, uri: str, document: dict) -> None:
        raise NotImplementedError()

    async def get_listing(self, uri: str) -> Optional[dict]:
        raise NotImplementedError()

    async def list_listings(self) -> list[dict]:
        """Every stored listing document, in first-insertion order."""
        raise NotImplementedError()

    async def add_to_index(self, index_key: str, uri: str) -> None:
        raise NotImplementedError()

    async def get_index(self, index_key: str) -> list[str]:
        raise NotImplementedError()


class MemoryCatalogStore(CatalogStore):
    """In-process catalog for local runs and tests."""

    def __init__(self):
        self.listings: dict[str, dict] = {}
        self.indexes: dict[str, list[str]] = {}

    async def put_listing(self, uri: str, document: dict) -> None:
        self.listings[uri] = dict(document)

    async def get_listing(self, uri: str) -> Optional[dict]:
        document = self.listings.get(uri)
        return dict(document) if document is not None else None

    async def list_listings(self) -> list[dict]:
        return [dict(d) for d in self.listings.values()]

    async def add_to_index(self, index_key: str, uri: str) -> None:
        entries = self.indexes.setdefault(index_key, [])
        if uri not in entries:
            entries.append(uri)

    async def get_index(self, index_key: str) -> list[str]:
        return list(self.indexes.get(index_key, []))


def create_catalog_store(backend: Optional[str] = None) -> CatalogStore:
    """Build the configured catalog backend."""
    backend = (backend or AppViewConfig.CATALOG_BACKEND).lower()

    if backend == "memory":
        logger.warning("Using in-memory catalog store; data will not persist")
        return MemoryCatalogStore()

    if backend == "supabase":
        from appview.services.supabase_client import SupabaseCatalogStore, create_supabase_client
        return SupabaseCatalogStore(create_supabase_client())

    raise StorageError(f"Unknown CATALOG_BACKEND: {backend}")


__all__ = [
    "CatalogStore",
    "MemoryCatalogStore",
    "create_catalog_store",
    "bounded",
    "category_index_key",
    "location_index_key",
    "tag_index_key",
    "user_index_key",
]
