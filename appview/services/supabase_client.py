"""Supabase-backed catalog store."""

import asyncio
from typing import Optional
from supabase import create_client, Client
from supabase.client import ClientOptions
from appview.services.catalog_store import CatalogStore
from appview.utils.errors import StorageError, StorageReadError, StorageWriteError
from appview.utils.settings import AppViewConfig
import logging

logger = logging.getLogger(__name__)

# PostgREST caps responses at 1000 rows by default
SCAN_PAGE_SIZE = 1000


def create_supabase_client(url: Optional[str] = None, key: Optional[str] = None) -> Client:
    """Create a Supabase client for one invocation."""
    url = url or AppViewConfig.SUPABASE_URL
    key = key or AppViewConfig.SUPABASE_SERVICE_ROLE_KEY

    if not url or not key:
        raise StorageError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

    options = ClientOptions(
        auto_refresh_token=False,
        persist_session=False,
    )

    client = create_client(url, key, options)
    logger.info("Supabase client initialized", extra={"url": url})
    return client


class SupabaseCatalogStore(CatalogStore):
    """Catalog kept in two tables.

    ``marketplace_listings``: ``id`` identity, ``uri`` unique, ``did``, ``document`` jsonb.
    ``marketplace_index_entries``: ``id`` identity, ``index_key``, ``uri``, unique (index_key, uri).

    supabase-py is synchronous, so each call runs in a worker thread.
    """

    def __init__(
        self,
        client: Client,
        listings_table: Optional[str] = None,
        index_table: Optional[str] = None,
    ):
        self.client = client
        self.listings_table = listings_table or AppViewConfig.LISTINGS_TABLE
        self.index_table = index_table or AppViewConfig.INDEX_TABLE

    async def put_listing(self, uri: str, document: dict) -> None:
        def _upsert():
            author = document.get("author") or {}
            return self.client.table(self.listings_table).upsert(
                {"uri": uri, "did": author.get("did"), "document": document},
                on_conflict="uri",
            ).execute()

        try:
            await asyncio.to_thread(_upsert)
        except Exception as e:
            raise StorageWriteError(f"Failed to write listing {uri}: {e}") from e

    async def get_listing(self, uri: str) -> Optional[dict]:
        def _select():
            return self.client.table(self.listings_table).select("document").eq("uri", uri).limit(1).execute()

        try:
            result = await asyncio.to_thread(_select)
        except Exception as e:
            raise StorageReadError(f"Failed to get listing {uri}: {e}") from e

        if not result.data:
            return None
        return self._document(result.data[0])

    async def list_listings(self) -> list[dict]:
        def _page(start: int):
            return (
                self.client.table(self.listings_table)
                .select("document")
                .order("id")
                .range(start, start + SCAN_PAGE_SIZE - 1)
                .execute()
            )

        documents = []
        start = 0
        try:
            while True:
                result = await asyncio.to_thread(_page, start)
                rows = result.data or []
                documents.extend(self._document(row) for row in rows)
                if len(rows) < SCAN_PAGE_SIZE:
                    break
                start += SCAN_PAGE_SIZE
        except StorageReadError:
            raise
        except Exception as e:
            raise StorageReadError(f"Failed to scan listings: {e}") from e

        return documents

    async def add_to_index(self, index_key: str, uri: str) -> None:
        def _upsert():
            return self.client.table(self.index_table).upsert(
                {"index_key": index_key, "uri": uri},
                on_conflict="index_key,uri",
                ignore_duplicates=True,
            ).execute()

        try:
            await asyncio.to_thread(_upsert)
        except Exception as e:
            raise StorageWriteError(f"Failed to add {uri} to {index_key}: {e}") from e

    async def get_index(self, index_key: str) -> list[str]:
        def _select():
            return self.client.table(self.index_table).select("uri").eq("index_key", index_key).order("id").execute()

        try:
            result = await asyncio.to_thread(_select)
        except Exception as e:
            raise StorageReadError(f"Failed to read index {index_key}: {e}") from e

        return [row["uri"] for row in (result.data or []) if row.get("uri")]

    @staticmethod
    def _document(row: dict) -> dict:
        document = row.get("document")
        if not isinstance(document, dict):
            raise StorageReadError("Malformed listing row: document is not an object")
        return document
