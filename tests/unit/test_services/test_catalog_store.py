"""Tests for the catalog store abstraction."""

import asyncio
import pytest
from unittest.mock import patch

from appview.services.catalog_store import (
    MemoryCatalogStore,
    bounded,
    category_index_key,
    create_catalog_store,
    location_index_key,
    tag_index_key,
    user_index_key,
)
from appview.utils.errors import StorageError, StorageReadError, StorageWriteError


@pytest.mark.unit
def test_index_key_formats():
    """Test index key naming."""
    assert category_index_key("Electronics") == "category:Electronics"
    assert location_index_key("San Francisco") == "location:san francisco"
    assert tag_index_key("Vintage") == "tag:vintage"
    assert user_index_key("did:plc:abc") == "user:did:plc:abc:listings"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_memory_store_roundtrip():
    """Test put/get/list and set semantics of index entries."""
    store = MemoryCatalogStore()

    await store.put_listing("at://a/c/1", {"uri": "at://a/c/1", "n": 1})
    await store.put_listing("at://a/c/2", {"uri": "at://a/c/2"})
    await store.put_listing("at://a/c/1", {"uri": "at://a/c/1", "n": 2})
    await store.add_to_index("tag:x", "at://a/c/2")
    await store.add_to_index("tag:x", "at://a/c/1")
    await store.add_to_index("tag:x", "at://a/c/2")

    assert (await store.get_listing("at://a/c/1"))["n"] == 2
    assert await store.get_listing("at://a/c/missing") is None
    assert [d["uri"] for d in await store.list_listings()] == ["at://a/c/1", "at://a/c/2"]
    assert await store.get_index("tag:x") == ["at://a/c/2", "at://a/c/1"]
    assert await store.get_index("tag:unknown") == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_memory_store_returns_copies():
    """Test callers cannot mutate stored documents."""
    store = MemoryCatalogStore()
    await store.put_listing("at://a/c/1", {"uri": "at://a/c/1"})

    document = await store.get_listing("at://a/c/1")
    document["uri"] = "changed"

    assert store.listings["at://a/c/1"]["uri"] == "at://a/c/1"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_bounded_wraps_failures():
    """Test timeouts and unexpected exceptions become storage errors."""

    async def fail():
        raise ConnectionError("reset by peer")

    async def hang():
        await asyncio.sleep(1)

    async def storage_fail():
        raise StorageWriteError("already wrapped")

    with pytest.raises(StorageReadError, match="reset by peer"):
        await bounded(fail(), 1, "read")
    with pytest.raises(StorageWriteError, match="timed out"):
        await bounded(hang(), 0.01, "write", StorageWriteError)
    with pytest.raises(StorageWriteError, match="already wrapped"):
        await bounded(storage_fail(), 1, "read")
    assert await bounded(asyncio.sleep(0, result=5), None, "noop") == 5


@pytest.mark.unit
def test_create_catalog_store_memory():
    """Test the memory backend is selectable."""
    assert isinstance(create_catalog_store("memory"), MemoryCatalogStore)


@pytest.mark.unit
def test_create_catalog_store_supabase():
    """Test the supabase backend uses the configured client."""
    with patch("appview.services.supabase_client.create_supabase_client") as mock_create:
        store = create_catalog_store("supabase")

    assert store.client is mock_create.return_value


@pytest.mark.unit
def test_create_catalog_store_unknown():
    """Test unknown backends are rejected."""
    with pytest.raises(StorageError, match="Unknown CATALOG_BACKEND"):
        create_catalog_store("redis")
