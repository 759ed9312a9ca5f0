"""Tests for the Supabase catalog store."""

import pytest
from unittest.mock import MagicMock, patch

from appview.services.supabase_client import SCAN_PAGE_SIZE, SupabaseCatalogStore, create_supabase_client
from appview.utils.errors import StorageError, StorageReadError, StorageWriteError


@pytest.fixture
def mock_client():
    """Mock Supabase client with a chainable query builder."""
    client = MagicMock()
    query = MagicMock()
    for method in ("select", "eq", "order", "limit", "range", "upsert"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=[])
    client.table.return_value = query
    return client


@pytest.fixture
def store(mock_client):
    return SupabaseCatalogStore(mock_client, listings_table="listings", index_table="index_entries")


@pytest.mark.unit
def test_create_supabase_client_requires_credentials():
    """Test missing credentials are a storage error."""
    with patch("appview.services.supabase_client.AppViewConfig") as config:
        config.SUPABASE_URL = ""
        config.SUPABASE_SERVICE_ROLE_KEY = ""
        with pytest.raises(StorageError):
            create_supabase_client()


@pytest.mark.unit
def test_create_supabase_client():
    """Test a fresh client is built per call."""
    with patch("appview.services.supabase_client.create_client") as mock_create:
        first = create_supabase_client("https://test.supabase.co", "key")
        create_supabase_client("https://test.supabase.co", "key")

    assert first is mock_create.return_value
    assert mock_create.call_count == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_put_listing_upserts_on_uri(store, mock_client):
    """Test listing writes upsert by URI."""
    document = {"uri": "at://did:plc:abc/c/1", "author": {"did": "did:plc:abc"}}

    await store.put_listing(document["uri"], document)

    mock_client.table.assert_called_with("listings")
    mock_client.table.return_value.upsert.assert_called_once_with(
        {"uri": document["uri"], "did": "did:plc:abc", "document": document},
        on_conflict="uri",
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_put_listing_failure(store, mock_client):
    """Test client exceptions become StorageWriteError."""
    mock_client.table.return_value.execute.side_effect = Exception("connection reset")

    with pytest.raises(StorageWriteError, match="connection reset"):
        await store.put_listing("at://did:plc:abc/c/1", {})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_listing(store, mock_client):
    """Test lookups return the stored document or None."""
    query = mock_client.table.return_value
    query.execute.return_value = MagicMock(data=[{"document": {"uri": "at://x/c/1"}}])

    assert await store.get_listing("at://x/c/1") == {"uri": "at://x/c/1"}
    query.eq.assert_called_with("uri", "at://x/c/1")

    query.execute.return_value = MagicMock(data=[])
    assert await store.get_listing("at://x/c/2") is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_listings_pages_through_table(store, mock_client):
    """Test the scan keeps reading until a short page."""
    query = mock_client.table.return_value
    full_page = MagicMock(data=[{"document": {"uri": f"at://x/c/{i}"}} for i in range(SCAN_PAGE_SIZE)])
    last_page = MagicMock(data=[{"document": {"uri": "at://x/c/last"}}])
    query.execute.side_effect = [full_page, last_page]

    documents = await store.list_listings()

    assert len(documents) == SCAN_PAGE_SIZE + 1
    assert documents[-1] == {"uri": "at://x/c/last"}
    query.range.assert_any_call(0, SCAN_PAGE_SIZE - 1)
    query.range.assert_any_call(SCAN_PAGE_SIZE, 2 * SCAN_PAGE_SIZE - 1)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_listings_malformed_row(store, mock_client):
    """Test a row without a JSON object document fails the read."""
    mock_client.table.return_value.execute.return_value = MagicMock(data=[{"document": "oops"}])

    with pytest.raises(StorageReadError, match="Malformed"):
        await store.list_listings()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_to_index_ignores_duplicates(store, mock_client):
    """Test index writes are idempotent upserts."""
    await store.add_to_index("tag:bike", "at://x/c/1")

    mock_client.table.assert_called_with("index_entries")
    mock_client.table.return_value.upsert.assert_called_once_with(
        {"index_key": "tag:bike", "uri": "at://x/c/1"},
        on_conflict="index_key,uri",
        ignore_duplicates=True,
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_index(store, mock_client):
    """Test index reads return URIs in insertion order."""
    query = mock_client.table.return_value
    query.execute.return_value = MagicMock(data=[{"uri": "at://x/c/1"}, {"uri": "at://x/c/2"}])

    assert await store.get_index("tag:bike") == ["at://x/c/1", "at://x/c/2"]
    query.order.assert_called_with("id")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_index_failure(store, mock_client):
    """Test read failures become StorageReadError."""
    mock_client.table.return_value.execute.side_effect = Exception("timeout")

    with pytest.raises(StorageReadError):
        await store.get_index("tag:bike")
