"""Shared pytest fixtures and configuration."""

import os
import pytest
from freezegun import freeze_time

# Set test environment variables before any appview import reads them
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("CATALOG_BACKEND", "memory")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("APPVIEW_URL", "")
os.environ.setdefault("STORAGE_TIMEOUT_SECONDS", "2")
os.environ.setdefault("REPO_FETCH_TIMEOUT_SECONDS", "2")
os.environ.setdefault("LOG_FORMAT", "text")

from appview.services.catalog_store import MemoryCatalogStore  # noqa: E402
from tests.utils.factories import create_author_data, create_listing_data, create_listing_uri  # noqa: E402


@pytest.fixture
def memory_store():
    """Empty in-memory catalog."""
    return MemoryCatalogStore()


@pytest.fixture
def sample_author():
    """Sample author snapshot."""
    return {
        "did": "did:plc:ewvi7nxzyoun6zhxrhs64oiz",
        "handle": "seller.bsky.social",
        "displayName": "Sam Seller",
        "avatar": "https://cdn.bsky.app/img/avatar/plain/seller.jpg",
    }


@pytest.fixture
def sample_listing():
    """Sample listing record payload."""
    return {
        "title": "Road Bike",
        "description": "Aluminium frame, 54cm, recently serviced",
        "price": "$350",
        "category": "Sports",
        "condition": "good",
        "location": {"zipCode": "94110", "city": "San Francisco", "state": "CA"},
        "tags": ["Bike", "cycling"],
        "images": [],
        "status": "active",
        "allowMessages": True,
        "createdAt": "2024-12-01T10:00:00.000Z",
    }


@pytest.fixture
def sample_uri(sample_author):
    """Listing URI owned by the sample author."""
    return f"at://{sample_author['did']}/com.marketplace.listing/3lbikeroad01"


@pytest.fixture
def make_listing():
    """Factory fixture for listing payloads."""
    return create_listing_data


@pytest.fixture
def make_author():
    """Factory fixture for author snapshots."""
    return create_author_data


@pytest.fixture
def make_uri():
    """Factory fixture for listing URIs."""
    return create_listing_uri


@pytest.fixture
def known_users_path(tmp_path):
    """Path for a throwaway known-users cache file."""
    return str(tmp_path / "known_users.json")


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in synchronous tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time
