"""AppView configuration read from environment variables."""

import os


class AppViewConfig:
    """Centralized service configuration."""

    # Catalog storage
    CATALOG_BACKEND = os.environ.get("CATALOG_BACKEND", "supabase").lower()
    SUPABASE_URL = os.environ.get("SUPABASE_URL")
    SUPABASE_SERVICE_ROLE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
    LISTINGS_TABLE = os.environ.get("LISTINGS_TABLE", "marketplace_listings")
    INDEX_TABLE = os.environ.get("INDEX_TABLE", "marketplace_index_entries")
    STORAGE_TIMEOUT_SECONDS = float(os.environ.get("STORAGE_TIMEOUT_SECONDS", "10"))

    # Query defaults
    DEFAULT_PAGE_LIMIT = int(os.environ.get("DEFAULT_PAGE_LIMIT", "20"))

    # AT Protocol
    LISTING_COLLECTION = os.environ.get("LISTING_COLLECTION", "com.marketplace.listing")
    PDS_SERVICE_URL = os.environ.get("PDS_SERVICE_URL", "https://bsky.social")
    PROFILE_SERVICE_URL = os.environ.get("PROFILE_SERVICE_URL", "https://public.api.bsky.app")
    PLC_DIRECTORY_URL = os.environ.get("PLC_DIRECTORY_URL", "https://plc.directory")
    REPO_FETCH_LIMIT = int(os.environ.get("REPO_FETCH_LIMIT", "100"))
    REPO_FETCH_TIMEOUT_SECONDS = float(os.environ.get("REPO_FETCH_TIMEOUT_SECONDS", "10"))

    # Client side
    APPVIEW_URL = os.environ.get("APPVIEW_URL", "")
    KNOWN_USERS_PATH = os.environ.get(
        "KNOWN_USERS_PATH",
        os.path.join(os.path.expanduser("~"), ".marketplace", "known_users.json"),
    )
