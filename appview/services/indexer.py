"""Listing indexer - persist a new listing and fan it out to secondary indexes."""

import asyncio
import re
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from appview.models.listing import Author, ListingRecord, ListingView
from appview.models.query import IndexResult
from appview.services.catalog_store import (
    CatalogStore,
    bounded,
    category_index_key,
    location_index_key,
    tag_index_key,
    user_index_key,
)
from appview.utils.errors import StorageWriteError, ValidationError
from appview.utils.settings import AppViewConfig
from appview.utils.logging import (
    get_structured_logger,
    mask_did,
    sanitize_listing_text,
    timed,
)

logger = get_structured_logger(__name__)

AT_URI_PATTERN = re.compile(r"^at://[^/\s]+/[^/\s]+/[^/\s]+$")


def validate_at_uri(uri: Any) -> str:
    """Return ``uri`` if it is a well-formed ``at://<repo>/<collection>/<rkey>`` URI."""
    if not isinstance(uri, str) or not uri.strip():
        raise ValidationError("Missing required field: uri")
    uri = uri.strip()
    if not AT_URI_PATTERN.match(uri):
        raise ValidationError(f"Malformed listing URI: {uri}")
    return uri


def _format_validation_error(error: PydanticValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}" if location else item.get("msg", ""))
    return "; ".join(parts)


def parse_listing(listing: Any) -> ListingRecord:
    """Validate an incoming listing payload."""
    if not isinstance(listing, dict) or not listing:
        raise ValidationError("Missing required field: listing")
    title = listing.get("title")
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Listing title is required")
    try:
        return ListingRecord.model_validate(listing)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid listing: {_format_validation_error(e)}") from e


def parse_author(author: Any) -> Author:
    """Validate an incoming author snapshot."""
    if not isinstance(author, dict) or not author:
        raise ValidationError("Missing required field: author")
    did = author.get("did")
    if not isinstance(did, str) or not did.strip():
        raise ValidationError("Author did is required")
    try:
        return Author.model_validate(author)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid author: {_format_validation_error(e)}") from e


def location_tokens(record: ListingRecord) -> list[str]:
    """Lower-cased ZIP, city and state tokens, de-duplicated in that order."""
    if record.location is None:
        return []
    tokens = []
    for part in (record.location.zip_code, record.location.city, record.location.state):
        token = (part or "").strip().lower()
        if token and token not in tokens:
            tokens.append(token)
    return tokens


def index_keys_for(view: ListingView) -> list[str]:
    """Every secondary index key a listing belongs to."""
    record = view.record
    keys = []
    if record.category:
        keys.append(category_index_key(record.category))
    keys.extend(location_index_key(token) for token in location_tokens(record))
    keys.extend(tag_index_key(tag) for tag in record.tags)
    keys.append(user_index_key(view.author.did))
    # dict.fromkeys keeps first occurrence order
    return list(dict.fromkeys(keys))


class ListingIndexer:
    """Writes the primary record, then fans out to every index independently."""

    def __init__(self, store: CatalogStore, timeout: Optional[float] = None):
        self.store = store
        self.timeout = timeout if timeout is not None else AppViewConfig.STORAGE_TIMEOUT_SECONDS

    @timed("index listing", logger=logger)
    async def index_listing(
        self,
        uri: Any,
        listing: Any,
        author: Any,
        cid: Optional[str] = None,
    ) -> IndexResult:
        """
        Index a newly created listing.

        Raises ValidationError before any write if the input is incomplete and
        StorageWriteError if the primary record cannot be written. Index write
        failures are reported in the result, never raised.
        """
        uri = validate_at_uri(uri)
        record = parse_listing(listing)
        author_snapshot = parse_author(author)

        view = ListingView(
            uri=uri,
            cid=cid,
            author=author_snapshot,
            record=record,
            indexed_at=datetime.now(timezone.utc).isoformat(),
        )

        await bounded(
            self.store.put_listing(uri, view.to_json()),
            self.timeout,
            f"write listing {uri}",
            StorageWriteError,
        )

        logger.info(
            "Stored listing record",
            uri=uri,
            author_did=mask_did(author_snapshot.did),
            title=sanitize_listing_text(record.title),
            category=record.category,
        )

        keys = index_keys_for(view)
        results = await asyncio.gather(
            *(self._add_to_index(key, uri) for key in keys),
            return_exceptions=True,
        )

        failed = []
        for key, result in zip(keys, results):
            if isinstance(result, BaseException):
                failed.append(key)
                logger.warning(
                    "Index write failed",
                    uri=uri,
                    index_key=key,
                    error=str(result),
                )

        logger.info(
            "Indexed listing",
            uri=uri,
            index_count=len(keys),
            failed_index_count=len(failed),
        )

        return IndexResult(uri=uri, index_keys=keys, failed_indexes=failed)

    async def _add_to_index(self, index_key: str, uri: str) -> None:
        await bounded(
            self.store.add_to_index(index_key, uri),
            self.timeout,
            f"add {uri} to {index_key}",
            StorageWriteError,
        )
