"""Listing-created notification endpoint: index a new listing."""

from appview.services.catalog_store import create_catalog_store
from appview.services.indexer import ListingIndexer
from appview.utils.errors import StorageError, ValidationError
from appview.utils.http import (
    json_response,
    parse_json_body,
    preflight_response,
    request_correlation_id,
    request_method,
    run_async,
)
from appview.utils.logging import correlation_context, get_structured_logger, setup_logging

setup_logging()
logger = get_structured_logger(__name__)


def handler(request):
    """
    Index a listing created in an author's repository.

    Body: {"uri": str, "listing": object, "author": {"did", "handle", ...}, "cid"?: str}
    """
    method = request_method(request)
    if method == "OPTIONS":
        return preflight_response()
    if method != "POST":
        return json_response(405, {"error": "Method not allowed"})

    with correlation_context(request_correlation_id(request)):
        try:
            body = parse_json_body(request)
            indexer = ListingIndexer(create_catalog_store())
            result = run_async(indexer.index_listing(
                body.get("uri"),
                body.get("listing"),
                body.get("author"),
                cid=body.get("cid"),
            ))
        except ValidationError as e:
            logger.info("Rejected listing notification", error=str(e))
            return json_response(400, {"error": str(e)})
        except StorageError as e:
            logger.error("Error indexing listing", error=str(e), exc_info=True)
            return json_response(500, {"error": "Failed to index listing"})

        response = {
            "success": True,
            "message": "Listing indexed successfully",
            "uri": result.uri,
        }
        if result.failed_indexes:
            response["failedIndexes"] = result.failed_indexes
        return json_response(200, response)
