"""Direct lookup endpoint: one listing by URI."""

from appview.services.catalog_store import create_catalog_store
from appview.services.query_engine import QueryEngine
from appview.utils.errors import AppViewError, ValidationError
from appview.utils.http import (
    json_response,
    preflight_response,
    request_correlation_id,
    request_method,
    request_query,
    run_async,
)
from appview.utils.logging import correlation_context, get_structured_logger, setup_logging

setup_logging()
logger = get_structured_logger(__name__)


def handler(request):
    """200 with the listing, 404 when unknown, 410 when sold/expired/draft."""
    if request_method(request) == "OPTIONS":
        return preflight_response()

    with correlation_context(request_correlation_id(request)):
        try:
            uri = request_query(request).get("uri") or ""
            engine = QueryEngine(create_catalog_store())
            lookup = run_async(engine.get_listing(uri))
        except ValidationError as e:
            return json_response(400, {"error": str(e)})
        except AppViewError as e:
            logger.error("Error fetching listing", error=str(e))
            return json_response(500, {"error": "Failed to fetch listing"})

        if lookup.status == "not_found":
            return json_response(404, {"error": "Listing not found", "uri": uri})
        if lookup.status == "unavailable":
            return json_response(410, {
                "error": "Listing unavailable",
                "reason": lookup.reason,
                "uri": uri,
            })
        return json_response(200, {"listing": lookup.listing.to_json()})
