"""Search endpoint: keyword search with exact-title-first ranking."""

from appview.services.catalog_store import create_catalog_store
from appview.services.query_engine import QueryEngine
from appview.utils.errors import AppViewError, ValidationError
from appview.utils.http import (
    json_response,
    parse_filters,
    parse_pagination,
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
    """Query: q (required) plus the browse filters and paging."""
    if request_method(request) == "OPTIONS":
        return preflight_response()

    with correlation_context(request_correlation_id(request)):
        query = request_query(request)
        q = query.get("q")
        if not q or not str(q).strip():
            return json_response(400, {"error": "Search query is required"})

        try:
            filters = parse_filters(query)
            pagination = parse_pagination(query)
            engine = QueryEngine(create_catalog_store())
            page = run_async(engine.search(str(q), filters, pagination))
        except ValidationError as e:
            return json_response(400, {"error": str(e)})
        except AppViewError as e:
            logger.error("Error searching listings", error=str(e))
            return json_response(500, {"error": "Failed to search listings"})

        return json_response(200, page.to_response())
