"""Browse endpoint: filtered, paginated listings newest first."""

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
    """Query: category, location, minPrice, maxPrice, tags (comma-separated), limit=20, offset=0."""
    if request_method(request) == "OPTIONS":
        return preflight_response()

    with correlation_context(request_correlation_id(request)):
        try:
            query = request_query(request)
            filters = parse_filters(query)
            pagination = parse_pagination(query)
            engine = QueryEngine(create_catalog_store())
            page = run_async(engine.list_all(filters, pagination))
        except ValidationError as e:
            return json_response(400, {"error": str(e)})
        except AppViewError as e:
            logger.error("Error fetching listings", error=str(e))
            return json_response(500, {"error": "Failed to fetch listings"})

        return json_response(200, page.to_response())
