"""Author endpoint: one author's active listings via the author index."""

from appview.services.catalog_store import create_catalog_store
from appview.services.query_engine import QueryEngine
from appview.utils.errors import AppViewError, ValidationError
from appview.utils.http import (
    json_response,
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
    """Query: author (DID), limit=20, offset=0."""
    if request_method(request) == "OPTIONS":
        return preflight_response()

    with correlation_context(request_correlation_id(request)):
        try:
            query = request_query(request)
            pagination = parse_pagination(query)
            engine = QueryEngine(create_catalog_store())
            page = run_async(engine.list_by_author(query.get("author") or "", pagination))
        except ValidationError as e:
            return json_response(400, {"error": str(e)})
        except AppViewError as e:
            logger.error("Error fetching author listings", error=str(e))
            return json_response(500, {"error": "Failed to fetch listings"})

        return json_response(200, page.to_response())
