"""Serverless request/response helpers shared by the api/ handlers."""

import asyncio
import json
from typing import Any, Coroutine, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from appview.models.query import ListingFilters, Pagination
from appview.utils.errors import ValidationError
from appview.utils.logging_config import LoggingConfig

T = TypeVar("T")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


def json_response(status_code: int, body: Any, headers: Optional[dict] = None) -> dict:
    """Build a function response with a JSON body and CORS headers."""
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json", **CORS_HEADERS, **(headers or {})},
        "body": json.dumps(body),
    }


def preflight_response() -> dict:
    return {"statusCode": 200, "headers": dict(CORS_HEADERS), "body": ""}


def request_method(request: dict) -> str:
    return str(request.get("method") or request.get("httpMethod") or "GET").upper()


def request_query(request: dict) -> dict:
    """Query parameters with multi-value entries collapsed to their last value."""
    query = request.get("query") or request.get("queryStringParameters") or {}
    return {k: (v[-1] if isinstance(v, list) and v else v) for k, v in query.items()}


def request_correlation_id(request: dict) -> Optional[str]:
    headers = request.get("headers") or {}
    wanted = LoggingConfig.LOG_CORRELATION_ID_HEADER.lower()
    for name, value in headers.items():
        if name.lower() == wanted and value:
            return str(value)
    return None


def parse_json_body(request: dict) -> dict:
    raw_body = request.get("body")
    if isinstance(raw_body, dict):
        return raw_body
    if not raw_body:
        raise ValidationError("Request body is required")
    try:
        body = json.loads(raw_body)
    except (json.JSONDecodeError, TypeError) as e:
        raise ValidationError("Request body must be valid JSON") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def parse_filters(query: dict) -> ListingFilters:
    """Build filters from query parameters; bad values raise ValidationError."""
    try:
        return ListingFilters.model_validate({
            "category": query.get("category"),
            "location": query.get("location"),
            "minPrice": query.get("minPrice"),
            "maxPrice": query.get("maxPrice"),
            "tags": query.get("tags"),
            "condition": query.get("condition"),
            "hasImages": query.get("hasImages"),
            "postedSince": query.get("postedSince"),
        })
    except PydanticValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
        raise ValidationError(f"Invalid filter value: {fields}") from e


def parse_pagination(query: dict) -> Pagination:
    params = {}
    for name in ("limit", "offset"):
        value = query.get(name)
        if value is None or str(value).strip() == "":
            continue
        try:
            params[name] = int(str(value).strip())
        except ValueError as e:
            raise ValidationError(f"Invalid {name}: {value}") from e
    return Pagination(**params)


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion from a synchronous handler."""
    return asyncio.run(coro)
