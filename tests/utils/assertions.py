"""Custom assertion helpers."""

import json
from typing import Any, Dict, Iterable

from appview.models.listing import parse_timestamp
from appview.utils.http import CORS_HEADERS


def assert_valid_response(response: Dict[str, Any], expected_status: int = 200) -> Any:
    """Assert a function response is well formed and return its decoded body."""
    assert 'statusCode' in response
    assert response['statusCode'] == expected_status
    assert 'headers' in response
    for name, value in CORS_HEADERS.items():
        assert response['headers'][name] == value

    try:
        return json.loads(response['body'])
    except json.JSONDecodeError:
        assert False, "Response body is not valid JSON"


def assert_newest_first(listings: Iterable[Any]) -> None:
    """Assert listing views (models or JSON dicts) are ordered by createdAt descending."""
    stamps = []
    for listing in listings:
        if isinstance(listing, dict):
            stamps.append(parse_timestamp(listing["record"]["createdAt"]))
        else:
            stamps.append(listing.record.created_at_dt())
    assert stamps == sorted(stamps, reverse=True)
