"""Tests for query and pagination models."""

import pytest
from pydantic import ValidationError
from appview.models.query import ListingFilters, ListingLookup, Pagination, split_tags


@pytest.mark.unit
def test_split_tags_trims_and_lowercases():
    """Test comma-separated tags are split, trimmed and lower-cased."""
    assert split_tags(" Bike, Cycling ,,ROAD ") == ["bike", "cycling", "road"]
    assert split_tags(["Bike,Red", "blue"]) == ["bike", "red", "blue"]
    assert split_tags(None) == []


@pytest.mark.unit
def test_filters_from_aliases():
    """Test filters accept the query parameter names."""
    filters = ListingFilters.model_validate({
        "category": "Sports",
        "minPrice": "10",
        "maxPrice": "99.5",
        "tags": "Bike,Road",
        "hasImages": "true",
    })

    assert filters.category == "Sports"
    assert filters.min_price == 10.0
    assert filters.max_price == 99.5
    assert filters.tags == ["bike", "road"]
    assert filters.has_images is True
    assert filters.has_price_bound is True


@pytest.mark.unit
def test_filters_blank_values_are_ignored():
    """Test empty strings behave like absent filters."""
    filters = ListingFilters.model_validate({"category": "", "location": " ", "minPrice": ""})

    assert filters.category is None
    assert filters.location is None
    assert filters.min_price is None
    assert filters.has_price_bound is False


@pytest.mark.unit
def test_filters_reject_non_numeric_price():
    """Test a non-numeric price bound is a validation error."""
    with pytest.raises(ValidationError):
        ListingFilters.model_validate({"minPrice": "cheap"})


@pytest.mark.unit
def test_pagination_defaults_and_clamping():
    """Test default page and clamping of negative values."""
    assert Pagination().offset == 0
    assert Pagination().limit == 20

    clamped = Pagination(offset=-5, limit=-1)
    assert clamped.offset == 0
    assert clamped.limit == 0


@pytest.mark.unit
def test_listing_lookup_available_flag():
    """Test lookup availability flag."""
    assert ListingLookup(status="available").available is True
    assert ListingLookup(status="unavailable", reason="Listing is sold").available is False
    assert ListingLookup(status="not_found").available is False
