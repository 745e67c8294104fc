"""Tests for the predicate builder."""

import pytest
from src.models.filters import FilterSpec
from src.models.listing import Listing, ListingKind
from src.services.predicates import build_predicate, matches_search
from tests.utils.factories import create_listing


@pytest.mark.unit
def test_empty_filter_accepts_everything(mixed_listings):
    """Test that absent fields contribute no constraint."""
    predicate = build_predicate(FilterSpec())

    assert all(predicate(listing) for listing in mixed_listings)
    assert build_predicate(None)(mixed_listings[0])


@pytest.mark.unit
def test_kind_filter(mixed_listings):
    """Test exact kind match."""
    predicate = build_predicate(FilterSpec(kind="rent"))

    assert sum(1 for listing in mixed_listings if predicate(listing)) == 10


@pytest.mark.unit
def test_kind_override_replaces_filter_kind():
    """Test that the context override wins over the filter's kind."""
    sale = create_listing("s", kind="sale")
    rent = create_listing("r", kind="rent")
    predicate = build_predicate(FilterSpec(kind="sale"), kind_override=ListingKind.RENT)

    assert predicate(rent)
    assert not predicate(sale)


@pytest.mark.unit
def test_price_bounds_inclusive():
    """Test inclusive min and max price."""
    predicate = build_predicate(FilterSpec(min_price=100, max_price=200))

    assert predicate(create_listing(price=100))
    assert predicate(create_listing(price=200))
    assert not predicate(create_listing(price=99))
    assert not predicate(create_listing(price=201))


@pytest.mark.unit
def test_missing_numeric_fields_count_as_zero():
    """Test that listings without price or rooms are treated as 0."""
    bare = Listing(listing_id="bare")

    assert build_predicate(FilterSpec(max_price=0))(bare)
    assert not build_predicate(FilterSpec(min_price=1))(bare)
    assert not build_predicate(FilterSpec(min_bedrooms=1))(bare)
    assert build_predicate(FilterSpec(min_bathrooms=0))(bare)


@pytest.mark.unit
def test_city_case_insensitive_substring():
    """Test city matching."""
    listing = create_listing(city="Vila Nova de Gaia")

    assert build_predicate(FilterSpec(city="nova"))(listing)
    assert build_predicate(FilterSpec(city="GAIA"))(listing)
    assert not build_predicate(FilterSpec(city="Porto"))(listing)


@pytest.mark.unit
def test_tri_state_flags():
    """Test that furnished and parking are any/true/false."""
    furnished = create_listing(furnished=True, parking=False)
    bare = create_listing(furnished=False, parking=False)

    assert build_predicate(FilterSpec(furnished=True))(furnished)
    assert not build_predicate(FilterSpec(furnished=True))(bare)
    assert build_predicate(FilterSpec(furnished=False))(bare)
    assert not build_predicate(FilterSpec(furnished=False))(furnished)
    assert build_predicate(FilterSpec(parking=False))(furnished)


@pytest.mark.unit
def test_all_present_fields_are_anded():
    """Test that every present field must hold."""
    listing = create_listing(kind="rent", price=900, bedrooms=2, city="Braga")
    filters = FilterSpec(kind="rent", max_price=1000, min_bedrooms=3, city="Braga")

    assert not build_predicate(filters)(listing)
    assert build_predicate(filters.model_copy(update={"min_bedrooms": 2}))(listing)


@pytest.mark.unit
def test_matches_search():
    """Test free-text search over title, description and city."""
    listing = create_listing(title="Loft with terrace", description="Quiet street", city="Coimbra")

    assert matches_search(listing, "TERRACE")
    assert matches_search(listing, "quiet")
    assert matches_search(listing, "coim")
    assert matches_search(listing, "   ")
    assert not matches_search(listing, "pool")
