"""Predicate builder - turn a sparse FilterSpec into a listing predicate."""

from typing import Callable, List, Optional

from src.models.filters import FilterSpec
from src.models.listing import Listing, ListingKind

ListingPredicate = Callable[[Listing], bool]


def _always(_: Listing) -> bool:
    return True


def build_predicate(
    filters: Optional[FilterSpec],
    kind_override: Optional[ListingKind] = None,
) -> ListingPredicate:
    """
    Build a predicate that ANDs every present field of ``filters``.

    Absent fields contribute no constraint. ``kind_override`` replaces the
    filter's kind (rentals-only views force ``rent``). Missing price,
    bedrooms and bathrooms on a listing count as 0.
    """
    filters = filters or FilterSpec()
    kind = kind_override or filters.kind
    checks: List[ListingPredicate] = []

    if kind is not None:
        checks.append(lambda listing: listing.kind == kind)

    if filters.status is not None:
        status = filters.status
        checks.append(lambda listing: listing.status == status)

    if filters.city:
        city = filters.city.lower()
        checks.append(lambda listing: city in (listing.city or "").lower())

    if filters.min_price is not None:
        min_price = filters.min_price
        checks.append(lambda listing: (listing.price or 0) >= min_price)

    if filters.max_price is not None:
        max_price = filters.max_price
        checks.append(lambda listing: (listing.price or 0) <= max_price)

    if filters.min_bedrooms is not None:
        min_bedrooms = filters.min_bedrooms
        checks.append(lambda listing: (listing.bedrooms or 0) >= min_bedrooms)

    if filters.min_bathrooms is not None:
        min_bathrooms = filters.min_bathrooms
        checks.append(lambda listing: (listing.bathrooms or 0) >= min_bathrooms)

    if filters.furnished is not None:
        furnished = filters.furnished
        checks.append(lambda listing: listing.furnished is furnished)

    if filters.parking is not None:
        parking = filters.parking
        checks.append(lambda listing: listing.parking is parking)

    if not checks:
        return _always

    def predicate(listing: Listing) -> bool:
        return all(check(listing) for check in checks)

    return predicate


def matches_search(listing: Listing, term: Optional[str]) -> bool:
    """Case-insensitive substring match on title, description or city."""
    if not term or not term.strip():
        return True
    needle = term.strip().lower()
    return any(
        needle in (field or "").lower()
        for field in (listing.title, listing.description, listing.city)
    )
