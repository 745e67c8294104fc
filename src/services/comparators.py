"""Comparator factory - total orders over listings for a SortSpec."""

from typing import Callable, Iterable, List, Optional

from src.models.filters import SortKey, SortSpec
from src.models.listing import Listing

# Listings without a creation time sort as the oldest possible value
OLDEST = float("-inf")


def _created_key(listing: Listing) -> float:
    if listing.created_at is None:
        return OLDEST
    return listing.created_at.timestamp()


def _price_key(listing: Listing) -> float:
    return listing.price or 0.0


def sort_key_for(sort: Optional[SortSpec]) -> Callable[[Listing], float]:
    """Key function for ``sort``'s key; direction is applied by the sort."""
    sort = sort or SortSpec()
    if sort.key == SortKey.PRICE:
        return _price_key
    return _created_key


def comparator_for(sort: Optional[SortSpec]) -> Callable[[Listing, Listing], int]:
    """Three-way comparator (-1/0/1) honoring the sort direction.

    Equal keys compare as 0 so a stable sort keeps input order.
    """
    sort = sort or SortSpec()
    key = sort_key_for(sort)
    sign = -1 if sort.descending else 1

    def compare(a: Listing, b: Listing) -> int:
        ka, kb = key(a), key(b)
        if ka == kb:
            return 0
        return sign * (-1 if ka < kb else 1)

    return compare


def sort_listings(listings: Iterable[Listing], sort: Optional[SortSpec]) -> List[Listing]:
    """Stable sort; ties keep their relative input order in both directions."""
    sort = sort or SortSpec()
    # sorted() with reverse=True stays stable for equal keys
    return sorted(listings, key=sort_key_for(sort), reverse=sort.descending)
