"""In-memory query engine - filter, search, sort and page a listing snapshot."""

from typing import Callable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from src.models.filters import FilterSpec, PageWindow, SortSpec
from src.models.listing import Listing, ListingKind
from src.services.comparators import sort_listings
from src.services.predicates import build_predicate, matches_search
from src.utils.config import DiscoveryConfig
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

SnapshotProvider = Callable[[], Sequence[Listing]]


class QueryResult(BaseModel):
    """One page of results."""
    model_config = ConfigDict(frozen=True)

    items: Tuple[Listing, ...]
    has_more: bool
    total: int
    window: PageWindow


def filter_and_sort(
    collection: Sequence[Listing],
    filters: Optional[FilterSpec],
    sort: Optional[SortSpec],
    search_term: str = "",
    kind_override: Optional[ListingKind] = None,
) -> List[Listing]:
    """Steps 1-4 of a query: kind override, search, predicate, stable sort."""
    filtered = list(collection)

    if kind_override is not None:
        filtered = [listing for listing in filtered if listing.kind == kind_override]

    if search_term and search_term.strip():
        filtered = [listing for listing in filtered if matches_search(listing, search_term)]

    predicate = build_predicate(filters, kind_override=kind_override)
    filtered = [listing for listing in filtered if predicate(listing)]

    return sort_listings(filtered, sort)


def execute_query(
    collection: Sequence[Listing],
    filters: Optional[FilterSpec],
    sort: Optional[SortSpec],
    window: PageWindow,
    search_term: str = "",
    kind_override: Optional[ListingKind] = None,
) -> QueryResult:
    """
    Run the full query pipeline against a materialized snapshot.

    Pure: the collection is never mutated and identical inputs give an
    identical result. Items are ``[0, window.shown)`` of the ordered,
    filtered sequence.
    """
    ordered = filter_and_sort(collection, filters, sort, search_term, kind_override)
    items = tuple(ordered[:window.shown])
    return QueryResult(
        items=items,
        has_more=len(ordered) > window.shown,
        total=len(ordered),
        window=window,
    )


class ListingQueryEngine:
    """Caller-facing query API: ``query()`` then any number of ``load_more()``."""

    def __init__(
        self,
        snapshot_provider: SnapshotProvider,
        page_size: Optional[int] = None,
        kind_override: Optional[ListingKind] = None,
    ):
        self._snapshot = snapshot_provider
        self.page_size = page_size or DiscoveryConfig.PAGE_SIZE
        self.kind_override = kind_override
        self._filters: FilterSpec = FilterSpec()
        self._sort: SortSpec = SortSpec()
        self._search_term = ""
        self._window = PageWindow(page_size=self.page_size)
        self._last: Optional[QueryResult] = None

    @property
    def window(self) -> PageWindow:
        return self._window

    @property
    def last_result(self) -> Optional[QueryResult]:
        return self._last

    def query(
        self,
        filters: Optional[FilterSpec] = None,
        sort: Optional[SortSpec] = None,
        window: Optional[PageWindow] = None,
        search_term: str = "",
    ) -> QueryResult:
        """Run a query; a window that has shown nothing opens on its first page."""
        self._filters = filters or FilterSpec()
        self._sort = sort or SortSpec()
        self._search_term = search_term or ""
        self._window = (window or PageWindow(page_size=self.page_size)).opened()
        return self._run()

    def load_more(self) -> QueryResult:
        """Extend by one page, re-reading the (possibly updated) snapshot."""
        self._window = self._window.next()
        return self._run()

    def refresh(self) -> QueryResult:
        """Re-run the current query without moving the cursor."""
        return self._run()

    def _run(self) -> QueryResult:
        collection = self._snapshot()
        result = execute_query(
            collection,
            self._filters,
            self._sort,
            self._window,
            search_term=self._search_term,
            kind_override=self.kind_override,
        )
        logger.debug(
            "Listing query executed",
            collection_size=len(collection),
            matched=result.total,
            shown=len(result.items),
            has_more=result.has_more,
            kind_override=self.kind_override.value if self.kind_override else None,
        )
        self._last = result
        return result


class BrowseSession:
    """
    Browse page state with explicit draft and applied filters.

    Edits go to the draft; nothing reaches the query until ``apply()`` copies
    the whole draft (filters and search term) across and resets the cursor.
    In a context with a kind override the override always wins, and the
    draft reflects it so the filter panel never shows a choice that is
    silently ignored.
    """

    def __init__(
        self,
        snapshot_provider: SnapshotProvider,
        page_size: Optional[int] = None,
        kind_override: Optional[ListingKind] = None,
        initial_filters: Optional[FilterSpec] = None,
        initial_search: str = "",
        sort: Optional[SortSpec] = None,
    ):
        self.engine = ListingQueryEngine(snapshot_provider, page_size, kind_override)
        self.kind_override = kind_override
        start = self._pin(initial_filters or FilterSpec())
        self.draft_filters: FilterSpec = start
        self.applied_filters: FilterSpec = start
        self.draft_search = initial_search or ""
        self.applied_search = self.draft_search
        self.sort: SortSpec = sort or SortSpec()

    def _pin(self, filters: FilterSpec) -> FilterSpec:
        if self.kind_override is not None:
            return filters.with_kind(self.kind_override)
        return filters

    def update_draft(self, **changes) -> FilterSpec:
        """Edit draft filter fields; applied filters are untouched."""
        merged = {**self.draft_filters.model_dump(), **changes}
        self.draft_filters = self._pin(FilterSpec(**merged))
        return self.draft_filters

    def set_search(self, term: str) -> None:
        self.draft_search = term or ""

    @property
    def has_pending_changes(self) -> bool:
        return self.draft_filters != self.applied_filters or self.draft_search != self.applied_search

    def apply(self) -> QueryResult:
        """Copy the draft to the applied state and start a new page epoch."""
        self.applied_filters = self.draft_filters
        self.applied_search = self.draft_search
        return self.results(reset=True)

    def clear(self) -> QueryResult:
        """Drop every filter and the search term from both draft and applied state."""
        self.draft_filters = self.applied_filters = self._pin(FilterSpec())
        self.draft_search = self.applied_search = ""
        return self.results(reset=True)

    def set_sort(self, sort: SortSpec) -> QueryResult:
        self.sort = sort
        return self.results(reset=True)

    def results(self, reset: bool = False) -> QueryResult:
        """Current page; ``reset`` restarts at the first page."""
        window = self.engine.window
        if reset:
            window = window.reset()
        return self.engine.query(self.applied_filters, self.sort, window, self.applied_search)

    def load_more(self) -> QueryResult:
        return self.engine.load_more()
