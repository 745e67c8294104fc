"""Live-sync models shared by collection sources and subscriptions."""

from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from src.models.filters import FilterSpec, SortSpec
from src.models.listing import ListingKind


class ChangeType(str, Enum):
    INSERT = "insert"
    MODIFY = "modify"
    REMOVE = "remove"


class ChangeEvent(BaseModel):
    """One document change delivered by the store."""
    change_type: ChangeType
    entity_id: str
    document: Dict[str, Any] = Field(default_factory=dict)


ChangeBatch = List[ChangeEvent]


class QueryDescriptor(BaseModel):
    """Logical scope of a subscription: which collection, which rows, what order."""
    model_config = ConfigDict(frozen=True)

    collection: str
    filters: FilterSpec = Field(default_factory=FilterSpec)
    sort: Optional[SortSpec] = Field(default_factory=SortSpec)
    kind_override: Optional[ListingKind] = None

    @property
    def effective_filters(self) -> FilterSpec:
        if self.kind_override is not None:
            return self.filters.with_kind(self.kind_override)
        return self.filters

    @property
    def is_fallback(self) -> bool:
        return self.sort is None and self.filters.is_empty() and self.kind_override is None

    def unordered(self) -> "QueryDescriptor":
        """Same collection with no server-side filtering or ordering."""
        return QueryDescriptor(collection=self.collection, filters=FilterSpec(), sort=None)


class CollectionSource(Protocol):
    """Remote collection that streams change batches for a descriptor.

    ``subscribe`` may raise immediately or while being iterated; errors are
    PermissionDeniedError, IndexMissingError or UnknownStoreError. The first
    batch is the initial result set (possibly empty).
    """

    def subscribe(self, descriptor: QueryDescriptor) -> AsyncIterator[ChangeBatch]:
        ...
