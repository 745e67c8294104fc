"""Filter, sort and page window models for listing discovery."""

from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.models.listing import ListingKind, ListingStatus
from src.utils.config import DiscoveryConfig
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}
_ANY_VALUES = {"", "any", "all", "null", "none"}


def _lenient_number(field: str, value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "")
    if text.lower() in _ANY_VALUES:
        return None
    try:
        return float(text)
    except ValueError:
        logger.debug("Malformed filter value defaulted to absent", filter_field=field, raw_value=str(value)[:50])
        return None


def _lenient_count(field: str, value: Any) -> Optional[int]:
    number = _lenient_number(field, value)
    if number is None:
        return None
    if number < 0:
        logger.debug("Negative filter minimum defaulted to absent", filter_field=field, raw_value=number)
        return None
    return int(number)


def _lenient_flag(field: str, value: Any) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _ANY_VALUES:
        return None
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    logger.debug("Malformed filter flag defaulted to absent", filter_field=field, raw_value=text[:50])
    return None


def _lenient_enum(enum_cls, field: str, value: Any):
    if value is None or isinstance(value, enum_cls):
        return value
    text = str(value).strip().lower()
    if text in _ANY_VALUES:
        return None
    try:
        return enum_cls(text)
    except ValueError:
        logger.debug("Unknown filter choice defaulted to absent", filter_field=field, raw_value=text[:50])
        return None


class FilterSpec(BaseModel):
    """Sparse set of optional listing predicates. Absent means no constraint."""
    model_config = ConfigDict(frozen=True)

    kind: Optional[ListingKind] = None
    status: Optional[ListingStatus] = None
    city: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_bedrooms: Optional[int] = None
    min_bathrooms: Optional[int] = None
    furnished: Optional[bool] = Field(None, description="None = any")
    parking: Optional[bool] = Field(None, description="None = any")

    @field_validator("kind", mode="before")
    @classmethod
    def _parse_kind(cls, value: Any) -> Any:
        return _lenient_enum(ListingKind, "kind", value)

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> Any:
        return _lenient_enum(ListingStatus, "status", value)

    @field_validator("city", mode="before")
    @classmethod
    def _parse_city(cls, value: Any) -> Any:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("min_price", "max_price", mode="before")
    @classmethod
    def _parse_price(cls, value: Any, info) -> Any:
        return _lenient_number(info.field_name, value)

    @field_validator("min_bedrooms", "min_bathrooms", mode="before")
    @classmethod
    def _parse_minimum(cls, value: Any, info) -> Any:
        return _lenient_count(info.field_name, value)

    @field_validator("furnished", "parking", mode="before")
    @classmethod
    def _parse_flag(cls, value: Any, info) -> Any:
        return _lenient_flag(info.field_name, value)

    @classmethod
    def from_params(cls, params: Optional[Mapping[str, Any]]) -> "FilterSpec":
        """Build a FilterSpec from raw query/form parameters.

        Accepts the browse page's parameter names (``type``, ``minPrice``,
        ``bedrooms``...) as well as the field names.
        """
        params = params or {}
        aliases = {
            "kind": ("kind", "type", "listingType"),
            "status": ("status",),
            "city": ("city",),
            "min_price": ("min_price", "minPrice"),
            "max_price": ("max_price", "maxPrice"),
            "min_bedrooms": ("min_bedrooms", "minBedrooms", "bedrooms"),
            "min_bathrooms": ("min_bathrooms", "minBathrooms", "bathrooms"),
            "furnished": ("furnished",),
            "parking": ("parking",),
        }
        values = {}
        for field, names in aliases.items():
            for name in names:
                if name in params:
                    values[field] = params[name]
                    break
        return cls(**values)

    def with_kind(self, kind: Optional[ListingKind]) -> "FilterSpec":
        """Copy with the kind constraint replaced."""
        return self.model_copy(update={"kind": kind})

    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())


class SortKey(str, Enum):
    CREATED_AT = "created_at"
    PRICE = "price"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


SORT_OPTIONS = {
    "newest": (SortKey.CREATED_AT, SortDirection.DESC),
    "oldest": (SortKey.CREATED_AT, SortDirection.ASC),
    "price-low": (SortKey.PRICE, SortDirection.ASC),
    "price-high": (SortKey.PRICE, SortDirection.DESC),
}


class SortSpec(BaseModel):
    """Sort key and direction."""
    model_config = ConfigDict(frozen=True)

    key: SortKey = SortKey.CREATED_AT
    direction: SortDirection = SortDirection.DESC

    @classmethod
    def from_option(cls, option: Optional[str]) -> "SortSpec":
        """Map a UI sort option name; unknown names mean newest first."""
        key, direction = SORT_OPTIONS.get((option or "").strip().lower(), SORT_OPTIONS["newest"])
        return cls(key=key, direction=direction)

    @property
    def descending(self) -> bool:
        return self.direction == SortDirection.DESC


class PageWindow(BaseModel):
    """Fixed page size plus a count of items already shown."""
    model_config = ConfigDict(frozen=True)

    page_size: int = Field(default_factory=lambda: DiscoveryConfig.PAGE_SIZE, gt=0)
    shown: int = Field(default=0, ge=0)

    @classmethod
    def first(cls, page_size: Optional[int] = None) -> "PageWindow":
        """Window showing the first page."""
        size = page_size or DiscoveryConfig.PAGE_SIZE
        return cls(page_size=size, shown=size)

    def next(self) -> "PageWindow":
        """Extend by one page; never shrinks."""
        return self.model_copy(update={"shown": self.shown + self.page_size})

    def opened(self) -> "PageWindow":
        """A window that has not shown anything yet opens on its first page."""
        return self.next() if self.shown == 0 else self

    def reset(self) -> "PageWindow":
        """Cursor back to zero for a new filter or sort epoch."""
        return self.model_copy(update={"shown": 0})
