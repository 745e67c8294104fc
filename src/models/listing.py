"""Listing models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ListingKind(str, Enum):
    """What the listing offers."""
    SALE = "sale"
    RENT = "rent"
    WANTED = "wanted"


class ListingStatus(str, Enum):
    """Listing lifecycle status."""
    DRAFT = "draft"
    PUBLISHED = "published"
    ACTIVE = "active"
    INACTIVE = "inactive"


# Epoch values above this are milliseconds, not seconds
_MILLIS_THRESHOLD = 10_000_000_000


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Coerce the store's timestamp shapes into an aware datetime.

    Accepts datetimes, ISO-8601 strings, epoch seconds or milliseconds, and
    ``{"seconds": n, "nanoseconds": m}`` mappings. Anything else is None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        if seconds is None:
            return None
        nanos = value.get("nanoseconds", value.get("_nanoseconds")) or 0
        try:
            return datetime.fromtimestamp(float(seconds) + float(nanos) / 1e9, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) > _MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _count(value: Any) -> Optional[int]:
    number = _number(value)
    if number is None or number < 0:
        return None
    return int(number)


def _flag(value: Any) -> bool:
    """Amenity flag stored as a bool, a number or a "true"/"false" string."""
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes", "on"}
    return bool(value)


def _first(doc: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = doc.get(key)
        if value not in (None, ""):
            return value
    return None


class Listing(BaseModel):
    """Real estate listing for sale, rent, or a wanted-to-buy request."""
    model_config = ConfigDict(frozen=True, use_enum_values=False)

    listing_id: str = Field(..., description="Listing ID (opaque text)")
    kind: Optional[ListingKind] = Field(None, description="sale, rent or wanted")
    status: ListingStatus = Field(default=ListingStatus.PUBLISHED, description="Lifecycle status")
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0, description="Asking price or monthly rent")
    city: Optional[str] = None
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[int] = Field(None, ge=0)
    furnished: bool = False
    parking: bool = False
    area: Optional[float] = Field(None, ge=0, description="Floor area")
    created_at: Optional[datetime] = None
    owner_id: Optional[str] = Field(None, description="Owning user ID")

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            return value or None
        return value

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        if value is None or value == "":
            return ListingStatus.PUBLISHED
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("created_at", mode="before")
    @classmethod
    def _normalize_created_at(cls, value: Any) -> Any:
        return parse_timestamp(value)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any], doc_id: Optional[str] = None) -> "Listing":
        """Build a Listing from a raw store document.

        Documents written by different screens disagree on field names
        (``listingType`` vs ``type``, ``address.city`` vs ``city``), so each
        attribute is read from the first populated alias.
        """
        address = doc.get("address")
        city = address.get("city") if isinstance(address, Mapping) else None

        listing_id = doc_id or _first(doc, "listing_id", "id")
        if listing_id is None:
            raise ValueError("Listing document has no identifier")

        kind = _first(doc, "listingType", "listing_type", "kind", "type")
        if isinstance(kind, str) and kind.strip().lower() not in {k.value for k in ListingKind}:
            kind = None

        price = _number(doc.get("price"))
        area = _number(doc.get("area"))

        return cls(
            listing_id=str(listing_id),
            kind=kind,
            status=doc.get("status"),
            title=doc.get("title"),
            description=doc.get("description"),
            price=price if price is not None and price >= 0 else None,
            city=city or doc.get("city"),
            bedrooms=_count(doc.get("bedrooms")),
            bathrooms=_count(doc.get("bathrooms")),
            furnished=_flag(doc.get("furnished")),
            parking=_flag(doc.get("parking")),
            area=area if area is not None and area >= 0 else None,
            created_at=_first(doc, "createdAt", "created_at"),
            owner_id=_first(doc, "ownerId", "owner_id", "userId", "user_id"),
        )

    def apply_edit(self, patch: Mapping[str, Any]) -> "Listing":
        """Return a copy with ``patch`` applied; the listing kind cannot change."""
        if "kind" in patch and patch["kind"] is not None:
            requested = ListingKind(str(patch["kind"]).lower())
            if requested != self.kind:
                raise ValueError("Listing kind cannot be changed after creation")

        data = self.model_dump()
        data.update({key: value for key, value in patch.items() if key not in ("listing_id", "kind")})
        return Listing.model_validate(data)

    def toggle_active(self) -> "Listing":
        """Soft delete/restore: flip between active and inactive."""
        new_status = (
            ListingStatus.ACTIVE if self.status == ListingStatus.INACTIVE else ListingStatus.INACTIVE
        )
        return self.model_copy(update={"status": new_status})
