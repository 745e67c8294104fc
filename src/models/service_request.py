"""Service request models (renovation, construction and rental requests)."""

from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from src.models.listing import parse_timestamp


class RequestType(str, Enum):
    """Kind of service being requested."""
    RENOVATION = "renovation"
    CONSTRUCTION = "construction"
    RENTAL = "rental"


class RequestStatus(str, Enum):
    """Lifecycle status, stored with the values the store already uses."""
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.REJECTED, RequestStatus.COMPLETED, RequestStatus.CANCELLED)


class RequestAction(str, Enum):
    """Actions an actor can take on a request."""
    ACCEPT = "accept"
    REJECT = "reject"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"


_STATUS_ALIASES = {
    "pending": RequestStatus.PENDING,
    "accepted": RequestStatus.ACCEPTED,
    "rejected": RequestStatus.REJECTED,
    "in progress": RequestStatus.IN_PROGRESS,
    "in_progress": RequestStatus.IN_PROGRESS,
    "completed": RequestStatus.COMPLETED,
    "cancelled": RequestStatus.CANCELLED,
    "canceled": RequestStatus.CANCELLED,
}


class ServiceRequest(BaseModel):
    """A request from a requester, optionally assigned to one provider."""
    request_id: str = Field(..., description="Request ID (text)")
    request_type: RequestType = Field(default=RequestType.RENOVATION)
    requester_id: str = Field(..., description="User who created the request")
    provider_id: Optional[str] = Field(None, description="Assigned provider, exclusive")
    status: RequestStatus = Field(default=RequestStatus.PENDING)
    budget: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None
    property_id: Optional[str] = Field(None, description="Linked listing, if any")
    progress_note: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _STATUS_ALIASES.get(value.strip().lower(), value)
        return value

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _normalize_timestamps(cls, value: Any) -> Any:
        return parse_timestamp(value)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "ServiceRequest":
        """Build from a store row, accepting camelCase column names."""
        return cls(
            request_id=str(doc.get("request_id") or doc.get("id")),
            request_type=doc.get("request_type") or doc.get("requestType") or RequestType.RENOVATION,
            requester_id=doc.get("requester_id") or doc.get("userId") or doc.get("user_id"),
            provider_id=doc.get("provider_id") or doc.get("providerId"),
            status=doc.get("status") or RequestStatus.PENDING,
            budget=doc.get("budget"),
            description=doc.get("description") or doc.get("detailedDescription"),
            property_id=doc.get("property_id") or doc.get("propertyId"),
            progress_note=doc.get("progress_note") or doc.get("progressNote"),
            created_at=doc.get("created_at") or doc.get("createdAt"),
            updated_at=doc.get("updated_at") or doc.get("updatedAt"),
        )

    def to_row(self) -> dict:
        """Row shape for the service requests table."""
        return {
            "id": self.request_id,
            "request_type": self.request_type.value,
            "requester_id": self.requester_id,
            "provider_id": self.provider_id,
            "status": self.status.value,
            "budget": self.budget,
            "description": self.description,
            "property_id": self.property_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
