"""Notification event model."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class NotificationCategory(str, Enum):
    """Notification types understood by the notification bell."""
    SERVICE_REQUEST = "service-request"
    STATUS_UPDATE = "status-update"
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"


class NotificationEvent(BaseModel):
    """A message for one recipient, produced by a request status change."""
    recipient_id: str = Field(..., description="User who receives the notification")
    category: NotificationCategory = Field(default=NotificationCategory.STATUS_UPDATE)
    title: str = Field(..., description="Short headline")
    message: str = Field(..., description="Notification body")
    link: Optional[str] = Field(None, description="Deep link inside the app")
    request_id: Optional[str] = Field(None, description="Request that triggered the event")
    delivered: bool = False

    def to_row(self) -> dict:
        """Row shape for the notifications table."""
        return {
            "user_id": self.recipient_id,
            "title": self.title,
            "message": self.message,
            "type": self.category.value,
            "link": self.link,
            "read": False,
            "related_id": self.request_id,
        }
