"""Error handling utilities."""

from typing import Optional


class EstateCoreError(Exception):
    """Base exception for the discovery core."""
    pass


class StoreError(EstateCoreError):
    """Managed store operation error."""
    pass


class PermissionDeniedError(StoreError):
    """Store rejected the query or write for the current credentials."""
    pass


class IndexMissingError(StoreError):
    """Store cannot serve the ordered/filtered query (missing index or precondition)."""
    pass


class UnknownStoreError(StoreError):
    """Any other store failure."""
    pass


class PersistError(StoreError):
    """Write to the store failed."""
    pass


class WorkflowError(EstateCoreError):
    """Service request lifecycle error."""
    pass


class InvalidTransitionError(WorkflowError):
    """Requested status change is not allowed from the current status."""

    def __init__(self, current: str, requested: str, action: Optional[str] = None):
        self.current = current
        self.requested = requested
        self.action = action
        super().__init__(f"Cannot move request from {current} to {requested}")


class UnauthorizedError(WorkflowError):
    """Acting party is not allowed to perform the action."""

    def __init__(self, actor_id: Optional[str], action: str, reason: str = ""):
        self.actor_id = actor_id
        self.action = action
        self.reason = reason
        message = f"Actor is not allowed to {action} this request"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class RequestNotFoundError(WorkflowError):
    """Service request does not exist."""
    pass


class StaleTransitionError(WorkflowError):
    """Request status changed between read and write."""
    pass


class NotificationDeliveryError(EstateCoreError):
    """Notification sink failed to deliver an event."""
    pass
