"""Status transition engine for service requests."""

import asyncio
import contextlib
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Tuple

from ulid import ULID

from src.models.notification import NotificationCategory, NotificationEvent
from src.models.service_request import RequestAction, RequestStatus, RequestType, ServiceRequest
from src.services.notification_dispatcher import NotificationDispatcher
from src.utils.errors import (
    InvalidTransitionError,
    UnauthorizedError,
)
from src.utils.logging import (
    get_correlation_id,
    get_structured_logger,
    log_timing,
    mask_user_id,
    sanitize_message_text,
)

logger = get_structured_logger(__name__)


TRANSITIONS: Dict[Tuple[RequestStatus, RequestAction], RequestStatus] = {
    (RequestStatus.PENDING, RequestAction.ACCEPT): RequestStatus.ACCEPTED,
    (RequestStatus.PENDING, RequestAction.REJECT): RequestStatus.REJECTED,
    (RequestStatus.PENDING, RequestAction.CANCEL): RequestStatus.CANCELLED,
    (RequestStatus.ACCEPTED, RequestAction.START): RequestStatus.IN_PROGRESS,
    (RequestStatus.ACCEPTED, RequestAction.CANCEL): RequestStatus.CANCELLED,
    (RequestStatus.IN_PROGRESS, RequestAction.COMPLETE): RequestStatus.COMPLETED,
}

# Status each action aims for, used to name the target in InvalidTransitionError
ACTION_TARGETS: Dict[RequestAction, RequestStatus] = {
    RequestAction.ACCEPT: RequestStatus.ACCEPTED,
    RequestAction.REJECT: RequestStatus.REJECTED,
    RequestAction.START: RequestStatus.IN_PROGRESS,
    RequestAction.COMPLETE: RequestStatus.COMPLETED,
    RequestAction.CANCEL: RequestStatus.CANCELLED,
}

PROVIDER_ACTIONS = {RequestAction.ACCEPT, RequestAction.REJECT, RequestAction.START, RequestAction.COMPLETE}

TYPE_LABELS = {
    RequestType.RENOVATION: "Renovation",
    RequestType.CONSTRUCTION: "Construction",
    RequestType.RENTAL: "Rental",
}

REQUEST_LINKS = {
    RequestType.RENOVATION: "/renovation/my-renovations/{request_id}",
    RequestType.CONSTRUCTION: "/construction/my-requests/{request_id}",
    RequestType.RENTAL: "/rental/booking/{request_id}",
}

PROVIDER_LINKS = {
    RequestType.RENOVATION: "/provider-renovation-panel",
    RequestType.CONSTRUCTION: "/provider-construction-panel",
    RequestType.RENTAL: "/dashboard",
}


class RequestStore(Protocol):
    """Read/write access to service requests."""

    async def get(self, request_id: str) -> ServiceRequest:
        """Raise RequestNotFoundError when missing."""
        ...

    async def persist(
        self,
        request_id: str,
        patch: Dict[str, Any],
        expected_status: Optional[RequestStatus] = None,
    ) -> None:
        """Durably apply ``patch``; StaleTransitionError if the status moved."""
        ...

    async def create(self, request: ServiceRequest) -> ServiceRequest:
        """Store a new request and return it as stored."""
        ...


def new_request_id() -> str:
    return str(ULID())


def build_submission_notifications(request: ServiceRequest) -> List[NotificationEvent]:
    """Confirmation for the requester, plus an alert for the chosen provider if any."""
    label = TYPE_LABELS.get(request.request_type, "Service")
    events = [
        NotificationEvent(
            recipient_id=request.requester_id,
            category=NotificationCategory.SERVICE_REQUEST,
            title=f"{label} Request Submitted",
            message=(
                f"Your {label.lower()} request has been submitted successfully. "
                "We'll notify you when a provider responds."
            ),
            link=REQUEST_LINKS[request.request_type].format(request_id=request.request_id),
            request_id=request.request_id,
        )
    ]
    if request.provider_id:
        events.append(NotificationEvent(
            recipient_id=request.provider_id,
            category=NotificationCategory.SERVICE_REQUEST,
            title=f"New {label} Request",
            message=f"You have received a new {label.lower()} request. Check your dashboard for details.",
            link=PROVIDER_LINKS[request.request_type],
            request_id=request.request_id,
        ))
    return events


def next_status(current: RequestStatus, action: RequestAction) -> RequestStatus:
    """Target status for ``action`` or InvalidTransitionError."""
    target = TRANSITIONS.get((current, action))
    if target is None:
        raise InvalidTransitionError(current.value, ACTION_TARGETS[action].value, action.value)
    return target


def authorize(request: ServiceRequest, action: RequestAction, acting_id: str) -> None:
    """Acting-party check for a transition that is already known to be legal."""
    if not acting_id:
        raise UnauthorizedError(acting_id, action.value, "no acting identity")

    if action in PROVIDER_ACTIONS:
        if acting_id == request.requester_id:
            raise UnauthorizedError(acting_id, action.value, "requester cannot act as provider")
        if request.provider_id is None:
            # Unassigned pending request: the actor claims it with this transition
            if request.status == RequestStatus.PENDING:
                return
            raise UnauthorizedError(acting_id, action.value, "request has no assigned provider")
        if acting_id != request.provider_id:
            raise UnauthorizedError(acting_id, action.value, "not the assigned provider")
        return

    # cancel
    if request.status == RequestStatus.PENDING:
        if acting_id != request.requester_id:
            raise UnauthorizedError(acting_id, action.value, "only the requester can withdraw a pending request")
        return
    if request.provider_id is None or acting_id != request.provider_id:
        raise UnauthorizedError(acting_id, action.value, "only the assigned provider can cancel an accepted request")


def build_notification(
    request: ServiceRequest,
    action: RequestAction,
    new_status: RequestStatus,
    acting_id: str,
    note: Optional[str] = None,
) -> NotificationEvent:
    """The single notification for a transition, addressed to the counterparty."""
    label = TYPE_LABELS.get(request.request_type, "Service")
    request_link = REQUEST_LINKS[request.request_type].format(request_id=request.request_id)
    what = f"{label.lower()} request"

    if action == RequestAction.CANCEL and acting_id == request.requester_id:
        if request.provider_id:
            return NotificationEvent(
                recipient_id=request.provider_id,
                category=NotificationCategory.STATUS_UPDATE,
                title=f"{label} Request Cancelled",
                message=f"The requester has withdrawn their {what}.",
                link=PROVIDER_LINKS[request.request_type],
                request_id=request.request_id,
            )
        # No counterparty yet: confirm the withdrawal to the requester
        return NotificationEvent(
            recipient_id=request.requester_id,
            category=NotificationCategory.INFO,
            title=f"{label} Request Cancelled",
            message=f"Your {what} has been withdrawn.",
            link=request_link,
            request_id=request.request_id,
        )

    templates = {
        RequestStatus.ACCEPTED: (
            NotificationCategory.SUCCESS,
            f"{label} Request Accepted",
            f"Your {what} has been accepted! You can now chat with the provider.",
        ),
        RequestStatus.REJECTED: (
            NotificationCategory.INFO,
            f"{label} Request Rejected",
            f"Your {what} has been rejected.",
        ),
        RequestStatus.IN_PROGRESS: (
            NotificationCategory.INFO,
            f"{label} Project Started",
            f"Your {label.lower()} project is now in progress.",
        ),
        RequestStatus.COMPLETED: (
            NotificationCategory.SUCCESS,
            f"{label} Project Completed",
            f"Your {label.lower()} project has been marked as completed.",
        ),
        RequestStatus.CANCELLED: (
            NotificationCategory.WARNING,
            f"{label} Request Cancelled",
            f"The provider has cancelled your {what}.",
        ),
    }
    category, title, message = templates[new_status]
    if note and new_status == RequestStatus.IN_PROGRESS:
        message = f"{message} {note}"

    return NotificationEvent(
        recipient_id=request.requester_id,
        category=category,
        title=title,
        message=message,
        link=request_link,
        request_id=request.request_id,
    )


class StatusTransitionEngine:
    """
    Create service requests and validate and apply their transitions.

    The new status is persisted before the notification is dispatched, and
    the notification is fire-and-forget: delivery failures never undo or
    fail the transition.
    """

    def __init__(self, store: RequestStore, dispatcher: NotificationDispatcher):
        self.store = store
        self.dispatcher = dispatcher
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def _serialized(self, request_id: str):
        """Hold the per-request lock; it is dropped once nobody holds or waits on it."""
        lock = self._locks.setdefault(request_id, asyncio.Lock())
        self._lock_users[request_id] = self._lock_users.get(request_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[request_id] -= 1
            if not self._lock_users[request_id]:
                del self._lock_users[request_id]
                del self._locks[request_id]

    @property
    def active_locks(self) -> int:
        return len(self._locks)

    async def transition(
        self,
        request_id: str,
        action: RequestAction | str,
        acting_id: str,
        note: Optional[str] = None,
    ) -> RequestStatus:
        """
        Apply ``action`` to the request as ``acting_id``.

        Returns the new status. Raises InvalidTransitionError for illegal
        moves, UnauthorizedError for the wrong actor, RequestNotFoundError,
        StaleTransitionError if another writer got there first, or a
        StoreError if the write fails. State is unchanged on any error.
        """
        try:
            action = RequestAction(action)
        except ValueError:
            raise InvalidTransitionError("unknown", str(action), str(action)) from None

        correlation_id = get_correlation_id()
        async with self._serialized(request_id):
            request = await self.store.get(request_id)
            new_status = next_status(request.status, action)
            authorize(request, action, acting_id)

            patch: Dict[str, Any] = {
                "status": new_status.value,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            }
            if action in PROVIDER_ACTIONS and request.provider_id is None:
                patch["provider_id"] = acting_id
            if note:
                patch["progress_note"] = note

            with log_timing(
                "persist_request_transition",
                logger=logger,
                request_id=request_id,
                action=action.value,
            ):
                await self.store.persist(request_id, patch, expected_status=request.status)

        logger.info(
            "Service request transitioned",
            correlation_id=correlation_id,
            request_id=request_id,
            request_type=request.request_type.value,
            action=action.value,
            from_status=request.status.value,
            to_status=new_status.value,
            acting_id=mask_user_id(acting_id),
            note=sanitize_message_text(note),
        )

        assigned = request.model_copy(
            update={"provider_id": patch.get("provider_id", request.provider_id)}
        )
        event = build_notification(assigned, action, new_status, acting_id, note)
        self.dispatcher.dispatch(event)
        return new_status

    async def create(
        self,
        requester_id: str,
        request_type: RequestType | str = RequestType.RENOVATION,
        provider_id: Optional[str] = None,
        budget: Optional[float] = None,
        description: Optional[str] = None,
        property_id: Optional[str] = None,
    ) -> ServiceRequest:
        """
        Submit a new request on behalf of ``requester_id``.

        The request starts Pending. It is stored first, then the requester
        gets a confirmation and a pre-selected provider gets an alert; both
        are fire-and-forget like transition notifications.
        """
        if not requester_id:
            raise UnauthorizedError(requester_id, "create", "no acting identity")
        if provider_id and provider_id == requester_id:
            raise UnauthorizedError(requester_id, "create", "requester cannot be their own provider")

        now = datetime.now(timezone.utc)
        request = ServiceRequest(
            request_id=new_request_id(),
            request_type=request_type,
            requester_id=requester_id,
            provider_id=provider_id or None,
            status=RequestStatus.PENDING,
            budget=budget,
            description=description,
            property_id=property_id,
            created_at=now,
            updated_at=now,
        )

        with log_timing(
            "persist_request_create",
            logger=logger,
            request_id=request.request_id,
        ):
            stored = await self.store.create(request)

        logger.info(
            "Service request created",
            correlation_id=get_correlation_id(),
            request_id=stored.request_id,
            request_type=stored.request_type.value,
            requester_id=mask_user_id(requester_id),
            provider_assigned=stored.provider_id is not None,
        )

        for event in build_submission_notifications(stored):
            self.dispatcher.dispatch(event)
        return stored
