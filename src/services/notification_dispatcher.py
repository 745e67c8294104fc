"""Notification dispatcher - best-effort delivery of request notifications."""

import asyncio
from typing import Optional, Protocol, Set

from src.models.notification import NotificationEvent
from src.utils.errors import NotificationDeliveryError
from src.utils.logging import (
    get_structured_logger,
    log_timing,
    mask_user_id,
    sanitize_message_text,
)

logger = get_structured_logger(__name__)


class NotificationSink(Protocol):
    """Where notifications end up (in-app table, push, email...).

    ``deliver`` returns True on success; False or an exception is a failure.
    """

    async def deliver(self, event: NotificationEvent) -> bool:
        ...


class NotificationDispatcher:
    """
    Deliver NotificationEvents without ever failing the caller.

    ``dispatch`` is fire-and-forget: it schedules delivery and returns.
    Failed deliveries are logged and dropped; there is no retry queue or
    durable outbox, so a sink outage loses those notifications.
    """

    def __init__(self, sink: NotificationSink):
        self.sink = sink
        self._in_flight: Set[asyncio.Task] = set()
        self.dispatched_count = 0
        self.failed_count = 0

    def dispatch(self, event: NotificationEvent) -> asyncio.Task:
        """Schedule delivery on the running loop and return the task."""
        self.dispatched_count += 1
        task = asyncio.create_task(self.deliver(event), name=f"notify:{event.request_id}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def deliver(self, event: NotificationEvent) -> bool:
        """Deliver one event; never raises."""
        recipient = mask_user_id(event.recipient_id)
        try:
            with log_timing(
                "deliver_notification",
                logger=logger,
                request_id=event.request_id,
                recipient_id=recipient,
            ):
                ok = await self.sink.deliver(event)
            if not ok:
                raise NotificationDeliveryError("Sink reported delivery failure")
        except Exception as exc:
            self.failed_count += 1
            logger.warning(
                "Notification delivery failed, dropping",
                request_id=event.request_id,
                recipient_id=recipient,
                category=event.category.value,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return False

        event.delivered = True
        logger.info(
            "Notification delivered",
            request_id=event.request_id,
            recipient_id=recipient,
            category=event.category.value,
            title=sanitize_message_text(event.title, max_length=80),
        )
        return True

    @property
    def pending(self) -> int:
        return len(self._in_flight)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight deliveries (serverless handlers call this before returning)."""
        if not self._in_flight:
            return
        await asyncio.wait(set(self._in_flight), timeout=timeout)
