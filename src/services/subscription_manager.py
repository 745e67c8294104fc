"""Resilient subscription manager - live listing sync with a degraded fallback."""

import asyncio
import contextlib
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from src.models.listing import Listing
from src.models.sync import ChangeBatch, ChangeType, CollectionSource, QueryDescriptor
from src.services.comparators import sort_listings
from src.services.predicates import build_predicate
from src.utils.config import DiscoveryConfig
from src.utils.errors import IndexMissingError, StoreError, UnknownStoreError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

UpdateCallback = Callable[[Tuple[Listing, ...]], None]
ErrorCallback = Callable[[StoreError], None]


class SubscriptionState(str, Enum):
    CONNECTING = "connecting"
    LIVE = "live"
    DEGRADED = "degraded"
    CLOSED = "closed"


class ResilientSubscription:
    """
    One logical live subscription over a listing collection.

    The preferred query asks the store to filter and order. If the store
    reports a missing index the subscription re-subscribes to the whole
    collection unordered and does the filtering and ordering locally with
    the same predicate and comparator, so ``snapshot()`` has the same
    contract in both modes.

    The materialized collection is keyed by entity id; inserts and modifies
    are upserts and removes are deletes, applied in delivery order.
    """

    def __init__(
        self,
        source: CollectionSource,
        descriptor: QueryDescriptor,
        on_update: Optional[UpdateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        connect_timeout: Optional[float] = None,
        name: Optional[str] = None,
    ):
        self.source = source
        self.descriptor = descriptor
        self.name = name or descriptor.collection
        self.on_update = on_update
        self.on_error = on_error
        self.connect_timeout = connect_timeout
        self.state = SubscriptionState.CONNECTING
        self.error: Optional[StoreError] = None
        self.degraded = False
        self._entities: Dict[str, Listing] = {}
        self._predicate = build_predicate(descriptor.filters, descriptor.kind_override)
        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self._ready = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._entities)

    async def open(self) -> "ResilientSubscription":
        """Start syncing in the background; returns without waiting for data."""
        if self._task is None and not self._closed:
            self._task = asyncio.create_task(self._run(), name=f"subscription:{self.name}")
            logger.info(
                "Subscription opening",
                subscription=self.name,
                collection=self.descriptor.collection,
                ordered=self.descriptor.sort is not None,
            )
        return self

    async def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait for the first batch (or a terminal error). False on timeout."""
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def close(self) -> None:
        """Release the live connection. Idempotent and safe mid-query."""
        if self._closed:
            return
        self._closed = True
        self.state = SubscriptionState.CLOSED
        self._ready.set()

        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        logger.info("Subscription closed", subscription=self.name, entities=len(self._entities))

    def snapshot(self) -> Tuple[Listing, ...]:
        """Current listings in scope, filtered and stably ordered.

        Entities are laid out by id before sorting so ties come out the same
        whichever order the store delivered them in.
        """
        base = [self._entities[key] for key in sorted(self._entities)]
        in_scope = [listing for listing in base if self._predicate(listing)]
        if self.descriptor.sort is not None:
            in_scope = sort_listings(in_scope, self.descriptor.sort)
        return tuple(in_scope)

    async def _run(self) -> None:
        try:
            await self._consume(self.descriptor, degraded=False)
        except IndexMissingError as exc:
            if self._closed:
                return
            logger.warning(
                "Preferred query unavailable, falling back to unordered subscription",
                subscription=self.name,
                collection=self.descriptor.collection,
                error=str(exc),
            )
            self.degraded = True
            self.state = SubscriptionState.DEGRADED
            try:
                await self._consume(self.descriptor.unordered(), degraded=True)
            except StoreError as fallback_error:
                self._fail(fallback_error)
            except Exception as fallback_error:
                self._fail(UnknownStoreError(str(fallback_error)))
        except StoreError as exc:
            self._fail(exc)
        except Exception as exc:
            self._fail(UnknownStoreError(str(exc)))

    async def _consume(self, descriptor: QueryDescriptor, degraded: bool) -> None:
        stream = self.source.subscribe(descriptor)
        iterator = stream.__aiter__()
        first = True
        try:
            while True:
                try:
                    if first and self.connect_timeout:
                        batch = await asyncio.wait_for(iterator.__anext__(), self.connect_timeout)
                    else:
                        batch = await iterator.__anext__()
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError:
                    raise UnknownStoreError(
                        f"No initial result from {descriptor.collection} within {self.connect_timeout}s"
                    )

                if self._closed:
                    return

                if first and degraded:
                    # Fallback starts with a full resync; drop what the preferred stream left
                    self._entities = {}
                self._apply(batch)

                if first:
                    first = False
                    self.state = SubscriptionState.DEGRADED if degraded else SubscriptionState.LIVE
                    self._ready.set()
                    logger.info(
                        "Subscription synced",
                        subscription=self.name,
                        state=self.state.value,
                        entities=len(self._entities),
                    )

                self._notify_update()
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                with contextlib.suppress(Exception):
                    await aclose()

        if not self._closed:
            logger.info("Subscription stream ended by the store", subscription=self.name)
            self.state = SubscriptionState.CLOSED
            self._ready.set()

    def _apply(self, batch: ChangeBatch) -> None:
        for change in batch:
            if change.change_type == ChangeType.REMOVE:
                self._entities.pop(change.entity_id, None)
                continue
            try:
                listing = Listing.from_document(change.document, doc_id=change.entity_id)
            except (ValidationError, ValueError) as exc:
                logger.warning(
                    "Skipping malformed listing document",
                    subscription=self.name,
                    entity_id=change.entity_id,
                    error=str(exc),
                )
                continue
            self._entities[change.entity_id] = listing

    def _notify_update(self) -> None:
        if self.on_update is None:
            return
        try:
            self.on_update(self.snapshot())
        except Exception as exc:
            logger.error(
                "Subscription update callback failed",
                subscription=self.name,
                error=str(exc),
                exc_info=True,
            )

    def _fail(self, error: StoreError) -> None:
        # Last-known-good entities are kept for the consumer
        self.error = error
        self.state = SubscriptionState.CLOSED
        self._closed = True
        self._ready.set()
        logger.error(
            "Subscription failed",
            subscription=self.name,
            error_type=type(error).__name__,
            error=str(error),
            retained_entities=len(self._entities),
        )
        if self.on_error is not None:
            try:
                self.on_error(error)
            except Exception as exc:
                logger.error(
                    "Subscription error callback failed",
                    subscription=self.name,
                    error=str(exc),
                    exc_info=True,
                )


class SubscriptionManager:
    """Registry of independent named subscriptions, e.g. one per dashboard view."""

    def __init__(self, source: CollectionSource, connect_timeout: Optional[float] = None):
        self.source = source
        self.connect_timeout = (
            connect_timeout if connect_timeout is not None
            else DiscoveryConfig.SUBSCRIPTION_CONNECT_TIMEOUT_SECONDS
        )
        self._subscriptions: Dict[str, ResilientSubscription] = {}

    async def open(
        self,
        name: str,
        descriptor: QueryDescriptor,
        on_update: Optional[UpdateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> ResilientSubscription:
        """Open ``name``; reopening with a different descriptor replaces it."""
        existing = self._subscriptions.get(name)
        if existing is not None:
            if existing.descriptor == descriptor and not existing.closed:
                return existing
            await existing.close()

        subscription = ResilientSubscription(
            self.source,
            descriptor,
            on_update=on_update,
            on_error=on_error,
            connect_timeout=self.connect_timeout,
            name=name,
        )
        self._subscriptions[name] = subscription
        return await subscription.open()

    def get(self, name: str) -> Optional[ResilientSubscription]:
        return self._subscriptions.get(name)

    def names(self) -> List[str]:
        return list(self._subscriptions)

    async def close(self, name: str) -> None:
        subscription = self._subscriptions.pop(name, None)
        if subscription is not None:
            await subscription.close()

    async def close_all(self) -> None:
        for name in list(self._subscriptions):
            await self.close(name)
