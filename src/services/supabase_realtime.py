"""Realtime listing source - initial select plus postgres_changes stream."""

import asyncio
import contextlib
import uuid
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from supabase import AsyncClient, acreate_client

from src.models.sync import ChangeBatch, ChangeEvent, ChangeType, QueryDescriptor
from src.services.supabase_client import apply_descriptor, classify_store_error
from src.utils.config import StoreConfig
from src.utils.errors import UnknownStoreError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

_async_client: Optional[AsyncClient] = None

_EVENT_TYPES = {
    "INSERT": ChangeType.INSERT,
    "UPDATE": ChangeType.MODIFY,
    "DELETE": ChangeType.REMOVE,
}

# Channel states that end the subscription
_FAILED_STATES = {"CHANNEL_ERROR", "TIMED_OUT", "CLOSED"}


async def get_async_supabase_client() -> AsyncClient:
    """Get or create the async client used for realtime channels."""
    global _async_client

    if _async_client is None:
        url = StoreConfig.SUPABASE_URL
        key = StoreConfig.SUPABASE_SERVICE_ROLE_KEY
        if not url or not key:
            raise UnknownStoreError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        _async_client = await acreate_client(url, key)
        logger.info("Async Supabase client initialized", supabase_url=url)

    return _async_client


def payload_to_change(payload: Dict[str, Any]) -> Optional[ChangeEvent]:
    """Turn a postgres_changes payload into a ChangeEvent (None if unusable)."""
    data = payload.get("data", payload) if isinstance(payload, dict) else {}
    event_type = str(data.get("type") or data.get("eventType") or "").upper()
    change_type = _EVENT_TYPES.get(event_type)
    if change_type is None:
        return None

    record = data.get("record") or data.get("new") or {}
    old_record = data.get("old_record") or data.get("old") or {}
    source = old_record if change_type == ChangeType.REMOVE else record
    entity_id = source.get("id") or record.get("id") or old_record.get("id")
    if entity_id is None:
        return None

    return ChangeEvent(change_type=change_type, entity_id=str(entity_id), document=dict(record))


class SupabaseListingSource:
    """
    CollectionSource over a Supabase table.

    The realtime channel is joined before the initial select so no change
    committed in between is missed; the first yielded batch is the select
    result as inserts, later batches carry one change each.
    """

    def __init__(
        self,
        client_factory: Optional[Callable[[], Awaitable[AsyncClient]]] = None,
        schema: str = "public",
    ):
        self._client_factory = client_factory or get_async_supabase_client
        self.schema = schema

    async def subscribe(self, descriptor: QueryDescriptor) -> AsyncIterator[ChangeBatch]:
        try:
            client = await self._client_factory()
        except Exception as e:
            raise classify_store_error(e)

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def on_change(payload: Dict[str, Any]) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, ("change", payload))

        def on_status(status: Any, err: Optional[Exception] = None) -> None:
            state = str(getattr(status, "value", status)).upper()
            if state in _FAILED_STATES:
                loop.call_soon_threadsafe(queue.put_nowait, ("error", err or UnknownStoreError(state)))

        channel = client.channel(f"{descriptor.collection}:{uuid.uuid4().hex[:8]}")
        channel.on_postgres_changes(
            "*",
            schema=self.schema,
            table=descriptor.collection,
            callback=on_change,
        )

        try:
            try:
                await channel.subscribe(on_status)
                query = apply_descriptor(client.table(descriptor.collection).select("*"), descriptor)
                result = await query.execute()
            except Exception as e:
                raise classify_store_error(e)

            rows = result.data or []
            logger.info(
                "Realtime listing subscription started",
                collection=descriptor.collection,
                fallback=descriptor.is_fallback,
                initial_rows=len(rows),
            )
            yield [
                ChangeEvent(change_type=ChangeType.INSERT, entity_id=str(row["id"]), document=row)
                for row in rows
                if row.get("id") is not None
            ]

            while True:
                kind, item = await queue.get()
                if kind == "error":
                    raise classify_store_error(item)
                change = payload_to_change(item)
                if change is not None:
                    yield [change]
        finally:
            with contextlib.suppress(Exception):
                await client.remove_channel(channel)
            logger.debug("Realtime channel removed", collection=descriptor.collection)
