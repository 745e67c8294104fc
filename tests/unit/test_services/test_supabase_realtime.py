"""Tests for the realtime listing source."""

import pytest
from unittest.mock import AsyncMock, MagicMock
from src.models.sync import ChangeType, QueryDescriptor
from src.services.supabase_realtime import SupabaseListingSource, payload_to_change
from src.utils.errors import PermissionDeniedError
from tests.utils.factories import create_listing_doc
from tests.utils.fakes import settle


@pytest.mark.unit
def test_payload_insert():
    """Test an INSERT payload."""
    doc = create_listing_doc("a")
    change = payload_to_change({"data": {"type": "INSERT", "record": doc, "old_record": None}})

    assert change.change_type == ChangeType.INSERT
    assert change.entity_id == "a"
    assert change.document == doc


@pytest.mark.unit
def test_payload_update_is_modify():
    """Test that UPDATE maps to a modify."""
    change = payload_to_change({"data": {"type": "UPDATE", "record": {"id": 7, "price": 10}}})

    assert change.change_type == ChangeType.MODIFY
    assert change.entity_id == "7"


@pytest.mark.unit
def test_payload_delete_uses_old_record():
    """Test that DELETE takes the id from the old record."""
    change = payload_to_change({"data": {"type": "DELETE", "record": None, "old_record": {"id": "gone"}}})

    assert change.change_type == ChangeType.REMOVE
    assert change.entity_id == "gone"


@pytest.mark.unit
def test_payload_flat_legacy_shape():
    """Test the flat eventType/new/old payload shape."""
    change = payload_to_change({"eventType": "INSERT", "new": {"id": "n"}, "old": {}})

    assert change.entity_id == "n"


@pytest.mark.unit
@pytest.mark.parametrize("payload", [
    {"data": {"type": "TRUNCATE"}},
    {"data": {"type": "INSERT", "record": {"title": "no id"}}},
    "not a dict",
])
def test_payload_unusable(payload):
    """Test that unusable payloads are dropped."""
    assert payload_to_change(payload) is None


def _mock_async_client(rows):
    client = MagicMock()
    channel = MagicMock()
    channel.subscribe = AsyncMock()
    client.channel.return_value = channel
    client.remove_channel = AsyncMock()
    query = client.table.return_value.select.return_value
    query.execute = AsyncMock(return_value=MagicMock(data=rows))
    return client, channel


@pytest.mark.unit
@pytest.mark.asyncio
async def test_subscribe_initial_batch_then_changes():
    """Test the initial select followed by realtime changes."""
    client, channel = _mock_async_client([create_listing_doc("a"), create_listing_doc("b")])
    source = SupabaseListingSource(client_factory=AsyncMock(return_value=client))
    stream = source.subscribe(QueryDescriptor(collection="listings", sort=None))

    initial = await stream.__anext__()
    assert [change.entity_id for change in initial] == ["a", "b"]
    assert all(change.change_type == ChangeType.INSERT for change in initial)
    channel.subscribe.assert_awaited_once()

    callback = channel.on_postgres_changes.call_args.kwargs["callback"]
    callback({"data": {"type": "DELETE", "old_record": {"id": "a"}}})
    batch = await stream.__anext__()

    assert batch[0].change_type == ChangeType.REMOVE
    assert batch[0].entity_id == "a"

    await stream.aclose()
    client.remove_channel.assert_awaited_once_with(channel)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_subscribe_channel_error_raises_store_error():
    """Test that a failed channel status ends the stream with a classified error."""
    client, channel = _mock_async_client([])
    source = SupabaseListingSource(client_factory=AsyncMock(return_value=client))
    stream = source.subscribe(QueryDescriptor(collection="listings", sort=None))

    assert await stream.__anext__() == []
    on_status = channel.subscribe.call_args.args[0]
    on_status("CHANNEL_ERROR", RuntimeError("permission denied for table listings"))
    await settle()

    with pytest.raises(PermissionDeniedError):
        await stream.__anext__()
    client.remove_channel.assert_awaited_once()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_subscribe_initial_select_failure():
    """Test that a failing initial select is classified."""
    client, _ = _mock_async_client([])
    client.table.return_value.select.return_value.execute = AsyncMock(
        side_effect=RuntimeError("new row violates row-level security policy")
    )
    source = SupabaseListingSource(client_factory=AsyncMock(return_value=client))

    with pytest.raises(PermissionDeniedError):
        await source.subscribe(QueryDescriptor(collection="listings", sort=None)).__anext__()
    client.remove_channel.assert_awaited_once()
