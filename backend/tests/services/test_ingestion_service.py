# backend/tests/services/test_ingestion_service.py
"""
Ingestion Processor Tests (SQLite via aiosqlite)

Tests covered:
1. Message-create is idempotent across repeated deliveries
2. Placeholder contact created for an unknown sender
3. Status events: out-of-order {read, delivered} ends at read
4. Unresolved / unknown status events are counted, never raised
5. One malformed event does not block the rest of the payload
6. A persistence error commits the rest and raises TransientPersistenceError
7. Unrecognized envelope writes nothing
8. Events are published after commit
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from app.modules.whatsapp_inbox.constants import MessageDirection, MessageEventKind, MessageStatus
from app.modules.whatsapp_inbox.repositories import ContactRepository, MessageRepository
from app.modules.whatsapp_inbox.services.ingestion_service import IngestionService
from app.modules.whatsapp_inbox.services.message_events import MessageEventBus
from app.shared.utils.exceptions import TransientPersistenceError, UnrecognizedPayloadError


async def seed_outbound(db, external_id="local_1", correlation_id="wamid.out1", status=MessageStatus.SENT):
    await ContactRepository(db).get_or_create_placeholder("555", "Ana")
    message = await MessageRepository(db).create_message(
        external_id=external_id,
        correlation_id=correlation_id,
        conversation_key="555",
        sender_name="You",
        body="hello",
        direction=MessageDirection.OUTBOUND,
        status=status,
        timestamp=datetime.now(timezone.utc),
    )
    await db.commit()
    return message


def test_message_create_is_idempotent(db_factory, message_payload):
    """Ingest m1 twice -> exactly one stored message, status delivered."""
    payload = message_payload("m1", sender="555", body="hi", timestamp=1000)

    async def test_logic():
        async with db_factory() as db:
            first = await IngestionService(db, event_bus=MessageEventBus()).ingest(payload)
        async with db_factory() as db:
            second = await IngestionService(db, event_bus=MessageEventBus()).ingest(payload)

        async with db_factory() as db:
            repo = MessageRepository(db)
            messages = await repo.list_for_conversation("555")

            assert first.created == 1
            assert second.created == 0
            assert second.duplicates == 1
            assert len(messages) == 1
            assert messages[0]["external_id"] == "m1"
            assert messages[0]["correlation_id"] == "m1"
            assert messages[0]["status"] == "delivered"
            assert messages[0]["direction"] == "inbound"
            assert messages[0]["body"] == "hi"

    asyncio.run(test_logic())


def test_same_message_twice_in_one_payload(db_factory, message_payload):
    payload = message_payload("m1")
    change = payload["entry"][0]["changes"][0]
    payload["entry"][0]["changes"].append(change)

    async def test_logic():
        async with db_factory() as db:
            result = await IngestionService(db, event_bus=MessageEventBus()).ingest(payload)
            count = await MessageRepository(db).count_for_conversation("555")

        assert result.created == 1
        assert result.duplicates == 1
        assert count == 1

    asyncio.run(test_logic())


def test_unknown_sender_gets_placeholder_contact(db_factory, message_payload):
    async def test_logic():
        async with db_factory() as db:
            result = await IngestionService(db, event_bus=MessageEventBus()).ingest(
                message_payload("m1", sender="555", name="Ana")
            )
            contact = await ContactRepository(db).get_by_wa_id("555")

        assert result.contacts_created == 1
        assert contact["name"] == "Ana"
        assert contact["is_placeholder"] is True

    asyncio.run(test_logic())


def test_non_text_message_is_stored_with_placeholder_body(db_factory, message_payload):
    async def test_logic():
        async with db_factory() as db:
            await IngestionService(db, event_bus=MessageEventBus()).ingest(
                message_payload("img1", message_type="image")
            )
            message = await MessageRepository(db).get_by_external_id("img1")

        assert message["body"] == "Unsupported message type"
        assert message["message_type"] == "image"

    asyncio.run(test_logic())


def test_out_of_order_statuses_end_at_read(db_factory, status_payload):
    """read arrives before delivered -> final status read, delivered is stale."""
    async def test_logic():
        async with db_factory() as db:
            await seed_outbound(db)

        async with db_factory() as db:
            read_result = await IngestionService(db, event_bus=MessageEventBus()).ingest(
                status_payload(("wamid.out1", "read"))
            )
        async with db_factory() as db:
            late_result = await IngestionService(db, event_bus=MessageEventBus()).ingest(
                status_payload(("wamid.out1", "delivered"))
            )

        async with db_factory() as db:
            message = await MessageRepository(db).get_by_external_id("local_1")

        assert read_result.status_applied == 1
        assert late_result.status_stale == 1
        assert message["status"] == "read"

    asyncio.run(test_logic())


def test_status_sequence_never_regresses(db_factory, status_payload):
    async def test_logic():
        async with db_factory() as db:
            await seed_outbound(db)

        observed = []
        for status in ["delivered", "sent", "read", "delivered", "read", "sent"]:
            async with db_factory() as db:
                await IngestionService(db, event_bus=MessageEventBus()).ingest(
                    status_payload(("wamid.out1", status))
                )
                observed.append((await MessageRepository(db).get_by_external_id("local_1"))["status"])

        order = ["sent", "delivered", "read"]
        ranks = [order.index(status) for status in observed]
        assert ranks == sorted(ranks)
        assert observed[-1] == "read"

    asyncio.run(test_logic())


def test_unresolved_and_unknown_statuses_are_counted_not_raised(db_factory, status_payload):
    async def test_logic():
        async with db_factory() as db:
            await seed_outbound(db)

        async with db_factory() as db:
            result = await IngestionService(db, event_bus=MessageEventBus()).ingest(
                status_payload(("wamid.missing", "read"), ("wamid.out1", "failed"))
            )
            stats = await MessageRepository(db).get_stats()

        assert result.status_unresolved == 1
        assert result.status_invalid == 1
        assert result.failed == 0
        assert stats["total_messages"] == 1

    asyncio.run(test_logic())


def test_malformed_event_does_not_block_others(db_factory, message_payload):
    payload = message_payload("good1")
    value = payload["entry"][0]["changes"][0]["value"]
    value["messages"].insert(0, {"id": "bad1", "type": "text", "text": {"body": "no sender"}})

    async def test_logic():
        async with db_factory() as db:
            result = await IngestionService(db, event_bus=MessageEventBus()).ingest(payload)

        async with db_factory() as db:
            good = await MessageRepository(db).get_by_external_id("good1")

        assert result.failed == 1
        assert result.created == 1
        assert good is not None

    asyncio.run(test_logic())


def test_non_list_messages_field_is_counted_not_raised(db_factory, status_payload):
    payload = status_payload(("wamid.out1", "delivered"))
    payload["entry"][0]["changes"][0]["value"]["messages"] = 5

    async def test_logic():
        async with db_factory() as db:
            await seed_outbound(db)
            result = await IngestionService(db, event_bus=MessageEventBus()).ingest(payload)
            message = await MessageRepository(db).get_by_external_id("local_1")

        assert result.failed == 1
        assert result.status_applied == 1
        assert message["status"] == "delivered"

    asyncio.run(test_logic())


def test_persistence_error_commits_others_then_raises(db_factory, message_payload):
    payload = message_payload("ok1")
    value = payload["entry"][0]["changes"][0]["value"]
    value["messages"].append({**value["messages"][0], "id": "boom1"})
    value["messages"].append({**value["messages"][0], "id": "ok2"})

    original_create = MessageRepository.create_message

    async def flaky_create(self, **kwargs):
        if kwargs["external_id"] == "boom1":
            raise OperationalError("INSERT INTO messages", {}, Exception("database is locked"))
        return await original_create(self, **kwargs)

    async def test_logic():
        with patch.object(MessageRepository, "create_message", flaky_create):
            async with db_factory() as db:
                with pytest.raises(TransientPersistenceError) as exc_info:
                    await IngestionService(db, event_bus=MessageEventBus()).ingest(payload)

        async with db_factory() as db:
            repo = MessageRepository(db)
            stored = {m["external_id"] for m in await repo.list_for_conversation("555")}

        assert exc_info.value.failed_count == 1
        assert stored == {"ok1", "ok2"}

    asyncio.run(test_logic())


def test_failed_commit_raises_transient_error(db_factory, message_payload):
    bus = MessageEventBus()
    handler = MagicMock()
    bus.subscribe(handler)

    async def test_logic():
        async with db_factory() as db:
            failing_commit = AsyncMock(
                side_effect=OperationalError("COMMIT", {}, Exception("database is locked"))
            )
            with patch.object(db, "commit", failing_commit):
                with pytest.raises(TransientPersistenceError):
                    await IngestionService(db, event_bus=bus).ingest(message_payload("m1"))

        async with db_factory() as db:
            stored = await MessageRepository(db).get_by_external_id("m1")

        assert stored is None
        handler.assert_not_called()

    asyncio.run(test_logic())


def test_unrecognized_envelope_writes_nothing(db_factory):
    async def test_logic():
        async with db_factory() as db:
            with pytest.raises(UnrecognizedPayloadError):
                await IngestionService(db, event_bus=MessageEventBus()).ingest(
                    {"object": "instagram", "entry": []}
                )
            stats = await MessageRepository(db).get_stats()

        assert stats["total_messages"] == 0

    asyncio.run(test_logic())


def test_events_published_for_created_and_applied(db_factory, message_payload, status_payload):
    async def test_logic():
        async with db_factory() as db:
            await seed_outbound(db)

        bus = MessageEventBus()
        handler = MagicMock()
        bus.subscribe(handler)

        payload = message_payload("m1")
        payload["entry"][0]["changes"].append(status_payload(("wamid.out1", "delivered"))["entry"][0]["changes"][0])

        async with db_factory() as db:
            await IngestionService(db, event_bus=bus).ingest(payload)

        kinds = [call.args[0].kind for call in handler.call_args_list]
        assert kinds == [MessageEventKind.CREATED, MessageEventKind.STATUS_CHANGED]

    asyncio.run(test_logic())
