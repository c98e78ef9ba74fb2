# backend/tests/database/test_message_repository.py
"""
Message Store Tests (SQLite via aiosqlite)

Tests covered:
1. Insert, and duplicate external_id reported as "already exists"
2. Compare-and-swap status advance (forward only, version bump)
3. Page ordering with timestamp ties
4. Conversation summaries (last message, unread, count)
5. Read side effect only touches inbound messages
6. Status polling since a point in time
7. Contact delete removes the conversation
8. Stats
"""

import asyncio
from datetime import datetime, timedelta, timezone

from app.modules.whatsapp_inbox.constants import MessageDirection, MessageStatus
from app.modules.whatsapp_inbox.repositories import ContactRepository, MessageRepository

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


async def seed_contact(db, wa_id="555", name="Ana"):
    return await ContactRepository(db).create_contact({"wa_id": wa_id, "name": name})


async def seed_message(
    db,
    external_id,
    conversation_key="555",
    direction=MessageDirection.INBOUND,
    status=MessageStatus.DELIVERED,
    timestamp=T0,
    body="hi"
):
    return await MessageRepository(db).create_message(
        external_id=external_id,
        correlation_id=external_id,
        conversation_key=conversation_key,
        sender_name="Ana",
        body=body,
        direction=direction,
        status=status,
        timestamp=timestamp,
    )


def test_create_message_and_duplicate_external_id(db_factory):
    async def test_logic():
        async with db_factory() as db:
            await seed_contact(db)
            first = await seed_message(db, "m1")
            duplicate = await seed_message(db, "m1", body="again")
            await db.commit()

            repo = MessageRepository(db)
            assert first["external_id"] == "m1"
            assert first["status"] == "delivered"
            assert first["version"] == 1
            assert duplicate is None
            assert await repo.count_for_conversation("555") == 1

    asyncio.run(test_logic())


def test_advance_status_is_forward_only(db_factory):
    async def test_logic():
        async with db_factory() as db:
            await seed_contact(db)
            message = await seed_message(
                db, "out1",
                direction=MessageDirection.OUTBOUND,
                status=MessageStatus.SENT
            )
            repo = MessageRepository(db)

            assert await repo.advance_status(message["id"], MessageStatus.DELIVERED) is True
            assert await repo.advance_status(message["id"], MessageStatus.DELIVERED) is False
            assert await repo.advance_status(message["id"], MessageStatus.READ) is True
            assert await repo.advance_status(message["id"], MessageStatus.DELIVERED) is False
            assert await repo.advance_status(message["id"], MessageStatus.SENT) is False
            await db.commit()

            stored = await repo.get_by_id(message["id"])
            assert stored["status"] == "read"
            assert stored["version"] == 3

    asyncio.run(test_logic())


def test_list_orders_most_recent_first_with_tie_break(db_factory):
    async def test_logic():
        async with db_factory() as db:
            await seed_contact(db)
            await seed_message(db, "old", timestamp=T0 - timedelta(minutes=5))
            await seed_message(db, "tie-a", timestamp=T0)
            await seed_message(db, "tie-b", timestamp=T0)
            await db.commit()

            repo = MessageRepository(db)
            page = await repo.list_for_conversation("555", skip=0, limit=2)
            rest = await repo.list_for_conversation("555", skip=2, limit=2)

            # Same timestamp: the later-ingested message counts as more recent
            assert [m["external_id"] for m in page] == ["tie-b", "tie-a"]
            assert [m["external_id"] for m in rest] == ["old"]

    asyncio.run(test_logic())


def test_conversation_summaries(db_factory):
    async def test_logic():
        async with db_factory() as db:
            await seed_contact(db, "555")
            await seed_contact(db, "777", name="Bo")
            await seed_message(db, "a1", timestamp=T0 - timedelta(minutes=3), body="first")
            await seed_message(db, "a2", timestamp=T0 - timedelta(minutes=1), body="latest")
            await seed_message(
                db, "a3",
                direction=MessageDirection.OUTBOUND,
                status=MessageStatus.SENT,
                timestamp=T0 - timedelta(minutes=2),
                body="reply"
            )
            await db.commit()

            summaries = await MessageRepository(db).get_conversation_summaries(["555", "777"])

            assert set(summaries) == {"555"}
            assert summaries["555"]["last_message"] == "latest"
            assert summaries["555"]["unread_count"] == 2
            assert summaries["555"]["message_count"] == 3

    asyncio.run(test_logic())


def test_mark_conversation_read_only_touches_inbound(db_factory):
    async def test_logic():
        async with db_factory() as db:
            await seed_contact(db)
            await seed_message(db, "in1")
            await seed_message(db, "in2")
            outbound = await seed_message(
                db, "out1",
                direction=MessageDirection.OUTBOUND,
                status=MessageStatus.DELIVERED
            )
            repo = MessageRepository(db)

            assert await repo.mark_conversation_read("555") == 2
            assert await repo.mark_conversation_read("555") == 0
            await db.commit()

            assert (await repo.get_by_external_id("in1"))["status"] == "read"
            assert (await repo.get_by_id(outbound["id"]))["status"] == "delivered"

    asyncio.run(test_logic())


def test_get_status_updates_since(db_factory):
    async def test_logic():
        async with db_factory() as db:
            await seed_contact(db)
            await seed_message(db, "in1")
            out1 = await seed_message(
                db, "out1",
                direction=MessageDirection.OUTBOUND,
                status=MessageStatus.SENT
            )
            await seed_message(
                db, "out2",
                direction=MessageDirection.OUTBOUND,
                status=MessageStatus.SENT
            )
            await db.commit()

            checkpoint = datetime.now(timezone.utc)
            await asyncio.sleep(0.01)

            repo = MessageRepository(db)
            await repo.advance_status(out1["id"], MessageStatus.DELIVERED)
            await db.commit()

            everything = await repo.get_status_updates("555")
            recent = await repo.get_status_updates("555", since=checkpoint)

            assert {u["external_id"] for u in everything} == {"out1", "out2"}
            assert [u["external_id"] for u in recent] == ["out1"]
            assert recent[0]["status"] == "delivered"

    asyncio.run(test_logic())


def test_delete_contact_removes_conversation(db_factory):
    async def test_logic():
        async with db_factory() as db:
            await seed_contact(db, "555")
            await seed_contact(db, "777", name="Bo")
            await seed_message(db, "m1")
            await seed_message(db, "m2")
            await seed_message(db, "m3", conversation_key="777")
            await db.commit()

            deleted = await ContactRepository(db).delete_contact("555")
            await db.commit()

            repo = MessageRepository(db)
            assert deleted == 2
            assert await repo.list_for_conversation("555") == []
            assert await ContactRepository(db).get_by_wa_id("555") is None
            assert await repo.count_for_conversation("777") == 1
            assert await ContactRepository(db).delete_contact("555") is None

    asyncio.run(test_logic())


def test_stats(db_factory):
    async def test_logic():
        async with db_factory() as db:
            await seed_contact(db, "555")
            await seed_contact(db, "777", name="Bo")
            await seed_message(db, "m1")
            await seed_message(db, "m2", conversation_key="777")
            await seed_message(
                db, "m3",
                direction=MessageDirection.OUTBOUND,
                status=MessageStatus.SENT
            )
            await db.commit()

            stats = await MessageRepository(db).get_stats()

            assert stats == {
                "total_messages": 3,
                "total_conversations": 2,
                "sent_count": 1,
                "delivered_count": 2,
                "read_count": 0,
            }

    asyncio.run(test_logic())
