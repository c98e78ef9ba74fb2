# backend/tests/test_status_transitions.py
"""
Status lifecycle tests (no database; the repository is mocked).

Tests covered:
1. Status order and forward-progress rule
2. apply_status_update outcomes: applied / stale / invalid
3. Lost compare-and-swap is reported as stale
4. Resolution by correlation id (unresolved when unknown)
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from app.modules.whatsapp_inbox.constants import (
    ContactPresence,
    ContactToggleAction,
    MessageStatus,
    StatusUpdateOutcome,
)
from app.modules.whatsapp_inbox.services.status_transitions import (
    apply_status_update,
    apply_status_by_correlation_id,
)


def outbound_message(status="sent"):
    return {
        "id": 1,
        "external_id": "local_1",
        "correlation_id": "local_2",
        "conversation_key": "555",
        "direction": "outbound",
        "status": status,
    }


def mock_repo(advanced=True, message=None):
    repo = MagicMock()
    repo.advance_status = AsyncMock(return_value=advanced)
    repo.get_by_correlation_id = AsyncMock(return_value=message)
    return repo


# --- CONSTANTS ---

def test_forward_progress_order():
    assert MessageStatus.is_forward_progress(MessageStatus.SENT, MessageStatus.DELIVERED)
    assert MessageStatus.is_forward_progress(MessageStatus.SENT, MessageStatus.READ)
    assert MessageStatus.is_forward_progress(MessageStatus.DELIVERED, MessageStatus.READ)

    assert not MessageStatus.is_forward_progress(MessageStatus.READ, MessageStatus.DELIVERED)
    assert not MessageStatus.is_forward_progress(MessageStatus.DELIVERED, MessageStatus.DELIVERED)
    assert not MessageStatus.is_forward_progress(MessageStatus.DELIVERED, MessageStatus.SENT)


def test_predecessors():
    assert MessageStatus.SENT.predecessors() == []
    assert MessageStatus.DELIVERED.predecessors() == ["sent"]
    assert MessageStatus.READ.predecessors() == ["sent", "delivered"]


def test_parse_status():
    assert MessageStatus.parse("READ") == MessageStatus.READ
    assert MessageStatus.parse(" delivered ") == MessageStatus.DELIVERED
    assert MessageStatus.parse("failed") is None
    assert MessageStatus.parse(None) is None


def test_parse_presence_and_toggle_columns():
    assert ContactPresence.parse("last seen") == ContactPresence.LAST_SEEN
    assert ContactPresence.parse("Online") == ContactPresence.ONLINE
    assert ContactPresence.parse("away") is None
    assert ContactToggleAction("mute").column == "is_muted"


# --- apply_status_update ---

def test_forward_status_is_applied():
    async def test_logic():
        repo = mock_repo(advanced=True)

        outcome = await apply_status_update(repo, outbound_message("sent"), "delivered")

        assert outcome == StatusUpdateOutcome.APPLIED
        repo.advance_status.assert_awaited_once_with(1, MessageStatus.DELIVERED)

    asyncio.run(test_logic())


def test_skipping_delivered_is_forward_progress():
    async def test_logic():
        repo = mock_repo(advanced=True)
        outcome = await apply_status_update(repo, outbound_message("sent"), "read")
        assert outcome == StatusUpdateOutcome.APPLIED

    asyncio.run(test_logic())


def test_regression_is_stale_and_never_written():
    async def test_logic():
        repo = mock_repo()

        outcome = await apply_status_update(repo, outbound_message("read"), "delivered")

        assert outcome == StatusUpdateOutcome.STALE
        repo.advance_status.assert_not_called()

    asyncio.run(test_logic())


def test_duplicate_status_is_stale():
    async def test_logic():
        repo = mock_repo()
        outcome = await apply_status_update(repo, outbound_message("delivered"), "delivered")
        assert outcome == StatusUpdateOutcome.STALE
        repo.advance_status.assert_not_called()

    asyncio.run(test_logic())


def test_lost_compare_and_swap_is_stale():
    """Another writer advanced the row between our read and our UPDATE."""
    async def test_logic():
        repo = mock_repo(advanced=False)

        outcome = await apply_status_update(repo, outbound_message("sent"), "delivered")

        assert outcome == StatusUpdateOutcome.STALE
        repo.advance_status.assert_awaited_once()

    asyncio.run(test_logic())


def test_unknown_status_is_invalid():
    async def test_logic():
        repo = mock_repo()
        outcome = await apply_status_update(repo, outbound_message("sent"), "failed")
        assert outcome == StatusUpdateOutcome.INVALID
        repo.advance_status.assert_not_called()

    asyncio.run(test_logic())


def test_status_for_inbound_message_is_invalid():
    async def test_logic():
        repo = mock_repo()
        message = {**outbound_message("delivered"), "direction": "inbound"}

        outcome = await apply_status_update(repo, message, "read")

        assert outcome == StatusUpdateOutcome.INVALID
        repo.advance_status.assert_not_called()

    asyncio.run(test_logic())


# --- apply_status_by_correlation_id ---

def test_unknown_correlation_id_is_unresolved():
    async def test_logic():
        repo = mock_repo(message=None)

        outcome, message = await apply_status_by_correlation_id(repo, "wamid.unknown", "read")

        assert outcome == StatusUpdateOutcome.UNRESOLVED
        assert message is None
        repo.advance_status.assert_not_called()

    asyncio.run(test_logic())


def test_resolved_correlation_id_is_applied():
    async def test_logic():
        repo = mock_repo(message=outbound_message("delivered"))

        outcome, message = await apply_status_by_correlation_id(repo, "local_2", "read")

        assert outcome == StatusUpdateOutcome.APPLIED
        assert message["external_id"] == "local_1"
        repo.get_by_correlation_id.assert_awaited_once_with("local_2")

    asyncio.run(test_logic())
