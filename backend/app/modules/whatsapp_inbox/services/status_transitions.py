"""
Status Transitions
The one place where a message status is changed in response to an event.

Used by webhook ingestion (provider status events) and by the status
simulator (local send path), so both follow the same rule: a status only
ever moves forward along sent -> delivered -> read.
"""
import logging
from typing import Optional, Tuple

from app.modules.whatsapp_inbox.constants import (
    MessageDirection,
    MessageStatus,
    StatusUpdateOutcome,
)
from app.modules.whatsapp_inbox.repositories.message_repository import MessageRepository

logger = logging.getLogger("status_transitions")


async def apply_status_update(
    message_repo: MessageRepository,
    message: dict,
    new_status
) -> StatusUpdateOutcome:
    """
    Apply `new_status` to an already-resolved message.

    Returns:
        APPLIED  - written (forward progress)
        STALE    - not forward progress (duplicate, out-of-order, or lost a race)
        INVALID  - unknown status value, or an event targeting an inbound message
    """
    parsed = MessageStatus.parse(new_status)
    if parsed is None:
        logger.warning(f"Rejected status '{new_status}' for message {message['external_id']}: unknown status")
        return StatusUpdateOutcome.INVALID

    if message.get("direction") == MessageDirection.INBOUND.value:
        logger.warning(
            f"Rejected status '{parsed.value}' for inbound message {message['external_id']}: "
            f"inbound messages are only marked read by opening the conversation"
        )
        return StatusUpdateOutcome.INVALID

    current = MessageStatus.parse(message.get("status"))
    if current is not None and not MessageStatus.is_forward_progress(current, parsed):
        logger.info(
            f"Discarded stale status for {message['external_id']}: "
            f"{current.value} -> {parsed.value}"
        )
        return StatusUpdateOutcome.STALE

    # Compare-and-swap; a concurrent writer may have moved it forward already
    if not await message_repo.advance_status(message["id"], parsed):
        logger.info(f"Discarded status {parsed.value} for {message['external_id']}: already advanced concurrently")
        return StatusUpdateOutcome.STALE

    logger.info(f"Message {message['external_id']} status: {current.value if current else '?'} -> {parsed.value}")
    return StatusUpdateOutcome.APPLIED


async def apply_status_by_correlation_id(
    message_repo: MessageRepository,
    correlation_id: str,
    new_status
) -> Tuple[StatusUpdateOutcome, Optional[dict]]:
    """
    Resolve the owning message by correlation id, then apply the status.

    Returns:
        (outcome, message) - message is None when UNRESOLVED
    """
    message = await message_repo.get_by_correlation_id(correlation_id)
    if message is None:
        logger.warning(f"Unresolved status update '{new_status}' for unknown message {correlation_id}")
        return StatusUpdateOutcome.UNRESOLVED, None

    outcome = await apply_status_update(message_repo, message, new_status)
    return outcome, message
