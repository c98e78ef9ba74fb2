"""
Ingestion Service
Applies WhatsApp Cloud API webhook payloads to the Message Store.

Guarantees:
- Idempotent: a message whose external_id is already stored is skipped, so
  provider retries (at-least-once delivery) never create duplicates
- Forward-only status: status events go through apply_status_update
- Partial-failure isolation: every event runs in its own savepoint; a bad
  event is logged and counted, the rest of the payload still commits
- Unresolved / stale / invalid status events are logged and counted, never
  raised to the provider

TRANSACTION: one commit per payload, after all events were attempted.
Events are published on the message event bus only after that commit.
"""
import logging
from dataclasses import dataclass, asdict
from functools import partial
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.whatsapp_inbox.constants import (
    MessageDirection,
    MessageEventKind,
    MessageStatus,
    StatusUpdateOutcome,
)
from app.modules.whatsapp_inbox.repositories.contact_repository import ContactRepository
from app.modules.whatsapp_inbox.repositories.message_repository import MessageRepository
from app.modules.whatsapp_inbox.services.message_events import (
    MessageEvent,
    MessageEventBus,
    message_event_bus,
)
from app.modules.whatsapp_inbox.services.status_transitions import apply_status_by_correlation_id
from app.modules.whatsapp_inbox.services.webhook_parser import (
    iter_change_values,
    parse_inbound_message,
    parse_status,
)
from app.shared.utils.exceptions import TransientPersistenceError

logger = logging.getLogger("ingestion_service")


@dataclass
class IngestResult:
    """Per-payload counters."""
    created: int = 0
    duplicates: int = 0
    contacts_created: int = 0
    status_applied: int = 0
    status_stale: int = 0
    status_unresolved: int = 0
    status_invalid: int = 0
    failed: int = 0
    persistence_failures: int = 0

    def record_status(self, outcome: StatusUpdateOutcome) -> None:
        if outcome == StatusUpdateOutcome.APPLIED:
            self.status_applied += 1
        elif outcome == StatusUpdateOutcome.STALE:
            self.status_stale += 1
        elif outcome == StatusUpdateOutcome.UNRESOLVED:
            self.status_unresolved += 1
        else:
            self.status_invalid += 1

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class IngestionService:
    """
    Consumes webhook payloads.

    Usage:
        service = IngestionService(db)
        result = await service.ingest(payload)
    """

    def __init__(self, db: AsyncSession, event_bus: Optional[MessageEventBus] = None):
        self.db = db
        self.contact_repo = ContactRepository(db)
        self.message_repo = MessageRepository(db)
        self.event_bus = event_bus or message_event_bus

    async def ingest(self, payload: Any) -> IngestResult:
        """
        Process every message-create and status-update event in the payload.

        Raises:
            UnrecognizedPayloadError: the envelope is not a WhatsApp Business Account payload
            TransientPersistenceError: some events hit a database error (the others were
                committed), or the commit itself failed
        """
        result = IngestResult()
        events: List[MessageEvent] = []

        # Raises before anything is written if the envelope is wrong
        change_values = list(iter_change_values(payload))

        for value in change_values:
            if value.malformed:
                result.failed += value.malformed
                logger.warning(f"Skipped {value.malformed} messages/statuses field(s) that were not lists")

            for raw_message in value.messages:
                await self._run_isolated(
                    partial(self._ingest_message, raw_message, value.sender_names, result, events),
                    result,
                    kind="message"
                )

            for raw_status in value.statuses:
                await self._run_isolated(
                    partial(self._ingest_status, raw_status, result, events),
                    result,
                    kind="status"
                )

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Commit failed for ingested payload: {e}")
            raise TransientPersistenceError(max(1, len(events))) from e

        self.event_bus.publish_all(events)

        logger.info(f"Ingested payload: {result.to_dict()}")

        if result.persistence_failures:
            raise TransientPersistenceError(result.persistence_failures)

        return result

    # ============================================
    # PRIVATE HELPERS
    # ============================================

    async def _run_isolated(self, work, result: IngestResult, kind: str) -> None:
        """Run one event inside a savepoint; failures roll back only that event."""
        try:
            async with self.db.begin_nested():
                await work()
        except ValueError as e:
            result.failed += 1
            logger.warning(f"Skipped malformed {kind} event: {e}")
        except SQLAlchemyError as e:
            result.failed += 1
            result.persistence_failures += 1
            logger.error(f"Persistence error on {kind} event: {e}")
        except Exception:
            result.failed += 1
            logger.exception(f"Unexpected error on {kind} event")

    async def _ingest_message(
        self,
        raw_message: Any,
        sender_names: Dict[str, str],
        result: IngestResult,
        events: List[MessageEvent]
    ) -> None:
        event = parse_inbound_message(raw_message, sender_names)

        if await self.message_repo.get_by_external_id(event.external_id):
            result.duplicates += 1
            logger.info(f"Duplicate delivery of message {event.external_id} skipped")
            return

        _, contact_created = await self.contact_repo.get_or_create_placeholder(
            event.sender_id,
            event.sender_name
        )
        if contact_created:
            result.contacts_created += 1
            logger.info(f"Created placeholder contact for {event.sender_id}")

        message = await self.message_repo.create_message(
            external_id=event.external_id,
            correlation_id=event.external_id,
            conversation_key=event.sender_id,
            sender_name=event.sender_name,
            body=event.body,
            direction=MessageDirection.INBOUND,
            status=MessageStatus.DELIVERED,
            timestamp=event.timestamp,
            message_type=event.message_type,
        )

        if message is None:
            # Inserted concurrently by another delivery of the same payload
            result.duplicates += 1
            logger.info(f"Duplicate delivery of message {event.external_id} skipped (concurrent)")
            return

        result.created += 1
        logger.info(f"New inbound message {event.external_id} from {event.sender_id} ({event.message_type})")
        events.append(MessageEvent(
            kind=MessageEventKind.CREATED,
            conversation_key=event.sender_id,
            external_id=event.external_id,
            status=MessageStatus.DELIVERED.value,
        ))

    async def _ingest_status(
        self,
        raw_status: Any,
        result: IngestResult,
        events: List[MessageEvent]
    ) -> None:
        event = parse_status(raw_status)

        outcome, message = await apply_status_by_correlation_id(
            self.message_repo,
            event.correlation_id,
            event.status
        )
        result.record_status(outcome)

        if outcome == StatusUpdateOutcome.APPLIED:
            events.append(MessageEvent(
                kind=MessageEventKind.STATUS_CHANGED,
                conversation_key=message["conversation_key"],
                external_id=message["external_id"],
                status=event.status,
            ))
