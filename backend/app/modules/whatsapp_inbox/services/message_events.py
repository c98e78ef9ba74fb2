"""
Message Event Bus

In-process notification channel for "something changed in a conversation".
Writers (ingestion, the status simulator, the read side effect, contact
changes) publish; readers that keep derived state (the conversation list
cache) subscribe.

Handlers are plain callables run synchronously in publish order. A failing
handler is logged and never affects the publisher or other handlers.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from app.modules.whatsapp_inbox.constants import MessageEventKind
from app.shared.db.base import utcnow

logger = logging.getLogger("message_events")


@dataclass(frozen=True)
class MessageEvent:
    """One change to a conversation."""
    kind: MessageEventKind
    conversation_key: str
    external_id: Optional[str] = None
    status: Optional[str] = None
    count: int = 1
    occurred_at: datetime = field(default_factory=utcnow)


MessageEventHandler = Callable[[MessageEvent], None]


class MessageEventBus:
    """Publish / subscribe channel for MessageEvent."""

    def __init__(self):
        self._subscribers: List[MessageEventHandler] = []

    def subscribe(self, handler: MessageEventHandler) -> Callable[[], None]:
        """
        Register a handler. Subscribing the same handler twice is a no-op.

        Returns:
            A callable that unsubscribes the handler.
        """
        if handler not in self._subscribers:
            self._subscribers.append(handler)
        return lambda: self.unsubscribe(handler)

    def unsubscribe(self, handler: MessageEventHandler) -> None:
        if handler in self._subscribers:
            self._subscribers.remove(handler)

    def publish(self, event: MessageEvent) -> None:
        """Deliver an event to every subscriber."""
        logger.debug(
            f"Event {event.kind.value}: conversation={event.conversation_key} "
            f"message={event.external_id} status={event.status}"
        )
        for handler in list(self._subscribers):
            try:
                handler(event)
            except Exception:
                logger.exception(f"Message event handler {handler!r} failed for {event.kind.value}")

    def publish_all(self, events: List[MessageEvent]) -> None:
        for event in events:
            self.publish(event)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


# ============================================
# SINGLETON INSTANCE
# ============================================

message_event_bus = MessageEventBus()
