"""
Status Simulator
Reproduces the provider's delivery lifecycle for locally sent messages.

A message sent through the local send path never gets provider status
events, so the simulator drives it:

    sent --(delivered delay)--> delivered --(read delay)--> read

Design:
- One asyncio task per message, keyed by external_id. Scheduling the same
  message again cancels the earlier task.
- Each transition uses its own DB session and goes through
  apply_status_update, so a real status event that already moved the message
  further always wins.
- A message deleted in the meantime (contact deleted) makes the remaining
  transitions silent no-ops.
- Schedules live in memory only. A restart drops them.
"""
import asyncio
import logging
from typing import Callable, Dict, Optional

from app.modules.whatsapp_inbox.constants import (
    MessageEventKind,
    MessageStatus,
    StatusUpdateOutcome,
)
from app.modules.whatsapp_inbox.repositories.message_repository import MessageRepository
from app.modules.whatsapp_inbox.services.message_events import (
    MessageEvent,
    MessageEventBus,
    message_event_bus,
)
from app.modules.whatsapp_inbox.services.status_transitions import apply_status_update
from app.shared.core.config import settings
from app.shared.core.logging import set_correlation_id

logger = logging.getLogger("status_simulator")


class StatusSimulator:
    """
    Schedules deferred sent -> delivered -> read transitions.

    Usage:
        simulator = StatusSimulator()
        simulator.schedule(message)          # returns immediately
        simulator.cancel(message["external_id"])
        await simulator.shutdown()           # on application shutdown
    """

    def __init__(
        self,
        session_factory: Optional[Callable] = None,
        delivered_delay_seconds: Optional[float] = None,
        read_delay_seconds: Optional[float] = None,
        event_bus: Optional[MessageEventBus] = None,
        enabled: Optional[bool] = None
    ):
        self._session_factory = session_factory
        self.delivered_delay_seconds = (
            settings.STATUS_SIM_DELIVERED_DELAY_SECONDS
            if delivered_delay_seconds is None else delivered_delay_seconds
        )
        self.read_delay_seconds = (
            settings.STATUS_SIM_READ_DELAY_SECONDS
            if read_delay_seconds is None else read_delay_seconds
        )
        self.enabled = settings.STATUS_SIM_ENABLED if enabled is None else enabled
        self.event_bus = event_bus or message_event_bus

        self._tasks: Dict[str, asyncio.Task] = {}
        self._conversations: Dict[str, str] = {}  # external_id -> conversation_key

        logger.info(
            f"Status simulator initialized: delivered after {self.delivered_delay_seconds}s, "
            f"read after a further {self.read_delay_seconds}s, enabled={self.enabled}"
        )

    @property
    def session_factory(self) -> Callable:
        if self._session_factory is None:
            from app.shared.db.session import AsyncSessionLocal
            self._session_factory = AsyncSessionLocal
        return self._session_factory

    # ============================================
    # SCHEDULING
    # ============================================

    def schedule(self, message: dict) -> Optional[asyncio.Task]:
        """
        Arm the two deferred transitions for a message. Never blocks.
        Must be called from a running event loop.
        """
        if not self.enabled:
            return None

        external_id = message["external_id"]
        self.cancel(external_id)

        task = asyncio.get_running_loop().create_task(
            self._run(external_id),
            name=f"status-sim-{external_id}"
        )
        self._tasks[external_id] = task
        self._conversations[external_id] = message["conversation_key"]
        task.add_done_callback(lambda t, key=external_id: self._forget(key, t))

        logger.debug(f"Scheduled simulated lifecycle for {external_id}")
        return task

    def cancel(self, external_id: str) -> bool:
        """Cancel the pending transitions of one message."""
        task = self._tasks.pop(external_id, None)
        self._conversations.pop(external_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug(f"Cancelled simulated lifecycle for {external_id}")
        return True

    def cancel_conversation(self, conversation_key: str) -> int:
        """Cancel every pending simulation of a conversation (contact deleted)."""
        external_ids = [
            external_id for external_id, key in list(self._conversations.items())
            if key == conversation_key
        ]
        return sum(1 for external_id in external_ids if self.cancel(external_id))

    async def shutdown(self) -> None:
        """Cancel everything and wait for the tasks to finish."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        self._tasks.clear()
        self._conversations.clear()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Status simulator stopped, {len(tasks)} pending simulation(s) dropped")

    @property
    def pending_count(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    def is_scheduled(self, external_id: str) -> bool:
        task = self._tasks.get(external_id)
        return task is not None and not task.done()

    # ============================================
    # PRIVATE HELPERS
    # ============================================

    def _forget(self, external_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(external_id) is task:
            self._tasks.pop(external_id, None)
            self._conversations.pop(external_id, None)

    async def _run(self, external_id: str) -> None:
        set_correlation_id(f"sim-{external_id}")

        await asyncio.sleep(self.delivered_delay_seconds)
        if not await self._transition(external_id, MessageStatus.DELIVERED):
            return

        await asyncio.sleep(self.read_delay_seconds)
        await self._transition(external_id, MessageStatus.READ)

    async def _transition(self, external_id: str, status: MessageStatus) -> bool:
        """
        Apply one simulated status.

        Returns False when the message is gone, so the rest of the lifecycle stops.
        """
        try:
            async with self.session_factory() as session:
                repo = MessageRepository(session)
                message = await repo.get_by_external_id(external_id)
                if message is None:
                    logger.debug(f"Message {external_id} no longer exists, simulation stopped")
                    return False

                outcome = await apply_status_update(repo, message, status)
                await session.commit()

        except asyncio.CancelledError:
            raise
        except Exception:
            # Background task: nobody awaits it, so log and keep the lifecycle going
            logger.exception(f"Simulated transition to {status.value} failed for {external_id}")
            return True

        if outcome == StatusUpdateOutcome.APPLIED:
            self.event_bus.publish(MessageEvent(
                kind=MessageEventKind.STATUS_CHANGED,
                conversation_key=message["conversation_key"],
                external_id=external_id,
                status=status.value,
            ))
        return True


# ============================================
# SINGLETON INSTANCE
# ============================================

status_simulator = StatusSimulator()
