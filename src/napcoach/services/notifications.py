"""Reminder decisions and notification history.

``NotificationPlanner`` decides, block by block, whether a reminder is
scheduled with the delivery system, skipped as already past, or recorded as
canceled. Every decision lands in a ``NotificationHistory``: a capped,
append-only log whose entries move through ``scheduled -> sent`` or
``scheduled -> canceled`` and never back.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

import structlog

from napcoach.core.timeutil import Clock, Zone, format_clock
from napcoach.schemas.domain import (
    BlockKind,
    NotificationHistoryItem,
    NotificationStatus,
    ScheduleBlock,
    ScheduledReminder,
)

logger = structlog.get_logger()

HISTORY_LIMIT = 100


class NotificationDelivery(Protocol):
    """Local reminder delivery system."""

    async def has_permission(self) -> bool: ...

    async def schedule(
        self,
        *,
        title: str,
        body: str,
        payload: dict[str, str],
        trigger_at: datetime,
    ) -> str: ...

    async def cancel(self, notification_id: str) -> None: ...

    async def cancel_all(self) -> None: ...

    async def list_scheduled(self) -> list[ScheduledReminder]: ...


def notification_message(block: ScheduleBlock, tz: Zone = None) -> tuple[str, str]:
    """Title and body for a block's reminder."""
    at = format_clock(block.start, tz)
    if block.kind is BlockKind.WIND_DOWN:
        return "Wind-Down Time", f"Start wind-down routine at {at}. Time to prepare for sleep."
    if block.kind is BlockKind.NAP:
        return "Nap Time", f"Nap time at {at}. Your baby should be ready for sleep."
    return "Bedtime", f"Bedtime at {at}. Start your bedtime routine now."


class NotificationHistory:
    """Capped, append-only reminder log with lifecycle transitions.

    Entries are immutable; a transition replaces the entry with an updated
    copy in place. Only ``scheduled`` entries can transition.
    """

    def __init__(
        self,
        items: Iterable[NotificationHistoryItem] = (),
        limit: int = HISTORY_LIMIT,
    ) -> None:
        self.limit = limit
        self._items = list(items)[-limit:]

    @property
    def items(self) -> list[NotificationHistoryItem]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def append(self, item: NotificationHistoryItem) -> None:
        """Add an entry, dropping the oldest beyond the cap."""
        self._items.append(item)
        if len(self._items) > self.limit:
            del self._items[: len(self._items) - self.limit]

    def find(self, notification_id: str) -> NotificationHistoryItem | None:
        for item in reversed(self._items):
            if item.notification_id == notification_id:
                return item
        return None

    def mark_sent(self, notification_id: str, at: datetime) -> bool:
        """Move a scheduled entry to ``sent``.

        Returns:
            Whether an entry transitioned
        """
        return self._transition(
            notification_id, {"status": NotificationStatus.SENT, "sent_at": at}
        )

    def mark_canceled(self, notification_id: str, at: datetime) -> bool:
        """Move a scheduled entry to ``canceled``.

        Returns:
            Whether an entry transitioned
        """
        return self._transition(
            notification_id, {"status": NotificationStatus.CANCELED, "canceled_at": at}
        )

    def cancel_all_scheduled(self, at: datetime) -> int:
        """Cancel every scheduled entry.

        Returns:
            Number of entries canceled
        """
        count = 0
        for index, item in enumerate(self._items):
            if item.status is NotificationStatus.SCHEDULED:
                self._items[index] = item.model_copy(
                    update={"status": NotificationStatus.CANCELED, "canceled_at": at}
                )
                count += 1
        return count

    def upcoming(self, now: datetime) -> list[NotificationHistoryItem]:
        """Scheduled entries still in the future, soonest first."""
        pending = [
            i
            for i in self._items
            if i.status is NotificationStatus.SCHEDULED and i.scheduled_for > now
        ]
        return sorted(pending, key=lambda i: i.scheduled_for)

    def sent(self) -> list[NotificationHistoryItem]:
        return [i for i in self._items if i.status is NotificationStatus.SENT]

    def canceled(self) -> list[NotificationHistoryItem]:
        return [i for i in self._items if i.status is NotificationStatus.CANCELED]

    def _transition(self, notification_id: str, update: dict[str, object]) -> bool:
        for index, item in enumerate(self._items):
            if (
                item.notification_id == notification_id
                and item.status is NotificationStatus.SCHEDULED
            ):
                self._items[index] = item.model_copy(update=update)
                return True
        return False


class NotificationPlanner:
    """Decide which reminders to schedule or cancel for schedule blocks."""

    def __init__(self, delivery: NotificationDelivery, clock: Clock | None = None) -> None:
        """Initialize notification planner.

        Args:
            delivery: Reminder delivery system
            clock: Source of "now" and the local zone
        """
        self.delivery = delivery
        self.clock = clock or Clock()
        self.logger = logger.bind(service="notifications")

    async def schedule_block(
        self, block: ScheduleBlock, history: NotificationHistory
    ) -> str | None:
        """Schedule a reminder for one block and record the decision.

        Delivery failures are logged and recorded as ``canceled``; they never
        propagate.

        Returns:
            The delivery handle, or None when nothing was scheduled
        """
        now = self.clock.now()
        title, body = notification_message(block, self.clock.zone)

        def record(
            status: NotificationStatus,
            notification_id: str | None = None,
            **stamps: datetime,
        ) -> None:
            history.append(
                NotificationHistoryItem(
                    id=f"hist_{block.id}_{int(now.timestamp() * 1000)}",
                    notification_id=notification_id,
                    schedule_block_id=block.id,
                    kind=block.kind,
                    scheduled_for=block.start,
                    title=title,
                    body=body,
                    status=status,
                    created_at=now,
                    **stamps,
                )
            )

        if not await self.delivery.has_permission():
            self.logger.warning("Reminder permission denied", block_id=block.id)
            record(NotificationStatus.CANCELED, canceled_at=now)
            return None

        if block.start < now:
            self.logger.debug("Block already started, not scheduling", block_id=block.id)
            record(NotificationStatus.SENT, sent_at=block.start)
            return None

        try:
            notification_id = await self.delivery.schedule(
                title=title,
                body=body,
                payload={"schedule_block_id": block.id, "kind": block.kind.value},
                trigger_at=block.start,
            )
        except Exception as e:
            self.logger.error(
                "Failed to schedule reminder",
                block_id=block.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            record(NotificationStatus.CANCELED, canceled_at=now)
            return None

        record(NotificationStatus.SCHEDULED, notification_id)
        self.logger.info(
            "Reminder scheduled",
            block_id=block.id,
            notification_id=notification_id,
            trigger_at=block.start.isoformat(),
        )
        return notification_id

    async def reschedule(
        self, blocks: Iterable[ScheduleBlock], history: NotificationHistory
    ) -> dict[str, str]:
        """Replace all pending reminders with reminders for ``blocks``.

        Cancels everything first, then schedules blocks one at a time. A
        failure on one block does not stop the rest.

        Returns:
            Mapping of block id to delivery handle for scheduled blocks
        """
        await self.cancel_all(history)
        handles: dict[str, str] = {}
        for block in blocks:
            notification_id = await self.schedule_block(block, history)
            if notification_id is not None:
                handles[block.id] = notification_id
        self.logger.info("Reminders rescheduled", scheduled=len(handles))
        return handles

    async def cancel(self, notification_id: str, history: NotificationHistory) -> bool:
        """Cancel one reminder and record it.

        Returns:
            Whether the history entry transitioned
        """
        try:
            await self.delivery.cancel(notification_id)
        except Exception as e:
            self.logger.error(
                "Failed to cancel reminder",
                notification_id=notification_id,
                error=str(e),
            )
            return False
        return history.mark_canceled(notification_id, self.clock.now())

    async def cancel_all(self, history: NotificationHistory) -> int:
        """Cancel every pending reminder and record it.

        Returns:
            Number of history entries canceled
        """
        try:
            await self.delivery.cancel_all()
        except Exception as e:
            self.logger.error("Failed to cancel reminders", error=str(e))
            return 0
        return history.cancel_all_scheduled(self.clock.now())

    def mark_sent(self, notification_id: str, history: NotificationHistory) -> bool:
        """Record that the delivery system fired a reminder."""
        transitioned = history.mark_sent(notification_id, self.clock.now())
        if transitioned:
            self.logger.info("Reminder sent", notification_id=notification_id)
        return transitioned
