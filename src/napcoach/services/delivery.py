"""In-process reminder delivery using APScheduler.

Each reminder is a one-shot ``DateTrigger`` job whose id is the handle
returned to the notification planner. A delivery can be scoped to one
profile with ``scoped``; scoped views share the scheduler but only see and
cancel their own reminders.

When a job fires, the reminder is logged and the ``on_fired`` callback is
awaited so the caller can move the matching history entry to ``sent``.

Usage:
    delivery = SchedulerDelivery(on_fired=handle_fired)
    await delivery.start()
    handle = await delivery.schedule(title=..., body=..., payload=..., trigger_at=...)
    await delivery.stop()
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from napcoach.core.config import settings
from napcoach.schemas.domain import ScheduledReminder

if TYPE_CHECKING:
    from apscheduler.job import Job

logger = structlog.get_logger()

HANDLE_PREFIX = "reminder_"

# Called with (scope, notification_id)
OnFired = Callable[[str, str], Awaitable[None]]


class SchedulerDelivery:
    """Reminder delivery backed by an APScheduler ``AsyncIOScheduler``.

    Jobs can be added before the scheduler starts; APScheduler keeps them
    pending until ``start`` is called.

    Attributes:
        scheduler: APScheduler instance
        enabled: Whether reminders are permitted at all
        is_running: Whether the scheduler is currently running
    """

    def __init__(
        self,
        on_fired: OnFired | None = None,
        enabled: bool | None = None,
        scope: str = "",
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        """Initialize delivery.

        Args:
            on_fired: Awaited with the scope and handle when a reminder fires
            enabled: Permission switch, defaults to ``settings.notifications_enabled``
            scope: Restricts handles to one profile, empty for all
            scheduler: Scheduler to share, a new one when omitted
        """
        self.on_fired = on_fired
        self.enabled = settings.notifications_enabled if enabled is None else enabled
        self.scope = scope
        self.scheduler = scheduler or AsyncIOScheduler(timezone=UTC)
        self.is_running = False
        self.logger = logger.bind(component="reminder_delivery", scope=scope or None)

    @property
    def prefix(self) -> str:
        return f"{HANDLE_PREFIX}{self.scope}:" if self.scope else HANDLE_PREFIX

    def scoped(self, scope: str) -> SchedulerDelivery:
        """View of this delivery limited to one scope."""
        return SchedulerDelivery(
            on_fired=self.on_fired,
            enabled=self.enabled,
            scope=scope,
            scheduler=self.scheduler,
        )

    async def start(self) -> None:
        """Start firing reminders."""
        if self.is_running:
            self.logger.warning("Reminder scheduler already running")
            return
        self.scheduler.start()
        self.is_running = True
        self.logger.info("Reminder scheduler started", pending=len(self.scheduler.get_jobs()))

    async def stop(self) -> None:
        """Stop the scheduler, dropping anything not yet fired."""
        if not self.is_running:
            return
        self.scheduler.shutdown(wait=False)
        self.is_running = False
        self.logger.info("Reminder scheduler stopped")

    async def has_permission(self) -> bool:
        return self.enabled

    async def schedule(
        self,
        *,
        title: str,
        body: str,
        payload: dict[str, str],
        trigger_at: datetime,
    ) -> str:
        """Register a one-shot reminder.

        Returns:
            Handle identifying the reminder
        """
        notification_id = f"{self.prefix}{uuid4().hex}"
        self.scheduler.add_job(
            self._fire,
            trigger=DateTrigger(run_date=trigger_at),
            id=notification_id,
            name=title,
            kwargs={
                "scope": self.scope,
                "notification_id": notification_id,
                "title": title,
                "body": body,
                "payload": payload,
            },
            replace_existing=True,
        )
        return notification_id

    async def cancel(self, notification_id: str) -> None:
        try:
            self.scheduler.remove_job(notification_id)
        except JobLookupError:
            self.logger.debug("Reminder already gone", notification_id=notification_id)

    async def cancel_all(self) -> None:
        for job in self._reminder_jobs():
            self.scheduler.remove_job(job.id)

    async def list_scheduled(self) -> list[ScheduledReminder]:
        """Reminders that have not fired yet, soonest first."""
        reminders = [
            ScheduledReminder(
                notification_id=job.id,
                trigger_at=job.trigger.run_date,
                title=job.kwargs["title"],
                body=job.kwargs["body"],
                payload=job.kwargs["payload"],
            )
            for job in self._reminder_jobs()
        ]
        return sorted(reminders, key=lambda r: r.trigger_at)

    def _reminder_jobs(self) -> list[Job]:
        return [job for job in self.scheduler.get_jobs() if job.id.startswith(self.prefix)]

    async def _fire(
        self,
        scope: str,
        notification_id: str,
        title: str,
        body: str,
        payload: dict[str, str],
    ) -> None:
        self.logger.info(
            "Reminder fired",
            notification_id=notification_id,
            title=title,
            body=body,
            **payload,
        )
        if self.on_fired is not None:
            await self.on_fired(scope, notification_id)
