"""Reminder endpoints."""

from typing import Any

from litestar import Router, get, post
from litestar.status_codes import HTTP_200_OK
from sqlalchemy.ext.asyncio import AsyncSession

from napcoach.api.deps import load_profile_data, validate_profile_id
from napcoach.core.timeutil import Clock
from napcoach.schemas.domain import NotificationStatus
from napcoach.services.delivery import SchedulerDelivery
from napcoach.services.notifications import NotificationHistory, NotificationPlanner
from napcoach.services.schedule import ScheduleGenerator
from napcoach.services.storage import SleepStore


@post("/profiles/{profile_id:str}/notifications/sync", status_code=HTTP_200_OK)
async def sync_notifications(
    profile_id: str,
    session: AsyncSession,
    clock: Clock,
    delivery: SchedulerDelivery,
) -> dict[str, Any]:
    """Replace pending reminders with reminders for the current schedule."""
    data = await load_profile_data(session, profile_id)
    blocks = ScheduleGenerator(clock).all_blocks(data.sessions, data.state, data.profile)

    loaded = await data.store.load_notification_history()
    history = NotificationHistory(loaded.value)
    planner = NotificationPlanner(delivery.scoped(profile_id), clock)
    scheduled = await planner.reschedule(blocks, history)
    await data.store.save_notification_history(history.items)

    return {
        "scheduled": scheduled,
        "blocks": len(blocks),
        "storage_reset": data.storage_reset or loaded.corrupted,
    }


@post("/profiles/{profile_id:str}/notifications/cancel-all", status_code=HTTP_200_OK)
async def cancel_all_notifications(
    profile_id: str,
    session: AsyncSession,
    clock: Clock,
    delivery: SchedulerDelivery,
) -> dict[str, int]:
    """Cancel every pending reminder."""
    store = SleepStore(session, validate_profile_id(profile_id))
    loaded = await store.load_notification_history()
    history = NotificationHistory(loaded.value)
    canceled = await NotificationPlanner(delivery.scoped(profile_id), clock).cancel_all(history)
    await store.save_notification_history(history.items)
    return {"canceled": canceled}


@get("/profiles/{profile_id:str}/notifications/history", status_code=HTTP_200_OK)
async def get_notification_history(
    profile_id: str,
    session: AsyncSession,
    clock: Clock,
    status: NotificationStatus | None = None,
) -> dict[str, Any]:
    """Get the notification history, newest first.

    Query params:
    - status: scheduled (upcoming only), sent or canceled
    """
    store = SleepStore(session, validate_profile_id(profile_id))
    loaded = await store.load_notification_history()
    history = NotificationHistory(loaded.value)
    if status is NotificationStatus.SCHEDULED:
        items = history.upcoming(clock.now())
    elif status is NotificationStatus.SENT:
        items = history.sent()
    elif status is NotificationStatus.CANCELED:
        items = history.canceled()
    else:
        items = list(reversed(history.items))
    return {
        "items": [i.model_dump(mode="json") for i in items],
        "storage_reset": loaded.corrupted,
    }


@get("/profiles/{profile_id:str}/notifications/scheduled", status_code=HTTP_200_OK)
async def get_scheduled_reminders(
    profile_id: str,
    delivery: SchedulerDelivery,
) -> dict[str, Any]:
    """Reminders pending in the delivery system."""
    reminders = await delivery.scoped(validate_profile_id(profile_id)).list_scheduled()
    return {"reminders": [r.model_dump(mode="json") for r in reminders]}


notifications_router = Router(
    path="/",
    route_handlers=[
        sync_notifications,
        cancel_all_notifications,
        get_notification_history,
        get_scheduled_reminders,
    ],
    tags=["Notifications"],
)
