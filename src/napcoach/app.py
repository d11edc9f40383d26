"""Litestar application factory."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from litestar import Litestar
from litestar.datastructures import State
from litestar.di import Provide
from litestar.openapi import OpenAPIConfig
from sqlalchemy.ext.asyncio import AsyncEngine

from napcoach import __version__
from napcoach.api import api_routers
from napcoach.api.deps import provide_clock, provide_delivery, provide_session
from napcoach.core.config import settings
from napcoach.core.database import (
    close_database,
    create_session_maker,
    get_session,
    init_database,
)
from napcoach.core.database import engine as default_engine
from napcoach.core.logging import configure_logging
from napcoach.core.timeutil import Clock
from napcoach.services.delivery import SchedulerDelivery
from napcoach.services.notifications import NotificationHistory
from napcoach.services.storage import SleepStore

configure_logging()

logger = structlog.get_logger()


def create_app(
    engine: AsyncEngine | None = None,
    clock: Clock | None = None,
    delivery: SchedulerDelivery | None = None,
) -> Litestar:
    """Create Litestar application.

    Args:
        engine: Database engine, defaults to the configured one
        clock: Clock for all requests, defaults to the system clock
        delivery: Reminder delivery, defaults to an APScheduler-backed one

    Returns:
        Configured Litestar app instance
    """
    bind = engine or default_engine
    session_maker = create_session_maker(bind)
    clock = clock or Clock(settings.timezone)

    async def on_reminder_fired(profile_id: str, notification_id: str) -> None:
        """Move the fired reminder's history entry to sent."""
        async with get_session(session_maker) as session:
            store = SleepStore(session, profile_id)
            loaded = await store.load_notification_history()
            history = NotificationHistory(loaded.value)
            if history.mark_sent(notification_id, clock.now()):
                await store.save_notification_history(history.items)

    delivery = delivery or SchedulerDelivery(on_fired=on_reminder_fired)

    @asynccontextmanager
    async def lifespan(app: Litestar) -> AsyncIterator[None]:
        """Application lifespan manager.

        Handles startup and shutdown tasks:
        - Create missing tables on startup
        - Start the reminder scheduler
        - Stop the scheduler and close connections on shutdown
        """
        logger.info(
            "Starting napcoach",
            version=__version__,
            timezone=str(clock.zone),
            notifications_enabled=delivery.enabled,
        )
        await init_database(bind)
        await delivery.start()

        yield

        await delivery.stop()
        if engine is None:
            await close_database(bind)
        logger.info("Shutdown complete")

    return Litestar(
        route_handlers=api_routers,
        lifespan=[lifespan],
        state=State(
            {
                "session_maker": session_maker,
                "clock": clock,
                "delivery": delivery,
            }
        ),
        dependencies={
            "session": Provide(provide_session),
            "clock": Provide(provide_clock, sync_to_thread=False),
            "delivery": Provide(provide_delivery, sync_to_thread=False),
        },
        openapi_config=OpenAPIConfig(
            title="napcoach API",
            version=__version__,
            description="Infant sleep-pattern learning, schedules and coaching",
        ),
        debug=settings.log_level == "DEBUG",
    )


# Application instance
app = create_app()
