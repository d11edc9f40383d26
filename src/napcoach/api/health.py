"""Liveness endpoint."""

from typing import Any

from litestar import Router, get
from litestar.status_codes import HTTP_200_OK

from napcoach import __version__
from napcoach.core.timeutil import Clock
from napcoach.services.delivery import SchedulerDelivery


@get("/health", status_code=HTTP_200_OK, sync_to_thread=False)
def health_check(clock: Clock, delivery: SchedulerDelivery) -> dict[str, Any]:
    """Report version, local zone and reminder scheduler state."""
    return {
        "status": "ok",
        "version": __version__,
        "timezone": str(clock.zone),
        "reminders": {
            "enabled": delivery.enabled,
            "running": delivery.is_running,
        },
    }


health_router = Router(path="/", route_handlers=[health_check])
