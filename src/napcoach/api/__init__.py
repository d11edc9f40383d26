"""API routes."""

from litestar import Router

from napcoach.api.health import health_router
from napcoach.api.notifications import notifications_router
from napcoach.api.planning import planning_router
from napcoach.api.sessions import sessions_router
from napcoach.core.config import settings

# Profile endpoints get the versioned prefix
_v1_routers = [
    sessions_router,  # Profile, session log, learner
    planning_router,  # Schedule, what-if, coach tips
    notifications_router,  # Reminder sync and history
]

api_v1_router = Router(path=settings.api_prefix, route_handlers=_v1_routers)

# - health_router: /health - no version prefix
# - api_v1_router: /api/v1/* - profile endpoints
api_routers = [health_router, api_v1_router]

__all__ = ["api_routers"]
