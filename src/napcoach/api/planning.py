"""Schedule and coach endpoints."""

from datetime import datetime
from typing import Any

from litestar import Router, get
from litestar.exceptions import ValidationException
from litestar.params import Parameter
from litestar.status_codes import HTTP_200_OK
from sqlalchemy.ext.asyncio import AsyncSession

from napcoach.api.deps import load_profile_data
from napcoach.core.timeutil import Clock, day_key
from napcoach.services.coach import CoachEngine, tips_for_day
from napcoach.services.schedule import ScheduleGenerator, ScheduleOptions


@get("/profiles/{profile_id:str}/schedule", status_code=HTTP_200_OK)
async def get_schedule(
    profile_id: str,
    session: AsyncSession,
    clock: Clock,
    at: datetime | None = Parameter(default=None, description="Reference time, defaults to now"),
) -> dict[str, Any]:
    """Project today's remaining and tomorrow's nap, wind-down and bedtime blocks."""
    data = await load_profile_data(session, profile_id)
    schedule = ScheduleGenerator(clock).generate(
        data.sessions,
        data.state,
        data.profile,
        ScheduleOptions(reference_time=at),
    )
    return {**schedule.model_dump(mode="json"), "storage_reset": data.storage_reset}


@get("/profiles/{profile_id:str}/schedule/what-if", status_code=HTTP_200_OK)
async def get_what_if_schedule(
    profile_id: str,
    session: AsyncSession,
    clock: Clock,
    delta: int = Parameter(description="Wake-window change in minutes, clamped to +/-30"),
    at: datetime | None = Parameter(default=None, description="Reference time, defaults to now"),
) -> dict[str, Any]:
    """Project the schedule with a shifted wake window."""
    data = await load_profile_data(session, profile_id)
    schedule = ScheduleGenerator(clock).what_if(
        data.sessions, data.state, data.profile, delta, reference_time=at
    )
    return {**schedule.model_dump(mode="json"), "storage_reset": data.storage_reset}


@get("/profiles/{profile_id:str}/coach/tips", status_code=HTTP_200_OK)
async def get_coach_tips(
    profile_id: str,
    session: AsyncSession,
    clock: Clock,
    day: str | None = Parameter(default=None, description="Only tips about this day"),
) -> dict[str, Any]:
    """Get coach tips, most severe first."""
    data = await load_profile_data(session, profile_id)
    tips = CoachEngine(clock).generate_tips(data.sessions, data.state, data.profile)
    if day is not None:
        try:
            key = day_key(day, clock.zone)
        except ValueError as e:
            raise ValidationException(str(e)) from e
        tips = tips_for_day(tips, key)
    return {
        "tips": [t.model_dump(mode="json") for t in tips],
        "storage_reset": data.storage_reset,
    }


planning_router = Router(
    path="/",
    route_handlers=[
        get_schedule,
        get_what_if_schedule,
        get_coach_tips,
    ],
    tags=["Planning"],
)
