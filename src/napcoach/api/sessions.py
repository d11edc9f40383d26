"""Profile, storage, session log and learner endpoints."""

from dataclasses import asdict
from typing import Any

from litestar import Router, delete, get, patch, post, put
from litestar.exceptions import NotFoundException, ValidationException
from litestar.status_codes import HTTP_200_OK, HTTP_201_CREATED
from sqlalchemy.ext.asyncio import AsyncSession

from napcoach.api.deps import ProfileData, load_profile_data, validate_profile_id
from napcoach.core.timeutil import Clock
from napcoach.schemas.domain import BabyProfile
from napcoach.schemas.requests import ProfileInput, SessionCreate, SessionUpdate
from napcoach.services.baseline import (
    age_months,
    describe_age_range,
    get_age_range,
)
from napcoach.services.delivery import SchedulerDelivery
from napcoach.services.learner import PatternLearner, active_sessions
from napcoach.services.notifications import NotificationHistory, NotificationPlanner
from napcoach.services.sessions import SessionLog, SessionNotFoundError, sessions_for_day
from napcoach.services.storage import SleepStore


async def _relearn(data: ProfileData, clock: Clock) -> dict[str, Any]:
    """Re-run the learner after the session log changed and persist it."""
    state = PatternLearner(clock).update(data.sessions, data.profile, data.state)
    await data.store.save_sessions(data.sessions)
    await data.store.save_learner_state(state)
    return state.model_dump(mode="json")


@put("/profiles/{profile_id:str}/profile", status_code=HTTP_200_OK)
async def put_profile(
    profile_id: str,
    data: ProfileInput,
    session: AsyncSession,
    clock: Clock,
) -> dict[str, Any]:
    """Create or replace the baby profile."""
    validate_profile_id(profile_id)
    try:
        months = age_months(data.birth_date, clock.now(), clock.zone)
    except ValueError as e:
        raise ValidationException(str(e)) from e

    profile = BabyProfile(id=profile_id, name=data.name, birth_date=data.birth_date)
    await SleepStore(session, profile_id).save_profile(profile)
    return {
        **profile.model_dump(mode="json"),
        "age_months": round(months, 2),
        "age_range": describe_age_range(get_age_range(months)),
    }


@get("/profiles/{profile_id:str}/profile", status_code=HTTP_200_OK)
async def get_profile(profile_id: str, session: AsyncSession) -> dict[str, Any]:
    """Get the baby profile."""
    data = await load_profile_data(session, profile_id)
    return data.profile.model_dump(mode="json")


@delete("/profiles/{profile_id:str}", status_code=HTTP_200_OK)
async def delete_profile(
    profile_id: str,
    session: AsyncSession,
    clock: Clock,
    delivery: SchedulerDelivery,
) -> dict[str, Any]:
    """Cancel pending reminders and delete everything stored for the profile."""
    store = SleepStore(session, validate_profile_id(profile_id))
    loaded = await store.load_notification_history()
    history = NotificationHistory(loaded.value)
    canceled = await NotificationPlanner(delivery.scoped(profile_id), clock).cancel_all(history)
    await store.clear_all()
    return {"profile_id": profile_id, "canceled": canceled}


@get("/profiles/{profile_id:str}/storage", status_code=HTTP_200_OK)
async def get_storage_info(profile_id: str, session: AsyncSession) -> dict[str, Any]:
    """Which documents are stored for the profile, and their schema version."""
    info = await SleepStore(session, validate_profile_id(profile_id)).storage_info()
    return asdict(info)


@get("/profiles/{profile_id:str}/sessions", status_code=HTTP_200_OK)
async def list_sessions(
    profile_id: str,
    session: AsyncSession,
    clock: Clock,
    day: str | None = None,
    include_deleted: bool = False,
) -> dict[str, Any]:
    """List sleep sessions.

    Query params:
    - day: Only sessions that started on this local day (YYYY-MM-DD)
    - include_deleted: Include soft-deleted sessions (ignored with day)
    """
    data = await load_profile_data(session, profile_id)
    if day is not None:
        sessions = sessions_for_day(data.sessions, day, clock.zone)
    elif include_deleted:
        sessions = sorted(data.sessions, key=lambda s: s.start)
    else:
        sessions = active_sessions(data.sessions)
    return {
        "sessions": [s.model_dump(mode="json") for s in sessions],
        "storage_reset": data.storage_reset,
    }


@post("/profiles/{profile_id:str}/sessions", status_code=HTTP_201_CREATED)
async def create_session(
    profile_id: str,
    data: SessionCreate,
    session: AsyncSession,
    clock: Clock,
) -> dict[str, Any]:
    """Log a sleep session and refresh the learner state."""
    profile_data = await load_profile_data(session, profile_id)
    try:
        profile_data.sessions, created = SessionLog(clock).add(
            profile_data.sessions,
            data.start,
            data.end,
            quality=data.quality,
            notes=data.notes,
            source=data.source,
        )
    except ValueError as e:
        raise ValidationException(str(e)) from e

    learner_state = await _relearn(profile_data, clock)
    return {"session": created.model_dump(mode="json"), "learner_state": learner_state}


@patch("/profiles/{profile_id:str}/sessions/{session_id:str}", status_code=HTTP_200_OK)
async def update_session(
    profile_id: str,
    session_id: str,
    data: SessionUpdate,
    session: AsyncSession,
    clock: Clock,
) -> dict[str, Any]:
    """Edit a sleep session and refresh the learner state."""
    profile_data = await load_profile_data(session, profile_id)
    try:
        profile_data.sessions, updated = SessionLog(clock).update(
            profile_data.sessions,
            session_id,
            start=data.start,
            end=data.end,
            quality=data.quality,
            notes=data.notes,
        )
    except SessionNotFoundError as e:
        raise NotFoundException(str(e)) from e
    except ValueError as e:
        raise ValidationException(str(e)) from e

    learner_state = await _relearn(profile_data, clock)
    return {"session": updated.model_dump(mode="json"), "learner_state": learner_state}


@delete("/profiles/{profile_id:str}/sessions/{session_id:str}", status_code=HTTP_200_OK)
async def delete_session(
    profile_id: str,
    session_id: str,
    session: AsyncSession,
    clock: Clock,
) -> dict[str, Any]:
    """Soft-delete a sleep session and refresh the learner state."""
    profile_data = await load_profile_data(session, profile_id)
    try:
        profile_data.sessions, deleted = SessionLog(clock).soft_delete(
            profile_data.sessions, session_id
        )
    except SessionNotFoundError as e:
        raise NotFoundException(str(e)) from e

    learner_state = await _relearn(profile_data, clock)
    return {"session": deleted.model_dump(mode="json"), "learner_state": learner_state}


@get("/profiles/{profile_id:str}/learner", status_code=HTTP_200_OK)
async def get_learner(profile_id: str, session: AsyncSession, clock: Clock) -> dict[str, Any]:
    """Get the stored learner state and the values the scheduler will use."""
    data = await load_profile_data(session, profile_id)
    learner = PatternLearner(clock)
    return {
        "learner_state": data.state.model_dump(mode="json") if data.state else None,
        "wake_window_min": learner.learned_wake_window(data.state, data.profile),
        "nap_length_min": learner.learned_nap_length(data.state, data.profile),
        "storage_reset": data.storage_reset,
    }


@post("/profiles/{profile_id:str}/learner/update", status_code=HTTP_200_OK)
async def update_learner(profile_id: str, session: AsyncSession, clock: Clock) -> dict[str, Any]:
    """Re-run the learner over the full session log."""
    data = await load_profile_data(session, profile_id)
    return {"learner_state": await _relearn(data, clock)}


sessions_router = Router(
    path="/",
    route_handlers=[
        put_profile,
        get_profile,
        delete_profile,
        get_storage_info,
        list_sessions,
        create_session,
        update_session,
        delete_session,
        get_learner,
        update_learner,
    ],
    tags=["Sessions"],
)
