"""Shared dependencies and helpers for API handlers."""

import re
from collections.abc import AsyncGenerator
from dataclasses import dataclass

from litestar.datastructures import State
from litestar.exceptions import NotFoundException, ValidationException
from sqlalchemy.ext.asyncio import AsyncSession

from napcoach.core.database import get_session
from napcoach.core.timeutil import Clock
from napcoach.schemas.domain import BabyProfile, LearnerState, SleepSession
from napcoach.services.delivery import SchedulerDelivery
from napcoach.services.storage import SleepStore

# Regex for valid profile_id format (alphanumeric, underscores, hyphens)
PROFILE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


async def provide_session(state: State) -> AsyncGenerator[AsyncSession, None]:
    """One database session per request, committed when the handler succeeds."""
    async with get_session(state.session_maker) as session:
        yield session


def provide_clock(state: State) -> Clock:
    return state.clock


def provide_delivery(state: State) -> SchedulerDelivery:
    return state.delivery


def validate_profile_id(profile_id: str) -> str:
    """Validate profile_id format.

    Raises:
        ValidationException: If profile_id format is invalid
    """
    if not profile_id or len(profile_id) > 100:
        raise ValidationException("Invalid profile_id: must be 1-100 characters")
    if not PROFILE_ID_PATTERN.match(profile_id):
        raise ValidationException("Invalid profile_id: must be alphanumeric with _ or - only")
    return profile_id


@dataclass
class ProfileData:
    """Everything stored for one profile."""

    store: SleepStore
    profile: BabyProfile
    sessions: list[SleepSession]
    state: LearnerState | None
    storage_reset: bool


async def load_profile_data(session: AsyncSession, profile_id: str) -> ProfileData:
    """Load a profile with its sessions and learner state.

    Raises:
        ValidationException: If profile_id format is invalid
        NotFoundException: If the profile does not exist. ``extra.storage_reset``
            is set when a corrupted profile was just discarded.
    """
    store = SleepStore(session, validate_profile_id(profile_id))
    profile = await store.load_profile()
    if profile.value is None:
        if profile.corrupted:
            # Keep the reset even though the request fails
            await session.commit()
        raise NotFoundException(
            f"Profile not found: {profile_id}",
            extra={"storage_reset": profile.corrupted},
        )
    sessions = await store.load_sessions()
    state = await store.load_learner_state()
    return ProfileData(
        store=store,
        profile=profile.value,
        sessions=sessions.value,
        state=state.value,
        storage_reset=profile.corrupted or sessions.corrupted or state.corrupted,
    )
