"""Persistence for engine state as versioned JSON blobs.

Each profile owns one row per ``BlobKey``. Payloads are validated with
pydantic on read; an unreadable payload is deleted and reported through
``LoadResult.corrupted`` so callers can start over from empty state instead
of failing.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Generic, TypeVar

import structlog
from pydantic import TypeAdapter
from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from napcoach.models.blob import StoredBlob
from napcoach.schemas.domain import (
    BabyProfile,
    LearnerState,
    NotificationHistoryItem,
    SleepSession,
)
from napcoach.services.notifications import HISTORY_LIMIT

logger = structlog.get_logger()

T = TypeVar("T")

CURRENT_SCHEMA_VERSION = 1

# Upgrades a payload from version N to N + 1
MIGRATIONS: dict[int, Callable[[Any], Any]] = {
    0: lambda document: document,
}


class BlobKey(str, Enum):
    """Stored document keys."""

    SESSIONS = "sleep_sessions"
    LEARNER_STATE = "learner_state"
    NOTIFICATION_HISTORY = "notification_history"
    PROFILE = "baby_profile"


_SESSIONS = TypeAdapter(list[SleepSession])
_LEARNER_STATE = TypeAdapter(LearnerState | None)
_HISTORY = TypeAdapter(list[NotificationHistoryItem])
_PROFILE = TypeAdapter(BabyProfile | None)


@dataclass
class LoadResult(Generic[T]):
    """A loaded value and whether storage had to be reset to produce it."""

    value: T
    corrupted: bool = False


@dataclass
class StorageInfo:
    """What a profile currently has stored."""

    schema_version: int | None
    has_sessions: bool
    has_learner_state: bool
    has_notification_history: bool
    has_profile: bool


class SleepStore:
    """Load and save one profile's engine state."""

    def __init__(
        self,
        session: AsyncSession,
        profile_id: str,
        history_limit: int = HISTORY_LIMIT,
    ) -> None:
        """Initialize store.

        Args:
            session: Database session (the caller commits)
            profile_id: Profile the documents belong to
            history_limit: Notification history entries kept on save
        """
        self.session = session
        self.profile_id = profile_id
        self.history_limit = history_limit
        self.logger = logger.bind(service="storage", profile_id=profile_id)

    async def load_sessions(self) -> LoadResult[list[SleepSession]]:
        return await self._load(BlobKey.SESSIONS, _SESSIONS, [])

    async def save_sessions(self, sessions: list[SleepSession]) -> None:
        await self._save(BlobKey.SESSIONS, _SESSIONS, sessions)

    async def load_learner_state(self) -> LoadResult[LearnerState | None]:
        return await self._load(BlobKey.LEARNER_STATE, _LEARNER_STATE, None)

    async def save_learner_state(self, state: LearnerState | None) -> None:
        await self._save(BlobKey.LEARNER_STATE, _LEARNER_STATE, state)

    async def load_notification_history(self) -> LoadResult[list[NotificationHistoryItem]]:
        return await self._load(BlobKey.NOTIFICATION_HISTORY, _HISTORY, [])

    async def save_notification_history(self, items: list[NotificationHistoryItem]) -> None:
        """Save history, keeping only the most recent entries."""
        await self._save(BlobKey.NOTIFICATION_HISTORY, _HISTORY, items[-self.history_limit :])

    async def load_profile(self) -> LoadResult[BabyProfile | None]:
        return await self._load(BlobKey.PROFILE, _PROFILE, None)

    async def save_profile(self, profile: BabyProfile) -> None:
        await self._save(BlobKey.PROFILE, _PROFILE, profile)

    async def clear_all(self) -> None:
        """Delete every document of this profile."""
        await self.session.execute(
            delete(StoredBlob).where(StoredBlob.profile_id == self.profile_id)
        )
        await self.session.flush()
        self.logger.info("Storage cleared")

    async def storage_info(self) -> StorageInfo:
        result = await self.session.execute(
            select(StoredBlob.key, StoredBlob.schema_version).where(
                StoredBlob.profile_id == self.profile_id
            )
        )
        versions = {key: version for key, version in result.all()}
        return StorageInfo(
            schema_version=max(versions.values()) if versions else None,
            has_sessions=BlobKey.SESSIONS.value in versions,
            has_learner_state=BlobKey.LEARNER_STATE.value in versions,
            has_notification_history=BlobKey.NOTIFICATION_HISTORY.value in versions,
            has_profile=BlobKey.PROFILE.value in versions,
        )

    async def _get(self, key: BlobKey) -> StoredBlob | None:
        result = await self.session.execute(
            select(StoredBlob)
            .where(
                StoredBlob.profile_id == self.profile_id,
                StoredBlob.key == key.value,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _load(self, key: BlobKey, adapter: TypeAdapter[T], fallback: T) -> LoadResult[T]:
        row = await self._get(key)
        if row is None:
            return LoadResult(fallback)

        try:
            if row.schema_version > CURRENT_SCHEMA_VERSION:
                raise ValueError(f"Unsupported schema version {row.schema_version}")
            document = json.loads(row.payload)
            for version in range(row.schema_version, CURRENT_SCHEMA_VERSION):
                document = MIGRATIONS[version](document)
            value = adapter.validate_python(document)
        except ValueError as e:
            # json and pydantic validation errors are both ValueErrors
            self.logger.warning(
                "Stored document unreadable, resetting",
                key=key.value,
                schema_version=row.schema_version,
                error=str(e),
            )
            await self.session.delete(row)
            await self.session.flush()
            return LoadResult(fallback, corrupted=True)

        if row.schema_version != CURRENT_SCHEMA_VERSION:
            self.logger.info(
                "Migrated stored document",
                key=key.value,
                from_version=row.schema_version,
                to_version=CURRENT_SCHEMA_VERSION,
            )
            row.schema_version = CURRENT_SCHEMA_VERSION
            row.payload = adapter.dump_json(value).decode()
            await self.session.flush()
        return LoadResult(value)

    async def _save(self, key: BlobKey, adapter: TypeAdapter[T], value: T) -> None:
        document = {
            "schema_version": CURRENT_SCHEMA_VERSION,
            "payload": adapter.dump_json(value).decode(),
            "updated_at": datetime.now(UTC),
        }

        # Upsert the document
        stmt = insert(StoredBlob).values(profile_id=self.profile_id, key=key.value, **document)
        stmt = stmt.on_conflict_do_update(index_elements=["profile_id", "key"], set_=document)
        await self.session.execute(stmt)

        self.logger.debug("Document saved", key=key.value)
