"""Sleep session log editing.

Sessions are immutable and never physically removed; every operation
returns a new list alongside the affected session.
"""

from collections.abc import Sequence
from uuid import uuid4

import structlog

from napcoach.core.timeutil import Clock, Instant, Zone, day_key, validate_range
from napcoach.schemas.domain import SessionSource, SleepSession
from napcoach.services.learner import active_sessions

logger = structlog.get_logger()


class SessionNotFoundError(LookupError):
    """Raised when a session id is not in the log."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


def new_session_id() -> str:
    return f"session_{uuid4().hex[:12]}"


def sessions_for_day(
    sessions: Sequence[SleepSession], key: str, tz: Zone = None
) -> list[SleepSession]:
    """Active sessions that started on a local day (``YYYY-MM-DD``)."""
    return [s for s in active_sessions(sessions) if day_key(s.start, tz) == key]


class SessionLog:
    """Add, edit and soft-delete sleep sessions."""

    def __init__(self, clock: Clock | None = None) -> None:
        self.clock = clock or Clock()
        self.logger = logger.bind(service="sessions")

    def add(
        self,
        sessions: Sequence[SleepSession],
        start: Instant,
        end: Instant,
        quality: int | None = None,
        notes: str | None = None,
        source: SessionSource = SessionSource.MANUAL,
    ) -> tuple[list[SleepSession], SleepSession]:
        """Append a new session.

        Raises:
            InvalidTimestampError: If either timestamp is unparseable
            InvertedRangeError: If end is not after start
        """
        parsed_start, parsed_end = validate_range(start, end)
        session = SleepSession(
            id=new_session_id(),
            start=parsed_start,
            end=parsed_end,
            quality=quality,
            notes=notes,
            source=source,
            updated_at=self.clock.now(),
        )
        self.logger.info(
            "Session added",
            session_id=session.id,
            duration_min=round(session.duration_min, 1),
            source=source.value,
        )
        return [*sessions, session], session

    def update(
        self,
        sessions: Sequence[SleepSession],
        session_id: str,
        *,
        start: Instant | None = None,
        end: Instant | None = None,
        quality: int | None = None,
        notes: str | None = None,
    ) -> tuple[list[SleepSession], SleepSession]:
        """Edit a session; fields left as None keep their value.

        Raises:
            SessionNotFoundError: If the session does not exist
            InvertedRangeError: If the edit would invert the range
        """
        existing = self._find(sessions, session_id)
        parsed_start, parsed_end = validate_range(
            existing.start if start is None else start,
            existing.end if end is None else end,
        )
        updated = SleepSession.model_validate(
            {
                **existing.model_dump(),
                "start": parsed_start,
                "end": parsed_end,
                "quality": existing.quality if quality is None else quality,
                "notes": existing.notes if notes is None else notes,
                "updated_at": self.clock.now(),
            }
        )
        self.logger.info("Session updated", session_id=session_id)
        return self._replace(sessions, updated), updated

    def soft_delete(
        self, sessions: Sequence[SleepSession], session_id: str
    ) -> tuple[list[SleepSession], SleepSession]:
        """Flag a session as deleted.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        existing = self._find(sessions, session_id)
        deleted = existing.model_copy(update={"deleted": True, "updated_at": self.clock.now()})
        self.logger.info("Session deleted", session_id=session_id)
        return self._replace(sessions, deleted), deleted

    def _find(self, sessions: Sequence[SleepSession], session_id: str) -> SleepSession:
        for session in sessions:
            if session.id == session_id:
                return session
        raise SessionNotFoundError(session_id)

    @staticmethod
    def _replace(sessions: Sequence[SleepSession], updated: SleepSession) -> list[SleepSession]:
        return [updated if s.id == updated.id else s for s in sessions]

