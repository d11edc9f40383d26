"""Sleep session builders for tests."""

from datetime import UTC, date, datetime, time, timedelta
from itertools import count

from napcoach.schemas.domain import BlockKind, ScheduleBlock, SleepSession

_ids = count(1)


def make_session(
    start: datetime | str,
    minutes: float,
    *,
    session_id: str | None = None,
    deleted: bool = False,
) -> SleepSession:
    """Session starting at ``start`` lasting ``minutes``."""
    if isinstance(start, str):
        start = datetime.fromisoformat(start)
    if start.tzinfo is None:
        start = start.replace(tzinfo=UTC)
    end = start + timedelta(minutes=minutes)
    return SleepSession(
        id=session_id or f"s{next(_ids)}",
        start=start,
        end=end,
        deleted=deleted,
        updated_at=end,
    )


def at(day: date, hour: int, minute: int = 0) -> datetime:
    """UTC instant on a day."""
    return datetime.combine(day, time(hour, minute), tzinfo=UTC)


def regular_days(last_day: date, days: int) -> list[SleepSession]:
    """Days of two naps (60 and 75 min) and an 11 hour night, ending on ``last_day``.

    Wake windows come out as 180, 180 and 285 minutes each day.
    """
    sessions = []
    for offset in range(days - 1, -1, -1):
        day = last_day - timedelta(days=offset)
        sessions.append(make_session(at(day, 9), 60))
        sessions.append(make_session(at(day, 13), 75))
        sessions.append(make_session(at(day, 19), 660))
    return sessions


def make_block(
    kind: BlockKind,
    start: datetime,
    minutes: float = 60,
    block_id: str | None = None,
) -> ScheduleBlock:
    """Schedule block for reminder tests."""
    return ScheduleBlock(
        id=block_id or f"schedule_{kind.value}_{start:%Y-%m-%d_%H-%M}",
        kind=kind,
        start=start,
        end=start + timedelta(minutes=minutes),
        confidence=0.5,
        rationale="test block",
    )
