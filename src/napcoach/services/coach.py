"""Coach rule engine.

Runs a fixed list of detectors over recent sessions and turns what they find
into severity-ranked tips. Each detector is a plain function from a
``CoachContext`` to at most one ``CoachTip``.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from itertools import pairwise
from statistics import fmean

import structlog

from napcoach.core.timeutil import (
    Clock,
    Zone,
    day_key,
    days_ago,
    duration_minutes,
    format_duration,
    local_hour,
    minutes_of_day,
)
from napcoach.schemas.domain import (
    BabyProfile,
    CoachTip,
    LearnerState,
    SleepSession,
    TipSeverity,
    TipType,
)
from napcoach.services.learner import (
    MAX_WAKE_WINDOW_MIN,
    MIN_WAKE_WINDOW_MIN,
    PatternLearner,
    active_sessions,
    is_daytime_nap,
)

logger = structlog.get_logger()

MIN_SESSIONS_FOR_TIPS = 3

# Short nap streak
SHORT_NAP_MIN = 30
SHORT_NAP_LOOKBACK_DAYS = 5
SHORT_NAP_SAMPLE = 5
SHORT_NAP_STREAK = 3
SHORT_NAP_HIGH_STREAK = 4

# Overtired
OVERTIRED_LOOKBACK_DAYS = 7
OVERTIRED_MULTIPLIER = 1.2
OVERTIRED_HIGH_MULTIPLIER = 1.5

# Night sleep (bedtime shift and split night)
NIGHT_LOOKBACK_DAYS = 3
NIGHT_START_HOUR = 18
NIGHT_MIN_DURATION_MIN = 240
REFERENCE_BEDTIME_MIN = 19 * 60
BEDTIME_SHIFT_MIN = 30
BEDTIME_SHIFT_HIGH_MIN = 60
SPLIT_NIGHT_GAP_MIN = 60
SPLIT_NIGHT_HIGH_GAP_MIN = 120

SEVERITY_ORDER = {TipSeverity.HIGH: 0, TipSeverity.MEDIUM: 1, TipSeverity.LOW: 2}


@dataclass(frozen=True)
class CoachContext:
    """Inputs shared by every detector."""

    sessions: list[SleepSession]
    now: datetime
    zone: Zone
    learned_wake_window_min: float

    def recent(self, days: int) -> list[SleepSession]:
        """Sessions started within the last ``days`` whole days, oldest first."""
        return [s for s in self.sessions if days_ago(self.now, s.start) <= days]

    def tip_id(self, rule: str) -> str:
        return f"tip_{rule}_{self.now:%Y%m%d%H%M}"


def is_night_sleep(session: SleepSession, tz: Zone = None) -> bool:
    """Evening start and long enough to be the night's sleep."""
    return (
        local_hour(session.start, tz) >= NIGHT_START_HOUR
        and session.duration_min >= NIGHT_MIN_DURATION_MIN
    )


def detect_short_nap_streak(ctx: CoachContext) -> CoachTip | None:
    """Several of the most recent naps were under 30 minutes."""
    naps = [s for s in ctx.recent(SHORT_NAP_LOOKBACK_DAYS) if is_daytime_nap(s, ctx.zone)]
    latest = sorted(naps, key=lambda s: s.start, reverse=True)[:SHORT_NAP_SAMPLE]
    short = [s for s in latest if s.duration_min < SHORT_NAP_MIN]
    if len(short) < SHORT_NAP_STREAK:
        return None

    percent = round(len(short) / len(latest) * 100)
    average = fmean(s.duration_min for s in short)
    return CoachTip(
        id=ctx.tip_id("short_nap_streak"),
        type=TipType.WARNING,
        title="Short Nap Streak",
        message=(
            f"Baby had {len(short)} short naps (less than {SHORT_NAP_MIN} minutes) recently. "
            "Consider earlier bedtime to prevent overtiredness."
        ),
        justification=(
            f"{len(short)} of the last {len(latest)} naps ({percent}%) were shorter than "
            f"{SHORT_NAP_MIN} minutes, averaging {average:.0f} minutes."
        ),
        severity=TipSeverity.HIGH if len(short) >= SHORT_NAP_HIGH_STREAK else TipSeverity.MEDIUM,
        related_session_ids=[s.id for s in short],
        related_day_keys=sorted({day_key(s.start, ctx.zone) for s in short}),
        created_at=ctx.now,
    )


def detect_overtired(ctx: CoachContext) -> CoachTip | None:
    """A recent wake window ran well past the learned target."""
    recent = ctx.recent(OVERTIRED_LOOKBACK_DAYS)
    if len(recent) < 2:
        return None

    target = ctx.learned_wake_window_min
    threshold = target * OVERTIRED_MULTIPLIER
    longest: tuple[float, SleepSession, SleepSession] | None = None
    for previous, current in pairwise(recent):
        gap = duration_minutes(previous.end, current.start)
        if not MIN_WAKE_WINDOW_MIN <= gap <= MAX_WAKE_WINDOW_MIN or gap <= threshold:
            continue
        if longest is None or gap > longest[0]:
            longest = (gap, previous, current)
    if longest is None:
        return None

    gap, previous, current = longest
    over_percent = round((gap / target - 1) * 100)
    return CoachTip(
        id=ctx.tip_id("overtired"),
        type=TipType.WARNING,
        title="Overtired Warning",
        message=(
            f"Baby's wake window was {format_duration(gap)} "
            f"(target: {format_duration(target)}). "
            "Try starting wind-down 15 minutes earlier next time."
        ),
        justification=(
            f"Wake window of {gap:.0f} minutes was {over_percent}% longer than the "
            f"{target:.0f}-minute target."
        ),
        severity=(
            TipSeverity.HIGH if gap > target * OVERTIRED_HIGH_MULTIPLIER else TipSeverity.MEDIUM
        ),
        related_session_ids=[previous.id, current.id],
        related_day_keys=[day_key(current.start, ctx.zone)],
        created_at=ctx.now,
    )


def detect_bedtime_shift(ctx: CoachContext) -> CoachTip | None:
    """Average bedtime drifted away from 19:00."""
    bedtimes = [s for s in ctx.recent(NIGHT_LOOKBACK_DAYS) if is_night_sleep(s, ctx.zone)]
    if len(bedtimes) < 2:
        return None

    average = fmean(minutes_of_day(s.start, ctx.zone) for s in bedtimes)
    shift = average - REFERENCE_BEDTIME_MIN
    if abs(shift) <= BEDTIME_SHIFT_MIN:
        return None

    direction = "later" if shift > 0 else "earlier"
    hours, minutes = divmod(round(average), 60)
    return CoachTip(
        id=ctx.tip_id("bedtime_shift"),
        type=TipType.SUGGESTION,
        title="Bedtime Shift Detected",
        message=(
            f"Bedtime has been drifting {format_duration(abs(shift))} {direction} than 7:00 PM. "
            "Consider adjusting gradually by 15 minutes per day."
        ),
        justification=(
            f"Average bedtime over the last {len(bedtimes)} nights was {hours:02d}:{minutes:02d}, "
            f"{abs(shift):.0f} minutes {direction} than the 19:00 reference."
        ),
        severity=(
            TipSeverity.HIGH if abs(shift) > BEDTIME_SHIFT_HIGH_MIN else TipSeverity.MEDIUM
        ),
        related_session_ids=[s.id for s in bedtimes],
        related_day_keys=sorted({day_key(s.start, ctx.zone) for s in bedtimes}),
        created_at=ctx.now,
    )


def detect_split_night(ctx: CoachContext) -> CoachTip | None:
    """Night sleep on one day was broken by a long wake period."""
    by_day: dict[str, list[SleepSession]] = {}
    for session in ctx.recent(NIGHT_LOOKBACK_DAYS):
        if is_night_sleep(session, ctx.zone):
            by_day.setdefault(day_key(session.start, ctx.zone), []).append(session)

    for key, nights in by_day.items():
        if len(nights) < 2:
            continue
        for previous, current in pairwise(sorted(nights, key=lambda s: s.start)):
            gap = duration_minutes(previous.end, current.start)
            if gap <= SPLIT_NIGHT_GAP_MIN:
                continue
            return CoachTip(
                id=ctx.tip_id("split_night"),
                type=TipType.WARNING,
                title="Split Night Detected",
                message=(
                    f"Night sleep was interrupted with a {format_duration(gap)} wake period. "
                    "Keep night wakings calm and dark, and review daytime sleep totals."
                ),
                justification=(
                    f"Found {len(nights)} night sleep sessions on {key} with a "
                    f"{gap:.0f}-minute gap between them."
                ),
                severity=(
                    TipSeverity.HIGH if gap > SPLIT_NIGHT_HIGH_GAP_MIN else TipSeverity.MEDIUM
                ),
                related_session_ids=[previous.id, current.id],
                related_day_keys=[key],
                created_at=ctx.now,
            )
    return None


Detector = Callable[[CoachContext], CoachTip | None]

DETECTORS: tuple[Detector, ...] = (
    detect_short_nap_streak,
    detect_overtired,
    detect_bedtime_shift,
    detect_split_night,
)


def sort_tips(tips: Iterable[CoachTip]) -> list[CoachTip]:
    """Order by severity, then newest first."""
    newest_first = sorted(tips, key=lambda t: t.created_at, reverse=True)
    return sorted(newest_first, key=lambda t: SEVERITY_ORDER[t.severity])


def tips_for_day(tips: Iterable[CoachTip], key: str) -> list[CoachTip]:
    """Tips that relate to a given local day (``YYYY-MM-DD``)."""
    return [t for t in tips if key in t.related_day_keys]


class CoachEngine:
    """Generate advisory tips from the session log."""

    def __init__(
        self,
        clock: Clock | None = None,
        learner: PatternLearner | None = None,
        detectors: tuple[Detector, ...] = DETECTORS,
    ) -> None:
        """Initialize coach engine.

        Args:
            clock: Source of "now" and the local zone
            learner: Supplies the learned wake window for the overtired rule
            detectors: Rules to run, in order
        """
        self.clock = clock or Clock()
        self.learner = learner or PatternLearner(self.clock)
        self.detectors = detectors
        self.logger = logger.bind(service="coach")

    def generate_tips(
        self,
        sessions: Iterable[SleepSession],
        state: LearnerState | None,
        profile: BabyProfile,
    ) -> list[CoachTip]:
        """Run every detector and rank the resulting tips.

        Args:
            sessions: Session log (deleted sessions are ignored)
            state: Current learner state
            profile: Baby profile

        Returns:
            Tips sorted by severity then recency; empty with fewer than three
            active sessions
        """
        active = active_sessions(sessions)
        if len(active) < MIN_SESSIONS_FOR_TIPS:
            return []

        now = self.clock.now()
        ctx = CoachContext(
            sessions=active,
            now=now,
            zone=self.clock.zone,
            learned_wake_window_min=self.learner.learned_wake_window(state, profile, now),
        )
        tips = [tip for detect in self.detectors if (tip := detect(ctx)) is not None]
        self.logger.debug(
            "Coach tips generated",
            profile_id=profile.id,
            sessions=len(active),
            tips=[t.title for t in tips],
        )
        return sort_tips(tips)
