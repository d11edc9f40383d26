"""Schedule generation from learned (or baseline) sleep patterns.

Projects nap, wind-down and bedtime blocks for today and tomorrow by walking
forward from the last wake-up in steps of the wake window. A what-if mode
re-runs the same projection with the wake window shifted by a bounded delta.
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

import structlog

from napcoach.core.timeutil import (
    Clock,
    at_local_time,
    end_of_day,
    local_date,
    local_hour,
    parse_instant,
    start_of_day,
    to_local,
)
from napcoach.schemas.domain import (
    BabyProfile,
    BlockKind,
    LearnerState,
    Schedule,
    ScheduleBlock,
    SleepSession,
)
from napcoach.services.learner import TRUSTED_CONFIDENCE, PatternLearner, active_sessions

logger = structlog.get_logger()

MAX_NAPS_PER_DAY = 3
NAP_CUTOFF_HOUR = 18
DEFAULT_WAKE_HOUR = 7
MIN_WAKE_WINDOW_MIN = 30
WIND_DOWN_MIN = 30

BEDTIME_EARLIEST_HOUR = 18
BEDTIME_LATEST_HOUR = 21
BEDTIME_ROUNDING_MIN = 15
NIGHT_SLEEP_HOURS = 10

WHAT_IF_RANGE_MIN = 30

# Block confidence decays with lead time
DEFAULT_BASE_CONFIDENCE = 0.3
CONFIDENCE_DECAY_PER_HOUR = 0.05
MAX_CONFIDENCE_DECAY = 0.5
MIN_BLOCK_CONFIDENCE = 0.1

# Rationale labels
HIGH_CONFIDENCE = 0.7
MODERATE_CONFIDENCE = 0.4


@dataclass(frozen=True)
class ScheduleOptions:
    """Knobs for a single schedule projection."""

    wake_window_adjustment_min: float = 0
    reference_time: datetime | None = None
    what_if: bool = False


@dataclass(frozen=True)
class _Plan:
    """Values shared by every block of one projection."""

    wake_window_min: float
    nap_length_min: float
    base_confidence: float
    learned: bool
    adjustment_min: float
    what_if: bool
    reference: datetime


def confidence_label(confidence: float) -> str:
    """Map a confidence score to low / moderate / high."""
    if confidence > HIGH_CONFIDENCE:
        return "high"
    if confidence > MODERATE_CONFIDENCE:
        return "moderate"
    return "low"


def block_confidence(base: float, start: datetime, reference: datetime) -> float:
    """Confidence of a block, decaying with hours of lead time.

    Blocks already in the past are treated as zero lead time.
    """
    hours_ahead = max(0.0, (start - reference).total_seconds() / 3600)
    decay = min(MAX_CONFIDENCE_DECAY, hours_ahead * CONFIDENCE_DECAY_PER_HOUR)
    return max(MIN_BLOCK_CONFIDENCE, base * (1 - decay))


class ScheduleGenerator:
    """Builds today's and tomorrow's schedule blocks."""

    def __init__(self, clock: Clock | None = None, learner: PatternLearner | None = None) -> None:
        """Initialize schedule generator.

        Args:
            clock: Source of "now" and the local zone
            learner: Learner whose accessors supply wake window and nap length
        """
        self.clock = clock or Clock()
        self.learner = learner or PatternLearner(self.clock)
        self.logger = logger.bind(service="schedule")

    def generate(
        self,
        sessions: Iterable[SleepSession],
        state: LearnerState | None,
        profile: BabyProfile,
        options: ScheduleOptions | None = None,
    ) -> Schedule:
        """Project the schedule for today and tomorrow.

        Args:
            sessions: Session log (deleted sessions are ignored)
            state: Current learner state, None before the first learner run
            profile: Baby profile
            options: Adjustment, reference time and what-if tagging

        Returns:
            Today's blocks at or after the reference minute, and all of
            tomorrow's blocks, each sorted by start
        """
        options = options or ScheduleOptions()
        reference = (
            parse_instant(options.reference_time, self.clock.zone)
            if options.reference_time is not None
            else self.clock.now()
        )

        wake_window = self.learner.learned_wake_window(state, profile, reference)
        wake_window = max(MIN_WAKE_WINDOW_MIN, wake_window + options.wake_window_adjustment_min)
        plan = _Plan(
            wake_window_min=wake_window,
            nap_length_min=self.learner.learned_nap_length(state, profile, reference),
            base_confidence=state.confidence if state else DEFAULT_BASE_CONFIDENCE,
            learned=state is not None and state.confidence > TRUSTED_CONFIDENCE,
            adjustment_min=options.wake_window_adjustment_min,
            what_if=options.what_if,
            reference=reference,
        )

        active = active_sessions(sessions)
        today = local_date(reference, self.clock.zone)
        cutoff = reference.replace(second=0, microsecond=0)

        schedule = Schedule(
            today=[b for b in self._plan_day(today, active, plan) if b.start >= cutoff],
            tomorrow=self._plan_day(today + timedelta(days=1), active, plan),
        )
        self.logger.debug(
            "Schedule generated",
            profile_id=profile.id,
            today_blocks=len(schedule.today),
            tomorrow_blocks=len(schedule.tomorrow),
            wake_window_min=round(plan.wake_window_min, 1),
            what_if=plan.what_if,
        )
        return schedule

    def what_if(
        self,
        sessions: Iterable[SleepSession],
        state: LearnerState | None,
        profile: BabyProfile,
        delta_min: float,
        reference_time: datetime | None = None,
    ) -> Schedule:
        """Project the schedule with the wake window shifted by ``delta_min``.

        The delta is clamped to +/-30 minutes.
        """
        clamped = max(-WHAT_IF_RANGE_MIN, min(WHAT_IF_RANGE_MIN, delta_min))
        if clamped != delta_min:
            self.logger.info("What-if delta clamped", requested=delta_min, applied=clamped)
        return self.generate(
            sessions,
            state,
            profile,
            ScheduleOptions(
                wake_window_adjustment_min=clamped,
                reference_time=reference_time,
                what_if=True,
            ),
        )

    def all_blocks(
        self,
        sessions: Iterable[SleepSession],
        state: LearnerState | None,
        profile: BabyProfile,
        options: ScheduleOptions | None = None,
    ) -> list[ScheduleBlock]:
        """Today's remaining blocks followed by tomorrow's."""
        schedule = self.generate(sessions, state, profile, options)
        return [*schedule.today, *schedule.tomorrow]

    def _plan_day(
        self, day: date, sessions: list[SleepSession], plan: _Plan
    ) -> list[ScheduleBlock]:
        zone = self.clock.zone
        wake_window = timedelta(minutes=plan.wake_window_min)
        day_end = end_of_day(day, zone)

        blocks: list[ScheduleBlock] = []
        cursor = self._anchor(day, sessions, plan.reference)
        for _ in range(MAX_NAPS_PER_DAY):
            nap_start = cursor + wake_window
            if nap_start > day_end or local_hour(nap_start, zone) >= NAP_CUTOFF_HOUR:
                break
            nap_end = nap_start + timedelta(minutes=plan.nap_length_min)
            blocks.append(self._block(BlockKind.NAP, nap_start, nap_end, plan))
            cursor = nap_end

        bedtime_start = self._bedtime_start(day, cursor + wake_window)
        blocks.append(
            self._block(
                BlockKind.BEDTIME,
                bedtime_start,
                bedtime_start + timedelta(hours=NIGHT_SLEEP_HOURS),
                plan,
            )
        )
        blocks.append(
            self._block(
                BlockKind.WIND_DOWN,
                bedtime_start - timedelta(minutes=WIND_DOWN_MIN),
                bedtime_start,
                plan,
            )
        )
        return sorted(blocks, key=lambda b: b.start)

    def _anchor(self, day: date, sessions: list[SleepSession], reference: datetime) -> datetime:
        """Last wake-up the day's projection starts from."""
        zone = self.clock.zone
        day_sessions = [s for s in sessions if local_date(s.start, zone) == day]
        if day_sessions:
            return max(day_sessions, key=lambda s: s.start).end
        if reference > start_of_day(day, zone):
            return reference
        return at_local_time(day, DEFAULT_WAKE_HOUR, 0, zone)

    def _bedtime_start(self, day: date, candidate: datetime) -> datetime:
        """Clamp a bedtime into the evening window of ``day``.

        Candidates past the latest hour (or past midnight) become 21:00,
        early ones 18:00, anything else is rounded to the nearest 15 minutes.
        """
        zone = self.clock.zone
        local = to_local(candidate, zone)
        if local.date() > day or local.hour > BEDTIME_LATEST_HOUR:
            return at_local_time(day, BEDTIME_LATEST_HOUR, 0, zone)
        if local.date() < day or local.hour < BEDTIME_EARLIEST_HOUR:
            return at_local_time(day, BEDTIME_EARLIEST_HOUR, 0, zone)
        rounded = math.floor(local.minute / BEDTIME_ROUNDING_MIN + 0.5) * BEDTIME_ROUNDING_MIN
        return at_local_time(day, local.hour, 0, zone) + timedelta(minutes=rounded)

    def _block(self, kind: BlockKind, start: datetime, end: datetime, plan: _Plan) -> ScheduleBlock:
        stamp = to_local(start, self.clock.zone).strftime("%Y-%m-%d_%H-%M")
        return ScheduleBlock(
            id=f"schedule_{kind.value}_{stamp}",
            kind=kind,
            start=start,
            end=end,
            confidence=block_confidence(plan.base_confidence, start, plan.reference),
            rationale=self._rationale(kind, plan),
        )

    def _rationale(self, kind: BlockKind, plan: _Plan) -> str:
        wake = f"{plan.wake_window_min:.0f}min wake window"
        if plan.what_if:
            return (
                f"What-if scenario: {plan.adjustment_min:+.0f}min wake window adjustment ({wake})"
            )

        label = confidence_label(plan.base_confidence)
        if kind is BlockKind.NAP:
            source = (
                f"Based on learned pattern ({label} confidence)"
                if plan.learned
                else "Based on age baseline"
            )
            return f"{source}: {wake}, {plan.nap_length_min:.0f}min nap"
        if kind is BlockKind.BEDTIME:
            if plan.learned:
                return f"Learned bedtime pattern ({label} confidence): {wake} before bed"
            return f"Age-appropriate bedtime window from age baseline: {wake} before bed"
        source = f"learned pattern, {label} confidence" if plan.learned else "age baseline"
        return f"Start wind-down {WIND_DOWN_MIN} minutes before bedtime ({source})"
