"""Pattern learner for wake windows and nap lengths.

Derives two signals from the session log, weights each observation by how
recent it is, and folds the weighted mean into the previous estimate with an
exponentially weighted moving average (EWMA). The result is clamped to the
age baseline and paired with a confidence score that the scheduler and coach
use to decide whether to trust it.
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from itertools import pairwise
from statistics import fmean, pstdev

import structlog

from napcoach.core.timeutil import Clock, Zone, days_ago, duration_minutes, local_hour
from napcoach.schemas.domain import BabyProfile, LearnerState, SleepSession
from napcoach.services.baseline import (
    AgeBaseline,
    age_months,
    clamp_nap_length,
    clamp_wake_window,
    get_baseline_for_age,
    get_baseline_for_profile,
)

logger = structlog.get_logger()

LEARNER_STATE_VERSION = 1
EWMA_ALPHA = 0.3

# Data sufficiency
MIN_SESSIONS_FOR_LEARNING = 3
MIN_OBSERVATIONS_FOR_CONFIDENCE = 3

# Confidence bounds and the threshold above which learned values are used
MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0
TRUSTED_CONFIDENCE = 0.2

# Signal extraction
MIN_WAKE_WINDOW_MIN = 15
MAX_WAKE_WINDOW_MIN = 480
MAX_NAP_LENGTH_MIN = 240
DAYTIME_START_HOUR = 6
DAYTIME_END_HOUR = 20

# Recency weighting
PREFERRED_WINDOW_DAYS = 14
RECENCY_DECAY_DAYS = 10
MAX_OBSERVATION_AGE_DAYS = 30

# Confidence blend
RECENCY_WEIGHT = 0.4
CONSISTENCY_WEIGHT = 0.3
VOLUME_WEIGHT = 0.3
VOLUME_SATURATION = 5
DEFAULT_CONSISTENCY = 0.5


@dataclass(frozen=True)
class Observation:
    """One extracted signal value (minutes) and when it was observed."""

    value_min: float
    observed_at: datetime
    session_id: str


def active_sessions(sessions: Iterable[SleepSession]) -> list[SleepSession]:
    """Non-deleted sessions in chronological order."""
    return sorted((s for s in sessions if not s.deleted), key=lambda s: s.start)


def is_daytime_nap(session: SleepSession, tz: Zone = None) -> bool:
    """Whether a session counts as a daytime nap."""
    if session.duration_min >= MAX_NAP_LENGTH_MIN:
        return False
    return DAYTIME_START_HOUR <= local_hour(session.start, tz) < DAYTIME_END_HOUR


def extract_wake_windows(sessions: Iterable[SleepSession]) -> list[Observation]:
    """Gaps between consecutive sessions within the plausible wake range.

    Each gap is dated by the start of the session that ended it.
    """
    windows = []
    for previous, current in pairwise(active_sessions(sessions)):
        gap = duration_minutes(previous.end, current.start)
        if MIN_WAKE_WINDOW_MIN <= gap <= MAX_WAKE_WINDOW_MIN:
            windows.append(Observation(gap, current.start, current.id))
    return windows


def extract_naps(sessions: Iterable[SleepSession], tz: Zone = None) -> list[Observation]:
    """Durations of daytime naps, oldest first."""
    return [
        Observation(s.duration_min, s.start, s.id)
        for s in active_sessions(sessions)
        if is_daytime_nap(s, tz)
    ]


def recency_weight(observed_at: datetime, now: datetime) -> float:
    """Exponential recency weight, zero beyond the maximum observation age."""
    age_days = max(0, days_ago(now, observed_at))
    if age_days > MAX_OBSERVATION_AGE_DAYS:
        return 0.0
    return math.exp(-age_days / RECENCY_DECAY_DAYS)


def select_recent(observations: list[Observation], now: datetime) -> list[Observation]:
    """Observations from the preferred window, or all of them if none are recent."""
    recent = [o for o in observations if days_ago(now, o.observed_at) <= PREFERRED_WINDOW_DAYS]
    return recent or observations


def weighted_ewma(observations: list[Observation], now: datetime, previous: float) -> float:
    """Blend the recency-weighted mean into the previous estimate.

    Returns the previous estimate unchanged when every weight is zero.
    """
    weights = [recency_weight(o.observed_at, now) for o in observations]
    total_weight = sum(weights)
    if total_weight == 0:
        return previous
    weighted_mean = sum(w * o.value_min for w, o in zip(weights, observations)) / total_weight
    return EWMA_ALPHA * weighted_mean + (1 - EWMA_ALPHA) * previous


class PatternLearner:
    """Learns wake-window and nap-length estimates from sleep sessions."""

    def __init__(self, clock: Clock | None = None) -> None:
        """Initialize learner.

        Args:
            clock: Source of "now" and the local zone
        """
        self.clock = clock or Clock()
        self.logger = logger.bind(service="learner")

    def update(
        self,
        sessions: Iterable[SleepSession],
        profile: BabyProfile,
        previous: LearnerState | None = None,
    ) -> LearnerState:
        """Compute a fresh learner state.

        Args:
            sessions: Full session log (deleted sessions are ignored)
            profile: Baby profile, for age-based defaults and bounds
            previous: Prior state to smooth against, if any

        Returns:
            New learner state; the previous one is never modified
        """
        now = self.clock.now()
        months = age_months(profile.birth_date, now, self.clock.zone)
        baseline = get_baseline_for_age(months)
        active = active_sessions(sessions)

        if len(active) < MIN_SESSIONS_FOR_LEARNING:
            self.logger.info(
                "Insufficient sessions, seeding from age baseline",
                profile_id=profile.id,
                sessions=len(active),
            )
            return LearnerState(
                version=LEARNER_STATE_VERSION,
                ewma_wake_window_min=baseline.typical_wake_window_min,
                ewma_nap_length_min=baseline.typical_nap_length_min,
                last_updated=now,
                confidence=MIN_CONFIDENCE,
            )

        wake_windows = extract_wake_windows(active)
        naps = extract_naps(active, self.clock.zone)

        wake_window = self._smooth(
            wake_windows,
            now,
            previous.ewma_wake_window_min if previous else baseline.typical_wake_window_min,
            baseline.typical_wake_window_min,
        )
        nap_length = self._smooth(
            naps,
            now,
            previous.ewma_nap_length_min if previous else baseline.typical_nap_length_min,
            baseline.typical_nap_length_min,
        )
        confidence = self.confidence(wake_windows, naps, now)

        state = LearnerState(
            version=LEARNER_STATE_VERSION,
            ewma_wake_window_min=clamp_wake_window(wake_window, months),
            ewma_nap_length_min=clamp_nap_length(nap_length, months),
            last_updated=now,
            confidence=confidence,
        )
        self.logger.info(
            "Learner state updated",
            profile_id=profile.id,
            sessions=len(active),
            wake_windows=len(wake_windows),
            naps=len(naps),
            wake_window_min=round(state.ewma_wake_window_min, 1),
            nap_length_min=round(state.ewma_nap_length_min, 1),
            confidence=round(confidence, 3),
        )
        return state

    def _smooth(
        self,
        observations: list[Observation],
        now: datetime,
        previous: float,
        fallback: float,
    ) -> float:
        if not observations:
            return fallback
        return weighted_ewma(select_recent(observations, now), now, previous)

    def confidence(
        self,
        wake_windows: list[Observation],
        naps: list[Observation],
        now: datetime,
    ) -> float:
        """Score how far the learned values can be trusted.

        Blends mean recency, wake-window consistency (1 - coefficient of
        variation) and observation volume, clamped to [0.1, 1.0].
        """
        observations = [*wake_windows, *naps]
        if len(observations) < MIN_OBSERVATIONS_FOR_CONFIDENCE:
            return MIN_CONFIDENCE

        recency = fmean(recency_weight(o.observed_at, now) for o in observations)

        consistency = DEFAULT_CONSISTENCY
        if len(wake_windows) >= MIN_OBSERVATIONS_FOR_CONFIDENCE:
            values = [o.value_min for o in wake_windows]
            avg = fmean(values)
            cv = pstdev(values) / avg if avg > 0 else 1.0
            consistency = max(0.0, 1 - cv)

        volume = min(1.0, len(observations) / VOLUME_SATURATION)

        score = RECENCY_WEIGHT * recency + CONSISTENCY_WEIGHT * consistency + VOLUME_WEIGHT * volume
        return min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, score))

    def learned_wake_window(
        self, state: LearnerState | None, profile: BabyProfile, at: datetime | None = None
    ) -> float:
        """Learned wake window when trusted, otherwise the age baseline."""
        if state is not None and state.confidence > TRUSTED_CONFIDENCE:
            return state.ewma_wake_window_min
        return self._baseline(profile, at).typical_wake_window_min

    def learned_nap_length(
        self, state: LearnerState | None, profile: BabyProfile, at: datetime | None = None
    ) -> float:
        """Learned nap length when trusted, otherwise the age baseline."""
        if state is not None and state.confidence > TRUSTED_CONFIDENCE:
            return state.ewma_nap_length_min
        return self._baseline(profile, at).typical_nap_length_min

    def _baseline(self, profile: BabyProfile, at: datetime | None) -> AgeBaseline:
        reference = at or self.clock.now()
        return get_baseline_for_profile(profile, reference, self.clock.zone)
