"""Tests for the pattern learner."""

from datetime import UTC, date, datetime, timedelta

import pytest
from pydantic import ValidationError

from napcoach.schemas.domain import LearnerState
from napcoach.services.learner import (
    Observation,
    PatternLearner,
    extract_naps,
    extract_wake_windows,
    recency_weight,
    select_recent,
    weighted_ewma,
)
from tests.fixtures.sessions import at, make_session, regular_days

NOW = datetime(2024, 7, 10, 12, 0, tzinfo=UTC)


def obs(value: float, days_old: float) -> Observation:
    return Observation(value, NOW - timedelta(days=days_old), "s")


class TestExtraction:
    """Tests for signal extraction."""

    def test_wake_windows_from_gaps(self) -> None:
        day = date(2024, 7, 9)
        sessions = [
            make_session(at(day, 9), 60),
            make_session(at(day, 12), 60),
            make_session(at(day, 13, 10), 60),
            make_session(at(day, 23), 60),
        ]
        windows = extract_wake_windows(sessions)
        # 10 minute gap is too short, 530 minute gap too long
        assert [w.value_min for w in windows] == [120]
        assert windows[0].observed_at == at(day, 12)

    def test_wake_windows_ignore_deleted_and_order(self) -> None:
        day = date(2024, 7, 9)
        sessions = [
            make_session(at(day, 13), 60),
            make_session(at(day, 11), 60, deleted=True),
            make_session(at(day, 9), 60),
        ]
        assert [w.value_min for w in extract_wake_windows(sessions)] == [180]

    def test_naps_are_daytime_and_short(self) -> None:
        day = date(2024, 7, 9)
        sessions = [
            make_session(at(day, 5), 60),
            make_session(at(day, 9), 45),
            make_session(at(day, 12), 240),
            make_session(at(day, 19, 59), 30),
            make_session(at(day, 20), 30),
        ]
        assert [n.value_min for n in extract_naps(sessions, "UTC")] == [45, 30]


class TestWeighting:
    """Tests for recency weighting and smoothing."""

    def test_recency_weight_decays(self) -> None:
        assert recency_weight(NOW, NOW) == 1.0
        assert recency_weight(NOW - timedelta(days=10), NOW) == pytest.approx(0.3679, abs=1e-4)
        assert recency_weight(NOW - timedelta(days=31), NOW) == 0.0

    def test_future_observation_counts_as_today(self) -> None:
        assert recency_weight(NOW + timedelta(days=2), NOW) == 1.0

    def test_weighted_ewma(self) -> None:
        assert weighted_ewma([obs(100, 0), obs(200, 0)], NOW, 100) == pytest.approx(115)

    def test_weighted_ewma_all_weights_zero(self) -> None:
        assert weighted_ewma([obs(100, 40), obs(200, 45)], NOW, 123) == 123

    def test_weighted_ewma_favours_recent(self) -> None:
        result = weighted_ewma([obs(100, 0), obs(200, 20)], NOW, 150)
        assert result < 150

    def test_select_recent_prefers_two_weeks(self) -> None:
        observations = [obs(100, 20), obs(110, 3)]
        assert [o.value_min for o in select_recent(observations, NOW)] == [110]

    def test_select_recent_falls_back_to_all(self) -> None:
        observations = [obs(100, 20), obs(110, 25)]
        assert select_recent(observations, NOW) == observations


class TestPatternLearner:
    """Tests for learner state updates."""

    def test_cold_start_uses_baseline(self, clock, profile) -> None:
        day = date(2024, 7, 9)
        sessions = [make_session(at(day, 9), 60), make_session(at(day, 12), 60)]
        state = PatternLearner(clock).update(sessions, profile)
        assert state.ewma_wake_window_min == 120
        assert state.ewma_nap_length_min == 90
        assert state.confidence == 0.1
        assert state.last_updated == clock.now()

    def test_deleted_sessions_do_not_count(self, clock, profile) -> None:
        day = date(2024, 7, 9)
        sessions = [
            make_session(at(day, 9), 60),
            make_session(at(day, 12), 60),
            make_session(at(day, 15), 60, deleted=True),
        ]
        assert PatternLearner(clock).update(sessions, profile).confidence == 0.1

    def test_regular_data_is_confident(self, clock, profile) -> None:
        sessions = regular_days(date(2024, 7, 9), 5)
        state = PatternLearner(clock).update(sessions, profile)
        assert 0.7 <= state.confidence <= 1.0
        # Clamped to the 4-6 month bounds
        assert 90 <= state.ewma_wake_window_min <= 150
        assert 60 <= state.ewma_nap_length_min <= 120

    def test_previous_state_smooths(self, clock, profile) -> None:
        sessions = regular_days(date(2024, 7, 9), 5)
        learner = PatternLearner(clock)
        fresh = learner.update(sessions, profile)
        previous = LearnerState(
            ewma_wake_window_min=120,
            ewma_nap_length_min=60,
            last_updated=clock.now() - timedelta(days=1),
            confidence=0.5,
        )
        smoothed = learner.update(sessions, profile, previous)
        assert smoothed.ewma_nap_length_min < fresh.ewma_nap_length_min
        assert previous.ewma_nap_length_min == 60

    def test_confidence_needs_three_observations(self, clock) -> None:
        learner = PatternLearner(clock)
        assert learner.confidence([obs(120, 0)], [obs(60, 0)], NOW) == 0.1

    def test_inconsistent_wake_windows_lower_confidence(self, clock) -> None:
        learner = PatternLearner(clock)
        steady = [obs(120, 0), obs(120, 0), obs(120, 0)]
        erratic = [obs(30, 0), obs(120, 0), obs(400, 0)]
        assert learner.confidence(erratic, [], NOW) < learner.confidence(steady, [], NOW)

    def test_accessors_gate_on_confidence(self, clock, profile) -> None:
        learner = PatternLearner(clock)
        untrusted = LearnerState(
            ewma_wake_window_min=140,
            ewma_nap_length_min=70,
            last_updated=clock.now(),
            confidence=0.2,
        )
        trusted = untrusted.model_copy(update={"confidence": 0.25})
        assert learner.learned_wake_window(untrusted, profile) == 120
        assert learner.learned_nap_length(untrusted, profile) == 90
        assert learner.learned_wake_window(trusted, profile) == 140
        assert learner.learned_nap_length(trusted, profile) == 70
        assert learner.learned_wake_window(None, profile) == 120

    def test_state_is_immutable(self, clock, profile) -> None:
        state = PatternLearner(clock).update([], profile)
        with pytest.raises(ValidationError):
            state.confidence = 0.9  # type: ignore[misc]
