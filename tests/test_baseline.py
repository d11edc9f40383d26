"""Tests for age baselines."""

from datetime import UTC, date, datetime

import pytest

from napcoach.services.baseline import (
    AGE_BASELINE_TABLE,
    AgeRange,
    FutureBirthDateError,
    InvalidBirthDateError,
    age_months,
    clamp_nap_length,
    clamp_wake_window,
    describe_age_range,
    get_age_range,
    get_baseline_for_age,
    get_baseline_for_profile,
)


class TestAgeRange:
    """Tests for age bucketing."""

    @pytest.mark.parametrize(
        ("months", "expected"),
        [
            (0, AgeRange.ZERO_TO_THREE),
            (3.99, AgeRange.ZERO_TO_THREE),
            (4, AgeRange.FOUR_TO_SIX),
            (6.5, AgeRange.FOUR_TO_SIX),
            (7, AgeRange.SEVEN_TO_NINE),
            (10, AgeRange.TEN_TO_TWELVE),
            (12.9, AgeRange.TEN_TO_TWELVE),
            (13, AgeRange.THIRTEEN_TO_EIGHTEEN),
            (18.99, AgeRange.THIRTEEN_TO_EIGHTEEN),
            (19, AgeRange.NINETEEN_PLUS),
            (40, AgeRange.NINETEEN_PLUS),
        ],
    )
    def test_bucket_boundaries(self, months: float, expected: AgeRange) -> None:
        assert get_age_range(months) is expected

    def test_negative_age_rejected(self) -> None:
        with pytest.raises(ValueError):
            get_age_range(-0.1)

    def test_every_bucket_has_a_row(self) -> None:
        assert set(AGE_BASELINE_TABLE) == set(AgeRange)

    def test_rows_are_ordered(self) -> None:
        for row in AGE_BASELINE_TABLE.values():
            assert row.min_wake_window_min <= row.typical_wake_window_min
            assert row.typical_wake_window_min <= row.max_wake_window_min
            assert row.min_nap_length_min <= row.typical_nap_length_min
            assert row.typical_nap_length_min <= row.max_nap_length_min

    def test_description(self) -> None:
        assert describe_age_range(AgeRange.FOUR_TO_SIX) == "4-6 months"


class TestAgeMonths:
    """Tests for fractional age."""

    def test_whole_months(self) -> None:
        ref = datetime(2024, 4, 15, tzinfo=UTC)
        assert age_months("2024-01-15", ref, "UTC") == pytest.approx(3.0)

    def test_half_month(self) -> None:
        ref = datetime(2024, 4, 16, tzinfo=UTC)
        assert age_months(date(2024, 4, 1), ref, "UTC") == pytest.approx(0.5)

    def test_month_end_birthday(self) -> None:
        ref = datetime(2024, 2, 29, tzinfo=UTC)
        assert age_months("2024-01-31", ref, "UTC") == pytest.approx(1.0)

    def test_born_today(self) -> None:
        assert age_months("2024-07-10", datetime(2024, 7, 10, tzinfo=UTC), "UTC") == 0

    def test_future_birth_date(self) -> None:
        with pytest.raises(FutureBirthDateError, match="Birth date cannot be in the future"):
            age_months("2024-07-11", datetime(2024, 7, 10, 12, tzinfo=UTC), "UTC")

    def test_invalid_birth_date(self) -> None:
        with pytest.raises(InvalidBirthDateError, match="Invalid birth date: soon"):
            age_months("soon", datetime(2024, 7, 10, tzinfo=UTC), "UTC")

    def test_profile_lookup(self, profile) -> None:
        baseline = get_baseline_for_profile(profile, datetime(2024, 7, 10, tzinfo=UTC), "UTC")
        assert baseline is AGE_BASELINE_TABLE[AgeRange.FOUR_TO_SIX]


class TestClamping:
    """Tests for clipping learned values to age bounds."""

    def test_wake_window_clamped(self) -> None:
        assert clamp_wake_window(30, 5) == 90
        assert clamp_wake_window(400, 5) == 150
        assert clamp_wake_window(130, 5) == 130

    def test_nap_length_clamped(self) -> None:
        assert clamp_nap_length(10, 15) == 90
        assert clamp_nap_length(200, 15) == 150

    def test_baseline_for_age(self) -> None:
        assert get_baseline_for_age(8).typical_nap_count == 2
