"""Age-based sleep baselines.

Developmental reference values used whenever the learner has too little
history, and as clamping bounds for learned values.
"""

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum

from napcoach.core.timeutil import Instant, Zone, to_local
from napcoach.schemas.domain import BabyProfile


class InvalidBirthDateError(ValueError):
    """Raised when a birth date cannot be parsed."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid birth date: {value}")
        self.value = value


class FutureBirthDateError(ValueError):
    """Raised when a birth date lies after the reference time."""

    def __init__(self, birth_date: date) -> None:
        super().__init__("Birth date cannot be in the future")
        self.birth_date = birth_date


class AgeRange(str, Enum):
    """Age buckets of the baseline table."""

    ZERO_TO_THREE = "0-3m"
    FOUR_TO_SIX = "4-6m"
    SEVEN_TO_NINE = "7-9m"
    TEN_TO_TWELVE = "10-12m"
    THIRTEEN_TO_EIGHTEEN = "13-18m"
    NINETEEN_PLUS = "19m+"


@dataclass(frozen=True)
class AgeBaseline:
    """Reference wake-window and nap values for one age bucket (minutes)."""

    typical_wake_window_min: float
    min_wake_window_min: float
    max_wake_window_min: float
    typical_nap_length_min: float
    min_nap_length_min: float
    max_nap_length_min: float
    typical_nap_count: int


AGE_BASELINE_TABLE: dict[AgeRange, AgeBaseline] = {
    AgeRange.ZERO_TO_THREE: AgeBaseline(60, 45, 90, 60, 30, 120, 4),
    AgeRange.FOUR_TO_SIX: AgeBaseline(120, 90, 150, 90, 60, 120, 3),
    AgeRange.SEVEN_TO_NINE: AgeBaseline(150, 120, 180, 90, 60, 120, 2),
    AgeRange.TEN_TO_TWELVE: AgeBaseline(180, 150, 210, 90, 60, 120, 2),
    AgeRange.THIRTEEN_TO_EIGHTEEN: AgeBaseline(210, 180, 240, 120, 90, 150, 1),
    AgeRange.NINETEEN_PLUS: AgeBaseline(300, 240, 360, 120, 60, 180, 1),
}

# Exclusive upper bound (months) of each bucket, in ascending order
_AGE_RANGE_BOUNDS: list[tuple[float, AgeRange]] = [
    (4, AgeRange.ZERO_TO_THREE),
    (7, AgeRange.FOUR_TO_SIX),
    (10, AgeRange.SEVEN_TO_NINE),
    (13, AgeRange.TEN_TO_TWELVE),
    (19, AgeRange.THIRTEEN_TO_EIGHTEEN),
]

_AGE_RANGE_DESCRIPTIONS: dict[AgeRange, str] = {
    AgeRange.ZERO_TO_THREE: "0-3 months",
    AgeRange.FOUR_TO_SIX: "4-6 months",
    AgeRange.SEVEN_TO_NINE: "7-9 months",
    AgeRange.TEN_TO_TWELVE: "10-12 months",
    AgeRange.THIRTEEN_TO_EIGHTEEN: "13-18 months",
    AgeRange.NINETEEN_PLUS: "19+ months",
}


def _parse_birth_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as e:
        raise InvalidBirthDateError(value) from e


def _add_months(value: datetime, months: int) -> datetime:
    years, month_index = divmod(value.month - 1 + months, 12)
    year = value.year + years
    month = month_index + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def age_months(birth_date: date | str, reference: Instant, tz: Zone = None) -> float:
    """Fractional age in months at a reference instant.

    Whole calendar months elapsed plus the elapsed fraction of the current
    month, measured by local wall clock from midnight of the birth date.

    Args:
        birth_date: Date of birth (date or ISO string)
        reference: Instant to measure age at
        tz: Zone whose calendar defines months

    Returns:
        Age in months (>= 0)

    Raises:
        InvalidBirthDateError: If the birth date is unparseable
        FutureBirthDateError: If the birth date is after the reference
    """
    birth = _parse_birth_date(birth_date)
    ref = to_local(reference, tz).replace(tzinfo=None)
    if birth > ref.date():
        raise FutureBirthDateError(birth)

    born = datetime.combine(birth, time.min)
    whole = (ref.year - born.year) * 12 + (ref.month - born.month)
    anchor = _add_months(born, whole)
    if anchor > ref:
        whole -= 1
        anchor = _add_months(born, whole)
    next_anchor = _add_months(born, whole + 1)
    fraction = (ref - anchor) / (next_anchor - anchor)
    return whole + fraction


def get_age_range(months: float) -> AgeRange:
    """Bucket an age in months.

    Raises:
        ValueError: If the age is negative
    """
    if months < 0:
        raise ValueError(f"Age cannot be negative: {months}")
    for upper, age_range in _AGE_RANGE_BOUNDS:
        if months < upper:
            return age_range
    return AgeRange.NINETEEN_PLUS


def get_baseline_for_age(months: float) -> AgeBaseline:
    """Baseline row for an age in months."""
    return AGE_BASELINE_TABLE[get_age_range(months)]


def get_baseline_for_profile(
    profile: BabyProfile, reference: Instant, tz: Zone = None
) -> AgeBaseline:
    """Baseline row for a profile's age at the reference instant."""
    return get_baseline_for_age(age_months(profile.birth_date, reference, tz))


def describe_age_range(age_range: AgeRange) -> str:
    """Human-readable label, e.g. ``4-6 months``."""
    return _AGE_RANGE_DESCRIPTIONS[age_range]


def clamp_wake_window(value: float, months: float) -> float:
    """Clip a wake window into the age bucket's bounds."""
    baseline = get_baseline_for_age(months)
    return min(max(value, baseline.min_wake_window_min), baseline.max_wake_window_min)


def clamp_nap_length(value: float, months: float) -> float:
    """Clip a nap length into the age bucket's bounds."""
    baseline = get_baseline_for_age(months)
    return min(max(value, baseline.min_nap_length_min), baseline.max_nap_length_min)
