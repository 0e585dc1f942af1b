"""
Streak arithmetic - pure functions, no database.
"""
from datetime import date, datetime, timezone

import pytest

from src.core.exceptions import ValidationError
from src.modules.energy.constants import ENERGY_COSTS, FeatureKind, is_streak_qualifying
from src.modules.energy.service import advance_streak, compute_bonus_progress, resolve_cost, utc_day


def at(day: int, hour: int = 12, minute: int = 0) -> datetime:
    return datetime(2026, 3, day, hour, minute, tzinfo=timezone.utc)


def test_first_action_starts_streak():
    assert advance_streak(0, None, None, at(2)) == (1, date(2026, 3, 2))


def test_same_day_keeps_streak():
    assert advance_streak(2, date(2026, 3, 1), at(2, 8), at(2, 22)) == (2, date(2026, 3, 1))


def test_next_day_extends_streak():
    assert advance_streak(2, date(2026, 3, 1), at(2, 22), at(3, 7)) == (3, date(2026, 3, 1))


def test_gap_resets_streak():
    assert advance_streak(5, date(2026, 3, 1), at(5), at(7)) == (1, date(2026, 3, 7))


def test_days_are_utc_calendar_days():
    last = datetime(2026, 3, 2, 23, 50, tzinfo=timezone.utc)
    now = datetime(2026, 3, 3, 0, 5, tzinfo=timezone.utc)
    assert advance_streak(1, date(2026, 3, 2), last, now) == (2, date(2026, 3, 2))


def test_naive_timestamps_read_as_utc():
    assert utc_day(datetime(2026, 3, 2, 23, 59)) == date(2026, 3, 2)


@pytest.mark.parametrize(
    "streak_days,expected",
    [
        (0, (0, 3)),
        (1, (1, 2)),
        (2, (2, 1)),
        (3, (3, 0)),
        (4, (1, 2)),
        (6, (3, 0)),
    ],
)
def test_bonus_progress(streak_days, expected):
    assert compute_bonus_progress(streak_days, 3) == expected


def test_export_does_not_count_toward_streak():
    assert not is_streak_qualifying(FeatureKind.EXPORT_PDF)
    assert is_streak_qualifying(FeatureKind.LUNA_CHAT)


def test_resolve_cost_uses_price_table():
    assert resolve_cost("cv.generate") == (FeatureKind.CV_GENERATE, ENERGY_COSTS[FeatureKind.CV_GENERATE])
    assert resolve_cost(FeatureKind.LUNA_CHAT, cost_override=7) == (FeatureKind.LUNA_CHAT, 7)


def test_resolve_cost_rejects_bad_input():
    with pytest.raises(ValidationError):
        resolve_cost("teleport.generate")
    with pytest.raises(ValidationError):
        resolve_cost(FeatureKind.LUNA_CHAT, cost_override=-1)
