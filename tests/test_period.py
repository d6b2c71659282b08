"""Unit tests for period window arithmetic."""

import datetime as dt

import pytest

from wagerboard.errors import ConfigError
from wagerboard.services.period import (
    MS_PER_DAY,
    compute_window,
    iso_no_ms,
    parse_anchor_ms,
    ymd_utc,
)


def _ms(iso: str) -> int:
    return int(dt.datetime.fromisoformat(iso).replace(tzinfo=dt.timezone.utc).timestamp() * 1000)


ANCHOR = _ms("2025-01-01T00:00:00")
WEEK = 7 * MS_PER_DAY


class TestComputeWindow:
    """Test window computation against a fixed anchor."""

    def test_weekly_example(self):
        """Ten days after the anchor falls in the second week."""
        window = compute_window(ANCHOR, WEEK, 0, _ms("2025-01-10T00:00:00"))

        assert window.period_index == 1
        assert window.after_ms == _ms("2025-01-08T00:00:00")
        assert window.before_ms == _ms("2025-01-15T00:00:00")
        assert window.duration_ms == WEEK

    def test_previous_adjoins_current(self):
        now = _ms("2025-03-17T12:34:56")
        current = compute_window(ANCHOR, WEEK, 0, now)
        previous = compute_window(ANCHOR, WEEK, -1, now)

        assert previous.before_ms == current.after_ms
        assert previous.period_index == current.period_index - 1

    @pytest.mark.parametrize("duration", [1, 3_600_000, WEEK, 14 * MS_PER_DAY])
    @pytest.mark.parametrize("offset", [-3, -1, 0, 2])
    def test_window_invariants(self, duration, offset):
        now = _ms("2025-06-01T08:00:00")
        window = compute_window(ANCHOR, duration, offset, now)
        following = compute_window(ANCHOR, duration, offset + 1, now)

        assert window.before_ms == window.after_ms + duration
        assert window.after_ms == ANCHOR + window.period_index * duration
        assert following.after_ms == window.before_ms

    def test_future_anchor_clamps_to_zero(self):
        future = _ms("2030-01-01T00:00:00")
        window = compute_window(future, WEEK, 0, ANCHOR)

        assert window.period_index == 0
        assert window.after_ms == future

    def test_future_anchor_previous_is_negative_index(self):
        future = _ms("2030-01-01T00:00:00")
        window = compute_window(future, WEEK, -1, ANCHOR)

        assert window.period_index == -1
        assert window.before_ms == future

    def test_now_on_boundary_starts_new_period(self):
        window = compute_window(ANCHOR, WEEK, 0, ANCHOR + WEEK)
        assert window.period_index == 1
        assert window.after_ms == ANCHOR + WEEK

    @pytest.mark.parametrize("duration", [0, -5, float("nan")])
    def test_invalid_duration(self, duration):
        with pytest.raises(ConfigError):
            compute_window(ANCHOR, duration, 0, ANCHOR)

    def test_invalid_anchor(self):
        with pytest.raises(ConfigError):
            compute_window("2025-01-01", WEEK, 0, ANCHOR)


class TestAnchorParsing:

    def test_zulu_suffix(self):
        assert parse_anchor_ms("2025-01-01T00:00:00Z") == ANCHOR

    def test_explicit_offset(self):
        assert parse_anchor_ms("2025-01-01T01:00:00+01:00") == ANCHOR

    def test_naive_is_utc(self):
        assert parse_anchor_ms("2025-01-01T00:00:00") == ANCHOR

    @pytest.mark.parametrize("value", [None, "", "   ", "not-a-date", "2025-13-01T00:00:00Z"])
    def test_rejects_bad_values(self, value):
        with pytest.raises(ConfigError):
            parse_anchor_ms(value, "ROSTAKE_START_ISO")


class TestEncoders:

    def test_iso_without_millis(self):
        assert iso_no_ms(ANCHOR + 123) == "2025-01-01T00:00:00Z"

    def test_calendar_day(self):
        assert ymd_utc(ANCHOR + WEEK - 1) == "2025-01-07"
