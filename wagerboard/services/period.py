# wagerboard/services/period.py
# ============================================================================
# Fenêtres de période ancrées sur une date fixe
# ============================================================================

from __future__ import annotations

import datetime as dt
import math
import time
from dataclasses import dataclass

from wagerboard.errors import ConfigError

MS_PER_DAY = 24 * 60 * 60 * 1000

PERIOD_OFFSETS = {"current": 0, "previous": -1}


@dataclass(frozen=True)
class PeriodWindow:
    """Half-open interval ``[after_ms, before_ms)`` for one leaderboard cycle."""
    __slots__ = ("after_ms", "before_ms", "period_index", "duration_ms")

    after_ms: int
    before_ms: int
    period_index: int
    duration_ms: int


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_anchor_ms(value: str | None, name: str = "anchor") -> int:
    """
    Parse an ISO-8601 anchor such as ``2026-01-09T00:00:00Z`` into epoch ms.

    Naive timestamps are read as UTC.

    Raises:
        ConfigError: If the value is missing or not a valid instant.
    """
    if not value or not str(value).strip():
        raise ConfigError(f"Missing {name}")
    raw = str(value).strip()
    if raw.endswith("Z") or raw.endswith("z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid {name}: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return int(parsed.timestamp() * 1000)


def compute_window(anchor_ms: int, duration_ms: int, offset: int, now: int) -> PeriodWindow:
    """
    Map ``(anchor, duration, offset, now)`` to a period window.

    An anchor in the future clamps the current index to 0, so "current" is
    always the first period until the anchor is reached.

    Args:
        anchor_ms: Start of period 0, in epoch milliseconds
        duration_ms: Length of one period
        offset: 0 for the current period, -1 for the previous one
        now: Wall clock in epoch milliseconds

    Raises:
        ConfigError: If the duration is not positive or the anchor is not a
            finite number.
    """
    if isinstance(anchor_ms, bool) or not isinstance(anchor_ms, (int, float)) or not math.isfinite(anchor_ms):
        raise ConfigError(f"Invalid anchor: {anchor_ms!r}")
    if isinstance(duration_ms, bool) or not isinstance(duration_ms, (int, float)) \
            or not math.isfinite(duration_ms) or duration_ms <= 0:
        raise ConfigError(f"Invalid period duration: {duration_ms!r}")

    anchor_ms = int(anchor_ms)
    duration_ms = int(duration_ms)

    diff = now - anchor_ms
    current_index = diff // duration_ms if diff >= 0 else 0
    target_index = int(current_index + offset)

    after_ms = anchor_ms + target_index * duration_ms
    return PeriodWindow(
        after_ms=after_ms,
        before_ms=after_ms + duration_ms,
        period_index=target_index,
        duration_ms=duration_ms,
    )


# ---------------------------------------------------------------------------
# Encodages attendus par les APIs
# ---------------------------------------------------------------------------
def iso_no_ms(ms: int) -> str:
    """``2026-01-09T00:00:00Z`` (UTC, no milliseconds)."""
    stamp = dt.datetime.fromtimestamp(ms / 1000, tz=dt.timezone.utc)
    return stamp.strftime("%Y-%m-%dT%H:%M:%SZ")


def ymd_utc(ms: int) -> str:
    """Calendar day in UTC, ``YYYY-MM-DD``."""
    return dt.datetime.fromtimestamp(ms / 1000, tz=dt.timezone.utc).strftime("%Y-%m-%d")
