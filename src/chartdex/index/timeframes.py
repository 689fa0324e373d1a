"""Canonical chart timeframes and the raw-token normalization table."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional


class Timeframe(str, Enum):
    """Closed set of chart interval codes, in canonical display order."""

    M1 = "1m"
    M3 = "3m"
    M5 = "5m"
    M15 = "15m"
    H1 = "1h"
    H4 = "4h"

    def __str__(self) -> str:
        return self.value


_TOKEN_TABLE: dict[str, Timeframe] = {
    "1m": Timeframe.M1,
    "1min": Timeframe.M1,
    "3m": Timeframe.M3,
    "3min": Timeframe.M3,
    "5m": Timeframe.M5,
    "5min": Timeframe.M5,
    "15m": Timeframe.M15,
    "15min": Timeframe.M15,
    "1h": Timeframe.H1,
    "4h": Timeframe.H4,
}

_ORDER = {timeframe: position for position, timeframe in enumerate(Timeframe)}


def normalize_timeframe(
    raw_token: str, enabled: Optional[Iterable[Timeframe]] = None
) -> Optional[Timeframe]:
    """Map a raw filename token to its canonical timeframe.

    Args:
        raw_token: Token taken from a filename, e.g. ``"15min"`` or ``"1H"``.
        enabled: Optional set of timeframes that are currently indexed.

    Returns:
        Optional[Timeframe]: Canonical timeframe, or ``None`` when the token is
        unknown or its timeframe is not enabled.
    """
    timeframe = _TOKEN_TABLE.get(raw_token.lower())
    if timeframe is None:
        return None
    if enabled is not None and timeframe not in set(enabled):
        return None
    return timeframe


def coerce_timeframe(value: object) -> Timeframe:
    """Return the timeframe for user-supplied input, raising on unknown values."""
    if isinstance(value, Timeframe):
        return value
    timeframe = normalize_timeframe(str(value).strip())
    if timeframe is None:
        accepted = ", ".join(tf.value for tf in Timeframe)
        raise ValueError(f"Unknown timeframe {value!r}; expected one of {accepted}.")
    return timeframe


def sort_timeframes(timeframes: Iterable[Timeframe]) -> list[Timeframe]:
    """Return timeframes in canonical order (shortest interval first)."""
    return sorted(timeframes, key=_ORDER.__getitem__)


__all__ = ["Timeframe", "normalize_timeframe", "coerce_timeframe", "sort_timeframes"]
