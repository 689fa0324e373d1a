"""Filename grammar for chart screenshots.

Screenshots are named ``YYYY.MM.DD[-N]_TOKEN.EXT``: the backtest date with dot
separators, an optional sequence number (implicitly ``1``) that distinguishes
several runs on the same day, the raw timeframe token, and an image extension.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable, NamedTuple, Optional

from .timeframes import Timeframe, normalize_timeframe

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp"})
UPLOAD_EXTENSION = "png"

_FILENAME_PATTERN = re.compile(
    r"^(\d{4}\.\d{2}\.\d{2})(?:-(\d+))?_(.+?)\.(jpg|jpeg|png|gif|webp)$",
    re.IGNORECASE,
)
_DATE_KEY_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2})-(\d+)$")


class RawName(NamedTuple):
    """Structural components of a screenshot filename before normalization."""

    date: str
    sequence: int
    token: str
    extension: str


class ParsedName(NamedTuple):
    """Date, sequence, and canonical timeframe recovered from a filename."""

    date: str
    sequence: int
    timeframe: Timeframe

    @property
    def date_key(self) -> str:
        return make_date_key(self.date, self.sequence)


def has_image_extension(filename: str) -> bool:
    """Return True when ``filename`` carries one of the recognized image extensions."""
    _, dot, extension = filename.rpartition(".")
    return bool(dot) and extension.lower() in IMAGE_EXTENSIONS


def match_filename(filename: str) -> Optional[RawName]:
    """Match the structural grammar without interpreting the timeframe token."""
    match = _FILENAME_PATTERN.match(filename)
    if match is None:
        return None
    date_part, sequence_part, token, extension = match.groups()
    return RawName(
        date=date_part.replace(".", "-"),
        sequence=int(sequence_part) if sequence_part else 1,
        token=token,
        extension=extension.lower(),
    )


def parse(filename: str, enabled: Optional[Iterable[Timeframe]] = None) -> Optional[ParsedName]:
    """Parse a screenshot filename.

    Args:
        filename: Bare filename (no directory component).
        enabled: Optional timeframes to accept; others are filtered out.

    Returns:
        Optional[ParsedName]: Parsed components, or ``None`` when the name does
        not follow the grammar, carries a zero sequence, or its timeframe token
        is unknown or disabled.
    """
    raw = match_filename(filename)
    if raw is None or raw.sequence < 1:
        return None
    timeframe = normalize_timeframe(raw.token, enabled)
    if timeframe is None:
        return None
    return ParsedName(date=raw.date, sequence=raw.sequence, timeframe=timeframe)


def make_date_key(date: str, sequence: int) -> str:
    return f"{date}-{sequence}"


def split_date_key(date_key: str) -> tuple[str, int]:
    """Split ``"YYYY-MM-DD-N"`` into its date and sequence parts."""
    match = _DATE_KEY_PATTERN.match(date_key)
    if match is None or int(match.group(2)) < 1:
        raise ValueError(f"Invalid date key {date_key!r}; expected YYYY-MM-DD-N.")
    return match.group(1), int(match.group(2))


def normalize_date(value: str) -> str:
    """Return ``value`` as ``YYYY-MM-DD``, accepting dash or dot separators.

    Raises:
        ValueError: If ``value`` is not a valid calendar date.
    """
    candidate = value.strip().replace(".", "-")
    try:
        parsed = datetime.strptime(candidate, "%Y-%m-%d")
    except ValueError as exc:
        raise ValueError(f"Invalid date {value!r}; expected YYYY-MM-DD.") from exc
    return parsed.strftime("%Y-%m-%d")


def to_filename_date(date: str) -> str:
    return date.replace("-", ".")


def format_filename(
    date: str,
    sequence: int,
    timeframe: Timeframe,
    extension: str = UPLOAD_EXTENSION,
) -> str:
    """Build the on-disk filename for a screenshot."""
    if sequence < 1:
        raise ValueError(f"Sequence must be a positive integer, got {sequence}.")
    return f"{to_filename_date(date)}-{sequence}_{timeframe.value}.{extension}"


__all__ = [
    "IMAGE_EXTENSIONS",
    "UPLOAD_EXTENSION",
    "RawName",
    "ParsedName",
    "has_image_extension",
    "match_filename",
    "parse",
    "make_date_key",
    "split_date_key",
    "normalize_date",
    "to_filename_date",
    "format_filename",
]
