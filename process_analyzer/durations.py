from __future__ import annotations

import re

from process_analyzer.config import DEFAULT_WORKDAY_HOURS
from process_analyzer.records import UNKNOWN

# A number glued to a word character or a unit followed by a bracket is a
# diagram node id such as S1D[...] or N2H(...), not a duration.
NUMBER_START = r"(?<!\w)"
UNIT_END = r"\b(?![\[{(])"

# Longer unit spellings come first so "minutes" is not cut to "min".
DURATION_UNIT = rf"(?:minutes?|mins?|hours?|hrs?|h|days?|d){UNIT_END}"
DURATION_TOKEN_PATTERN = re.compile(
    rf"{NUMBER_START}(\d+)\s*(minutes?|mins?|hours?|hrs?|h|days?|d){UNIT_END}",
    flags=re.IGNORECASE,
)

_HOURS_PATTERN = re.compile(rf"{NUMBER_START}(\d+(?:\.\d+)?)\s*(?:hours?|hrs?|h){UNIT_END}", flags=re.IGNORECASE)
_MINUTES_PATTERN = re.compile(rf"{NUMBER_START}(\d+(?:\.\d+)?)\s*(?:minutes?|mins?|m){UNIT_END}", flags=re.IGNORECASE)
_DAYS_PATTERN = re.compile(rf"{NUMBER_START}(\d+(?:\.\d+)?)\s*(?:days?|d){UNIT_END}", flags=re.IGNORECASE)
_BARE_NUMBER_PATTERN = re.compile(r"(\d+(?:\.\d+)?)")


def unit_minutes(unit: str, *, workday_hours: int = DEFAULT_WORKDAY_HOURS) -> int:
    """Minutes represented by one of ``unit``; days use the workday length."""

    lowered = unit.lower()
    if lowered.startswith("h"):
        return 60
    if lowered.startswith("m"):
        return 1
    return workday_hours * 60


def find_duration_tokens(text: str) -> list[tuple[int, str, str]]:
    """Return ``(value, unit, raw_token)`` for every duration token in ``text``."""

    tokens: list[tuple[int, str, str]] = []
    for match in DURATION_TOKEN_PATTERN.finditer(text or ""):
        tokens.append((int(match.group(1)), match.group(2), match.group(0).strip()))
    return tokens


def sum_duration_tokens(text: str, *, workday_hours: int = DEFAULT_WORKDAY_HOURS) -> int | None:
    """Sum every duration token in ``text`` in minutes; ``None`` when there are none."""

    tokens = find_duration_tokens(text)
    if not tokens:
        return None
    return sum(value * unit_minutes(unit, workday_hours=workday_hours) for value, unit, _ in tokens)


def parse_time_to_minutes(
    time_string: str | None,
    *,
    workday_hours: int = DEFAULT_WORKDAY_HOURS,
) -> float | None:
    """Convert a duration phrase such as ``"2 hours 30 minutes"`` to minutes.

    The first hour, minute and day quantities are added together. A bare
    number is read as minutes. Returns ``None`` for empty, ``"Unknown"`` or
    zero-length input.
    """

    if not time_string or not isinstance(time_string, str) or time_string.strip() == UNKNOWN:
        return None

    total = 0.0
    hours_match = _HOURS_PATTERN.search(time_string)
    if hours_match:
        total += float(hours_match.group(1)) * 60

    minutes_match = _MINUTES_PATTERN.search(time_string)
    if minutes_match:
        total += float(minutes_match.group(1))

    days_match = _DAYS_PATTERN.search(time_string)
    if days_match:
        total += float(days_match.group(1)) * workday_hours * 60

    if total == 0:
        bare = _BARE_NUMBER_PATTERN.search(time_string)
        if bare:
            total = float(bare.group(1))

    return total if total > 0 else None


def _plural(value: int, unit: str) -> str:
    return f"{value} {unit}{'' if value == 1 else 's'}"


def format_minutes(minutes: float | None) -> str:
    if minutes is None:
        return UNKNOWN

    hours, remaining = divmod(int(round(minutes)), 60)
    if hours == 0:
        return _plural(remaining, "minute")
    if remaining == 0:
        return _plural(hours, "hour")
    return f"{_plural(hours, 'hour')} {_plural(remaining, 'minute')}"
