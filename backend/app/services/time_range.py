from __future__ import annotations

import re

from app.core.exceptions import InvalidFormatError

# ASCII digits only; fullmatch so a trailing newline is rejected.
TIME_PATTERN = re.compile(r"([0-9]{2}):([0-9]{2})")


def to_minutes(value: str) -> int:
    """Convert an ``HH:MM`` wall-clock value into minutes after midnight."""
    match = TIME_PATTERN.fullmatch(value or "")
    if match is None:
        raise InvalidFormatError(f"Invalid time {value!r}: expected HH:MM", details={"value": value})
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise InvalidFormatError(f"Invalid time {value!r}: hour or minute out of range", details={"value": value})
    return hours * 60 + minutes


def minutes_to_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    # Half-open ranges: 08:00-10:00 and 10:00-12:00 only touch.
    return start_a < end_b and start_b < end_a


def validate_range(start_time: str, end_time: str) -> tuple[int, int]:
    start = to_minutes(start_time)
    end = to_minutes(end_time)
    if start >= end:
        raise InvalidFormatError(
            f"Start time {start_time} must be before end time {end_time}",
            details={"start_time": start_time, "end_time": end_time},
        )
    return start, end
