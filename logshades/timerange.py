"""
Time expression resolution.

Turns human time expressions into concrete UTC instant ranges:

- "now"                          -> [reference, reference]
- "5 minutes ago", "an hour ago" -> zero-width range at reference - offset
- "today", "yesterday"           -> the local calendar day
- "2024-01-01", "2024-01-01 12:30", "2024-01-01T00:00:00.000Z"
                                 -> a range as wide as the literal's precision

Relative expressions are resolved against a caller supplied reference
instant, never against the wall clock, so resolution is deterministic.
Literals without an explicit offset are local time; a local time that falls
into a DST fold or gap raises LocalTimeZoneError instead of guessing.

All results are UTC with millisecond precision and are rendered as
RFC 3339 text, e.g. 2024-01-01T00:00:00.000Z.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional, Tuple

from .errors import DateParseError, LocalTimeZoneError


UNITS = {
    "ms": timedelta(milliseconds=1),
    "millisecond": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "sec": timedelta(seconds=1),
    "second": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "min": timedelta(minutes=1),
    "minute": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "hr": timedelta(hours=1),
    "hour": timedelta(hours=1),
    "d": timedelta(days=1),
    "day": timedelta(days=1),
    "w": timedelta(weeks=1),
    "week": timedelta(weeks=1),
}

RELATIVE_PATTERN = re.compile(r"^(?P<count>\d+|an?|one)\s*(?P<unit>[a-z]+)\s+ago$")

ABSOLUTE_PATTERN = re.compile(
    r"^(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})"
    r"(?:[t ](?P<hour>\d{2}):(?P<minute>\d{2})"
    r"(?::(?P<second>\d{2})(?:[.,](?P<fraction>\d{1,9}))?)?)?"
    r"\s*(?P<offset>z|[+-]\d{2}:?\d{2})?$"
)


@dataclass(frozen=True)
class TimeRange:
    """A resolved [start, end) range in UTC."""
    start: datetime
    end: datetime

    @property
    def start_text(self) -> str:
        return format_instant(self.start)

    @property
    def end_text(self) -> str:
        return format_instant(self.end)

    def as_text(self) -> Tuple[str, str]:
        return self.start_text, self.end_text


def utc_now() -> datetime:
    """Current time, UTC, millisecond precision."""
    return truncate(datetime.now(timezone.utc))


def truncate(instant: datetime) -> datetime:
    """Convert to UTC and drop sub-millisecond digits."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    instant = instant.astimezone(timezone.utc)
    return instant.replace(microsecond=instant.microsecond // 1000 * 1000)


def format_instant(instant: datetime) -> str:
    """Render an instant as YYYY-MM-DDTHH:MM:SS.mmmZ."""
    instant = truncate(instant)
    return f"{instant:%Y-%m-%dT%H:%M:%S}.{instant.microsecond // 1000:03d}Z"


def parse_instant(text: str) -> datetime:
    """Parse text produced by format_instant (or any ISO 8601 with offset)."""
    return truncate(datetime.fromisoformat(text.replace("Z", "+00:00")))


def resolve(
    expression: str,
    reference: datetime,
    tz: Optional[tzinfo] = None
) -> TimeRange:
    """
    Resolve a time expression to a UTC range.

    Args:
        expression: Human time expression
        reference: Instant relative expressions are resolved against
        tz: Zone for literals without offset (None = system local zone)

    Raises:
        DateParseError: Expression could not be interpreted
        LocalTimeZoneError: Local time is ambiguous or does not exist
    """
    text = " ".join(expression.strip().lower().split())
    if not text:
        raise DateParseError(expression, "empty expression")

    reference = truncate(reference)

    if text == "now":
        return TimeRange(reference, reference)

    if text in ("today", "yesterday"):
        local_reference = reference.astimezone(tz) if tz else reference.astimezone()
        day = local_reference.date()
        if text == "yesterday":
            day -= timedelta(days=1)
        midnight = datetime(day.year, day.month, day.day)
        return TimeRange(
            _localize(midnight, tz, expression),
            _localize(midnight + timedelta(days=1), tz, expression),
        )

    match = RELATIVE_PATTERN.match(text)
    if match:
        try:
            instant = reference - _relative_offset(match, expression)
        except OverflowError as e:
            raise DateParseError(expression, str(e))
        return TimeRange(instant, instant)

    match = ABSOLUTE_PATTERN.match(text)
    if match:
        return _resolve_absolute(match, expression, tz)

    raise DateParseError(expression, "unrecognized time expression")


def _relative_offset(match: "re.Match", expression: str) -> timedelta:
    count_text = match.group("count")
    count = 1 if count_text in ("a", "an", "one") else int(count_text)

    unit_text = match.group("unit")
    unit = UNITS.get(unit_text)
    if unit is None and unit_text.endswith("s"):
        unit = UNITS.get(unit_text[:-1])
    if unit is None:
        raise DateParseError(expression, f"unknown unit '{unit_text}'")

    return unit * count


def _resolve_absolute(match: "re.Match", expression: str, tz: Optional[tzinfo]) -> TimeRange:
    parts = match.groupdict()

    if parts["fraction"] is not None:
        span = timedelta(milliseconds=1)
    elif parts["second"] is not None:
        span = timedelta(seconds=1)
    elif parts["hour"] is not None:
        span = timedelta(minutes=1)
    else:
        span = timedelta(days=1)

    fraction = (parts["fraction"] or "0").ljust(6, "0")[:6]
    try:
        naive = datetime(
            int(parts["year"]),
            int(parts["month"]),
            int(parts["day"]),
            int(parts["hour"] or 0),
            int(parts["minute"] or 0),
            int(parts["second"] or 0),
            int(fraction),
        )
        naive_end = naive + span
    except (ValueError, OverflowError) as e:
        raise DateParseError(expression, str(e))

    offset = parts["offset"]
    if offset is None:
        return TimeRange(
            _localize(naive, tz, expression),
            _localize(naive_end, tz, expression),
        )

    try:
        zone = _parse_offset(offset)
    except ValueError as e:
        raise DateParseError(expression, str(e))
    return TimeRange(
        truncate(naive.replace(tzinfo=zone)),
        truncate(naive_end.replace(tzinfo=zone)),
    )


def _parse_offset(offset: str) -> tzinfo:
    if offset == "z":
        return timezone.utc
    sign = -1 if offset[0] == "-" else 1
    digits = offset[1:].replace(":", "")
    delta = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
    return timezone(sign * delta)


def _localize(naive: datetime, tz: Optional[tzinfo], expression: str) -> datetime:
    """Attach the local zone, refusing wall times that do not map to exactly one instant."""
    if tz is None:
        early = naive.replace(fold=0).astimezone(timezone.utc)
        late = naive.replace(fold=1).astimezone(timezone.utc)
    else:
        early = naive.replace(tzinfo=tz, fold=0).astimezone(timezone.utc)
        late = naive.replace(tzinfo=tz, fold=1).astimezone(timezone.utc)

    if early != late:
        raise LocalTimeZoneError(expression)
    return truncate(early)
