"""Tests for time expression resolution."""

from datetime import datetime, timedelta, timezone

import pytest

from logshades.errors import DateParseError, LocalTimeZoneError
from logshades.timerange import TimeRange, format_instant, parse_instant, resolve, truncate


UTC = timezone.utc


def at(*args):
    return datetime(*args, tzinfo=UTC)


@pytest.fixture
def berlin():
    zoneinfo = pytest.importorskip("zoneinfo")
    try:
        return zoneinfo.ZoneInfo("Europe/Berlin")
    except zoneinfo.ZoneInfoNotFoundError:
        pytest.skip("tz database not available")


class TestFormatting:
    def test_millisecond_precision_with_z(self):
        assert format_instant(at(2024, 1, 1)) == "2024-01-01T00:00:00.000Z"

    def test_sub_millisecond_digits_are_dropped(self):
        assert format_instant(at(2024, 1, 1, 8, 5, 3, 123456)) == "2024-01-01T08:05:03.123Z"

    def test_offsets_are_converted_to_utc(self):
        instant = datetime(2024, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_instant(instant) == "2024-01-01T00:00:00.000Z"

    def test_parse_instant_inverts_format(self):
        instant = at(2024, 3, 1, 10, 20, 30, 456000)
        assert parse_instant(format_instant(instant)) == instant

    def test_truncate_naive_is_utc(self):
        assert truncate(datetime(2024, 1, 1, 0, 0, 0, 999)) == at(2024, 1, 1)


class TestRelative:
    def test_now_is_zero_width(self, reference):
        assert resolve("now", reference) == TimeRange(reference, reference)

    @pytest.mark.parametrize("expression,offset", [
        ("5 minutes ago", timedelta(minutes=5)),
        ("2 minutes ago", timedelta(minutes=2)),
        ("an hour ago", timedelta(hours=1)),
        ("a day ago", timedelta(days=1)),
        ("3 hrs ago", timedelta(hours=3)),
        ("90 s ago", timedelta(seconds=90)),
        ("500ms ago", timedelta(milliseconds=500)),
        ("2 weeks ago", timedelta(weeks=2)),
        ("  10   Minutes   AGO ", timedelta(minutes=10)),
    ])
    def test_ago(self, reference, expression, offset):
        result = resolve(expression, reference)
        assert result.start == reference - offset
        assert result.end == result.start

    def test_resolves_against_reference_not_wall_clock(self):
        reference = at(2001, 9, 9, 1, 46, 40)
        assert resolve("2 minutes ago", reference).start_text == "2001-09-09T01:44:40.000Z"

    def test_deterministic(self, reference):
        assert resolve("7 minutes ago", reference) == resolve("7 minutes ago", reference)

    def test_unknown_unit(self, reference):
        with pytest.raises(DateParseError) as e:
            resolve("5 parsecs ago", reference)
        assert e.value.timestamp == "5 parsecs ago"

    def test_overflow(self, reference):
        with pytest.raises(DateParseError):
            resolve("99999999999 weeks ago", reference)


class TestCalendar:
    def test_today_in_utc(self, reference):
        result = resolve("today", reference, tz=UTC)
        assert result == TimeRange(at(2024, 1, 15), at(2024, 1, 16))

    def test_yesterday_in_utc(self, reference):
        result = resolve("yesterday", reference, tz=UTC)
        assert result == TimeRange(at(2024, 1, 14), at(2024, 1, 15))

    def test_today_follows_local_zone(self, reference):
        plus_two = timezone(timedelta(hours=2))
        result = resolve("today", reference, tz=plus_two)
        assert result.start == at(2024, 1, 14, 22)
        assert result.end == at(2024, 1, 15, 22)


class TestAbsolute:
    def test_date_spans_a_day(self, reference):
        result = resolve("2024-01-01", reference, tz=UTC)
        assert result.as_text() == ("2024-01-01T00:00:00.000Z", "2024-01-02T00:00:00.000Z")

    def test_minute_precision(self, reference):
        result = resolve("2024-01-01 12:30", reference, tz=UTC)
        assert result == TimeRange(at(2024, 1, 1, 12, 30), at(2024, 1, 1, 12, 31))

    def test_second_precision_with_z(self, reference):
        result = resolve("2024-01-01T12:30:05Z", reference)
        assert result == TimeRange(at(2024, 1, 1, 12, 30, 5), at(2024, 1, 1, 12, 30, 6))

    def test_millisecond_precision(self, reference):
        result = resolve("2024-01-01T00:00:00.000Z", reference)
        assert result.as_text() == ("2024-01-01T00:00:00.000Z", "2024-01-01T00:00:00.001Z")

    def test_explicit_offset(self, reference):
        result = resolve("2024-01-15 10:30 +02:00", reference)
        assert result.start == at(2024, 1, 15, 8, 30)

    def test_local_literal_uses_zone(self, reference):
        minus_five = timezone(timedelta(hours=-5))
        result = resolve("2024-01-15T07:00", reference, tz=minus_five)
        assert result.start == at(2024, 1, 15, 12)

    @pytest.mark.parametrize("expression", [
        "2024-13-01",
        "2024-02-30",
        "2024-01-01T25:00",
        "next tuesday",
        "",
        "   ",
    ])
    def test_unparseable(self, reference, expression):
        with pytest.raises(DateParseError):
            resolve(expression, reference, tz=UTC)


class TestDaylightSaving:
    def test_ambiguous_local_time(self, reference, berlin):
        # 02:30 happens twice when clocks go back
        with pytest.raises(LocalTimeZoneError):
            resolve("2024-10-27 02:30", reference, tz=berlin)

    def test_nonexistent_local_time(self, reference, berlin):
        # 02:30 is skipped when clocks go forward
        with pytest.raises(LocalTimeZoneError):
            resolve("2024-03-31 02:30", reference, tz=berlin)

    def test_unambiguous_local_time(self, reference, berlin):
        result = resolve("2024-07-01 12:00", reference, tz=berlin)
        assert result.start == at(2024, 7, 1, 10)

    def test_explicit_offset_is_never_ambiguous(self, reference, berlin):
        result = resolve("2024-10-27T02:30+01:00", reference, tz=berlin)
        assert result.start == at(2024, 10, 27, 1, 30)
