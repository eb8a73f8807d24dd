from datetime import date, datetime, time

import pytest
import pytz

from ephemeris import birth_instant_utc, julian_day
from exceptions import UnknownTimezoneError


def test_utc_birth_time():
    utc = birth_instant_utc(date(2025, 1, 1), time(12, 0), "UTC")
    assert utc == datetime(2025, 1, 1, 12, 0, tzinfo=pytz.UTC)
    assert utc.utcoffset().total_seconds() == 0


def test_summer_time_offset_applied():
    utc = birth_instant_utc(date(2024, 7, 1), time(14, 0), "Europe/Berlin")
    assert utc == datetime(2024, 7, 1, 12, 0, tzinfo=pytz.UTC)


def test_winter_time_offset_applied():
    utc = birth_instant_utc(date(2024, 1, 15), time(14, 0), "Europe/Berlin")
    assert utc == datetime(2024, 1, 15, 13, 0, tzinfo=pytz.UTC)


def test_ambiguous_time_uses_standard_offset():
    # 01:30 happens twice in New York on 2024-11-03
    utc = birth_instant_utc(date(2024, 11, 3), time(1, 30), "America/New_York")
    assert utc == datetime(2024, 11, 3, 6, 30, tzinfo=pytz.UTC)


def test_skipped_time_uses_daylight_offset():
    # 02:30 does not exist in New York on 2024-03-10
    utc = birth_instant_utc(date(2024, 3, 10), time(2, 30), "America/New_York")
    assert utc == datetime(2024, 3, 10, 6, 30, tzinfo=pytz.UTC)


def test_sub_second_precision_dropped():
    utc = birth_instant_utc(date(2025, 1, 1), time(12, 0, 5, 999999), "UTC")
    assert (utc.second, utc.microsecond) == (5, 0)


def test_unknown_timezone():
    with pytest.raises(UnknownTimezoneError) as exc_info:
        birth_instant_utc(date(2025, 1, 1), time(12, 0), "Mars/Olympus_Mons")
    assert exc_info.value.identifier == "Mars/Olympus_Mons"


def test_julian_day_of_j2000():
    assert julian_day(datetime(2000, 1, 1, 12, 0, tzinfo=pytz.UTC)) == pytest.approx(2451545.0)
