"""Working-hour offsets <-> datetimes on a Mon-Fri 08:00-16:00 calendar."""
from datetime import date, datetime

import pytest

from allocation_engine.schemas.request import WorkingHours
from allocation_engine.utils.calendar import WorkingCalendar


@pytest.fixture
def calendar() -> WorkingCalendar:
    return WorkingCalendar.from_working_hours(datetime(2026, 6, 1, 8, 0), WorkingHours())


def test_hours_per_day(calendar):
    assert calendar.hours_per_day == 8.0


def test_offset_of_datetime_inside_working_window(calendar):
    assert calendar.to_offset(datetime(2026, 6, 1, 8, 0)) == 0.0
    assert calendar.to_offset(datetime(2026, 6, 2, 10, 0)) == 10.0
    # Friday 16:00 is the end of the fifth working day
    assert calendar.to_offset(datetime(2026, 6, 5, 16, 0)) == 40.0


def test_offset_snaps_outside_working_hours(calendar):
    assert calendar.to_offset(datetime(2026, 6, 2, 6, 0)) == 8.0
    assert calendar.to_offset(datetime(2026, 6, 2, 20, 0)) == 16.0
    # Saturday maps to the start of Monday
    assert calendar.to_offset(datetime(2026, 6, 6, 12, 0)) == 40.0
    # Before the anchor
    assert calendar.to_offset(datetime(2026, 5, 29, 12, 0)) == 0.0


def test_datetime_of_offset_skips_weekend(calendar):
    assert calendar.to_datetime(10.0) == datetime(2026, 6, 2, 10, 0)
    assert calendar.to_datetime(40.0) == datetime(2026, 6, 8, 8, 0)
    assert calendar.to_datetime(40.0, is_end=True) == datetime(2026, 6, 5, 16, 0)


def test_day_boundary_end_maps_to_previous_day(calendar):
    assert calendar.to_datetime(8.0, is_end=True) == datetime(2026, 6, 1, 16, 0)
    assert calendar.to_datetime(0.0, is_end=True) == datetime(2026, 6, 1, 8, 0)


def test_buckets_and_days(calendar):
    assert calendar.day_for_bucket(0) == date(2026, 6, 1)
    assert calendar.day_for_bucket(4) == date(2026, 6, 5)
    assert calendar.day_for_bucket(5) == date(2026, 6, 8)
    assert calendar.bucket_for_date(date(2026, 6, 8)) == 5
    assert calendar.bucket_for_date(date(2026, 6, 6)) == 5  # Saturday -> next working day
    assert calendar.bucket_of_offset(7.999) == 0
    assert calendar.bucket_of_offset(8.0) == 1


def test_bucket_window(calendar):
    start, end = calendar.bucket_window(5)
    assert start == datetime(2026, 6, 8, 8, 0)
    assert end == datetime(2026, 6, 8, 16, 0)


def test_anchor_moves_to_first_working_day():
    cal = WorkingCalendar.from_working_hours(datetime(2026, 6, 6, 9, 0), WorkingHours())
    assert cal.anchor == date(2026, 6, 8)
    assert cal.to_datetime(0.0) == datetime(2026, 6, 8, 8, 0)


def test_custom_working_days():
    cal = WorkingCalendar.from_working_hours(
        datetime(2026, 6, 1, 7, 0),
        WorkingHours(start_hour=7, end_hour=17, working_days=[0, 2, 4]),
    )
    assert cal.hours_per_day == 10.0
    assert cal.day_for_bucket(1) == date(2026, 6, 3)
    assert cal.day_for_bucket(3) == date(2026, 6, 8)
    assert cal.to_offset(datetime(2026, 6, 3, 9, 0)) == 12.0


def test_buckets_until(calendar):
    assert calendar.buckets_until(datetime(2026, 6, 5, 16, 0)) == 5
    assert calendar.buckets_until(datetime(2026, 6, 5, 12, 0)) == 5


def test_invalid_working_hours_rejected():
    with pytest.raises(ValueError):
        WorkingHours(start_hour=16, end_hour=8)
