# allocation_engine/utils/calendar.py
"""
Working-time calendar.

The optimizer and schedule builder reason in working hours measured from the
start of the first working day of the horizon. One bucket is one working day
(hours_per_day working hours). This module converts between that axis and
wall-clock datetimes.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Tuple

from allocation_engine.schemas.request import WorkingHours

# Offsets are rounded before converting back to datetimes so that 15.9999999
# does not land on the previous day.
OFFSET_PRECISION = 6


@dataclass(frozen=True)
class WorkingCalendar:
    """
    Maps working-hour offsets <-> datetimes.

    Offset 0 is start_hour on the first working day on/after origin's date.
    Bucket k covers offsets [k * hours_per_day, (k + 1) * hours_per_day).
    """
    origin: datetime
    start_hour: int = 8
    end_hour: int = 16
    working_days: Tuple[int, ...] = (0, 1, 2, 3, 4)
    anchor: date = field(init=False)

    def __post_init__(self) -> None:
        if self.end_hour <= self.start_hour:
            raise ValueError("end_hour must be after start_hour")
        if not self.working_days:
            raise ValueError("working_days must not be empty")
        object.__setattr__(self, "working_days", tuple(sorted(set(self.working_days))))
        anchor = self.origin.date()
        while anchor.weekday() not in self.working_days:
            anchor += timedelta(days=1)
        object.__setattr__(self, "anchor", anchor)

    @classmethod
    def from_working_hours(cls, origin: datetime, working_hours: WorkingHours) -> "WorkingCalendar":
        return cls(
            origin=origin,
            start_hour=working_hours.start_hour,
            end_hour=working_hours.end_hour,
            working_days=tuple(working_hours.working_days),
        )

    @property
    def hours_per_day(self) -> float:
        return float(self.end_hour - self.start_hour)

    # -------------------------
    # Buckets <-> dates
    # -------------------------

    def _anchor_monday(self) -> date:
        return self.anchor - timedelta(days=self.anchor.weekday())

    def _ordinal(self, d: date) -> int:
        """Working days in [anchor, d); for a non-working d this is the index of the next working day."""
        weeks = (d - self._anchor_monday()).days // 7
        weekday = d.weekday()
        within = sum(1 for wd in self.working_days if wd < weekday)
        first = self.working_days.index(self.anchor.weekday())
        return weeks * len(self.working_days) + within - first

    def is_working_day(self, d: date) -> bool:
        return d.weekday() in self.working_days

    def day_for_bucket(self, bucket: int) -> date:
        """Calendar date of the bucket-th working day (bucket 0 = anchor)."""
        n = len(self.working_days)
        total = self.working_days.index(self.anchor.weekday()) + bucket
        week_offset, pos = divmod(total, n)
        return self._anchor_monday() + timedelta(weeks=week_offset, days=self.working_days[pos])

    def bucket_for_date(self, d: date) -> int:
        return max(0, self._ordinal(d))

    def bucket_of_offset(self, offset: float) -> int:
        return max(0, int(math.floor(round(offset, OFFSET_PRECISION) / self.hours_per_day)))

    def bucket_window(self, bucket: int) -> Tuple[datetime, datetime]:
        """Wall-clock working window of a bucket."""
        day = self.day_for_bucket(bucket)
        tz = self.origin.tzinfo
        start = datetime.combine(day, time(self.start_hour), tzinfo=tz)
        end = start + timedelta(hours=self.hours_per_day)
        return start, end

    # -------------------------
    # Offsets <-> datetimes
    # -------------------------

    def to_offset(self, dt: datetime) -> float:
        """Working-hour offset of a datetime; times outside the working window snap to its edges."""
        d = dt.date()
        bucket = self._ordinal(d)
        if bucket < 0:
            return 0.0
        if not self.is_working_day(d):
            return bucket * self.hours_per_day
        hour = dt.hour + dt.minute / 60.0 + dt.second / 3600.0
        within = min(max(hour - self.start_hour, 0.0), self.hours_per_day)
        return round(bucket * self.hours_per_day + within, OFFSET_PRECISION)

    def to_datetime(self, offset: float, is_end: bool = False) -> datetime:
        """
        Datetime of a working-hour offset.

        With is_end=True an offset on a day boundary maps to the end of the
        previous working day instead of the start of the next one.
        """
        offset = max(0.0, round(offset, OFFSET_PRECISION))
        bucket = int(offset // self.hours_per_day)
        within = round(offset - bucket * self.hours_per_day, OFFSET_PRECISION)
        if is_end and within == 0 and bucket > 0:
            bucket -= 1
            within = self.hours_per_day
        start, _ = self.bucket_window(bucket)
        return start + timedelta(hours=within)

    def buckets_until(self, dt: datetime) -> int:
        """Number of whole or partial buckets between the anchor and dt."""
        return int(math.ceil(self.to_offset(dt) / self.hours_per_day))


__all__ = ["WorkingCalendar", "OFFSET_PRECISION"]
