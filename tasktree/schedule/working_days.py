"""
Working-day arithmetic.

One weekday of the week is not worked (Sunday by default, i.e. Monday to
Saturday are working days). It is skipped both when counting a duration and
when stepping a date forward or backward.

Conventions:
- add_working_days(d, n) steps forward from d until n working days have
  been passed. The start day itself is not counted.
- working_days_between(start, end) counts the working days in (start, end],
  so that working_days_between(d, add_working_days(d, n)) == n.
- count_working_days(start, end) counts the working days in [start, end],
  both ends included. It is what a calendar widget shows as "days of work".

PROMPT> python -m tasktree.schedule.working_days
"""
from dataclasses import dataclass
from datetime import date, timedelta
from tasktree.hierarchy.errors import InvalidDateRange

SUNDAY = 6


@dataclass(frozen=True)
class WorkingDayCalendar:
    # datetime.date.weekday() numbering: Monday=0 ... Sunday=6
    non_working_weekday: int = SUNDAY

    def __post_init__(self):
        if not isinstance(self.non_working_weekday, int) or not 0 <= self.non_working_weekday <= 6:
            raise ValueError(f"non_working_weekday must be in 0..6, but got {self.non_working_weekday!r}")

    def is_working_day(self, day: date) -> bool:
        if not isinstance(day, date):
            raise ValueError("day must be a date")
        return day.weekday() != self.non_working_weekday

    def count_working_days(self, start_date: date, end_date: date) -> int:
        """Working days in [start_date, end_date]."""
        if end_date < start_date:
            raise InvalidDateRange(start_date, end_date)
        total_days = (end_date - start_date).days + 1
        full_weeks, remainder = divmod(total_days, 7)
        # every full week holds exactly one non-working day
        result = full_weeks * 6
        for offset in range(remainder):
            if self.is_working_day(start_date + timedelta(days=full_weeks * 7 + offset)):
                result += 1
        return result

    def working_days_between(self, start_date: date, end_date: date) -> int:
        """Working days in (start_date, end_date]."""
        if end_date < start_date:
            raise InvalidDateRange(start_date, end_date)
        if end_date == start_date:
            return 0
        return self.count_working_days(start_date + timedelta(days=1), end_date)

    def add_working_days(self, start_date: date, days: int) -> date:
        if days < 0:
            raise ValueError(f"days must be non-negative, but got {days}")
        result = start_date
        added = 0
        while added < days:
            result += timedelta(days=1)
            if self.is_working_day(result):
                added += 1
        return result

    def subtract_working_days(self, end_date: date, days: int) -> date:
        if days < 0:
            raise ValueError(f"days must be non-negative, but got {days}")
        result = end_date
        subtracted = 0
        while subtracted < days:
            result -= timedelta(days=1)
            if self.is_working_day(result):
                subtracted += 1
        return result


if __name__ == "__main__":
    calendar = WorkingDayCalendar()
    start = date(2024, 1, 1)
    end = calendar.add_working_days(start, 10)
    print(f"{start} + 10 working days = {end}")
    print(f"working days in [{start}, {end}]: {calendar.count_working_days(start, end)}")
    print(f"working days in ({start}, {end}]: {calendar.working_days_between(start, end)}")
