"""
Calendar and interval helpers used to spread hours across working days.

Working days are Monday through Friday. There is no holiday calendar.
"""

from datetime import date, timedelta
from dateutil.relativedelta import relativedelta


def is_working_day(day):
    """Return True for Monday-Friday"""
    return day.weekday() < 5


def iter_dates(start_date, end_date):
    """Yield every calendar date from start_date to end_date inclusive"""
    current_date = start_date
    while current_date <= end_date:
        yield current_date
        current_date += timedelta(days=1)


def working_days(start_date, end_date):
    """
    Count weekdays between two dates, inclusive of both endpoints.

    Args:
        start_date, end_date: Date range

    Returns:
        int: Number of working days, 0 when start_date is after end_date
    """
    if not start_date or not end_date or start_date > end_date:
        return 0

    total_days = (end_date - start_date).days + 1
    full_weeks, remainder = divmod(total_days, 7)
    count = full_weeks * 5

    weekday = start_date.weekday()
    for offset in range(remainder):
        if (weekday + offset) % 7 < 5:
            count += 1

    return count


def ranges_overlap(start1, end1, start2, end2):
    """Check whether two inclusive date ranges share at least one day"""
    return start1 <= end2 and end1 >= start2


def date_range_overlap(start1, end1, start2, end2):
    """
    Calculate the overlapping window between two date ranges.

    Returns:
        tuple: (overlap_start, overlap_end) or None if the ranges are disjoint
    """
    if not all([start1, end1, start2, end2]):
        return None

    overlap_start = max(start1, start2)
    overlap_end = min(end1, end2)

    if overlap_start <= overlap_end:
        return overlap_start, overlap_end
    return None


def overlapping_working_days(start1, end1, start2, end2):
    """Number of working days two date ranges have in common"""
    overlap = date_range_overlap(start1, end1, start2, end2)
    if not overlap:
        return 0
    return working_days(*overlap)


def month_end(day):
    """Last day of the month containing day"""
    first_of_next = date(day.year, day.month, 1) + relativedelta(months=1)
    return first_of_next - timedelta(days=1)
