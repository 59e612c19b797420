from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from config import get_settings
from models import RecurringFrequency


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _add_months(base: date, months: int) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    # Snap to the last day when the target month is shorter.
    day = min(base.day, days_in_month(year, month))
    return date(year, month, day)


def next_recurring_date(frequency: RecurringFrequency, from_date: date) -> date:
    if frequency == RecurringFrequency.daily:
        return from_date + timedelta(days=1)
    if frequency == RecurringFrequency.weekly:
        return from_date + timedelta(weeks=1)
    if frequency == RecurringFrequency.monthly:
        return _add_months(from_date, 1)
    return _add_months(from_date, 12)
