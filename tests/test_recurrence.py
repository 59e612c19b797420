from datetime import date

from models import RecurringFrequency
from recurrence import days_in_month, next_recurring_date


def test_next_date_daily_and_weekly():
    assert next_recurring_date(RecurringFrequency.daily, date(2024, 12, 31)) == date(
        2025, 1, 1
    )
    assert next_recurring_date(RecurringFrequency.weekly, date(2024, 2, 26)) == date(
        2024, 3, 4
    )


def test_next_date_monthly_snaps_to_end():
    assert next_recurring_date(RecurringFrequency.monthly, date(2024, 1, 31)) == date(
        2024, 2, 29
    )
    assert next_recurring_date(RecurringFrequency.monthly, date(2024, 12, 15)) == date(
        2025, 1, 15
    )


def test_next_date_yearly_from_leap_day():
    assert next_recurring_date(RecurringFrequency.yearly, date(2024, 2, 29)) == date(
        2025, 2, 28
    )


def test_days_in_month():
    assert days_in_month(2023, 2) == 28
    assert days_in_month(2024, 2) == 29
    assert days_in_month(2024, 12) == 31
