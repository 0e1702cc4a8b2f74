"""Date manipulation utilities"""

from datetime import date
from dateutil.relativedelta import relativedelta


def add_months(start: date, months: int) -> date:
    """
    Shift a date by whole calendar months, clamping to the last valid day.

    Always computed from the original date, so a schedule starting on the 31st
    keeps returning to the 31st whenever the month allows it:
    2025-01-31 -> 2025-02-28 -> 2025-03-31.
    """
    return start + relativedelta(months=months)


def is_past_due(due_date: date, today: date | None = None) -> bool:
    """True when the due date is strictly before today"""
    return due_date < (today or date.today())
