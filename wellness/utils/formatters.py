"""
Label formatting for dashboard periods and subscription dates.

Month names are spelled out in English independently of the process locale
so bucket labels are stable across hosts.
"""
from datetime import date, datetime
from typing import Union, Optional


MONTH_NAMES = (
    'January', 'February', 'March', 'April', 'May', 'June',
    'July', 'August', 'September', 'October', 'November', 'December',
)


def day_label(value: Union[date, datetime]) -> str:
    """
    Format a calendar day as "Month Day".

    Examples:
        day_label(date(2026, 11, 7)) -> "November 7"
    """
    return f"{MONTH_NAMES[value.month - 1]} {value.day}"


def month_label(year: int, month: int) -> str:
    """
    Format a month as "Month YY" with a two-digit year.

    Examples:
        month_label(2026, 11) -> "November 26"
    """
    return f"{MONTH_NAMES[month - 1]} {year % 100:02d}"


def short_month_label(year: int, month: int) -> str:
    """
    Format a month as "Mon YYYY", as used by the twelve-month breakdown.

    Examples:
        short_month_label(2026, 1) -> "Jan 2026"
    """
    return f"{MONTH_NAMES[month - 1][:3]} {year}"


def year_label(year: int) -> str:
    return str(year)


def long_date(value: Optional[Union[date, datetime]]) -> str:
    """
    Format a date as "Month Day, Year", or "-" when missing.

    Examples:
        long_date(datetime(2026, 12, 17, 9, 30)) -> "December 17, 2026"
    """
    if value is None:
        return "-"
    return f"{MONTH_NAMES[value.month - 1]} {value.day}, {value.year}"
