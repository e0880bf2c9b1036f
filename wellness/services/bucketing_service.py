"""
Date bucketing for revenue charts.

Turns time-stamped monetary records into a fixed window of day, month or
year buckets ending at "now". Every period in the window is present exactly
once; periods without records hold zero. Calendar keys use local time.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional

from wellness.utils.formatters import day_label, month_label, year_label
from wellness.utils.number_format import to_decimal

logger = logging.getLogger(__name__)


class Granularity(str, enum.Enum):
    DAY = 'day'
    MONTH = 'month'
    YEAR = 'year'


# Default dashboard windows: last 7 days, last 6 months, last 4 years
DEFAULT_WINDOWS = {
    Granularity.DAY: 7,
    Granularity.MONTH: 6,
    Granularity.YEAR: 4,
}


@dataclass(frozen=True)
class RevenueRecord:
    timestamp: Optional[datetime]
    amount: Decimal


@dataclass(frozen=True)
class RevenueBucket:
    """One period of a bucketed series. ``key`` is YYYY-MM-DD, YYYY-MM or YYYY."""

    key: str
    label: str
    revenue: Decimal

    def to_json(self) -> dict:
        return {'key': self.key, 'label': self.label, 'revenue': float(self.revenue)}


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse a record timestamp into a naive local datetime.

    Accepts datetime, date and ISO-8601 strings (a trailing ``Z`` is UTC).
    Aware values are converted to local time. Anything else returns None.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(('Z', 'z')):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def period_key(moment: datetime, granularity: Granularity) -> str:
    if granularity == Granularity.DAY:
        return moment.strftime('%Y-%m-%d')
    if granularity == Granularity.MONTH:
        return f"{moment.year:04d}-{moment.month:02d}"
    return f"{moment.year:04d}"


def window_periods(granularity: Granularity, window_size: int, now: Optional[datetime] = None) -> List[tuple]:
    """
    List ``(key, label)`` for the window, newest period first.

    Raises:
        ValueError: if window_size is negative
    """
    if window_size < 0:
        raise ValueError("window_size must be >= 0")

    now = parse_timestamp(now) if now is not None else datetime.now()
    periods = []

    if granularity == Granularity.DAY:
        today = now.date()
        for offset in range(window_size):
            day = today - timedelta(days=offset)
            periods.append((day.strftime('%Y-%m-%d'), day_label(day)))

    elif granularity == Granularity.MONTH:
        year, month = now.year, now.month
        for _ in range(window_size):
            periods.append((f"{year:04d}-{month:02d}", month_label(year, month)))
            month -= 1
            if month == 0:
                year, month = year - 1, 12

    elif granularity == Granularity.YEAR:
        for offset in range(window_size):
            year = now.year - offset
            periods.append((f"{year:04d}", year_label(year)))

    else:
        raise ValueError(f"Unknown granularity: {granularity}")

    return periods


def normalize_record(record) -> RevenueRecord:
    """Coerce a RevenueRecord, mapping or ``(timestamp, amount)`` pair."""
    if isinstance(record, RevenueRecord):
        return record
    if isinstance(record, dict):
        return RevenueRecord(parse_timestamp(record.get('timestamp')), to_decimal(record.get('amount')))
    timestamp, amount = record
    return RevenueRecord(parse_timestamp(timestamp), to_decimal(amount))


def bucket(
    records: Optional[Iterable],
    granularity: Granularity,
    window_size: Optional[int] = None,
    now: Optional[datetime] = None,
    oldest_first: bool = False,
) -> List[RevenueBucket]:
    """
    Sum record amounts into a zero-filled window of periods.

    Args:
        records: RevenueRecord objects, ``{'timestamp', 'amount'}`` dicts or pairs
        granularity: Day, Month or Year
        window_size: Number of periods (defaults to 7 / 6 / 4)
        now: End of the window (defaults to local now)
        oldest_first: Reverse the default newest-first order

    Returns:
        list of RevenueBucket, one per period
    """
    granularity = Granularity(granularity)
    if window_size is None:
        window_size = DEFAULT_WINDOWS[granularity]

    periods = window_periods(granularity, window_size, now)
    totals = {key: Decimal('0') for key, _ in periods}

    skipped = 0
    for raw in records or ():
        try:
            record = normalize_record(raw)
        except (TypeError, ValueError):
            skipped += 1
            continue
        if record.timestamp is None:
            skipped += 1
            continue
        key = period_key(record.timestamp, granularity)
        if key in totals:
            totals[key] += record.amount

    if skipped:
        logger.debug(f"[ANALYTICS] Skipped {skipped} records without a usable timestamp")

    buckets = [RevenueBucket(key=key, label=label, revenue=totals[key]) for key, label in periods]
    if oldest_first:
        buckets.reverse()
    return buckets
