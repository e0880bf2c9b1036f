"""
Revenue analytics aggregator.

Combines subscription and consultation revenue into the structures drawn
by the admin dashboard: day/month/year series per source with commission
applied per bucket, overall totals, a trailing twelve-month breakdown and
the most recent activity. Input comes straight from list endpoints, so
records are normalised leniently; a malformed record is dropped, never
fatal.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from wellness.exceptions import AggregationInputError
from wellness.services.bucketing_service import (
    Granularity,
    RevenueBucket,
    RevenueRecord,
    bucket,
    parse_timestamp,
)
from wellness.services.commission_service import (
    CommissionRates,
    consultation_split,
    subscription_split,
)
from wellness.utils.formatters import short_month_label
from wellness.utils.number_format import to_decimal

logger = logging.getLogger(__name__)

BREAKDOWN_MONTHS = 12
RECENT_LIMIT = 10

SERIES = (
    ('daily', Granularity.DAY),
    ('monthly', Granularity.MONTH),
    ('yearly', Granularity.YEAR),
)


@dataclass(frozen=True)
class SubscriptionEntry:
    timestamp: Optional[datetime]
    created_at: Optional[datetime]
    amount: Decimal
    plan_type: str
    billing_cycle: Optional[str]


@dataclass(frozen=True)
class ConsultationEntry:
    timestamp: Optional[datetime]
    date: Any
    amount: Decimal
    dietitian: str


def _first(record: dict, *keys):
    for key in keys:
        value = record.get(key)
        if value not in (None, ''):
            return value
    return None


def _require_mapping(record, kind: str) -> dict:
    if not isinstance(record, dict):
        raise AggregationInputError(f"{kind} record is not an object: {type(record).__name__}")
    return record


def normalize_subscription(record) -> SubscriptionEntry:
    """
    Read a payment/subscription document.

    Revenue is dated by ``subscriptionStartDate`` (or ``startDate``), falling
    back to ``createdAt``.

    Raises:
        AggregationInputError: record is not an object
    """
    record = _require_mapping(record, 'subscription')
    created_at = parse_timestamp(_first(record, 'createdAt', 'date'))
    started = parse_timestamp(_first(record, 'subscriptionStartDate', 'startDate'))
    return SubscriptionEntry(
        timestamp=started or created_at,
        created_at=created_at or started,
        amount=to_decimal(_first(record, 'amount', 'revenue')),
        plan_type=str(_first(record, 'planType', 'plan') or 'Unknown'),
        billing_cycle=_first(record, 'billingCycle', 'cycle'),
    )


def normalize_consultation(record) -> ConsultationEntry:
    """
    Read a consultation booking document; revenue is dated by ``createdAt``.

    Raises:
        AggregationInputError: record is not an object
    """
    record = _require_mapping(record, 'consultation')
    dietitian = record.get('dietitianId')
    if isinstance(dietitian, dict):
        dietitian = dietitian.get('name')
    dietitian = dietitian or record.get('dietitianName') or record.get('dietitian')
    return ConsultationEntry(
        timestamp=parse_timestamp(_first(record, 'createdAt', 'date')),
        date=_first(record, 'date', 'createdAt'),
        amount=to_decimal(_first(record, 'amount', 'revenue')),
        dietitian=dietitian if isinstance(dietitian, str) and dietitian else 'Unknown',
    )


def _normalize_all(records: Optional[Iterable], normalize, kind: str) -> list:
    if records is None:
        return []
    if isinstance(records, (str, bytes, dict)):
        logger.warning(f"[ANALYTICS] Ignoring {kind} input of type {type(records).__name__}")
        return []

    entries, dropped = [], 0
    try:
        for raw in records:
            try:
                entries.append(normalize(raw))
            except AggregationInputError:
                dropped += 1
    except TypeError:
        logger.warning(f"[ANALYTICS] Ignoring non-iterable {kind} input")
        return []

    if dropped:
        logger.warning(f"[ANALYTICS] Dropped {dropped} malformed {kind} records")
    return entries


def _series(buckets: List[RevenueBucket], split_fn, rates: CommissionRates) -> list:
    series = []
    for item in buckets:
        split = split_fn(item.revenue, rates)
        entry = item.to_json()
        entry['platformEarnings'] = float(split.platform_earnings)
        entry['dietitianEarnings'] = float(split.dietitian_earnings)
        series.append(entry)
    return series


def _by_granularity(entries: list, split_fn, rates: CommissionRates, now: datetime) -> dict:
    records = [RevenueRecord(e.timestamp, e.amount) for e in entries]
    return {
        name: _series(bucket(records, granularity, now=now, oldest_first=True), split_fn, rates)
        for name, granularity in SERIES
    }


def _combined_totals(subscriptions: list, consultations: list, rates: CommissionRates) -> dict:
    subscription_revenue = sum((e.amount for e in subscriptions), Decimal('0'))
    consultation_revenue = sum((e.amount for e in consultations), Decimal('0'))

    consultation = consultation_split(consultation_revenue, rates)
    membership = subscription_split(subscription_revenue, rates)

    return {
        'subscriptionRevenue': float(subscription_revenue),
        'consultationRevenue': float(consultation_revenue),
        'totalRevenue': float(subscription_revenue + consultation_revenue),
        'consultationCommission': float(consultation.platform_earnings),
        'platformShareAmount': float(membership.platform_earnings),
        'totalPlatformEarnings': float(consultation.platform_earnings + membership.platform_earnings),
        'totalDietitianEarnings': float(consultation.dietitian_earnings),
    }


def _monthly_breakdown(subscriptions: list, consultations: list, rates: CommissionRates, now: datetime) -> list:
    sub_buckets = bucket(
        [RevenueRecord(e.timestamp, e.amount) for e in subscriptions],
        Granularity.MONTH, BREAKDOWN_MONTHS, now=now, oldest_first=True,
    )
    cons_buckets = bucket(
        [RevenueRecord(e.timestamp, e.amount) for e in consultations],
        Granularity.MONTH, BREAKDOWN_MONTHS, now=now, oldest_first=True,
    )

    breakdown = []
    for sub, cons in zip(sub_buckets, cons_buckets):
        consultation = consultation_split(cons.revenue, rates)
        membership = subscription_split(sub.revenue, rates)
        year, month = (int(part) for part in sub.key.split('-'))
        breakdown.append({
            'key': sub.key,
            'month': short_month_label(year, month),
            'subscriptionRevenue': float(sub.revenue),
            'consultationRevenue': float(cons.revenue),
            'totalRevenue': float(sub.revenue + cons.revenue),
            'platformEarnings': float(consultation.platform_earnings + membership.platform_earnings),
            'dietitianEarnings': float(consultation.dietitian_earnings),
        })
    return breakdown


def _newest_first(entries: list, attr: str) -> list:
    dated = [e for e in entries if getattr(e, attr) is not None]
    undated = [e for e in entries if getattr(e, attr) is None]
    return sorted(dated, key=lambda e: getattr(e, attr), reverse=True) + undated


def _isoformat(value) -> Optional[str]:
    if isinstance(value, datetime):
        return value.isoformat()
    return value if isinstance(value, str) else None


def _recent_consultations(consultations: list, rates: CommissionRates) -> list:
    recent = []
    for entry in _newest_first(consultations, 'timestamp')[:RECENT_LIMIT]:
        split = consultation_split(entry.amount, rates)
        recent.append({
            'date': _isoformat(entry.date),
            'amount': float(entry.amount),
            'dietitian': entry.dietitian,
            'commission': float(split.platform_earnings),
            'dietitianEarnings': float(split.dietitian_earnings),
        })
    return recent


def _recent_subscriptions(subscriptions: list, rates: CommissionRates) -> list:
    recent = []
    for entry in _newest_first(subscriptions, 'created_at')[:RECENT_LIMIT]:
        split = subscription_split(entry.amount, rates)
        recent.append({
            'date': _isoformat(entry.created_at),
            'planType': entry.plan_type,
            'billingCycle': entry.billing_cycle,
            'amount': float(entry.amount),
            'platformShare': float(split.platform_earnings),
            'netRevenue': float(entry.amount - split.platform_earnings),
        })
    return recent


def aggregate(
    subscription_records: Optional[Iterable],
    consultation_records: Optional[Iterable],
    commission_rates: Optional[CommissionRates] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Build the revenue report for both sources.

    Args:
        subscription_records: Payment documents (``amount``, ``subscriptionStartDate``
            or ``createdAt``, ``planType``, ``billingCycle``); None means none yet
        consultation_records: Booking documents (``amount``, ``createdAt``,
            ``dietitianId.name``); None means none yet
        commission_rates: Parsed rates; defaults to 15% / 20%
        now: End of every window (defaults to local now)

    Returns:
        dict with byConsultation, byMembership ({daily, monthly, yearly}),
        combinedTotals, monthlyBreakdown (12 months, oldest first),
        recentConsultations, recentSubscriptions and commissionRates
    """
    rates = commission_rates or CommissionRates.from_settings(None)
    now = now or datetime.now()

    subscriptions = _normalize_all(subscription_records, normalize_subscription, 'subscription')
    consultations = _normalize_all(consultation_records, normalize_consultation, 'consultation')

    logger.debug(
        f"[ANALYTICS] Aggregating {len(subscriptions)} subscriptions, "
        f"{len(consultations)} consultations"
    )

    return {
        'byConsultation': _by_granularity(consultations, consultation_split, rates, now),
        'byMembership': _by_granularity(subscriptions, subscription_split, rates, now),
        'combinedTotals': _combined_totals(subscriptions, consultations, rates),
        'monthlyBreakdown': _monthly_breakdown(subscriptions, consultations, rates, now),
        'recentConsultations': _recent_consultations(consultations, rates),
        'recentSubscriptions': _recent_subscriptions(subscriptions, rates),
        'commissionRates': rates.to_json(),
    }


def consultation_series(records: Optional[Iterable], rates: Optional[CommissionRates] = None,
                        now: Optional[datetime] = None) -> dict:
    """Daily, monthly and yearly consultation revenue with commission per bucket."""
    rates = rates or CommissionRates.from_settings(None)
    entries = _normalize_all(records, normalize_consultation, 'consultation')
    return _by_granularity(entries, consultation_split, rates, now or datetime.now())


def membership_series(records: Optional[Iterable], rates: Optional[CommissionRates] = None,
                      now: Optional[datetime] = None) -> dict:
    """Daily, monthly and yearly subscription revenue with platform share per bucket."""
    rates = rates or CommissionRates.from_settings(None)
    entries = _normalize_all(records, normalize_subscription, 'subscription')
    return _by_granularity(entries, subscription_split, rates, now or datetime.now())
