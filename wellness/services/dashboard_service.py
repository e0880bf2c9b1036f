"""
Admin dashboard loader.

Fetches every dashboard widget concurrently. Widgets have no ordering
dependency on each other and each one is isolated: a failing source yields
its fallback value and an error string, and the others still render.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from wellness.exceptions import WellnessError
from wellness.services import analytics_service
from wellness.services.bucketing_service import Granularity, parse_timestamp, window_periods
from wellness.services.commission_service import CommissionRates

logger = logging.getLogger(__name__)

GROWTH_MONTHS = 6

USER_COUNT_SOURCES = (
    ('totalUsers', 'users-list'),
    ('totalDietitians', 'dietitian-list'),
    ('totalOrganizations', 'organizations-list'),
    ('totalCorporatePartners', 'corporate-partners-list'),
)


def _empty_series():
    return {'daily': [], 'monthly': [], 'yearly': []}


FALLBACKS = {
    'userStats': lambda: {
        'totalUsers': 0,
        'totalDietitians': 0,
        'totalOrganizations': 0,
        'totalCorporatePartners': 0,
        'activeDietPlans': 0,
        'totalRegistered': 0,
    },
    'userGrowth': lambda: {'monthlyGrowth': [], 'totalUsers': 0},
    'membershipRevenue': _empty_series,
    'consultationRevenue': _empty_series,
    'subscriptions': list,
    'revenueAnalytics': lambda: {
        'summary': {
            'totalRevenue': 0,
            'totalSubscriptionRevenue': 0,
            'totalConsultationRevenue': 0,
            'totalPlatformEarnings': 0,
            'totalDietitianEarnings': 0,
        },
        'monthlyBreakdown': [],
        'recentConsultations': [],
    },
}


@dataclass
class WidgetResult:
    name: str
    data: Any
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class DashboardSnapshot:
    widgets: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def add(self, result: WidgetResult) -> None:
        self.widgets[result.name] = result.data
        if result.error:
            self.errors[result.name] = result.error

    def to_json(self) -> dict:
        return {'data': self.widgets, 'errors': self.errors}


def user_growth(records, now: Optional[datetime] = None) -> dict:
    """
    Sign-ups per month over the last six months, oldest first, with a running total.
    """
    periods = list(reversed(window_periods(Granularity.MONTH, GROWTH_MONTHS, now)))
    counts = {key: 0 for key, _ in periods}
    for record in records or ():
        if not isinstance(record, dict):
            continue
        created = parse_timestamp(record.get('createdAt'))
        if created is None:
            continue
        key = f"{created.year:04d}-{created.month:02d}"
        if key in counts:
            counts[key] += 1

    growth, cumulative = [], 0
    for key, label in periods:
        cumulative += counts[key]
        growth.append({'key': key, 'month': label, 'users': counts[key], 'cumulative': cumulative})
    return {'monthlyGrowth': growth, 'totalUsers': cumulative}


class DashboardLoader:
    """
    Loads the admin dashboard widgets for one actor.

    Args:
        api_client: ``WellnessApiClient`` carrying the admin's token
        rates: Commission rates applied to revenue series
        max_workers: Concurrent backend requests
    """

    def __init__(self, api_client, rates: Optional[CommissionRates] = None, max_workers: int = 6,
                 now: Optional[datetime] = None):
        self.api = api_client
        self.rates = rates or CommissionRates.from_settings(None)
        self.max_workers = max_workers
        self.now = now

    @property
    def widgets(self) -> Dict[str, Callable[[], Any]]:
        return {
            'userStats': self.load_user_stats,
            'userGrowth': self.load_user_growth,
            'membershipRevenue': self.load_membership_revenue,
            'consultationRevenue': self.load_consultation_revenue,
            'subscriptions': self.load_subscriptions,
            'revenueAnalytics': self.load_revenue_analytics,
        }

    def load_user_stats(self) -> dict:
        stats = {}
        for name, resource in USER_COUNT_SOURCES:
            stats[name] = len(self.api.get_records(resource))
        stats['activeDietPlans'] = len(self.api.get_records('active-diet-plans'))
        stats['totalRegistered'] = sum(stats[name] for name, _ in USER_COUNT_SOURCES)
        return stats

    def load_user_growth(self) -> dict:
        return user_growth(self.api.get_records('user-growth'), self.now)

    def load_membership_revenue(self) -> dict:
        return analytics_service.membership_series(self.api.get_records('subscriptions'), self.rates, self.now)

    def load_consultation_revenue(self) -> dict:
        return analytics_service.consultation_series(
            self.api.get_records('consultation-revenue'), self.rates, self.now
        )

    def load_subscriptions(self) -> list:
        return self.api.get_records('subscriptions')

    def load_revenue_analytics(self) -> dict:
        return self.api.get_document('revenue-analytics')

    def _run(self, name: str, loader: Callable[[], Any]) -> WidgetResult:
        try:
            return WidgetResult(name, loader())
        except WellnessError as e:
            logger.warning(f"[ANALYTICS] Widget {name} failed: {e.message}")
            return WidgetResult(name, FALLBACKS[name](), e.message)
        except Exception as e:
            logger.exception(f"[ANALYTICS] Widget {name} crashed: {e}")
            return WidgetResult(name, FALLBACKS[name](), f"Failed to load {name}")

    def load(self, on_widget: Optional[Callable[[WidgetResult], None]] = None, only=None) -> DashboardSnapshot:
        """
        Fetch widgets concurrently.

        Args:
            on_widget: Called with each WidgetResult as soon as it resolves,
                so callers can render partial results
            only: Optional iterable of widget names to load

        Returns:
            DashboardSnapshot with data for every requested widget
        """
        widgets = self.widgets
        names = [name for name in widgets if only is None or name in set(only)]
        snapshot = DashboardSnapshot()

        with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(names) or 1))) as executor:
            futures = {executor.submit(self._run, name, widgets[name]): name for name in names}
            for future in as_completed(futures):
                result = future.result()
                snapshot.add(result)
                if on_widget:
                    on_widget(result)

        if snapshot.errors:
            logger.info(f"[ANALYTICS] Dashboard loaded with {len(snapshot.errors)} failed widgets")
        return snapshot
