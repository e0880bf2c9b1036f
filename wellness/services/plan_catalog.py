"""
Plan catalog and platform settings.

Pricing tiers and commission rates come from the public settings document
(``GET /api/settings``), cached in Redis. When the document has no tiers for
a billing cycle the built-in catalog below is served instead.
"""

import calendar
import logging
from datetime import datetime
from typing import List, Optional

from pydantic import ValidationError as SchemaValidationError

from wellness.exceptions import RemoteCallError
from wellness.schemas import BillingCycle, FeatureSet, PlanTier, SettingsResponse, UNLIMITED
from wellness.services.commission_service import (
    DEFAULT_CONSULTATION_COMMISSION,
    DEFAULT_PLATFORM_SHARE,
    CommissionRates,
)

logger = logging.getLogger(__name__)

SETTINGS_CACHE_MODULE = 'settings'
SETTINGS_CACHE_KEY = 'public'

PLAN_FEATURES = {
    'basic': FeatureSet(
        monthly_bookings=2,
        advance_booking_days=3,
        monthly_meal_plans=4,
        chatbot_daily_queries=20,
        monthly_blog_posts=2,
        support_level='email',
    ),
    'premium': FeatureSet(
        monthly_bookings=8,
        advance_booking_days=7,
        monthly_meal_plans=15,
        chatbot_daily_queries=50,
        monthly_blog_posts=8,
        support_level='priority',
    ),
    'ultimate': FeatureSet(
        monthly_bookings=20,
        advance_booking_days=21,
        monthly_meal_plans=UNLIMITED,
        chatbot_daily_queries=UNLIMITED,
        monthly_blog_posts=UNLIMITED,
        support_level='24/7',
    ),
}

_DESCRIPTIONS = {
    'Basic': (
        "Perfect starter plan for your wellness journey",
        ["2 Consultations per month", "Book up to 3 days in advance",
         "4 Personalized Daily Progress Plans/month", "20 AI Chatbot queries per day",
         "Create 2 Blog posts per month", "Unlimited Chat & Video Calls",
         "Blog Reading Access", "Email Support"],
    ),
    'Premium': (
        "Most popular for serious health goals",
        ["8 Consultations per month", "Book up to 7 days in advance",
         "15 Personalized Daily Progress Plans/month", "50 AI Chatbot queries per day",
         "Create 8 Blog posts per month", "Unlimited Chat & Video Calls",
         "Full Blog Access", "Priority Email Support"],
    ),
    'Ultimate': (
        "Complete wellness package with unlimited features",
        ["20 Consultations per month", "Book up to 21 days in advance",
         "Unlimited Daily Progress Plans", "Unlimited AI Chatbot queries",
         "Unlimited Blog posts", "Unlimited Chat & Video Calls",
         "Full Blog Access & Priority", "24/7 Priority Support"],
    ),
}

FALLBACK_PRICES = {
    BillingCycle.MONTHLY: (('Basic', 299), ('Premium', 599), ('Ultimate', 899)),
    BillingCycle.YEARLY: (('Basic', 999), ('Premium', 1999), ('Ultimate', 2999)),
}


def features_for(plan_type: Optional[str]) -> FeatureSet:
    """Feature caps of a plan; unknown plans get the basic caps."""
    return PLAN_FEATURES.get((plan_type or '').lower(), PLAN_FEATURES['basic'])


def fallback_tiers(billing: BillingCycle) -> List[PlanTier]:
    billing = BillingCycle(billing)
    tiers = []
    for name, price in FALLBACK_PRICES[billing]:
        desc1, highlights = _DESCRIPTIONS[name]
        tiers.append(PlanTier(
            name=name,
            price=price,
            billing_cycle=billing,
            features=features_for(name),
            highlights=highlights,
            desc1=desc1,
        ))
    return tiers


def subscription_end_date(start: datetime, billing_cycle) -> datetime:
    """
    End of a subscription started at ``start``.

    Monthly plans run one calendar month, yearly plans one year. The day is
    clamped to the last day of a shorter target month (Jan 31 -> Feb 28).
    """
    billing_cycle = BillingCycle(billing_cycle)
    if billing_cycle == BillingCycle.YEARLY:
        year, month = start.year + 1, start.month
    else:
        year, month = (start.year + 1, 1) if start.month == 12 else (start.year, start.month + 1)
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


class PlanCatalog:
    """Reads tiers and commission rates from the settings document."""

    def __init__(self, api_client, cache=None, settings_ttl: int = 300, defaults: Optional[dict] = None):
        self.api = api_client
        self.cache = cache
        self.settings_ttl = settings_ttl
        self.defaults = defaults or {
            'consultationCommission': DEFAULT_CONSULTATION_COMMISSION,
            'platformShare': DEFAULT_PLATFORM_SHARE,
        }

    @classmethod
    def from_config(cls, config, api_client, cache=None) -> 'PlanCatalog':
        return cls(
            api_client,
            cache=cache,
            settings_ttl=config.get('CACHE_SETTINGS_TTL', 300),
            defaults={
                'consultationCommission': config.get('DEFAULT_CONSULTATION_COMMISSION', DEFAULT_CONSULTATION_COMMISSION),
                'platformShare': config.get('DEFAULT_PLATFORM_SHARE', DEFAULT_PLATFORM_SHARE),
            },
        )

    def _load_settings(self) -> dict:
        return self.api.get_settings().to_json()

    def get_settings(self) -> Optional[SettingsResponse]:
        """
        Settings document, or None when the backend cannot be reached.
        """
        try:
            if self.cache is not None:
                raw = self.cache.memoize(
                    SETTINGS_CACHE_MODULE, SETTINGS_CACHE_KEY, self._load_settings, self.settings_ttl
                )
            else:
                raw = self._load_settings()
        except RemoteCallError as e:
            logger.warning(f"[SETTINGS] Settings unavailable: {e.message}")
            return None
        return SettingsResponse.model_validate(raw)

    def pricing_plans(self, billing=BillingCycle.MONTHLY) -> List[PlanTier]:
        """Tiers for a billing cycle, falling back to the built-in catalog."""
        billing = BillingCycle(billing)
        settings = self.get_settings()
        raw_tiers = []
        if settings is not None:
            raw_tiers = settings.monthly_tiers if billing == BillingCycle.MONTHLY else settings.yearly_tiers

        tiers = []
        for raw in raw_tiers or ():
            try:
                tier = PlanTier.model_validate({**raw, 'billingCycle': billing.value})
            except SchemaValidationError as e:
                logger.warning(f"[SETTINGS] Skipping malformed tier {raw.get('name')!r}: {e.error_count()} errors")
                continue
            if tier.features is None:
                tier = tier.model_copy(update={'features': features_for(tier.name)})
            tiers.append(tier)

        if not tiers:
            logger.info(f"[SETTINGS] No {billing.value} tiers configured, using fallback catalog")
            return fallback_tiers(billing)
        return tiers

    def commission_rates(self) -> CommissionRates:
        settings = self.get_settings()
        document = settings.to_json() if settings is not None else {}
        return CommissionRates.from_settings(document, self.defaults)


def fetch_pricing_plans(catalog: PlanCatalog, store, billing=BillingCycle.MONTHLY) -> List[PlanTier]:
    """Load the tiers for ``billing`` into the actor's store."""
    billing = BillingCycle(billing)
    plans = catalog.pricing_plans(billing)
    store.set_plans(plans, billing)
    return plans
