"""
Commission calculator.

Consultation revenue is split between the platform (commission) and the
dietitian (remainder). Subscription revenue only has the platform share
applied; the remainder is retained and no provider share is computed.
"""

import enum
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from wellness.utils.number_format import parse_percentage, to_decimal

CENT = Decimal('0.01')

DEFAULT_CONSULTATION_COMMISSION = '15%'
DEFAULT_PLATFORM_SHARE = '20%'


class CommissionModel(str, enum.Enum):
    CONSULTATION = 'consultation'
    SUBSCRIPTION = 'subscription'


@dataclass(frozen=True)
class CommissionSplit:
    gross_revenue: Decimal
    platform_earnings: Decimal
    dietitian_earnings: Decimal

    def to_json(self) -> dict:
        return {
            'grossRevenue': float(self.gross_revenue),
            'platformEarnings': float(self.platform_earnings),
            'dietitianEarnings': float(self.dietitian_earnings),
        }


@dataclass(frozen=True)
class CommissionRates:
    """Configured rates as fractions (``0.15`` for "15%")."""

    consultation_commission: Decimal
    platform_share: Decimal

    @classmethod
    def from_settings(cls, settings: Optional[dict], defaults: Optional[dict] = None) -> 'CommissionRates':
        """
        Read ``consultationCommission`` and ``platformShare`` from a settings document.

        Missing keys fall back to ``defaults`` (themselves defaulting to 15% / 20%).
        Present but malformed values parse to 0.
        """
        settings = settings or {}
        defaults = defaults or {}
        consultation = settings.get('consultationCommission')
        share = settings.get('platformShare')
        if consultation is None:
            consultation = defaults.get('consultationCommission', DEFAULT_CONSULTATION_COMMISSION)
        if share is None:
            share = defaults.get('platformShare', DEFAULT_PLATFORM_SHARE)
        return cls(parse_percentage(consultation), parse_percentage(share))

    def to_json(self) -> dict:
        return {
            'consultationCommission': _percent_label(self.consultation_commission),
            'platformShare': _percent_label(self.platform_share),
        }


def _percent_label(fraction: Decimal) -> str:
    return f"{(fraction * 100).normalize():f}%"


def _as_fraction(rate) -> Decimal:
    # Fractions already parsed by CommissionRates pass through untouched
    if isinstance(rate, Decimal):
        return rate if 0 <= rate <= 1 else Decimal('0')
    return parse_percentage(rate)


def split(gross_revenue, rate, model: CommissionModel = CommissionModel.CONSULTATION) -> CommissionSplit:
    """
    Apply a commission rate to gross revenue.

    Args:
        gross_revenue: Revenue figure (number or numeric string)
        rate: Percentage string such as "15%", a number of percent, or a
            Decimal fraction; malformed or missing rates count as 0
        model: CONSULTATION splits platform/dietitian so they sum to gross;
            SUBSCRIPTION only computes the platform share

    Returns:
        CommissionSplit rounded to cents
    """
    gross = to_decimal(gross_revenue)
    fraction = _as_fraction(rate)

    platform = (gross * fraction).quantize(CENT, rounding=ROUND_HALF_UP)
    if model == CommissionModel.SUBSCRIPTION:
        dietitian = Decimal('0.00')
    else:
        dietitian = gross - platform

    return CommissionSplit(gross_revenue=gross, platform_earnings=platform, dietitian_earnings=dietitian)


def consultation_split(gross_revenue, rates: CommissionRates) -> CommissionSplit:
    return split(gross_revenue, rates.consultation_commission, CommissionModel.CONSULTATION)


def subscription_split(gross_revenue, rates: CommissionRates) -> CommissionSplit:
    return split(gross_revenue, rates.platform_share, CommissionModel.SUBSCRIPTION)
