"""
Response schemas for the REST backend.

One model per endpoint; bodies are validated at the client boundary so a
shape mismatch fails fast instead of surfacing as missing keys later.
"""

from typing import Any, List, Optional

from pydantic import ConfigDict, Field

from wellness.schemas.payment import Payment, Subscription, WireModel


class BackendResponse(WireModel):
    """Common ``{success, message}`` envelope."""

    success: bool = False
    message: str = ''


class ActiveSubscriptionResponse(BackendResponse):
    """GET /api/payments/subscription/active"""

    has_active_subscription: bool = False
    subscription: Optional[Subscription] = None


class PaymentResponse(BackendResponse):
    """POST /api/payments/initialize, POST /api/payments/process/:id, GET /api/payments/verify/:txn"""

    payment: Optional[Payment] = None


class PaymentHistoryResponse(BackendResponse):
    """GET /api/payments/history"""

    payments: List[Payment] = Field(default_factory=list)


class CancelSubscriptionResponse(BackendResponse):
    """POST /api/payments/subscription/cancel"""


class SettingsResponse(WireModel):
    """GET /api/settings

    Tiers are kept raw here; the plan catalog turns them into ``PlanTier``.
    """

    model_config = ConfigDict(extra='allow')

    monthly_tiers: List[dict] = Field(default_factory=list)
    yearly_tiers: List[dict] = Field(default_factory=list)
    consultation_commission: Any = None
    platform_share: Any = None


def extract_records(body: Any) -> list:
    """Unwrap list endpoints that answer either ``[...]`` or ``{"data": [...]}``."""
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        data = body.get('data')
        if isinstance(data, list):
            return data
    return []
