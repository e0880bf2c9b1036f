"""Data model and REST response schemas."""
from wellness.schemas.payment import (
    UNLIMITED,
    BillingCycle,
    CardPayment,
    EmiPayment,
    FeatureSet,
    NetBankingPayment,
    Payment,
    PaymentMethod,
    PaymentMethodType,
    PaymentStatus,
    PlanTier,
    Subscription,
    SubscriptionStatus,
    UpiPayment,
    VerificationToken,
)
from wellness.schemas.responses import (
    ActiveSubscriptionResponse,
    CancelSubscriptionResponse,
    PaymentHistoryResponse,
    PaymentResponse,
    SettingsResponse,
    extract_records,
)

__all__ = [
    'UNLIMITED',
    'BillingCycle',
    'CardPayment',
    'EmiPayment',
    'FeatureSet',
    'NetBankingPayment',
    'Payment',
    'PaymentMethod',
    'PaymentMethodType',
    'PaymentStatus',
    'PlanTier',
    'Subscription',
    'SubscriptionStatus',
    'UpiPayment',
    'VerificationToken',
    'ActiveSubscriptionResponse',
    'CancelSubscriptionResponse',
    'PaymentHistoryResponse',
    'PaymentResponse',
    'SettingsResponse',
    'extract_records',
]
