"""
Payment and subscription schemas.

Mirror the documents exchanged with the REST backend. Field names are
snake_case in Python and camelCase on the wire.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


UNLIMITED = -1


class BillingCycle(str, enum.Enum):
    """Recurrence basis of a plan."""
    MONTHLY = 'monthly'
    YEARLY = 'yearly'


class PaymentStatus(str, enum.Enum):
    """Client-side payment state machine states."""
    IDLE = 'idle'
    INITIALIZING = 'initializing'
    INITIALIZED = 'initialized'
    PROCESSING = 'processing'
    SUCCESS = 'success'
    FAILED = 'failed'


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = 'active'
    CANCELLED = 'cancelled'
    EXPIRED = 'expired'


class PaymentMethodType(str, enum.Enum):
    CARD = 'card'
    NETBANKING = 'netbanking'
    UPI = 'upi'
    EMI = 'emi'


class WireModel(BaseModel):
    """Base model accepting camelCase or snake_case keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json(self) -> dict:
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)


class FeatureSet(WireModel):
    """Per-plan feature caps. ``-1`` means unlimited."""

    monthly_bookings: int = 0
    advance_booking_days: int = 0
    monthly_meal_plans: int = 0
    chatbot_daily_queries: int = 0
    monthly_blog_posts: int = 0
    chat_video_access: bool = True
    blog_access: bool = True
    support_access: bool = True
    support_level: str = 'email'

    @field_validator(
        'monthly_bookings', 'advance_booking_days', 'monthly_meal_plans',
        'chatbot_daily_queries', 'monthly_blog_posts'
    )
    @classmethod
    def check_cap(cls, value: int) -> int:
        if value < UNLIMITED:
            raise ValueError('feature caps must be >= 0, or -1 for unlimited')
        return value

    def is_unlimited(self, feature: str) -> bool:
        return getattr(self, feature) == UNLIMITED

    def allows(self, feature: str, used: int) -> bool:
        """Whether one more use of ``feature`` fits under its cap."""
        cap = getattr(self, feature)
        return cap == UNLIMITED or used < cap


class PlanTier(WireModel):
    """A purchasable plan as configured in the backend settings."""

    name: str
    price: Decimal = Field(gt=0)
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    features: Optional[FeatureSet] = None
    highlights: List[str] = Field(default_factory=list)
    desc1: Optional[str] = None
    desc2: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def split_marketing_features(cls, data):
        # Settings documents carry the marketing bullet list under "features"
        if isinstance(data, dict) and isinstance(data.get('features'), list):
            data = dict(data)
            data['highlights'] = data.pop('features')
        return data

    @property
    def plan_type(self) -> str:
        return self.name.lower()


class Subscription(WireModel):
    """The actor's current subscription, derived from a successful payment."""

    plan_type: str
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    start_date: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices('startDate', 'subscriptionStartDate', 'start_date'),
        serialization_alias='startDate',
    )
    end_date: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices('endDate', 'subscriptionEndDate', 'end_date'),
        serialization_alias='endDate',
    )
    features: Optional[FeatureSet] = None
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE

    @classmethod
    def from_payment(cls, payment: 'Payment') -> 'Subscription':
        return cls(
            plan_type=payment.plan_type,
            billing_cycle=payment.billing_cycle,
            start_date=payment.subscription_start_date,
            end_date=payment.subscription_end_date,
            features=payment.features,
            status=SubscriptionStatus.ACTIVE,
        )

    def effective_status(self, now: Optional[datetime] = None) -> SubscriptionStatus:
        """Expired is computed from ``end_date``, never stored."""
        if self.end_date is None:
            return self.status
        now = now or _now_like(self.end_date)
        if now > self.end_date:
            return SubscriptionStatus.EXPIRED
        return self.status

    def is_entitled(self, now: Optional[datetime] = None) -> bool:
        """Active and Cancelled both grant access until the end date."""
        return self.effective_status(now) != SubscriptionStatus.EXPIRED

    def days_remaining(self, now: Optional[datetime] = None) -> int:
        if self.end_date is None:
            return 0
        now = now or _now_like(self.end_date)
        remaining = self.end_date - now
        if remaining.total_seconds() <= 0:
            return 0
        # Partial days count as a full day
        return remaining.days + (1 if remaining.seconds or remaining.microseconds else 0)


class Payment(WireModel):
    """A payment document as returned by initialize/process/verify."""

    id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices('id', '_id', 'paymentId'),
        serialization_alias='id',
    )
    transaction_id: Optional[str] = None
    order_id: Optional[str] = None
    plan_type: str
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    amount: Decimal = Field(ge=0)
    currency: str = 'INR'
    payment_method: Optional[PaymentMethodType] = None
    status: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices('paymentStatus', 'status'),
        serialization_alias='paymentStatus',
    )
    subscription_start_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None
    features: Optional[FeatureSet] = None
    created_at: Optional[datetime] = None


class VerificationToken(WireModel):
    """Proof that a gateway accepted the credentials of a payment method."""

    token: str
    method: PaymentMethodType
    subject: str
    verified_at: datetime


class CardPayment(WireModel):
    method: Literal['card'] = 'card'
    card_number: str = ''
    valid_through: str = ''
    cvv: str = Field(default='', repr=False)
    card_name: str = ''


class NetBankingPayment(WireModel):
    method: Literal['netbanking'] = 'netbanking'
    bank: str = ''
    username: str = ''
    password: str = Field(default='', repr=False)
    verification: Optional[VerificationToken] = None


class UpiPayment(WireModel):
    method: Literal['upi'] = 'upi'
    upi_id: str = ''
    upi_app: str = ''
    verification: Optional[VerificationToken] = None


class EmiPayment(WireModel):
    method: Literal['emi'] = 'emi'
    bank: str = ''
    tenure: Optional[int] = None


PaymentMethod = Annotated[
    Union[CardPayment, NetBankingPayment, UpiPayment, EmiPayment],
    Field(discriminator='method'),
]


def _now_like(reference: datetime) -> datetime:
    """Current time with the same awareness as ``reference``."""
    if reference.tzinfo is not None:
        return datetime.now(reference.tzinfo)
    return datetime.now()
