"""In-memory fakes of the backend used across the test suite."""
from datetime import datetime, timedelta, timezone

from wellness.schemas import (
    ActiveSubscriptionResponse,
    CancelSubscriptionResponse,
    Payment,
    PaymentHistoryResponse,
    PaymentResponse,
    SettingsResponse,
    Subscription,
)
from wellness.services.plan_catalog import PLAN_FEATURES


class FakeApiClient:
    """
    In-memory stand-in for WellnessApiClient.

    Responses are plain attributes; ``errors`` maps a method name (or
    ``get_records:<resource>``) to the exception it should raise.
    """

    def __init__(self):
        self.token = 'test-token'
        self.calls = []
        self.errors = {}

        now = datetime.now(timezone.utc)
        self.active = ActiveSubscriptionResponse(success=True, has_active_subscription=False)
        self.initialized = PaymentResponse(success=True, payment=Payment(
            id='pay_1',
            order_id='ORD_1',
            plan_type='premium',
            billing_cycle='monthly',
            amount=599,
            status='pending',
        ))
        self.processed = PaymentResponse(success=True, payment=Payment(
            id='pay_1',
            order_id='ORD_1',
            transaction_id='TXN123',
            plan_type='premium',
            billing_cycle='monthly',
            amount=599,
            status='completed',
            subscription_start_date=now,
            subscription_end_date=now + timedelta(days=30),
            features=PLAN_FEATURES['premium'],
        ))
        self.history = PaymentHistoryResponse(success=True, payments=[])
        self.cancelled = CancelSubscriptionResponse(success=True, message='Subscription cancelled')
        self.settings = SettingsResponse()
        self.records = {}
        self.documents = {}

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        key = name if not args else f"{name}:{args[0]}"
        error = self.errors.get(key) or self.errors.get(name)
        if error is not None:
            raise error

    def called(self, name):
        return [call for call in self.calls if call[0] == name]

    def get_active_subscription(self):
        self._call('get_active_subscription')
        return self.active

    def initialize_payment(self, plan_type, billing_cycle, amount, payment_method, payment_details):
        self._call('initialize_payment')
        self.last_initialize = {
            'planType': plan_type,
            'billingCycle': billing_cycle,
            'amount': amount,
            'paymentMethod': payment_method,
            'paymentDetails': payment_details,
        }
        return self.initialized

    def process_payment(self, payment_id):
        self._call('process_payment', payment_id)
        return self.processed

    def verify_payment(self, transaction_id):
        self._call('verify_payment', transaction_id)
        return self.processed

    def get_payment_history(self, limit=10):
        self._call('get_payment_history', limit)
        return self.history

    def cancel_subscription(self):
        self._call('cancel_subscription')
        return self.cancelled

    def get_settings(self):
        self._call('get_settings')
        return self.settings

    def get_records(self, resource):
        self._call('get_records', resource)
        return self.records.get(resource, [])

    def get_document(self, resource):
        self._call('get_document', resource)
        return self.documents.get(resource, {})


def make_subscription(plan_type='premium', days_left=20, **overrides):
    now = datetime.now(timezone.utc)
    data = dict(
        plan_type=plan_type,
        billing_cycle='monthly',
        start_date=now - timedelta(days=30 - days_left),
        end_date=now + timedelta(days=days_left),
        features=PLAN_FEATURES.get(plan_type),
    )
    data.update(overrides)
    return Subscription(**data)

