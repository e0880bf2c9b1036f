"""
Unit tests for the payment state store.
"""

import pytest
from datetime import datetime, timedelta, timezone

from tests.fakes import make_subscription
from wellness.exceptions import InvalidTransitionError, PaymentInProgressError
from wellness.schemas import BillingCycle, PaymentMethodType, PaymentStatus, SubscriptionStatus, VerificationToken
from wellness.services.plan_catalog import fallback_tiers
from wellness.services.store import MAX_VERIFICATIONS, PaymentState, PaymentStore, StoreRegistry


class TestListeners:
    """Tests for change notification."""

    def test_listener_receives_snapshot(self, store):
        seen = []
        store.subscribe(seen.append)

        store.set_error('boom')

        assert len(seen) == 1
        assert isinstance(seen[0], PaymentState)
        assert seen[0].error == 'boom'

    def test_unsubscribe(self, store):
        seen = []
        unsubscribe = store.subscribe(seen.append)
        unsubscribe()
        unsubscribe()

        store.set_error('boom')
        assert seen == []

    def test_failing_listener_does_not_break_others(self, store):
        seen = []

        def broken(state):
            raise RuntimeError('listener bug')

        store.subscribe(broken)
        store.subscribe(seen.append)

        state = store.clear_messages()
        assert seen == [state]

    def test_snapshots_are_immutable(self, store):
        before = store.state
        store.set_error('boom')
        assert before.error is None
        assert store.state.error == 'boom'


class TestTransition:
    """Tests for the compare-and-set transition."""

    def test_allowed(self, store):
        state = store.transition((PaymentStatus.IDLE,), PaymentStatus.INITIALIZING, error=None)
        assert state.payment_status == PaymentStatus.INITIALIZING
        assert state.is_processing_payment is True

    def test_start_while_in_flight(self, store):
        store.transition((PaymentStatus.IDLE,), PaymentStatus.INITIALIZING)
        store.transition((PaymentStatus.INITIALIZING,), PaymentStatus.INITIALIZED)

        with pytest.raises(PaymentInProgressError):
            store.transition((PaymentStatus.IDLE,), PaymentStatus.INITIALIZING)

    def test_invalid_move(self, store):
        with pytest.raises(InvalidTransitionError) as exc_info:
            store.transition((PaymentStatus.PROCESSING,), PaymentStatus.SUCCESS)

        assert not isinstance(exc_info.value, PaymentInProgressError)
        assert exc_info.value.current == 'idle'
        assert exc_info.value.target == 'success'
        assert store.state.payment_status == PaymentStatus.IDLE

    def test_every_in_flight_status_is_processing(self, store):
        store.transition((PaymentStatus.IDLE,), PaymentStatus.INITIALIZING)
        state = store.transition((PaymentStatus.INITIALIZING,), PaymentStatus.INITIALIZED)
        assert state.is_processing_payment is True
        assert state.to_json()['isProcessingPayment'] is True

        state = store.transition((PaymentStatus.INITIALIZED,), PaymentStatus.FAILED)
        assert state.is_processing_payment is False

    def test_payment_succeeded_requires_processing(self, store, fake_api):
        with pytest.raises(InvalidTransitionError):
            store.payment_succeeded(fake_api.processed.payment)


class TestSubscriptionState:
    """Tests for subscription bookkeeping."""

    def test_check_failure_clears_subscription(self, store):
        store.subscription_checked(True, make_subscription())
        state = store.subscription_check_failed('Server down')

        assert state.has_active_subscription is False
        assert state.active_subscription is None
        assert state.error == 'Server down'

    def test_inactive_check_drops_subscription(self, store):
        state = store.subscription_checked(False, make_subscription())
        assert state.active_subscription is None

    def test_cancel_keeps_entitled_subscription(self, store):
        store.subscription_checked(True, make_subscription('basic', days_left=5))

        state = store.subscription_cancelled()

        assert state.active_subscription.status == SubscriptionStatus.CANCELLED
        assert state.has_active_subscription is True
        assert state.success_message == 'Subscription cancelled successfully'

    def test_cancel_without_subscription(self, store):
        state = store.subscription_cancelled()
        assert state.active_subscription is None
        assert state.has_active_subscription is False

    def test_days_remaining(self):
        subscription = make_subscription(days_left=3)
        assert subscription.days_remaining() == 3
        expired = make_subscription(days_left=-1)
        assert expired.days_remaining() == 0
        assert expired.effective_status() == SubscriptionStatus.EXPIRED

    def test_end_date_passed_is_expired_even_if_cancelled(self):
        subscription = make_subscription(status='cancelled', days_left=1)
        later = subscription.end_date + timedelta(minutes=1)
        assert subscription.is_entitled() is True
        assert subscription.is_entitled(later) is False


class TestPlansAndJson:
    """Tests for plans and the serialized state."""

    def test_set_plans(self, store):
        plans = fallback_tiers(BillingCycle.YEARLY)
        state = store.set_plans(plans, BillingCycle.YEARLY)
        assert [p.name for p in state.plans] == ['Basic', 'Premium', 'Ultimate']
        assert state.billing == BillingCycle.YEARLY

    def test_to_json(self, store):
        store.select_plan(fallback_tiers(BillingCycle.MONTHLY)[1])
        data = store.state.to_json()

        assert data['paymentStatus'] == 'idle'
        assert data['selectedPlan']['name'] == 'Premium'
        assert data['isProcessingPayment'] is False
        assert data['hasActiveSubscription'] is False
        assert 'verifications' not in data


class TestStoreRegistry:
    """Tests for per-actor stores."""

    def test_same_actor_same_store(self):
        registry = StoreRegistry()
        assert registry.get('a') is registry.get('a')
        assert registry.get('a') is not registry.get('b')
        assert len(registry) == 2

    def test_discard(self):
        registry = StoreRegistry()
        first = registry.get('a')
        registry.discard('a')
        registry.discard('missing')
        assert registry.get('a') is not first

    def test_idle_store_evicted_after_ttl(self):
        clock = FakeClock()
        registry = StoreRegistry(idle_ttl=60, clock=clock)
        first = registry.get('a')

        clock.now += 61
        registry.get('b')

        assert 'a' not in registry
        assert len(registry) == 1
        assert registry.get('a') is not first

    def test_access_keeps_store_alive(self):
        clock = FakeClock()
        registry = StoreRegistry(idle_ttl=60, clock=clock)
        first = registry.get('a')

        clock.now += 40
        registry.get('a')
        clock.now += 40
        registry.get('b')

        assert registry.get('a') is first

    def test_in_flight_store_is_kept(self):
        clock = FakeClock()
        registry = StoreRegistry(idle_ttl=60, clock=clock)
        busy = registry.get('a')
        busy.transition((PaymentStatus.IDLE,), PaymentStatus.INITIALIZING)

        clock.now += 120
        registry.get('b')

        assert registry.get('a') is busy

    def test_least_recently_used_dropped_over_limit(self):
        registry = StoreRegistry(max_stores=2, clock=FakeClock())
        registry.get('a')
        registry.get('b')
        registry.get('a')
        registry.get('c')

        assert 'b' not in registry
        assert 'a' in registry and 'c' in registry
        assert len(registry) == 2

    def test_from_config(self):
        registry = StoreRegistry.from_config({'PAYMENT_STORE_IDLE_TTL': 5, 'PAYMENT_STORE_MAX': 3})
        assert registry.idle_ttl == 5
        assert registry.max_stores == 3


class TestVerifications:
    """Tests for issued verification tokens."""

    def test_find_issued_token(self, store):
        token = _token('tok-1')
        store.add_verification(token)
        assert store.find_verification('tok-1') == token
        assert store.find_verification('other') is None
        assert store.find_verification(None) is None

    def test_expired_token_not_found(self, store):
        store.add_verification(_token('old', minutes_ago=16))
        assert store.find_verification('old') is None

    def test_expired_tokens_dropped_on_add(self, store):
        store.add_verification(_token('old', minutes_ago=16))
        state = store.add_verification(_token('new'))
        assert [t.token for t in state.verifications] == ['new']

    def test_only_newest_kept(self, store):
        for i in range(MAX_VERIFICATIONS + 3):
            store.add_verification(_token(f'tok-{i}'))

        tokens = [t.token for t in store.state.verifications]
        assert len(tokens) == MAX_VERIFICATIONS
        assert tokens[-1] == f'tok-{MAX_VERIFICATIONS + 2}'
        assert store.find_verification('tok-0') is None

    def test_consume(self, store):
        store.add_verification(_token('tok-1'))
        store.add_verification(_token('tok-2'))

        state = store.consume_verification('tok-1')

        assert [t.token for t in state.verifications] == ['tok-2']


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _token(value, minutes_ago=0):
    return VerificationToken(
        token=value,
        method=PaymentMethodType.UPI,
        subject='9876543210@paytm',
        verified_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )
