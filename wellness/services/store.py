"""
Payment state store.

Single owner of an actor's payment and subscription state. Every mutation
goes through a ``PaymentStore`` method, which takes the lock, applies the
change and then notifies subscribers with the new snapshot.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from wellness.exceptions import InvalidTransitionError, PaymentInProgressError
from wellness.schemas import (
    BillingCycle,
    Payment,
    PaymentStatus,
    PlanTier,
    Subscription,
    SubscriptionStatus,
    VerificationToken,
)

logger = logging.getLogger(__name__)

Listener = Callable[['PaymentState'], None]

IN_FLIGHT = (PaymentStatus.INITIALIZING, PaymentStatus.INITIALIZED, PaymentStatus.PROCESSING)

# Issued verification tokens kept per actor
MAX_VERIFICATIONS = 5
VERIFICATION_TTL = timedelta(minutes=15)


def _expired(token: VerificationToken, now: Optional[datetime] = None) -> bool:
    verified_at = token.verified_at
    if verified_at.tzinfo is None:
        verified_at = verified_at.replace(tzinfo=timezone.utc)
    return (now or datetime.now(timezone.utc)) - verified_at > VERIFICATION_TTL


@dataclass(frozen=True)
class PaymentState:
    """Immutable snapshot handed to listeners and selectors."""

    plans: tuple = ()
    billing: BillingCycle = BillingCycle.MONTHLY
    selected_plan: Optional[PlanTier] = None

    has_active_subscription: bool = False
    active_subscription: Optional[Subscription] = None

    current_payment: Optional[Payment] = None
    payment_status: PaymentStatus = PaymentStatus.IDLE
    verified_payment: Optional[Payment] = None
    payment_history: tuple = ()

    # Tokens issued by the credential verifier for this actor
    verifications: tuple = ()

    is_loading_subscription: bool = False
    is_cancelling: bool = False
    error: Optional[str] = None
    success_message: Optional[str] = None

    @property
    def is_processing_payment(self) -> bool:
        """Submit stays disabled from initialize until the attempt settles."""
        return self.payment_status in IN_FLIGHT

    def to_json(self) -> dict:
        return {
            'billing': self.billing.value,
            'plans': [plan.to_json() for plan in self.plans],
            'selectedPlan': self.selected_plan.to_json() if self.selected_plan else None,
            'hasActiveSubscription': self.has_active_subscription,
            'activeSubscription': self.active_subscription.to_json() if self.active_subscription else None,
            'currentPayment': self.current_payment.to_json() if self.current_payment else None,
            'paymentStatus': self.payment_status.value,
            'verifiedPayment': self.verified_payment.to_json() if self.verified_payment else None,
            'paymentHistory': [p.to_json() for p in self.payment_history],
            'isProcessingPayment': self.is_processing_payment,
            'isLoadingSubscription': self.is_loading_subscription,
            'isCancelling': self.is_cancelling,
            'error': self.error,
            'successMessage': self.success_message,
        }


class PaymentStore:
    """Thread-safe holder of one actor's ``PaymentState``."""

    def __init__(self, initial: Optional[PaymentState] = None):
        self._state = initial or PaymentState()
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []

    @property
    def state(self) -> PaymentState:
        with self._lock:
            return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _update(self, **changes) -> PaymentState:
        with self._lock:
            self._state = replace(self._state, **changes)
            snapshot = self._state
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logger.exception(f"[STORE] Listener failed: {e}")
        return snapshot

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    def set_plans(self, plans: List[PlanTier], billing: BillingCycle) -> PaymentState:
        return self._update(plans=tuple(plans), billing=billing)

    def select_plan(self, plan: Optional[PlanTier]) -> PaymentState:
        return self._update(selected_plan=plan)

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscription_check_started(self) -> PaymentState:
        return self._update(is_loading_subscription=True, error=None)

    def subscription_checked(self, has_active: bool, subscription: Optional[Subscription]) -> PaymentState:
        return self._update(
            is_loading_subscription=False,
            has_active_subscription=has_active,
            active_subscription=subscription if has_active else None,
        )

    def subscription_check_failed(self, message: str) -> PaymentState:
        return self._update(
            is_loading_subscription=False,
            has_active_subscription=False,
            active_subscription=None,
            error=message,
        )

    def cancel_started(self) -> PaymentState:
        return self._update(is_cancelling=True, error=None)

    def subscription_cancelled(self) -> PaymentState:
        """
        Mark the held subscription Cancelled.

        It keeps granting access until its end date, so it stays the active
        record and the single-active invariant still blocks a new purchase.
        """
        with self._lock:
            current = self._state.active_subscription
            cancelled = current.model_copy(update={'status': SubscriptionStatus.CANCELLED}) if current else None
            return self._update(
                is_cancelling=False,
                active_subscription=cancelled,
                has_active_subscription=bool(cancelled and cancelled.is_entitled()),
                success_message='Subscription cancelled successfully',
            )

    def cancel_failed(self, message: str) -> PaymentState:
        return self._update(is_cancelling=False, error=message)

    # ------------------------------------------------------------------
    # Payment state machine
    # ------------------------------------------------------------------

    def transition(self, allowed_from, target: PaymentStatus, **changes) -> PaymentState:
        """
        Atomically move the payment to ``target`` if the current status allows it.

        Raises:
            PaymentInProgressError: starting while a call is in flight
            InvalidTransitionError: any other illegal move
        """
        with self._lock:
            current = self._state.payment_status
            if current not in allowed_from:
                if target == PaymentStatus.INITIALIZING and current in IN_FLIGHT:
                    raise PaymentInProgressError(current.value)
                raise InvalidTransitionError(current.value, target.value)
            return self._update(payment_status=target, **changes)

    def payment_succeeded(self, payment: Payment) -> PaymentState:
        """
        Record a processed payment and optimistically activate its subscription.

        The process response is authoritative: it replaces whatever
        subscription was held locally.
        """
        return self.transition(
            (PaymentStatus.PROCESSING,),
            PaymentStatus.SUCCESS,
            current_payment=payment,
            has_active_subscription=True,
            active_subscription=Subscription.from_payment(payment),
            error=None,
            success_message='Payment successful!',
        )

    def add_verification(self, token: VerificationToken, now: Optional[datetime] = None) -> PaymentState:
        """Keep ``token`` with the newest unexpired tokens, at most ``MAX_VERIFICATIONS``."""
        with self._lock:
            live = tuple(t for t in self._state.verifications if not _expired(t, now))
            return self._update(verifications=(live + (token,))[-MAX_VERIFICATIONS:])

    def find_verification(self, token: Optional[str], now: Optional[datetime] = None) -> Optional[VerificationToken]:
        for issued in self.state.verifications:
            if token and issued.token == token and not _expired(issued, now):
                return issued
        return None

    def consume_verification(self, token: str) -> PaymentState:
        with self._lock:
            remaining = tuple(t for t in self._state.verifications if t.token != token)
            return self._update(verifications=remaining)

    def set_verified_payment(self, payment: Optional[Payment]) -> PaymentState:
        return self._update(verified_payment=payment)

    def set_payment_history(self, payments: List[Payment]) -> PaymentState:
        return self._update(payment_history=tuple(payments))

    def set_error(self, message: Optional[str]) -> PaymentState:
        return self._update(error=message)

    def clear_messages(self) -> PaymentState:
        return self._update(error=None, success_message=None)


class StoreRegistry:
    """
    In-memory map of actor id to ``PaymentStore``; lost on restart.

    Stores are kept in last-access order. A store unused for ``idle_ttl``
    seconds is dropped on a later ``get``, and the least recently used ones
    go first once more than ``max_stores`` are held. A store with a payment
    in flight is never dropped.
    """

    def __init__(self, idle_ttl: float = 1800, max_stores: int = 10000, clock: Callable[[], float] = time.monotonic):
        self.idle_ttl = idle_ttl
        self.max_stores = max_stores
        self._clock = clock
        self._stores: 'OrderedDict[str, Tuple[PaymentStore, float]]' = OrderedDict()
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config) -> 'StoreRegistry':
        return cls(
            idle_ttl=config.get('PAYMENT_STORE_IDLE_TTL', 1800),
            max_stores=config.get('PAYMENT_STORE_MAX', 10000),
        )

    def get(self, actor_id: str) -> PaymentStore:
        with self._lock:
            now = self._clock()
            entry = self._stores.pop(actor_id, None)
            store = entry[0] if entry else PaymentStore()
            self._stores[actor_id] = (store, now)
            self._evict(now)
            return store

    def _evict(self, now: float) -> None:
        overflow = len(self._stores) - self.max_stores
        for actor_id, (store, last_seen) in list(self._stores.items()):
            if now - last_seen <= self.idle_ttl and overflow <= 0:
                break
            if store.state.payment_status in IN_FLIGHT:
                continue
            del self._stores[actor_id]
            overflow -= 1
            logger.debug(f"[STORE] Evicted idle store {actor_id[:8]}")

    def discard(self, actor_id: str) -> None:
        with self._lock:
            self._stores.pop(actor_id, None)

    def __contains__(self, actor_id):
        with self._lock:
            return actor_id in self._stores

    def __len__(self):
        with self._lock:
            return len(self._stores)
