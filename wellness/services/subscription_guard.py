"""
Subscription guard.

Checks with the backend whether the actor already holds a non-expired
subscription before any purchase proceeds to payment. The check result is
written to the actor's store so every view of "active subscription" agrees.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from wellness.exceptions import (
    AuthenticationError,
    RemoteCallError,
    SubscriptionCheckError,
    SubscriptionConflictError,
)
from wellness.schemas import Subscription
from wellness.services.store import PaymentStore

logger = logging.getLogger(__name__)


class FailurePolicy(str, enum.Enum):
    """What to do when the active-subscription check itself fails."""
    FAIL_OPEN = 'fail_open'
    FAIL_CLOSED = 'fail_closed'


@dataclass(frozen=True)
class ActiveSubscriptionCheck:
    has_active: bool
    subscription: Optional[Subscription] = None
    # True when the remote check failed and a fail-open policy let it through
    degraded: bool = False


class SubscriptionGuard:
    """Enforces one active subscription per account on the client side."""

    def __init__(self, api_client, store: PaymentStore, policy: FailurePolicy = FailurePolicy.FAIL_CLOSED):
        self.api = api_client
        self.store = store
        self.policy = FailurePolicy(policy)

    def check_active(self) -> ActiveSubscriptionCheck:
        """
        Ask the backend for the actor's active subscription.

        A subscription whose end date has passed is reported as inactive
        even if the server still returns it.

        Raises:
            AuthenticationError: token missing or rejected (never masked by policy)
            SubscriptionCheckError: remote failure under FAIL_CLOSED
        """
        self.store.subscription_check_started()
        try:
            response = self.api.get_active_subscription()
        except AuthenticationError as e:
            self.store.subscription_check_failed(e.message)
            raise
        except RemoteCallError as e:
            return self._on_failure(e)

        subscription = response.subscription
        has_active = bool(response.has_active_subscription and subscription is not None)
        if has_active and not subscription.is_entitled():
            logger.info(f"[GUARD] Server reported an expired {subscription.plan_type} subscription as active")
            has_active = False

        self.store.subscription_checked(has_active, subscription)
        return ActiveSubscriptionCheck(has_active=has_active, subscription=subscription if has_active else None)

    def _on_failure(self, error: RemoteCallError) -> ActiveSubscriptionCheck:
        if self.policy == FailurePolicy.FAIL_OPEN:
            logger.warning(f"[GUARD] Subscription check failed, proceeding (fail-open): {error.message}")
            self.store.subscription_check_failed(error.message)
            return ActiveSubscriptionCheck(has_active=False, degraded=True)

        logger.error(f"[GUARD] Subscription check failed, blocking purchase (fail-closed): {error.message}")
        self.store.subscription_check_failed(error.message)
        raise SubscriptionCheckError() from error

    def ensure_can_purchase(self) -> ActiveSubscriptionCheck:
        """
        Run the check and refuse to continue when a subscription is active.

        Raises:
            SubscriptionConflictError: carries the existing subscription
        """
        result = self.check_active()
        if result.has_active:
            logger.info(f"[GUARD] Purchase blocked: active {result.subscription.plan_type} subscription")
            raise SubscriptionConflictError(result.subscription)
        return result
