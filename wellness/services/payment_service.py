"""
Payment controller.

Drives one actor's payment through the state machine

    idle -> initializing -> initialized -> processing -> success
                 \\               \\              \\-> failed
                  \\-> failed      \\-> failed

and owns every other action that touches the actor's subscription
(verification, history, cancellation). All state changes go through the
actor's ``PaymentStore``.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from wellness.exceptions import (
    RemoteCallError,
    ValidationError,
    WellnessError,
)
from wellness.schemas import BillingCycle, Payment, PaymentStatus, VerificationToken
from wellness.services import validation_service
from wellness.services.plan_catalog import features_for, subscription_end_date
from wellness.services.store import IN_FLIGHT, PaymentStore
from wellness.services.subscription_guard import FailurePolicy, SubscriptionGuard
from wellness.utils.number_format import to_decimal

logger = logging.getLogger(__name__)

# Allowed source states for each target state
TRANSITIONS = {
    PaymentStatus.INITIALIZING: (PaymentStatus.IDLE,),
    PaymentStatus.INITIALIZED: (PaymentStatus.INITIALIZING,),
    PaymentStatus.PROCESSING: (PaymentStatus.INITIALIZED,),
    PaymentStatus.SUCCESS: (PaymentStatus.PROCESSING,),
    PaymentStatus.FAILED: (
        PaymentStatus.INITIALIZING,
        PaymentStatus.INITIALIZED,
        PaymentStatus.PROCESSING,
    ),
    PaymentStatus.IDLE: (PaymentStatus.IDLE, PaymentStatus.SUCCESS, PaymentStatus.FAILED),
}


class PaymentController:
    """
    Single entry point for payment and subscription actions of one actor.

    Args:
        api_client: ``WellnessApiClient`` carrying the actor's token
        store: The actor's ``PaymentStore``
        verifier: ``CredentialVerifier`` for UPI / net-banking credentials
        policy: Failure policy of the subscription guard
        require_netbanking_verification: Make net-banking verification mandatory
        on_transition: Called with each new ``PaymentStatus`` (metrics hook)
    """

    def __init__(
        self,
        api_client,
        store: PaymentStore,
        verifier=None,
        policy: FailurePolicy = FailurePolicy.FAIL_CLOSED,
        require_netbanking_verification: bool = False,
        on_transition: Optional[Callable[[PaymentStatus], None]] = None,
    ):
        self.api = api_client
        self.store = store
        self.verifier = verifier
        self.guard = SubscriptionGuard(api_client, store, policy)
        self.require_netbanking_verification = require_netbanking_verification
        self.on_transition = on_transition

    @classmethod
    def from_config(cls, config, api_client, store, verifier=None, on_transition=None) -> 'PaymentController':
        return cls(
            api_client,
            store,
            verifier=verifier,
            policy=config.get('SUBSCRIPTION_CHECK_POLICY', FailurePolicy.FAIL_CLOSED),
            require_netbanking_verification=config.get('REQUIRE_NETBANKING_VERIFICATION', False),
            on_transition=on_transition,
        )

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _move(self, target: PaymentStatus, **changes):
        state = self.store.transition(TRANSITIONS[target], target, **changes)
        logger.info(f"[PAYMENT] -> {target.value}")
        self._notify(target)
        return state

    def _notify(self, target: PaymentStatus) -> None:
        if not self.on_transition:
            return
        try:
            self.on_transition(target)
        except Exception as e:
            logger.exception(f"[PAYMENT] Transition hook failed: {e}")

    def _fail(self, error: WellnessError):
        # current_payment is left as it was when the failing call started
        if self.store.state.payment_status not in IN_FLIGHT:
            return
        logger.warning(f"[PAYMENT] Failed: {error.message}")
        self._move(PaymentStatus.FAILED, error=error.message, success_message=None)

    def checkout(self, plan_type: str, billing_cycle, amount, method) -> Payment:
        """
        Run a full purchase: validate, guard, initialize, process.

        Args:
            plan_type: basic, premium or ultimate
            billing_cycle: monthly or yearly
            amount: Plan price
            method: One of the PaymentMethod variants

        Returns:
            The processed Payment; the store then holds the new subscription

        Raises:
            ValidationError: invalid method fields; state stays idle
            SubscriptionConflictError: an active subscription exists; state stays idle
            SubscriptionCheckError: guard failed under fail-closed; state stays idle
            PaymentInProgressError: another attempt is in flight
            InvalidTransitionError: last attempt finished and was not reset
            AuthenticationError / RemoteCallError: initialize or process failed;
                state is failed with the error message
            Any other error in flight is re-raised after the state is failed
                with a generic message, so reset() is always possible
        """
        billing_cycle = BillingCycle(billing_cycle)
        amount = to_decimal(amount)
        if self.store.state.payment_status != PaymentStatus.IDLE:
            # Raises PaymentInProgressError or InvalidTransitionError
            self.store.transition(TRANSITIONS[PaymentStatus.INITIALIZING], PaymentStatus.INITIALIZING)

        method = self._bind_verification(method)
        if amount <= 0:
            raise ValidationError({'amount': "Amount must be greater than 0"})
        validation_service.ensure_valid(
            method, require_netbanking_verification=self.require_netbanking_verification
        )

        # Conflicts and failed checks leave the state idle
        self.guard.ensure_can_purchase()

        self._move(PaymentStatus.INITIALIZING, error=None, success_message=None)

        try:
            return self._initialize_and_process(plan_type, billing_cycle, amount, method)
        except WellnessError as e:
            self._fail(e)
            raise
        except Exception as e:
            logger.exception(f"[PAYMENT] Unexpected error during checkout: {e}")
            self._fail(RemoteCallError())
            raise

    def _initialize_and_process(self, plan_type, billing_cycle, amount, method) -> Payment:
        initialized = self.api.initialize_payment(
            plan_type=plan_type.lower(),
            billing_cycle=billing_cycle.value,
            amount=amount,
            payment_method=validation_service.method_type(method).value,
            payment_details=validation_service.build_payment_details(method, amount),
        )

        payment = initialized.payment
        self._move(PaymentStatus.INITIALIZED, current_payment=payment)
        self._move(PaymentStatus.PROCESSING)

        processed = self.api.process_payment(payment.id)

        payment = _with_subscription_terms(processed.payment)
        self.store.payment_succeeded(payment)
        if getattr(method, 'verification', None) is not None:
            self.store.consume_verification(method.verification.token)
        logger.info(f"[PAYMENT] -> success: {payment.plan_type} txn={payment.transaction_id}")
        self._notify(PaymentStatus.SUCCESS)
        return payment

    def _bind_verification(self, method):
        # Only tokens this controller issued count; anything else is dropped
        submitted = getattr(method, 'verification', None)
        if submitted is None:
            return method
        issued = self.store.find_verification(submitted.token)
        if issued is not None and issued.method.value != method.method:
            issued = None
        return method.model_copy(update={'verification': issued})

    def reset(self):
        """Return to idle after success or failure ("Try Again")."""
        return self._move(PaymentStatus.IDLE, current_payment=None, error=None, success_message=None)

    # ------------------------------------------------------------------
    # Subscription actions
    # ------------------------------------------------------------------

    def check_subscription(self):
        return self.guard.check_active()

    def verify_credentials(self, method) -> VerificationToken:
        """Ask the gateway to confirm UPI / net-banking credentials."""
        if self.verifier is None:
            raise ValidationError({'paymentMethod': "Credential verification is not available"})
        token = self.verifier.verify(method)
        self.store.add_verification(token)
        return token

    def verify_payment(self, transaction_id: str) -> Payment:
        if not transaction_id:
            raise ValidationError({'transactionId': "Transaction id is required"})
        try:
            response = self.api.verify_payment(transaction_id)
        except WellnessError as e:
            self.store.set_error(e.message)
            raise
        self.store.set_verified_payment(response.payment)
        return response.payment

    def fetch_payment_history(self, limit: int = 10):
        try:
            response = self.api.get_payment_history(limit)
        except WellnessError as e:
            self.store.set_error(e.message)
            raise
        self.store.set_payment_history(response.payments)
        return response.payments

    def cancel_subscription(self):
        """
        Cancel the persisted subscription.

        Independent of the payment state machine; the subscription stays
        entitled until its end date.
        """
        self.store.cancel_started()
        try:
            self.api.cancel_subscription()
        except WellnessError as e:
            self.store.cancel_failed(e.message)
            raise
        logger.info("[PAYMENT] Subscription cancelled")
        return self.store.subscription_cancelled()


def _with_subscription_terms(payment: Payment) -> Payment:
    """Fill dates and feature caps the process response left out."""
    updates = {}
    start = payment.subscription_start_date
    if start is None:
        start = datetime.now(timezone.utc)
        updates['subscription_start_date'] = start
    if payment.subscription_end_date is None:
        updates['subscription_end_date'] = subscription_end_date(start, payment.billing_cycle)
    if payment.features is None:
        updates['features'] = features_for(payment.plan_type)
    return payment.model_copy(update=updates) if updates else payment
