"""
Credential verification for UPI and net-banking.

A ``CredentialVerifier`` stands between the payment form and the payment or
banking gateway. The token it returns is attached to the payment method and
checked by validation before checkout proceeds.
"""

import logging
import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from wellness.exceptions import ValidationError
from wellness.schemas import NetBankingPayment, PaymentMethodType, UpiPayment, VerificationToken
from wellness.services import validation_service

logger = logging.getLogger(__name__)


class CredentialVerifier(ABC):
    """Gateway interface: ``verify(method) -> VerificationToken``."""

    @abstractmethod
    def verify(self, method) -> VerificationToken:
        """
        Verify the credentials of a UPI or net-banking method.

        Raises:
            ValidationError: when the gateway rejects the credentials
        """


class FormatCheckVerifier(CredentialVerifier):
    """
    Verifier used when no gateway is configured.

    Accepts credentials that pass local format checks and issues a random
    token bound to the verified subject (UPI id or bank name).
    """

    def verify(self, method) -> VerificationToken:
        if isinstance(method, UpiPayment):
            upi_id = (method.upi_id or "").strip()
            if not upi_id:
                raise ValidationError({'upi': "Please enter UPI ID"})
            if not validation_service.validate_upi_id(upi_id):
                raise ValidationError({
                    'upi': "Invalid UPI ID format. Use 10-digit mobile number. Example: 9876543210@paytm"
                })
            return self._issue(PaymentMethodType.UPI, upi_id)

        if isinstance(method, NetBankingPayment):
            # Same field rules as checkout, minus the verification requirement itself
            errors = validation_service.validate_payment_method(method)
            if errors:
                if 'bank' in errors:
                    errors['bank'] = "Please select a bank first"
                raise ValidationError(errors)
            return self._issue(PaymentMethodType.NETBANKING, method.bank.strip())

        raise ValidationError({'paymentMethod': "Only UPI and net banking credentials can be verified"})

    def _issue(self, method: PaymentMethodType, subject: str) -> VerificationToken:
        logger.info(f"[VERIFY] {method.value} credentials accepted")
        return VerificationToken(
            token=secrets.token_urlsafe(16),
            method=method,
            subject=subject,
            verified_at=datetime.now(timezone.utc),
        )
