"""
Payment-method validation.

Pure functions over the submitted form. ``validate_payment_method`` returns
every failing field at once as ``{field: message}``; an empty dict means the
method may be submitted.
"""

import re
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from wellness.exceptions import ValidationError
from wellness.schemas import (
    CardPayment,
    EmiPayment,
    NetBankingPayment,
    PaymentMethodType,
    UpiPayment,
)
from wellness.utils.number_format import to_decimal

# ASCII digits only; patterns are applied with fullmatch
CARD_NUMBER_PATTERN = re.compile(r"\d{16}", re.ASCII)
CVV_PATTERN = re.compile(r"\d{3,4}", re.ASCII)
EXPIRY_PATTERN = re.compile(r"(\d{4})-(\d{1,2})", re.ASCII)
UPI_ID_PATTERN = re.compile(r"\d{10}@[\w.-]+", re.ASCII)

NETBANKING_BANKS = (
    'State Bank of India',
    'HDFC Bank',
    'ICICI Bank',
    'Axis Bank',
    'Kotak Mahindra Bank',
    'Punjab National Bank',
    'Bank of Baroda',
    'Canara Bank',
)
EMI_BANKS = ('HDFC Bank', 'ICICI Bank', 'Axis Bank', 'SBI', 'Kotak Bank')
UPI_APPS = ('Google Pay', 'PhonePe', 'Paytm', 'BHIM', 'Amazon Pay')

# Tenure in months -> annual interest rate (percent)
EMI_RATES = {3: 12, 6: 14, 12: 16}

MIN_CARD_NAME_LENGTH = 3
MIN_NETBANKING_USERNAME_LENGTH = 3
MIN_NETBANKING_PASSWORD_LENGTH = 6

FieldErrors = Dict[str, str]


def normalize_card_number(number: str) -> str:
    return re.sub(r"\s", "", number or "", flags=re.ASCII)


def validate_card_number(number: str) -> bool:
    """Exactly 16 digits once whitespace separators are removed."""
    return bool(CARD_NUMBER_PATTERN.fullmatch(normalize_card_number(number)))


def validate_expiry(value: str, now: Optional[datetime] = None) -> bool:
    """
    Validate a ``YYYY-MM`` expiry.

    The card stays valid through its expiry month, so only a year/month
    strictly before the current one is rejected.
    """
    match = EXPIRY_PATTERN.fullmatch((value or "").strip())
    if not match:
        return False

    year, month = int(match.group(1)), int(match.group(2))
    if month < 1 or month > 12:
        return False

    now = now or datetime.now()
    return (year, month) >= (now.year, now.month)


def validate_cvv(cvv: str) -> bool:
    return bool(CVV_PATTERN.fullmatch(cvv or ""))


def validate_upi_id(upi_id: str) -> bool:
    """A 10-digit mobile number, ``@`` and a handle, e.g. ``9876543210@paytm``."""
    return bool(UPI_ID_PATTERN.fullmatch(upi_id or ""))


def _validate_card(method: CardPayment, now: Optional[datetime]) -> FieldErrors:
    errors = {}

    if not method.card_number:
        errors['cardNumber'] = "Card number is required"
    elif not validate_card_number(method.card_number):
        errors['cardNumber'] = "Card number must be 16 digits (e.g., 1111 1111 1111 1111)"

    if not method.valid_through:
        errors['validThrough'] = "Expiry date is required"
    elif not validate_expiry(method.valid_through, now):
        errors['validThrough'] = "Card has expired or invalid date"

    if not method.cvv:
        errors['cvv'] = "CVV is required"
    elif not validate_cvv(method.cvv):
        errors['cvv'] = "CVV must be 3 or 4 digits"

    name = (method.card_name or "").strip()
    if not name:
        errors['cardName'] = "Cardholder name is required"
    elif len(name) < MIN_CARD_NAME_LENGTH:
        errors['cardName'] = "Name must be at least 3 characters"

    return errors


def _validate_netbanking(method: NetBankingPayment, require_verification: bool) -> FieldErrors:
    errors = {}

    # Any non-empty name is accepted so "other" banks can be typed in
    if not (method.bank or "").strip():
        errors['bank'] = "Please select a bank"
    if len(method.username or "") < MIN_NETBANKING_USERNAME_LENGTH:
        errors['netbankingUsername'] = "Username must be at least 3 characters"
    if len(method.password or "") < MIN_NETBANKING_PASSWORD_LENGTH:
        errors['netbankingPassword'] = "Password must be at least 6 characters"

    if not errors and require_verification and not _is_verified(method.verification, method.bank):
        errors['bank'] = "Please verify your bank credentials before proceeding"

    return errors


def _validate_upi(method: UpiPayment) -> FieldErrors:
    upi_id = (method.upi_id or "").strip()

    if not upi_id and not method.upi_app:
        return {'upi': "Please enter UPI ID or select a UPI app"}
    if upi_id and not validate_upi_id(upi_id):
        return {'upi': "Invalid UPI ID format. Use format: 9876543210@paytm"}
    if upi_id and not _is_verified(method.verification, upi_id):
        return {'upi': "Please verify your UPI ID before proceeding"}
    return {}


def _validate_emi(method: EmiPayment) -> FieldErrors:
    errors = {}

    if not (method.bank or "").strip():
        errors['emiBank'] = "Please select a bank"
    if method.tenure is None:
        errors['emiTenure'] = "Please select EMI tenure"
    elif method.tenure not in EMI_RATES:
        errors['emiTenure'] = "EMI tenure must be 3, 6 or 12 months"

    return errors


def _is_verified(token, subject: str) -> bool:
    return token is not None and token.subject == (subject or "").strip()


def validate_payment_method(
    method,
    now: Optional[datetime] = None,
    require_netbanking_verification: bool = False,
) -> FieldErrors:
    """
    Validate the active payment-method variant.

    Args:
        method: One of CardPayment, NetBankingPayment, UpiPayment, EmiPayment
        now: Reference time for card expiry (defaults to local now)
        require_netbanking_verification: Make the optional net-banking
            verification step mandatory

    Returns:
        dict mapping field name to message; empty when valid
    """
    if isinstance(method, CardPayment):
        return _validate_card(method, now)
    if isinstance(method, NetBankingPayment):
        return _validate_netbanking(method, require_netbanking_verification)
    if isinstance(method, UpiPayment):
        return _validate_upi(method)
    if isinstance(method, EmiPayment):
        return _validate_emi(method)
    return {'paymentMethod': "Please select a payment method"}


def ensure_valid(method, now: Optional[datetime] = None, require_netbanking_verification: bool = False) -> None:
    """Raise ValidationError with all field errors when ``method`` is invalid."""
    errors = validate_payment_method(method, now, require_netbanking_verification)
    if errors:
        raise ValidationError(errors)


def calculate_emi(amount, tenure: int) -> dict:
    """
    Quote an EMI plan.

    Interest is simple annual interest over the tenure, rounded half-up to a
    whole currency unit and added to the integer part of ``amount``. The
    monthly instalment is the total divided by the tenure, also rounded.

    Example:
        calculate_emi(899, 12) -> totalInterest 144, totalAmount 1043, emiAmount 87

    Raises:
        ValidationError: if the tenure is not 3, 6 or 12 months
    """
    if tenure not in EMI_RATES:
        raise ValidationError({'emiTenure': "EMI tenure must be 3, 6 or 12 months"})

    principal = to_decimal(amount)
    if principal <= 0:
        raise ValidationError({'amount': "Amount must be greater than 0"})

    annual_rate = EMI_RATES[tenure]
    interest = (principal * annual_rate * tenure / Decimal(12 * 100)).quantize(
        Decimal('1'), rounding=ROUND_HALF_UP
    )
    total = int(principal) + int(interest)
    emi = (Decimal(total) / tenure).quantize(Decimal('1'), rounding=ROUND_HALF_UP)

    return {
        'tenure': tenure,
        'annualRate': annual_rate,
        'totalInterest': int(interest),
        'totalAmount': total,
        'emiAmount': int(emi),
    }


def build_payment_details(method, amount=None) -> dict:
    """
    Build the ``paymentDetails`` body sent to the initialize endpoint.

    Only the last four card digits leave this module.
    """
    if isinstance(method, CardPayment):
        return {
            'cardLast4': normalize_card_number(method.card_number)[-4:],
            'cardType': 'Credit/Debit',
        }
    if isinstance(method, NetBankingPayment):
        return {'bankName': method.bank.strip()}
    if isinstance(method, UpiPayment):
        details = {}
        if method.upi_id:
            details['upiId'] = method.upi_id.strip()
        if method.upi_app:
            details['upiApp'] = method.upi_app
        return details
    if isinstance(method, EmiPayment):
        details = {'emiBank': method.bank, 'emiTenure': method.tenure}
        if amount is not None:
            details['emiMonthlyAmount'] = calculate_emi(amount, method.tenure)['emiAmount']
        return details
    return {}


def method_type(method) -> PaymentMethodType:
    return PaymentMethodType(method.method)
