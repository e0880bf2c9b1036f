"""
Unit tests for payment-method validation and EMI quotes.
"""

import pytest
from datetime import datetime, timezone

from wellness.exceptions import ValidationError
from wellness.schemas import CardPayment, EmiPayment, NetBankingPayment, PaymentMethodType, UpiPayment, VerificationToken
from wellness.services import validation_service
from wellness.services.validation_service import (
    build_payment_details,
    calculate_emi,
    validate_card_number,
    validate_cvv,
    validate_expiry,
    validate_payment_method,
    validate_upi_id,
)


def _token(method, subject):
    return VerificationToken(token='tok', method=method, subject=subject, verified_at=datetime.now(timezone.utc))


class TestCardNumber:
    """Tests for card number format."""

    @pytest.mark.parametrize('number', [
        '4111111111111111',
        '4111 1111 1111 1111',
        ' 4111 1111 1111 1111 ',
    ])
    def test_sixteen_digits_accepted(self, number):
        assert validate_card_number(number) is True

    @pytest.mark.parametrize('number', [
        '411111111111111',
        '41111111111111112',
        '4111-1111-1111-1111',
        '4111 1111 1111 111a',
        '',
    ])
    def test_other_input_rejected(self, number):
        assert validate_card_number(number) is False

    @pytest.mark.parametrize('number', [
        '\u0661' * 16,
        '\uff14' * 16,
        '4111\u00a01111\u00a01111\u00a01111',
    ])
    def test_non_ascii_digits_and_separators_rejected(self, number):
        assert validate_card_number(number) is False


class TestCvv:
    """Tests for CVV format."""

    @pytest.mark.parametrize('cvv', ['123', '1234'])
    def test_three_or_four_digits(self, cvv):
        assert validate_cvv(cvv) is True

    @pytest.mark.parametrize('cvv', ['12', '12345', '123\n', '\uff11\uff12\uff13', '\u0661\u0662\u0663', ''])
    def test_other_input_rejected(self, cvv):
        assert validate_cvv(cvv) is False


class TestExpiry:
    """Tests for card expiry."""

    NOW = datetime(2026, 10, 17)

    def test_current_month_is_still_valid(self):
        assert validate_expiry('2026-10', self.NOW) is True

    def test_previous_month_is_expired(self):
        assert validate_expiry('2026-09', self.NOW) is False

    def test_future_year(self):
        assert validate_expiry('2030-01', self.NOW) is True

    @pytest.mark.parametrize('value', ['2026-13', '2026-00', '10/26', 'soon', ''])
    def test_unparseable(self, value):
        assert validate_expiry(value, self.NOW) is False


class TestUpiId:
    """Tests for UPI id format."""

    def test_ten_digit_mobile(self):
        assert validate_upi_id('9876543210@paytm') is True

    def test_nine_digits_rejected(self):
        assert validate_upi_id('98765@paytm') is False

    def test_handle_required(self):
        assert validate_upi_id('9876543210@') is False
        assert validate_upi_id('9876543210') is False

    def test_non_ascii_digits_rejected(self):
        assert validate_upi_id('\u0669' * 10 + '@paytm') is False
        assert validate_upi_id('9876543210@p\u00e4ytm') is False

    def test_trailing_newline_rejected(self):
        assert validate_upi_id('9876543210@paytm\n') is False


class TestValidatePaymentMethod:
    """Tests for whole-form validation."""

    def test_valid_card(self, card_method):
        assert validate_payment_method(card_method) == {}

    def test_all_card_errors_reported_together(self):
        errors = validate_payment_method(CardPayment(card_number='123', valid_through='2001-01', cvv='1', card_name='Al'))
        assert set(errors) == {'cardNumber', 'validThrough', 'cvv', 'cardName'}

    def test_missing_card_fields(self):
        errors = validate_payment_method(CardPayment())
        assert errors['cardNumber'] == "Card number is required"
        assert errors['cvv'] == "CVV is required"
        assert errors['cardName'] == "Cardholder name is required"

    def test_netbanking_lengths(self):
        errors = validate_payment_method(NetBankingPayment(bank='HDFC Bank', username='ab', password='12345'))
        assert set(errors) == {'netbankingUsername', 'netbankingPassword'}

    def test_netbanking_other_bank_accepted(self):
        method = NetBankingPayment(bank='Some Cooperative Bank', username='asha', password='secret123')
        assert validate_payment_method(method) == {}

    def test_netbanking_verification_optional_by_default(self, netbanking_method):
        assert validate_payment_method(netbanking_method) == {}

    def test_netbanking_verification_when_required(self, netbanking_method):
        errors = validate_payment_method(netbanking_method, require_netbanking_verification=True)
        assert 'bank' in errors

        verified = netbanking_method.model_copy(
            update={'verification': _token(PaymentMethodType.NETBANKING, 'HDFC Bank')}
        )
        assert validate_payment_method(verified, require_netbanking_verification=True) == {}

    def test_upi_id_requires_verification(self, upi_method):
        errors = validate_payment_method(upi_method)
        assert errors == {'upi': "Please verify your UPI ID before proceeding"}

    def test_upi_verified_for_same_id(self, upi_method):
        verified = upi_method.model_copy(update={'verification': _token(PaymentMethodType.UPI, '9876543210@paytm')})
        assert validate_payment_method(verified) == {}

    def test_upi_token_for_other_id_rejected(self, upi_method):
        verified = upi_method.model_copy(update={'verification': _token(PaymentMethodType.UPI, '1111111111@ybl')})
        assert 'upi' in validate_payment_method(verified)

    def test_upi_app_alone_is_enough(self):
        assert validate_payment_method(UpiPayment(upi_app='PhonePe')) == {}

    def test_upi_nothing_selected(self):
        assert validate_payment_method(UpiPayment()) == {'upi': "Please enter UPI ID or select a UPI app"}

    def test_emi_requires_bank_and_tenure(self):
        errors = validate_payment_method(EmiPayment())
        assert set(errors) == {'emiBank', 'emiTenure'}

    def test_emi_tenure_from_fixed_set(self):
        errors = validate_payment_method(EmiPayment(bank='HDFC Bank', tenure=9))
        assert 'emiTenure' in errors

    def test_unknown_method(self):
        assert validate_payment_method(None) == {'paymentMethod': "Please select a payment method"}

    def test_ensure_valid_raises_with_field_errors(self):
        with pytest.raises(ValidationError) as exc_info:
            validation_service.ensure_valid(EmiPayment())
        assert exc_info.value.status_code == 422
        assert set(exc_info.value.field_errors) == {'emiBank', 'emiTenure'}


class TestCalculateEmi:
    """Tests for EMI quotes."""

    def test_twelve_month_quote(self):
        quote = calculate_emi(899, 12)
        assert quote == {
            'tenure': 12,
            'annualRate': 16,
            'totalInterest': 144,
            'totalAmount': 1043,
            'emiAmount': 87,
        }

    def test_three_month_quote(self):
        # 599 * 12 * 3 / 1200 = 17.97 -> 18
        quote = calculate_emi(599, 3)
        assert quote['annualRate'] == 12
        assert quote['totalInterest'] == 18
        assert quote['totalAmount'] == 617
        assert quote['emiAmount'] == 206

    def test_invalid_tenure(self):
        with pytest.raises(ValidationError):
            calculate_emi(899, 24)

    def test_non_positive_amount(self):
        with pytest.raises(ValidationError):
            calculate_emi(0, 12)


class TestBuildPaymentDetails:
    """Tests for the initialize request body."""

    def test_card_only_exposes_last_four(self, card_method):
        details = build_payment_details(card_method)
        assert details == {'cardLast4': '1111', 'cardType': 'Credit/Debit'}

    def test_emi_includes_monthly_amount(self, emi_method):
        details = build_payment_details(emi_method, 899)
        assert details == {'emiBank': 'HDFC Bank', 'emiTenure': 12, 'emiMonthlyAmount': 87}

    def test_upi(self):
        details = build_payment_details(UpiPayment(upi_id='9876543210@paytm', upi_app='Paytm'))
        assert details == {'upiId': '9876543210@paytm', 'upiApp': 'Paytm'}
