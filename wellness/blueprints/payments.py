"""Payments blueprint: plans, checkout and subscription management."""
from flask import Blueprint, current_app, g, jsonify, request
from pydantic import TypeAdapter, ValidationError as SchemaValidationError

from wellness.blueprints.metrics import record_payment_transition
from wellness.exceptions import ValidationError
from wellness.middleware import get_api_client, get_store, require_token
from wellness.schemas import BillingCycle, PaymentMethod
from wellness.services import validation_service
from wellness.services.payment_service import PaymentController
from wellness.services.plan_catalog import PlanCatalog, fetch_pricing_plans
from wellness.utils.formatters import long_date

payments_bp = Blueprint('payments', __name__, url_prefix='/payments')

_method_adapter = TypeAdapter(PaymentMethod)

MAX_HISTORY_LIMIT = 100


def _controller() -> PaymentController:
    return PaymentController.from_config(
        current_app.config,
        get_api_client(),
        get_store(),
        verifier=current_app.extensions['credential_verifier'],
        on_transition=record_payment_transition,
    )


def _catalog() -> PlanCatalog:
    return PlanCatalog.from_config(current_app.config, get_api_client(), cache=current_app.extensions.get('cache'))


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _billing(value) -> BillingCycle:
    try:
        return BillingCycle((value or 'monthly').lower())
    except ValueError:
        raise ValidationError({'billingCycle': "Billing cycle must be monthly or yearly"})


def _int_arg(value, field, default=None):
    if value in (None, ''):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError({field: f"{field} must be a whole number"})


def _parse_method(body: dict):
    """
    Read the payment method from a request body.

    Accepts ``{"paymentMethod": {"method": "card", ...}}`` or the flat form
    ``{"paymentMethod": "card", "paymentDetails": {...}}``.
    """
    raw = body.get('paymentMethod')
    if isinstance(raw, str):
        raw = {**(body.get('paymentDetails') or {}), 'method': raw}
    if not isinstance(raw, dict):
        raise ValidationError({'paymentMethod': "Please select a payment method"})

    try:
        return _method_adapter.validate_python(raw)
    except SchemaValidationError as e:
        errors = {}
        for error in e.errors():
            field = str(error['loc'][-1]) if len(error['loc']) > 1 else 'paymentMethod'
            errors.setdefault(field, error['msg'])
        raise ValidationError(errors) from e


@payments_bp.route('/plans')
def plans():
    """Pricing tiers for a billing cycle (public)."""
    billing = _billing(request.args.get('billing'))
    catalog = _catalog()

    if g.get('actor_id'):
        tiers = fetch_pricing_plans(catalog, get_store(), billing)
    else:
        tiers = catalog.pricing_plans(billing)

    return jsonify({
        'success': True,
        'billing': billing.value,
        'plans': [tier.to_json() for tier in tiers],
    })


@payments_bp.route('/methods')
def methods():
    """Banks, UPI apps and EMI tenures offered on the payment form (public)."""
    return jsonify({
        'success': True,
        'netbankingBanks': list(validation_service.NETBANKING_BANKS),
        'emiBanks': list(validation_service.EMI_BANKS),
        'upiApps': list(validation_service.UPI_APPS),
        'emiRates': {str(tenure): rate for tenure, rate in validation_service.EMI_RATES.items()},
    })


@payments_bp.route('/subscription')
@require_token
def subscription():
    """Run the subscription guard check and return the active subscription."""
    result = _controller().check_subscription()
    sub = result.subscription
    return jsonify({
        'success': True,
        'hasActiveSubscription': result.has_active,
        'subscription': sub.to_json() if sub else None,
        'daysRemaining': sub.days_remaining() if sub else 0,
        'validUntil': long_date(sub.end_date) if sub else None,
        'degraded': result.degraded,
    })


@payments_bp.route('/emi-quote', methods=['POST'])
@require_token
def emi_quote():
    body = _json_body()
    tenure = _int_arg(body.get('tenure'), 'emiTenure')
    if tenure is None:
        raise ValidationError({'emiTenure': "Please select EMI tenure"})
    quote = validation_service.calculate_emi(body.get('amount'), tenure)
    return jsonify({'success': True, 'quote': quote})


@payments_bp.route('/verify-credentials', methods=['POST'])
@require_token
def verify_credentials():
    """Verify UPI / net-banking credentials and issue a verification token."""
    method = _parse_method(_json_body())
    token = _controller().verify_credentials(method)
    return jsonify({'success': True, 'verification': token.to_json()})


@payments_bp.route('/checkout', methods=['POST'])
@require_token
def checkout():
    """
    Purchase a plan.

    Runs validation, the subscription guard, initialize and process. Errors
    are rendered by the app error handler: 422 field errors, 409 existing
    subscription, 401 authentication, 502 remote failure.
    """
    body = _json_body()
    plan_type = (body.get('planType') or '').strip()
    if not plan_type:
        raise ValidationError({'planType': "Please select a plan"})

    method = _parse_method(body)
    controller = _controller()
    payment = controller.checkout(
        plan_type=plan_type,
        billing_cycle=_billing(body.get('billingCycle')),
        amount=body.get('amount'),
        method=method,
    )

    state = controller.store.state
    current_app.logger.info(f"[PAYMENT] Checkout complete for {payment.plan_type}")
    return jsonify({
        'success': True,
        'message': state.success_message,
        'payment': payment.to_json(),
        'subscription': state.active_subscription.to_json() if state.active_subscription else None,
    })


@payments_bp.route('/reset', methods=['POST'])
@require_token
def reset():
    state = _controller().reset()
    return jsonify({'success': True, 'state': state.to_json()})


@payments_bp.route('/state')
@require_token
def state():
    return jsonify({'success': True, 'state': get_store().state.to_json()})


@payments_bp.route('/verify/<transaction_id>')
@require_token
def verify(transaction_id):
    payment = _controller().verify_payment(transaction_id)
    return jsonify({'success': True, 'payment': payment.to_json()})


@payments_bp.route('/history')
@require_token
def history():
    limit = _int_arg(request.args.get('limit'), 'limit', default=10)
    limit = max(1, min(limit, MAX_HISTORY_LIMIT))
    payments = _controller().fetch_payment_history(limit)
    return jsonify({'success': True, 'payments': [p.to_json() for p in payments]})


@payments_bp.route('/subscription/cancel', methods=['POST'])
@require_token
def cancel_subscription():
    state = _controller().cancel_subscription()
    sub = state.active_subscription
    return jsonify({
        'success': True,
        'message': state.success_message,
        'subscription': sub.to_json() if sub else None,
    })
