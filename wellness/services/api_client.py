"""REST client for the wellness platform backend."""
import logging
from typing import Any, Dict, Optional, Type

import requests
from pydantic import ValidationError as SchemaValidationError
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from wellness.exceptions import AuthenticationError, RemoteCallError, ResponseSchemaError
from wellness.schemas import (
    ActiveSubscriptionResponse,
    CancelSubscriptionResponse,
    PaymentHistoryResponse,
    PaymentResponse,
    SettingsResponse,
    extract_records,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Request to the server failed. Please try again."


def build_session(max_retries: int = 3, backoff_factor: float = 0.5) -> requests.Session:
    """
    Create a session that retries idempotent reads only.

    POST requests are never retried so a payment cannot be submitted twice;
    failures surface to the user, who retries by hand.
    """
    session = requests.Session()
    retry = Retry(
        total=max_retries,
        connect=max_retries,
        read=max_retries,
        status=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=(502, 503, 504),
        allowed_methods=frozenset(['GET']),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount('http://', adapter)
    session.mount('https://', adapter)
    return session


class WellnessApiClient:
    """Client for the platform REST API.

    One instance per actor: it carries that actor's bearer token.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
    ):
        """
        Initialize the API client.

        Args:
            base_url: Backend root, e.g. https://api.example.com
            token: Bearer token of the acting user; required by every
                endpoint except the settings read
            timeout: Per-request timeout in seconds
            session: Pre-built requests session (tests inject one)
            max_retries: Bounded retries for GET requests
            backoff_factor: Exponential backoff factor between GET retries
        """
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.session = session or build_session(max_retries, backoff_factor)

    @classmethod
    def from_config(cls, config, token: Optional[str] = None) -> 'WellnessApiClient':
        """Build a client from a Flask config mapping."""
        return cls(
            base_url=config.get('API_BASE_URL', 'http://localhost:5000'),
            token=token,
            timeout=config.get('API_TIMEOUT', 10),
            max_retries=config.get('API_MAX_RETRIES', 3),
            backoff_factor=config.get('API_BACKOFF_FACTOR', 0.5),
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self, authenticated: bool) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if authenticated:
            if not self.token:
                raise AuthenticationError('Not authenticated')
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def _request(
        self,
        method: str,
        path: str,
        authenticated: bool = True,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Send a request and return the decoded JSON body.

        Raises:
            AuthenticationError: missing token, or HTTP 401/403
            RemoteCallError: network failure or any other non-2xx status;
                the message is the server's own when it sent one
        """
        url = f"{self.base_url}{path}"
        headers = self._headers(authenticated)

        try:
            response = self.session.request(
                method, url, headers=headers, params=params, json=json, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"[API] {method} {path} failed: {e}")
            raise RemoteCallError(GENERIC_ERROR) from e

        body = self._decode(response)

        if response.status_code in (401, 403):
            logger.warning(f"[API] {method} {path} rejected with {response.status_code}")
            raise AuthenticationError(_server_message(body) or 'Authentication failed. Please login again.')

        if not response.ok:
            message = _server_message(body) or GENERIC_ERROR
            logger.error(f"[API] {method} {path} -> {response.status_code}: {message}")
            raise RemoteCallError(message)

        return body

    @staticmethod
    def _decode(response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    def _parse(self, schema: Type, body: Any, endpoint: str):
        if not isinstance(body, dict):
            raise ResponseSchemaError(endpoint, 'body is not a JSON object')
        try:
            return schema.model_validate(body)
        except SchemaValidationError as e:
            logger.error(f"[API] {endpoint} response failed validation: {e}")
            raise ResponseSchemaError(endpoint, str(e)) from e

    def _expect_success(self, parsed, fallback: str):
        if not parsed.success:
            raise RemoteCallError(parsed.message or fallback)
        return parsed

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def get_active_subscription(self) -> ActiveSubscriptionResponse:
        """GET /api/payments/subscription/active"""
        body = self._request('GET', '/api/payments/subscription/active')
        parsed = self._parse(ActiveSubscriptionResponse, body, 'subscription/active')
        return self._expect_success(parsed, 'Failed to check subscription')

    def initialize_payment(
        self,
        plan_type: str,
        billing_cycle: str,
        amount: float,
        payment_method: str,
        payment_details: Dict[str, Any],
    ) -> PaymentResponse:
        """POST /api/payments/initialize (never retried)."""
        payload = {
            'planType': plan_type,
            'billingCycle': billing_cycle,
            'amount': float(amount),
            'paymentMethod': payment_method,
            'paymentDetails': payment_details,
        }
        logger.info(f"[API] Initializing {billing_cycle} {plan_type} payment via {payment_method}")
        body = self._request('POST', '/api/payments/initialize', json=payload)
        parsed = self._parse(PaymentResponse, body, 'payments/initialize')
        parsed = self._expect_success(parsed, 'Failed to initialize payment')
        if parsed.payment is None or not parsed.payment.id:
            raise ResponseSchemaError('payments/initialize', 'payment id missing')
        return parsed

    def process_payment(self, payment_id: str) -> PaymentResponse:
        """POST /api/payments/process/:paymentId (never retried)."""
        logger.info(f"[API] Processing payment {payment_id}")
        body = self._request('POST', f'/api/payments/process/{payment_id}', json={})
        parsed = self._parse(PaymentResponse, body, 'payments/process')
        parsed = self._expect_success(parsed, 'Payment processing failed')
        if parsed.payment is None:
            raise ResponseSchemaError('payments/process', 'payment missing')
        return parsed

    def verify_payment(self, transaction_id: str) -> PaymentResponse:
        """GET /api/payments/verify/:transactionId"""
        body = self._request('GET', f'/api/payments/verify/{transaction_id}')
        parsed = self._parse(PaymentResponse, body, 'payments/verify')
        parsed = self._expect_success(parsed, 'Payment verification failed')
        if parsed.payment is None:
            raise ResponseSchemaError('payments/verify', 'payment missing')
        return parsed

    def get_payment_history(self, limit: int = 10) -> PaymentHistoryResponse:
        """GET /api/payments/history?limit=N"""
        body = self._request('GET', '/api/payments/history', params={'limit': limit})
        parsed = self._parse(PaymentHistoryResponse, body, 'payments/history')
        return self._expect_success(parsed, 'Failed to fetch payment history')

    def cancel_subscription(self) -> CancelSubscriptionResponse:
        """POST /api/payments/subscription/cancel (never retried)."""
        body = self._request('POST', '/api/payments/subscription/cancel', json={})
        parsed = self._parse(CancelSubscriptionResponse, body, 'subscription/cancel')
        return self._expect_success(parsed, 'Failed to cancel subscription')

    # ------------------------------------------------------------------
    # Settings and analytics
    # ------------------------------------------------------------------

    def get_settings(self) -> SettingsResponse:
        """GET /api/settings (public)."""
        body = self._request('GET', '/api/settings', authenticated=False)
        return self._parse(SettingsResponse, body, 'settings')

    def get_records(self, resource: str) -> list:
        """
        GET a list endpoint such as ``/api/users-list`` or ``/api/consultation-revenue``.

        Both ``[...]`` and ``{"data": [...]}`` bodies are accepted.
        """
        body = self._request('GET', f'/api/{resource}')
        return extract_records(body)

    def get_document(self, resource: str) -> dict:
        """GET an object endpoint, unwrapping ``{"data": {...}}`` when present."""
        body = self._request('GET', f'/api/{resource}')
        if isinstance(body, dict):
            data = body.get('data')
            return data if isinstance(data, dict) else body
        raise ResponseSchemaError(resource, 'body is not a JSON object')


def _server_message(body: Any) -> Optional[str]:
    if isinstance(body, dict):
        message = body.get('message') or body.get('error')
        if isinstance(message, str) and message.strip():
            return message
    return None
