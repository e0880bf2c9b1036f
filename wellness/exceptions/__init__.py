"""Custom exceptions for the wellness payments client."""


class WellnessError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class ValidationError(WellnessError):
    """Raised when payment-method input fails local validation.

    All failing fields are reported at once in ``field_errors``.
    """
    def __init__(self, field_errors, message="Please fix the highlighted fields"):
        self.field_errors = dict(field_errors)
        super().__init__(message, 422, {'errors': self.field_errors})


class AuthenticationError(WellnessError):
    """Raised when the bearer token is missing or rejected by the backend."""
    def __init__(self, message="Authentication failed. Please login again."):
        super().__init__(message, 401)


class SubscriptionConflictError(WellnessError):
    """Raised when the actor already holds an active subscription.

    This is a guarded redirect, not a failure: the payment state is left untouched.
    """
    def __init__(self, subscription=None):
        self.subscription = subscription
        plan = subscription.plan_type if subscription else 'current'
        message = f"You already have an active {plan} subscription"
        payload = {'subscription': subscription.to_json()} if subscription else None
        super().__init__(message, 409, payload)


class RemoteCallError(WellnessError):
    """Raised when a backend call fails; message is the server's when available."""
    def __init__(self, message="Request to the server failed. Please try again.", status_code=502, payload=None):
        super().__init__(message, status_code, payload)


class ResponseSchemaError(RemoteCallError):
    """Raised when a backend response does not match its expected shape."""
    def __init__(self, endpoint, detail=None):
        self.endpoint = endpoint
        self.detail = detail
        super().__init__(f"Unexpected response from {endpoint}")


class SubscriptionCheckError(WellnessError):
    """Raised when the active-subscription check fails under a fail-closed policy."""
    def __init__(self, message="Could not verify your current subscription. Please try again."):
        super().__init__(message, 503)


class AggregationInputError(WellnessError):
    """Raised for malformed analytics records; always absorbed by the aggregator."""
    def __init__(self, message="Malformed analytics record"):
        super().__init__(message, 400)


class InvalidTransitionError(WellnessError):
    """Raised when the payment state machine is driven out of order."""
    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move payment from {current} to {target}", 409)


class PaymentInProgressError(InvalidTransitionError):
    """Raised when a second payment attempt starts while one is in flight."""
    def __init__(self, current):
        super().__init__(current, 'initializing')
        self.message = "A payment is already in progress"
        self.args = (self.message,)
