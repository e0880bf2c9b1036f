"""Middleware for the acting user's token and per-request services."""
import hashlib
from functools import wraps

from flask import current_app, g, request

from wellness.exceptions import AuthenticationError
from wellness.services.api_client import WellnessApiClient


def _bearer_token():
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def load_actor():
    """
    Load the acting user's token into g (Flask's per-request global).

    Sets g.api_token and g.actor_id. The actor id is a hash of the token so
    raw tokens are never used as store keys.
    """
    g.api_token = _bearer_token()
    g.actor_id = hashlib.sha256(g.api_token.encode()).hexdigest() if g.api_token else None


def require_token(f):
    """
    Decorator: Require a bearer token.

    Raises AuthenticationError (rendered as 401 JSON) when the header is missing.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not getattr(g, 'api_token', None):
            raise AuthenticationError('Not authenticated')
        return f(*args, **kwargs)

    return decorated_function


def get_api_client():
    """API client for this request, carrying the actor's token (if any)."""
    if 'api_client' not in g:
        factory = current_app.extensions['api_client_factory']
        g.api_client = factory(current_app.config, getattr(g, 'api_token', None))
    return g.api_client


def get_store():
    """The acting user's PaymentStore."""
    return current_app.extensions['payment_stores'].get(g.actor_id)


def default_api_client_factory(config, token):
    return WellnessApiClient.from_config(config, token)
