"""Configuration module for the Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')

    # REST backend
    API_BASE_URL = os.getenv('API_BASE_URL', 'http://localhost:5000')
    API_TIMEOUT = float(os.getenv('API_TIMEOUT', '10'))
    # Retries apply to GET requests only; payment mutations are never retried
    API_MAX_RETRIES = int(os.getenv('API_MAX_RETRIES', '3'))
    API_BACKOFF_FACTOR = float(os.getenv('API_BACKOFF_FACTOR', '0.5'))

    # Payments
    # 'fail_closed' blocks checkout when the active-subscription check fails,
    # 'fail_open' lets it proceed
    SUBSCRIPTION_CHECK_POLICY = os.getenv('SUBSCRIPTION_CHECK_POLICY', 'fail_closed')
    REQUIRE_NETBANKING_VERIFICATION = os.getenv('REQUIRE_NETBANKING_VERIFICATION', 'false').lower() == 'true'
    # Per-actor payment state is dropped after this many idle seconds
    PAYMENT_STORE_IDLE_TTL = int(os.getenv('PAYMENT_STORE_IDLE_TTL', '1800'))
    PAYMENT_STORE_MAX = int(os.getenv('PAYMENT_STORE_MAX', '10000'))

    # Commission defaults (used when /api/settings omits them)
    DEFAULT_CONSULTATION_COMMISSION = os.getenv('DEFAULT_CONSULTATION_COMMISSION', '15%')
    DEFAULT_PLATFORM_SHARE = os.getenv('DEFAULT_PLATFORM_SHARE', '20%')

    # Dashboard
    NOTIFICATION_POLL_INTERVAL = int(os.getenv('NOTIFICATION_POLL_INTERVAL', '30'))  # seconds
    DASHBOARD_MAX_WORKERS = int(os.getenv('DASHBOARD_MAX_WORKERS', '6'))

    # Redis Cache Configuration
    # Only the public settings document is cached; everything else is per-actor
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_SETTINGS_TTL = int(os.getenv('CACHE_SETTINGS_TTL', '300'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'wellness')


class TestConfig(Config):
    """Configuration used by the test suite."""

    TESTING = True
    DEBUG = False
    WTF_CSRF_ENABLED = False
    CACHE_ENABLED = False
    API_BASE_URL = 'http://backend.test'
    API_MAX_RETRIES = 0
