"""
Redis cache for shared backend documents.

Only data that is identical for every actor (the public settings document)
is cached; per-actor payment state never goes through here. Every Redis
error degrades to a cache miss.
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional

import redis
from flask import Flask
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


def _encode(value: Any) -> str:
    def default(obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return {'__decimal__': str(obj)}
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        raise TypeError(f"{type(obj).__name__} is not JSON serializable")

    return json.dumps(value, default=default)


def _decode(raw: str) -> Any:
    def object_hook(obj: dict) -> Any:
        if '__decimal__' in obj:
            return Decimal(obj['__decimal__'])
        return obj

    return json.loads(raw, object_hook=object_hook)


class CacheService:
    """
    Redis cache-aside helper.

    Keys are ``{prefix}:{module}:{key}``, e.g. ``wellness:settings:public``.
    """

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self.prefix = 'wellness'
        self.default_ttl = 60
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.prefix = app.config.get('CACHE_KEY_PREFIX', self.prefix)
        self.default_ttl = app.config.get('CACHE_DEFAULT_TTL', self.default_ttl)

        if not app.config.get('CACHE_ENABLED', True):
            logger.info("[CACHE] Disabled via config")
            return

        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')
        try:
            client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            client.ping()
        except RedisError as e:
            logger.warning(f"[CACHE] Redis unavailable at {redis_url}: {e}. Running without cache.")
            return
        self.client = client
        logger.info(f"[CACHE] Redis connected: {redis_url}")

    def is_available(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def key(self, module: str, key: str) -> str:
        return f"{self.prefix}:{module}:{key}"

    def get(self, module: str, key: str) -> Optional[Any]:
        if not self.is_available():
            return None
        try:
            raw = self.client.get(self.key(module, key))
            return _decode(raw) if raw is not None else None
        except (RedisError, ValueError) as e:
            logger.warning(f"[CACHE] Read of {module}:{key} failed: {e}")
            return None

    def set(self, module: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.is_available():
            return False
        try:
            self.client.setex(self.key(module, key), ttl or self.default_ttl, _encode(value))
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Write of {module}:{key} failed: {e}")
            return False
        return True

    def delete(self, module: str, key: str) -> bool:
        """Drop a cached document, e.g. after an admin edits the settings."""
        if not self.is_available():
            return False
        try:
            self.client.delete(self.key(module, key))
        except RedisError as e:
            logger.warning(f"[CACHE] Delete of {module}:{key} failed: {e}")
            return False
        return True

    def memoize(self, module: str, key: str, loader_fn: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Return the cached value, or call ``loader_fn`` and cache its result."""
        cached = self.get(module, key)
        if cached is not None:
            logger.debug(f"[CACHE] HIT {module}:{key}")
            return cached
        value = loader_fn()
        self.set(module, key, value, ttl)
        return value


def init_cache(app: Flask) -> CacheService:
    """Create the app's cache and register it as ``app.extensions['cache']``."""
    cache = CacheService(app)
    app.extensions['cache'] = cache
    return cache
