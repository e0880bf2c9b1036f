"""
Unit tests for the Redis cache service.
"""

from decimal import Decimal
from unittest.mock import MagicMock

from redis.exceptions import ConnectionError, RedisError

from wellness.services.cache_service import CacheService


def _cache(client=None):
    cache = CacheService()
    cache.prefix = 'test'
    cache.client = client or MagicMock()
    return cache


class TestAvailability:
    """Tests for graceful degradation."""

    def test_disabled_cache_is_a_no_op(self):
        cache = CacheService()
        assert cache.is_available() is False
        assert cache.get('settings', 'public') is None
        assert cache.set('settings', 'public', {'a': 1}) is False
        assert cache.delete('settings', 'public') is False

    def test_ping_failure(self):
        client = MagicMock()
        client.ping.side_effect = ConnectionError('down')
        assert _cache(client).is_available() is False


class TestReadWrite:
    """Tests for keys, serialisation and errors."""

    def test_set_uses_prefixed_key_and_ttl(self):
        cache = _cache()
        assert cache.set('settings', 'public', {'price': Decimal('599.00')}, ttl=30) is True

        key, ttl, payload = cache.client.setex.call_args[0]
        assert key == 'test:settings:public'
        assert ttl == 30
        assert '__decimal__' in payload

    def test_get_restores_decimals(self):
        cache = _cache()
        cache.client.get.return_value = '{"price": {"__decimal__": "599.00"}}'
        assert cache.get('settings', 'public') == {'price': Decimal('599.00')}

    def test_get_error_is_a_miss(self):
        cache = _cache()
        cache.client.get.side_effect = RedisError('boom')
        assert cache.get('settings', 'public') is None

    def test_delete(self):
        cache = _cache()
        assert cache.delete('settings', 'public') is True
        cache.client.delete.assert_called_once_with('test:settings:public')


class TestMemoize:
    """Tests for cache-aside loading."""

    def test_hit_skips_loader(self):
        cache = _cache()
        cache.client.get.return_value = '{"platformShare": "20%"}'
        loader = MagicMock()

        assert cache.memoize('settings', 'public', loader) == {'platformShare': '20%'}
        loader.assert_not_called()

    def test_miss_loads_and_stores(self):
        cache = _cache()
        cache.client.get.return_value = None

        value = cache.memoize('settings', 'public', lambda: {'platformShare': '25%'}, ttl=300)

        assert value == {'platformShare': '25%'}
        assert cache.client.setex.call_args[0][1] == 300

    def test_unavailable_always_loads(self):
        loader = MagicMock(return_value={'a': 1})
        assert CacheService().memoize('settings', 'public', loader) == {'a': 1}
        loader.assert_called_once()
