from datetime import timedelta

from inventory_forecast.services import cache_service
from inventory_forecast.services.cache_service import (
    CacheBackend,
    CacheService,
    InMemoryCache,
    get_cache,
    close_cache,
    input_digest,
)

from tests.fakes import make_product, make_sale


async def test_in_memory_cache_expires_entries():
    cache = InMemoryCache()

    await cache.set("k", {"v": 1}, ttl=60)
    assert await cache.get("k") == {"v": 1}

    await cache.set("gone", 1, ttl=-1)
    assert await cache.get("gone") is None


async def test_forecast_keys_are_tenant_isolated():
    cache = CacheService(InMemoryCache())

    await cache.set_forecast("tenant-a", "abc", {"metrics": []})

    assert await cache.get_forecast("tenant-a", "abc") == {"metrics": []}
    assert await cache.get_forecast("tenant-b", "abc") is None


async def test_invalidate_only_drops_one_tenant():
    cache = CacheService(InMemoryCache())
    await cache.set_forecast("tenant-a", "one", {"n": 1})
    await cache.set_forecast("tenant-a", "two", {"n": 2})
    await cache.set_forecast("tenant-b", "one", {"n": 3})

    assert await cache.invalidate_forecasts("tenant-a") == 2

    assert await cache.get_forecast("tenant-a", "one") is None
    assert await cache.get_forecast("tenant-b", "one") == {"n": 3}


def test_input_digest_is_stable_and_input_sensitive():
    products = [make_product("p1"), make_product("p2")]
    sales = [make_sale("p1", days_ago=1)]

    assert input_digest(products, sales) == input_digest(list(products), list(sales))
    assert input_digest(products, sales) != input_digest(products, [])
    assert input_digest(products, sales) != input_digest(
        [make_product("p1", current_stock=99), make_product("p2")], sales
    )
    shifted = [make_sale("p1", days_ago=1).model_copy(
        update={"created_at": sales[0].created_at + timedelta(seconds=1)}
    )]
    assert input_digest(products, sales) != input_digest(products, shifted)


async def test_get_cache_falls_back_to_memory_without_redis():
    await close_cache()

    cache = get_cache()

    assert isinstance(cache.backend, InMemoryCache)
    assert get_cache() is cache

    await close_cache()
    assert cache_service._cache_instance is None


def test_input_digest_salt_changes_the_key():
    products = [make_product("p1")]

    assert input_digest(products, salt="2026-10-19T12:00:00+00:00") == input_digest(
        products, salt="2026-10-19T12:00:00+00:00"
    )
    assert input_digest(products, salt="2026-10-19T12:00:00+00:00") != input_digest(
        products, salt="2026-10-19T13:00:00+00:00"
    )


def test_backend_interface_is_get_set_and_pattern_clear():
    assert CacheBackend.__abstractmethods__ == {"get", "set", "clear_pattern"}
