import asyncio
from datetime import timedelta

import pytest

from inventory_forecast.schemas.inventory_forecast import (
    ForecastState,
    ResellerRecord,
    StockStatus,
)
from inventory_forecast.services.cache_service import CacheService, InMemoryCache
from inventory_forecast.services.forecasting import (
    ForecastParameters,
    InventoryForecastService,
    OptionalSourceDegradedError,
    SourceUnavailableError,
)

from tests.fakes import (
    NOW,
    FakeCatalog,
    FakeResellerDirectory,
    FakeSalesLedger,
    daily_sales,
    make_product,
)


class MutableClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


def _service(catalog, ledger, resellers=None, **kwargs):
    kwargs.setdefault("clock", MutableClock())
    return InventoryForecastService(catalog, ledger, resellers, **kwargs)


async def test_initial_state_is_idle_and_empty():
    service = _service(FakeCatalog(), FakeSalesLedger())

    assert service.state == ForecastState.IDLE
    assert service.loading is False
    assert service.error is None
    assert service.metrics == []
    assert service.summary.total_products == 0
    assert service.has_snapshot is False


async def test_start_publishes_metrics_and_summary():
    catalog = FakeCatalog([make_product("p1", current_stock=5), make_product("p2", current_stock=0)])
    ledger = FakeSalesLedger(daily_sales("p1", list(range(10))))
    service = _service(catalog, ledger, FakeResellerDirectory([ResellerRecord(id="r1", display_name="Ana")]))

    await service.start()
    assert service.loading is True
    await service.wait_idle()

    assert service.state == ForecastState.READY
    assert service.loading is False
    assert service.error is None
    assert [m.product_id for m in service.metrics] == ["p2", "p1"]
    assert service.summary.total_products == 2
    assert service.summary.products_out_of_stock == 1
    assert service.snapshot.computed_at == NOW
    assert service.metrics[1].reseller_breakdown[0].reseller_name == "Ana"
    assert service.cycles_completed == 1


async def test_sales_are_read_from_demand_window():
    ledger = FakeSalesLedger()
    service = _service(FakeCatalog(), ledger, params=ForecastParameters(demand_window_days=30))

    await service.refresh()

    assert ledger.since == NOW - timedelta(days=30)


async def test_sales_outside_window_do_not_count():
    catalog = FakeCatalog([make_product("p1")])
    ledger = FakeSalesLedger(daily_sales("p1", [2, 45], per_day=4))
    service = _service(catalog, ledger)

    await service.refresh()

    [m] = service.metrics
    assert m.avg_daily_sales == 4


async def test_sources_are_read_concurrently():
    catalog = FakeCatalog([make_product("p1")])
    catalog.gate = asyncio.Event()
    ledger = FakeSalesLedger()
    service = _service(catalog, ledger)

    service.refetch()
    await asyncio.wait_for(catalog.started.wait(), timeout=1)
    # Sales read starts while the catalog read is still blocked
    await asyncio.wait_for(ledger.started.wait(), timeout=1)
    assert catalog.active == 1

    catalog.gate.set()
    await service.wait_idle()
    assert service.state == ForecastState.READY


async def test_triggers_during_a_cycle_coalesce_into_one_rerun():
    catalog = FakeCatalog([make_product("p1")])
    catalog.gate = asyncio.Event()
    service = _service(catalog, FakeSalesLedger())

    service.refetch()
    await asyncio.wait_for(catalog.started.wait(), timeout=1)
    for _ in range(5):
        service.refetch()
    assert service.loading is True

    catalog.gate.set()
    await service.wait_idle()

    assert catalog.calls == 2
    assert catalog.max_active == 1
    assert service.cycles_completed == 2
    assert service.state == ForecastState.READY


async def test_trigger_after_idle_starts_a_fresh_cycle():
    catalog = FakeCatalog([make_product("p1")])
    service = _service(catalog, FakeSalesLedger())

    await service.refresh()
    await service.refresh()

    assert catalog.calls == 2
    assert service.cycles_completed == 2


async def test_rerun_sees_data_changed_mid_cycle():
    catalog = FakeCatalog([make_product("p1", current_stock=50)])
    catalog.gate = asyncio.Event()
    service = _service(catalog, FakeSalesLedger())

    service.refetch()
    await asyncio.wait_for(catalog.started.wait(), timeout=1)
    catalog.products = [make_product("p1", current_stock=0)]
    service.refetch()

    catalog.gate.set()
    await service.wait_idle()

    assert service.metrics[0].status == StockStatus.OUT_OF_STOCK


@pytest.mark.parametrize("failing", ["catalog", "sales"])
async def test_required_source_failure_keeps_previous_snapshot(failing):
    catalog = FakeCatalog([make_product("p1", current_stock=0)])
    ledger = FakeSalesLedger()
    service = _service(catalog, ledger)

    await service.refresh()
    previous = service.snapshot

    error = SourceUnavailableError(failing, "connection refused")
    if failing == "catalog":
        catalog.error = error
    else:
        ledger.error = error
    await service.refresh()

    assert service.state == ForecastState.ERROR
    assert service.loading is False
    assert "connection refused" in service.error
    assert service.snapshot is previous
    assert service.stale is True

    response = service.to_response()
    assert response.stale is True
    assert response.error == service.error
    assert response.metrics == previous.metrics


async def test_failure_before_any_success_publishes_nothing():
    catalog = FakeCatalog([make_product("p1")], error=SourceUnavailableError("catalog", "down"))
    service = _service(catalog, FakeSalesLedger())

    await service.refresh()

    assert service.state == ForecastState.ERROR
    assert service.has_snapshot is False
    assert service.stale is False
    assert service.metrics == []
    assert service.error == "catalog unavailable: down"


async def test_unexpected_source_exception_is_reported():
    catalog = FakeCatalog([make_product("p1")], error=RuntimeError("socket closed"))
    service = _service(catalog, FakeSalesLedger())

    await service.refresh()

    assert service.state == ForecastState.ERROR
    assert service.error == "socket closed"


async def test_reseller_directory_failure_is_not_fatal():
    catalog = FakeCatalog([make_product("p1")])
    ledger = FakeSalesLedger(daily_sales("p1", [1, 2], reseller_id="r1"))
    directory = FakeResellerDirectory(
        error=OptionalSourceDegradedError("reseller_directory", "relation does not exist")
    )
    service = _service(catalog, ledger, directory)

    await service.refresh()

    assert service.state == ForecastState.READY
    assert service.error is None
    assert directory.calls == 1
    [m] = service.metrics
    assert [r.reseller_name for r in m.reseller_breakdown] == ["Unknown"]


async def test_success_after_failure_clears_error():
    catalog = FakeCatalog([make_product("p1")], error=SourceUnavailableError("catalog", "down"))
    service = _service(catalog, FakeSalesLedger())

    await service.refresh()
    assert service.error is not None

    catalog.error = None
    await service.refresh()

    assert service.error is None
    assert service.stale is False
    assert service.state == ForecastState.READY
    assert len(service.metrics) == 1


async def test_cached_forecast_is_reused_for_identical_inputs():
    clock = MutableClock()
    cache = CacheService(InMemoryCache())
    service = _service(
        FakeCatalog([make_product("p1")]),
        FakeSalesLedger(daily_sales("p1", [1, 2, 3])),
        cache=cache,
        clock=clock,
    )

    await service.refresh()
    first = service.snapshot

    clock.now = NOW + timedelta(minutes=1)
    await service.refresh()

    assert service.snapshot.computed_at == first.computed_at
    assert service.snapshot.metrics == first.metrics


async def test_invalidate_cache_forces_recompute():
    clock = MutableClock()
    cache = CacheService(InMemoryCache())
    service = _service(
        FakeCatalog([make_product("p1")]),
        FakeSalesLedger(daily_sales("p1", [1, 2, 3])),
        cache=cache,
        clock=clock,
    )

    await service.refresh()

    clock.now = NOW + timedelta(minutes=1)
    await service.refresh(invalidate_cache=True)

    assert service.snapshot.computed_at == clock.now


async def test_changed_inputs_miss_the_cache():
    clock = MutableClock()
    catalog = FakeCatalog([make_product("p1", current_stock=10)])
    service = _service(catalog, FakeSalesLedger(), cache=CacheService(InMemoryCache()), clock=clock)

    await service.refresh()
    catalog.products = [make_product("p1", current_stock=0)]
    clock.now = NOW + timedelta(minutes=1)
    await service.refresh()

    assert service.snapshot.computed_at == clock.now
    assert service.metrics[0].status == StockStatus.OUT_OF_STOCK


async def test_close_cancels_running_cycle():
    catalog = FakeCatalog([make_product("p1")])
    catalog.gate = asyncio.Event()
    service = _service(catalog, FakeSalesLedger())

    service.refetch()
    await asyncio.wait_for(catalog.started.wait(), timeout=1)
    await service.close()

    assert catalog.active == 0
    assert service.has_snapshot is False
    assert service.state == ForecastState.IDLE
    assert service.loading is False


async def test_close_mid_cycle_restores_last_finished_state():
    catalog = FakeCatalog([make_product("p1")])
    service = _service(catalog, FakeSalesLedger())
    await service.refresh()

    catalog.gate = asyncio.Event()
    catalog.started.clear()
    service.refetch()
    await asyncio.wait_for(catalog.started.wait(), timeout=1)
    await service.close()

    assert service.state == ForecastState.READY
    assert service.loading is False
    assert len(service.metrics) == 1


async def test_cache_does_not_outlive_the_trend_window_hour():
    clock = MutableClock()
    service = _service(
        FakeCatalog([make_product("p1")]),
        FakeSalesLedger(daily_sales("p1", [1, 2, 3])),
        cache=CacheService(InMemoryCache()),
        clock=clock,
    )

    await service.refresh()

    clock.now = NOW + timedelta(hours=1)
    await service.refresh()

    assert service.snapshot.computed_at == clock.now
