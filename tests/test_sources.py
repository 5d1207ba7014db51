from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from inventory_forecast.database import Base
from inventory_forecast.models import Product, Reseller, Sale
from inventory_forecast.services.forecasting import (
    InventoryForecastService,
    OptionalSourceDegradedError,
    ReorderDefaults,
    SourceUnavailableError,
)
from inventory_forecast.services.forecasting.sources import (
    SQLCatalogSource,
    SQLResellerDirectorySource,
    SQLSalesLedgerSource,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'forecast.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def seeded(session_factory):
    async with session_factory() as session:
        session.add_all([
            Product(
                id="p1",
                description="Hydrating serum",
                price=Decimal("49.90"),
                stock=12,
                lead_time_days=10,
                safety_stock_days=None,
                review_period_days=None,
                freight_cost_per_unit=Decimal("2.50"),
                min_order_quantity=6,
                supplier_name="Acme Cosmetics",
                created_at=NOW - timedelta(days=90),
            ),
            Product(
                id="p2",
                description=None,
                price=None,
                stock=None,
                created_at=NOW - timedelta(days=10),
            ),
            Reseller(id="r1", nome="Ana", email="ana@example.com"),
            Reseller(id="r2", nome=None, email="bia@example.com"),
            Reseller(id="r3", nome=None, email=None),
        ])
        session.add_all([
            Sale(id="s1", product_id="p1", reseller_id="r1", total_amount=Decimal("49.90"),
                 paid=True, created_at=NOW - timedelta(days=1)),
            Sale(id="s2", product_id="p1", reseller_id="r2", total_amount=Decimal("49.90"),
                 paid=True, created_at=NOW - timedelta(days=29)),
            Sale(id="s3", product_id="p1", reseller_id="r1", total_amount=Decimal("49.90"),
                 paid=False, created_at=NOW - timedelta(days=2)),
            Sale(id="s4", product_id="p1", reseller_id="r1", total_amount=Decimal("49.90"),
                 paid=True, created_at=NOW - timedelta(days=31)),
            Sale(id="s5", product_id="p2", reseller_id=None, total_amount=None,
                 paid=True, created_at=NOW - timedelta(days=3)),
        ])
        await session.commit()
    return session_factory


async def test_catalog_applies_defaults_to_empty_parameters(seeded):
    source = SQLCatalogSource(defaults=ReorderDefaults(safety_stock_days=5), session_factory=seeded)

    products = await source.fetch_products()

    assert [p.id for p in products] == ["p1", "p2"]
    serum, unnamed = products
    assert serum.name == "Hydrating serum"
    assert serum.price == pytest.approx(49.9)
    assert serum.current_stock == 12
    assert serum.lead_time_days == 10
    assert serum.safety_stock_days == 5
    assert serum.review_period_days == 7
    assert serum.freight_cost_per_unit == pytest.approx(2.5)
    assert serum.min_order_quantity == 6
    assert serum.supplier_name == "Acme Cosmetics"

    assert unnamed.name == "No name"
    assert unnamed.price == 0
    assert unnamed.current_stock == 0
    assert unnamed.min_order_quantity == 1


async def test_sales_ledger_returns_paid_sales_in_window(seeded):
    source = SQLSalesLedgerSource(session_factory=seeded)

    sales = await source.fetch_paid_sales(NOW - timedelta(days=30))

    assert sorted((s.product_id, s.reseller_id) for s in sales) == [
        ("p1", "r1"),
        ("p1", "r2"),
        ("p2", None),
    ]
    assert all(s.paid for s in sales)
    assert all(s.created_at.tzinfo is not None for s in sales)
    assert all(s.created_at >= NOW - timedelta(days=30) for s in sales)
    unattributed = next(s for s in sales if s.product_id == "p2")
    assert unattributed.total_amount == 0


async def test_reseller_names_fall_back_to_email_then_unknown(seeded):
    source = SQLResellerDirectorySource(session_factory=seeded)

    resellers = await source.fetch_resellers()

    names = {r.id: r.display_name for r in resellers}
    assert names == {"r1": "Ana", "r2": "bia@example.com", "r3": "Unknown"}


async def test_missing_reseller_table_is_degraded(engine, session_factory):
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE resellers"))

    with pytest.raises(OptionalSourceDegradedError) as exc_info:
        await SQLResellerDirectorySource(session_factory=session_factory).fetch_resellers()

    assert exc_info.value.source == "reseller_directory"


async def test_missing_catalog_table_is_unavailable(engine, session_factory):
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE products"))

    with pytest.raises(SourceUnavailableError) as exc_info:
        await SQLCatalogSource(session_factory=session_factory).fetch_products()

    assert exc_info.value.source == "catalog"


async def test_missing_sales_table_is_unavailable(engine, session_factory):
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE sales_with_split"))

    with pytest.raises(SourceUnavailableError):
        await SQLSalesLedgerSource(session_factory=session_factory).fetch_paid_sales(NOW)


async def test_forecast_over_database_without_reseller_table(engine, seeded):
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE resellers"))

    service = InventoryForecastService(
        SQLCatalogSource(session_factory=seeded),
        SQLSalesLedgerSource(session_factory=seeded),
        SQLResellerDirectorySource(session_factory=seeded),
        clock=lambda: NOW,
    )

    await service.refresh()

    assert service.error is None
    assert service.summary.total_products == 2
    serum = next(m for m in service.metrics if m.product_id == "p1")
    assert serum.avg_daily_sales == 1
    assert {r.reseller_name for r in serum.reseller_breakdown} == {"Unknown"}
