"""
Inventory Forecast Service

Single-flight pipeline that turns catalog and sales snapshots into the
published (metrics, summary) pair:

    trigger -> read sources concurrently -> compute metrics -> summarize -> publish

Triggers (initial start, change notifications, manual refetch, the
optional periodic job) all go through `refetch()`. At most one cycle runs
at a time; triggers arriving mid-cycle coalesce into one trailing rerun.

Failure policy:
- Catalog or sales read fails: the cycle aborts, `error` is set, and the
  last published snapshot stays available (flagged stale).
- Reseller directory read fails: logged, attribution falls back to
  "Unknown", the cycle continues.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from inventory_forecast.config import settings
from inventory_forecast.schemas.inventory_forecast import (
    ForecastSnapshot,
    ForecastState,
    ForecastStateResponse,
    InventorySummary,
    ProductInventoryMetrics,
    ResellerRecord,
)
from inventory_forecast.services.cache_service import CacheService, get_cache, input_digest
from inventory_forecast.services.forecasting.exceptions import SourceUnavailableError
from inventory_forecast.services.forecasting.metrics import compute_inventory_metrics
from inventory_forecast.services.forecasting.parameters import ForecastParameters
from inventory_forecast.services.forecasting.sources import (
    CatalogSource,
    ResellerDirectorySource,
    SalesLedgerSource,
    SQLCatalogSource,
    SQLResellerDirectorySource,
    SQLSalesLedgerSource,
)
from inventory_forecast.services.forecasting.summary import summarize_inventory

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InventoryForecastService:
    """
    Owns the published forecast and the single-flight recompute loop.

    Readers use `metrics`, `summary`, `loading`, `error` and `state`. The
    snapshot is replaced by one reference swap per completed cycle, so a
    reader always sees a matching metrics/summary pair.
    """

    def __init__(
        self,
        catalog: CatalogSource,
        sales_ledger: SalesLedgerSource,
        resellers: Optional[ResellerDirectorySource] = None,
        params: Optional[ForecastParameters] = None,
        cache: Optional[CacheService] = None,
        tenant_id: str = "default",
        clock: Callable[[], datetime] = utc_now,
    ):
        self.catalog = catalog
        self.sales_ledger = sales_ledger
        self.resellers = resellers
        self.params = params or ForecastParameters()
        self.cache = cache
        self.tenant_id = tenant_id
        self._clock = clock

        self._snapshot = ForecastSnapshot()
        self._state = ForecastState.IDLE
        self._error: Optional[str] = None

        # Single-flight flags
        self._in_flight = False
        self._rerun_requested = False
        self._invalidate_requested = False
        self._task: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()

        self.cycles_completed = 0

    # ==================== Read Surface ====================

    @property
    def snapshot(self) -> ForecastSnapshot:
        return self._snapshot

    @property
    def metrics(self) -> List[ProductInventoryMetrics]:
        return self._snapshot.metrics

    @property
    def summary(self) -> InventorySummary:
        return self._snapshot.summary

    @property
    def state(self) -> ForecastState:
        return self._state

    @property
    def loading(self) -> bool:
        return self._state == ForecastState.LOADING

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def stale(self) -> bool:
        """A snapshot exists but the latest cycle failed to replace it."""
        return self._error is not None and self._snapshot.computed_at is not None

    @property
    def has_snapshot(self) -> bool:
        return self._snapshot.computed_at is not None

    def to_response(self) -> ForecastStateResponse:
        snapshot = self._snapshot
        return ForecastStateResponse(
            metrics=snapshot.metrics,
            summary=snapshot.summary,
            loading=self.loading,
            error=self._error,
            state=self._state,
            stale=self.stale,
            computed_at=snapshot.computed_at,
        )

    # ==================== Triggers ====================

    async def start(self) -> None:
        """Initial load."""
        self.refetch()

    def refetch(self, invalidate_cache: bool = False) -> None:
        """
        Schedule a recompute without waiting for it.

        While a cycle is in flight this only marks a trailing rerun; any
        number of such calls collapse into one rerun.
        """
        if invalidate_cache:
            self._invalidate_requested = True

        if self._in_flight:
            if not self._rerun_requested:
                logger.debug("Forecast cycle in flight, queueing trailing rerun")
            self._rerun_requested = True
            return

        self._in_flight = True
        self._state = ForecastState.LOADING
        self._idle.clear()
        self._task = asyncio.get_running_loop().create_task(
            self._drain(), name="inventory-forecast-cycle"
        )

    async def refresh(self, invalidate_cache: bool = False) -> ForecastSnapshot:
        """Schedule a recompute and wait until the pipeline is idle again."""
        self.refetch(invalidate_cache=invalidate_cache)
        await self.wait_idle()
        return self._snapshot

    async def wait_idle(self) -> None:
        await self._idle.wait()

    async def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._in_flight = False
        self._rerun_requested = False
        if self._state == ForecastState.LOADING:
            # Cancelled mid-cycle: fall back to what the last finished cycle left
            if self._error is not None:
                self._state = ForecastState.ERROR
            elif self.has_snapshot:
                self._state = ForecastState.READY
            else:
                self._state = ForecastState.IDLE
        self._idle.set()

    # ==================== Pipeline ====================

    async def _drain(self) -> None:
        try:
            while True:
                self._rerun_requested = False
                self._state = ForecastState.LOADING
                await self._run_cycle()
                if not self._rerun_requested:
                    break
                logger.debug("Running coalesced forecast rerun")
        finally:
            self._in_flight = False
            self._idle.set()

    async def _run_cycle(self) -> None:
        now = self._clock()
        since = now - timedelta(days=self.params.demand_window_days)

        if self._invalidate_requested and self.cache is not None:
            self._invalidate_requested = False
            await self.cache.invalidate_forecasts(self.tenant_id)

        logger.info(f"Forecast cycle started (sales since {since.isoformat()})")

        try:
            products, sales, resellers = await asyncio.gather(
                self.catalog.fetch_products(),
                self.sales_ledger.fetch_paid_sales(since),
                self._fetch_resellers(),
            )
        except SourceUnavailableError as e:
            self._fail(str(e))
            return
        except Exception as e:
            logger.exception("Unexpected error reading forecast sources")
            self._fail(str(e) or "Error loading data")
            return

        try:
            snapshot = await self._compute(products, sales, resellers, now)
        except Exception as e:
            # Pure computation over validated records; reaching this is a bug
            logger.exception("Forecast computation failed")
            self._fail(f"Forecast computation failed: {e}")
            return

        self._snapshot = snapshot
        self._error = None
        self._state = ForecastState.READY
        self.cycles_completed += 1

        summary = snapshot.summary
        logger.info(
            f"Forecast cycle completed: {summary.total_products} products, "
            f"{summary.products_out_of_stock} out of stock, "
            f"{summary.products_needing_reorder} to reorder, "
            f"{summary.products_low_stock} low"
        )

    async def _fetch_resellers(self) -> List[ResellerRecord]:
        if self.resellers is None:
            return []
        try:
            return await self.resellers.fetch_resellers()
        except Exception as e:
            logger.warning(f"Reseller directory unavailable (optional), continuing without names: {e}")
            return []

    async def _compute(self, products, sales, resellers, now: datetime) -> ForecastSnapshot:
        digest = None
        if self.cache is not None:
            # Trend windows move with `now`; the hour bucket bounds how long a hit can lag
            window_bucket = now.replace(minute=0, second=0, microsecond=0).isoformat()
            digest = input_digest(products, sales, resellers, salt=window_bucket)
            cached = await self.cache.get_forecast(self.tenant_id, digest)
            if cached is not None:
                logger.debug(f"Forecast cache hit ({digest[:12]})")
                return ForecastSnapshot.model_validate(cached)

        metrics = compute_inventory_metrics(products, sales, resellers, now, self.params)
        snapshot = ForecastSnapshot(
            metrics=metrics,
            summary=summarize_inventory(metrics),
            computed_at=now,
        )

        if digest is not None:
            await self.cache.set_forecast(self.tenant_id, digest, snapshot.model_dump(mode="json"))
        return snapshot

    def _fail(self, message: str) -> None:
        # Previous snapshot stays published; readers see it flagged stale
        self._error = message
        self._state = ForecastState.ERROR
        logger.error(f"Forecast cycle failed: {message}")


def create_forecast_service() -> InventoryForecastService:
    """Build the service wired to the configured database and cache."""
    params = ForecastParameters.from_settings()
    return InventoryForecastService(
        catalog=SQLCatalogSource(defaults=params.defaults),
        sales_ledger=SQLSalesLedgerSource(),
        resellers=SQLResellerDirectorySource(),
        params=params,
        cache=get_cache(),
        tenant_id=settings.TENANT_ID,
    )
