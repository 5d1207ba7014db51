"""
Change Feed for Forecast Recomputation

Listens for "something changed" notifications on the sales and product data
sets and asks the forecast service to recompute. Payloads are never read:
every notification triggers a full recompute.

Backends:
1. PostgresChangeFeed - LISTEN/NOTIFY on a dedicated psycopg connection
2. InMemoryChangeFeed - in-process fan-out (development/testing, SQLite)

Database side, a trigger per table issues the notification, e.g.:

    CREATE FUNCTION notify_products_changed() RETURNS trigger AS $$
    BEGIN PERFORM pg_notify('products_changed', ''); RETURN NULL; END;
    $$ LANGUAGE plpgsql;
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence

import psycopg
from psycopg import sql

from inventory_forecast.config import settings
from inventory_forecast.database import listen_dsn

if TYPE_CHECKING:
    from inventory_forecast.services.forecasting.forecast_service import InventoryForecastService

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[str], None]


class ChangeFeed(ABC):
    """Abstract change notification transport."""

    def __init__(self):
        self._handlers: Dict[str, List[ChangeHandler]] = {}

    def listen(self, channels: Sequence[str], handler: ChangeHandler) -> None:
        """Register `handler` for every channel in `channels`."""
        for channel in channels:
            self._handlers.setdefault(channel, []).append(handler)

    @property
    def channels(self) -> List[str]:
        return list(self._handlers.keys())

    def _dispatch(self, channel: str) -> None:
        for handler in self._handlers.get(channel, []):
            try:
                handler(channel)
            except Exception:
                logger.exception(f"Change handler failed for {channel}")

    @abstractmethod
    async def start(self) -> None:
        """Begin delivering notifications."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Stop delivering notifications and release resources."""
        pass


class InMemoryChangeFeed(ChangeFeed):
    """In-process change feed. Writers call `publish()` after a mutation."""

    def __init__(self):
        super().__init__()
        self._running = False

    async def start(self) -> None:
        self._running = True

    async def close(self) -> None:
        self._running = False

    def publish(self, channel: str) -> None:
        if not self._running:
            logger.debug(f"Change feed not running, dropping notification on {channel}")
            return
        self._dispatch(channel)


class PostgresChangeFeed(ChangeFeed):
    """
    LISTEN/NOTIFY change feed.

    Runs a background task holding one autocommit connection. If the
    connection drops, it reconnects after `reconnect_seconds`. Notifications
    sent while disconnected are lost, so every channel is dispatched once
    after a successful reconnect.
    """

    def __init__(self, dsn: str, reconnect_seconds: float = 5.0):
        super().__init__()
        self._dsn = dsn
        self._reconnect_seconds = reconnect_seconds
        self._task: Optional[asyncio.Task] = None
        self._conn: Optional[psycopg.AsyncConnection] = None
        self._connected_once = False
        self.reconnects = 0

    async def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="forecast-change-feed")

    async def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Change feed listener stopped with error: {e}")
            self._task = None
        await self._close_connection()

    async def _close_connection(self) -> None:
        if self._conn is not None and not self._conn.closed:
            try:
                await self._conn.close()
            except psycopg.Error as e:
                logger.warning(f"Error closing change feed connection: {e}")
        self._conn = None

    async def _run(self) -> None:
        while True:
            try:
                self._conn = await psycopg.AsyncConnection.connect(self._dsn, autocommit=True)
                for channel in self.channels:
                    await self._conn.execute(sql.SQL("LISTEN {}").format(sql.Identifier(channel)))
                logger.info(f"Change feed listening on {', '.join(self.channels)}")

                if self._connected_once:
                    self.reconnects += 1
                    logger.info("Change feed reconnected, replaying a change on every channel")
                    for channel in self.channels:
                        self._dispatch(channel)
                self._connected_once = True

                async for notify in self._conn.notifies():
                    self._dispatch(notify.channel)
            except psycopg.OperationalError as e:
                logger.warning(
                    f"Change feed connection lost: {e}. "
                    f"Reconnecting in {self._reconnect_seconds}s"
                )
            except psycopg.Error as e:
                logger.error(
                    f"Change feed error ({type(e).__name__}): {e}. "
                    f"Retrying in {self._reconnect_seconds}s"
                )
            finally:
                await self._close_connection()
            await asyncio.sleep(self._reconnect_seconds)


def get_change_feed() -> ChangeFeed:
    """Pick the change feed backend for the configured database."""
    if settings.is_postgres:
        return PostgresChangeFeed(listen_dsn(), settings.CHANGE_FEED_RECONNECT_SECONDS)
    logger.info("Non-PostgreSQL database, using in-memory change feed")
    return InMemoryChangeFeed()


class ChangeFeedSubscriber:
    """
    Wires the sales and product change channels to the forecast service.

    Both channels are handled identically: drop cached forecasts and
    schedule a full recompute under the service's single-flight rule.
    """

    def __init__(
        self,
        service: "InventoryForecastService",
        feed: ChangeFeed,
        sales_channel: str = "sales_changed",
        products_channel: str = "products_changed",
    ):
        self.service = service
        self.feed = feed
        self.sales_channel = sales_channel
        self.products_channel = products_channel
        self.notifications_received = 0

    async def start(self) -> None:
        self.feed.listen([self.sales_channel, self.products_channel], self._on_change)
        await self.feed.start()

    async def close(self) -> None:
        await self.feed.close()

    def _on_change(self, channel: str) -> None:
        self.notifications_received += 1
        logger.info(f"Change notification on {channel}, scheduling forecast recompute")
        self.service.refetch(invalidate_cache=True)
