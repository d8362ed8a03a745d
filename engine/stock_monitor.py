import asyncio
import logging
from typing import Dict, Iterable, Set, Union

from models.product import Product, StockCheckSummary, STOCK_STATUS_LOW, STOCK_STATUS_OK
from models.trigger_event import TriggerType

logger = logging.getLogger("storefront_notifications")

ProductId = Union[str, int]


class StockMonitor:
    """
    Low-stock alerting with per-product de-duplication.

    An alert opens on the first check at or below the threshold and stays
    open, suppressing further sends, until a check sees the stock above the
    threshold again. Reading the product, deciding and opening the alert
    happen under one lock per product, so concurrent checks for the same
    product send at most once.
    """

    def __init__(self, product_client, dispatcher, admin_email: str = None):
        self.product_client = product_client
        self.dispatcher = dispatcher
        self.admin_email = admin_email
        self._open_alerts: Set[str] = set()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    def is_alert_open(self, product_id: ProductId) -> bool:
        return str(product_id) in self._open_alerts

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        return lock

    def _release_lock(self, key: str):
        # A lock is dropped once no coroutine holds or waits for it
        users = self._lock_users.get(key, 1) - 1
        if users > 0:
            self._lock_users[key] = users
        else:
            self._lock_users.pop(key, None)
            self._locks.pop(key, None)

    async def check_low_stock(self, product_id: ProductId) -> bool:
        """Returns True only when this call sent a low-stock alert."""
        key = str(product_id)
        lock = self._lock_for(key)
        try:
            async with lock:
                product = await self.product_client.fetch(product_id)
                if product is None:
                    logger.error(f"Product {product_id} not found for stock check")
                    return False
                return await self._evaluate(key, product)
        except Exception as e:
            logger.error(f"Stock check for product {product_id} failed: {e}")
            return False
        finally:
            self._release_lock(key)

    async def _evaluate(self, key: str, product: Product) -> bool:
        if not product.monitored:
            return False

        if not product.below_threshold:
            if key in self._open_alerts:
                logger.info(f"Stock recovered for {product.name} ({product.stock_quantity}/{product.min_stock_level})")
            self._open_alerts.discard(key)
            if product.stock_status == STOCK_STATUS_LOW:
                await self._set_status(product, STOCK_STATUS_OK)
            return False

        if key in self._open_alerts:
            logger.debug(f"Low-stock alert for {product.name} already open, not resending")
            return False

        logger.info(f"Low stock detected for {product.name} ({product.stock_quantity}/{product.min_stock_level})")
        self._open_alerts.add(key)
        result = await self.dispatcher.trigger(
            TriggerType.LOW_STOCK_ALERT,
            {
                "product_id": product.id,
                "product_name": product.name,
                "current_stock": product.stock_quantity,
                "minimum_stock": product.min_stock_level,
                "admin_email": self.admin_email,
            },
        )
        if not result.success:
            # Leave the alert closed so the next check tries again
            self._open_alerts.discard(key)
            logger.error(f"Low-stock alert for {product.name} not sent: {result.error}")
            return False

        await self._set_status(product, STOCK_STATUS_LOW)
        return True

    async def _set_status(self, product: Product, status: str):
        try:
            await self.product_client.set_stock_status(product.id, status)
        except Exception as e:
            logger.error(f"Could not update stock status of {product.name}: {e}")

    async def check_many(self, product_ids: Iterable[ProductId]) -> StockCheckSummary:
        summary = StockCheckSummary()
        for product_id in product_ids:
            summary.checked += 1
            if await self.check_low_stock(product_id):
                summary.alerts += 1
        return summary

    async def check_all(self) -> StockCheckSummary:
        try:
            products = await self.product_client.fetch_monitored()
        except Exception as e:
            logger.error(f"Loading products for stock check failed: {e}")
            return StockCheckSummary()
        summary = await self.check_many(p.id for p in products)
        logger.info(f"Stock check finished: {summary.checked} products checked, {summary.alerts} alerts sent")
        return summary
