import asyncio
import logging
from datetime import date
from typing import Optional

from utils.time_utils import utcnow

logger = logging.getLogger("storefront_notifications")


class SchedulerLoop:
    """
    Periodic maintenance: a full low-stock sweep on every tick and the
    loyalty expiration sweep at most once per calendar day.
    """

    def __init__(self, stock_monitor, loyalty_job=None, interval_seconds: int = 3600,
                 expiration_days_ahead: int = 7):
        self.interval = interval_seconds
        self.stock_monitor = stock_monitor
        self.loyalty_job = loyalty_job
        self.expiration_days_ahead = expiration_days_ahead
        self.running = False
        self._last_loyalty_run: Optional[date] = None

    async def start(self):
        """Starts the polling loop."""
        if self.running:
            return

        self.running = True
        logger.info("Scheduler started.")

        while self.running:
            try:
                await self._tick()
            except Exception as e:
                logger.error(f"Scheduler tick failed: {e}")

            await asyncio.sleep(self.interval)

    def stop(self):
        self.running = False
        logger.info("Scheduler stopped.")

    async def _tick(self):
        """Process one tick of the scheduler."""
        summary = await self.stock_monitor.check_all()
        logger.info(f"Scheduled stock check: {summary.alerts} alerts for {summary.checked} products")

        today = utcnow().date()
        if self.loyalty_job is not None and self._last_loyalty_run != today:
            sent = await self.loyalty_job.run(days_ahead=self.expiration_days_ahead)
            self._last_loyalty_run = today
            logger.info(f"Scheduled loyalty expiration sweep: {sent} notices sent")
