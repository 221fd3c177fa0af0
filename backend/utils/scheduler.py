"""
SmartPark Reservation System - Background Scheduler
Runs the completion sweep that closes reservations whose end has passed.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
import logging

# Configure logging
logger = logging.getLogger(__name__)


class ReservationScheduler:
    """
    Background scheduler for periodic tasks.
    ``allocator`` is the ReservationAllocator built at startup.
    """

    def __init__(self, allocator, interval_seconds: int = 60):
        self.allocator = allocator
        self.interval_seconds = interval_seconds
        self.scheduler = AsyncIOScheduler()
        self._is_running = False

    def start(self):
        """Start the background scheduler."""
        if self._is_running:
            logger.warning("Scheduler is already running")
            return

        self.scheduler.add_job(
            self._complete_due_reservations,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="complete_due_reservations",
            name="Complete or expire reservations past their end time",
            replace_existing=True,
            max_instances=1
        )

        self.scheduler.start()
        self._is_running = True
        logger.info(f"Background scheduler started (every {self.interval_seconds}s)")

    def stop(self):
        """Stop the background scheduler."""
        if not self._is_running:
            return

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Background scheduler stopped")

    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._is_running

    async def _complete_due_reservations(self):
        """
        Close reservations whose end time has passed.
        A failing run is logged; the next interval retries.
        """
        try:
            closed = await self.allocator.complete_due()
            if closed > 0:
                logger.info(f"Processed {closed} due reservation(s)")
        except Exception as e:
            logger.error(f"Error completing due reservations: {e}")


def start_scheduler(allocator, interval_seconds: int = 60) -> ReservationScheduler:
    """Build and start the background scheduler."""
    scheduler = ReservationScheduler(allocator, interval_seconds)
    scheduler.start()
    return scheduler
