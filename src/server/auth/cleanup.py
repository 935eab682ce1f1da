from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from .service import LocalAuthService

logger = logging.getLogger(__name__)


def seconds_until(hour_of_day: int, now: Optional[datetime] = None) -> float:
    """Seconds from ``now`` (local time) to the next ``hour_of_day``:00."""
    current = now or datetime.now()
    target = current.replace(hour=hour_of_day, minute=0, second=0, microsecond=0)
    if target <= current:
        target += timedelta(days=1)
    return (target - current).total_seconds()


class AccountCleanupJob:
    """Daily removal of inactive accounts and expired sessions."""

    def __init__(self, service: LocalAuthService, hour_of_day: int = 3) -> None:
        if not 0 <= hour_of_day <= 23:
            raise ValueError(f"hour_of_day must be between 0 and 23, got {hour_of_day}")
        self._service = service
        self._hour = hour_of_day
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_now(self) -> int:
        """Run one cleanup pass and return the number of deleted accounts."""
        if self._running:
            logger.info("Cleanup already running, skipping")
            return 0

        self._running = True
        logger.info("Starting account cleanup")
        try:
            deleted = await self._service.cleanup_inactive_accounts()
            purged = await self._service.purge_expired_sessions()
            logger.info(
                "Cleanup finished: %s accounts deleted, %s expired sessions purged",
                deleted,
                purged,
            )
            return deleted
        except Exception:  # noqa: BLE001 - a failed pass must not stop the scheduler
            logger.exception("Error during account cleanup")
            return 0
        finally:
            self._running = False

    def start(self) -> None:
        if self.is_active:
            logger.info("Cleanup job already started")
            return
        logger.info("Scheduling daily cleanup at %02d:00", self._hour)
        self._task = asyncio.create_task(self._loop(), name="auth-account-cleanup")

    async def _loop(self) -> None:
        await self.run_now()
        while True:
            delay = seconds_until(self._hour)
            logger.info("Next cleanup in %.0f seconds", delay)
            await asyncio.sleep(delay)
            await self.run_now()

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Cleanup job stopped")
