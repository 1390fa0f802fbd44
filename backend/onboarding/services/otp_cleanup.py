"""
OTP Cleanup Service - periodic sweep of used and expired codes
"""
import asyncio
import logging
from datetime import timedelta

from .otp_store import OtpStore

logger = logging.getLogger(__name__)


class OtpCleanupService:
    """Background service that deletes stale OTP records"""

    def __init__(self, store: OtpStore, clock, retention: timedelta, cleanup_interval: int = 6 * 60 * 60):
        self.store = store
        self.clock = clock
        self.retention = retention
        self.cleanup_interval = cleanup_interval
        self.is_running = False
        self._task = None

    async def start(self):
        """Start the cleanup loop as a background task"""
        if self.is_running:
            logger.warning("OTP cleanup service already running")
            return

        self.is_running = True
        self._task = asyncio.create_task(self._cleanup_loop())
        logger.info(f"🧹 OTP Cleanup Service: Started (every {self.cleanup_interval}s)")

    async def stop(self):
        """Stop the cleanup loop"""
        self.is_running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("🧹 OTP Cleanup Service: Stopped")

    async def _cleanup_loop(self):
        while self.is_running:
            try:
                await self.cleanup_now()
            except Exception as e:
                logger.error(f"Error in OTP cleanup loop: {e}", exc_info=True)
            await asyncio.sleep(self.cleanup_interval)

    async def cleanup_now(self) -> int:
        """Delete used or expired codes older than the retention period"""
        now = self.clock.now()
        deleted = self.store.delete_stale(now, now - self.retention)

        if deleted > 0:
            logger.info(f"✓ Cleaned {deleted} expired/used OTPs")
        else:
            logger.debug("🧹 No OTPs to clean")

        return deleted
