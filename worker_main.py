# worker_main.py
"""
Housekeeping worker.

Runs the periodic marketplace jobs in one asyncio loop:
  - expire finished bookings (ad space back to Available, booking moved to history)
  - purge rejected requests older than a month
  - archive chat messages older than six months

Each cycle runs the jobs in a worker thread so the loop stays responsive;
the interval is HOUSEKEEPING_INTERVAL_SECONDS (default: daily).
Run exactly one worker per database.
"""

import asyncio
import logging

from marketplace import settings
from marketplace.available_cache import TtlCache, build_cache
from marketplace.db_connection import DbConnection
from marketplace.housekeeping import run_all

logger = logging.getLogger("adspace_worker")


class HousekeepingGuard:
    def __init__(self, session_factory, cache, interval_seconds: float = settings.HOUSEKEEPING_INTERVAL_SECONDS):
        self.SessionFactory = session_factory
        self.cache = cache
        self.interval_seconds = interval_seconds
        if isinstance(cache, TtlCache):
            logger.warning(
                "REDIS_URL is not set: the worker cannot clear the API's available-listing cache, "
                "listings refresh after AVAILABLE_CACHE_TTL (%ss) instead",
                settings.AVAILABLE_CACHE_TTL,
            )

    def _invalidate_available(self) -> None:
        self.cache.delete(settings.AVAILABLE_CACHE_KEY)

    async def run_once(self) -> dict:
        try:
            result = await asyncio.to_thread(run_all, self.SessionFactory, self._invalidate_available)
            self.cache.sweep_expired()
            logger.info("Housekeeping cycle done: %s", result)
            return result
        except Exception as e:
            # keep the loop alive; the next cycle retries
            logger.exception("Housekeeping cycle failed: %s", e)
            return {}

    async def run(self) -> None:
        logger.info("HousekeepingGuard running (interval=%ss)", self.interval_seconds)
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)


def main() -> None:
    connection = DbConnection()
    connection.create_all()
    guard = HousekeepingGuard(
        session_factory=connection.build_db_session_factory(),
        # only a shared Redis cache lets job invalidations reach the API process
        cache=build_cache(settings.REDIS_URL),
    )
    asyncio.run(guard.run())


if __name__ == "__main__":
    main()
