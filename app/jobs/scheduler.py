# app/jobs/scheduler.py
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


def seconds_until_next_run(now: datetime, hour: int) -> float:
    """Seconds from `now` to the next HH:00 (same timezone as `now`), strictly in the future."""
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


async def run_daily(job: Callable[[], Awaitable[object]], *, hour: int, clock: Callable[[], datetime]) -> None:
    """Run `job` every day at `hour`. Errors are logged; the loop keeps going until cancelled."""
    while True:
        delay = seconds_until_next_run(clock(), hour)
        logger.info("scheduler next batch in %.0fs", delay)
        await asyncio.sleep(delay)
        try:
            logger.info("scheduler running batch recommendation generation")
            await job()
        except Exception as e:
            logger.error("scheduler batch failed: %r", e)
