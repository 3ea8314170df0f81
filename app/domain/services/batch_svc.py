import asyncio
import logging
import time
from typing import Optional

from app.domain.models.recommendation import BatchResult

logger = logging.getLogger(__name__)


async def run_batch(
    service,
    activity_repo,
    *,
    concurrency: int = 4,
    timeout_s: Optional[float] = None,
) -> BatchResult:
    """
    Generate recommendations for every user with recorded activity.

    Per-user failures are logged and counted, never raised. Users still pending
    when `timeout_s` elapses are counted as failed and `timed_out` is set.
    Re-running is safe: generate() reuses unexpired unsent sets.
    """
    t0 = time.perf_counter()
    user_ids = await activity_repo.distinct_user_ids()
    result = BatchResult(total=len(user_ids))
    logger.info("batch start users=%s concurrency=%s timeout_s=%s", result.total, concurrency, timeout_s)

    sem = asyncio.Semaphore(max(concurrency, 1))

    async def _one(user_id: str) -> None:
        async with sem:
            try:
                await service.generate(user_id)
                result.success += 1
            except Exception as e:
                result.failed += 1
                logger.error("batch user failed user_id=%s err=%r", user_id, e)

    tasks = [asyncio.create_task(_one(uid)) for uid in user_ids]
    if tasks:
        _, pending = await asyncio.wait(tasks, timeout=timeout_s)
        if pending:
            for t in pending:
                t.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            result.timed_out = True
            # whatever did not finish counts as failed
            result.failed = result.total - result.success

    logger.info("batch done success=%s failed=%s total=%s timed_out=%s time=%.3fs",
                result.success, result.failed, result.total, result.timed_out, time.perf_counter() - t0)
    return result
