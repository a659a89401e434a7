"""Fixed interval scheduling of backup runs."""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 24 * 60 * 60  # seconds


async def periodic(interval: float, fn: Callable[[], Awaitable[Any]],
                   clock: Callable[[], float] = time.monotonic,
                   sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> None:
    """Call ``fn`` now and then once every ``interval`` seconds.

    Runs are awaited one after another, so they never overlap. The next
    run is due ``interval`` seconds after the previous one started; a run
    that overshoots its slot is followed immediately by the next one.
    Exceptions raised by ``fn`` stop the loop. Cancel the surrounding task
    to stop it from outside.
    """
    if interval <= 0:
        raise ValueError("interval must be positive")

    next_run = clock()
    while True:
        await fn()
        next_run += interval
        now = clock()
        if next_run < now:
            logger.warning("Backup run took longer than the scheduling interval")
            next_run = now
        logger.info(f"Next backup run in {next_run - now:.0f}s")
        await sleep(next_run - now)
