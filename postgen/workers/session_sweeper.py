"""
Session sweeper worker - eagerly drops expired sessions and cache entries.
Runs every 5 minutes by default. Reads stay correct without it (expired
entries are treated as absent); the sweep only bounds memory.
"""
import asyncio
import logging

from postgen.services.session_cache import SessionCache

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 300  # 5 minutes
WORKER_NAME = "session_sweeper"


async def _heartbeat(cache: SessionCache, interval: float):
    """Record a heartbeat that outlives one missed cycle."""
    try:
        await cache.record_heartbeat(WORKER_NAME, ttl_seconds=int(interval * 2))
    except Exception as e:
        logger.debug("Session sweeper heartbeat failed: %s", str(e))


async def sweep_once(cache: SessionCache) -> int:
    removed = await cache.purge_expired()
    if removed:
        logger.info("Session sweep removed %d expired entries", removed)
    return removed


async def run_session_sweeper(cache: SessionCache, interval: float = SWEEP_INTERVAL_SECONDS):
    """Main sweeper loop."""
    logger.info("Session sweeper started (interval=%ss)", interval)

    while True:
        try:
            await sweep_once(cache)
        except Exception as e:
            logger.error("Session sweeper error: %s", str(e), exc_info=True)

        await _heartbeat(cache, interval)
        await asyncio.sleep(interval)
