import contextlib
from contextlib import asynccontextmanager
import asyncio
import logging

from app.analytics.db import init_db, purge_old_records
from app.core.request_limiter import get_request_counter
from app.core.ttl_cache import get_cache

logger = logging.getLogger(__name__)

PURGE_INTERVAL_SECONDS = 3600


def purge_expired_state() -> dict[str, int]:
    deleted = dict(purge_old_records())
    deleted["cache_entries"] = get_cache().purge_expired()
    deleted["request_events"] = get_request_counter().purge_expired()
    return deleted


@asynccontextmanager
async def lifespan(app):
    init_db()

    stop_event = asyncio.Event()

    async def periodic_purge() -> None:
        while not stop_event.is_set():
            try:
                deleted = purge_expired_state()
                if any(deleted.values()):
                    logger.info("retention_purge deleted=%s", deleted)
            except Exception as exc:  # pragma: no cover
                logger.warning("retention_purge_failed: %s", exc)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=PURGE_INTERVAL_SECONDS)
            except asyncio.TimeoutError:
                continue

    purge_task = asyncio.create_task(periodic_purge())
    yield
    stop_event.set()
    if not purge_task.done():
        purge_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await purge_task
