import asyncio
import logging
import time
from typing import TYPE_CHECKING, Optional

from expense_console.core.errors import ApiError
from expense_console.schemas.importing import ImportRecord
from expense_console.services import query_keys

if TYPE_CHECKING:
    from expense_console.core.state import AppState

logger = logging.getLogger(__name__)


async def refresh_unread_count(state: "AppState") -> Optional[int]:
    if not state.auth.is_authenticated:
        return None
    count = await state.backend.get_unread_count()
    state.cache.set(query_keys.unread_count(), count)
    return count


async def poll_watched_imports(state: "AppState") -> list[ImportRecord]:
    """Refresh every watched import; finished ones stop being watched."""
    records = []
    for import_id in sorted(state.watched_imports):
        record = await state.backend.get_import_status(import_id)
        state.cache.set(query_keys.import_status(import_id), record)
        records.append(record)
        if record.is_active:
            continue
        state.watched_imports.discard(import_id)
        state.cache.invalidate(query_keys.import_history())
        state.cache.invalidate(query_keys.expense_lists())
        logger.info("Import %s finished with status=%s", import_id, record.status)
    return records


async def _refresh_loop(state: "AppState", *, interval_seconds: int, import_interval_seconds: int) -> None:
    # Backoff on errors to avoid tight loops.
    error_sleep = max(10, min(60, interval_seconds))
    next_count_at = 0.0
    while True:
        try:
            now = time.monotonic()
            if now >= next_count_at:
                try:
                    await refresh_unread_count(state)
                except ApiError as exc:
                    logger.warning("Unread count refresh failed: code=%s", exc.code)
                next_count_at = now + interval_seconds

            if state.watched_imports:
                try:
                    await poll_watched_imports(state)
                except ApiError as exc:
                    logger.warning("Import status poll failed: code=%s", exc.code)

            if state.watched_imports:
                await asyncio.sleep(min(interval_seconds, import_interval_seconds))
            else:
                await asyncio.sleep(max(0.0, next_count_at - time.monotonic()))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Background refresh worker error")
            await asyncio.sleep(error_sleep)


def start_refresh_worker(state: "AppState") -> Optional[asyncio.Task]:
    """
    Starts the in-process poll loop. Callers keep the task and cancel it on
    shutdown.
    """
    settings = state.settings
    if not settings.enable_background_refresh:
        return None
    interval = int(max(10, min(300, settings.refresh_interval_seconds or 60)))
    import_interval = int(max(1, settings.import_poll_interval_seconds or 2))
    return asyncio.create_task(
        _refresh_loop(state, interval_seconds=interval, import_interval_seconds=import_interval)
    )
