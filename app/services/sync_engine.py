"""
Sync orchestration: every sync-type operation against a store runs as one
logged unit of work with guaranteed start/finish bounds.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from sqlalchemy.orm import Session

from app.config import settings
from app.models import SyncLog, SyncStatus, SyncType
from app.services.errors import SyncInProgressError

logger = logging.getLogger(__name__)

# In-process guard; the in_progress SyncLog check covers other processes
_store_locks: dict[int, asyncio.Lock] = {}


def _lock_for(store_id: int) -> asyncio.Lock:
    if store_id not in _store_locks:
        _store_locks[store_id] = asyncio.Lock()
    return _store_locks[store_id]


def _utcnow() -> datetime:
    return datetime.utcnow()


def _describe(result: Any) -> str:
    if result is None:
        return "completed"
    summary = getattr(result, "summary", None)
    if callable(summary):
        return summary()
    if isinstance(result, dict) and "synced" in result:
        return f"{result['synced']} products synced"
    return str(result)


class SyncEngine:
    """Runs sync work for a store and records it in sync_logs"""

    def __init__(self, db: Session):
        self.db = db

    def active_sync(self, store_id: int):
        """Return the in_progress log for the store, ignoring ones stale enough to be from a dead worker."""
        stale_before = _utcnow() - timedelta(minutes=settings.SYNC_STALE_AFTER_MINUTES)
        return (
            self.db.query(SyncLog)
            .filter(
                SyncLog.store_id == store_id,
                SyncLog.status == SyncStatus.IN_PROGRESS,
                SyncLog.started_at >= stale_before,
            )
            .first()
        )

    async def run_sync(
        self,
        store_id: int,
        sync_type: SyncType,
        work: Callable[[], Awaitable[Any]],
    ):
        """
        Execute work() for store_id under a sync log.

        Returns (sync_log, result). The log is written as in_progress before
        work starts and always closed with finished_at; on failure the
        original exception is re-raised unchanged after being recorded.
        """
        lock = _lock_for(store_id)
        if lock.locked():
            raise SyncInProgressError(f"A sync is already running for store {store_id}")

        async with lock:
            running = self.active_sync(store_id)
            if running:
                raise SyncInProgressError(
                    f"A {running.sync_type.value} sync is already running for store {store_id} (log {running.id})"
                )

            sync_log = SyncLog(
                store_id=store_id,
                sync_type=sync_type,
                status=SyncStatus.IN_PROGRESS,
                started_at=_utcnow(),
            )
            self.db.add(sync_log)
            self.db.commit()
            self.db.refresh(sync_log)

            try:
                result = await work()
            except Exception as e:
                self.db.rollback()
                sync_log.status = SyncStatus.FAILED
                sync_log.message = str(e) or type(e).__name__
                logger.warning("%s sync for store %s failed: %s", sync_type.value, store_id, sync_log.message)
                raise
            else:
                sync_log.status = SyncStatus.SUCCESS
                sync_log.message = _describe(result)
                logger.info("%s sync for store %s: %s", sync_type.value, store_id, sync_log.message)
                return sync_log, result
            finally:
                sync_log.finished_at = _utcnow()
                self.db.commit()

    def get_sync_logs(self, store_id: int, limit: int = 10) -> list:
        """Sync history for a store, newest first"""
        logs = (
            self.db.query(SyncLog)
            .filter(SyncLog.store_id == store_id)
            .order_by(SyncLog.started_at.desc(), SyncLog.id.desc())
            .limit(limit)
            .all()
        )
        return [serialize_sync_log(log) for log in logs]


def serialize_sync_log(log: SyncLog) -> dict:
    return {
        "id": log.id,
        "storeId": log.store_id,
        "syncType": log.sync_type.value,
        "status": log.status.value,
        "startedAt": log.started_at.isoformat() if log.started_at else None,
        "finishedAt": log.finished_at.isoformat() if log.finished_at else None,
        "message": log.message,
    }
