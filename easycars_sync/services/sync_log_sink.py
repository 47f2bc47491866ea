"""SyncLogSink - append-only audit trail of EasyCars sync attempts.

Writes are best-effort: a failed write is logged and swallowed so it can never
replace the outcome of the sync it describes. Reads back the history for the
operational endpoints.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, func, not_, select
from sqlalchemy.ext.asyncio import AsyncSession

from easycars_sync.models.sync_log import SyncLog, SyncStatus, SyncType
from easycars_sync.services.sync_result import SyncResult

logger = logging.getLogger(__name__)

SYNC_LOG_API_VERSION = "1.0"
MAX_ERROR_LENGTH = 500


def _truncate_error(message: str, limit: int = MAX_ERROR_LENGTH) -> str:
    if len(message) <= limit:
        return message
    return message[: limit - 3] + "..."


def validate_sync_log(log: SyncLog) -> None:
    if not log.dealership_id or log.dealership_id <= 0:
        raise ValueError("Dealership ID must be positive")
    if log.items_processed < 0 or log.items_succeeded < 0 or log.items_failed < 0:
        raise ValueError("Item counts cannot be negative")
    if log.items_succeeded + log.items_failed > log.items_processed:
        raise ValueError("Succeeded + failed cannot exceed processed")
    if log.duration_ms < 0:
        raise ValueError("Duration cannot be negative")


def parse_error_messages(raw: Optional[str]) -> List[str]:
    """Stored error JSON as a list; unparseable content is returned as a single entry."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        return [raw]
    if isinstance(value, list):
        return [str(v) for v in value]
    return [raw]


class SyncLogSink:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    def build(self, dealership_id: int, sync_type: SyncType, result: SyncResult) -> SyncLog:
        log = SyncLog(
            dealership_id=dealership_id,
            sync_type=SyncType(sync_type).value,
            synced_at=result.synced_at,
            status=result.status.value,
            items_processed=result.items_processed,
            items_succeeded=result.items_succeeded,
            items_failed=result.items_failed,
            images_downloaded=result.images_downloaded,
            images_failed=result.images_failed,
            error_messages=json.dumps([_truncate_error(e) for e in result.errors], ensure_ascii=False),
            duration_ms=int(result.duration_ms),
            api_version=SYNC_LOG_API_VERSION,
        )
        validate_sync_log(log)
        return log

    async def record(self, dealership_id: int, sync_type: SyncType, result: SyncResult) -> Optional[SyncLog]:
        """Persist one audit row; returns None (and logs) if the write fails."""
        try:
            log = self.build(dealership_id, sync_type, result)
            self.db.add(log)
            await self.db.commit()
            logger.info(
                "Sync log %s written: dealership=%s type=%s status=%s processed=%s",
                log.id, dealership_id, log.sync_type, log.status, log.items_processed,
            )
            return log
        except Exception:
            logger.exception(
                "Failed to write %s sync log for dealership %s (status=%s)",
                getattr(sync_type, "value", sync_type), dealership_id, result.status.value,
            )
            try:
                await self.db.rollback()
            except Exception:
                logger.exception("Rollback after sync log failure also failed")
            return None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def last(
        self, dealership_id: int, sync_type: SyncType, ignore_error: Optional[str] = None
    ) -> Optional[SyncLog]:
        """Newest log of ``sync_type``; ``ignore_error`` skips empty Failed runs carrying that error."""
        filters = [SyncLog.dealership_id == dealership_id, SyncLog.sync_type == SyncType(sync_type).value]
        if ignore_error:
            filters.append(
                not_(
                    and_(
                        SyncLog.status == SyncStatus.FAILED.value,
                        SyncLog.items_processed == 0,
                        SyncLog.error_messages.contains(ignore_error),
                    )
                )
            )
        result = await self.db.execute(
            select(SyncLog)
            .where(*filters)
            .order_by(SyncLog.synced_at.desc(), SyncLog.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def last_synced_at(
        self, dealership_id: int, sync_type: SyncType, ignore_error: Optional[str] = None
    ) -> Optional[datetime]:
        log = await self.last(dealership_id, sync_type, ignore_error)
        return log.synced_at if log else None

    async def history(
        self,
        dealership_id: int,
        page: int = 1,
        page_size: int = 10,
        sync_type: Optional[SyncType] = None,
    ) -> Tuple[List[SyncLog], int, int]:
        """Newest first; returns (logs, total, total_pages)."""
        page = max(1, page)
        page_size = max(1, min(page_size, 100))

        filters = [SyncLog.dealership_id == dealership_id]
        if sync_type is not None:
            filters.append(SyncLog.sync_type == SyncType(sync_type).value)

        total = (await self.db.execute(select(func.count(SyncLog.id)).where(*filters))).scalar_one()
        result = await self.db.execute(
            select(SyncLog)
            .where(*filters)
            .order_by(SyncLog.synced_at.desc(), SyncLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        total_pages = math.ceil(total / page_size) if total else 0
        return list(result.scalars().all()), total, total_pages

    async def get(self, dealership_id: int, log_id: int) -> Optional[SyncLog]:
        result = await self.db.execute(
            select(SyncLog).where(SyncLog.id == log_id, SyncLog.dealership_id == dealership_id)
        )
        return result.scalar_one_or_none()
