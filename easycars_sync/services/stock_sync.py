"""StockSyncOrchestrator - one dealership's EasyCars stock -> local vehicles."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from easycars_sync.models.sync_log import SyncType
from easycars_sync.schemas.easycars import StockItem
from easycars_sync.services.credential_store import CredentialStore
from easycars_sync.services.easycars_client import EasyCarsApiClient
from easycars_sync.services.image_sync import ImageSyncer
from easycars_sync.services.stock_mapper import StockMapper, stock_item_label
from easycars_sync.services.sync_log_sink import SyncLogSink
from easycars_sync.services.sync_metrics import SyncMetrics
from easycars_sync.services.sync_result import (
    BatchCancelled,
    ItemOutcome,
    SyncResult,
    elapsed_ms,
    fold_batch,
)

logger = logging.getLogger(__name__)


class StockSyncOrchestrator:
    """Fetch credentials -> fetch stock -> map each item -> log.

    Item writes are committed one vehicle at a time; a cancelled or failed
    run keeps whatever was already committed.
    """

    def __init__(
        self,
        db: AsyncSession,
        api_client: EasyCarsApiClient,
        image_syncer: Optional[ImageSyncer] = None,
    ) -> None:
        self.db = db
        self.api_client = api_client
        self.credentials = CredentialStore(db)
        self.mapper = StockMapper(db, image_syncer)
        self.sync_logs = SyncLogSink(db)

    async def sync_stock(self, dealership_id: int) -> SyncResult:
        started = time.monotonic()
        metrics = SyncMetrics(dealership_id=dealership_id, sync_type=SyncType.STOCK.value)
        logger.info("Starting EasyCars stock sync for dealership %s", dealership_id)

        try:
            credential = await self.credentials.get_decrypted(dealership_id)
            if credential is None:
                logger.warning("No EasyCars credentials for dealership %s", dealership_id)
                result = SyncResult.failure(
                    "EasyCars credentials not configured", elapsed_ms(started, time.monotonic())
                )
                return await self._finish(dealership_id, result, metrics)

            payloads = await self.api_client.get_advertisement_stocks(credential, credential.yard_code)
            if not payloads:
                logger.info("No stock items returned for dealership %s", dealership_id)
                result = SyncResult.success(0, elapsed_ms(started, time.monotonic()))
                return await self._finish(dealership_id, result, metrics)

            async def handle(raw: Dict[str, Any]) -> ItemOutcome:
                return await self._sync_item(raw, dealership_id)

            tally = await fold_batch(
                payloads,
                handle,
                lambda raw, exc: f"Failed to map stock item {stock_item_label(raw)}: {exc}",
            )
        except BatchCancelled as cancelled:
            metrics.cancelled = True
            metrics.processed = cancelled.partial.processed
            metrics.succeeded = cancelled.partial.succeeded
            metrics.failed = cancelled.partial.failed
            metrics.finish("Cancelled")
            metrics.log()
            logger.warning(
                "Stock sync for dealership %s cancelled after %s of %s items",
                dealership_id, cancelled.partial.processed, cancelled.total,
            )
            raise
        except Exception as exc:
            logger.exception("Stock sync failed for dealership %s", dealership_id)
            result = SyncResult.failure(str(exc), elapsed_ms(started, time.monotonic()))
            return await self._finish(dealership_id, result, metrics)

        result = tally.to_result(elapsed_ms(started, time.monotonic()))
        if result.items_succeeded:
            try:
                await self.credentials.mark_synced(dealership_id)
            except Exception:
                logger.exception("Could not update last sync time for dealership %s", dealership_id)
                await self.db.rollback()
        return await self._finish(dealership_id, result, metrics)

    async def _sync_item(self, raw: Dict[str, Any], dealership_id: int) -> ItemOutcome:
        try:
            item = StockItem.from_payload(raw)
            mapped = await self.mapper.map_to_vehicle(item, dealership_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return ItemOutcome(images_downloaded=mapped.images_downloaded, images_failed=mapped.images_failed)

    async def _finish(self, dealership_id: int, result: SyncResult, metrics: SyncMetrics) -> SyncResult:
        await self.sync_logs.record(dealership_id, SyncType.STOCK, result)
        metrics.processed = result.items_processed
        metrics.succeeded = result.items_succeeded
        metrics.failed = result.items_failed
        metrics.images_downloaded = result.images_downloaded
        metrics.images_failed = result.images_failed
        metrics.errors = list(result.errors)
        metrics.finish(result.status.value)
        metrics.log()
        return result
