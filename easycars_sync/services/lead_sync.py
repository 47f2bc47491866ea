"""LeadSyncOrchestrator - the four EasyCars lead flows.

* outbound lead (create or update)        -> SyncType.LEAD_OUTBOUND
* inbound lead detail for linked leads    -> SyncType.LEAD
* outbound status only                    -> SyncType.LEAD_STATUS_OUTBOUND
* inbound status reconciliation           -> SyncType.LEAD_STATUS
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from easycars_sync.exceptions import CredentialsNotConfiguredError
from easycars_sync.models.lead import Lead
from easycars_sync.models.sync_log import SyncType
from easycars_sync.models.vehicle import Vehicle
from easycars_sync.services import lead_mapper
from easycars_sync.services.conflict_resolver import ConflictResolver, ConflictStrategy
from easycars_sync.services.credential_store import CredentialStore, DecryptedCredential
from easycars_sync.services.easycars_client import EasyCarsApiClient
from easycars_sync.services.sync_log_sink import SyncLogSink
from easycars_sync.services.sync_metrics import SyncMetrics
from easycars_sync.services.sync_result import (
    BatchCancelled,
    BatchTally,
    SyncResult,
    elapsed_ms,
    fold_batch,
)

logger = logging.getLogger(__name__)


class LeadSyncOrchestrator:
    def __init__(
        self,
        db: AsyncSession,
        api_client: EasyCarsApiClient,
        strategy: Optional[ConflictStrategy] = None,
    ) -> None:
        self.db = db
        self.api_client = api_client
        self.credentials = CredentialStore(db)
        self.sync_logs = SyncLogSink(db)
        if strategy is None:
            strategy = ConflictStrategy.parse(api_client.settings.LEAD_STATUS_CONFLICT_STRATEGY)
        self.resolver = ConflictResolver(db, strategy)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    async def _linked_lead_ids(self, dealership_id: int) -> List[int]:
        result = await self.db.execute(
            select(Lead.id)
            .where(
                Lead.dealership_id == dealership_id,
                Lead.easycars_lead_number.is_not(None),
                Lead.easycars_lead_number != "",
            )
            .order_by(Lead.id)
        )
        return list(result.scalars().all())

    async def _vehicle_for(self, lead: Lead) -> Optional[Vehicle]:
        if lead.vehicle_id is None:
            return None
        return await self.db.get(Vehicle, lead.vehicle_id)

    async def _finish(
        self, dealership_id: int, sync_type: SyncType, result: SyncResult, metrics: SyncMetrics
    ) -> SyncResult:
        if dealership_id > 0:
            await self.sync_logs.record(dealership_id, sync_type, result)
        metrics.processed = result.items_processed
        metrics.succeeded = result.items_succeeded
        metrics.failed = result.items_failed
        metrics.errors = list(result.errors)
        metrics.finish(result.status.value)
        metrics.log()
        return result

    def _log_cancelled(self, metrics: SyncMetrics, cancelled: BatchCancelled) -> None:
        metrics.cancelled = True
        metrics.processed = cancelled.partial.processed
        metrics.succeeded = cancelled.partial.succeeded
        metrics.failed = cancelled.partial.failed
        metrics.finish("Cancelled")
        metrics.log()

    async def _fold_linked_leads(self, dealership_id: int, credential: DecryptedCredential, handle) -> BatchTally:
        lead_ids = await self._linked_lead_ids(dealership_id)

        async def run(lead_id: int) -> None:
            lead = await self.db.get(Lead, lead_id)
            try:
                await handle(lead, credential)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        numbers = {}
        if lead_ids:
            rows = await self.db.execute(
                select(Lead.id, Lead.easycars_lead_number).where(Lead.id.in_(lead_ids))
            )
            numbers = {row.id: row.easycars_lead_number for row in rows}

        return await fold_batch(
            lead_ids,
            run,
            lambda lead_id, exc: f"Lead {numbers.get(lead_id, lead_id)}: {exc}",
        )

    # ------------------------------------------------------------------
    # 1. Outbound single lead
    # ------------------------------------------------------------------

    async def sync_lead_to_easycars(self, lead_id: int) -> SyncResult:
        """Create the lead in EasyCars, or update it when it is already linked."""
        started = time.monotonic()
        lead = await self.db.get(Lead, lead_id)
        if lead is None:
            logger.warning("Lead %s not found", lead_id)
            return SyncResult.failure(f"Lead {lead_id} not found")

        dealership_id = lead.dealership_id
        metrics = SyncMetrics(dealership_id=dealership_id, sync_type=SyncType.LEAD_OUTBOUND.value)
        try:
            credential = await self.credentials.get_decrypted(dealership_id)
            if credential is None:
                logger.warning("No EasyCars credentials for dealership %s", dealership_id)
                result = SyncResult.failure(
                    f"No EasyCars credentials for dealership {dealership_id}",
                    elapsed_ms(started, time.monotonic()),
                )
                return await self._finish(dealership_id, SyncType.LEAD_OUTBOUND, result, metrics)

            vehicle = await self._vehicle_for(lead)
            if lead.easycars_lead_number:
                request = lead_mapper.map_to_update_request(
                    lead, lead.easycars_lead_number, credential.account_number, credential.account_secret, vehicle
                )
                response = await self.api_client.update_lead(credential, request)
                lead.link_to_easycars(
                    response.lead_number or lead.easycars_lead_number, lead.easycars_customer_no
                )
                logger.info("Updated EasyCars lead %s for lead %s", lead.easycars_lead_number, lead.id)
            else:
                request = lead_mapper.map_to_create_request(
                    lead, credential.account_number, credential.account_secret, vehicle
                )
                response = await self.api_client.create_lead(credential, request)
                lead.link_to_easycars(response.lead_number, response.customer_no)
                logger.info("Created EasyCars lead %s for lead %s", response.lead_number, lead.id)

            lead.mark_synced_to_easycars()
            await self.db.commit()
        except Exception as exc:
            logger.exception("Error syncing lead %s to EasyCars", lead_id)
            await self.db.rollback()
            result = SyncResult.failure(str(exc), elapsed_ms(started, time.monotonic()))
            return await self._finish(dealership_id, SyncType.LEAD_OUTBOUND, result, metrics)

        result = SyncResult.success(1, elapsed_ms(started, time.monotonic()))
        return await self._finish(dealership_id, SyncType.LEAD_OUTBOUND, result, metrics)

    # ------------------------------------------------------------------
    # 2. Inbound lead detail
    # ------------------------------------------------------------------

    async def sync_leads_from_easycars(self, dealership_id: int) -> SyncResult:
        """Refresh every linked lead from its EasyCars detail."""
        return await self._run_linked_batch(dealership_id, SyncType.LEAD, self._pull_lead_detail)

    async def _pull_lead_detail(self, lead: Lead, credential: DecryptedCredential) -> None:
        response = await self.api_client.get_lead_detail(credential, lead.easycars_lead_number)
        lead_mapper.update_lead_from_response(lead, response)

    # ------------------------------------------------------------------
    # 3. Outbound status only
    # ------------------------------------------------------------------

    async def sync_lead_status_to_easycars(self, lead_id: int) -> SyncResult:
        started = time.monotonic()
        lead = await self.db.get(Lead, lead_id)
        if lead is None:
            logger.warning("Lead %s not found for status sync", lead_id)
            return SyncResult.failure(f"Lead {lead_id} not found")

        dealership_id = lead.dealership_id
        metrics = SyncMetrics(dealership_id=dealership_id, sync_type=SyncType.LEAD_STATUS_OUTBOUND.value)
        if not lead.easycars_lead_number:
            logger.info("Skipping status sync for lead %s: not linked to EasyCars", lead_id)
            return SyncResult.success(0, elapsed_ms(started, time.monotonic()))

        try:
            credential = await self.credentials.get_decrypted(dealership_id)
            if credential is None:
                result = SyncResult.failure(
                    f"No EasyCars credentials for dealership {dealership_id}",
                    elapsed_ms(started, time.monotonic()),
                )
                return await self._finish(dealership_id, SyncType.LEAD_STATUS_OUTBOUND, result, metrics)

            request = lead_mapper.map_to_status_only_request(
                lead, credential.account_number, credential.account_secret
            )
            await self.api_client.update_lead(credential, request)
            lead.mark_status_synced(request.lead_status)
            await self.db.commit()
        except Exception as exc:
            logger.exception("Error pushing status for lead %s to EasyCars", lead_id)
            await self.db.rollback()
            result = SyncResult.failure(str(exc), elapsed_ms(started, time.monotonic()))
            return await self._finish(dealership_id, SyncType.LEAD_STATUS_OUTBOUND, result, metrics)

        result = SyncResult.success(1, elapsed_ms(started, time.monotonic()))
        return await self._finish(dealership_id, SyncType.LEAD_STATUS_OUTBOUND, result, metrics)

    # ------------------------------------------------------------------
    # 4. Inbound status reconciliation
    # ------------------------------------------------------------------

    async def sync_lead_statuses_from_easycars(self, dealership_id: int) -> SyncResult:
        """Compare every linked lead's status with EasyCars and reconcile divergence."""
        return await self._run_linked_batch(dealership_id, SyncType.LEAD_STATUS, self._reconcile_status)

    async def _reconcile_status(self, lead: Lead, credential: DecryptedCredential) -> None:
        response = await self.api_client.get_lead_detail(credential, lead.easycars_lead_number)
        if response.lead_status is None:
            logger.debug("No status returned for EasyCars lead %s", lead.easycars_lead_number)
            return
        remote_status = lead_mapper.status_from_easycars(response.lead_status)
        if lead.status == remote_status.value:
            lead.mark_status_synced(response.lead_status)
            await self.resolver.close_open_conflicts(lead)
            return
        await self.resolver.apply(lead, response.lead_status)

    # ------------------------------------------------------------------
    # Remote-originated leads
    # ------------------------------------------------------------------

    async def import_lead_from_easycars(self, dealership_id: int, lead_number: str) -> Lead:
        """Create (or refresh) the local copy of an EasyCars lead by its number."""
        credential = await self.credentials.get_decrypted(dealership_id)
        if credential is None:
            raise CredentialsNotConfiguredError(dealership_id)

        response = await self.api_client.get_lead_detail(credential, lead_number)
        result = await self.db.execute(
            select(Lead)
            .where(Lead.dealership_id == dealership_id, Lead.easycars_lead_number == lead_number)
            .limit(1)
        )
        lead = result.scalar_one_or_none()
        if lead is not None and lead_mapper.is_existing_lead(lead, response):
            lead_mapper.update_lead_from_response(lead, response)
            logger.info("Refreshed lead %s from EasyCars lead %s", lead.id, lead_number)
        else:
            lead = lead_mapper.map_from_easycars_lead(response, dealership_id)
            self.db.add(lead)
            logger.info("Imported EasyCars lead %s for dealership %s", lead_number, dealership_id)
        await self.db.commit()
        await self.db.refresh(lead)
        return lead

    # ------------------------------------------------------------------
    # Shared batch runner for flows 2 and 4
    # ------------------------------------------------------------------

    async def _run_linked_batch(self, dealership_id: int, sync_type: SyncType, handle) -> SyncResult:
        started = time.monotonic()
        metrics = SyncMetrics(dealership_id=dealership_id, sync_type=sync_type.value)
        logger.info("Starting %s sync for dealership %s", sync_type.value, dealership_id)
        try:
            credential = await self.credentials.get_decrypted(dealership_id)
            if credential is None:
                logger.warning("No EasyCars credentials for dealership %s", dealership_id)
                result = SyncResult.failure(
                    f"No EasyCars credentials for dealership {dealership_id}",
                    elapsed_ms(started, time.monotonic()),
                )
                return await self._finish(dealership_id, sync_type, result, metrics)

            tally = await self._fold_linked_leads(dealership_id, credential, handle)
        except BatchCancelled as cancelled:
            self._log_cancelled(metrics, cancelled)
            logger.warning(
                "%s sync for dealership %s cancelled after %s of %s leads",
                sync_type.value, dealership_id, cancelled.partial.processed, cancelled.total,
            )
            raise
        except Exception as exc:
            logger.exception("Fatal error in %s sync for dealership %s", sync_type.value, dealership_id)
            result = SyncResult.failure(str(exc), elapsed_ms(started, time.monotonic()))
            return await self._finish(dealership_id, sync_type, result, metrics)

        if tally.processed == 0:
            logger.info("No linked leads to sync for dealership %s", dealership_id)
        result = tally.to_result(elapsed_ms(started, time.monotonic()))
        return await self._finish(dealership_id, sync_type, result, metrics)
