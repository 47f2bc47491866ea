"""Operational surface for EasyCars sync: manual triggers, status, history, conflicts.

Manual triggers check credentials first, then a per-type cooldown based on
the newest SyncLog, and only then enqueue the Celery job.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from easycars_sync.config import get_settings
from easycars_sync.exceptions import CredentialsNotConfiguredError, SyncRateLimitedError
from easycars_sync.models.sync_log import SyncType
from easycars_sync.schemas.credential import TestConnectionRequest, TestConnectionResponse
from easycars_sync.schemas.sync import (
    ConflictResponse,
    SyncHistoryResponse,
    SyncLogDetails,
    SyncLogSummary,
    SyncStatusResponse,
    TriggerSyncResponse,
)
from easycars_sync.services.conflict_resolver import ConflictResolver, ConflictStrategy
from easycars_sync.services.credential_store import CredentialStore
from easycars_sync.services.easycars_client import EasyCarsApiClient
from easycars_sync.services.easycars_errors import EasyCarsError
from easycars_sync.services.lead_mapper import easycars_status_label
from easycars_sync.services.sync_log_sink import SyncLogSink, parse_error_messages
from easycars_sync.services.sync_result import SyncResult

logger = logging.getLogger(__name__)

CREDENTIALS_MISSING_MESSAGE = "EasyCars credentials not configured"

# Enqueue callables take a dealership id and return the job id.
Enqueue = Callable[[int], str]


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _enqueue_stock_sync(dealership_id: int) -> str:
    from easycars_sync.tasks.sync import sync_dealership_stock

    return sync_dealership_stock.delay(dealership_id).id


def _enqueue_lead_sync(dealership_id: int) -> str:
    from easycars_sync.tasks.sync import sync_dealership_leads

    return sync_dealership_leads.delay(dealership_id).id


async def _check_trigger_allowed(
    db: AsyncSession,
    dealership_id: int,
    sync_type: SyncType,
    now: Optional[datetime] = None,
) -> None:
    sink = SyncLogSink(db)
    if not await CredentialStore(db).exists(dealership_id):
        logger.warning(
            "Manual %s sync for dealership %s rejected: no credentials", sync_type.value, dealership_id
        )
        await sink.record(dealership_id, sync_type, SyncResult.failure(CREDENTIALS_MISSING_MESSAGE))
        raise CredentialsNotConfiguredError(dealership_id)

    cooldown = get_settings().MANUAL_SYNC_COOLDOWN_SECONDS
    # a rejected trigger for missing credentials does not start the cooldown
    last_synced_at = await sink.last_synced_at(dealership_id, sync_type, ignore_error=CREDENTIALS_MISSING_MESSAGE)
    if last_synced_at is None or cooldown <= 0:
        return
    now = now or datetime.now(timezone.utc)
    age = (now - _as_utc(last_synced_at)).total_seconds()
    if age < cooldown:
        retry_after = max(1, int(cooldown - age))
        logger.info(
            "Manual %s sync for dealership %s rate limited (retry in %ss)",
            sync_type.value, dealership_id, retry_after,
        )
        raise SyncRateLimitedError(dealership_id, sync_type.value, retry_after)


async def trigger_stock_sync(
    db: AsyncSession,
    dealership_id: int,
    enqueue: Optional[Enqueue] = None,
    now: Optional[datetime] = None,
) -> TriggerSyncResponse:
    await _check_trigger_allowed(db, dealership_id, SyncType.STOCK, now)
    job_id = (enqueue or _enqueue_stock_sync)(dealership_id)
    logger.info("Enqueued stock sync for dealership %s: job=%s", dealership_id, job_id)
    return TriggerSyncResponse(message="Stock sync started", job_id=str(job_id))


async def trigger_lead_sync(
    db: AsyncSession,
    dealership_id: int,
    enqueue: Optional[Enqueue] = None,
    now: Optional[datetime] = None,
) -> TriggerSyncResponse:
    await _check_trigger_allowed(db, dealership_id, SyncType.LEAD, now)
    job_id = (enqueue or _enqueue_lead_sync)(dealership_id)
    logger.info("Enqueued lead sync for dealership %s: job=%s", dealership_id, job_id)
    return TriggerSyncResponse(message="Lead sync started", job_id=str(job_id))


# ----------------------------------------------------------------------------
# Status and history
# ----------------------------------------------------------------------------


async def get_sync_status(
    db: AsyncSession, dealership_id: int, sync_type: SyncType = SyncType.STOCK
) -> SyncStatusResponse:
    has_credentials = await CredentialStore(db).exists(dealership_id)
    log = await SyncLogSink(db).last(dealership_id, sync_type)
    if log is None:
        return SyncStatusResponse(sync_type=sync_type.value, has_credentials=has_credentials)
    return SyncStatusResponse(
        sync_type=sync_type.value,
        last_synced_at=log.synced_at,
        status=log.status,
        items_processed=log.items_processed,
        items_succeeded=log.items_succeeded,
        items_failed=log.items_failed,
        duration_ms=log.duration_ms,
        has_credentials=has_credentials,
    )


async def get_sync_history(
    db: AsyncSession,
    dealership_id: int,
    page: int = 1,
    page_size: int = 10,
    sync_type: Optional[SyncType] = None,
) -> SyncHistoryResponse:
    page = max(1, page)
    page_size = max(1, min(page_size, 100))
    logs, total, total_pages = await SyncLogSink(db).history(dealership_id, page, page_size, sync_type)
    return SyncHistoryResponse(
        logs=[SyncLogSummary.model_validate(log) for log in logs],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


async def get_sync_log_details(db: AsyncSession, dealership_id: int, log_id: int) -> Optional[SyncLogDetails]:
    log = await SyncLogSink(db).get(dealership_id, log_id)
    if log is None:
        return None
    return SyncLogDetails(
        id=log.id,
        dealership_id=log.dealership_id,
        sync_type=log.sync_type,
        synced_at=log.synced_at,
        status=log.status,
        items_processed=log.items_processed,
        items_succeeded=log.items_succeeded,
        items_failed=log.items_failed,
        images_downloaded=log.images_downloaded or 0,
        images_failed=log.images_failed or 0,
        duration_ms=log.duration_ms,
        api_version=log.api_version,
        errors=parse_error_messages(log.error_messages),
    )


# ----------------------------------------------------------------------------
# Conflicts
# ----------------------------------------------------------------------------


def _conflict_response(conflict) -> ConflictResponse:
    return ConflictResponse(
        id=conflict.id,
        lead_id=conflict.lead_id,
        easycars_lead_number=conflict.easycars_lead_number,
        local_status=conflict.local_status,
        remote_status=conflict.remote_status,
        remote_status_label=easycars_status_label(conflict.remote_status),
        detected_at=conflict.detected_at,
        is_resolved=conflict.is_resolved,
        resolution=conflict.resolution,
        resolved_by=conflict.resolved_by,
        resolved_at=conflict.resolved_at,
    )


def _resolver(db: AsyncSession) -> ConflictResolver:
    return ConflictResolver(db, ConflictStrategy.parse(get_settings().LEAD_STATUS_CONFLICT_STRATEGY))


async def list_conflicts(db: AsyncSession, dealership_id: int) -> List[ConflictResponse]:
    conflicts = await _resolver(db).list_unresolved(dealership_id)
    return [_conflict_response(c) for c in conflicts]


async def resolve_conflict(
    db: AsyncSession,
    dealership_id: int,
    conflict_id: int,
    resolution: str,
    resolved_by: str,
) -> ConflictResponse:
    conflict = await _resolver(db).resolve(dealership_id, conflict_id, resolution, resolved_by)
    return _conflict_response(conflict)


# ----------------------------------------------------------------------------
# Connection test
# ----------------------------------------------------------------------------


async def check_connection(api_client: EasyCarsApiClient, payload: TestConnectionRequest) -> TestConnectionResponse:
    """Request a token with the supplied (unsaved) credentials."""
    if payload.client_id and payload.client_secret:
        public_id, secret_key = payload.client_id, payload.client_secret
    else:
        public_id, secret_key = payload.account_number, payload.account_secret
    try:
        token = await api_client.test_connection(public_id, secret_key, payload.environment)
    except EasyCarsError as e:
        logger.info("EasyCars connection test failed (%s): %s", payload.environment, e)
        return TestConnectionResponse(success=False, message=str(e), environment=payload.environment)
    return TestConnectionResponse(
        success=True,
        message="Connection successful",
        environment=payload.environment,
        expires_at=token.expires_at,
    )
