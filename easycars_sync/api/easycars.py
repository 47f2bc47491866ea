"""EasyCars sync API endpoints - manual triggers, status, history, conflicts"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from easycars_sync.api.deps import get_api_client
from easycars_sync.config import get_settings
from easycars_sync.database import get_db
from easycars_sync.exceptions import (
    ConflictAlreadyResolvedError,
    ConflictNotFoundError,
    CredentialsNotConfiguredError,
    LeadNotFoundError,
    SyncRateLimitedError,
)
from easycars_sync.models.sync_log import SyncType
from easycars_sync.schemas.sync import (
    ConflictResponse,
    ImportedLeadResponse,
    ImportLeadRequest,
    ResolveConflictRequest,
    SyncHistoryResponse,
    SyncLogDetails,
    SyncStatusResponse,
    TriggerSyncResponse,
)
from easycars_sync.services import sync_admin
from easycars_sync.services.easycars_client import EasyCarsApiClient
from easycars_sync.services.easycars_errors import EasyCarsError
from easycars_sync.services.lead_sync import LeadSyncOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/easycars/{dealership_id}", tags=["easycars"])

CREDENTIALS_MISSING_DETAIL = "EasyCars credentials not configured. Please configure credentials first."


def _rate_limited(exc: SyncRateLimitedError) -> HTTPException:
    cooldown = get_settings().MANUAL_SYNC_COOLDOWN_SECONDS
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=f"Sync already triggered recently. Please wait {cooldown} seconds before triggering again.",
        headers={"Retry-After": str(exc.retry_after)},
    )


def _parse_sync_type(value: Optional[str]) -> Optional[SyncType]:
    if value is None:
        return None
    try:
        return SyncType(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown sync type: {value}",
        )


# =============================================================================
# Manual triggers
# =============================================================================

@router.post("/sync/stock", response_model=TriggerSyncResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_stock_sync(dealership_id: int, db: AsyncSession = Depends(get_db)):
    """Queue a stock sync for one dealership."""
    try:
        return await sync_admin.trigger_stock_sync(db, dealership_id)
    except CredentialsNotConfiguredError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=CREDENTIALS_MISSING_DETAIL)
    except SyncRateLimitedError as e:
        raise _rate_limited(e)


@router.post("/sync/leads", response_model=TriggerSyncResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_lead_sync(dealership_id: int, db: AsyncSession = Depends(get_db)):
    """Queue an inbound lead sync (detail and status) for one dealership."""
    try:
        return await sync_admin.trigger_lead_sync(db, dealership_id)
    except CredentialsNotConfiguredError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=CREDENTIALS_MISSING_DETAIL)
    except SyncRateLimitedError as e:
        raise _rate_limited(e)


# =============================================================================
# Status and history
# =============================================================================

@router.get("/sync/status", response_model=SyncStatusResponse)
async def get_sync_status(
    dealership_id: int,
    sync_type: str = Query(SyncType.STOCK.value),
    db: AsyncSession = Depends(get_db),
):
    return await sync_admin.get_sync_status(db, dealership_id, _parse_sync_type(sync_type))


@router.get("/sync/history", response_model=SyncHistoryResponse)
async def get_sync_history(
    dealership_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    sync_type: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await sync_admin.get_sync_history(
        db, dealership_id, page=page, page_size=page_size, sync_type=_parse_sync_type(sync_type)
    )


@router.get("/sync/logs/{log_id}", response_model=SyncLogDetails)
async def get_sync_log(dealership_id: int, log_id: int, db: AsyncSession = Depends(get_db)):
    details = await sync_admin.get_sync_log_details(db, dealership_id, log_id)
    if details is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sync log not found")
    return details


# =============================================================================
# Lead status conflicts
# =============================================================================

@router.get("/conflicts", response_model=List[ConflictResponse])
async def list_conflicts(dealership_id: int, db: AsyncSession = Depends(get_db)):
    """Unresolved conflicts, newest first."""
    return await sync_admin.list_conflicts(db, dealership_id)


@router.post("/conflicts/{conflict_id}/resolve", response_model=ConflictResponse)
async def resolve_conflict(
    dealership_id: int,
    conflict_id: int,
    body: ResolveConflictRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await sync_admin.resolve_conflict(
            db, dealership_id, conflict_id, body.resolution, body.resolved_by
        )
    except (ConflictNotFoundError, LeadNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ConflictAlreadyResolvedError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


# =============================================================================
# Remote-originated leads
# =============================================================================

@router.post("/leads/import", response_model=ImportedLeadResponse)
async def import_lead(
    dealership_id: int,
    body: ImportLeadRequest,
    db: AsyncSession = Depends(get_db),
    api_client: EasyCarsApiClient = Depends(get_api_client),
):
    """Pull one EasyCars lead by number into the local lead table."""
    orchestrator = LeadSyncOrchestrator(db, api_client)
    try:
        lead = await orchestrator.import_lead_from_easycars(dealership_id, body.lead_number)
    except CredentialsNotConfiguredError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=CREDENTIALS_MISSING_DETAIL)
    except EasyCarsError as e:
        logger.warning("Lead import %s for dealership %s failed: %s", body.lead_number, dealership_id, e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return ImportedLeadResponse.model_validate(lead)
