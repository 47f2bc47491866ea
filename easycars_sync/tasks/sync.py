"""
EasyCars sync tasks.

Tasks:
- sync_all_dealerships_stock: Periodic stock sync for every auto-sync dealership
- sync_all_dealerships_leads: Periodic inbound lead sync
- sync_all_dealerships_lead_statuses: Periodic inbound status reconciliation
- sync_dealership_stock / sync_dealership_leads: Manual per-dealership runs
- sync_lead_to_easycars / sync_lead_status_to_easycars: Outbound, queued on local lead changes
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from celery.signals import worker_process_shutdown
from sentry_sdk.integrations.celery import CeleryIntegration

from easycars_sync.tasks import celery_app
from easycars_sync.database import session_scope
from easycars_sync.observability import init_sentry
from easycars_sync.services.credential_store import CredentialStore
from easycars_sync.services.easycars_client import EasyCarsApiClient, close_shared_client
from easycars_sync.services.image_sync import build_image_syncer
from easycars_sync.services.lead_sync import LeadSyncOrchestrator
from easycars_sync.services.stock_sync import StockSyncOrchestrator
from easycars_sync.services.sync_result import SyncResult
from easycars_sync.services.token_cache import get_token_cache, reset_token_cache
from easycars_sync.config import get_settings

logger = logging.getLogger(__name__)
MAX_TASK_RETRIES = 3
MAX_RETRY_BACKOFF_SECONDS = 15 * 60

init_sentry(get_settings(), [CeleryIntegration()], "celery")


DealershipJob = Callable[[int], Awaitable[SyncResult]]


def _truncate_error(message: str, *, limit: int = 500) -> str:
    return message[:limit]


def _result_summary(result: SyncResult) -> Dict[str, object]:
    return {
        "status": result.status.value,
        "items_processed": result.items_processed,
        "items_succeeded": result.items_succeeded,
        "items_failed": result.items_failed,
        "duration_ms": result.duration_ms,
        "errors": [_truncate_error(e) for e in result.errors],
    }


def _retry_countdown(retries: int) -> int:
    return min(2 ** retries * 60, MAX_RETRY_BACKOFF_SECONDS)


def run_async(coro):
    """Run async coroutine in sync context (for Celery tasks)."""
    from easycars_sync.database import engine

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        # Dispose stale connections from previous event loops
        loop.run_until_complete(engine.dispose())
        return loop.run_until_complete(coro)
    finally:
        # Pooled connections and the shared httpx client are bound to this loop
        loop.run_until_complete(close_shared_client())
        loop.run_until_complete(engine.dispose())
        loop.close()


@worker_process_shutdown.connect
def _on_worker_shutdown(**kwargs):
    reset_token_cache()
    logger.info("EasyCars token cache cleared on worker shutdown")


def _api_client() -> EasyCarsApiClient:
    return EasyCarsApiClient(get_token_cache())


# ----------------------------------------------------------------------------
# Per-dealership jobs (each opens its own session)
# ----------------------------------------------------------------------------


async def _stock_job(dealership_id: int) -> SyncResult:
    async with session_scope() as db:
        orchestrator = StockSyncOrchestrator(db, _api_client(), build_image_syncer())
        return await orchestrator.sync_stock(dealership_id)


async def _lead_job(dealership_id: int) -> SyncResult:
    async with session_scope() as db:
        return await LeadSyncOrchestrator(db, _api_client()).sync_leads_from_easycars(dealership_id)


async def _lead_status_job(dealership_id: int) -> SyncResult:
    async with session_scope() as db:
        return await LeadSyncOrchestrator(db, _api_client()).sync_lead_statuses_from_easycars(dealership_id)


async def _list_dealerships() -> List[int]:
    async with session_scope() as db:
        return await CredentialStore(db).list_auto_sync_dealerships()


async def run_for_all_dealerships(
    job: DealershipJob,
    label: str,
    dealership_ids: Optional[List[int]] = None,
    concurrency: Optional[int] = None,
) -> Dict[int, Optional[str]]:
    """Run ``job`` for every auto-sync dealership, at most ``concurrency`` at once.

    Returns dealership id -> final status (None when the job raised). One
    dealership failing never stops the others.
    """
    if dealership_ids is None:
        dealership_ids = await _list_dealerships()
    if concurrency is None:
        concurrency = get_settings().SYNC_DEALERSHIP_CONCURRENCY
    semaphore = asyncio.Semaphore(max(1, concurrency))
    logger.info("Starting %s sync for %s dealership(s)", label, len(dealership_ids))

    async def _one(dealership_id: int) -> Optional[str]:
        async with semaphore:
            try:
                result = await job(dealership_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s sync crashed for dealership %s", label, dealership_id)
                return None
            return result.status.value

    statuses = await asyncio.gather(*(_one(d) for d in dealership_ids))
    outcome = dict(zip(dealership_ids, statuses))
    logger.info("Finished %s sync: %s", label, outcome)
    return outcome


def _run_bulk(job: DealershipJob, label: str) -> Dict[int, Optional[str]]:
    if not get_settings().EASYCAR_SYNC_ENABLED:
        logger.info("EasyCars sync disabled, skipping %s sync", label)
        return {}
    return run_async(run_for_all_dealerships(job, label))


# ----------------------------------------------------------------------------
# Periodic tasks
# ----------------------------------------------------------------------------


@celery_app.task(name="easycars_sync.tasks.sync.sync_all_dealerships_stock")
def sync_all_dealerships_stock():
    """Periodic task: stock sync for every dealership with auto-sync enabled."""
    return _run_bulk(_stock_job, "stock")


@celery_app.task(name="easycars_sync.tasks.sync.sync_all_dealerships_leads")
def sync_all_dealerships_leads():
    """Periodic task: pull EasyCars detail for all linked leads."""
    return _run_bulk(_lead_job, "lead")


@celery_app.task(name="easycars_sync.tasks.sync.sync_all_dealerships_lead_statuses")
def sync_all_dealerships_lead_statuses():
    """Periodic task: reconcile lead statuses against EasyCars."""
    return _run_bulk(_lead_status_job, "lead status")


# ----------------------------------------------------------------------------
# Manual / event-driven tasks
# ----------------------------------------------------------------------------


@celery_app.task(name="easycars_sync.tasks.sync.sync_dealership_stock")
def sync_dealership_stock(dealership_id: int):
    logger.info("Manual stock sync for dealership %s", dealership_id)
    return _result_summary(run_async(_stock_job(dealership_id)))


@celery_app.task(name="easycars_sync.tasks.sync.sync_dealership_leads")
def sync_dealership_leads(dealership_id: int):
    """Manual lead sync: inbound detail first, then status reconciliation."""
    logger.info("Manual lead sync for dealership %s", dealership_id)

    async def _sync():
        leads = await _lead_job(dealership_id)
        statuses = await _lead_status_job(dealership_id)
        return {"leads": _result_summary(leads), "statuses": _result_summary(statuses)}

    return run_async(_sync())


@celery_app.task(
    name="easycars_sync.tasks.sync.sync_lead_to_easycars",
    bind=True,
    max_retries=MAX_TASK_RETRIES,
    default_retry_delay=60,
)
def sync_lead_to_easycars(self, lead_id: int):
    """Push one lead to EasyCars (create when unlinked, else update)."""

    async def _sync() -> SyncResult:
        async with session_scope() as db:
            return await LeadSyncOrchestrator(db, _api_client()).sync_lead_to_easycars(lead_id)

    result = run_async(_sync())
    if result.is_failed:
        error = result.errors[0] if result.errors else "unknown error"
        logger.warning(
            "Outbound sync of lead %s failed (attempt %s/%s): %s",
            lead_id, self.request.retries + 1, MAX_TASK_RETRIES + 1, _truncate_error(error),
        )
        if self.request.retries < MAX_TASK_RETRIES:
            raise self.retry(
                exc=RuntimeError(_truncate_error(error)),
                countdown=_retry_countdown(self.request.retries),
            )
    return _result_summary(result)


@celery_app.task(name="easycars_sync.tasks.sync.sync_lead_status_to_easycars")
def sync_lead_status_to_easycars(lead_id: int):
    """Push only the status of a linked lead to EasyCars."""

    async def _sync() -> SyncResult:
        async with session_scope() as db:
            return await LeadSyncOrchestrator(db, _api_client()).sync_lead_status_to_easycars(lead_id)

    return _result_summary(run_async(_sync()))
