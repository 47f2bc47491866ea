"""Tests for manual triggers, status/history queries and connection checks."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from easycars_sync.exceptions import CredentialsNotConfiguredError, SyncRateLimitedError
from easycars_sync.models.lead import Lead, LeadStatus
from easycars_sync.models.sync_log import SyncLog, SyncStatus, SyncType
from easycars_sync.schemas.credential import TestConnectionRequest as ConnectionRequest
from easycars_sync.schemas.easycars import TokenResponse
from easycars_sync.services import sync_admin
from easycars_sync.services.conflict_resolver import ConflictResolver, ConflictStrategy
from easycars_sync.services.easycars_errors import EasyCarsAuthenticationError
from easycars_sync.services.sync_log_sink import SyncLogSink
from easycars_sync.services.sync_result import SyncResult


class _FakeQueue:
    def __init__(self):
        self.calls = []

    def __call__(self, dealership_id: int) -> str:
        self.calls.append(dealership_id)
        return f"job-{len(self.calls)}"


async def _record(db_session, sync_type=SyncType.STOCK, result=None, dealership_id=1):
    result = result or SyncResult.success(4, duration_ms=250)
    return await SyncLogSink(db_session).record(dealership_id, sync_type, result)


# ===========================================================================
# Manual triggers
# ===========================================================================

class TestTriggerSync:

    async def test_without_credentials_logs_failure_and_raises(self, db_session):
        queue = _FakeQueue()

        with pytest.raises(CredentialsNotConfiguredError):
            await sync_admin.trigger_stock_sync(db_session, 1, enqueue=queue)

        assert queue.calls == []
        logs = (await db_session.execute(select(SyncLog))).scalars().all()
        assert len(logs) == 1
        assert logs[0].status == "Failed"
        assert sync_admin.CREDENTIALS_MISSING_MESSAGE in logs[0].error_messages

    async def test_enqueues_and_returns_job_id(self, db_session, dealership_credentials):
        queue = _FakeQueue()

        response = await sync_admin.trigger_stock_sync(db_session, 1, enqueue=queue)

        assert response.message == "Stock sync started"
        assert response.job_id == "job-1"
        assert queue.calls == [1]

    async def test_recent_sync_is_rate_limited(self, db_session, dealership_credentials):
        await _record(db_session)
        queue = _FakeQueue()
        now = datetime.now(timezone.utc) + timedelta(seconds=10)

        with pytest.raises(SyncRateLimitedError) as exc_info:
            await sync_admin.trigger_stock_sync(db_session, 1, enqueue=queue, now=now)

        assert 1 <= exc_info.value.retry_after <= 50
        assert queue.calls == []

    async def test_cooldown_expires(self, db_session, dealership_credentials):
        await _record(db_session)
        queue = _FakeQueue()
        later = datetime.now(timezone.utc) + timedelta(minutes=5)

        response = await sync_admin.trigger_stock_sync(db_session, 1, enqueue=queue, now=later)

        assert response.job_id == "job-1"

    async def test_cooldown_is_per_sync_type(self, db_session, dealership_credentials):
        await _record(db_session, sync_type=SyncType.STOCK)
        queue = _FakeQueue()

        response = await sync_admin.trigger_lead_sync(db_session, 1, enqueue=queue)

        assert response.message == "Lead sync started"
        assert queue.calls == [1]

    async def test_rejection_for_missing_credentials_does_not_start_cooldown(self, db_session, dealership_credentials):
        await _record(db_session, result=SyncResult.failure(sync_admin.CREDENTIALS_MISSING_MESSAGE))
        queue = _FakeQueue()
        now = datetime.now(timezone.utc) + timedelta(seconds=10)

        response = await sync_admin.trigger_stock_sync(db_session, 1, enqueue=queue, now=now)

        assert response.job_id == "job-1"

    async def test_other_failed_runs_still_start_cooldown(self, db_session, dealership_credentials):
        await _record(db_session, result=SyncResult.failure("EasyCars returned a fatal error"))
        now = datetime.now(timezone.utc) + timedelta(seconds=10)

        with pytest.raises(SyncRateLimitedError):
            await sync_admin.trigger_stock_sync(db_session, 1, enqueue=_FakeQueue(), now=now)


# ===========================================================================
# Status and history
# ===========================================================================

class TestStatusAndHistory:

    async def test_status_without_any_sync(self, db_session, dealership_credentials):
        status = await sync_admin.get_sync_status(db_session, 1)
        assert status.sync_type == "Stock"
        assert status.last_synced_at is None
        assert status.status is None
        assert status.has_credentials is True

    async def test_status_reflects_last_log(self, db_session):
        await _record(db_session, sync_type=SyncType.LEAD)
        status = await sync_admin.get_sync_status(db_session, 1, SyncType.LEAD)
        assert status.status == "Success"
        assert status.items_processed == 4
        assert status.duration_ms == 250
        assert status.has_credentials is False

    async def test_history_pages(self, db_session):
        for _ in range(3):
            await _record(db_session)
        history = await sync_admin.get_sync_history(db_session, 1, page=1, page_size=2)
        assert history.total == 3
        assert history.total_pages == 2
        assert len(history.logs) == 2
        assert history.page_size == 2

    async def test_log_details_include_errors(self, db_session):
        log = await _record(
            db_session,
            result=SyncResult(
                status=SyncStatus.PARTIAL_SUCCESS,
                items_processed=2,
                items_succeeded=1,
                items_failed=1,
                errors=["Stock S9: bad price"],
            ),
        )

        details = await sync_admin.get_sync_log_details(db_session, 1, log.id)

        assert details.errors == ["Stock S9: bad price"]
        assert details.status == "PartialSuccess"
        assert await sync_admin.get_sync_log_details(db_session, 2, log.id) is None


# ===========================================================================
# Conflicts
# ===========================================================================

class TestConflicts:

    async def test_list_and_resolve(self, db_session):
        lead = Lead(
            dealership_id=1, name="Jane", email="jane@example.com", phone="0400000000",
            message="Hi", status=LeadStatus.IN_PROGRESS.value, easycars_lead_number="EC-1",
        )
        db_session.add(lead)
        await db_session.commit()
        await ConflictResolver(db_session, ConflictStrategy.MANUAL_REVIEW).apply(lead, 60)
        await db_session.commit()

        conflicts = await sync_admin.list_conflicts(db_session, 1)
        assert len(conflicts) == 1
        assert conflicts[0].remote_status_label == "Lost"

        resolved = await sync_admin.resolve_conflict(db_session, 1, conflicts[0].id, "remote", "ops@example.com")
        assert resolved.is_resolved is True
        assert await sync_admin.list_conflicts(db_session, 1) == []


# ===========================================================================
# Connection check
# ===========================================================================

class TestCheckConnection:

    async def test_success_uses_client_pair_when_present(self, api_client):
        expires = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        api_client.test_connection = AsyncMock(return_value=TokenResponse(token="tok", expires_at=expires))
        payload = ConnectionRequest(
            account_number="AC-1", account_secret="s1", client_id="CID", client_secret="CS", environment="test",
        )

        response = await sync_admin.check_connection(api_client, payload)

        assert response.success is True
        assert response.message == "Connection successful"
        assert response.environment == "Test"
        assert response.expires_at == expires
        api_client.test_connection.assert_awaited_once_with("CID", "CS", "Test")

    async def test_failure_is_reported_not_raised(self, api_client):
        api_client.test_connection = AsyncMock(side_effect=EasyCarsAuthenticationError("Invalid credentials", 2))
        payload = ConnectionRequest(account_number="AC-1", account_secret="wrong")

        response = await sync_admin.check_connection(api_client, payload)

        assert response.success is False
        assert response.message == "Invalid credentials"
        api_client.test_connection.assert_awaited_once_with("AC-1", "wrong", "Test")
