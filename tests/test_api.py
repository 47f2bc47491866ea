"""Endpoint tests for the credential and sync API."""

from unittest.mock import AsyncMock

import pytest

from easycars_sync.models.lead import Lead, LeadStatus
from easycars_sync.models.sync_log import SyncType
from easycars_sync.schemas.easycars import LeadDetailResponse, TokenResponse
from easycars_sync.services import sync_admin
from easycars_sync.services.conflict_resolver import ConflictResolver, ConflictStrategy
from easycars_sync.services.easycars_errors import EasyCarsTemporaryError
from easycars_sync.services.sync_log_sink import SyncLogSink
from easycars_sync.services.sync_result import SyncResult

CREDENTIALS = {
    "account_number": "AC-0001",
    "account_secret": "account-secret",
    "environment": "Test",
}


@pytest.fixture
def enqueued(monkeypatch):
    calls = []

    def fake_enqueue(dealership_id):
        calls.append(dealership_id)
        return "job-123"

    monkeypatch.setattr(sync_admin, "_enqueue_stock_sync", fake_enqueue)
    monkeypatch.setattr(sync_admin, "_enqueue_lead_sync", fake_enqueue)
    return calls


# ===========================================================================
# Credentials
# ===========================================================================

class TestCredentialEndpoints:

    async def test_create_get_update_delete(self, client):
        created = await client.post("/api/easycars/1/credentials", json=CREDENTIALS)
        assert created.status_code == 201
        body = created.json()
        assert body["dealership_id"] == 1
        assert "account_secret" not in body

        fetched = await client.get("/api/easycars/1/credentials")
        assert fetched.status_code == 200
        assert fetched.json()["environment"] == "Test"

        updated = await client.put("/api/easycars/1/credentials", json={"yard_code": "YARD9"})
        assert updated.status_code == 200
        assert updated.json()["yard_code"] == "YARD9"

        deleted = await client.delete("/api/easycars/1/credentials")
        assert deleted.status_code == 204
        assert (await client.get("/api/easycars/1/credentials")).status_code == 404

    async def test_duplicate_create_is_conflict(self, client):
        await client.post("/api/easycars/1/credentials", json=CREDENTIALS)
        response = await client.post("/api/easycars/1/credentials", json=CREDENTIALS)
        assert response.status_code == 409

    async def test_missing_credentials_are_404(self, client):
        assert (await client.put("/api/easycars/1/credentials", json={"yard_code": "Y"})).status_code == 404
        assert (await client.delete("/api/easycars/1/credentials")).status_code == 404

    async def test_invalid_environment_is_422(self, client):
        response = await client.post("/api/easycars/1/credentials", json={**CREDENTIALS, "environment": "Staging"})
        assert response.status_code == 422

    async def test_connection_check(self, client, api_client):
        api_client.test_connection = AsyncMock(return_value=TokenResponse(token="tok"))
        response = await client.post("/api/easycars/credentials/test", json=CREDENTIALS)
        assert response.status_code == 200
        assert response.json()["success"] is True


# ===========================================================================
# Manual triggers
# ===========================================================================

class TestTriggerEndpoints:

    async def test_stock_sync_accepted(self, client, dealership_credentials, enqueued):
        response = await client.post("/api/easycars/1/sync/stock")
        assert response.status_code == 202
        assert response.json() == {"message": "Stock sync started", "job_id": "job-123"}
        assert enqueued == [1]

    async def test_lead_sync_accepted(self, client, dealership_credentials, enqueued):
        response = await client.post("/api/easycars/1/sync/leads")
        assert response.status_code == 202
        assert response.json()["message"] == "Lead sync started"

    async def test_without_credentials_is_400(self, client, enqueued):
        response = await client.post("/api/easycars/1/sync/stock")
        assert response.status_code == 400
        assert "credentials not configured" in response.json()["detail"]
        assert enqueued == []

    async def test_recent_sync_is_429(self, client, db_session, dealership_credentials, enqueued):
        await SyncLogSink(db_session).record(1, SyncType.STOCK, SyncResult.success(1))

        response = await client.post("/api/easycars/1/sync/stock")

        assert response.status_code == 429
        assert "Retry-After" in response.headers
        assert "Please wait 60 seconds" in response.json()["detail"]
        assert enqueued == []


# ===========================================================================
# Status, history and logs
# ===========================================================================

class TestStatusEndpoints:

    async def test_status_and_history(self, client, db_session, dealership_credentials):
        await SyncLogSink(db_session).record(1, SyncType.STOCK, SyncResult.success(5, duration_ms=900))

        status = await client.get("/api/easycars/1/sync/status")
        assert status.status_code == 200
        assert status.json()["status"] == "Success"
        assert status.json()["items_processed"] == 5

        history = await client.get("/api/easycars/1/sync/history", params={"page_size": 5})
        assert history.status_code == 200
        assert history.json()["total"] == 1
        log_id = history.json()["logs"][0]["id"]

        details = await client.get(f"/api/easycars/1/sync/logs/{log_id}")
        assert details.status_code == 200
        assert details.json()["errors"] == []

    async def test_unknown_sync_type_is_400(self, client):
        response = await client.get("/api/easycars/1/sync/status", params={"sync_type": "Invoices"})
        assert response.status_code == 400

    async def test_log_of_other_dealership_is_404(self, client, db_session):
        log = await SyncLogSink(db_session).record(1, SyncType.STOCK, SyncResult.success(1))
        response = await client.get(f"/api/easycars/2/sync/logs/{log.id}")
        assert response.status_code == 404
        assert response.json()["detail"] == "Sync log not found"

    async def test_history_page_size_limit(self, client):
        response = await client.get("/api/easycars/1/sync/history", params={"page_size": 500})
        assert response.status_code == 422


# ===========================================================================
# Conflicts and lead import
# ===========================================================================

class TestConflictEndpoints:

    async def _conflict(self, db_session):
        lead = Lead(
            dealership_id=1, name="Jane", email="jane@example.com", phone="0400000000",
            message="Hi", status=LeadStatus.IN_PROGRESS.value, easycars_lead_number="EC-1",
        )
        db_session.add(lead)
        await db_session.commit()
        await ConflictResolver(db_session, ConflictStrategy.MANUAL_REVIEW).apply(lead, 60)
        await db_session.commit()

    async def test_list_and_resolve(self, client, db_session):
        await self._conflict(db_session)

        listed = await client.get("/api/easycars/1/conflicts")
        assert listed.status_code == 200
        conflict_id = listed.json()[0]["id"]

        body = {"resolution": "remote", "resolved_by": "ops@example.com"}
        resolved = await client.post(f"/api/easycars/1/conflicts/{conflict_id}/resolve", json=body)
        assert resolved.status_code == 200
        assert resolved.json()["is_resolved"] is True

        again = await client.post(f"/api/easycars/1/conflicts/{conflict_id}/resolve", json=body)
        assert again.status_code == 400

    async def test_resolve_unknown_conflict_is_404(self, client):
        body = {"resolution": "local", "resolved_by": "ops@example.com"}
        response = await client.post("/api/easycars/1/conflicts/999/resolve", json=body)
        assert response.status_code == 404

    async def test_invalid_resolution_is_422(self, client):
        body = {"resolution": "both", "resolved_by": "ops@example.com"}
        response = await client.post("/api/easycars/1/conflicts/1/resolve", json=body)
        assert response.status_code == 422


class TestLeadImportEndpoint:

    async def test_imports_lead(self, client, dealership_credentials, api_client):
        api_client.get_lead_detail = AsyncMock(
            return_value=LeadDetailResponse(lead_number="EC-77", customer_name="Walk In", lead_status=30)
        )
        response = await client.post("/api/easycars/1/leads/import", json={"lead_number": "EC-77"})
        assert response.status_code == 200
        assert response.json()["easycars_lead_number"] == "EC-77"
        assert response.json()["status"] == "InProgress"

    async def test_upstream_error_is_502(self, client, dealership_credentials, api_client):
        api_client.get_lead_detail = AsyncMock(side_effect=EasyCarsTemporaryError("Service unavailable", 5))
        response = await client.post("/api/easycars/1/leads/import", json={"lead_number": "EC-77"})
        assert response.status_code == 502

    async def test_without_credentials_is_400(self, client):
        response = await client.post("/api/easycars/1/leads/import", json={"lead_number": "EC-77"})
        assert response.status_code == 400
