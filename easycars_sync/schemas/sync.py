"""Sync operation schemas - triggers, status, history and conflicts"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional


class TriggerSyncResponse(BaseModel):
    message: str
    job_id: str


class SyncStatusResponse(BaseModel):
    """Last sync summary for one dealership and sync type"""

    sync_type: str
    last_synced_at: Optional[datetime] = None
    status: Optional[str] = None
    items_processed: int = 0
    items_succeeded: int = 0
    items_failed: int = 0
    duration_ms: int = 0
    has_credentials: bool


class SyncLogSummary(BaseModel):
    id: int
    sync_type: str
    synced_at: datetime
    status: str
    items_processed: int
    items_succeeded: int
    items_failed: int
    duration_ms: int

    class Config:
        from_attributes = True


class SyncHistoryResponse(BaseModel):
    logs: List[SyncLogSummary]
    total: int
    page: int
    page_size: int
    total_pages: int


class SyncLogDetails(SyncLogSummary):
    dealership_id: int
    images_downloaded: int = 0
    images_failed: int = 0
    api_version: str
    errors: List[str] = Field(default_factory=list)


class ConflictResponse(BaseModel):
    id: int
    lead_id: int
    easycars_lead_number: str
    local_status: str
    remote_status: int
    remote_status_label: str
    detected_at: datetime
    is_resolved: bool
    resolution: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None


class ResolveConflictRequest(BaseModel):
    resolution: str = Field(..., pattern=r'^(local|remote)$')
    resolved_by: str = Field(..., min_length=1, max_length=255)


class ImportLeadRequest(BaseModel):
    lead_number: str = Field(..., min_length=1, max_length=100)


class ImportedLeadResponse(BaseModel):
    id: int
    dealership_id: int
    name: str
    email: str
    status: str
    easycars_lead_number: Optional[str] = None
    easycars_customer_no: Optional[str] = None
    last_synced_from_easycars: Optional[datetime] = None

    class Config:
        from_attributes = True
