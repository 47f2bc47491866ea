"""Sync log - append-only audit record of one EasyCars sync attempt"""

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Text, Index

from easycars_sync.database import Base


class SyncStatus(str, enum.Enum):
    SUCCESS = "Success"
    PARTIAL_SUCCESS = "PartialSuccess"
    FAILED = "Failed"


class SyncType(str, enum.Enum):
    STOCK = "Stock"
    LEAD = "Lead"
    LEAD_OUTBOUND = "LeadOutbound"
    LEAD_STATUS = "LeadStatus"
    LEAD_STATUS_OUTBOUND = "LeadStatusOutbound"


class SyncLog(Base):
    __tablename__ = "easycars_sync_logs"

    id = Column(Integer, primary_key=True, index=True)
    dealership_id = Column(Integer, nullable=False, index=True)
    sync_type = Column(String(30), nullable=False, default=SyncType.STOCK.value)
    synced_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    status = Column(String(20), nullable=False)

    items_processed = Column(Integer, nullable=False, default=0)
    items_succeeded = Column(Integer, nullable=False, default=0)
    items_failed = Column(Integer, nullable=False, default=0)
    images_downloaded = Column(Integer, nullable=False, default=0)
    images_failed = Column(Integer, nullable=False, default=0)

    error_messages = Column(Text, nullable=False, default="[]")  # JSON list
    duration_ms = Column(Integer, nullable=False, default=0)
    api_version = Column(String(10), nullable=False, default="1.0")

    __table_args__ = (
        Index("idx_easycars_sync_logs_dealership_type_synced", "dealership_id", "sync_type", "synced_at"),
    )

    def __repr__(self):
        return (
            f"<SyncLog(id={self.id}, dealership_id={self.dealership_id}, "
            f"type='{self.sync_type}', status='{self.status}')>"
        )
