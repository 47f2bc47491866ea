"""Lead status conflict - local vs EasyCars status divergence awaiting review."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Index
from sqlalchemy.sql import func

from easycars_sync.database import Base

RESOLUTION_LOCAL = "local"
RESOLUTION_REMOTE = "remote"
VALID_RESOLUTIONS = (RESOLUTION_LOCAL, RESOLUTION_REMOTE)


class LeadStatusConflict(Base):
    """At most one unresolved conflict exists per lead (enforced by the resolver)."""

    __tablename__ = "lead_status_conflicts"

    id = Column(Integer, primary_key=True, index=True)
    dealership_id = Column(Integer, nullable=False, index=True)
    lead_id = Column(Integer, nullable=False, index=True)
    easycars_lead_number = Column(String(50), nullable=False)
    local_status = Column(String(20), nullable=False)  # snapshot at detection time
    remote_status = Column(Integer, nullable=False)  # EasyCars status code
    detected_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    is_resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(String(255), nullable=True)
    resolution = Column(String(10), nullable=True)  # local | remote

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_lead_status_conflicts_lead_open", "lead_id", "is_resolved"),
    )

    def resolve(self, resolution: str, resolved_by: str, when: Optional[datetime] = None) -> None:
        if self.is_resolved:
            raise ValueError("Conflict is already resolved")
        if resolution not in VALID_RESOLUTIONS:
            raise ValueError("Resolution must be 'local' or 'remote'")
        self.is_resolved = True
        self.resolution = resolution
        self.resolved_by = resolved_by
        self.resolved_at = when or datetime.now(timezone.utc)

    def __repr__(self):
        return (
            f"<LeadStatusConflict(id={self.id}, lead_id={self.lead_id}, "
            f"local='{self.local_status}', remote={self.remote_status}, resolved={self.is_resolved})>"
        )
