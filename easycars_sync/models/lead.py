"""Lead model - customer enquiries, optionally linked to an EasyCars lead"""

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Index
from sqlalchemy.sql import func

from easycars_sync.database import Base


class LeadStatus(str, enum.Enum):
    RECEIVED = "Received"
    IN_PROGRESS = "InProgress"
    DONE = "Done"  # legacy; pushed to EasyCars as Won
    WON = "Won"
    LOST = "Lost"
    DELETED = "Deleted"


class Lead(Base):
    """Customer enquiry for a dealership.

    Once ``easycars_lead_number`` is set the lead is linked to a remote
    EasyCars record; every sync flow keeps that link intact.
    """

    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, index=True)
    dealership_id = Column(Integer, nullable=False, index=True)
    vehicle_id = Column(Integer, nullable=True)

    # Enquiry
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=False)
    message = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=LeadStatus.RECEIVED.value, index=True)

    # EasyCars link
    easycars_lead_number = Column(String(50), nullable=True)
    easycars_customer_no = Column(String(50), nullable=True)
    easycars_raw_data = Column(Text, nullable=True)
    data_source = Column(String(20), nullable=False, default="Manual")
    last_synced_to_easycars = Column(DateTime(timezone=True), nullable=True)
    last_synced_from_easycars = Column(DateTime(timezone=True), nullable=True)
    vehicle_interest_type = Column(String(50), nullable=True)
    finance_interested = Column(Boolean, nullable=False, default=False)
    rating = Column(String(20), nullable=True)

    # Status sync bookkeeping
    last_known_easycars_status = Column(Integer, nullable=True)
    status_synced_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_leads_dealership_easycars_number", "dealership_id", "easycars_lead_number"),
    )

    @property
    def lead_status(self) -> LeadStatus:
        return LeadStatus(self.status)

    def can_change_status_to(self, new_status: LeadStatus) -> bool:
        """A deleted lead cannot be resurrected; every other move is allowed."""
        if self.status == LeadStatus.DELETED.value:
            return new_status == LeadStatus.DELETED
        return True

    def update_status(self, new_status: LeadStatus) -> None:
        self.status = LeadStatus(new_status).value

    def link_to_easycars(
        self,
        lead_number: Optional[str],
        customer_no: Optional[str],
        raw_data: Optional[str] = None,
    ) -> None:
        self.easycars_lead_number = lead_number
        self.easycars_customer_no = customer_no
        if raw_data is not None:
            self.easycars_raw_data = raw_data
        self.data_source = "EasyCars"

    def mark_synced_to_easycars(self, when: Optional[datetime] = None) -> None:
        self.last_synced_to_easycars = when or datetime.now(timezone.utc)

    def mark_synced_from_easycars(self, when: Optional[datetime] = None) -> None:
        self.last_synced_from_easycars = when or datetime.now(timezone.utc)

    def mark_status_synced(self, easycars_status: int, when: Optional[datetime] = None) -> None:
        """Record the remote status code last observed or pushed."""
        self.last_known_easycars_status = easycars_status
        self.status_synced_at = when or datetime.now(timezone.utc)

    def __repr__(self):
        return f"<Lead(id={self.id}, dealership_id={self.dealership_id}, status='{self.status}')>"
