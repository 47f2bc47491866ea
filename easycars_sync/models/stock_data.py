"""Raw EasyCars stock payload, one row per vehicle (latest wins)."""

from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func

from easycars_sync.database import Base


class StockRawData(Base):
    __tablename__ = "easycars_stock_data"

    id = Column(Integer, primary_key=True, index=True)
    vehicle_id = Column(Integer, nullable=False, unique=True, index=True)
    raw_json = Column(Text, nullable=False)
    api_version = Column(String(10), nullable=False, default="1.0")
    synced_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    def __repr__(self):
        return f"<StockRawData(vehicle_id={self.vehicle_id}, api_version='{self.api_version}')>"
