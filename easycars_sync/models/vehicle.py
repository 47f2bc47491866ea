"""Vehicle inventory model.

Only the columns the EasyCars stock sync reads or writes are modelled here;
vehicle CRUD lives outside the sync engine.
"""

import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, Numeric, JSON, Index
from sqlalchemy.sql import func

from easycars_sync.database import Base


class DataSource(str, enum.Enum):
    MANUAL = "Manual"
    EASYCARS = "EasyCars"
    IMPORT = "Import"


class VehicleCondition(str, enum.Enum):
    NEW = "New"
    USED = "Used"


class VehicleStatus(str, enum.Enum):
    ACTIVE = "Active"
    PENDING = "Pending"
    SOLD = "Sold"
    DRAFT = "Draft"


class Vehicle(Base):
    """Dealership vehicle. ``data_source`` records who owns the row's content."""

    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    dealership_id = Column(Integer, nullable=False, index=True)

    make = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    year = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    mileage = Column(Integer, nullable=False, default=0)
    condition = Column(String(10), nullable=False, default=VehicleCondition.USED.value)
    status = Column(String(20), nullable=False, default=VehicleStatus.ACTIVE.value)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    images = Column(JSON, nullable=False, default=list)

    data_source = Column(String(20), nullable=False, default=DataSource.MANUAL.value)

    # EasyCars mirror fields
    easycars_stock_number = Column(String(50), nullable=True)
    easycars_yard_code = Column(String(50), nullable=True)
    easycars_vin = Column(String(32), nullable=True)
    exterior_color = Column(String(50), nullable=True)
    body = Column(String(50), nullable=True)
    fuel_type = Column(String(50), nullable=True)
    transmission = Column(String(50), nullable=True)
    engine_capacity = Column(String(50), nullable=True)
    doors = Column(Integer, nullable=True)
    features = Column(Text, nullable=True)  # JSON array string
    last_synced_from_easycars = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    __table_args__ = (
        Index("idx_vehicles_dealership_vin", "dealership_id", "easycars_vin"),
        Index("idx_vehicles_dealership_stock_number", "dealership_id", "easycars_stock_number"),
    )

    @property
    def is_easycars_sourced(self) -> bool:
        return self.data_source == DataSource.EASYCARS.value

    def __repr__(self):
        return f"<Vehicle(id={self.id}, title='{self.title}', source='{self.data_source}')>"
