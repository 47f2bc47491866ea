"""Database models"""

from easycars_sync.models.credential import EasyCarsCredential
from easycars_sync.models.vehicle import Vehicle, DataSource, VehicleCondition, VehicleStatus
from easycars_sync.models.lead import Lead, LeadStatus
from easycars_sync.models.lead_status_conflict import LeadStatusConflict
from easycars_sync.models.sync_log import SyncLog, SyncStatus, SyncType
from easycars_sync.models.stock_data import StockRawData

__all__ = [
    "EasyCarsCredential",
    "Vehicle",
    "DataSource",
    "VehicleCondition",
    "VehicleStatus",
    "Lead",
    "LeadStatus",
    "LeadStatusConflict",
    "SyncLog",
    "SyncStatus",
    "SyncType",
    "StockRawData",
]
