"""StockMapper - EasyCars StockItem -> local Vehicle.

Matching: VIN first (within the dealership), then stock number. A match that
was not created by EasyCars (manual entry, other import) is left untouched.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from easycars_sync.models.stock_data import StockRawData
from easycars_sync.models.vehicle import DataSource, Vehicle, VehicleCondition, VehicleStatus
from easycars_sync.schemas.easycars import StockItem
from easycars_sync.services.image_sync import ImageSyncer

logger = logging.getLogger(__name__)

STOCK_API_VERSION = "1.0"
MIN_YEAR = 1900
MAX_YEAR = 2100
DEFAULT_DOORS = 4
UNKNOWN = "Unknown"
NO_DESCRIPTION = "No description available"

_NON_NUMERIC_RE = re.compile(r"[^\d.]")


@dataclass
class StockMapResult:
    vehicle: Vehicle
    images_downloaded: int = 0
    images_failed: int = 0
    created: bool = False
    skipped: bool = False


# ---------------------------------------------------------------------------
# Field normalization
# ---------------------------------------------------------------------------


def text_or_default(value: Optional[str], default: str) -> str:
    if value is None or not value.strip():
        return default
    return value.strip()


def valid_year(year: int, today: Optional[datetime] = None) -> int:
    if MIN_YEAR <= year <= MAX_YEAR:
        return year
    fallback = (today or datetime.now(timezone.utc)).year - 1
    logger.warning("Invalid year %s, using %s", year, fallback)
    return fallback


def parse_price(value: Optional[str]) -> Decimal:
    """Strip currency symbols and separators; anything unparseable is 0."""
    if value is None or not str(value).strip():
        return Decimal("0")
    cleaned = _NON_NUMERIC_RE.sub("", str(value))
    try:
        price = Decimal(cleaned)
    except InvalidOperation:
        logger.warning("Failed to parse price %r, using 0", value)
        return Decimal("0")
    return max(Decimal("0"), price)


def features_json(key_features: Optional[str]) -> Optional[str]:
    if not key_features or not key_features.strip():
        return None
    items = [part.strip() for part in key_features.split(",") if part.strip()]
    return json.dumps(items, ensure_ascii=False) if items else None


def vehicle_condition(stock_type: Optional[str]) -> str:
    # demo stock is sold as used
    if (stock_type or "").strip().lower() == "new":
        return VehicleCondition.NEW.value
    return VehicleCondition.USED.value


class StockMapper:
    def __init__(self, db: AsyncSession, image_syncer: Optional[ImageSyncer] = None) -> None:
        self.db = db
        self.image_syncer = image_syncer

    async def find_by_vin(self, vin: str, dealership_id: int) -> Optional[Vehicle]:
        result = await self.db.execute(
            select(Vehicle)
            .where(Vehicle.dealership_id == dealership_id, Vehicle.easycars_vin == vin)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_by_stock_number(self, stock_number: str, dealership_id: int) -> Optional[Vehicle]:
        result = await self.db.execute(
            select(Vehicle)
            .where(Vehicle.dealership_id == dealership_id, Vehicle.easycars_stock_number == stock_number)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def map_to_vehicle(self, item: StockItem, dealership_id: int) -> StockMapResult:
        """Create or update the EasyCars vehicle for ``item`` and sync its images."""
        if dealership_id <= 0:
            raise ValueError("Invalid dealership ID")

        vin = (item.vin or "").strip()
        stock_number = (item.stock_number or "").strip()

        vehicle: Optional[Vehicle] = None
        if vin:
            vehicle = await self.find_by_vin(vin, dealership_id)
            if vehicle is not None and not vehicle.is_easycars_sourced:
                logger.warning("Vehicle with VIN %s exists as %s entry, skipping EasyCars sync", vin, vehicle.data_source)
                return StockMapResult(vehicle, skipped=True)
        if vehicle is None and stock_number:
            vehicle = await self.find_by_stock_number(stock_number, dealership_id)
            if vehicle is not None and not vehicle.is_easycars_sourced:
                logger.warning(
                    "Vehicle with stock number %s exists as %s entry, skipping EasyCars sync",
                    stock_number, vehicle.data_source,
                )
                return StockMapResult(vehicle, skipped=True)

        created = vehicle is None
        if created:
            vehicle = Vehicle(dealership_id=dealership_id, data_source=DataSource.EASYCARS.value, images=[])
            self.db.add(vehicle)
        self._apply_fields(vehicle, item)
        await self.db.flush()
        logger.info("%s vehicle %s from EasyCars stock %s", "Created" if created else "Updated", vehicle.id, stock_number)

        await self._upsert_raw_data(vehicle.id, item.raw_json())

        result = StockMapResult(vehicle, created=created)
        if item.image_urls and self.image_syncer is not None:
            stored = await self.image_syncer.download_and_store(item.image_urls, vehicle.id)
            result.images_downloaded = len(stored)
            result.images_failed = len(item.image_urls) - len(stored)
            if stored:
                vehicle.images = list(stored)
                await self.db.flush()
        return result

    def _apply_fields(self, vehicle: Vehicle, item: StockItem) -> None:
        make = text_or_default(item.make, UNKNOWN)
        model = text_or_default(item.model, UNKNOWN)
        year = valid_year(item.year)

        vehicle.make = make
        vehicle.model = model
        vehicle.year = year
        vehicle.price = parse_price(item.price)
        vehicle.mileage = max(0, item.odometer or 0)
        vehicle.condition = vehicle_condition(item.stock_type)
        vehicle.status = VehicleStatus.ACTIVE.value
        vehicle.title = f"{year} {make} {model}"
        vehicle.description = text_or_default(item.description, NO_DESCRIPTION)

        vehicle.easycars_stock_number = (item.stock_number or "").strip() or None
        vehicle.easycars_yard_code = item.yard_code or None
        vehicle.easycars_vin = (item.vin or "").strip() or None
        vehicle.exterior_color = item.colour or None
        vehicle.body = item.body or None
        vehicle.fuel_type = item.fuel_type or None
        vehicle.transmission = item.transmission or None
        vehicle.engine_capacity = item.engine_capacity or item.engine_size or None
        vehicle.doors = item.doors if item.doors > 0 else DEFAULT_DOORS
        vehicle.features = features_json(item.key_features)
        vehicle.last_synced_from_easycars = datetime.now(timezone.utc)

    async def _upsert_raw_data(self, vehicle_id: int, raw_json: str) -> None:
        result = await self.db.execute(select(StockRawData).where(StockRawData.vehicle_id == vehicle_id))
        row = result.scalar_one_or_none()
        now = datetime.now(timezone.utc)
        if row is None:
            self.db.add(StockRawData(vehicle_id=vehicle_id, raw_json=raw_json, api_version=STOCK_API_VERSION, synced_at=now))
        else:
            row.raw_json = raw_json
            row.api_version = STOCK_API_VERSION
            row.synced_at = now


def stock_item_label(raw: dict) -> str:
    """Stock number of a raw payload for error messages, tolerant of key casing."""
    for key, value in raw.items():
        if str(key).lower() == "stocknumber" and value:
            return str(value)
    return "<unknown>"
