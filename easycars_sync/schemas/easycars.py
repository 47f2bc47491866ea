"""EasyCars wire DTOs.

EasyCars is inconsistent about key casing (``ResponseCode`` vs ``responseCode``),
so every inbound model matches keys case-insensitively. Outbound request
bodies serialize with PascalCase aliases.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator
from pydantic.alias_generators import to_pascal


class EasyCarsModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _match_keys_case_insensitively(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        lookup: Dict[str, str] = {}
        for name, field in cls.model_fields.items():
            alias = field.alias or name
            lookup[alias.lower()] = alias
            lookup[name.replace("_", "").lower()] = alias
        remapped: Dict[str, Any] = {}
        for key, value in data.items():
            target = lookup.get(str(key).replace("_", "").lower(), key)
            remapped[target] = value
        return remapped

    def to_request_body(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EasyCarsEnvelope(EasyCarsModel):
    """Common response envelope: every EasyCars response carries a ResponseCode."""

    response_code: int = 0
    response_message: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def message(self) -> Optional[str]:
        return self.error_message or self.response_message


# ---------------------------------------------------------------------------
# Token
# ---------------------------------------------------------------------------


class TokenRequest(EasyCarsModel):
    public_id: str = Field(alias="PublicID")
    secret_key: str


class TokenResponse(EasyCarsEnvelope):
    token: Optional[str] = None
    expires_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------


class StockItem(EasyCarsModel):
    """One vehicle as advertised in EasyCars. Extra keys are kept on the raw payload only."""

    stock_number: str = ""
    vin: str = Field(default="", alias="VIN")
    rego_num: str = ""
    yard_code: str = ""
    stock_type: str = ""
    make: str = ""
    model: str = ""
    badge: str = ""
    year: int = 0
    body: str = ""
    colour: str = ""
    doors: int = 0
    seats: int = 0
    transmission: str = ""
    fuel_type: str = ""
    engine_size: Optional[str] = None
    engine_capacity: Optional[str] = None
    cylinders: int = 0
    drive_type: str = ""
    odometer: Optional[int] = None
    price: Optional[str] = None
    description: str = ""
    key_features: str = ""
    status: str = ""
    image_urls: List[str] = Field(default_factory=list, alias="ImageURLs")

    _raw_payload: Optional[Dict[str, Any]] = PrivateAttr(default=None)

    @field_validator(
        "stock_number", "vin", "rego_num", "yard_code", "stock_type", "make", "model", "badge",
        "body", "colour", "transmission", "fuel_type", "drive_type", "description", "key_features",
        "status",
        mode="before",
    )
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("year", "doors", "seats", "cylinders", mode="before")
    @classmethod
    def _none_to_zero(cls, value: Any) -> Any:
        return 0 if value in (None, "") else value

    @field_validator("engine_size", "engine_capacity", "price", mode="before")
    @classmethod
    def _number_to_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("image_urls", mode="before")
    @classmethod
    def _split_image_urls(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "StockItem":
        item = cls.model_validate(payload)
        item._raw_payload = payload
        return item

    def raw_json(self) -> str:
        payload = self._raw_payload if self._raw_payload is not None else self.model_dump(mode="json", by_alias=True)
        return json.dumps(payload, ensure_ascii=False, default=str)


class StockResponse(EasyCarsEnvelope):
    stocks: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("stocks", mode="before")
    @classmethod
    def _null_stocks_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value


# ---------------------------------------------------------------------------
# Leads
# ---------------------------------------------------------------------------


class _LeadFields(EasyCarsModel):
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: Optional[str] = None
    customer_mobile: Optional[str] = None
    customer_no: Optional[str] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    vehicle_price: Optional[Decimal] = None
    vehicle_type: Optional[int] = None
    vehicle_interest: Optional[int] = None
    finance_status: Optional[int] = None
    rating: Optional[int] = None
    stock_number: Optional[str] = None
    comments: Optional[str] = None


class CreateLeadRequest(_LeadFields):
    account_number: str
    account_secret: str


class UpdateLeadRequest(_LeadFields):
    lead_number: str
    account_number: str
    account_secret: str
    lead_status: Optional[int] = None


class CreateLeadResponse(EasyCarsEnvelope):
    lead_number: Optional[str] = None
    customer_no: Optional[str] = None


class UpdateLeadResponse(EasyCarsEnvelope):
    lead_number: Optional[str] = None


class LeadDetailResponse(EasyCarsEnvelope):
    lead_number: Optional[str] = None
    customer_no: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_mobile: Optional[str] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    vehicle_price: Optional[Decimal] = None
    vehicle_type: Optional[int] = None
    vehicle_interest: Optional[int] = None
    finance_status: Optional[int] = None
    rating: Optional[int] = None
    stock_number: Optional[str] = None
    comments: Optional[str] = None
    lead_status: Optional[int] = None
    created_date: Optional[str] = None
    updated_date: Optional[str] = None
