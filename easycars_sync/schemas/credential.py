"""Credential schemas - EasyCars connection settings per dealership"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional

VALID_ENVIRONMENTS = ("Test", "Production")


def _normalize_environment(v: str) -> str:
    for env in VALID_ENVIRONMENTS:
        if v.strip().lower() == env.lower():
            return env
    raise ValueError("Environment must be 'Test' or 'Production'")


class CredentialCreate(BaseModel):
    """Schema for storing a dealership's EasyCars credentials"""

    account_number: str = Field(..., min_length=1, max_length=100)
    account_secret: str = Field(..., min_length=1, max_length=255)
    client_id: Optional[str] = Field(None, max_length=255)
    client_secret: Optional[str] = Field(None, max_length=255)
    environment: str = Field("Test", description="Test or Production")
    yard_code: Optional[str] = Field(None, max_length=50)
    auto_sync_enabled: bool = True

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v: str) -> str:
        return _normalize_environment(v)

    @field_validator('account_number', 'account_secret')
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Value is required')
        return v


class CredentialUpdate(BaseModel):
    """Partial update; omitted fields keep their stored value"""

    account_number: Optional[str] = Field(None, min_length=1, max_length=100)
    account_secret: Optional[str] = Field(None, min_length=1, max_length=255)
    client_id: Optional[str] = Field(None, max_length=255)
    client_secret: Optional[str] = Field(None, max_length=255)
    environment: Optional[str] = None
    yard_code: Optional[str] = Field(None, max_length=50)
    auto_sync_enabled: Optional[bool] = None

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_environment(v) if v is not None else None


class CredentialMetadata(BaseModel):
    """What the API is allowed to see: never the secrets"""

    id: int
    dealership_id: int
    environment: str
    yard_code: Optional[str] = None
    is_active: bool
    auto_sync_enabled: bool
    last_synced_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TestConnectionRequest(BaseModel):
    account_number: str = Field(..., min_length=1)
    account_secret: str = Field(..., min_length=1)
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    environment: str = "Test"

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v: str) -> str:
        return _normalize_environment(v)


class TestConnectionResponse(BaseModel):
    success: bool
    message: str
    environment: str
    expires_at: Optional[datetime] = None
