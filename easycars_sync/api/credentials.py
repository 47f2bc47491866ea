"""EasyCars credential endpoints - secrets go in, only metadata comes out"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from easycars_sync.api.deps import get_api_client
from easycars_sync.database import get_db
from easycars_sync.exceptions import CredentialsNotConfiguredError, DuplicateCredentialError
from easycars_sync.schemas.credential import (
    CredentialCreate,
    CredentialMetadata,
    CredentialUpdate,
    TestConnectionRequest,
    TestConnectionResponse,
)
from easycars_sync.services import sync_admin
from easycars_sync.services.credential_store import CredentialStore
from easycars_sync.services.easycars_client import EasyCarsApiClient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/easycars", tags=["easycars-credentials"])

NOT_FOUND_DETAIL = "EasyCars credentials not found"


@router.post("/credentials/test", response_model=TestConnectionResponse)
async def test_credentials(
    body: TestConnectionRequest,
    api_client: EasyCarsApiClient = Depends(get_api_client),
):
    """Check unsaved credentials against EasyCars without storing anything."""
    return await sync_admin.check_connection(api_client, body)


@router.post(
    "/{dealership_id}/credentials",
    response_model=CredentialMetadata,
    status_code=status.HTTP_201_CREATED,
)
async def create_credentials(
    dealership_id: int,
    body: CredentialCreate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await CredentialStore(db).create(dealership_id, body)
    except DuplicateCredentialError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.get("/{dealership_id}/credentials", response_model=CredentialMetadata)
async def get_credentials(dealership_id: int, db: AsyncSession = Depends(get_db)):
    metadata = await CredentialStore(db).get_metadata(dealership_id)
    if metadata is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)
    return metadata


@router.put("/{dealership_id}/credentials", response_model=CredentialMetadata)
async def update_credentials(
    dealership_id: int,
    body: CredentialUpdate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await CredentialStore(db).update(dealership_id, body)
    except CredentialsNotConfiguredError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)


@router.delete("/{dealership_id}/credentials", status_code=status.HTTP_204_NO_CONTENT)
async def delete_credentials(dealership_id: int, db: AsyncSession = Depends(get_db)):
    if not await CredentialStore(db).delete(dealership_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)
