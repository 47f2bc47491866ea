"""CredentialStore - encrypted per-dealership EasyCars credentials.

Secrets are Fernet-encrypted before they reach the database. Reads for the
API layer return metadata only; ``get_decrypted`` is reserved for the sync
engine itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from easycars_sync.exceptions import CredentialsNotConfiguredError, DuplicateCredentialError
from easycars_sync.models.credential import EasyCarsCredential
from easycars_sync.schemas.credential import CredentialCreate, CredentialMetadata, CredentialUpdate
from easycars_sync.services.encryption import decrypt_credentials, encrypt_credentials

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecryptedCredential:
    """Plaintext credential set. Never serialized, never logged."""

    dealership_id: int
    account_number: str
    account_secret: str
    environment: str
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    yard_code: Optional[str] = None

    def token_identity(self) -> Tuple[str, str]:
        """(PublicID, SecretKey) for the token endpoint: client pair when set, else the account pair."""
        if self.client_id and self.client_secret:
            return self.client_id, self.client_secret
        return self.account_number, self.account_secret

    def __repr__(self) -> str:
        return f"DecryptedCredential(dealership_id={self.dealership_id}, environment={self.environment!r})"


def _encrypt_optional(value: Optional[str]) -> Optional[str]:
    return encrypt_credentials(value) if value else None


def _decrypt_optional(value: Optional[str]) -> Optional[str]:
    return decrypt_credentials(value) if value else None


class CredentialStore:
    """Dealership-scoped CRUD over EasyCarsCredential rows."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _get_row(self, dealership_id: int, active_only: bool = True) -> Optional[EasyCarsCredential]:
        stmt = select(EasyCarsCredential).where(EasyCarsCredential.dealership_id == dealership_id)
        if active_only:
            stmt = stmt.where(EasyCarsCredential.is_active.is_(True))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, dealership_id: int, payload: CredentialCreate) -> CredentialMetadata:
        existing = await self._get_row(dealership_id, active_only=False)
        if existing is not None and existing.is_active:
            raise DuplicateCredentialError(dealership_id)

        if existing is not None:
            # Re-activate the soft-deleted row; dealership_id is unique.
            row = existing
            row.is_active = True
        else:
            row = EasyCarsCredential(dealership_id=dealership_id)
            self.db.add(row)

        row.account_number_encrypted = encrypt_credentials(payload.account_number)
        row.account_secret_encrypted = encrypt_credentials(payload.account_secret)
        row.client_id_encrypted = _encrypt_optional(payload.client_id)
        row.client_secret_encrypted = _encrypt_optional(payload.client_secret)
        row.environment = payload.environment
        row.yard_code = payload.yard_code
        row.auto_sync_enabled = payload.auto_sync_enabled

        await self.db.commit()
        await self.db.refresh(row)
        logger.info("EasyCars credentials created for dealership %s (%s)", dealership_id, row.environment)
        return CredentialMetadata.model_validate(row)

    async def get_metadata(self, dealership_id: int) -> Optional[CredentialMetadata]:
        row = await self._get_row(dealership_id)
        return CredentialMetadata.model_validate(row) if row else None

    async def update(self, dealership_id: int, payload: CredentialUpdate) -> CredentialMetadata:
        row = await self._get_row(dealership_id)
        if row is None:
            raise CredentialsNotConfiguredError(dealership_id)

        changes = payload.model_dump(exclude_unset=True)
        if changes.get("account_number"):
            row.account_number_encrypted = encrypt_credentials(changes["account_number"])
        if changes.get("account_secret"):
            row.account_secret_encrypted = encrypt_credentials(changes["account_secret"])
        if "client_id" in changes:
            row.client_id_encrypted = _encrypt_optional(changes["client_id"])
        if "client_secret" in changes:
            row.client_secret_encrypted = _encrypt_optional(changes["client_secret"])
        if changes.get("environment"):
            row.environment = changes["environment"]
        if "yard_code" in changes:
            row.yard_code = changes["yard_code"]
        if changes.get("auto_sync_enabled") is not None:
            row.auto_sync_enabled = changes["auto_sync_enabled"]

        await self.db.commit()
        await self.db.refresh(row)
        logger.info("EasyCars credentials updated for dealership %s (fields: %s)", dealership_id, sorted(changes))
        return CredentialMetadata.model_validate(row)

    async def delete(self, dealership_id: int) -> bool:
        """Soft delete; returns False when there was nothing active to delete."""
        row = await self._get_row(dealership_id)
        if row is None:
            return False
        row.is_active = False
        await self.db.commit()
        logger.info("EasyCars credentials deactivated for dealership %s", dealership_id)
        return True

    async def exists(self, dealership_id: int) -> bool:
        return await self._get_row(dealership_id) is not None

    async def get_decrypted(self, dealership_id: int) -> Optional[DecryptedCredential]:
        row = await self._get_row(dealership_id)
        if row is None:
            return None
        return DecryptedCredential(
            dealership_id=row.dealership_id,
            account_number=decrypt_credentials(row.account_number_encrypted),
            account_secret=decrypt_credentials(row.account_secret_encrypted),
            client_id=_decrypt_optional(row.client_id_encrypted),
            client_secret=_decrypt_optional(row.client_secret_encrypted),
            environment=row.environment,
            yard_code=row.yard_code,
        )

    async def list_auto_sync_dealerships(self) -> List[int]:
        result = await self.db.execute(
            select(EasyCarsCredential.dealership_id)
            .where(
                EasyCarsCredential.is_active.is_(True),
                EasyCarsCredential.auto_sync_enabled.is_(True),
            )
            .order_by(EasyCarsCredential.dealership_id)
        )
        return list(result.scalars().all())

    async def mark_synced(self, dealership_id: int, when: Optional[datetime] = None) -> None:
        row = await self._get_row(dealership_id)
        if row is None:
            return
        row.last_synced_at = when or datetime.now(timezone.utc)
        await self.db.commit()
