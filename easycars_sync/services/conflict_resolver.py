"""ConflictResolver - reconcile local vs EasyCars lead status.

Strategy is a closed enum read from LEAD_STATUS_CONFLICT_STRATEGY. ``apply``
handles every member explicitly; a new member without a branch fails loudly.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from easycars_sync.exceptions import ConflictAlreadyResolvedError, ConflictNotFoundError, LeadNotFoundError
from easycars_sync.models.lead import Lead, LeadStatus
from easycars_sync.models.lead_status_conflict import RESOLUTION_REMOTE, LeadStatusConflict
from easycars_sync.services.lead_mapper import status_from_easycars

logger = logging.getLogger(__name__)

SYSTEM_RESOLVER = "system"


class ConflictStrategy(str, enum.Enum):
    LOCAL_WINS = "LocalWins"
    REMOTE_WINS = "RemoteWins"
    MANUAL_REVIEW = "ManualReview"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ConflictStrategy":
        """Case-insensitive; unknown values fall back to RemoteWins."""
        normalized = (value or "").replace("_", "").replace(" ", "").lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        logger.warning("Unknown conflict strategy %r, falling back to RemoteWins", value)
        return cls.REMOTE_WINS


class ConflictOutcome(str, enum.Enum):
    KEPT_LOCAL = "kept_local"
    APPLIED_REMOTE = "applied_remote"
    CONFLICT_RECORDED = "conflict_recorded"
    CONFLICT_ALREADY_OPEN = "conflict_already_open"


class ConflictResolver:
    def __init__(self, db: AsyncSession, strategy: ConflictStrategy) -> None:
        self.db = db
        self.strategy = strategy

    async def open_conflict_for(self, lead_id: int) -> Optional[LeadStatusConflict]:
        result = await self.db.execute(
            select(LeadStatusConflict)
            .where(LeadStatusConflict.lead_id == lead_id, LeadStatusConflict.is_resolved.is_(False))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def apply(self, lead: Lead, remote_code: int) -> ConflictOutcome:
        """Resolve a divergence between ``lead.status`` and the remote status code."""
        remote_status = status_from_easycars(remote_code)

        if self.strategy is ConflictStrategy.LOCAL_WINS:
            logger.debug("Lead %s: LocalWins, keeping %s (remote %s)", lead.id, lead.status, remote_code)
            return ConflictOutcome.KEPT_LOCAL

        if self.strategy is ConflictStrategy.REMOTE_WINS:
            if not lead.can_change_status_to(remote_status):
                logger.warning(
                    "Lead %s: cannot move %s -> %s, recording conflict for manual review",
                    lead.id, lead.status, remote_status.value,
                )
                return await self._record_conflict(lead, remote_code)
            lead.update_status(remote_status)
            lead.mark_status_synced(remote_code)
            await self.close_open_conflicts(lead)
            logger.info("Lead %s status updated to %s (RemoteWins)", lead.id, remote_status.value)
            return ConflictOutcome.APPLIED_REMOTE

        if self.strategy is ConflictStrategy.MANUAL_REVIEW:
            return await self._record_conflict(lead, remote_code)

        raise AssertionError(f"Unhandled conflict strategy: {self.strategy!r}")

    async def close_open_conflicts(self, lead: Lead) -> int:
        """Resolve any open conflict once local and remote agree again."""
        result = await self.db.execute(
            select(LeadStatusConflict).where(
                LeadStatusConflict.lead_id == lead.id, LeadStatusConflict.is_resolved.is_(False)
            )
        )
        stale = list(result.scalars().all())
        for conflict in stale:
            conflict.resolve(RESOLUTION_REMOTE, SYSTEM_RESOLVER)
            logger.info("Conflict %s for lead %s closed: statuses now agree", conflict.id, lead.id)
        return len(stale)

    async def _record_conflict(self, lead: Lead, remote_code: int) -> ConflictOutcome:
        if await self.open_conflict_for(lead.id) is not None:
            logger.debug("Lead %s already has an open status conflict", lead.id)
            return ConflictOutcome.CONFLICT_ALREADY_OPEN
        conflict = LeadStatusConflict(
            dealership_id=lead.dealership_id,
            lead_id=lead.id,
            easycars_lead_number=lead.easycars_lead_number or "",
            local_status=str(lead.status),
            remote_status=remote_code,
            detected_at=datetime.now(timezone.utc),
            is_resolved=False,
        )
        self.db.add(conflict)
        await self.db.flush()
        logger.info(
            "Created LeadStatusConflict for lead %s: local=%s remote=%s",
            lead.id, lead.status, remote_code,
        )
        return ConflictOutcome.CONFLICT_RECORDED

    # ------------------------------------------------------------------
    # Operator resolution
    # ------------------------------------------------------------------

    async def list_unresolved(self, dealership_id: int) -> List[LeadStatusConflict]:
        result = await self.db.execute(
            select(LeadStatusConflict)
            .where(
                LeadStatusConflict.dealership_id == dealership_id,
                LeadStatusConflict.is_resolved.is_(False),
            )
            .order_by(LeadStatusConflict.detected_at.desc(), LeadStatusConflict.id.desc())
        )
        return list(result.scalars().all())

    async def resolve(
        self,
        dealership_id: int,
        conflict_id: int,
        resolution: str,
        resolved_by: str,
    ) -> LeadStatusConflict:
        """Mark a conflict resolved; ``remote`` applies the stored status when still legal."""
        conflict = await self.db.get(LeadStatusConflict, conflict_id)
        if conflict is None or conflict.dealership_id != dealership_id:
            raise ConflictNotFoundError(conflict_id)
        if conflict.is_resolved:
            raise ConflictAlreadyResolvedError(conflict_id, conflict.resolution)

        conflict.resolve(resolution, resolved_by)

        if resolution == RESOLUTION_REMOTE:
            lead = await self.db.get(Lead, conflict.lead_id)
            if lead is None:
                raise LeadNotFoundError(conflict.lead_id)
            remote_status: LeadStatus = status_from_easycars(conflict.remote_status)
            if lead.can_change_status_to(remote_status):
                lead.update_status(remote_status)
                lead.mark_status_synced(conflict.remote_status)
                logger.info("Conflict %s: lead %s set to %s", conflict_id, lead.id, remote_status.value)
            else:
                logger.warning(
                    "Conflict %s resolved as remote but lead %s cannot move %s -> %s; status unchanged",
                    conflict_id, lead.id, lead.status, remote_status.value,
                )

        await self.db.commit()
        logger.info("Conflict %s resolved as %s by %s", conflict_id, resolution, resolved_by)
        return conflict
