"""LeadMapper - local Lead <-> EasyCars lead requests/responses.

Status codes are a fixed table. Outbound, the legacy ``Done`` status shares
code 50 with ``Won``; inbound, 50 always becomes ``Won``. That collapse is
intentional and must stay lossy. Unknown inbound codes fall back to
``Received`` with a warning.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from easycars_sync.models.lead import Lead, LeadStatus
from easycars_sync.models.vehicle import Vehicle
from easycars_sync.schemas.easycars import CreateLeadRequest, LeadDetailResponse, UpdateLeadRequest

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Code tables
# ---------------------------------------------------------------------------
STATUS_TO_EASYCARS: Dict[LeadStatus, int] = {
    LeadStatus.RECEIVED: 10,
    LeadStatus.IN_PROGRESS: 30,
    LeadStatus.WON: 50,
    LeadStatus.DONE: 50,  # legacy, collapses into Won
    LeadStatus.LOST: 60,
    LeadStatus.DELETED: 90,
}

EASYCARS_TO_STATUS: Dict[int, LeadStatus] = {
    10: LeadStatus.RECEIVED,
    30: LeadStatus.IN_PROGRESS,
    50: LeadStatus.WON,
    60: LeadStatus.LOST,
    90: LeadStatus.DELETED,
}

EASYCARS_STATUS_LABELS: Dict[int, str] = {
    10: "New",
    30: "In Progress",
    50: "Won",
    60: "Lost",
    90: "Deleted",
}

VEHICLE_INTEREST_CODES: Dict[str, int] = {
    "Purchase": 1,
    "Finance": 2,
    "TradeIn": 3,
    "ServiceRepair": 4,
    "Other": 5,
}
RATING_CODES: Dict[str, int] = {"Hot": 1, "Warm": 2, "Cold": 3}

_INTEREST_BY_CODE = {code: name for name, code in VEHICLE_INTEREST_CODES.items()}
_RATING_BY_CODE = {code: name for name, code in RATING_CODES.items()}

FINANCE_INTERESTED = 1

# Column limits on Lead
NAME_MAX = 255
EMAIL_MAX = 255
PHONE_MAX = 20
MESSAGE_MAX = 5000


def status_to_easycars(status: LeadStatus) -> int:
    return STATUS_TO_EASYCARS[LeadStatus(status)]


def status_from_easycars(code: Optional[int]) -> LeadStatus:
    status = EASYCARS_TO_STATUS.get(code) if code is not None else None
    if status is None:
        logger.warning("Unmapped EasyCars lead status %r, treating as Received", code)
        return LeadStatus.RECEIVED
    return status


def easycars_status_label(code: int) -> str:
    return EASYCARS_STATUS_LABELS.get(code, f"Unknown ({code})")


def vehicle_interest_to_code(interest: Optional[str]) -> Optional[int]:
    return VEHICLE_INTEREST_CODES.get(interest) if interest else None


def vehicle_interest_from_code(code: Optional[int]) -> Optional[str]:
    return _INTEREST_BY_CODE.get(code) if code is not None else None


def rating_to_code(rating: Optional[str]) -> Optional[int]:
    return RATING_CODES.get(rating) if rating else None


def rating_from_code(code: Optional[int]) -> Optional[str]:
    return _RATING_BY_CODE.get(code) if code is not None else None


def _truncate(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[:limit]


def _raw_json(response: LeadDetailResponse) -> str:
    return json.dumps(response.model_dump(mode="json", by_alias=True), ensure_ascii=False)


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


def _lead_fields(lead: Lead, vehicle: Optional[Vehicle]) -> dict:
    fields = {
        "customer_name": lead.name,
        "customer_email": lead.email,
        "customer_phone": lead.phone,
        "customer_no": lead.easycars_customer_no,
        "comments": lead.message,
        "vehicle_interest": vehicle_interest_to_code(lead.vehicle_interest_type),
        "finance_status": FINANCE_INTERESTED if lead.finance_interested else None,
        "rating": rating_to_code(lead.rating),
    }
    if vehicle is not None:
        fields.update(
            vehicle_make=vehicle.make,
            vehicle_model=vehicle.model,
            vehicle_year=vehicle.year,
            vehicle_price=vehicle.price,
            stock_number=vehicle.easycars_stock_number,
        )
    return fields


def map_to_create_request(
    lead: Lead, account_number: str, account_secret: str, vehicle: Optional[Vehicle] = None
) -> CreateLeadRequest:
    return CreateLeadRequest(
        account_number=account_number,
        account_secret=account_secret,
        **_lead_fields(lead, vehicle),
    )


def map_to_update_request(
    lead: Lead,
    lead_number: str,
    account_number: str,
    account_secret: str,
    vehicle: Optional[Vehicle] = None,
) -> UpdateLeadRequest:
    return UpdateLeadRequest(
        lead_number=lead_number,
        account_number=account_number,
        account_secret=account_secret,
        **_lead_fields(lead, vehicle),
    )


def map_to_status_only_request(lead: Lead, account_number: str, account_secret: str) -> UpdateLeadRequest:
    """Lightweight update carrying only identity and status."""
    if not lead.easycars_lead_number:
        raise ValueError(f"Lead {lead.id} is not linked to an EasyCars lead")
    return UpdateLeadRequest(
        lead_number=lead.easycars_lead_number,
        account_number=account_number,
        account_secret=account_secret,
        customer_name=lead.name,
        customer_email=lead.email,
        lead_status=status_to_easycars(lead.lead_status),
    )


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


def update_lead_from_response(lead: Lead, response: LeadDetailResponse, when: Optional[datetime] = None) -> None:
    """Refresh the local mirror of a linked lead from its EasyCars detail.

    Status is applied only when the lead's own transition rules allow it;
    divergence is left to status reconciliation.
    """
    if response.customer_name:
        lead.name = _truncate(response.customer_name, NAME_MAX)
    if response.customer_email:
        lead.email = _truncate(response.customer_email, EMAIL_MAX)
    phone = response.customer_phone or response.customer_mobile
    if phone:
        lead.phone = _truncate(phone, PHONE_MAX)

    lead.link_to_easycars(
        response.lead_number or lead.easycars_lead_number,
        response.customer_no or lead.easycars_customer_no,
        _raw_json(response),
    )
    lead.vehicle_interest_type = vehicle_interest_from_code(response.vehicle_interest)
    lead.finance_interested = response.finance_status == FINANCE_INTERESTED
    lead.rating = rating_from_code(response.rating)

    if response.lead_status is not None:
        remote_status = status_from_easycars(response.lead_status)
        if lead.can_change_status_to(remote_status):
            lead.update_status(remote_status)
            lead.mark_status_synced(response.lead_status, when)

    lead.mark_synced_from_easycars(when or datetime.now(timezone.utc))


def map_from_easycars_lead(response: LeadDetailResponse, dealership_id: int) -> Lead:
    """New local lead for a remote-originated EasyCars lead."""
    if dealership_id <= 0:
        raise ValueError("Invalid dealership ID")
    name = _truncate(response.customer_name or "Unknown", NAME_MAX)
    email = _truncate(response.customer_email or "", EMAIL_MAX)
    phone = _truncate(response.customer_phone or response.customer_mobile or "", PHONE_MAX)
    message = _truncate(response.comments or "", MESSAGE_MAX)

    lead = Lead(
        dealership_id=dealership_id,
        name=name if name.strip() else "Unknown",
        email=email if email.strip() else "unknown@easycars.com",
        phone=phone if phone.strip() else "0000000000",
        message=message if message.strip() else "Imported from EasyCars",
        finance_interested=response.finance_status == FINANCE_INTERESTED,
        vehicle_interest_type=vehicle_interest_from_code(response.vehicle_interest),
        rating=rating_from_code(response.rating),
    )
    lead.link_to_easycars(response.lead_number, response.customer_no, _raw_json(response))
    if response.lead_status is not None:
        lead.update_status(status_from_easycars(response.lead_status))
        lead.mark_status_synced(response.lead_status)
    else:
        lead.update_status(LeadStatus.RECEIVED)
    lead.mark_synced_from_easycars()
    logger.debug("Mapped EasyCars lead %s for dealership %s", response.lead_number, dealership_id)
    return lead


def is_existing_lead(lead: Lead, response: LeadDetailResponse) -> bool:
    return bool(lead.easycars_lead_number) and lead.easycars_lead_number == response.lead_number
