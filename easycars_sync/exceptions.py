"""Domain errors raised by the sync engine and translated to HTTP codes by the API layer."""

from typing import Optional


class CredentialsNotConfiguredError(LookupError):
    def __init__(self, dealership_id: int) -> None:
        super().__init__(f"EasyCars credentials not configured for dealership {dealership_id}")
        self.dealership_id = dealership_id


class DuplicateCredentialError(ValueError):
    def __init__(self, dealership_id: int) -> None:
        super().__init__(f"EasyCars credentials already exist for dealership {dealership_id}")
        self.dealership_id = dealership_id


class SyncRateLimitedError(RuntimeError):
    def __init__(self, dealership_id: int, sync_type: str, retry_after: int) -> None:
        super().__init__(
            f"{sync_type} sync for dealership {dealership_id} triggered recently; retry in {retry_after}s"
        )
        self.dealership_id = dealership_id
        self.sync_type = sync_type
        self.retry_after = retry_after


class LeadNotFoundError(LookupError):
    def __init__(self, lead_id: int) -> None:
        super().__init__(f"Lead {lead_id} not found")
        self.lead_id = lead_id


class ConflictNotFoundError(LookupError):
    def __init__(self, conflict_id: int) -> None:
        super().__init__(f"Conflict {conflict_id} not found")
        self.conflict_id = conflict_id


class ConflictAlreadyResolvedError(ValueError):
    def __init__(self, conflict_id: int, resolution: Optional[str] = None) -> None:
        super().__init__(f"Conflict {conflict_id} is already resolved")
        self.conflict_id = conflict_id
        self.resolution = resolution
