"""Sync outcomes and the per-item fold shared by every batch sync.

A batch never aborts on one bad item: ``fold_batch`` runs each item through
a handler, catches the item's exception and accumulates an immutable
``BatchTally``. The tally then classifies itself into a ``SyncResult``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple, TypeVar

from easycars_sync.models.sync_log import SyncStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ItemOutcome:
    """What one successful item contributed (image counts for stock items)."""

    images_downloaded: int = 0
    images_failed: int = 0


@dataclass(frozen=True)
class SyncResult:
    status: SyncStatus
    items_processed: int = 0
    items_succeeded: int = 0
    items_failed: int = 0
    errors: List[str] = field(default_factory=list)
    duration_ms: int = 0
    images_downloaded: int = 0
    images_failed: int = 0
    synced_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_success(self) -> bool:
        return self.status == SyncStatus.SUCCESS

    @property
    def is_partial_success(self) -> bool:
        return self.status == SyncStatus.PARTIAL_SUCCESS

    @property
    def is_failed(self) -> bool:
        return self.status == SyncStatus.FAILED

    @classmethod
    def success(cls, items: int, duration_ms: int = 0, images_downloaded: int = 0, images_failed: int = 0) -> "SyncResult":
        return cls(
            status=SyncStatus.SUCCESS,
            items_processed=items,
            items_succeeded=items,
            duration_ms=duration_ms,
            images_downloaded=images_downloaded,
            images_failed=images_failed,
        )

    @classmethod
    def failure(cls, message: str, duration_ms: int = 0) -> "SyncResult":
        """Whole-sync failure before any item was processed."""
        return cls(status=SyncStatus.FAILED, errors=[message], duration_ms=duration_ms)


@dataclass(frozen=True)
class BatchTally:
    succeeded: int = 0
    failed: int = 0
    errors: Tuple[str, ...] = ()
    images_downloaded: int = 0
    images_failed: int = 0

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    def add_success(self, outcome: Optional[ItemOutcome] = None) -> "BatchTally":
        outcome = outcome or ItemOutcome()
        return replace(
            self,
            succeeded=self.succeeded + 1,
            images_downloaded=self.images_downloaded + outcome.images_downloaded,
            images_failed=self.images_failed + outcome.images_failed,
        )

    def add_failure(self, error: str) -> "BatchTally":
        return replace(self, failed=self.failed + 1, errors=self.errors + (error,))

    def to_result(self, duration_ms: int) -> SyncResult:
        """All succeeded -> Success, all failed -> Failed, otherwise PartialSuccess."""
        if self.failed == 0:
            status = SyncStatus.SUCCESS
        elif self.succeeded == 0:
            status = SyncStatus.FAILED
        else:
            status = SyncStatus.PARTIAL_SUCCESS
        return SyncResult(
            status=status,
            items_processed=self.processed,
            items_succeeded=self.succeeded,
            items_failed=self.failed,
            errors=list(self.errors),
            duration_ms=duration_ms,
            images_downloaded=self.images_downloaded,
            images_failed=self.images_failed,
        )


class BatchCancelled(asyncio.CancelledError):
    """Cancellation raised mid-batch; ``partial`` holds the items already committed."""

    def __init__(self, partial: BatchTally, total: int) -> None:
        super().__init__(f"batch cancelled after {partial.processed} of {total} items")
        self.partial = partial
        self.total = total


async def fold_batch(
    items: Iterable[T],
    handle: Callable[[T], Awaitable[Optional[ItemOutcome]]],
    describe_error: Callable[[T, Exception], str],
) -> BatchTally:
    """Run ``handle`` over items sequentially, isolating each item's failure."""
    pending = list(items)
    tally = BatchTally()
    for item in pending:
        try:
            outcome = await handle(item)
        except asyncio.CancelledError:
            raise BatchCancelled(tally, len(pending)) from None
        except Exception as exc:
            error = describe_error(item, exc)
            logger.warning("Batch item failed: %s", error)
            tally = tally.add_failure(error)
            continue
        tally = tally.add_success(outcome)
    return tally


def elapsed_ms(started: float, now: float) -> int:
    return int((now - started) * 1000)
