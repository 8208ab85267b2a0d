"""
Booking Archive Service

Moves Active bookings whose trip departed more than a month ago to Archived.

All status flips of one run are committed as a single atomic batch. When no
booking qualifies, nothing is written.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from reconciliation.archive_rules import archive_cutoff, select_archivable
from reconciliation.exceptions import SeatDataError
from reconciliation.models import BOOKINGS_COLLECTION, Booking, BookingStatus
from reconciliation.services.reconciliation_service import (
    ReconciliationAuditEvent,
    log_reconciliation_event,
)
from store.base import DocumentRef, DocumentStore, DocumentUpdate

logger = logging.getLogger(__name__)


@dataclass
class ArchiveRunResult:
    """Result of one archive run."""
    scanned: int
    cutoff: datetime
    archived_ids: List[str] = field(default_factory=list)

    @property
    def archived_count(self) -> int:
        return len(self.archived_ids)

    def summary(self) -> str:
        if not self.archived_ids:
            return "No bookings to archive."
        return f"{self.archived_count} booking(s) archived."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scanned": self.scanned,
            "cutoff": self.cutoff.isoformat(),
            "archived_count": self.archived_count,
            "archived_ids": self.archived_ids
        }


class BookingArchiveService:

    def __init__(self, store: DocumentStore):
        self.store = store

    async def archive_old_bookings(self, now: Optional[datetime] = None) -> ArchiveRunResult:
        """
        Archive every Active booking that departed before the cutoff.

        Args:
            now: Reference timestamp (defaults to the current UTC time)

        Returns:
            ArchiveRunResult with the archived booking ids
        """
        now = now or datetime.now(timezone.utc)
        documents = await self.store.query(BOOKINGS_COLLECTION, "status", BookingStatus.ACTIVE.value)

        bookings = []
        for doc in documents:
            try:
                bookings.append(Booking.from_document(doc))
            except SeatDataError as e:
                logger.warning(f"Skipping unreadable booking {doc.id}: {e}")

        archivable = select_archivable(bookings, now)
        # Keep the store's order so batches and logs are deterministic
        archived_ids = [b.doc_id for b in bookings if b.doc_id in archivable]

        result = ArchiveRunResult(scanned=len(documents), cutoff=archive_cutoff(now), archived_ids=archived_ids)

        if not archived_ids:
            logger.info("No bookings to archive.")
            return result

        await self.store.atomic_batch([
            DocumentUpdate(
                ref=DocumentRef(BOOKINGS_COLLECTION, doc_id),
                changes={"status": BookingStatus.ARCHIVED.value}
            )
            for doc_id in archived_ids
        ])

        logger.info(f"{result.archived_count} bookings archived.")
        log_reconciliation_event(
            ReconciliationAuditEvent.BOOKINGS_ARCHIVED,
            None,
            {"archived_count": result.archived_count, "cutoff": result.cutoff.isoformat()}
        )
        return result
