"""
Repository pattern for data access.

Provides the store primitives the jobs rely on: point reads, filtered scans
across all families, cursor-based family pagination, and batched
full-overwrite writes that respect the per-batch write cap.
"""

from datetime import datetime
from typing import Iterator, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from loguru import logger

from feedbackloop.db.models import (
    CorrectionFeedback,
    Family,
    FamilyBiasWeights,
    FamilySettings,
)
from feedbackloop.utils.batching import chunked

# Hard per-batch limit of the store; one slot is kept free for the metrics write
STORE_BATCH_LIMIT = 500
DEFAULT_BATCH_CAP = STORE_BATCH_LIMIT - 1


class FamilyRepository:
    """Repository for Family and FamilySettings operations."""

    def __init__(self, db: Session):
        self.db = db

    def get_settings(self, family_id: str) -> Optional[FamilySettings]:
        """Get a family's settings document."""
        return self.db.get(FamilySettings, family_id)

    def has_opted_out(self, family_id: str) -> bool:
        """True only when the family explicitly declined to contribute."""
        family_settings = self.get_settings(family_id)
        if family_settings is None:
            return False
        return family_settings.contribute_to_global_model is False

    def get_page(self, page_size: int, after: Optional[str] = None) -> List[str]:
        """Get one page of family ids ordered by id, starting after the cursor."""
        query = select(Family.id).order_by(Family.id).limit(page_size)
        if after is not None:
            query = query.where(Family.id > after)
        return list(self.db.execute(query).scalars().all())

    def iter_pages(self, page_size: int) -> Iterator[List[str]]:
        """
        Iterate over all family ids, one page at a time.

        Uses the last id of each page as the cursor for the next, so every
        family is visited exactly once. Stops after a short page.
        """
        cursor: Optional[str] = None
        while True:
            page = self.get_page(page_size, after=cursor)
            if not page:
                return
            yield page
            if len(page) < page_size:
                return
            cursor = page[-1]


class FeedbackRepository:
    """Repository for CorrectionFeedback operations."""

    def __init__(self, db: Session):
        self.db = db

    def get_unprocessed(self, limit: int) -> List[CorrectionFeedback]:
        """Scan unprocessed feedback across all families. No ordering is implied."""
        return list(
            self.db.execute(
                select(CorrectionFeedback)
                .where(CorrectionFeedback.processed.is_(False))
                .limit(limit)
            ).scalars().all()
        )

    def mark_processed(
        self,
        feedback_ids: Sequence[str],
        processed_at: datetime,
        chunk_size: int = DEFAULT_BATCH_CAP,
    ) -> int:
        """
        Mark entries processed without committing.

        Runs inside the caller's transaction so that the markers land
        together with the ledger write.

        Returns:
            Number of rows updated
        """
        updated = 0
        for chunk in chunked(feedback_ids, chunk_size):
            result = self.db.execute(
                update(CorrectionFeedback)
                .where(CorrectionFeedback.id.in_(chunk))
                .values(processed=True, processed_at=processed_at)
            )
            updated += result.rowcount or 0
        return updated


class BiasLedgerRepository:
    """Repository for FamilyBiasWeights operations."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, family_id: str) -> Optional[FamilyBiasWeights]:
        """Get a family's bias ledger."""
        return self.db.get(FamilyBiasWeights, family_id)

    def replace(
        self,
        family_id: str,
        total_corrections: int,
        last_updated: datetime,
        category_adjustments: dict,
        patterns: list,
    ) -> FamilyBiasWeights:
        """Overwrite the whole ledger; every column is written."""
        ledger = FamilyBiasWeights(
            family_id=family_id,
            total_corrections=total_corrections,
            last_updated=last_updated,
            category_adjustments=category_adjustments,
            patterns=patterns,
        )
        return self.db.merge(ledger)


class BatchWriter:
    """
    Accumulates full-overwrite writes and commits them in capped batches.

    Each `set` replaces the stored row with the given object (all columns).
    A batch is committed as soon as it holds `max_ops` writes; `flush`
    commits whatever remains. Batches are committed sequentially.
    """

    def __init__(self, db: Session, max_ops: int = DEFAULT_BATCH_CAP):
        if not 1 <= max_ops <= STORE_BATCH_LIMIT:
            raise ValueError(f"max_ops must be between 1 and {STORE_BATCH_LIMIT}, got {max_ops}")
        self.db = db
        self.max_ops = max_ops
        self.pending = 0
        self.writes = 0
        self.batches_committed = 0

    def set(self, obj) -> None:
        """Queue a full overwrite of `obj`."""
        self.db.merge(obj)
        self.pending += 1
        self.writes += 1
        if self.pending >= self.max_ops:
            self.commit()

    def commit(self) -> None:
        """Commit the current batch if it holds any writes."""
        if self.pending == 0:
            return
        self.db.commit()
        self.batches_committed += 1
        logger.debug(f"Committed write batch {self.batches_committed} ({self.pending} writes)")
        self.pending = 0

    def flush(self) -> None:
        """Commit the trailing partial batch."""
        self.commit()
