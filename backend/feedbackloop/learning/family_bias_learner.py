"""
Family bias learner.

Turns unprocessed correction feedback into per-family bias ledgers. Each run
reads a bounded batch of unprocessed entries across all families, groups them
by family, recomputes the family's pattern counts and category adjustments,
overwrites the ledger, and marks the consumed entries processed in the same
transaction. A failing family is rolled back and retried on the next run;
the rest of the batch carries on. Error records and log lines carry the
salted family hash rather than the raw family id.
"""

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from feedbackloop.db.repositories import (
    DEFAULT_BATCH_CAP,
    BiasLedgerRepository,
    FeedbackRepository,
)
from feedbackloop.learning.bias_math import (
    category_adjustments,
    merge_category_adjustments,
    pattern_adjustment,
)
from feedbackloop.learning.schemas import (
    CorrectionFeedbackDoc,
    CorrectionPattern,
    FamilyBiasLedger,
    PatternKey,
    decode_feedback,
    decode_ledger,
)
from feedbackloop.log_config import logger
from feedbackloop.utils.datetime import utcnow
from feedbackloop.utils.errors import FeedbackScanError, ValidationError
from feedbackloop.utils.hashing import hash_family_id


@dataclass
class LearnerRunResult:
    """Counters for one learner run."""

    entries_scanned: int = 0
    entries_invalid: int = 0
    families_processed: int = 0
    families_failed: int = 0
    entries_processed: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)  # {"family_hash", "error"}

    def to_dict(self) -> Dict:
        return asdict(self)


def compute_ledger(
    previous: FamilyBiasLedger,
    entries: Sequence[CorrectionFeedbackDoc],
    now: datetime,
) -> FamilyBiasLedger:
    """
    Build a family's next ledger from its previous ledger and new corrections.

    Pattern counts accumulate; adjustments are recomputed from the counts, so
    the result does not depend on how corrections were split across runs.
    Existing patterns keep their order, new patterns follow in order of first
    appearance.
    """
    counts: Dict[PatternKey, int] = {}
    for pattern in previous.patterns:
        counts[pattern.key] = counts.get(pattern.key, 0) + pattern.count
    for entry in entries:
        counts[entry.pattern_key] = counts.get(entry.pattern_key, 0) + 1

    patterns = [
        CorrectionPattern(
            original_category=key.original_category,
            corrected_category=key.corrected_category,
            count=count,
            adjustment=pattern_adjustment(count),
        )
        for key, count in counts.items()
    ]

    merged = merge_category_adjustments(
        previous.category_adjustments,
        category_adjustments(patterns),
    )

    return FamilyBiasLedger(
        family_id=previous.family_id,
        total_corrections=previous.total_corrections + len(entries),
        last_updated=now,
        category_adjustments=merged,
        patterns=patterns,
    )


class FamilyBiasLearner:
    """Consumes correction feedback into per-family bias ledgers."""

    BATCH_SIZE = 500

    def __init__(
        self,
        db: Session,
        salt: str,
        batch_size: int = BATCH_SIZE,
        write_batch_cap: int = DEFAULT_BATCH_CAP,
        now: Optional[datetime] = None,
    ):
        self.db = db
        self.salt = salt
        self.batch_size = batch_size
        self.write_batch_cap = write_batch_cap
        self.now = now
        self.feedback = FeedbackRepository(db)
        self.ledgers = BiasLedgerRepository(db)

    def run(self) -> LearnerRunResult:
        """
        Process one batch of unprocessed feedback.

        Returns:
            LearnerRunResult with per-run counters and per-family errors

        Raises:
            FeedbackScanError: If the unprocessed feedback cannot be read
        """
        result = LearnerRunResult()
        now = self.now or utcnow()

        try:
            rows = self.feedback.get_unprocessed(self.batch_size)
        except Exception as e:
            raise FeedbackScanError(
                f"Failed to scan unprocessed feedback: {e}",
                details={"batch_size": self.batch_size},
            ) from e

        result.entries_scanned = len(rows)
        if not rows:
            logger.info("No unprocessed feedback to learn from")
            return result

        by_family: Dict[str, List[CorrectionFeedbackDoc]] = defaultdict(list)
        for row in rows:
            decoded = decode_feedback(row)
            if not decoded.ok:
                result.entries_invalid += 1
                logger.warning(f"Skipping invalid feedback {row.id}: {decoded.reason}")
                continue
            by_family[decoded.value.family_id].append(decoded.value)

        logger.info(
            f"Learning from {result.entries_scanned - result.entries_invalid} corrections "
            f"across {len(by_family)} families ({result.entries_invalid} invalid)"
        )

        for family_id, entries in by_family.items():
            try:
                self.learn_family(family_id, entries, now)
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                family_hash = hash_family_id(family_id, self.salt)
                error = str(e).replace(family_id, family_hash)
                result.families_failed += 1
                result.errors.append({"family_hash": family_hash, "error": error})
                logger.error(f"Failed to update bias ledger for family {family_hash}: {error}")
                continue

            result.families_processed += 1
            result.entries_processed += len(entries)

        logger.info(
            f"Bias learning complete: {result.families_processed} families updated, "
            f"{result.families_failed} failed, {result.entries_processed} entries processed"
        )
        return result

    def learn_family(
        self,
        family_id: str,
        entries: Sequence[CorrectionFeedbackDoc],
        now: datetime,
    ) -> FamilyBiasLedger:
        """
        Write the family's next ledger and mark `entries` processed.

        Does not commit; the caller owns the transaction.

        Raises:
            ValidationError: If the stored ledger exists but cannot be decoded
        """
        row = self.ledgers.get(family_id)
        if row is None:
            previous = FamilyBiasLedger.empty(family_id)
        else:
            decoded = decode_ledger(row)
            if not decoded.ok:
                raise ValidationError(
                    f"Stored bias ledger is invalid: {decoded.reason}",
                    details={"family_hash": hash_family_id(family_id, self.salt)},
                )
            previous = decoded.value

        ledger = compute_ledger(previous, entries, now)

        self.ledgers.replace(
            family_id=family_id,
            total_corrections=ledger.total_corrections,
            last_updated=ledger.last_updated,
            category_adjustments=ledger.category_adjustments,
            patterns=[pattern.model_dump() for pattern in ledger.patterns],
        )
        self.feedback.mark_processed(
            [entry.id for entry in entries],
            processed_at=now,
            chunk_size=self.write_batch_cap,
        )

        logger.debug(
            f"Family {hash_family_id(family_id, self.salt)}: {len(entries)} new corrections, "
            f"{len(ledger.patterns)} patterns, {ledger.category_adjustments}"
        )
        return ledger
