"""
Global pattern aggregator.

Once a month, folds every contributing family's correction patterns into
anonymized cross-family counts. Families are identified only by a salted
hash, used to count distinct contributors per pattern; raw family ids are
never stored or logged. Patterns corrected more often than the review
threshold are flagged for model-improvement review, and a capped estimate of
the achievable accuracy improvement is stored with the period's metrics.

Writes are full overwrites keyed by period and pattern, so re-running a
period against unchanged ledgers reproduces the same documents.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set

from sqlalchemy.orm import Session

from feedbackloop.db.models import GlobalModelMetrics, GlobalPatternAggregation
from feedbackloop.db.repositories import (
    DEFAULT_BATCH_CAP,
    BatchWriter,
    BiasLedgerRepository,
    FamilyRepository,
)
from feedbackloop.learning.bias_math import calculate_estimated_improvement
from feedbackloop.learning.schemas import PatternKey, decode_ledger
from feedbackloop.log_config import logger
from feedbackloop.utils.datetime import get_month_bounds, get_period_key, utcnow
from feedbackloop.utils.errors import AggregationError
from feedbackloop.utils.hashing import hash_family_id

GLOBAL_PATTERN_REVIEW_THRESHOLD = 10


@dataclass
class PatternTally:
    """Running cross-family totals for one pattern."""

    total_count: int = 0
    family_hashes: Set[str] = field(default_factory=set)

    @property
    def family_count(self) -> int:
        return len(self.family_hashes)


@dataclass
class AggregationRunResult:
    """Counters for one aggregation run."""

    period: str
    families_scanned: int = 0
    participating_families: int = 0
    opted_out_families: int = 0
    pages_scanned: int = 0
    pattern_count: int = 0
    flagged_pattern_count: int = 0
    total_corrections: int = 0
    estimated_accuracy_improvement: float = 0.0
    batches_committed: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return asdict(self)


def aggregation_id(period: str, key: PatternKey) -> str:
    """Deterministic document id for a pattern within a period."""
    return f"{period}_{key.original_category}_to_{key.corrected_category}"


class GlobalPatternAggregator:
    """Aggregates family correction patterns into anonymized global counts."""

    PAGE_SIZE = 500
    BATCH_CAP = DEFAULT_BATCH_CAP
    REVIEW_THRESHOLD = GLOBAL_PATTERN_REVIEW_THRESHOLD

    def __init__(
        self,
        db: Session,
        salt: str,
        now: Optional[datetime] = None,
        period: Optional[datetime] = None,
        page_size: int = PAGE_SIZE,
        batch_cap: int = BATCH_CAP,
        review_threshold: int = REVIEW_THRESHOLD,
    ):
        self.db = db
        self.salt = salt
        self.now = now
        self.period = period
        self.page_size = page_size
        self.batch_cap = batch_cap
        self.review_threshold = review_threshold
        self.families = FamilyRepository(db)
        self.ledgers = BiasLedgerRepository(db)

    def run(self) -> AggregationRunResult:
        """
        Aggregate all contributing families for one period.

        The period is the month containing `period`, or the month of the run
        clock when no period is given. Documents are stamped with the run clock.

        Returns:
            AggregationRunResult with per-run counters and hashed error records

        Raises:
            AggregationError: If family pagination or a batch commit fails
        """
        now = self.now or utcnow()
        target = self.period or now
        period = get_period_key(target)
        period_start, period_end = get_month_bounds(target)
        result = AggregationRunResult(period=period)

        logger.info(f"Aggregating global correction patterns for {period}")

        tallies: Dict[PatternKey, PatternTally] = {}
        try:
            for page in self.families.iter_pages(self.page_size):
                result.pages_scanned += 1
                for family_id in page:
                    self._aggregate_family(family_id, tallies, result)
        except Exception as e:
            raise AggregationError(
                f"Failed to page through families: {e}",
                details={"period": period, "pages_scanned": result.pages_scanned},
            ) from e

        self._write_results(tallies, result, now, period_start, period_end)

        logger.info(
            f"Aggregation for {period} complete: {result.participating_families} families, "
            f"{result.pattern_count} patterns ({result.flagged_pattern_count} flagged), "
            f"{result.total_corrections} corrections, "
            f"estimated improvement {result.estimated_accuracy_improvement}%"
        )
        return result

    def _aggregate_family(
        self,
        family_id: str,
        tallies: Dict[PatternKey, PatternTally],
        result: AggregationRunResult,
    ) -> None:
        result.families_scanned += 1
        family_hash = hash_family_id(family_id, self.salt)

        try:
            if self.families.has_opted_out(family_id):
                result.opted_out_families += 1
                return

            row = self.ledgers.get(family_id)
            if row is None:
                return

            decoded = decode_ledger(row)
            if not decoded.ok:
                logger.warning(f"Skipping invalid bias ledger for family {family_hash}: {decoded.reason}")
                return

            patterns = decoded.value.patterns
            if not patterns:
                return
        except Exception as e:
            self.db.rollback()
            error = str(e).replace(family_id, family_hash)
            result.errors.append({"family_hash": family_hash, "error": error})
            logger.error(f"Failed to aggregate family {family_hash}: {error}")
            return

        for pattern in patterns:
            tally = tallies.setdefault(pattern.key, PatternTally())
            tally.total_count += pattern.count
            tally.family_hashes.add(family_hash)
        result.participating_families += 1

    def _write_results(
        self,
        tallies: Dict[PatternKey, PatternTally],
        result: AggregationRunResult,
        now: datetime,
        period_start: datetime,
        period_end: datetime,
    ) -> None:
        period = result.period
        writer = BatchWriter(self.db, max_ops=self.batch_cap)

        try:
            for key in sorted(tallies):
                tally = tallies[key]
                flagged = tally.total_count > self.review_threshold
                if flagged:
                    result.flagged_pattern_count += 1
                result.total_corrections += tally.total_count

                writer.set(GlobalPatternAggregation(
                    id=aggregation_id(period, key),
                    period=period,
                    original_category=key.original_category,
                    corrected_category=key.corrected_category,
                    total_correction_count=tally.total_count,
                    family_count=tally.family_count,
                    flagged_for_review=flagged,
                    aggregated_at=now,
                    period_start=period_start,
                    period_end=period_end,
                ))

            result.pattern_count = len(tallies)
            result.estimated_accuracy_improvement = calculate_estimated_improvement(
                result.total_corrections,
                result.flagged_pattern_count,
            )

            writer.set(GlobalModelMetrics(
                period=period,
                total_corrections_aggregated=result.total_corrections,
                participating_families=result.participating_families,
                pattern_count=result.pattern_count,
                flagged_pattern_count=result.flagged_pattern_count,
                estimated_accuracy_improvement=result.estimated_accuracy_improvement,
                aggregated_at=now,
            ))
            writer.flush()
        except Exception as e:
            self.db.rollback()
            raise AggregationError(
                f"Failed to commit aggregation for {period}: {e}",
                details={"period": period, "batches_committed": writer.batches_committed},
            ) from e
        finally:
            result.batches_committed = writer.batches_committed
