"""
Global pattern aggregation job.

Aggregates every contributing family's correction patterns into anonymized
monthly counts and writes the period's model metrics. Scheduled on the first
of each month; `--period YYYY-MM` recomputes a given month, overwriting that
month's documents.
"""

import argparse
import os
import sys
import time
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

# Add parent directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from feedbackloop.config import Settings, settings
from feedbackloop.db.session import build_session_factory, get_db_context
from feedbackloop.learning.global_pattern_aggregator import (
    AggregationRunResult,
    GlobalPatternAggregator,
)
from feedbackloop.log_config import get_logger, logger
from feedbackloop.utils.datetime import parse_period_key

log = get_logger(__name__)


def aggregate_global_patterns_job(
    session_factory: Optional[sessionmaker] = None,
    period: Optional[datetime] = None,
    config: Optional[Settings] = None,
) -> AggregationRunResult:
    """
    Run the global pattern aggregation once.

    Args:
        session_factory: Session factory to use (built from settings if omitted)
        period: Any moment inside the month to aggregate (current month if omitted)
        config: Settings to run with (module settings if omitted)

    Raises:
        AggregationError: If family pagination or the final writes fail
    """
    config = config or settings
    if session_factory is None:
        session_factory = build_session_factory(config.database_url, echo=config.debug)

    logger.info("=" * 80)
    logger.info("GLOBAL PATTERN AGGREGATION JOB")
    logger.info("=" * 80)

    start_time = time.monotonic()

    with get_db_context(session_factory) as db:
        aggregator = GlobalPatternAggregator(
            db,
            salt=config.anonymization_salt,
            period=period,
            page_size=config.family_page_size,
            batch_cap=config.write_batch_cap,
            review_threshold=config.global_pattern_review_threshold,
        )
        result = aggregator.run()

    elapsed = time.monotonic() - start_time
    log.info(
        "job_completed",
        job="aggregate_global_patterns",
        elapsed_seconds=round(elapsed, 2),
        period=result.period,
        families_scanned=result.families_scanned,
        participating_families=result.participating_families,
        opted_out_families=result.opted_out_families,
        pattern_count=result.pattern_count,
        flagged_pattern_count=result.flagged_pattern_count,
        total_corrections=result.total_corrections,
        estimated_accuracy_improvement=result.estimated_accuracy_improvement,
        failed_families=len(result.errors),
    )
    return result


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for manual or scheduled execution."""
    parser = argparse.ArgumentParser(description="Aggregate anonymized correction patterns for a month")
    parser.add_argument(
        "--period",
        type=parse_period_key,
        default=None,
        help="Month to aggregate as YYYY-MM (defaults to the current month)",
    )
    args = parser.parse_args(argv)

    try:
        aggregate_global_patterns_job(period=args.period)
    except Exception as e:
        logger.error(f"Global pattern aggregation job failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
