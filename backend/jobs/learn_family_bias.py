"""
Family bias learning job.

Consumes up to one batch of unprocessed correction feedback and updates the
bias ledger of every family that appears in it. Scheduled every 6 hours.
Safe to run repeatedly: consumed feedback is marked processed, so a second
run without new feedback changes nothing.
"""

import argparse
import os
import sys
import time
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

# Add parent directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from feedbackloop.config import Settings, settings
from feedbackloop.db.session import build_session_factory, get_db_context
from feedbackloop.learning.family_bias_learner import FamilyBiasLearner, LearnerRunResult
from feedbackloop.log_config import get_logger, logger

log = get_logger(__name__)


def learn_family_bias_job(
    session_factory: Optional[sessionmaker] = None,
    batch_size: Optional[int] = None,
    config: Optional[Settings] = None,
) -> LearnerRunResult:
    """
    Run the family bias learner once.

    Args:
        session_factory: Session factory to use (built from settings if omitted)
        batch_size: Unprocessed entries to read (config default if omitted)
        config: Settings to run with (module settings if omitted)

    Raises:
        FeedbackScanError: If unprocessed feedback cannot be read
    """
    config = config or settings
    if session_factory is None:
        session_factory = build_session_factory(config.database_url, echo=config.debug)

    logger.info("=" * 80)
    logger.info("FAMILY BIAS LEARNING JOB")
    logger.info("=" * 80)

    start_time = time.monotonic()

    with get_db_context(session_factory) as db:
        learner = FamilyBiasLearner(
            db,
            salt=config.anonymization_salt,
            batch_size=batch_size or config.feedback_batch_size,
            write_batch_cap=config.write_batch_cap,
        )
        result = learner.run()

    elapsed = time.monotonic() - start_time
    log.info(
        "job_completed",
        job="learn_family_bias",
        elapsed_seconds=round(elapsed, 2),
        entries_scanned=result.entries_scanned,
        entries_invalid=result.entries_invalid,
        families_processed=result.families_processed,
        families_failed=result.families_failed,
        entries_processed=result.entries_processed,
    )
    return result


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for manual or scheduled execution."""
    parser = argparse.ArgumentParser(description="Learn per-family classifier bias from corrections")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.feedback_batch_size,
        help="Maximum unprocessed feedback entries to consume",
    )
    args = parser.parse_args(argv)

    try:
        learn_family_bias_job(batch_size=args.batch_size)
    except Exception as e:
        logger.error(f"Family bias learning job failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
