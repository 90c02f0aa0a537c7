"""
Background scheduler for the feedback learning jobs.

Runs the family bias learner on a fixed interval and the global pattern
aggregation on the first day of each month. A job that raises is retried
with exponential backoff up to `job_max_retries` attempts; after that the
failure is logged and the next scheduled run starts fresh.
"""

import os
import sys
from functools import partial
from typing import Callable, Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import sessionmaker
from tenacity import RetryCallState, Retrying, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

# Add parent directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from feedbackloop.config import Settings, settings as default_settings
from feedbackloop.db.session import build_session_factory
from feedbackloop.log_config import logger
from jobs.aggregate_global_patterns import aggregate_global_patterns_job
from jobs.learn_family_bias import learn_family_bias_job

LEARNER_JOB_ID = "learn_family_bias"
AGGREGATOR_JOB_ID = "aggregate_global_patterns"

DEFAULT_RETRY_WAIT = wait_exponential(multiplier=30, min=30, max=600)


def _log_retry(job_name: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"{job_name} attempt {retry_state.attempt_number} failed: {error}; retrying"
        )
    return before_sleep


def with_retries(
    job_fn: Callable[[], object],
    job_name: str,
    max_attempts: int,
    wait: wait_base = DEFAULT_RETRY_WAIT,
) -> Callable[[], None]:
    """
    Wrap a zero-argument job so that exceptions trigger retries.

    The final failure is logged rather than raised so the scheduler keeps
    running; the next trigger starts a fresh run.
    """
    def run() -> None:
        retrying = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait,
            reraise=True,
            before_sleep=_log_retry(job_name),
        )
        try:
            retrying(job_fn)
        except Exception as e:
            logger.error(f"{job_name} failed after {max_attempts} attempts: {e}")

    run.__name__ = f"{job_name}_with_retries"
    return run


def create_scheduler(
    session_factory: sessionmaker,
    config: Settings = default_settings,
    wait: wait_base = DEFAULT_RETRY_WAIT,
) -> BlockingScheduler:
    """Create a scheduler with both feedback learning jobs registered (not started)."""
    scheduler = BlockingScheduler(timezone="UTC")

    scheduler.add_job(
        with_retries(
            partial(learn_family_bias_job, session_factory=session_factory, config=config),
            LEARNER_JOB_ID,
            config.job_max_retries,
            wait=wait,
        ),
        trigger=IntervalTrigger(hours=config.learner_interval_hours),
        id=LEARNER_JOB_ID,
        name="Family Bias Learning",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info(f"Added Family Bias Learning job (runs every {config.learner_interval_hours} hours)")

    scheduler.add_job(
        with_retries(
            partial(aggregate_global_patterns_job, session_factory=session_factory, config=config),
            AGGREGATOR_JOB_ID,
            config.job_max_retries,
            wait=wait,
        ),
        trigger=CronTrigger(day=1, hour=2, minute=0, timezone="UTC"),
        id=AGGREGATOR_JOB_ID,
        name="Global Pattern Aggregation",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info("Added Global Pattern Aggregation job (runs monthly on day 1 at 2 AM UTC)")

    return scheduler


def start_scheduler(config: Optional[Settings] = None) -> None:
    """Build the store connection and block running scheduled jobs."""
    config = config or default_settings
    session_factory = build_session_factory(config.database_url, echo=config.debug)
    scheduler = create_scheduler(session_factory, config)

    logger.info("Starting feedback learning scheduler")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")
        if scheduler.running:
            scheduler.shutdown(wait=False)


if __name__ == "__main__":
    start_scheduler()
