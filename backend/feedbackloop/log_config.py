"""
Logging setup for the feedback learning jobs.

loguru carries the application log lines. structlog renders the structured
events: each job's `job_completed` summary and the per-family events of the
bias lookup. The structlog chain swaps any `family_id` for its salted hash
before rendering, so those events never carry a raw tenant id.
"""

import logging
import sys
from typing import Any

import structlog
from loguru import logger
from structlog.typing import EventDict, WrappedLogger

from feedbackloop.config import Settings, settings
from feedbackloop.utils.hashing import hash_family_id

SECRET_KEYS = ("salt", "secret", "password", "token")

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


class FamilyIdAnonymizer:
    """structlog processor: replace `family_id` with `family_hash` and mask secrets."""

    def __init__(self, salt: str):
        self.salt = salt

    def __call__(self, logger: WrappedLogger, name: str, event_dict: EventDict) -> EventDict:
        family_id = event_dict.pop("family_id", None)
        if family_id is not None:
            event_dict["family_hash"] = hash_family_id(str(family_id), self.salt)

        for key in list(event_dict):
            if any(secret in key.lower() for secret in SECRET_KEYS):
                event_dict[key] = "[REDACTED]"
        return event_dict


class InterceptHandler(logging.Handler):
    """Route stdlib logging (SQLAlchemy, APScheduler) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(exception=record.exc_info).log(level, record.getMessage())


def configure_logging(config: Settings = settings) -> None:
    """Install the loguru sinks and the structlog chain for `config`."""
    serialize = config.log_format == "json"
    log_format = "{message}" if serialize else TEXT_FORMAT

    logger.remove()
    logger.add(
        sys.stderr,
        format=log_format,
        level=config.log_level,
        serialize=serialize,
        diagnose=config.is_development,
    )
    if config.log_file:
        logger.add(
            config.log_file,
            format=log_format,
            level=config.log_level,
            serialize=serialize,
            rotation="50 MB",
            retention="14 days",
            diagnose=config.is_development,
        )

    renderer = structlog.processors.JSONRenderer() if serialize else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            FamilyIdAnonymizer(config.anonymization_salt),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=logging.WARNING, force=True)
    logging.getLogger("apscheduler").setLevel(logging.INFO)


def get_logger(name: str) -> Any:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


configure_logging()
