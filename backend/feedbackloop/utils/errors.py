"""
Custom exceptions for the feedback loop jobs.

Provides domain-specific exceptions with clear error messages and
support for structured error handling.
"""

from typing import Optional, Dict, Any


class FeedbackLoopError(Exception):
    """Base exception for all feedback loop errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logs and error records."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# ============================================================================
# Database Errors
# ============================================================================

class DatabaseError(FeedbackLoopError):
    """Database operation failed."""
    pass


# ============================================================================
# Validation Errors
# ============================================================================

class ValidationError(FeedbackLoopError):
    """A stored document failed schema validation."""
    pass


# ============================================================================
# Job Errors
# ============================================================================

class JobError(FeedbackLoopError):
    """A scheduled job failed before or outside per-family processing."""
    pass


class FeedbackScanError(JobError):
    """The initial scan for unprocessed feedback failed."""
    pass


class AggregationError(JobError):
    """Family pagination or final batch commits failed during aggregation."""
    pass
