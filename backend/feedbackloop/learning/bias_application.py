"""Apply a family's learned bias to classifier confidence scores."""

from typing import Optional

from sqlalchemy.orm import Session

from feedbackloop.db.repositories import BiasLedgerRepository
from feedbackloop.learning.bias_math import clamp
from feedbackloop.learning.schemas import FamilyBiasLedger, decode_ledger
from feedbackloop.log_config import get_logger

log = get_logger(__name__)

MIN_CONFIDENCE = 0.0
MAX_CONFIDENCE = 100.0


def apply_bias(confidence: float, adjustment: float) -> float:
    """Shift a 0-100 confidence by `adjustment` points, staying within 0-100."""
    return clamp(confidence + adjustment, MIN_CONFIDENCE, MAX_CONFIDENCE)


def load_family_ledger(db: Session, family_id: str) -> Optional[FamilyBiasLedger]:
    """Load and decode a family's ledger; None when absent or invalid."""
    row = BiasLedgerRepository(db).get(family_id)
    if row is None:
        return None

    decoded = decode_ledger(row)
    if not decoded.ok:
        log.warning("invalid_bias_ledger", family_id=family_id, reason=decoded.reason)
        return None
    return decoded.value


def get_adjusted_confidence(db: Session, family_id: str, category: str, confidence: float) -> float:
    """
    Confidence for `category` after the family's learned adjustment.

    Families without a usable ledger, and categories the family never
    corrected, keep the classifier's confidence unchanged.
    """
    ledger = load_family_ledger(db, family_id)
    if ledger is None:
        return confidence

    adjustment = ledger.category_adjustments.get(category)
    if adjustment is None:
        return confidence
    return apply_bias(confidence, adjustment)
