"""
Pydantic schemas for feedback documents and bias ledgers.

Stored rows are decoded into these models before use. Decoding never raises:
it returns a DecodeResult that either carries the model or the reason the
document was rejected.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Generic, List, NamedTuple, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

MAX_CATEGORY_LENGTH = 100

# Bounds mirrored from bias_math so stored ledgers outside them are rejected
LEDGER_MIN_ADJUSTMENT = -50.0
LEDGER_MAX_ADJUSTMENT = 20.0


class PatternKey(NamedTuple):
    """Identity of a correction pattern: original -> corrected category."""

    original_category: str
    corrected_category: str


class CorrectionFeedbackDoc(BaseModel):
    """A single human correction of the classifier."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(min_length=1)
    family_id: str = Field(min_length=1)
    original_category: str = Field(min_length=1, max_length=MAX_CATEGORY_LENGTH)
    corrected_category: str = Field(min_length=1, max_length=MAX_CATEGORY_LENGTH)
    processed: bool = False
    processed_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_is_correction(self) -> "CorrectionFeedbackDoc":
        if self.original_category == self.corrected_category:
            raise ValueError("corrected_category must differ from original_category")
        return self

    @property
    def pattern_key(self) -> PatternKey:
        return PatternKey(self.original_category, self.corrected_category)


class CorrectionPattern(BaseModel):
    """Running count for one pattern within a family's ledger."""

    original_category: str = Field(min_length=1, max_length=MAX_CATEGORY_LENGTH)
    corrected_category: str = Field(min_length=1, max_length=MAX_CATEGORY_LENGTH)
    count: int = Field(ge=1)
    adjustment: float = Field(ge=LEDGER_MIN_ADJUSTMENT, le=LEDGER_MAX_ADJUSTMENT)

    @property
    def key(self) -> PatternKey:
        return PatternKey(self.original_category, self.corrected_category)


class FamilyBiasLedger(BaseModel):
    """Decoded FamilyBiasWeights row."""

    model_config = ConfigDict(from_attributes=True)

    family_id: str = Field(min_length=1)
    total_corrections: int = Field(ge=0)
    last_updated: Optional[datetime] = None
    category_adjustments: Dict[str, float]
    patterns: List[CorrectionPattern]

    @classmethod
    def empty(cls, family_id: str) -> "FamilyBiasLedger":
        """Baseline for a family that has no ledger yet."""
        return cls(family_id=family_id, total_corrections=0, category_adjustments={}, patterns=[])


T = TypeVar("T", bound=BaseModel)


@dataclass(frozen=True)
class DecodeResult(Generic[T]):
    """Outcome of decoding a stored document."""

    value: Optional[T] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.value is not None


def _format_errors(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "document"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def decode(model: Type[T], document: Any) -> DecodeResult[T]:
    """Decode a row or mapping into `model`, capturing validation failures."""
    if document is None:
        return DecodeResult(reason="document is missing")
    try:
        return DecodeResult(value=model.model_validate(document, from_attributes=True))
    except ValidationError as e:
        return DecodeResult(reason=_format_errors(e))


def decode_feedback(document: Any) -> DecodeResult[CorrectionFeedbackDoc]:
    """Decode a CorrectionFeedback row."""
    return decode(CorrectionFeedbackDoc, document)


def decode_ledger(document: Any) -> DecodeResult[FamilyBiasLedger]:
    """Decode a FamilyBiasWeights row."""
    return decode(FamilyBiasLedger, document)
