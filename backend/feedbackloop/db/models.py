"""
SQLAlchemy 2.0 database models for the classifier feedback loop.

Each table plays the role of one document collection. Per-family documents
keep permissive columns (nullable values, JSON payloads) because they are
decoded and validated by the jobs before use, not trusted on read.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Family(Base):
    """A tenant account. Only the id is needed for pagination."""

    __tablename__ = "families"

    id = Column(String, primary_key=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self) -> str:
        return f"<Family(id={self.id})>"


class FamilySettings(Base):
    """Per-family preferences; only the global-model opt-out is read here."""

    __tablename__ = "family_settings"

    family_id = Column(String, ForeignKey("families.id"), primary_key=True)
    # None means the family never answered, which counts as contributing
    contribute_to_global_model = Column(Boolean, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return (
            f"<FamilySettings(family_id={self.family_id}, "
            f"contribute_to_global_model={self.contribute_to_global_model})>"
        )


class CorrectionFeedback(Base):
    """A human correction of a classifier category. Never deleted, only marked processed."""

    __tablename__ = "correction_feedback"
    __table_args__ = (
        Index("ix_correction_feedback_processed", "processed"),
        Index("ix_correction_feedback_family_id", "family_id"),
    )

    id = Column(String, primary_key=True)
    family_id = Column(String, nullable=True)
    original_category = Column(String, nullable=True)
    corrected_category = Column(String, nullable=True)
    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self) -> str:
        return (
            f"<CorrectionFeedback(id={self.id}, family_id={self.family_id}, "
            f"{self.original_category}->{self.corrected_category}, processed={self.processed})>"
        )


class FamilyBiasWeights(Base):
    """
    Bias ledger for one family.

    Overwritten in full on every learner run for the family.
    category_adjustments: {"violence": -15.0}
    patterns: [{"original_category": ..., "corrected_category": ..., "count": 3, "adjustment": -15.0}]
    """

    __tablename__ = "family_bias_weights"

    family_id = Column(String, primary_key=True)
    total_corrections = Column(Integer, nullable=True)
    last_updated = Column(DateTime(timezone=True), nullable=True)
    category_adjustments = Column(JSON, nullable=True)
    patterns = Column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<FamilyBiasWeights(family_id={self.family_id}, total_corrections={self.total_corrections})>"


class GlobalPatternAggregation(Base):
    """Anonymized cross-family count for one correction pattern in one month."""

    __tablename__ = "global_pattern_aggregations"
    __table_args__ = (
        Index("ix_global_pattern_aggregations_period", "period"),
    )

    id = Column(String, primary_key=True)  # "{period}_{original}_to_{corrected}"
    period = Column(String, nullable=False)
    original_category = Column(String, nullable=False)
    corrected_category = Column(String, nullable=False)
    total_correction_count = Column(Integer, nullable=False, default=0)
    family_count = Column(Integer, nullable=False, default=0)
    flagged_for_review = Column(Boolean, nullable=False, default=False)
    aggregated_at = Column(DateTime(timezone=True), nullable=False)
    period_start = Column(DateTime(timezone=True), nullable=False)
    period_end = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<GlobalPatternAggregation(id={self.id}, total={self.total_correction_count}, "
            f"families={self.family_count}, flagged={self.flagged_for_review})>"
        )


class GlobalModelMetrics(Base):
    """Summary of one month's aggregation run."""

    __tablename__ = "global_model_metrics"

    period = Column(String, primary_key=True)
    total_corrections_aggregated = Column(Integer, nullable=False, default=0)
    participating_families = Column(Integer, nullable=False, default=0)
    pattern_count = Column(Integer, nullable=False, default=0)
    flagged_pattern_count = Column(Integer, nullable=False, default=0)
    estimated_accuracy_improvement = Column(Float, nullable=False, default=0.0)
    aggregated_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<GlobalModelMetrics(period={self.period}, "
            f"participating_families={self.participating_families}, "
            f"improvement={self.estimated_accuracy_improvement})>"
        )
