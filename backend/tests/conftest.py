"""
Shared pytest fixtures for the feedback learning test suite.

Provides a throwaway SQLite database per test plus helpers for seeding
families, feedback and bias ledgers.
"""

import os
import sys
import tempfile
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from feedbackloop.db.models import Base, CorrectionFeedback, Family, FamilySettings
from feedbackloop.db.repositories import BiasLedgerRepository
from feedbackloop.learning.bias_math import category_adjustments, pattern_adjustment
from feedbackloop.learning.schemas import CorrectionPattern

# Fixed clock for tests that compare timestamps or period keys
REFERENCE_NOW = datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc)
TEST_SALT = "test-salt"


@pytest.fixture
def reference_now():
    return REFERENCE_NOW


@pytest.fixture
def salt():
    return TEST_SALT


@pytest.fixture(scope="function")
def engine():
    """Create a temporary file-backed SQLite database."""
    # Use a temporary file database instead of in-memory so separate sessions share it
    temp_file = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
    temp_file.close()
    db_path = temp_file.name

    engine = create_engine(f"sqlite:///{db_path}", echo=False)

    # Drop all tables first to ensure clean state
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()

    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Session on the temporary database, closed after the test."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_family(db_session):
    """Create a family; `contribute` of None leaves it without a settings row."""
    def _make(family_id, contribute=None):
        family = Family(id=family_id)
        db_session.add(family)
        if contribute is not None:
            db_session.add(FamilySettings(family_id=family_id, contribute_to_global_model=contribute))
        db_session.commit()
        return family
    return _make


@pytest.fixture
def add_corrections(db_session):
    """Record `count` unprocessed corrections and return their ids."""
    def _add(family_id, original, corrected, count=1):
        ids = [uuid.uuid4().hex for _ in range(count)]
        db_session.add_all([
            CorrectionFeedback(
                id=feedback_id,
                family_id=family_id,
                original_category=original,
                corrected_category=corrected,
                processed=False,
            )
            for feedback_id in ids
        ])
        db_session.commit()
        return ids
    return _add


@pytest.fixture
def make_ledger(db_session):
    """Store a well-formed ledger built from (original, corrected, count) tuples."""
    def _make(family_id, patterns, extra_adjustments=None, last_updated=REFERENCE_NOW):
        built = [
            CorrectionPattern(
                original_category=original,
                corrected_category=corrected,
                count=count,
                adjustment=pattern_adjustment(count),
            )
            for original, corrected, count in patterns
        ]
        adjustments = dict(extra_adjustments or {})
        adjustments.update(category_adjustments(built))

        BiasLedgerRepository(db_session).replace(
            family_id=family_id,
            total_corrections=sum(count for _, _, count in patterns),
            last_updated=last_updated,
            category_adjustments=adjustments,
            patterns=[pattern.model_dump() for pattern in built],
        )
        db_session.commit()
    return _make
