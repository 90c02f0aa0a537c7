"""
Tests for applying a family's bias ledger to classifier confidence.
"""

from feedbackloop.db.models import FamilyBiasWeights
from feedbackloop.learning.bias_application import (
    apply_bias,
    get_adjusted_confidence,
    load_family_ledger,
)


class TestApplyBias:
    def test_negative_adjustment(self):
        assert apply_bias(80.0, -15.0) == 65.0

    def test_floor_at_zero(self):
        assert apply_bias(30.0, -50.0) == 0.0

    def test_ceiling_at_hundred(self):
        assert apply_bias(95.0, 20.0) == 100.0


class TestGetAdjustedConfidence:
    def test_uses_category_adjustment(self, db_session, make_ledger):
        make_ledger("fam-a", [("violence", "none", 3)])

        assert get_adjusted_confidence(db_session, "fam-a", "violence", 90.0) == 75.0

    def test_uncorrected_category_unchanged(self, db_session, make_ledger):
        make_ledger("fam-a", [("violence", "none", 3)])

        assert get_adjusted_confidence(db_session, "fam-a", "adult", 90.0) == 90.0

    def test_family_without_ledger_unchanged(self, db_session):
        assert get_adjusted_confidence(db_session, "fam-new", "violence", 90.0) == 90.0

    def test_invalid_ledger_ignored(self, db_session):
        db_session.add(FamilyBiasWeights(family_id="fam-a", total_corrections=None,
                                         category_adjustments={"violence": -15.0}, patterns=[]))
        db_session.commit()

        assert load_family_ledger(db_session, "fam-a") is None
        assert get_adjusted_confidence(db_session, "fam-a", "violence", 90.0) == 90.0
