"""
Tests for decoding stored feedback and ledger documents.
"""

from feedbackloop.db.models import CorrectionFeedback, FamilyBiasWeights
from feedbackloop.learning.schemas import (
    FamilyBiasLedger,
    PatternKey,
    decode_feedback,
    decode_ledger,
)


def _feedback(**overrides):
    doc = {
        "id": "fb-1",
        "family_id": "fam-a",
        "original_category": "violence",
        "corrected_category": "none",
        "processed": False,
    }
    doc.update(overrides)
    return doc


def _ledger(**overrides):
    doc = {
        "family_id": "fam-a",
        "total_corrections": 3,
        "category_adjustments": {"violence": -15.0},
        "patterns": [
            {"original_category": "violence", "corrected_category": "none", "count": 3, "adjustment": -15.0},
        ],
    }
    doc.update(overrides)
    return doc


class TestDecodeFeedback:
    def test_valid_mapping(self):
        result = decode_feedback(_feedback())
        assert result.ok
        assert result.reason is None
        assert result.value.pattern_key == PatternKey("violence", "none")

    def test_valid_row(self):
        row = CorrectionFeedback(
            id="fb-1",
            family_id="fam-a",
            original_category="violence",
            corrected_category="none",
            processed=False,
        )
        result = decode_feedback(row)
        assert result.ok
        assert result.value.family_id == "fam-a"

    def test_missing_document(self):
        result = decode_feedback(None)
        assert not result.ok
        assert result.reason == "document is missing"

    def test_missing_family_id(self):
        result = decode_feedback(_feedback(family_id=None))
        assert not result.ok
        assert "family_id" in result.reason

    def test_empty_category(self):
        result = decode_feedback(_feedback(corrected_category=""))
        assert not result.ok
        assert "corrected_category" in result.reason

    def test_overlong_category(self):
        result = decode_feedback(_feedback(original_category="x" * 101))
        assert not result.ok

    def test_same_category_is_not_a_correction(self):
        result = decode_feedback(_feedback(corrected_category="violence"))
        assert not result.ok
        assert "must differ" in result.reason


class TestDecodeLedger:
    def test_valid(self):
        result = decode_ledger(_ledger())
        assert result.ok
        assert result.value.patterns[0].key == PatternKey("violence", "none")
        assert result.value.category_adjustments == {"violence": -15.0}

    def test_valid_row(self):
        row = FamilyBiasWeights(**_ledger())
        assert decode_ledger(row).ok

    def test_patterns_not_a_list(self):
        result = decode_ledger(_ledger(patterns="broken"))
        assert not result.ok
        assert "patterns" in result.reason

    def test_pattern_adjustment_out_of_range(self):
        patterns = [{"original_category": "violence", "corrected_category": "none", "count": 3, "adjustment": -90.0}]
        assert not decode_ledger(_ledger(patterns=patterns)).ok

    def test_pattern_count_must_be_positive(self):
        patterns = [{"original_category": "violence", "corrected_category": "none", "count": 0, "adjustment": 0.0}]
        assert not decode_ledger(_ledger(patterns=patterns)).ok

    def test_negative_total(self):
        assert not decode_ledger(_ledger(total_corrections=-1)).ok

    def test_empty_baseline(self):
        ledger = FamilyBiasLedger.empty("fam-a")
        assert ledger.total_corrections == 0
        assert ledger.patterns == []
        assert ledger.category_adjustments == {}
