"""
Tests for the job entry points.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

import jobs.aggregate_global_patterns as aggregate_module
import jobs.learn_family_bias as learn_module
from feedbackloop.config import Settings, settings
from feedbackloop.db.models import FamilyBiasWeights, GlobalModelMetrics, GlobalPatternAggregation
from feedbackloop.utils.datetime import parse_period_key
from feedbackloop.utils.errors import FeedbackScanError
from feedbackloop.utils.hashing import hash_family_id


class TestLearnFamilyBiasJob:
    def test_runs_learner_and_commits(self, session_factory, db_session, add_corrections):
        add_corrections("fam-a", "violence", "none", count=3)

        result = learn_module.learn_family_bias_job(session_factory=session_factory)

        assert result.families_processed == 1
        db_session.expire_all()
        assert db_session.get(FamilyBiasWeights, "fam-a").category_adjustments == {"violence": -15.0}

    def test_batch_size_override(self, session_factory, add_corrections):
        add_corrections("fam-a", "violence", "none", count=4)

        result = learn_module.learn_family_bias_job(session_factory=session_factory, batch_size=3)

        assert result.entries_scanned == 3

    def test_main_passes_batch_size(self, monkeypatch):
        job = Mock()
        monkeypatch.setattr(learn_module, "learn_family_bias_job", job)

        learn_module.main(["--batch-size", "7"])

        job.assert_called_once_with(batch_size=7)

    def test_main_exits_non_zero_on_failure(self, monkeypatch):
        monkeypatch.setattr(
            learn_module,
            "learn_family_bias_job",
            Mock(side_effect=FeedbackScanError("scan failed")),
        )

        with pytest.raises(SystemExit) as exc_info:
            learn_module.main([])
        assert exc_info.value.code == 1


class TestAggregateGlobalPatternsJob:
    def test_runs_aggregator_and_commits(self, session_factory, db_session, make_family, make_ledger, reference_now):
        make_family("fam-a")
        make_ledger("fam-a", [("violence", "none", 11)])

        result = aggregate_module.aggregate_global_patterns_job(session_factory=session_factory, period=reference_now)

        assert result.period == "2026-03"
        assert result.flagged_pattern_count == 1
        db_session.expire_all()
        metrics = db_session.get(GlobalModelMetrics, "2026-03")
        assert metrics.participating_families == 1

    def test_errors_use_configured_salt(self, session_factory, make_family, make_ledger, reference_now, monkeypatch):
        make_family("fam-a")
        make_ledger("fam-a", [("violence", "none", 1)])
        monkeypatch.setattr(
            "feedbackloop.db.repositories.BiasLedgerRepository.get",
            Mock(side_effect=RuntimeError("read failed")),
        )

        result = aggregate_module.aggregate_global_patterns_job(session_factory=session_factory, period=reference_now)

        assert result.errors == [
            {"family_hash": hash_family_id("fam-a", settings.anonymization_salt), "error": "read failed"},
        ]

    def test_main_passes_period(self, monkeypatch):
        job = Mock()
        monkeypatch.setattr(aggregate_module, "aggregate_global_patterns_job", job)

        aggregate_module.main(["--period", "2025-11"])

        job.assert_called_once_with(period=datetime(2025, 11, 1, tzinfo=timezone.utc))

    def test_main_defaults_to_current_period(self, monkeypatch):
        job = Mock()
        monkeypatch.setattr(aggregate_module, "aggregate_global_patterns_job", job)

        aggregate_module.main([])

        job.assert_called_once_with(period=None)

    def test_main_rejects_malformed_period(self, monkeypatch):
        monkeypatch.setattr(aggregate_module, "aggregate_global_patterns_job", Mock())

        with pytest.raises(SystemExit) as exc_info:
            aggregate_module.main(["--period", "2025-13"])
        assert exc_info.value.code == 2

    def test_main_exits_non_zero_on_failure(self, monkeypatch):
        monkeypatch.setattr(
            aggregate_module,
            "aggregate_global_patterns_job",
            Mock(side_effect=RuntimeError("pagination failed")),
        )

        with pytest.raises(SystemExit) as exc_info:
            aggregate_module.main([])
        assert exc_info.value.code == 1


class TestJobConfiguration:
    def test_learner_uses_given_config(self, session_factory, add_corrections):
        add_corrections("fam-a", "violence", "none", count=5)

        result = learn_module.learn_family_bias_job(
            session_factory=session_factory,
            config=Settings(feedback_batch_size=2),
        )

        assert result.entries_scanned == 2

    def test_aggregator_uses_given_config(self, session_factory, make_family, make_ledger, reference_now, monkeypatch):
        make_family("fam-a")
        make_family("fam-b")
        make_ledger("fam-a", [("violence", "none", 11)])
        make_ledger("fam-b", [("violence", "none", 1)])
        monkeypatch.setattr(
            "feedbackloop.db.repositories.FamilyRepository.has_opted_out",
            Mock(side_effect=[False, RuntimeError("settings unavailable")]),
        )
        config = Settings(global_pattern_review_threshold=20, anonymization_salt="other-salt")

        result = aggregate_module.aggregate_global_patterns_job(
            session_factory=session_factory, period=reference_now, config=config,
        )

        assert result.flagged_pattern_count == 0
        assert result.errors[0]["family_hash"] == hash_family_id("fam-b", "other-salt")

    def test_past_period_rerun_stamps_current_time(self, session_factory, db_session, make_family, make_ledger):
        make_family("fam-a")
        make_ledger("fam-a", [("violence", "none", 2)])
        run_start = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(seconds=1)

        aggregate_module.aggregate_global_patterns_job(
            session_factory=session_factory,
            period=parse_period_key("2026-01"),
        )

        db_session.expire_all()
        row = db_session.get(GlobalPatternAggregation, "2026-01_violence_to_none")
        assert row.period == "2026-01"
        assert row.aggregated_at.replace(tzinfo=None) >= run_start
        metrics = db_session.get(GlobalModelMetrics, "2026-01")
        assert metrics.aggregated_at.replace(tzinfo=None) >= run_start
