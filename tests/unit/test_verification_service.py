"""
Unit tests for the verification service.

Tests sealing, tamper detection, recording and batch verification.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from match_integrity.integrity.hasher import FoldingDigest, IntegrityHasher
from match_integrity.integrity.verification_service import (
    VerificationService,
    render_batch_report,
)
from match_integrity.utils.audit_logger import AuditLogger


class TestApplyVerification:
    """Test cases for sealing records."""

    def test_sealed_record_carries_fingerprint(self, service, record, clock):
        verified = service.apply_verification(record, "guest_1")

        assert verified.id == record.id
        assert verified.home_score == record.home_score
        assert verified.integrity_hash.algorithm == "sha256"
        assert verified.seal.participant_id == "guest_1"
        assert verified.seal.sealed_at == verified.integrity_hash.created_at_ms
        assert verified.proof.startswith("PROOF:match_1:")
        assert verified.outcome_signature
        assert verified.integrity_verified
        assert verified.last_verified == clock()

    def test_metrics_recorded(self, service, record, metrics):
        service.apply_verification(record, "guest_1")
        metrics.record_verification.assert_called_once_with("sha256")

    def test_resealing_a_verified_record(self, service, record):
        """A verified record can be sealed again; its old fingerprint is dropped."""
        first = service.apply_verification(record, "guest_1")
        second = service.apply_verification(first, "guest_1")

        assert second.integrity_hash.salt != first.integrity_hash.salt


class TestReverifyMatch:
    """Test cases for tamper detection."""

    def test_unmodified_record_is_still_valid(self, service, record):
        verified = service.apply_verification(record, "guest_1")

        report = service.reverify_match(verified, "guest_1")

        assert report.still_valid
        assert report.hash_matches
        assert report.seal_matches
        assert report.proof_matches
        assert not report.modification_detected
        assert report.modified_fields == []
        assert report.details[0] == "Hash verification: PASS"

    def test_modified_home_score_is_detected(self, service, record, metrics):
        verified = service.apply_verification(record, "guest_1")
        tampered = verified.model_copy(update={"home_score": 5})

        report = service.reverify_match(tampered, "guest_1")

        assert report.modification_detected
        assert not report.still_valid
        assert report.modified_fields == ["homeScore"]
        assert any(detail.startswith("homeScore:") for detail in report.details)
        assert not report.proof_matches
        metrics.record_tamper.assert_called_once_with(["homeScore"])

    @pytest.mark.parametrize(
        "update,field",
        [
            ({"player_goals": 2}, "playerGoals"),
            ({"away_team": "Elsewhere"}, "awayTeam"),
            ({"duration": 45}, "duration"),
            ({"result": "draw"}, "result"),
        ],
    )
    def test_each_field_is_named(self, service, record, update, field):
        verified = service.apply_verification(record, "guest_1")

        report = service.reverify_match(verified.model_copy(update=update), "guest_1")

        assert report.modified_fields == [field]

    def test_changed_id_is_detected(self, service, record):
        verified = service.apply_verification(record, "guest_1")

        report = service.reverify_match(verified.model_copy(update={"id": "match_2"}), "guest_1")

        assert report.modification_detected
        assert "id" in report.modified_fields

    def test_relabelled_seal_is_detected(self, service, record):
        verified = service.apply_verification(record, "guest_1")
        relabelled = verified.seal.model_copy(update={"record_id": "other_match"})

        report = service.reverify_match(verified.model_copy(update={"seal": relabelled}), "guest_1")

        assert report.hash_matches
        assert not report.seal_matches
        assert not report.still_valid
        assert report.modification_detected
        assert report.modified_fields == ["id"]

    def test_wrong_participant(self, service, record):
        verified = service.apply_verification(record, "guest_1")

        report = service.reverify_match(verified, "guest_2")

        assert report.modification_detected
        assert report.modified_fields == []
        assert any("guest_1" in detail and "guest_2" in detail for detail in report.details)

    def test_unknown_algorithm_fails_closed(self, service, record):
        verified = service.apply_verification(record, "guest_1")
        unknown = verified.integrity_hash.model_copy(update={"algorithm": "md5"})

        report = service.reverify_match(verified.model_copy(update={"integrity_hash": unknown}), "guest_1")

        assert not report.still_valid
        assert report.modification_detected
        assert "md5" in report.details[0]

    def test_fallback_digest_roundtrip(self, engine, metrics, clock, record):
        service = VerificationService(
            engine=engine, hasher=IntegrityHasher(FoldingDigest()), metrics=metrics, clock=clock
        )
        verified = service.apply_verification(record, "guest_1")

        report = service.reverify_match(verified, "guest_1")

        assert verified.integrity_hash.algorithm == "fallback-nonsecure"
        assert report.still_valid
        assert any("non-secure" in detail for detail in report.details)

    def test_refresh_verification(self, service, record):
        verified = service.apply_verification(record, "guest_1")
        tampered = verified.model_copy(update={"away_score": 0})

        refreshed = service.refresh_verification(tampered, service.reverify_match(tampered, "guest_1"))

        assert not refreshed.integrity_verified
        assert verified.integrity_verified


class TestRecordMatch:
    """Test cases for validating and sealing in one step."""

    def test_clean_match(self, service, record, steady_history, metrics):
        outcome = service.record_match(record, "guest_1", history=steady_history)

        assert outcome.validation.score == 100
        assert not outcome.suspicious
        assert outcome.verified.integrity_verified
        metrics.record_validation.assert_called_once_with("Excellent", [])

    def test_suspicious_match_is_sealed_not_blocked(self, service, breakout_record, low_scoring_history):
        outcome = service.record_match(breakout_record, "guest_1", history=low_scoring_history)

        assert outcome.suspicious
        assert not outcome.validation.is_valid
        assert outcome.verified.id == breakout_record.id
        assert service.reverify_match(outcome.verified, "guest_1").still_valid

    def test_history_provider_and_store(self, engine, hasher, metrics, clock, breakout_record, low_scoring_history):
        store = MagicMock()
        provider = MagicMock()
        provider.load_history.return_value = low_scoring_history
        service = VerificationService(
            engine=engine,
            hasher=hasher,
            metrics=metrics,
            clock=clock,
            store=store,
            history_provider=provider,
        )

        outcome = service.record_match(breakout_record, "guest_1")

        provider.load_history.assert_called_once_with("guest_1")
        store.save.assert_called_once_with("guest_1", outcome.verified)
        assert outcome.validation.has_warning("ANOMALY_GOALS")

    def test_audit_events_written(self, engine, hasher, metrics, clock, record, tmp_path):
        audit_logger = AuditLogger(run_id="run-1", audit_dir=tmp_path)
        service = VerificationService(
            engine=engine, hasher=hasher, metrics=metrics, clock=clock, audit_logger=audit_logger
        )

        outcome = service.record_match(record, "guest_1")
        service.reverify_match(outcome.verified.model_copy(update={"home_score": 7}), "guest_1")

        events = [entry["event_type"] for entry in audit_logger.read_events()]
        assert events == ["match_validated", "match_sealed", "tamper_detected"]


class TestVerifyBatch:
    """Test cases for batch verification."""

    def test_batch_isolates_failures_and_keeps_order(self, service, make_record, metrics):
        good = service.apply_verification(make_record(id="m1"), "guest_1")
        tampered = service.apply_verification(make_record(id="m3"), "guest_1").model_copy(
            update={"player_goals": 2}
        )
        broken = {"id": "m2", "homeScore": "??"}

        report = service.verify_batch([good, broken, tampered], "guest_1")

        assert [entry.index for entry in report.entries] == [0, 1, 2]
        assert report.entries[0].ok and report.entries[0].reverify.still_valid
        assert not report.entries[1].ok
        assert report.entries[1].record_id == "m2"
        assert report.entries[1].error.startswith("ValidationError")
        assert report.entries[2].reverify.modified_fields == ["playerGoals"]
        assert report.verified_count == 1
        assert report.flagged_count == 1
        assert report.error_count == 1
        metrics.record_batch_item_error.assert_called_once_with("ValidationError")

    def test_batch_accepts_serialized_records(self, service, make_record):
        sealed = [
            service.apply_verification(make_record(id=f"m{i}"), "guest_1").model_dump(mode="json", by_alias=True)
            for i in range(3)
        ]

        report = service.verify_batch(sealed, "guest_1")

        assert report.verified_count == 3
        assert report.average_score == 100
        assert report.suspicious_count == 0
        assert report.fairness_rating == "Excellent"

    def test_tampered_records_count_as_suspicious(self, service, make_record):
        sealed = [service.apply_verification(make_record(id=f"m{i}"), "guest_1") for i in range(4)]
        sealed[0] = sealed[0].model_copy(update={"away_team": "Someone Else"})

        report = service.verify_batch(sealed, "guest_1")

        assert report.suspicious_count == 1
        assert report.fairness_rating == "Good"

    def test_empty_batch(self, service):
        report = service.verify_batch([], "guest_1")

        assert report.total == 0
        assert report.average_score == 0.0
        assert report.fairness_rating == "Poor"


class TestReports:
    """Test cases for text reports."""

    def test_verification_report(self, service, record):
        outcome = service.record_match(record, "guest_1")

        text = service.generate_verification_report(outcome.verified, "guest_1", validation=outcome.validation)

        assert "MATCH OUTCOME VERIFICATION REPORT" in text
        assert "Teams: Harbor City vs North Vale" in text
        assert "[OK] No tampering detected" in text
        assert outcome.verified.proof in text
        assert "Match Validation Report (Score: 100/100, Excellent)" in text

    def test_verification_report_flags_tampering(self, service, record):
        verified = service.apply_verification(record, "guest_1").model_copy(update={"home_score": 4})

        text = service.generate_verification_report(verified, "guest_1")

        assert "[FAIL] Potential data tampering detected" in text
        assert "homeScore" in text

    def test_batch_report(self, service, make_record):
        sealed = [service.apply_verification(make_record(id="m1"), "guest_1"), {"id": "m2"}]

        text = service.generate_batch_report(sealed, "guest_1")

        assert "TOTAL MATCHES: 2" in text
        assert "[OK] m1: score 100 (Excellent)" in text
        assert "[ERROR] m2" in text
        assert "FAIRNESS RATING:" in text

    def test_render_batch_report_lists_modified_fields(self, service, make_record):
        tampered = service.apply_verification(make_record(id="m1"), "guest_1").model_copy(
            update={"duration": 60}
        )

        text = render_batch_report(service.verify_batch([tampered], "guest_1"))

        assert "[FLAGGED] m1" in text
        assert "modified: duration" in text


class TestOutcomeChecks:
    """Test cases for outcome checks surfaced through the service."""

    def test_outcome_helpers_on_service(self, service, record):
        assert service.is_outcome_consistent(record.inputs(), record.outputs())
        assert 0 < service.calculate_outcome_probability("A", "B", 2, 1, 90) <= 1

    def test_reverify_reports_outcome_checks(self, service, record):
        verified = service.apply_verification(record, "guest_1")

        report = service.reverify_match(verified, "guest_1")

        assert report.outcome_matches is True
        assert "Outcome consistency: PASS" in report.details
        assert "Outcome probability: 94%" in report.details
        assert "Outcome signature: PASS" in report.details

    def test_tampered_outcome_signature(self, service, record):
        verified = service.apply_verification(record, "guest_1")

        report = service.reverify_match(
            verified.model_copy(update={"outcome_signature": "SGFyYm9yIENpdHk="}), "guest_1"
        )

        assert not report.still_valid
        assert report.modification_detected
        assert report.hash_matches
        assert report.outcome_matches is False
        assert report.modified_fields == ["outcomeSignature"]
        assert "Outcome signature: FAIL" in report.details

    def test_changed_scores_are_named_instead_of_signature(self, service, record):
        verified = service.apply_verification(record, "guest_1")

        report = service.reverify_match(verified.model_copy(update={"away_score": 0}), "guest_1")

        assert report.outcome_matches is False
        assert report.modified_fields == ["awayScore"]

    def test_verification_report_lists_outcome_checks(self, service, record):
        verified = service.apply_verification(record, "guest_1")

        text = service.generate_verification_report(verified, "guest_1")

        assert "OUTCOME CHECKS:" in text
        assert "  Outcome consistency: PASS" in text
        assert "match-integrity://verify/" in text

    def test_shareable_proof_roundtrip(self, service, record):
        verified = service.apply_verification(record, "guest_1")

        token = service.generate_shareable_proof(verified, "guest_1")

        assert service.verify_shareable_proof(token, verified, "guest_1")
        assert not service.verify_shareable_proof(token, verified, "guest_2")
        assert not service.verify_shareable_proof(
            token, verified.model_copy(update={"proof": "PROOF:match_1:0:0"}), "guest_1"
        )


class TestHistoryOrdering:
    """Anomaly checks only see matches played before the record."""

    def _later_wins(self, make_record, clock):
        return [
            make_record(id=f"later_{i}", date=clock() - timedelta(days=10 - i)) for i in range(6)
        ]

    def test_batch_ignores_later_matches(self, service, make_record, clock, steady_history):
        earlier = service.apply_verification(
            make_record(id="earlier", date=clock() - timedelta(days=15)), "guest_1"
        )

        report = service.verify_batch(
            [earlier], "guest_1", history=steady_history + self._later_wins(make_record, clock)
        )

        validation = report.entries[0].validation
        assert not validation.has_warning("IMPROBABLE_STREAK")
        assert validation.score == 100

    def test_record_match_ignores_later_matches(self, service, make_record, clock, steady_history):
        earlier = make_record(id="earlier", date=clock() - timedelta(days=15))

        outcome = service.record_match(
            earlier, "guest_1", history=steady_history + self._later_wins(make_record, clock)
        )

        assert not outcome.validation.has_warning("IMPROBABLE_STREAK")
        assert not outcome.suspicious

    def test_earlier_wins_still_count(self, service, make_record, clock, steady_history):
        latest = service.apply_verification(make_record(id="latest"), "guest_1")

        report = service.verify_batch(
            [latest], "guest_1", history=steady_history + self._later_wins(make_record, clock)
        )

        assert report.entries[0].validation.has_warning("IMPROBABLE_STREAK")


class TestDuplicateOutcomes:
    """Test cases for matches reporting an identical outcome."""

    def test_record_match_names_duplicate(self, service, make_record, clock, record):
        history = [make_record(id="match_0", date=clock() - timedelta(days=2))]

        outcome = service.record_match(record, "guest_1", history=history)

        assert outcome.duplicate_of == "match_0"
        assert outcome.verified.id == "match_1"

    def test_record_match_without_duplicate(self, service, record, steady_history):
        outcome = service.record_match(record, "guest_1", history=steady_history)

        assert outcome.duplicate_of is None

    def test_batch_marks_duplicates_without_flagging(self, service, make_record):
        sealed = [
            service.apply_verification(make_record(id="m0"), "guest_1"),
            service.apply_verification(make_record(id="m1", away_score=0), "guest_1"),
            service.apply_verification(make_record(id="m2"), "guest_1"),
        ]

        report = service.verify_batch(sealed, "guest_1")

        assert [entry.duplicate_of for entry in report.entries] == [None, None, "m0"]
        assert report.suspicious_count == 0
        assert "duplicate of: m0" in render_batch_report(report)
