"""Unit tests for the JSONL audit logger."""

import json
from datetime import datetime, timezone

import pytest

from match_integrity.models.audit import BatchSummary
from match_integrity.models.validation import ValidationResult, ValidationWarning
from match_integrity.models.verification import ReverifyReport
from match_integrity.utils.audit_logger import AuditLogger


@pytest.fixture
def audit_logger(tmp_path):
    return AuditLogger(run_id="20261017-120000-abc123", audit_dir=tmp_path / "audit")


class TestAuditLogger:
    """Test cases for AuditLogger."""

    def test_creates_directory(self, audit_logger, tmp_path):
        assert audit_logger.get_audit_directory() == tmp_path / "audit"
        assert (tmp_path / "audit").is_dir()

    def test_daily_file_name(self, audit_logger):
        audit_logger.log_batch_started("guest_1")

        date_str = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        log_file = audit_logger.get_audit_directory() / f"integrity-audit-{date_str}.jsonl"
        lines = log_file.read_text().splitlines()

        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["event_type"] == "batch_started"
        assert entry["run_id"] == "20261017-120000-abc123"
        assert entry["participant_id"] == "guest_1"

    def test_log_validation(self, audit_logger):
        result = ValidationResult(
            is_valid=True,
            score=97,
            warnings=[ValidationWarning(code="VERY_LONG_MATCH", message="m", recommendation="r")],
        )

        audit_logger.log_validation("match_1", result, "guest_1")

        (entry,) = audit_logger.read_events()
        assert entry["correlation_id"] == "match_1"
        assert entry["score"] == 97
        assert entry["warning_codes"] == ["VERY_LONG_MATCH"]

    def test_log_reverified_tamper(self, audit_logger):
        report = ReverifyReport(
            record_id="match_1",
            still_valid=False,
            hash_matches=False,
            seal_matches=False,
            modification_detected=True,
            modified_fields=["homeScore"],
            algorithm="sha256",
        )

        audit_logger.log_reverified(report, "guest_1")

        (entry,) = audit_logger.read_events()
        assert entry["event_type"] == "tamper_detected"
        assert entry["modified_fields"] == ["homeScore"]

    def test_log_reverified_intact(self, audit_logger):
        report = ReverifyReport(
            record_id="match_1",
            still_valid=True,
            hash_matches=True,
            seal_matches=True,
            modification_detected=False,
        )

        audit_logger.log_reverified(report, "guest_1")

        assert audit_logger.read_events()[0]["event_type"] == "match_reverified"

    def test_log_sealed(self, audit_logger, service, record):
        verified = service.apply_verification(record, "guest_1")

        audit_logger.log_sealed(verified)

        (entry,) = audit_logger.read_events()
        assert entry["event_type"] == "match_sealed"
        assert entry["hash_prefix"] == verified.integrity_hash.hash[:16]
        assert entry["algorithm"] == "sha256"

    def test_log_batch_completed(self, audit_logger):
        audit_logger.log_batch_completed("guest_1", BatchSummary(total=3, verified=2, flagged=1))

        entry = audit_logger.read_events()[0]
        assert entry["summary"] == {"total": 3, "verified": 2, "flagged": 1, "errors": 0}

    def test_read_events_missing_day(self, audit_logger):
        assert audit_logger.read_events("2001-01-01") == []
