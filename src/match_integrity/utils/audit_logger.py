"""
Audit logger for tracking match integrity activity.

Writes JSONL (JSON Lines) audit logs with daily file rotation.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any

from match_integrity.models.audit import (
    AuditEvent,
    BatchAuditEvent,
    BatchSummary,
    EventType,
    ValidationAuditEvent,
    VerificationAuditEvent,
)
from match_integrity.models.validation import ValidationResult
from match_integrity.models.verification import ReverifyReport, VerifiedMatchRecord
from match_integrity.utils.logger import get_logger

logger = get_logger()


class AuditLogger:
    """
    Audit logger that writes JSONL files with daily rotation.

    Each audit entry is written as a single-line JSON object. Files are
    rotated daily based on UTC date.
    """

    def __init__(self, run_id: str, audit_dir: Path):
        """
        Initialize audit logger.

        Args:
            run_id: Unique identifier for this integrity run
            audit_dir: Directory the JSONL files are written to
        """
        self.run_id = run_id
        self._lock = Lock()
        self._audit_dir = Path(audit_dir)
        self._ensure_directory_exists()

    def _ensure_directory_exists(self) -> None:
        """Create the audit directory if it doesn't exist."""
        try:
            self._audit_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(
                f"Failed to create audit directory: {e}",
                extra={"audit_dir": str(self._audit_dir), "error": str(e)},
            )
            raise

    def _get_current_log_file(self) -> Path:
        """
        Get the current log file path based on UTC date.

        Returns:
            Path to current audit log file
        """
        date_str = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        return self._audit_dir / f"integrity-audit-{date_str}.jsonl"

    def _write_event(self, event: AuditEvent) -> None:
        """
        Write an audit event to the current log file.

        Args:
            event: Event to serialize
        """
        event_dict = event.model_dump(mode="json")
        log_file = self._get_current_log_file()

        with self._lock:
            try:
                with open(log_file, "a") as f:
                    json.dump(event_dict, f, default=str)
                    f.write("\n")
            except OSError as e:
                logger.error(
                    "Failed to write audit event",
                    extra={
                        "error": str(e),
                        "log_file": str(log_file),
                        "event_type": event_dict.get("event_type"),
                    },
                )
                raise

    def log_validation(
        self, record_id: str, result: ValidationResult, participant_id: str | None = None
    ) -> None:
        """
        Log a validated match.

        Args:
            record_id: Match ID for correlation
            result: Validation outcome
            participant_id: Participant the match belongs to
        """
        self._write_event(
            ValidationAuditEvent(
                run_id=self.run_id,
                event_type=EventType.MATCH_VALIDATED,
                correlation_id=record_id,
                participant_id=participant_id,
                score=result.score,
                is_valid=result.is_valid,
                issue_codes=[issue.code for issue in result.issues],
                warning_codes=[warning.code for warning in result.warnings],
            )
        )

    def log_sealed(self, verified: VerifiedMatchRecord) -> None:
        """
        Log a freshly sealed match.

        Args:
            verified: The sealed record
        """
        self._write_event(
            VerificationAuditEvent(
                run_id=self.run_id,
                event_type=EventType.MATCH_SEALED,
                correlation_id=verified.id,
                participant_id=verified.seal.participant_id,
                algorithm=verified.integrity_hash.algorithm,
                hash_prefix=verified.integrity_hash.hash[:16],
            )
        )

    def log_reverified(self, report: ReverifyReport, participant_id: str) -> None:
        """
        Log a re-verification; failed checks are written as tamper events.

        Args:
            report: Re-verification outcome
            participant_id: Participant the record was checked for
        """
        event_type = (
            EventType.TAMPER_DETECTED
            if report.modification_detected
            else EventType.MATCH_REVERIFIED
        )
        self._write_event(
            VerificationAuditEvent(
                run_id=self.run_id,
                event_type=event_type,
                correlation_id=report.record_id,
                participant_id=participant_id,
                algorithm=report.algorithm,
                modification_detected=report.modification_detected,
                modified_fields=report.modified_fields,
            )
        )

    def log_batch_started(self, participant_id: str) -> None:
        """Log the start of a batch verification."""
        self._write_event(
            BatchAuditEvent(
                run_id=self.run_id,
                event_type=EventType.BATCH_STARTED,
                participant_id=participant_id,
            )
        )

    def log_batch_completed(self, participant_id: str, summary: BatchSummary) -> None:
        """
        Log the completion of a batch verification.

        Args:
            participant_id: Participant the batch belongs to
            summary: Batch totals
        """
        self._write_event(
            BatchAuditEvent(
                run_id=self.run_id,
                event_type=EventType.BATCH_COMPLETED,
                participant_id=participant_id,
                summary=summary,
            )
        )

    def read_events(self, date_str: str | None = None) -> list[dict[str, Any]]:
        """
        Load audit entries for a day (defaults to today, UTC).

        Args:
            date_str: Date in YYYY-MM-DD form

        Returns:
            Parsed audit entries in file order
        """
        if date_str is None:
            log_file = self._get_current_log_file()
        else:
            log_file = self._audit_dir / f"integrity-audit-{date_str}.jsonl"

        if not log_file.exists():
            return []

        with open(log_file) as f:
            return [json.loads(line) for line in f if line.strip()]

    def get_audit_directory(self) -> Path:
        """
        Get the audit directory path.

        Returns:
            Path to audit directory
        """
        return self._audit_dir
