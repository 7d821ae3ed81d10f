"""
Audit data models for match integrity tracking.

These models define the structure of audit log entries written to JSONL files.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Audit event types."""

    MATCH_VALIDATED = "match_validated"
    MATCH_SEALED = "match_sealed"
    MATCH_REVERIFIED = "match_reverified"
    TAMPER_DETECTED = "tamper_detected"
    BATCH_STARTED = "batch_started"
    BATCH_COMPLETED = "batch_completed"


class AuditEvent(BaseModel):
    """Base audit event model."""

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Event timestamp (UTC)",
    )
    run_id: str = Field(..., description="Unique identifier for the integrity run")
    event_type: EventType = Field(..., description="Type of audit event")
    correlation_id: str | None = Field(
        None, description="Match ID for correlating related events"
    )
    participant_id: str | None = Field(None, description="Participant the match belongs to")

    class Config:
        """Pydantic configuration."""

        json_schema_extra = {
            "examples": [
                {
                    "timestamp": "2026-10-12T18:31:15.456Z",
                    "run_id": "20261012-183045-abc123",
                    "event_type": "batch_started",
                    "correlation_id": None,
                    "participant_id": "guest_1729180800_k3j2h1",
                }
            ]
        }


class ValidationAuditEvent(AuditEvent):
    """Audit event for a validated match."""

    score: int = Field(..., description="Trust score 0-100")
    is_valid: bool = Field(..., description="True iff no critical issue")
    issue_codes: list[str] = Field(default_factory=list)
    warning_codes: list[str] = Field(default_factory=list)


class VerificationAuditEvent(AuditEvent):
    """Audit event for sealing or re-verifying a match."""

    algorithm: str | None = Field(None, description="Digest algorithm used")
    hash_prefix: str | None = Field(None, description="First 16 characters of the record hash")
    modification_detected: bool = Field(False, description="True when re-verification failed")
    modified_fields: list[str] = Field(default_factory=list)


class BatchSummary(BaseModel):
    """Summary statistics for a batch verification run."""

    total: int = Field(0, description="Records in the batch")
    verified: int = Field(0, description="Records whose seal still holds")
    flagged: int = Field(0, description="Records with detected modifications")
    errors: int = Field(0, description="Records that could not be processed")


class BatchAuditEvent(AuditEvent):
    """Audit event for batch start or completion."""

    summary: BatchSummary | None = Field(
        None, description="Batch summary (only for batch_completed events)"
    )
