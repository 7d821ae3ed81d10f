"""
Integrity fingerprint models: hash, seal, verified record, tamper reports.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from .match_data import MatchRecord
from .validation import ValidationResult

SECURE_ALGORITHMS = frozenset({"sha256"})


class IntegrityHash(BaseModel):
    """
    Fingerprint of a match record.

    ``input_hash`` covers the condition fields (teams, side, duration),
    ``output_hash`` the result fields (scores, goals, assists, outcome) and
    ``hash`` binds both to the salt and participant id. ``field_hashes`` holds
    one salted digest per sealed field so a later re-check can name exactly
    which field changed.
    """

    hash: str = Field(..., description="Final digest over input/output hashes, salt and participant")
    input_hash: str = Field(..., description="Digest of the condition fields")
    output_hash: str = Field(..., description="Digest of the result fields")
    field_hashes: dict[str, str] = Field(default_factory=dict, description="Salted digest per sealed field")
    salt: str = Field(..., min_length=1, description="Random salt generated once at hashing time")
    algorithm: str = Field(..., description="Digest algorithm name")
    version: int = Field(1, description="Hash layout version")
    created_at: datetime = Field(..., description="When the hash was generated")

    class Config:
        """Pydantic configuration."""

        alias_generator = to_camel
        populate_by_name = True
        frozen = True
        extra = "forbid"

    @property
    def is_secure(self) -> bool:
        """False for fallback digests, which callers must treat as lower trust."""
        return self.algorithm in SECURE_ALGORITHMS

    @property
    def created_at_ms(self) -> int:
        return int(self.created_at.timestamp() * 1000)


class Seal(BaseModel):
    """Tamper-evidence token binding a hash, a timestamp and a participant."""

    hash: str = Field(..., description="Sealed record hash")
    sealed_at: int = Field(..., description="Seal timestamp (epoch milliseconds)")
    participant_id: str = Field(..., min_length=1, description="Participant the record belongs to")
    record_id: str = Field(..., min_length=1, description="Sealed record id")
    signature: str = Field(..., description="Deterministic checksum over the other fields")

    class Config:
        """Pydantic configuration."""

        alias_generator = to_camel
        populate_by_name = True
        frozen = True
        extra = "forbid"

    @property
    def token(self) -> str:
        """Compact string form of the seal."""
        return f"SEAL:{self.participant_id}:{self.hash[:16]}:{self.sealed_at}:{self.signature}"


class VerifiedMatchRecord(MatchRecord):
    """A MatchRecord carrying its integrity hash, seal and proof."""

    integrity_hash: IntegrityHash = Field(..., description="Fingerprint taken at recording time")
    seal: Seal = Field(..., description="Tamper-evidence seal")
    proof: str = Field(..., description="Shareable proof string")
    outcome_signature: Optional[str] = Field(None, description="Quick outcome signature")
    integrity_verified: bool = Field(True, description="Result of the most recent verification")
    last_verified: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the record was last verified",
    )


class ReverifyReport(BaseModel):
    """Outcome of re-hashing a stored record and comparing it with its seal."""

    record_id: Optional[str] = None
    still_valid: bool
    hash_matches: bool
    seal_matches: bool
    proof_matches: bool = False
    outcome_matches: Optional[bool] = None
    modification_detected: bool
    modified_fields: list[str] = Field(default_factory=list)
    details: list[str] = Field(default_factory=list)
    algorithm: Optional[str] = None
    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        """Pydantic configuration."""

        alias_generator = to_camel
        populate_by_name = True


class RecordingOutcome(BaseModel):
    """A recorded match: always sealed, annotated with its validation."""

    verified: VerifiedMatchRecord
    validation: ValidationResult
    suspicious: bool
    duplicate_of: Optional[str] = Field(None, description="History match with the same outcome fingerprint")


class BatchEntry(BaseModel):
    """One record's outcome inside a batch; exactly one of result/error is set."""

    index: int = Field(..., ge=0, description="Position of the record in the input")
    record_id: Optional[str] = None
    validation: Optional[ValidationResult] = None
    reverify: Optional[ReverifyReport] = None
    duplicate_of: Optional[str] = None
    error: Optional[str] = None

    class Config:
        """Pydantic configuration."""

        alias_generator = to_camel
        populate_by_name = True

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchVerificationReport(BaseModel):
    """Structured result of verifying many records for one participant."""

    participant_id: str
    entries: list[BatchEntry] = Field(default_factory=list)
    average_score: float = 0.0
    suspicious_count: int = 0
    fairness_rating: str = "Poor"
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        """Pydantic configuration."""

        alias_generator = to_camel
        populate_by_name = True

    @property
    def total(self) -> int:
        return len(self.entries)

    @property
    def verified_count(self) -> int:
        return sum(1 for e in self.entries if e.ok and e.reverify and e.reverify.still_valid)

    @property
    def flagged_count(self) -> int:
        return sum(1 for e in self.entries if e.ok and e.reverify and not e.reverify.still_valid)

    @property
    def error_count(self) -> int:
        return sum(1 for e in self.entries if not e.ok)


class OutcomeCheck(BaseModel):
    """Consistency, plausibility and signature check of a reported outcome."""

    consistent: bool = Field(..., description="Result follows from the scores and goal rate")
    probability: float = Field(..., ge=0, le=1, description="Heuristic plausibility of the score")
    signature: str = Field(..., description="Outcome signature of the current values")
    signature_matches: Optional[bool] = Field(
        None, description="Comparison with a stored signature; None when none was stored"
    )
    details: list[str] = Field(default_factory=list)

    class Config:
        """Pydantic configuration."""

        alias_generator = to_camel
        populate_by_name = True

    @property
    def passed(self) -> bool:
        return self.consistent and self.signature_matches is not False
