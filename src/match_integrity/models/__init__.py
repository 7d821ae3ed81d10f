"""
Pydantic models for match records, validation results and integrity fingerprints.
"""

from .match_data import (
    MatchInputs,
    MatchOutputs,
    MatchRecord,
    MatchStats,
    TeamStats,
    outcome_for,
)
from .profile import AnomalyAssessment, PlayerAnomalyProfile, StatBaseline
from .validation import (
    ValidationIssue,
    ValidationResult,
    ValidationWarning,
    score_rating,
)
from .verification import (
    BatchEntry,
    BatchVerificationReport,
    IntegrityHash,
    OutcomeCheck,
    RecordingOutcome,
    ReverifyReport,
    Seal,
    VerifiedMatchRecord,
)

__all__ = [
    "MatchInputs",
    "MatchOutputs",
    "MatchRecord",
    "MatchStats",
    "TeamStats",
    "outcome_for",
    "AnomalyAssessment",
    "PlayerAnomalyProfile",
    "StatBaseline",
    "ValidationIssue",
    "ValidationResult",
    "ValidationWarning",
    "score_rating",
    "BatchEntry",
    "BatchVerificationReport",
    "IntegrityHash",
    "OutcomeCheck",
    "RecordingOutcome",
    "ReverifyReport",
    "Seal",
    "VerifiedMatchRecord",
]
