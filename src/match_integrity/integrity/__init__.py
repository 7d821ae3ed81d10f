"""
Match integrity core: anomaly profiling, hashing, validation and verification.
"""

from .anomaly_profiler import AnomalyProfiler
from .config import IntegrityConfig, load_config
from .hasher import (
    DigestStrategy,
    FoldingDigest,
    IntegrityError,
    IntegrityHasher,
    Sha256Digest,
    UnsupportedAlgorithmError,
    detect_digest_strategy,
)
from .outcome import calculate_outcome_probability, is_outcome_consistent
from .validation_engine import (
    ValidationEngine,
    fairness_rating,
    generate_report,
    is_suspicious,
)
from .verification_service import VerificationService, render_batch_report

__all__ = [
    "AnomalyProfiler",
    "IntegrityConfig",
    "load_config",
    "DigestStrategy",
    "FoldingDigest",
    "IntegrityError",
    "IntegrityHasher",
    "Sha256Digest",
    "UnsupportedAlgorithmError",
    "detect_digest_strategy",
    "calculate_outcome_probability",
    "is_outcome_consistent",
    "ValidationEngine",
    "fairness_rating",
    "generate_report",
    "is_suspicious",
    "VerificationService",
    "render_batch_report",
]
