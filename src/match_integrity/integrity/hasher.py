"""Deterministic fingerprints for match records.

A record is fingerprinted in three steps:

1. The condition fields (teams, side, duration) and the result fields
   (scores, goals, assists, outcome) are each canonicalized to sorted,
   whitespace-free JSON and digested into ``inputHash`` and ``outputHash``.
2. A random salt is generated once; the final hash covers both component
   hashes, the salt and the participant id.
3. Every sealed field is also digested on its own with the salt, so a later
   re-check can say which field changed rather than only that something did.

The digest primitive is a strategy chosen once at startup. SHA-256 is used
when ``hashlib`` provides it; otherwise a 32-bit folding hash is used and the
algorithm is recorded as ``fallback-nonsecure``.

All hashing methods are pure: the output depends only on the arguments.
"""

import hashlib
import hmac
import json
import secrets
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Optional

from match_integrity.models.match_data import MatchRecord
from match_integrity.models.verification import IntegrityHash, Seal
from match_integrity.utils.logger import get_logger

logger = get_logger()

INPUT_FIELDS = ("homeTeam", "awayTeam", "playerTeam", "duration")
OUTPUT_FIELDS = ("homeScore", "awayScore", "playerGoals", "playerAssists", "result")
SEALED_FIELDS = INPUT_FIELDS + OUTPUT_FIELDS

ALGORITHM_VERSION = 1
PREFIX_LENGTH = 16
SIGNATURE_LENGTH = 16


class IntegrityError(Exception):
    """Base exception for integrity fingerprint errors."""


class UnsupportedAlgorithmError(IntegrityError):
    """Raised when a stored hash names a digest algorithm this build cannot compute."""


def canonicalize(payload: Mapping[str, Any]) -> str:
    """Stable serialization: key order never affects the output."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def sealed_values(record: MatchRecord) -> dict[str, Any]:
    """The sealed fields of a record keyed by their persisted (camelCase) names."""
    dumped = record.model_dump(mode="json", by_alias=True)
    return {field: dumped.get(field) for field in SEALED_FIELDS}


class DigestStrategy(ABC):
    """A digest primitive used by the hasher."""

    name: str
    secure: bool

    @abstractmethod
    def digest(self, message: str) -> str:
        """Return the hex digest of ``message``."""


class Sha256Digest(DigestStrategy):
    """SHA-256 from hashlib."""

    name = "sha256"
    secure = True

    def digest(self, message: str) -> str:
        return hashlib.sha256(message.encode("utf-8")).hexdigest()


class FoldingDigest(DigestStrategy):
    """32-bit shift-and-subtract fold. Deterministic but trivially forgeable."""

    name = "fallback-nonsecure"
    secure = False

    def digest(self, message: str) -> str:
        value = 0
        for char in message:
            value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
        return f"{value:08x}"


DIGEST_STRATEGIES: dict[str, DigestStrategy] = {
    strategy.name: strategy for strategy in (Sha256Digest(), FoldingDigest())
}


def detect_digest_strategy(force_fallback: bool = False) -> DigestStrategy:
    """
    Pick the digest strategy for this host.

    Args:
        force_fallback: Use the non-secure digest even if SHA-256 is available

    Returns:
        Sha256Digest when hashlib can compute SHA-256, FoldingDigest otherwise
    """
    if force_fallback:
        logger.warning(
            "Non-secure fallback digest forced by configuration",
            extra={"algorithm": FoldingDigest.name},
        )
        return DIGEST_STRATEGIES[FoldingDigest.name]

    try:
        hashlib.new("sha256", b"availability")
    except ValueError as e:
        logger.warning(
            "SHA-256 unavailable, using non-secure fallback digest",
            extra={"error": str(e), "algorithm": FoldingDigest.name},
        )
        return DIGEST_STRATEGIES[FoldingDigest.name]

    return DIGEST_STRATEGIES[Sha256Digest.name]


class IntegrityHasher:
    """Generates and checks hashes, seals and proofs for match records."""

    def __init__(self, strategy: Optional[DigestStrategy] = None):
        """
        Initialize the hasher.

        Args:
            strategy: Digest primitive; detected from the host when omitted
        """
        self.strategy = strategy or detect_digest_strategy()

    @classmethod
    def for_algorithm(cls, algorithm: str) -> "IntegrityHasher":
        """
        Build a hasher able to recompute hashes made with ``algorithm``.

        Raises:
            UnsupportedAlgorithmError: If the algorithm is unknown
        """
        strategy = DIGEST_STRATEGIES.get(algorithm)
        if strategy is None:
            raise UnsupportedAlgorithmError(f"Unsupported digest algorithm: {algorithm!r}")
        return cls(strategy)

    @property
    def algorithm(self) -> str:
        return self.strategy.name

    @staticmethod
    def generate_salt() -> str:
        return secrets.token_hex(16)

    def _digest(self, payload: Mapping[str, Any]) -> str:
        return self.strategy.digest(canonicalize(payload))

    def field_hashes(self, record: MatchRecord, salt: str) -> dict[str, str]:
        """Salted digest of every sealed field, keyed by field name."""
        return {
            field: self._digest({"field": field, "salt": salt, "value": value})
            for field, value in sealed_values(record).items()
        }

    def generate_hash(
        self,
        record: MatchRecord,
        participant_id: str,
        salt: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> IntegrityHash:
        """
        Fingerprint a match record for a participant.

        Args:
            record: Record to fingerprint
            participant_id: Participant the record belongs to
            salt: Salt to reuse; a fresh one is generated when omitted
            created_at: Timestamp to stamp; defaults to now (UTC)

        Returns:
            IntegrityHash with component, per-field and final digests
        """
        salt = salt if salt is not None else self.generate_salt()
        values = sealed_values(record)

        input_hash = self._digest({field: values[field] for field in INPUT_FIELDS})
        output_hash = self._digest({field: values[field] for field in OUTPUT_FIELDS})
        final_hash = self._digest(
            {
                "inputHash": input_hash,
                "outputHash": output_hash,
                "participantId": participant_id,
                "salt": salt,
            }
        )

        return IntegrityHash(
            hash=final_hash,
            input_hash=input_hash,
            output_hash=output_hash,
            field_hashes=self.field_hashes(record, salt),
            salt=salt,
            algorithm=self.algorithm,
            version=ALGORITHM_VERSION,
            created_at=created_at or datetime.now(timezone.utc),
        )

    def generate_proof(self, record: MatchRecord, integrity_hash: IntegrityHash) -> str:
        """Shareable ``PROOF:<id>:<hash prefix>:<home>-<away>`` string."""
        return (
            f"PROOF:{record.id}:{integrity_hash.hash[:PREFIX_LENGTH]}:"
            f"{record.get_score_string()}"
        )

    def verify_proof(
        self, proof: str, record: MatchRecord, integrity_hash: IntegrityHash
    ) -> bool:
        """True when the proof matches the record and hash exactly."""
        expected = self.generate_proof(record, integrity_hash)
        return hmac.compare_digest(proof.encode("utf-8"), expected.encode("utf-8"))

    def create_seal(
        self, record: MatchRecord, participant_id: str, integrity_hash: IntegrityHash
    ) -> Seal:
        """
        Bind the hash, its timestamp and the participant into a seal.

        The signature is a deterministic checksum over those values and the
        record id, not a private-key signature.
        """
        sealed_at = integrity_hash.created_at_ms
        signature = self._digest(
            {
                "hash": integrity_hash.hash,
                "participantId": participant_id,
                "recordId": record.id,
                "sealedAt": sealed_at,
                "tag": "SEALED",
            }
        )[:SIGNATURE_LENGTH]

        return Seal(
            hash=integrity_hash.hash,
            sealed_at=sealed_at,
            participant_id=participant_id,
            record_id=record.id,
            signature=signature,
        )

    def verify_seal(
        self,
        seal: Seal,
        record: MatchRecord,
        participant_id: str,
        integrity_hash: IntegrityHash,
    ) -> bool:
        """Recreate the seal from the arguments and compare every field with ``seal``."""
        expected = self.create_seal(record, participant_id, integrity_hash)
        return (
            hmac.compare_digest(seal.token.encode("utf-8"), expected.token.encode("utf-8"))
            and seal.hash == expected.hash
            and seal.record_id == expected.record_id
        )

    def generate_fingerprint(self, record: MatchRecord) -> str:
        """Unsalted digest of the sealed fields, for deduplication."""
        return self._digest(sealed_values(record))

    def compare_outcomes(self, first: MatchRecord, second: MatchRecord) -> bool:
        """True when two records report the same outcome, ignoring id and date."""
        return self.generate_fingerprint(first) == self.generate_fingerprint(second)
