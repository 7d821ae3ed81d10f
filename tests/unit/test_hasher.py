"""
Unit tests for the integrity hasher.

Tests digest strategies, hash determinism, proofs and seals.
"""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from match_integrity.integrity.hasher import (
    SEALED_FIELDS,
    FoldingDigest,
    IntegrityError,
    IntegrityHasher,
    Sha256Digest,
    UnsupportedAlgorithmError,
    canonicalize,
    detect_digest_strategy,
)

CREATED_AT = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)

SEALED_FIELD_CHANGES = {
    "homeTeam": {"home_team": "South Bay"},
    "awayTeam": {"away_team": "East Ridge"},
    "playerTeam": {"player_team": "away"},
    "duration": {"duration": 91},
    "homeScore": {"home_score": 3},
    "awayScore": {"away_score": 0},
    "playerGoals": {"player_goals": 2},
    "playerAssists": {"player_assists": 0},
    "result": {"result": "draw"},
}


class TestDigestStrategies:
    """Test cases for the digest primitives."""

    def test_sha256_digest(self):
        digest = Sha256Digest().digest("abc")
        assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_folding_digest_known_values(self):
        folding = FoldingDigest()
        assert folding.digest("") == "00000000"
        assert folding.digest("a") == "00000061"
        assert folding.digest("ab") == "00000c21"

    def test_folding_digest_wraps_to_32_bits(self):
        assert len(FoldingDigest().digest("x" * 500)) == 8

    def test_detect_prefers_sha256(self):
        assert detect_digest_strategy().name == "sha256"

    def test_detect_falls_back_when_sha256_missing(self):
        """A host without SHA-256 gets the folding digest."""
        with patch(
            "match_integrity.integrity.hasher.hashlib.new",
            side_effect=ValueError("unsupported hash type sha256"),
        ):
            strategy = detect_digest_strategy()

        assert strategy.name == "fallback-nonsecure"
        assert not strategy.secure

    def test_detect_forced_fallback(self):
        assert detect_digest_strategy(force_fallback=True).name == "fallback-nonsecure"

    def test_for_algorithm(self):
        assert IntegrityHasher.for_algorithm("sha256").algorithm == "sha256"
        assert IntegrityHasher.for_algorithm("fallback-nonsecure").algorithm == "fallback-nonsecure"

    def test_for_unknown_algorithm(self):
        with pytest.raises(UnsupportedAlgorithmError):
            IntegrityHasher.for_algorithm("md5")
        assert issubclass(UnsupportedAlgorithmError, IntegrityError)


class TestCanonicalize:
    """Test cases for canonical serialization."""

    def test_key_order_does_not_matter(self):
        assert canonicalize({"b": 1, "a": 2}) == canonicalize({"a": 2, "b": 1})

    def test_no_whitespace(self):
        assert canonicalize({"a": [1, 2]}) == '{"a":[1,2]}'


class TestGenerateHash:
    """Test cases for IntegrityHasher.generate_hash."""

    def test_same_salt_same_hash(self, hasher, record):
        first = hasher.generate_hash(record, "guest_1", salt="s1", created_at=CREATED_AT)
        second = hasher.generate_hash(record, "guest_1", salt="s1", created_at=CREATED_AT)

        assert first == second
        assert len(first.hash) == 64
        assert first.algorithm == "sha256"
        assert first.is_secure

    def test_fresh_salt_each_call(self, hasher, record):
        first = hasher.generate_hash(record, "guest_1")
        second = hasher.generate_hash(record, "guest_1")

        assert first.salt != second.salt
        assert first.hash != second.hash
        assert first.input_hash == second.input_hash
        assert first.output_hash == second.output_hash

    def test_participant_changes_hash(self, hasher, record):
        first = hasher.generate_hash(record, "guest_1", salt="s1")
        second = hasher.generate_hash(record, "guest_2", salt="s1")
        assert first.hash != second.hash

    @pytest.mark.parametrize("field", sorted(SEALED_FIELD_CHANGES))
    def test_every_sealed_field_changes_hash(self, hasher, record, field):
        """Changing any sealed field changes the hash and exactly its field hash."""
        original = hasher.generate_hash(record, "guest_1", salt="s1")
        changed = hasher.generate_hash(
            record.model_copy(update=SEALED_FIELD_CHANGES[field]), "guest_1", salt="s1"
        )

        assert changed.hash != original.hash
        differing = [
            name for name in SEALED_FIELDS
            if changed.field_hashes[name] != original.field_hashes[name]
        ]
        assert differing == [field]

    def test_unsealed_fields_do_not_change_hash(self, hasher, record):
        original = hasher.generate_hash(record, "guest_1", salt="s1")
        renamed = hasher.generate_hash(record.model_copy(update={"id": "other"}), "guest_1", salt="s1")
        assert renamed.hash == original.hash

    def test_fallback_hash(self, record):
        hasher = IntegrityHasher(FoldingDigest())
        integrity_hash = hasher.generate_hash(record, "guest_1", salt="s1")

        assert integrity_hash.algorithm == "fallback-nonsecure"
        assert len(integrity_hash.hash) == 8
        assert not integrity_hash.is_secure


class TestProofAndSeal:
    """Test cases for proofs and seals."""

    def test_proof_format(self, hasher, record):
        integrity_hash = hasher.generate_hash(record, "guest_1", salt="s1")
        proof = hasher.generate_proof(record, integrity_hash)

        assert proof == f"PROOF:match_1:{integrity_hash.hash[:16]}:2-1"
        assert hasher.verify_proof(proof, record, integrity_hash)

    def test_proof_rejects_changed_score(self, hasher, record):
        integrity_hash = hasher.generate_hash(record, "guest_1", salt="s1")
        proof = hasher.generate_proof(record, integrity_hash)

        assert not hasher.verify_proof(proof, record.model_copy(update={"away_score": 0}), integrity_hash)

    def test_seal_roundtrip(self, hasher, record):
        integrity_hash = hasher.generate_hash(record, "guest_1", created_at=CREATED_AT)
        seal = hasher.create_seal(record, "guest_1", integrity_hash)

        assert seal.sealed_at == int(CREATED_AT.timestamp() * 1000)
        assert seal.record_id == "match_1"
        assert len(seal.signature) == 16
        assert seal.token.startswith("SEAL:guest_1:")
        assert hasher.verify_seal(seal, record, "guest_1", integrity_hash)

    def test_seal_rejects_other_participant(self, hasher, record):
        integrity_hash = hasher.generate_hash(record, "guest_1")
        seal = hasher.create_seal(record, "guest_1", integrity_hash)

        assert not hasher.verify_seal(seal, record, "guest_2", integrity_hash)

    def test_seal_rejects_forged_signature(self, hasher, record):
        integrity_hash = hasher.generate_hash(record, "guest_1")
        seal = hasher.create_seal(record, "guest_1", integrity_hash)
        forged = seal.model_copy(update={"signature": "0" * 16})

        assert not hasher.verify_seal(forged, record, "guest_1", integrity_hash)

    def test_verify_seal_rejects_changed_record_id(self, hasher, record):
        integrity_hash = hasher.generate_hash(record, "guest_1")
        seal = hasher.create_seal(record, "guest_1", integrity_hash)
        relabeled = seal.model_copy(update={"record_id": "other_match"})

        assert not hasher.verify_seal(relabeled, record, "guest_1", integrity_hash)


class TestFingerprints:
    """Test cases for unsalted fingerprints."""

    def test_fingerprint_is_stable(self, hasher, record):
        assert hasher.generate_fingerprint(record) == hasher.generate_fingerprint(record)
        assert hasher.generate_fingerprint(record) != hasher.generate_fingerprint(
            record.model_copy(update={"player_goals": 2})
        )

    def test_fingerprint_ignores_id_and_date(self, hasher, record):
        relabeled = record.model_copy(update={"id": "match_copy", "date": record.date.replace(year=2025)})

        assert hasher.generate_fingerprint(relabeled) == hasher.generate_fingerprint(record)

    def test_compare_outcomes(self, hasher, record, make_record):
        assert hasher.compare_outcomes(record, make_record(id="match_2"))
        assert not hasher.compare_outcomes(record, make_record(id="match_2", player_assists=0))
