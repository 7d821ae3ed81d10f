"""
Verification service: seals match records and detects later tampering.

The service ties the ValidationEngine and the IntegrityHasher together:

- ``apply_verification`` fingerprints and seals a record.
- ``reverify_match`` re-hashes a stored record with its original salt and
  reports which sealed fields no longer match.
- ``record_match`` validates and seals in one step. Suspicious matches and
  duplicate outcomes are annotated, never rejected.
- ``verify_batch`` runs validation and re-verification over many records,
  isolating failures per record.

Anomaly checks only see history played before the record under test.

Instances are built explicitly by the caller; there is no shared global service.
"""

import hmac
import statistics
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any, Optional, Union

from match_integrity.integrity.config import IntegrityConfig
from match_integrity.integrity.hasher import (
    SEALED_FIELDS,
    IntegrityHasher,
    UnsupportedAlgorithmError,
    detect_digest_strategy,
    sealed_values,
)
from match_integrity.integrity.outcome import (
    calculate_outcome_probability,
    generate_shareable_proof,
    is_outcome_consistent,
    verify_outcome,
    verify_shareable_proof,
)
from match_integrity.integrity.validation_engine import (
    ValidationEngine,
    coerce_history,
    fairness_rating,
    generate_report,
)
from match_integrity.models.audit import BatchSummary
from match_integrity.models.match_data import MatchRecord, MatchStats
from match_integrity.models.validation import ValidationResult
from match_integrity.models.verification import (
    BatchEntry,
    BatchVerificationReport,
    RecordingOutcome,
    ReverifyReport,
    VerifiedMatchRecord,
)
from match_integrity.utils.audit_logger import AuditLogger
from match_integrity.utils.logger import get_logger, integrity_logger
from match_integrity.utils.metrics import MatchIntegrityMetrics, get_metrics
from match_integrity.utils.record_store import HistoryProvider, VerifiedRecordStore

logger = get_logger()

RULE = "=" * 48


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VerificationService:
    """Seals, re-verifies and reports on match records for participants."""

    def __init__(
        self,
        engine: Optional[ValidationEngine] = None,
        hasher: Optional[IntegrityHasher] = None,
        config: Optional[IntegrityConfig] = None,
        audit_logger: Optional[AuditLogger] = None,
        metrics: Optional[MatchIntegrityMetrics] = None,
        store: Optional[VerifiedRecordStore] = None,
        history_provider: Optional[HistoryProvider] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the service.

        Args:
            engine: Validation engine; built from the config when omitted
            hasher: Hasher for new seals; the digest is detected when omitted
            config: Thresholds and runtime settings
            audit_logger: Writes JSONL audit events when provided
            metrics: Metrics sink; the global instance when omitted
            store: Persists recorded matches when provided
            history_provider: Supplies history when a caller passes none
            clock: Returns the current time
        """
        self.config = config or IntegrityConfig()
        self.clock = clock or _utcnow
        self.engine = engine or ValidationEngine(self.config, clock=self.clock)
        self.hasher = hasher or IntegrityHasher(
            detect_digest_strategy(self.config.force_fallback_digest)
        )
        self.audit_logger = audit_logger
        self.metrics = metrics or get_metrics()
        self.store = store
        self.history_provider = history_provider

    is_outcome_consistent = staticmethod(is_outcome_consistent)
    calculate_outcome_probability = staticmethod(calculate_outcome_probability)

    def apply_verification(
        self, record: MatchRecord, participant_id: str
    ) -> VerifiedMatchRecord:
        """
        Fingerprint and seal a record.

        Args:
            record: The match to seal
            participant_id: Participant the record belongs to

        Returns:
            VerifiedMatchRecord carrying hash, seal, proof and outcome signature
        """
        base = record.to_match_record()

        with self.metrics.time_operation("apply_verification"):
            integrity_hash = self.hasher.generate_hash(
                base, participant_id, created_at=self.clock()
            )
            seal = self.hasher.create_seal(base, participant_id, integrity_hash)
            proof = self.hasher.generate_proof(base, integrity_hash)
        outcome = verify_outcome(base)

        verified = VerifiedMatchRecord(
            **base.model_dump(),
            integrity_hash=integrity_hash,
            seal=seal,
            proof=proof,
            outcome_signature=outcome.signature,
            integrity_verified=True,
            last_verified=self.clock(),
        )

        if not outcome.consistent:
            logger.warning(
                "Sealed a record whose outcome is inconsistent",
                extra={"record_id": base.id, "probability": outcome.probability},
            )
        if not integrity_hash.is_secure:
            logger.warning(
                "Record sealed with a non-secure digest",
                extra={"record_id": base.id, "algorithm": integrity_hash.algorithm},
            )

        integrity_logger.log_verification_applied(
            record_id=base.id,
            participant_id=participant_id,
            algorithm=integrity_hash.algorithm,
            hash_prefix=integrity_hash.hash[:16],
        )
        self.metrics.record_verification(integrity_hash.algorithm)
        if self.audit_logger:
            self.audit_logger.log_sealed(verified)

        return verified

    def reverify_match(
        self, verified: VerifiedMatchRecord, participant_id: str
    ) -> ReverifyReport:
        """
        Re-hash a stored record and compare it with its seal.

        The stored salt and timestamp are reused, so an unmodified record
        reproduces its hash exactly. Tampering is reported, never raised.

        Args:
            verified: The stored record
            participant_id: Participant the record is checked for

        Returns:
            ReverifyReport naming every sealed field whose value changed
        """
        stored = verified.integrity_hash
        record = verified.to_match_record()

        with self.metrics.time_operation("reverify_match"):
            try:
                hasher = IntegrityHasher.for_algorithm(stored.algorithm)
            except UnsupportedAlgorithmError as e:
                report = ReverifyReport(
                    record_id=record.id,
                    still_valid=False,
                    hash_matches=False,
                    seal_matches=False,
                    proof_matches=False,
                    modification_detected=True,
                    details=[f"Hash verification: FAIL ({e})"],
                    algorithm=stored.algorithm,
                    checked_at=self.clock(),
                )
                self._after_reverify(report, participant_id, error=str(e))
                return report

            recomputed = hasher.generate_hash(
                record, participant_id, salt=stored.salt, created_at=stored.created_at
            )
            hash_matches = hmac.compare_digest(recomputed.hash, stored.hash)
            seal_matches = hasher.verify_seal(verified.seal, record, participant_id, recomputed)
            proof_matches = hasher.verify_proof(verified.proof, record, recomputed)
        outcome = verify_outcome(record, verified.outcome_signature)

        values = sealed_values(record)
        modified_fields = [
            field
            for field in SEALED_FIELDS
            if field in stored.field_hashes
            and not hmac.compare_digest(stored.field_hashes[field], recomputed.field_hashes[field])
        ]
        if verified.seal.record_id != record.id:
            modified_fields.append("id")
        # The signature derives from the sealed fields; name it only when none of them changed.
        if outcome.signature_matches is False and not modified_fields:
            modified_fields.append("outcomeSignature")

        details = [
            f"Hash verification: {'PASS' if hash_matches else 'FAIL'}",
            f"Seal verification: {'PASS' if seal_matches else 'FAIL'}",
            f"Proof verification: {'PASS' if proof_matches else 'FAIL'}",
            *outcome.details,
        ]
        if recomputed.input_hash != stored.input_hash:
            details.append("Match conditions (teams, side, duration) changed since sealing")
        if recomputed.output_hash != stored.output_hash:
            details.append("Match results (scores, goals, assists, outcome) changed since sealing")
        for field in modified_fields:
            if field == "id":
                details.append(
                    f"id: current value {record.id!r} does not match sealed record "
                    f"{verified.seal.record_id!r}"
                )
            elif field == "outcomeSignature":
                details.append("outcomeSignature: stored signature does not match the sealed outcome")
            else:
                details.append(
                    f"{field}: current value {values[field]!r} does not match the sealed fingerprint"
                )
        if verified.seal.participant_id != participant_id:
            details.append(
                f"Seal belongs to participant {verified.seal.participant_id!r}, "
                f"not {participant_id!r}"
            )
        if not stored.is_secure:
            details.append(
                f"Digest {stored.algorithm} is non-secure; treat this result as low trust"
            )

        still_valid = (
            hash_matches
            and seal_matches
            and outcome.signature_matches is not False
            and not modified_fields
        )
        report = ReverifyReport(
            record_id=record.id,
            still_valid=still_valid,
            hash_matches=hash_matches,
            seal_matches=seal_matches,
            proof_matches=proof_matches,
            outcome_matches=outcome.signature_matches,
            modification_detected=not still_valid,
            modified_fields=modified_fields,
            details=details,
            algorithm=stored.algorithm,
            checked_at=self.clock(),
        )
        self._after_reverify(report, participant_id)
        return report

    def _after_reverify(
        self, report: ReverifyReport, participant_id: str, error: Optional[str] = None
    ) -> None:
        integrity_logger.log_reverification(
            record_id=report.record_id or "unknown",
            modification_detected=report.modification_detected,
            modified_fields=report.modified_fields,
            error=error,
        )
        if report.modification_detected:
            self.metrics.record_tamper(report.modified_fields)
        if self.audit_logger:
            self.audit_logger.log_reverified(report, participant_id)

    def refresh_verification(
        self, verified: VerifiedMatchRecord, report: ReverifyReport
    ) -> VerifiedMatchRecord:
        """Copy of the record with its verification status taken from ``report``."""
        return verified.model_copy(
            update={
                "integrity_verified": report.still_valid,
                "last_verified": report.checked_at,
            }
        )

    def _history_for(
        self,
        participant_id: str,
        history: Optional[Iterable[Union[MatchRecord, Mapping[str, Any]]]],
    ) -> list[MatchRecord]:
        if history is None and self.history_provider is not None:
            history = self.history_provider.load_history(participant_id)
        return coerce_history(history)

    @staticmethod
    def _played_before(record: MatchRecord, history: Iterable[MatchRecord]) -> list[MatchRecord]:
        """Entries played strictly before ``record``, excluding the record itself."""
        return [entry for entry in history if entry.id != record.id and entry.date < record.date]

    def _find_duplicate(
        self, record: MatchRecord, candidates: Iterable[MatchRecord]
    ) -> Optional[str]:
        """Id of the first other candidate reporting the same outcome, if any."""
        return next(
            (
                candidate.id
                for candidate in candidates
                if candidate.id != record.id and self.hasher.compare_outcomes(record, candidate)
            ),
            None,
        )

    def record_match(
        self,
        record: MatchRecord,
        participant_id: str,
        history: Optional[Iterable[Union[MatchRecord, Mapping[str, Any]]]] = None,
        stats: Optional[MatchStats] = None,
    ) -> RecordingOutcome:
        """
        Validate and seal a match in one step.

        The record is always sealed and returned; a failed or suspicious
        validation is attached for the caller to act on, and so is a
        history match reporting the identical outcome.

        Args:
            record: The new match
            participant_id: Participant the match belongs to
            history: Prior matches; loaded from the history provider when omitted
            stats: Extended stats, when not embedded in the record

        Returns:
            RecordingOutcome with the sealed record, validation and suspicious flag
        """
        known = self._history_for(participant_id, history)
        prior = self._played_before(record, known)

        with self.metrics.time_operation("validate_match"):
            validation = self.engine.validate_match(record, stats=stats, history=prior)
        self._after_validation(record.id, validation, participant_id)

        verified = self.apply_verification(record, participant_id)
        suspicious = self.engine.is_suspicious(validation)
        duplicate_of = self._find_duplicate(record, known)

        if suspicious:
            logger.warning(
                "Suspicious match recorded",
                extra={
                    "record_id": record.id,
                    "participant_id": participant_id,
                    "score": validation.score,
                    "issue_codes": [i.code for i in validation.issues],
                },
            )
        if duplicate_of is not None:
            logger.warning(
                "Possible duplicate match recorded",
                extra={"record_id": record.id, "duplicate_of": duplicate_of},
            )

        if self.store is not None:
            self.store.save(participant_id, verified)

        return RecordingOutcome(
            verified=verified,
            validation=validation,
            suspicious=suspicious,
            duplicate_of=duplicate_of,
        )

    def _after_validation(
        self, record_id: str, validation: ValidationResult, participant_id: str
    ) -> None:
        self.metrics.record_validation(
            validation.rating, [issue.code for issue in validation.critical_issues]
        )
        if self.audit_logger:
            self.audit_logger.log_validation(record_id, validation, participant_id)

    def generate_verification_report(
        self,
        verified: VerifiedMatchRecord,
        participant_id: str,
        validation: Optional[ValidationResult] = None,
        report: Optional[ReverifyReport] = None,
    ) -> str:
        """
        Render a plain-text report for one sealed record.

        The record is re-verified unless a report is passed in.
        """
        report = report or self.reverify_match(verified, participant_id)
        integrity_hash = verified.integrity_hash

        lines = [
            RULE,
            "  MATCH OUTCOME VERIFICATION REPORT",
            RULE,
            "",
            "MATCH DETAILS:",
            f"  ID: {verified.id}",
            f"  Date: {verified.date.isoformat()}",
            f"  Teams: {verified.home_team} vs {verified.away_team}",
            f"  Score: {verified.home_score} - {verified.away_score}",
            f"  Duration: {verified.duration} minutes",
            "",
            "PLAYER PERFORMANCE:",
            f"  Team: {verified.player_team}",
            f"  Goals: {verified.player_goals}",
            f"  Assists: {verified.player_assists}",
            f"  Result: {verified.result}",
            "",
            "INTEGRITY FINGERPRINT:",
            f"  Algorithm: {integrity_hash.algorithm}"
            + ("" if integrity_hash.is_secure else " (NON-SECURE)"),
            f"  Input Hash: {integrity_hash.input_hash[:32]}",
            f"  Output Hash: {integrity_hash.output_hash[:32]}",
            f"  Match Hash: {integrity_hash.hash[:32]}",
            f"  Generated: {integrity_hash.created_at.isoformat()}",
            f"  Seal: {verified.seal.token}",
            "",
            "VERIFICATION STATUS:",
        ]

        if report.still_valid:
            lines.append("  [OK] No tampering detected")
        else:
            lines.append("  [FAIL] Potential data tampering detected")
        lines.extend(f"  {detail}" for detail in report.details)
        lines.append("")

        outcome = verify_outcome(verified.to_match_record(), verified.outcome_signature)
        lines.append("OUTCOME CHECKS:")
        lines.extend(f"  {detail}" for detail in outcome.details)
        lines.append("")

        if validation is not None:
            lines.append(generate_report(validation))
            lines.append("")

        lines.extend(
            [
                "SHAREABLE PROOF:",
                f"  {verified.proof}",
                f"  {self.generate_shareable_proof(verified, participant_id)}",
                "",
                RULE,
            ]
        )
        return "\n".join(lines)

    def generate_shareable_proof(self, verified: VerifiedMatchRecord, participant_id: str) -> str:
        """Link-style token a third party can check against the sealed record."""
        return generate_shareable_proof(verified, participant_id)

    def verify_shareable_proof(
        self, token: str, verified: VerifiedMatchRecord, participant_id: str
    ) -> bool:
        """Check a shared token against a stored record and participant."""
        valid = verify_shareable_proof(token, verified, participant_id)
        if not valid:
            logger.warning(
                "Shareable proof rejected",
                extra={"record_id": verified.id, "participant_id": participant_id},
            )
        return valid

    def verify_batch(
        self,
        records: Sequence[Union[VerifiedMatchRecord, Mapping[str, Any]]],
        participant_id: str,
        history: Optional[Iterable[Union[MatchRecord, Mapping[str, Any]]]] = None,
    ) -> BatchVerificationReport:
        """
        Validate and re-verify many stored records for one participant.

        Records are processed sequentially and entries keep the input order.
        A record that fails to process becomes an error entry; the others are
        unaffected.

        Args:
            records: Stored records, parsed or as camelCase mappings
            participant_id: Participant the records belong to
            history: Prior matches for anomaly checks; from the provider when omitted

        Returns:
            BatchVerificationReport with per-record entries and totals
        """
        if self.audit_logger:
            self.audit_logger.log_batch_started(participant_id)

        known = self._history_for(participant_id, history)
        seen: list[MatchRecord] = []
        entries: list[BatchEntry] = []

        for index, item in enumerate(records):
            try:
                verified = (
                    item
                    if isinstance(item, VerifiedMatchRecord)
                    else VerifiedMatchRecord.model_validate(item)
                )
                record = verified.to_match_record()
                validation = self.engine.validate_match(
                    record, history=self._played_before(record, known)
                )
                self._after_validation(record.id, validation, participant_id)
                reverify = self.reverify_match(verified, participant_id)
                duplicate_of = self._find_duplicate(record, seen)
                seen.append(record)
                entries.append(
                    BatchEntry(
                        index=index,
                        record_id=record.id,
                        validation=validation,
                        reverify=reverify,
                        duplicate_of=duplicate_of,
                    )
                )
            except Exception as e:
                record_id = item.get("id") if isinstance(item, Mapping) else getattr(item, "id", None)
                logger.error(
                    "Batch item failed",
                    extra={
                        "index": index,
                        "record_id": record_id,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                self.metrics.record_batch_item_error(type(e).__name__)
                entries.append(
                    BatchEntry(
                        index=index,
                        record_id=record_id if isinstance(record_id, str) else None,
                        error=f"{type(e).__name__}: {e}",
                    )
                )

        processed = [entry for entry in entries if entry.ok and entry.validation is not None]
        average_score = (
            statistics.fmean(entry.validation.score for entry in processed) if processed else 0.0
        )
        suspicious_count = sum(
            1
            for entry in processed
            if self.engine.is_suspicious(entry.validation)
            or (entry.reverify is not None and not entry.reverify.still_valid)
        )

        report = BatchVerificationReport(
            participant_id=participant_id,
            entries=entries,
            average_score=round(average_score, 2),
            suspicious_count=suspicious_count,
            fairness_rating=fairness_rating(average_score, suspicious_count, len(processed)),
            generated_at=self.clock(),
        )

        summary = BatchSummary(
            total=report.total,
            verified=report.verified_count,
            flagged=report.flagged_count,
            errors=report.error_count,
        )
        integrity_logger.log_batch_complete(participant_id, summary.model_dump())
        if self.audit_logger:
            self.audit_logger.log_batch_completed(participant_id, summary)

        return report

    def generate_batch_report(
        self,
        records: Sequence[Union[VerifiedMatchRecord, Mapping[str, Any]]],
        participant_id: str,
        history: Optional[Iterable[Union[MatchRecord, Mapping[str, Any]]]] = None,
    ) -> str:
        """Verify a batch and render it as plain text."""
        return render_batch_report(self.verify_batch(records, participant_id, history))


def render_batch_report(report: BatchVerificationReport) -> str:
    """Plain-text rendering of a batch verification report."""
    lines = [
        RULE,
        "  BATCH OUTCOME VERIFICATION REPORT",
        RULE,
        "",
        f"PARTICIPANT: {report.participant_id}",
        f"TOTAL MATCHES: {report.total}",
        f"VERIFIED MATCHES: {report.verified_count}",
        f"FLAGGED MATCHES: {report.flagged_count}",
        f"ERRORS: {report.error_count}",
        f"AVERAGE SCORE: {report.average_score:.1f}",
        f"SUSPICIOUS MATCHES: {report.suspicious_count}",
        f"FAIRNESS RATING: {report.fairness_rating}",
        "",
        "MATCH SUMMARY:",
    ]

    for entry in report.entries:
        label = entry.record_id or f"#{entry.index}"
        if not entry.ok:
            lines.append(f"  [ERROR] {label}: {entry.error}")
            continue
        status = "OK" if entry.reverify and entry.reverify.still_valid else "FLAGGED"
        validation = entry.validation
        lines.append(
            f"  [{status}] {label}: score {validation.score} ({validation.rating})"
            if validation
            else f"  [{status}] {label}"
        )
        if entry.reverify and entry.reverify.modified_fields:
            lines.append(f"     modified: {', '.join(entry.reverify.modified_fields)}")
        if entry.duplicate_of:
            lines.append(f"     duplicate of: {entry.duplicate_of}")

    lines.extend(["", RULE])
    return "\n".join(lines)
