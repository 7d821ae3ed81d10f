"""
Six-layer plausibility validation for reported match outcomes.

Every layer runs on every record, in order:

1. Score and result consistency
2. Participant performance bounds
3. Timing (duration and match date)
4. Physical plausibility (goal rates)
5. Statistical anomaly against the participant's history
6. Extended stats consistency

Each finding is either an issue (critical, high or medium) or a warning.
The trust score starts at 100, loses a fixed deduction per finding and is
clamped to [0, 100]. A result is valid exactly when it carries no critical
issue; the score alone never invalidates a match.

Malformed input never raises out of ``validate_match``: it produces a
MALFORMED_RECORD critical issue per offending field and a score of 0.
"""

import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

from pydantic import ValidationError

from match_integrity.integrity.anomaly_profiler import AnomalyProfiler
from match_integrity.integrity.config import IntegrityConfig
from match_integrity.models.match_data import MatchRecord, MatchStats, TeamStats
from match_integrity.models.profile import PlayerAnomalyProfile
from match_integrity.models.validation import (
    Severity,
    ValidationIssue,
    ValidationResult,
    ValidationWarning,
    score_rating,
)
from match_integrity.utils.logger import get_logger, integrity_logger

logger = get_logger()

MAX_SCORE = 100

SEVERITY_DEDUCTIONS: dict[str, int] = {
    "critical": 25,
    "high": 15,
    "medium": 8,
}

WARNING_DEDUCTIONS: dict[str, int] = {
    "UNUSUAL_CONTRIBUTION": 5,
    "VERY_SHORT_MATCH": 5,
    "VERY_LONG_MATCH": 3,
    "VERY_OLD_MATCH": 2,
    "PLAYER_GOAL_RATE_HIGH": 6,
    "MORE_ASSISTS_THAN_GOALS": 3,
    "ANOMALY_GOALS": 8,
    "ANOMALY_ASSISTS": 6,
    "FORM_REVERSAL": 5,
    "PERFORMANCE_SPIKE": 6,
    "IMPROBABLE_STREAK": 5,
    "PASS_ACCURACY_DRIFT": 4,
    "POSSESSION_MISMATCH": 3,
    "SHOTS_BELOW_GOALS": 4,
}
DEFAULT_WARNING_DEDUCTION = 5

SUSPICIOUS_WARNING_COUNT = 2

MatchInput = Union[MatchRecord, Mapping[str, Any]]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_score(
    issues: Iterable[ValidationIssue], warnings: Iterable[ValidationWarning]
) -> int:
    """Trust score after deducting every finding, clamped to [0, 100]."""
    score = MAX_SCORE
    for issue in issues:
        score -= SEVERITY_DEDUCTIONS[issue.severity]
    for warning in warnings:
        score -= WARNING_DEDUCTIONS.get(warning.code, DEFAULT_WARNING_DEDUCTION)
    return max(0, min(MAX_SCORE, score))


def is_suspicious(result: ValidationResult, threshold: int = 60) -> bool:
    """
    Whether a validated match should be flagged for review.

    Suspicious when the score is below ``threshold``, when any critical issue
    is present, or when the match collected two or more warnings.
    """
    return (
        result.score < threshold
        or bool(result.critical_issues)
        or len(result.warnings) >= SUSPICIOUS_WARNING_COUNT
    )


def fairness_rating(average_score: float, suspicious_count: int, total: int) -> str:
    """
    Rating for a set of matches from their average score and suspicious count.

    Excellent needs an average of 95 and no suspicious match, Good an average
    of 80 and at most one, Fair an average of 60 and at most a tenth (rounded
    up) of the matches.
    """
    if average_score >= 95 and suspicious_count == 0:
        return "Excellent"
    if average_score >= 80 and suspicious_count <= 1:
        return "Good"
    if average_score >= 60 and suspicious_count <= math.ceil(total * 0.1):
        return "Fair"
    return "Poor"


def generate_report(result: ValidationResult) -> str:
    """Render a validation result as a plain-text report."""
    lines = [
        f"Match Validation Report (Score: {result.score}/100, {result.rating})",
        f"Status: {'VALID' if result.is_valid else 'INVALID'}",
        "",
    ]

    if result.issues:
        lines.append("ISSUES:")
        for issue in result.issues:
            lines.append(f"  [{issue.severity}] {issue.code}: {issue.message}")
        lines.append("")

    if result.warnings:
        lines.append("WARNINGS:")
        for warning in result.warnings:
            lines.append(f"  {warning.code}: {warning.message}")
            lines.append(f"    -> {warning.recommendation}")
        lines.append("")

    if not result.issues and not result.warnings:
        lines.append("No issues detected.")

    return "\n".join(lines).rstrip()


def _error_field(error: Mapping[str, Any], prefix: str = "") -> str:
    location = ".".join(str(part) for part in error.get("loc", ())) or "record"
    return f"{prefix}{location}"


def coerce_history(history: Optional[Iterable[MatchInput]]) -> list[MatchRecord]:
    """Parse history entries, dropping the ones that are malformed."""
    records: list[MatchRecord] = []
    for index, entry in enumerate(history or ()):
        if isinstance(entry, MatchRecord):
            records.append(entry)
            continue
        try:
            records.append(MatchRecord.model_validate(entry))
        except ValidationError as e:
            logger.warning(
                "Skipping malformed history entry",
                extra={"index": index, "error_count": e.error_count()},
            )
    return records


def malformed_result(errors: Sequence[Mapping[str, Any]], prefix: str = "") -> ValidationResult:
    """Result for input that could not be parsed: one critical issue per field."""
    issues = [
        ValidationIssue(
            code="MALFORMED_RECORD",
            severity="critical",
            message=f"Malformed field {_error_field(error, prefix)}: {error.get('msg', 'invalid value')}",
            data={"field": _error_field(error, prefix), "type": error.get("type")},
        )
        for error in errors
    ] or [
        ValidationIssue(
            code="MALFORMED_RECORD",
            severity="critical",
            message="Malformed record",
            data={"field": prefix.rstrip(".") or "record"},
        )
    ]
    return ValidationResult(is_valid=False, score=0, issues=issues, warnings=[])


class _Findings:
    """Collects issues and warnings while the layers run."""

    def __init__(self) -> None:
        self.issues: list[ValidationIssue] = []
        self.warnings: list[ValidationWarning] = []

    def add_issue(
        self,
        code: str,
        severity: Severity,
        message: str,
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        self.issues.append(
            ValidationIssue(code=code, severity=severity, message=message, data=data)
        )

    def add_warning(self, code: str, message: str, recommendation: str) -> None:
        self.warnings.append(
            ValidationWarning(code=code, message=message, recommendation=recommendation)
        )


class ValidationEngine:
    """Runs the six validation layers over a match record."""

    def __init__(
        self,
        config: Optional[IntegrityConfig] = None,
        profiler: Optional[AnomalyProfiler] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the engine.

        Args:
            config: Rule thresholds; defaults to IntegrityConfig()
            profiler: Anomaly profiler; built from the config when omitted
            clock: Returns the current time; used for the date checks
        """
        self.config = config or IntegrityConfig()
        self.profiler = profiler or AnomalyProfiler(self.config)
        self.clock = clock or _utcnow

    def build_player_profile(
        self, history: Sequence[MatchRecord]
    ) -> Optional[PlayerAnomalyProfile]:
        return self.profiler.build_profile(history)

    def validate_match(
        self,
        record: MatchInput,
        stats: Optional[Union[MatchStats, Mapping[str, Any]]] = None,
        history: Optional[Iterable[MatchInput]] = None,
    ) -> ValidationResult:
        """
        Validate one match.

        Args:
            record: The match, as a MatchRecord or its camelCase mapping
            stats: Extended stats; the record's own stats are used when omitted
            history: The participant's prior matches, in any order

        Returns:
            ValidationResult with score, rating, issues and warnings
        """
        try:
            match = self._coerce_record(record)
        except ValidationError as e:
            return self._reject(malformed_result(e.errors()))

        try:
            match_stats = self._coerce_stats(stats) if stats is not None else match.stats
        except ValidationError as e:
            return self._reject(malformed_result(e.errors(), prefix="stats."))

        profile = self.build_player_profile(coerce_history(history))

        findings = _Findings()
        try:
            self._check_scores(match, findings)
            self._check_performance(match, findings)
            self._check_timing(match, findings)
            self._check_physics(match, findings)
            if profile is not None:
                self._check_anomalies(match, profile, findings)
            if match_stats is not None:
                self._check_stats(match, match_stats, findings)
        except (TypeError, ValueError, ArithmeticError) as e:
            logger.error(
                "Validation layers failed on match",
                extra={"record_id": match.id, "error": str(e), "error_type": type(e).__name__},
            )
            return self._reject(
                malformed_result([{"loc": ("record",), "msg": str(e), "type": type(e).__name__}])
            )

        score = compute_score(findings.issues, findings.warnings)
        result = ValidationResult(
            is_valid=not any(i.severity == "critical" for i in findings.issues),
            score=score,
            issues=findings.issues,
            warnings=findings.warnings,
            timestamp=self.clock(),
        )

        integrity_logger.log_validation_complete(
            record_id=match.id,
            score=result.score,
            is_valid=result.is_valid,
            issue_codes=[i.code for i in result.issues],
            warning_codes=[w.code for w in result.warnings],
        )
        return result

    def is_suspicious(self, result: ValidationResult) -> bool:
        return is_suspicious(result, self.config.suspicious_score_threshold)

    @staticmethod
    def _reject(result: ValidationResult) -> ValidationResult:
        logger.warning(
            "Malformed match input",
            extra={"fields": [(issue.data or {}).get("field") for issue in result.issues]},
        )
        return result

    @staticmethod
    def _coerce_record(record: MatchInput) -> MatchRecord:
        if isinstance(record, MatchRecord):
            return record
        return MatchRecord.model_validate(record)

    @staticmethod
    def _coerce_stats(stats: Union[MatchStats, Mapping[str, Any]]) -> MatchStats:
        if isinstance(stats, MatchStats):
            return stats
        return MatchStats.model_validate(stats)

    # Layer 1
    def _check_scores(self, match: MatchRecord, findings: _Findings) -> None:
        limit = self.config.max_team_score

        if match.home_score < 0 or match.away_score < 0:
            findings.add_issue(
                "NEGATIVE_SCORE",
                "critical",
                f"Scores cannot be negative ({match.get_score_string()})",
                {"homeScore": match.home_score, "awayScore": match.away_score},
            )

        if match.home_score > limit or match.away_score > limit:
            findings.add_issue(
                "UNREALISTIC_SCORE",
                "high",
                f"Score {match.get_score_string()} exceeds the plausible maximum of {limit}",
                {"homeScore": match.home_score, "awayScore": match.away_score, "limit": limit},
            )

        if match.player_goals > match.team_score:
            findings.add_issue(
                "PLAYER_GOALS_EXCEED_TEAM_SCORE",
                "critical",
                f"Player scored {match.player_goals} goals but the team only scored {match.team_score}",
                {"playerGoals": match.player_goals, "teamScore": match.team_score},
            )

        expected = match.expected_result()
        if match.result != expected:
            findings.add_issue(
                "RESULT_MISMATCH",
                "critical",
                f"Reported result '{match.result}' does not match the score "
                f"{match.get_score_string()} (expected '{expected}')",
                {"reported": match.result, "expected": expected},
            )

    # Layer 2
    def _check_performance(self, match: MatchRecord, findings: _Findings) -> None:
        config = self.config

        if match.player_goals < 0 or match.player_assists < 0:
            findings.add_issue(
                "NEGATIVE_STATS",
                "critical",
                "Player goals and assists cannot be negative",
                {"playerGoals": match.player_goals, "playerAssists": match.player_assists},
            )

        if match.player_goals > config.max_player_goals:
            findings.add_issue(
                "EXCESSIVE_GOALS",
                "high",
                f"{match.player_goals} goals in one match exceeds the limit of {config.max_player_goals}",
                {"playerGoals": match.player_goals, "limit": config.max_player_goals},
            )

        if match.player_assists > config.max_player_assists:
            findings.add_issue(
                "EXCESSIVE_ASSISTS",
                "high",
                f"{match.player_assists} assists in one match exceeds the limit of {config.max_player_assists}",
                {"playerAssists": match.player_assists, "limit": config.max_player_assists},
            )

        contribution = match.player_goals + match.player_assists
        if contribution > config.max_player_contribution:
            findings.add_warning(
                "UNUSUAL_CONTRIBUTION",
                f"Player was involved in {contribution} goals",
                "Review the match replay for scoring irregularities",
            )

    # Layer 3
    def _check_timing(self, match: MatchRecord, findings: _Findings) -> None:
        config = self.config

        if match.duration < 0:
            findings.add_issue(
                "NEGATIVE_DURATION",
                "critical",
                f"Match duration cannot be negative ({match.duration} minutes)",
                {"duration": match.duration},
            )
        elif match.duration < config.min_duration_minutes:
            findings.add_warning(
                "VERY_SHORT_MATCH",
                f"Match lasted only {match.duration} minutes",
                "Check whether the match was abandoned or forfeited",
            )
        elif match.duration > config.max_duration_minutes:
            findings.add_warning(
                "VERY_LONG_MATCH",
                f"Match lasted {match.duration} minutes",
                "Check whether extra time or a stalled session inflated the duration",
            )

        now = self.clock()
        if match.date > now + timedelta(seconds=config.clock_skew_seconds):
            findings.add_issue(
                "FUTURE_MATCH",
                "critical",
                f"Match date {match.date.isoformat()} is in the future",
                {"date": match.date.isoformat(), "now": now.isoformat()},
            )
        elif now - match.date > timedelta(days=config.max_match_age_days):
            findings.add_warning(
                "VERY_OLD_MATCH",
                f"Match is more than {config.max_match_age_days} days old",
                "Confirm why an old match is being submitted now",
            )

    # Layer 4
    def _check_physics(self, match: MatchRecord, findings: _Findings) -> None:
        config = self.config

        if match.duration > 0:
            goal_rate = match.total_goals / match.duration
            if goal_rate > config.max_goals_per_minute:
                findings.add_issue(
                    "UNREALISTIC_GOAL_RATE",
                    "critical",
                    f"{match.total_goals} goals in {match.duration} minutes "
                    f"({goal_rate:.3f} per minute) is not physically plausible",
                    {"goalsPerMinute": round(goal_rate, 4), "limit": config.max_goals_per_minute},
                )

            player_rate = match.player_goals / match.duration
            if player_rate > config.max_player_goals_per_minute:
                findings.add_warning(
                    "PLAYER_GOAL_RATE_HIGH",
                    f"Player scored {player_rate:.3f} goals per minute",
                    "Compare with the participant's usual scoring rate",
                )

        if match.player_assists > match.player_goals > 0:
            findings.add_warning(
                "MORE_ASSISTS_THAN_GOALS",
                f"Player has {match.player_assists} assists but only {match.player_goals} goals",
                "Verify assist attribution",
            )

    # Layer 5
    def _check_anomalies(
        self, match: MatchRecord, profile: PlayerAnomalyProfile, findings: _Findings
    ) -> None:
        assessment = self.profiler.assess(match, profile)

        if assessment.goal_anomaly:
            findings.add_warning(
                "ANOMALY_GOALS",
                f"{match.player_goals} goals is far above the career average of "
                f"{profile.avg_goals_per_match:.2f} (best {profile.max_goals_in_match})",
                "Review this match against the participant's history",
            )

        if assessment.assist_anomaly:
            findings.add_warning(
                "ANOMALY_ASSISTS",
                f"{match.player_assists} assists is far above the career average of "
                f"{profile.avg_assists_per_match:.2f} (best {profile.max_assists_in_match})",
                "Review this match against the participant's history",
            )

        if assessment.form_reversal:
            findings.add_warning(
                "FORM_REVERSAL",
                f"Win reported with a career win rate of {profile.win_rate:.0%}",
                "Look for signs of account sharing or a boosted opponent",
            )

        if assessment.performance_spike:
            findings.add_warning(
                "PERFORMANCE_SPIKE",
                "Goals and assists are both at least double the participant's average",
                "Review recent matches for a sudden change in performance",
            )

        if assessment.improbable_streak:
            findings.add_warning(
                "IMPROBABLE_STREAK",
                f"{assessment.streak_length} consecutive wins with an implied probability of "
                f"{assessment.streak_probability:.1%}",
                "Check the streak's opponents for collusion",
            )

    # Layer 6
    def _check_stats(
        self, match: MatchRecord, stats: MatchStats, findings: _Findings
    ) -> None:
        tolerance = self.config.possession_tolerance
        teams: list[tuple[str, TeamStats, int]] = [
            ("home", stats.home_team, match.home_score),
            ("away", stats.away_team, match.away_score),
        ]

        for side, team, score in teams:
            if team.goals != score:
                findings.add_issue(
                    "STATS_GOAL_MISMATCH",
                    "critical",
                    f"{side.capitalize()} team stats report {team.goals} goals but the score says {score}",
                    {"team": side, "statsGoals": team.goals, "score": score},
                )

        own = stats.home_team if match.player_team == "home" else stats.away_team
        if match.player_assists > own.assists:
            findings.add_issue(
                "PLAYER_ASSISTS_EXCEED_TEAM",
                "high",
                f"Player has {match.player_assists} assists but the team only {own.assists}",
                {"playerAssists": match.player_assists, "teamAssists": own.assists},
            )

        for side, team, _ in teams:
            if not 0 <= team.pass_accuracy <= 100:
                findings.add_warning(
                    "PASS_ACCURACY_DRIFT",
                    f"{side.capitalize()} team pass accuracy is {team.pass_accuracy}%",
                    "Verify pass tracking in the match engine",
                )

        total_possession = stats.home_team.possession + stats.away_team.possession
        if abs(total_possession - 100) > tolerance:
            findings.add_warning(
                "POSSESSION_MISMATCH",
                f"Total possession is {total_possession:g}%, not 100%",
                "Verify possession tracking in the match engine",
            )

        for side, team, _ in teams:
            if team.shots is not None and team.shots < team.goals:
                findings.add_warning(
                    "SHOTS_BELOW_GOALS",
                    f"{side.capitalize()} team scored {team.goals} goals from {team.shots} shots",
                    "Verify shot tracking in the match engine",
                )


__all__ = [
    "DEFAULT_WARNING_DEDUCTION",
    "SEVERITY_DEDUCTIONS",
    "WARNING_DEDUCTIONS",
    "ValidationEngine",
    "coerce_history",
    "compute_score",
    "fairness_rating",
    "generate_report",
    "is_suspicious",
    "malformed_result",
    "score_rating",
]
