"""
Validation result models produced by the ValidationEngine.
"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, computed_field
from pydantic.alias_generators import to_camel

Severity = Literal["critical", "high", "medium"]
Rating = Literal["Excellent", "Good", "Fair", "Poor"]


def score_rating(score: int) -> Rating:
    """Map a 0-100 trust score onto its rating bucket."""
    if score >= 95:
        return "Excellent"
    if score >= 80:
        return "Good"
    if score >= 60:
        return "Fair"
    return "Poor"


class ValidationIssue(BaseModel):
    """A rule violation with a severity tier."""

    code: str = Field(..., description="Stable machine-readable issue code")
    severity: Severity = Field(..., description="Severity tier")
    message: str = Field(..., description="Human-readable description")
    data: Optional[dict[str, Any]] = Field(None, description="Supporting values")

    class Config:
        """Pydantic configuration."""

        alias_generator = to_camel
        populate_by_name = True


class ValidationWarning(BaseModel):
    """A soft finding that lowers trust without invalidating the match."""

    code: str = Field(..., description="Stable machine-readable warning code")
    message: str = Field(..., description="Human-readable description")
    recommendation: str = Field(..., description="Suggested follow-up for a reviewer")

    class Config:
        """Pydantic configuration."""

        alias_generator = to_camel
        populate_by_name = True


class ValidationResult(BaseModel):
    """
    Aggregate outcome of all six validation layers.

    ``is_valid`` is true exactly when no critical issue is present; it does not
    depend on the numeric score.
    """

    is_valid: bool = Field(..., description="True iff no critical issue is present")
    score: int = Field(..., ge=0, le=100, description="Trust score, lower is more suspicious")
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationWarning] = Field(default_factory=list)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Evaluation timestamp (UTC)",
    )

    @computed_field
    @property
    def rating(self) -> Rating:
        """Rating bucket for the score (Excellent/Good/Fair/Poor)."""
        return score_rating(self.score)

    @property
    def critical_issues(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "critical"]

    def has_issue(self, code: str) -> bool:
        return any(issue.code == code for issue in self.issues)

    def has_warning(self, code: str) -> bool:
        return any(warning.code == code for warning in self.warnings)

    class Config:
        """Pydantic configuration."""

        alias_generator = to_camel
        populate_by_name = True
