"""
Statistical baseline models derived from a participant's match history.

Profiles are recomputed on demand and never persisted: any change to the
history makes a previously built profile stale.
"""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

Z_SCORE_THRESHOLD = 3.0


class StatBaseline(BaseModel):
    """Mean, sample standard deviation and maximum of one per-match statistic."""

    mean: float = Field(..., description="Arithmetic mean")
    stdev: float = Field(..., ge=0, description="Sample (Bessel-corrected) standard deviation")
    maximum: float = Field(..., description="Largest value observed")

    class Config:
        """Pydantic configuration."""

        frozen = True

    def z_score(self, value: float) -> Optional[float]:
        """
        Number of standard deviations ``value`` lies from the mean.

        With a zero standard deviation there is nothing to divide by: a value
        equal to the mean deviates by 0.0, anything else is a maximal deviation
        and is reported as None.
        """
        if self.stdev == 0:
            return 0.0 if value == self.mean else None
        return (value - self.mean) / self.stdev

    def is_anomalous(self, value: float, threshold: float = Z_SCORE_THRESHOLD) -> bool:
        """
        True when ``value`` breaks the career maximum and lies more than
        ``threshold`` deviations above the mean. Both conditions are required.
        """
        if value <= self.maximum:
            return False
        z = self.z_score(value)
        return z is None or z > threshold


class PlayerAnomalyProfile(BaseModel):
    """Baseline of a participant's past performance."""

    goals: StatBaseline = Field(..., description="Per-match goals baseline")
    assists: StatBaseline = Field(..., description="Per-match assists baseline")
    duration: StatBaseline = Field(..., description="Match duration baseline (minutes)")
    win_rate: float = Field(..., ge=0, le=1, description="Career wins / matches")
    current_win_streak: int = Field(0, ge=0, description="Consecutive wins ending at the latest match")
    recent_margins: list[int] = Field(
        default_factory=list,
        description="Goal differentials of the matches in the current win streak, oldest first",
    )
    sample_size: int = Field(..., ge=1, description="Number of matches in the history")

    class Config:
        """Pydantic configuration."""

        alias_generator = to_camel
        populate_by_name = True
        frozen = True

    @property
    def avg_goals_per_match(self) -> float:
        return self.goals.mean

    @property
    def avg_assists_per_match(self) -> float:
        return self.assists.mean

    @property
    def avg_match_duration(self) -> float:
        return self.duration.mean

    @property
    def max_goals_in_match(self) -> int:
        return int(self.goals.maximum)

    @property
    def max_assists_in_match(self) -> int:
        return int(self.assists.maximum)


class AnomalyAssessment(BaseModel):
    """How unusual one match looks against a participant's profile."""

    goal_z_score: Optional[float] = Field(None, description="None means maximal deviation")
    assist_z_score: Optional[float] = Field(None, description="None means maximal deviation")
    goal_anomaly: bool = False
    assist_anomaly: bool = False
    form_reversal: bool = False
    performance_spike: bool = False
    improbable_streak: bool = False
    streak_length: int = Field(0, description="Win streak length including this match")
    streak_probability: Optional[float] = Field(
        None, description="Implied probability of the win streak (heuristic)"
    )

    @property
    def flagged(self) -> bool:
        return any(
            (
                self.goal_anomaly,
                self.assist_anomaly,
                self.form_reversal,
                self.performance_spike,
                self.improbable_streak,
            )
        )
