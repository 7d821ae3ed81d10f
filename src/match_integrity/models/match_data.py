"""
Match record models consumed by the integrity subsystem.

A MatchRecord is the reported outcome of a single game as seen from one
participant. Records are immutable once created; numeric plausibility checks
(negative scores, impossible goal counts) belong to the ValidationEngine, so
the model only enforces types and shape.

Persisted field names are camelCase (``homeScore``, ``playerGoals``) while
Python attributes are snake_case. Unknown fields are rejected.
"""

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

PlayerTeam = Literal["home", "away"]
MatchResult = Literal["win", "loss", "draw"]


def outcome_for(team_score: int, opponent_score: int) -> MatchResult:
    """Return the result implied by comparing a team's score to its opponent's."""
    if team_score > opponent_score:
        return "win"
    if team_score < opponent_score:
        return "loss"
    return "draw"


class TeamStats(BaseModel):
    """Per-team statistics reported by the match engine."""

    goals: int = Field(0, description="Goals scored by the team")
    assists: int = Field(0, description="Assists credited to the team")
    shots: Optional[int] = Field(None, description="Total shots, if tracked")
    passes: Optional[int] = Field(None, description="Completed passes, if tracked")
    pass_accuracy: float = Field(0.0, description="Pass accuracy percent")
    possession: float = Field(0.0, description="Possession percent")
    yellow_cards: int = Field(0, description="Yellow cards shown")
    red_cards: int = Field(0, description="Red cards shown")

    class Config:
        """Pydantic configuration."""

        alias_generator = to_camel
        populate_by_name = True
        frozen = True
        extra = "forbid"
        allow_inf_nan = False


class MatchStats(BaseModel):
    """Extended statistics block for both teams."""

    home_team: TeamStats = Field(..., description="Home team statistics")
    away_team: TeamStats = Field(..., description="Away team statistics")

    class Config:
        """Pydantic configuration."""

        alias_generator = to_camel
        populate_by_name = True
        frozen = True
        extra = "forbid"


class MatchInputs(BaseModel):
    """Condition fields of a match: who played, from which side, for how long."""

    home_team: str
    away_team: str
    player_team: PlayerTeam
    duration: int

    class Config:
        """Pydantic configuration."""

        alias_generator = to_camel
        populate_by_name = True
        frozen = True
        extra = "forbid"


class MatchOutputs(BaseModel):
    """Result fields of a match: scores, participant contribution, outcome."""

    home_score: int
    away_score: int
    player_goals: int
    player_assists: int
    result: MatchResult

    class Config:
        """Pydantic configuration."""

        alias_generator = to_camel
        populate_by_name = True
        frozen = True
        extra = "forbid"


class MatchRecord(BaseModel):
    """
    A reported game outcome for one participant.

    Attributes:
        id: Unique identifier for the match
        date: When the match was played (timezone-aware, UTC if naive)
        home_team: Name of the home team
        away_team: Name of the away team
        home_score: Home team score
        away_score: Away team score
        player_team: Side the participant played on
        player_goals: Goals scored by the participant
        player_assists: Assists credited to the participant
        result: Outcome reported by the participant
        duration: Match length in minutes
        stats: Optional extended per-team statistics
    """

    id: str = Field(..., min_length=1, description="Unique identifier for the match")
    date: datetime = Field(..., description="When the match was played")
    home_team: str = Field(..., min_length=1, description="Name of the home team")
    away_team: str = Field(..., min_length=1, description="Name of the away team")
    home_score: int = Field(..., description="Home team score")
    away_score: int = Field(..., description="Away team score")
    player_team: PlayerTeam = Field(..., description="Side the participant played on")
    player_goals: int = Field(..., description="Goals scored by the participant")
    player_assists: int = Field(..., description="Assists credited to the participant")
    result: MatchResult = Field(..., description="Outcome reported by the participant")
    duration: int = Field(..., description="Match length in minutes")
    stats: Optional[MatchStats] = Field(None, description="Extended per-team statistics")

    @field_validator("date")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Treat naive datetimes as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def team_score(self) -> int:
        """Score of the participant's own team."""
        return self.home_score if self.player_team == "home" else self.away_score

    @property
    def opponent_score(self) -> int:
        """Score of the opposing team."""
        return self.away_score if self.player_team == "home" else self.home_score

    @property
    def total_goals(self) -> int:
        return self.home_score + self.away_score

    def expected_result(self) -> MatchResult:
        """Result implied by the two scores from the participant's side."""
        return outcome_for(self.team_score, self.opponent_score)

    def get_score_string(self) -> str:
        """Headline score in ``home-away`` form, e.g. ``2-1``."""
        return f"{self.home_score}-{self.away_score}"

    def inputs(self) -> MatchInputs:
        return MatchInputs(
            home_team=self.home_team,
            away_team=self.away_team,
            player_team=self.player_team,
            duration=self.duration,
        )

    def outputs(self) -> MatchOutputs:
        return MatchOutputs(
            home_score=self.home_score,
            away_score=self.away_score,
            player_goals=self.player_goals,
            player_assists=self.player_assists,
            result=self.result,
        )

    def to_match_record(self) -> "MatchRecord":
        """Return the plain MatchRecord view (drops fields added by subclasses)."""
        return MatchRecord.model_validate(
            self.model_dump(include=set(MatchRecord.model_fields))
        )

    class Config:
        """Pydantic configuration."""

        alias_generator = to_camel
        populate_by_name = True
        frozen = True
        extra = "forbid"
        json_schema_extra = {
            "examples": [
                {
                    "id": "match_1729180800_a1b2c3",
                    "date": "2026-10-12T18:30:00Z",
                    "homeTeam": "Harbor City",
                    "awayTeam": "North Vale",
                    "homeScore": 2,
                    "awayScore": 1,
                    "playerTeam": "home",
                    "playerGoals": 1,
                    "playerAssists": 1,
                    "result": "win",
                    "duration": 90,
                }
            ]
        }
