"""Configuration module for Match Integrity.

Handles environment variable parsing with defaults and validation.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class IntegrityConfig(BaseModel):
    """Thresholds and runtime settings for validation and verification."""

    # Layer 1: score and result
    max_team_score: int = Field(default=50, ge=0, description="Highest plausible score for one team")

    # Layer 2: performance bounds
    max_player_goals: int = Field(default=10, ge=0, description="Highest plausible goals in one match")
    max_player_assists: int = Field(default=8, ge=0, description="Highest plausible assists in one match")
    max_player_contribution: int = Field(default=15, ge=0, description="Goals + assists before a warning")

    # Layer 3: timing
    min_duration_minutes: int = Field(default=20, ge=0, description="Shorter matches get a warning")
    max_duration_minutes: int = Field(default=200, ge=0, description="Longer matches get a warning")
    max_match_age_days: int = Field(default=730, ge=1, description="Older matches get a warning")
    clock_skew_seconds: int = Field(default=300, ge=0, description="Tolerance before a date counts as future")

    # Layer 4: physical plausibility
    max_goals_per_minute: float = Field(default=0.1, gt=0, description="Combined goal rate ceiling")
    max_player_goals_per_minute: float = Field(default=0.05, gt=0, description="Participant goal rate before a warning")

    # Layer 5: statistical anomaly
    z_score_threshold: float = Field(default=3.0, gt=0, description="Deviations above mean for an anomaly")
    form_reversal_win_rate: float = Field(default=0.30, ge=0, le=1, description="Win rate below which a win is a reversal")
    spike_multiplier: float = Field(default=2.0, gt=1, description="Multiple of average counted as a spike")
    streak_length: int = Field(default=6, ge=2, description="Consecutive wins that trigger the streak check")
    streak_probability_threshold: float = Field(default=0.10, gt=0, lt=1, description="Implied streak probability ceiling")

    # Layer 6: stats consistency
    possession_tolerance: float = Field(default=1.0, ge=0, description="Allowed drift of possession sum from 100")

    # Reporting
    suspicious_score_threshold: int = Field(default=60, ge=0, le=100, description="Scores below this are suspicious")

    # Runtime
    force_fallback_digest: bool = Field(default=False, description="Use the non-secure digest even if SHA-256 is available")
    audit_dir: Optional[Path] = Field(default=None, description="Directory for JSONL audit logs")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_log_levels:
            raise ValueError(f"Invalid log_level: {v}. Must be one of {valid_log_levels}")
        return v.upper()

    @model_validator(mode="after")
    def validate_duration_window(self) -> "IntegrityConfig":
        """Validate that the duration window is logical."""
        if self.min_duration_minutes > self.max_duration_minutes:
            raise ValueError(
                f"min_duration_minutes ({self.min_duration_minutes}) cannot exceed "
                f"max_duration_minutes ({self.max_duration_minutes})"
            )
        return self

    class Config:
        """Pydantic configuration."""

        frozen = True
        json_schema_extra = {
            "example": {
                "max_team_score": 50,
                "max_player_goals": 10,
                "max_player_assists": 8,
                "min_duration_minutes": 20,
                "max_duration_minutes": 200,
                "max_goals_per_minute": 0.1,
                "z_score_threshold": 3.0,
                "possession_tolerance": 1.0,
                "suspicious_score_threshold": 60,
                "log_level": "INFO",
            }
        }


def load_config() -> IntegrityConfig:
    """Load configuration from environment variables with defaults.

    Returns:
        IntegrityConfig: Parsed and validated configuration object

    Raises:
        ValueError: If environment variables hold invalid values
    """
    try:
        clock_skew_seconds = int(os.getenv("MATCH_INTEGRITY_CLOCK_SKEW_SECONDS", "300"))
        max_match_age_days = int(os.getenv("MATCH_INTEGRITY_MAX_MATCH_AGE_DAYS", "730"))
        suspicious_score_threshold = int(os.getenv("MATCH_INTEGRITY_SUSPICIOUS_SCORE", "60"))
    except ValueError as e:
        raise ValueError(f"Integer environment variable is not a valid integer: {e}") from e

    audit_dir = os.getenv("MATCH_INTEGRITY_AUDIT_DIR")

    return IntegrityConfig(
        clock_skew_seconds=clock_skew_seconds,
        max_match_age_days=max_match_age_days,
        suspicious_score_threshold=suspicious_score_threshold,
        force_fallback_digest=_env_bool("MATCH_INTEGRITY_FORCE_FALLBACK_DIGEST"),
        audit_dir=Path(audit_dir) if audit_dir else None,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
