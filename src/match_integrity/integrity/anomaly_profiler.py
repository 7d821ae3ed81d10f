"""Statistical baselines over a participant's match history.

The profiler summarizes a history into a PlayerAnomalyProfile and scores a
new match against it. Standard deviations are sample (Bessel-corrected)
deviations; a history of one match has a deviation of zero.

The caller decides the order of the history. Mean, deviation and maxima do
not depend on it, and win-streak detection sorts a copy by match date.
"""

import math
import statistics
from collections.abc import Sequence
from typing import Optional

from match_integrity.integrity.config import IntegrityConfig
from match_integrity.models.match_data import MatchRecord
from match_integrity.models.profile import (
    AnomalyAssessment,
    PlayerAnomalyProfile,
    StatBaseline,
)
from match_integrity.utils.logger import get_logger

logger = get_logger()


def build_baseline(values: Sequence[float]) -> StatBaseline:
    """Mean, sample standard deviation and maximum of a non-empty sequence."""
    if not values:
        raise ValueError("Cannot build a baseline from an empty sequence")
    stdev = statistics.stdev(values) if len(values) > 1 else 0.0
    return StatBaseline(mean=statistics.fmean(values), stdev=stdev, maximum=max(values))


def implied_win_probability(team_score: int, opponent_score: int) -> float:
    """Heuristic chance of winning a match given its goal differential.

    ``0.5 + 0.1 * differential``, clamped to [0.05, 0.95]. Narrow wins count as
    close to a coin flip and wide wins as near certain. Monotonic in the
    differential; not a statistical model.
    """
    differential = team_score - opponent_score
    return max(0.05, min(0.95, 0.5 + 0.1 * differential))


def streak_probability(margins: Sequence[int]) -> float:
    """Implied probability of winning every match in a streak of margins."""
    return math.prod(implied_win_probability(margin, 0) for margin in margins)


class AnomalyProfiler:
    """Builds history baselines and flags unusual matches."""

    def __init__(self, config: Optional[IntegrityConfig] = None):
        self.config = config or IntegrityConfig()

    def build_profile(
        self, history: Sequence[MatchRecord]
    ) -> Optional[PlayerAnomalyProfile]:
        """
        Summarize a participant's history.

        Args:
            history: Prior matches of one participant, in any order

        Returns:
            The profile, or None for an empty history. Callers must skip
            anomaly checks entirely when there is no profile.
        """
        if not history:
            return None

        wins = sum(1 for match in history if match.result == "win")

        streak_margins: list[int] = []
        for match in sorted(history, key=lambda m: m.date, reverse=True):
            if match.result != "win":
                break
            streak_margins.append(match.team_score - match.opponent_score)
        streak_margins.reverse()

        profile = PlayerAnomalyProfile(
            goals=build_baseline([m.player_goals for m in history]),
            assists=build_baseline([m.player_assists for m in history]),
            duration=build_baseline([m.duration for m in history]),
            win_rate=wins / len(history),
            current_win_streak=len(streak_margins),
            recent_margins=streak_margins,
            sample_size=len(history),
        )

        logger.debug(
            "Built anomaly profile",
            extra={
                "sample_size": profile.sample_size,
                "avg_goals": profile.avg_goals_per_match,
                "avg_assists": profile.avg_assists_per_match,
                "win_rate": profile.win_rate,
            },
        )
        return profile

    def assess(
        self, record: MatchRecord, profile: PlayerAnomalyProfile
    ) -> AnomalyAssessment:
        """
        Score one match against a profile.

        Args:
            record: The new match
            profile: Baseline built from prior matches

        Returns:
            Z-scores and the pattern flags that fired
        """
        threshold = self.config.z_score_threshold
        multiplier = self.config.spike_multiplier

        performance_spike = (
            record.player_goals > 0
            and record.player_assists > 0
            and record.player_goals >= multiplier * profile.avg_goals_per_match
            and record.player_assists >= multiplier * profile.avg_assists_per_match
        )

        streak_length = 0
        probability = None
        improbable_streak = False
        if record.result == "win":
            margins = [*profile.recent_margins, record.team_score - record.opponent_score]
            streak_length = len(margins)
            probability = streak_probability(margins)
            improbable_streak = (
                streak_length >= self.config.streak_length
                and probability < self.config.streak_probability_threshold
            )

        return AnomalyAssessment(
            goal_z_score=profile.goals.z_score(record.player_goals),
            assist_z_score=profile.assists.z_score(record.player_assists),
            goal_anomaly=profile.goals.is_anomalous(record.player_goals, threshold),
            assist_anomaly=profile.assists.is_anomalous(record.player_assists, threshold),
            form_reversal=(
                record.result == "win"
                and profile.win_rate < self.config.form_reversal_win_rate
            ),
            performance_spike=performance_spike,
            improbable_streak=improbable_streak,
            streak_length=streak_length,
            streak_probability=probability,
        )
