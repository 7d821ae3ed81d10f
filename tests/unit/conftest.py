"""Shared fixtures for match integrity unit tests."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from match_integrity.integrity.config import IntegrityConfig
from match_integrity.integrity.hasher import IntegrityHasher, Sha256Digest
from match_integrity.integrity.validation_engine import ValidationEngine
from match_integrity.integrity.verification_service import VerificationService
from match_integrity.models.match_data import MatchRecord

FIXED_NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def build_record(**overrides) -> MatchRecord:
    """A clean 2-1 home win with one goal and one assist, played yesterday."""
    fields = {
        "id": "match_1",
        "date": FIXED_NOW - timedelta(days=1),
        "home_team": "Harbor City",
        "away_team": "North Vale",
        "home_score": 2,
        "away_score": 1,
        "player_team": "home",
        "player_goals": 1,
        "player_assists": 1,
        "result": "win",
        "duration": 90,
    }
    fields.update(overrides)
    return MatchRecord(**fields)


def _history_match(index: int, goals: int, assists: int, result: str) -> MatchRecord:
    home_score, away_score = (2, 1) if result == "win" else (1, 2)
    return build_record(
        id=f"history_{index}",
        date=FIXED_NOW - timedelta(days=30 - index),
        home_score=home_score,
        away_score=away_score,
        player_goals=goals,
        player_assists=assists,
        result=result,
    )


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def config():
    return IntegrityConfig()


@pytest.fixture
def engine(config, clock):
    return ValidationEngine(config, clock=clock)


@pytest.fixture
def hasher():
    return IntegrityHasher(Sha256Digest())


@pytest.fixture
def metrics():
    return MagicMock()


@pytest.fixture
def service(engine, hasher, config, metrics, clock):
    return VerificationService(
        engine=engine, hasher=hasher, config=config, metrics=metrics, clock=clock
    )


@pytest.fixture
def make_record():
    return build_record


@pytest.fixture
def record():
    return build_record()


@pytest.fixture
def steady_history():
    """Ten matches, one goal each, alternating wins and losses, newest a loss."""
    return [
        _history_match(
            index,
            goals=1,
            assists=index % 2,
            result="win" if index % 2 == 0 else "loss",
        )
        for index in range(10)
    ]


@pytest.fixture
def low_scoring_history():
    """Ten matches averaging half a goal, one assist in total, two wins."""
    return [
        _history_match(
            index,
            goals=index % 2,
            assists=1 if index == 3 else 0,
            result="win" if index in (2, 5) else "loss",
        )
        for index in range(10)
    ]


@pytest.fixture
def breakout_record():
    """2-3 away win with five goals and two assists from the participant."""
    return build_record(
        id="match_breakout",
        date=FIXED_NOW - timedelta(hours=1),
        home_score=2,
        away_score=3,
        player_team="away",
        player_goals=5,
        player_assists=2,
        result="win",
        duration=90,
    )
