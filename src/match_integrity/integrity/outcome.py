"""Lightweight outcome checks usable outside full verification.

Everything here is a pure function of its arguments.
"""

import base64
import json
from typing import Optional

from match_integrity.models.match_data import (
    MatchInputs,
    MatchOutputs,
    MatchRecord,
    outcome_for,
)
from match_integrity.models.verification import OutcomeCheck, VerifiedMatchRecord

# Score differential (per 90 minutes) at which the plausibility halves.
_HALF_PLAUSIBILITY_DIFFERENTIAL = 4.0

SHAREABLE_PROOF_PREFIX = "match-integrity://verify/"


def is_outcome_consistent(
    inputs: MatchInputs, outputs: MatchOutputs, max_goals_per_minute: float = 0.1
) -> bool:
    """Check that a result can follow from its conditions.

    The participant cannot outscore their own team, the combined goal rate
    must stay under ``max_goals_per_minute`` and the reported result must be
    the one the scores imply.
    """
    if inputs.player_team == "home":
        team_score, opponent_score = outputs.home_score, outputs.away_score
    else:
        team_score, opponent_score = outputs.away_score, outputs.home_score

    if outputs.player_goals > team_score:
        return False

    total_goals = outputs.home_score + outputs.away_score
    goals_per_minute = total_goals / inputs.duration if inputs.duration > 0 else 0
    if goals_per_minute > max_goals_per_minute:
        return False

    return outputs.result == outcome_for(team_score, opponent_score)


def calculate_outcome_probability(
    team_a: str, team_b: str, score_a: int, score_b: int, duration: int
) -> float:
    """Heuristic plausibility of a final score, in [0, 1].

    This is not a calibrated statistical model. The score differential is
    normalized to 90 minutes and mapped through ``1 / (1 + (d / 4) ** 2)``:
    level scores give 1.0, a four-goal margin over 90 minutes gives 0.5, and
    the value falls as the margin grows. For a fixed margin a longer match is
    more plausible. Team names are accepted for interface symmetry and do not
    affect the value.
    """
    if duration <= 0:
        return 1.0 if score_a + score_b == 0 else 0.0

    differential = abs(score_a - score_b) * 90 / duration
    probability = 1.0 / (1.0 + (differential / _HALF_PLAUSIBILITY_DIFFERENTIAL) ** 2)
    return max(0.0, min(1.0, probability))


def calculate_outcome_signature(inputs: MatchInputs, outputs: MatchOutputs) -> str:
    """Reversible, non-cryptographic signature of an outcome for deduplication."""
    combined = (
        f"{inputs.home_team}:{inputs.away_team}:"
        f"{outputs.home_score}-{outputs.away_score}:"
        f"{outputs.player_goals}:{outputs.player_assists}"
    )
    return base64.b64encode(combined.encode("utf-8")).decode("ascii")


def verify_outcome_signature(
    inputs: MatchInputs, outputs: MatchOutputs, signature: str
) -> bool:
    return signature == calculate_outcome_signature(inputs, outputs)


def verify_outcome(
    record: MatchRecord, stored_signature: Optional[str] = None
) -> OutcomeCheck:
    """
    Check a record's outcome for consistency and plausibility.

    Args:
        record: The match to check
        stored_signature: Signature taken when the record was sealed, if any

    Returns:
        OutcomeCheck with one detail line per check
    """
    inputs, outputs = record.inputs(), record.outputs()
    consistent = is_outcome_consistent(inputs, outputs)
    probability = calculate_outcome_probability(
        record.home_team, record.away_team, record.home_score, record.away_score, record.duration
    )
    signature = calculate_outcome_signature(inputs, outputs)

    details = [
        f"Outcome consistency: {'PASS' if consistent else 'FAIL'}",
        f"Outcome probability: {probability:.0%}",
    ]
    signature_matches = None
    if stored_signature is None:
        details.append("Outcome signature: not recorded")
    else:
        signature_matches = verify_outcome_signature(inputs, outputs, stored_signature)
        details.append(f"Outcome signature: {'PASS' if signature_matches else 'FAIL'}")

    return OutcomeCheck(
        consistent=consistent,
        probability=probability,
        signature=signature,
        signature_matches=signature_matches,
        details=details,
    )


def _shareable_payload(verified: VerifiedMatchRecord, participant_id: str) -> dict:
    return {
        "lastVerified": int(verified.last_verified.timestamp() * 1000),
        "participantId": participant_id,
        "proof": verified.proof,
    }


def generate_shareable_proof(verified: VerifiedMatchRecord, participant_id: str) -> str:
    """Link-style token carrying the proof, participant and verification time."""
    payload = json.dumps(_shareable_payload(verified, participant_id), sort_keys=True)
    encoded = base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")
    return f"{SHAREABLE_PROOF_PREFIX}{encoded}"


def verify_shareable_proof(
    token: str, verified: VerifiedMatchRecord, participant_id: str
) -> bool:
    """True when ``token`` was generated for this record, participant and verification."""
    if not token.startswith(SHAREABLE_PROOF_PREFIX):
        return False

    try:
        decoded = base64.urlsafe_b64decode(token[len(SHAREABLE_PROOF_PREFIX):].encode("ascii"))
        payload = json.loads(decoded)
    except ValueError:
        return False

    return payload == _shareable_payload(verified, participant_id)
