"""
Storage contracts for verified match records and a JSON state-file store.

The integrity service only depends on the two protocols; JsonRecordStore
implements both over a single JSON file keyed by participant and match id.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from match_integrity.models.match_data import MatchRecord
from match_integrity.models.verification import VerifiedMatchRecord
from match_integrity.utils.logger import get_logger

logger = get_logger()


@runtime_checkable
class HistoryProvider(Protocol):
    """Source of a participant's prior matches."""

    def load_history(self, participant_id: str) -> list[MatchRecord]: ...


@runtime_checkable
class VerifiedRecordStore(Protocol):
    """Persistence for sealed match records."""

    def save(self, participant_id: str, record: VerifiedMatchRecord) -> None: ...

    def load(self, participant_id: str) -> list[VerifiedMatchRecord]: ...


class JsonRecordStore:
    """Stores verified records in a JSON state file."""

    def __init__(self, state_file_path: Path):
        """
        Initialize the store.

        Args:
            state_file_path: Path to the state file; created on first save
        """
        self.state_file_path = Path(state_file_path)

    def _read_state(self) -> dict[str, Any]:
        if not self.state_file_path.exists():
            logger.info(
                "No state file found, starting fresh",
                extra={"state_file": str(self.state_file_path)},
            )
            return {"participants": {}}

        with open(self.state_file_path) as f:
            state = json.load(f)
        state.setdefault("participants", {})
        return state

    def _write_state(self, state: dict[str, Any]) -> None:
        state["last_updated"] = datetime.now(timezone.utc).isoformat()
        if self.state_file_path.parent:
            self.state_file_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self.state_file_path, "w") as f:
                json.dump(state, f, indent=2, default=str)
        except OSError as e:
            logger.error(
                f"Failed to save state: {e}",
                extra={"error": str(e), "state_file": str(self.state_file_path)},
            )
            raise

    def save(self, participant_id: str, record: VerifiedMatchRecord) -> None:
        """
        Insert or replace a record (keyed by match id) for a participant.

        Args:
            participant_id: Owner of the record
            record: Sealed record to persist
        """
        state = self._read_state()
        matches = state["participants"].setdefault(participant_id, {}).setdefault("matches", {})
        matches[record.id] = record.model_dump(mode="json", by_alias=True)
        self._write_state(state)
        logger.info(
            "Saved verified record",
            extra={
                "participant_id": participant_id,
                "record_id": record.id,
                "match_count": len(matches),
            },
        )

    def load_raw(self, participant_id: str) -> list[dict[str, Any]]:
        """Stored records for a participant as plain camelCase dictionaries."""
        state = self._read_state()
        participant = state["participants"].get(participant_id, {})
        return list(participant.get("matches", {}).values())

    def load(self, participant_id: str) -> list[VerifiedMatchRecord]:
        """
        Parsed records for a participant, oldest match first.

        Entries that no longer parse are skipped and logged; re-verification of
        the remaining records still runs.
        """
        records: list[VerifiedMatchRecord] = []
        for raw in self.load_raw(participant_id):
            try:
                records.append(VerifiedMatchRecord.model_validate(raw))
            except ValidationError as e:
                logger.warning(
                    "Skipping unreadable stored record",
                    extra={
                        "participant_id": participant_id,
                        "record_id": raw.get("id"),
                        "error_count": e.error_count(),
                    },
                )
        return sorted(records, key=lambda r: r.date)

    def load_history(self, participant_id: str) -> list[MatchRecord]:
        """Stored records stripped to plain MatchRecords, for anomaly profiling."""
        return [record.to_match_record() for record in self.load(participant_id)]

    def participants(self) -> list[str]:
        return sorted(self._read_state()["participants"])
