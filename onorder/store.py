"""
In-memory persistence.
Same public methods as the DB repository, so the service can use either:
- save_session(state) / load_session(match_id=None) / clear_session(match_id)
- append_match_record(record) / list_match_records()

Also serves as the service's always-available cache when the DB is down.
"""

from threading import RLock
from typing import Dict, List, Optional

from .machine import MatchRecord, MatchState


class MemoryPersistence:
    def __init__(self) -> None:
        self._sessions: Dict[str, MatchState] = {}
        self._records: List[MatchRecord] = []
        self.lock = RLock()

    def save_session(self, state: MatchState) -> None:
        with self.lock:
            # re-insert so the latest save sits at the end
            self._sessions.pop(state.id, None)
            self._sessions[state.id] = state

    def load_session(self, match_id: Optional[str] = None) -> Optional[MatchState]:
        with self.lock:
            if match_id is not None:
                return self._sessions.get(match_id)
            if not self._sessions:
                return None
            return list(self._sessions.values())[-1]

    def clear_session(self, match_id: str) -> None:
        with self.lock:
            self._sessions.pop(match_id, None)

    def append_match_record(self, record: MatchRecord) -> None:
        with self.lock:
            for existing in self._records:
                if existing.id == record.id:
                    return
            # newest first
            self._records.insert(0, record)

    def list_match_records(self) -> List[MatchRecord]:
        with self.lock:
            return list(self._records)
