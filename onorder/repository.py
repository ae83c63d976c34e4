"""
DB-backed persistence that mirrors the in-memory MemoryPersistence API.

Public methods:
- save_session(state) -> None
- load_session(match_id=None) -> MatchState | None   (None = most recently saved)
- clear_session(match_id) -> None
- append_match_record(record) -> None   (write-once; a second append is ignored)
- list_match_records() -> list[MatchRecord]   (newest first)

Any SQLAlchemy error is rolled back and re-raised as PersistenceFailure so the
service can log it and keep playing from memory.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import PersistenceFailure
from .machine import GuessRecord, MatchRecord, MatchState
from .models import MatchRecordRow, MatchSession


# --- small converters between ORM rows and core objects ---

def _to_datetime(ts: float) -> datetime:
    # naive UTC, which is what the DateTime column holds
    return datetime.fromtimestamp(ts, timezone.utc).replace(tzinfo=None)


def _to_timestamp(dt: datetime) -> float:
    return dt.replace(tzinfo=timezone.utc).timestamp()


def _to_record(row: MatchRecordRow) -> MatchRecord:
    return MatchRecord(
        id=row.id,
        finished_at=_to_timestamp(row.finished_at),
        mode=row.mode,
        n=row.n,
        winner=row.winner,
        rounds=row.rounds,
        secret_p1=row.secret_p1,
        secret_p2=row.secret_p2,
        history_p1=tuple(GuessRecord.from_dict(h) for h in row.history_p1),
        history_p2=tuple(GuessRecord.from_dict(h) for h in row.history_p2),
    )


class DBMatchRepository:
    """Drop-in replacement for MemoryPersistence, backed by MySQL."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceFailure(f"{action} failed: {exc}") from exc

    # --- sessions ---

    def save_session(self, state: MatchState) -> None:
        with self._guard("save session"):
            row = self.db.get(MatchSession, state.id)
            if row is None:
                row = MatchSession(match_id=state.id)
                self.db.add(row)
            row.state = state.to_dict()
            row.updated_at = _to_datetime(state.updated_at)
            self.db.commit()

    def load_session(self, match_id: Optional[str] = None) -> Optional[MatchState]:
        with self._guard("load session"):
            if match_id is not None:
                row = self.db.get(MatchSession, match_id)
            else:
                row = (
                    self.db.execute(select(MatchSession).order_by(MatchSession.updated_at.desc()).limit(1))
                    .scalars()
                    .first()
                )
            if row is None:
                return None
            return MatchState.from_dict(row.state)

    def clear_session(self, match_id: str) -> None:
        with self._guard("clear session"):
            row = self.db.get(MatchSession, match_id)
            if row is not None:
                self.db.delete(row)
                self.db.commit()

    # --- match history ---

    def append_match_record(self, record: MatchRecord) -> None:
        with self._guard("append match record"):
            if self.db.get(MatchRecordRow, record.id) is not None:
                return
            self.db.add(
                MatchRecordRow(
                    id=record.id,
                    finished_at=_to_datetime(record.finished_at),
                    mode=record.mode,
                    n=record.n,
                    winner=record.winner,
                    rounds=record.rounds,
                    secret_p1=record.secret_p1,
                    secret_p2=record.secret_p2,
                    history_p1=[h.to_dict() for h in record.history_p1],
                    history_p2=[h.to_dict() for h in record.history_p2],
                )
            )
            self.db.commit()

    def list_match_records(self) -> List[MatchRecord]:
        with self._guard("list match records"):
            rows = (
                self.db.execute(select(MatchRecordRow).order_by(MatchRecordRow.finished_at.desc()))
                .scalars()
                .all()
            )
            return [_to_record(row) for row in rows]
