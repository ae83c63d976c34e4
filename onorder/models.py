"""
SQLAlchemy ORM models.

Tables:
- match_sessions: one row per resumable match; the whole MatchState as JSON
- match_records: archived finished matches (denormalized, write-once)

Histories are short lists of small dicts, so JSON columns keep this simple.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


class MatchSession(Base):
    __tablename__ = "match_sessions"

    match_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    state: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, index=True)


class MatchRecordRow(Base):
    __tablename__ = "match_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    finished_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    mode: Mapped[str] = mapped_column(
        Enum("single_player", "two_player_local", "online", name="game_mode"),
        nullable=False,
    )
    n: Mapped[int] = mapped_column(Integer, nullable=False)
    winner: Mapped[str] = mapped_column(Enum("player1", "player2", name="player_id"), nullable=False)
    rounds: Mapped[int] = mapped_column(Integer, nullable=False)

    secret_p1: Mapped[str] = mapped_column(String(4), nullable=False)
    secret_p2: Mapped[str] = mapped_column(String(4), nullable=False)

    # list of {"guess", "on", "order", "submitted_at"}
    history_p1: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    history_p2: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
