"""
Explicit validation & Pydantic models
- Request/response shapes for the HTTP API.
- RelayMessage: the envelope online peers exchange through the relay.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .machine import GuessRecord, MatchRecord, MatchState


# 1. Starting a match
class MatchConfigIn(BaseModel):
    n: Literal[2, 3, 4] = Field(4, description="Sequence length")
    time_limit: Literal[30, 60, 90] = Field(60, description="Seconds per timed turn")
    mode: Literal["single_player", "two_player_local", "online"] = Field(
        "single_player", description="Who the opponent is"
    )
    role: Optional[Literal["host", "guest"]] = Field(None, description="Online only")


# 2. Secret or guess submission
class SequenceIn(BaseModel):
    player: Literal["player1", "player2"] = Field(..., description="Who is submitting")
    sequence: str = Field(..., description="Repeat-free digits, length n", examples=["4725"])


# 3. One guess and its feedback
class GuessRecordOut(BaseModel):
    guess: str = Field(..., description="The guess")
    on: int = Field(..., description="Digits shared with the secret, any position")
    order: int = Field(..., description="Digits in the exact position")
    submitted_at: float = Field(..., description="When the guess was made")

    @classmethod
    def from_record(cls, record: GuessRecord) -> "GuessRecordOut":
        return cls(guess=record.guess, on=record.on, order=record.order, submitted_at=record.submitted_at)


# 4. Match state as the client sees it
class MatchStateOut(BaseModel):
    match_id: str
    config: MatchConfigIn
    phase: str = Field(..., description="Current phase of the match")
    handoff_to: Optional[str] = Field(None, description="Phase entered once the device is passed")
    mover: Optional[Literal["player1", "player2"]] = None
    time_remaining: int
    cpu_thinking: bool = Field(False, description="Single player: CPU move pending")
    history_p1: List[GuessRecordOut]
    history_p2: List[GuessRecordOut]
    winner: Optional[Literal["player1", "player2"]] = None
    # only revealed once the match is over
    secret_p1: Optional[str] = None
    secret_p2: Optional[str] = None

    @classmethod
    def from_state(cls, state: MatchState) -> "MatchStateOut":
        finished = state.phase == "game_over"
        return cls(
            match_id=state.id,
            config=MatchConfigIn(
                n=state.config.n,
                time_limit=state.config.time_limit,
                mode=state.config.mode,
                role=state.config.role,
            ),
            phase=state.phase,
            handoff_to=state.handoff_to,
            mover=state.mover,
            time_remaining=state.time_remaining,
            cpu_thinking=state.cpu_due_at is not None,
            history_p1=[GuessRecordOut.from_record(r) for r in state.history_p1],
            history_p2=[GuessRecordOut.from_record(r) for r in state.history_p2],
            winner=state.winner,
            secret_p1=state.secret_p1 if finished else None,
            secret_p2=state.secret_p2 if finished else None,
        )


# 5. Archived match
class MatchRecordOut(BaseModel):
    match_id: str
    finished_at: float
    mode: str
    n: int
    winner: Literal["player1", "player2"]
    rounds: int
    secret_p1: str
    secret_p2: str
    history_p1: List[GuessRecordOut]
    history_p2: List[GuessRecordOut]

    @classmethod
    def from_record(cls, record: MatchRecord) -> "MatchRecordOut":
        return cls(
            match_id=record.id,
            finished_at=record.finished_at,
            mode=record.mode,
            n=record.n,
            winner=record.winner,
            rounds=record.rounds,
            secret_p1=record.secret_p1,
            secret_p2=record.secret_p2,
            history_p1=[GuessRecordOut.from_record(r) for r in record.history_p1],
            history_p2=[GuessRecordOut.from_record(r) for r in record.history_p2],
        )


# 6. Scoreboard over archived matches
class StatsOut(BaseModel):
    matches_played: int = Field(..., description="Finished matches on record")
    player1_wins: int = Field(..., description="Matches won by player 1 (the human in single player)")
    player2_wins: int = Field(..., description="Matches won by player 2 (the CPU in single player)")

    single_player: int = Field(..., description="Finished single player matches")
    two_player_local: int = Field(..., description="Finished local two player matches")
    online: int = Field(..., description="Finished online matches")

    average_rounds: Optional[float] = Field(None, description="Average rounds per finished match")
    fewest_rounds: Optional[int] = Field(None, description="Shortest finished match, in rounds")


# 7. Lobby
class LobbyHostIn(BaseModel):
    host_name: str = Field(..., min_length=1)
    n: Literal[2, 3, 4] = 4
    time_limit: Literal[30, 60, 90] = 60


class LobbyJoinIn(BaseModel):
    guest_name: str = Field(..., min_length=1)


class LobbyEntryOut(BaseModel):
    match_id: str
    join_code: str
    host_name: str
    guest_name: Optional[str] = None
    n: int
    time_limit: int
    status: Literal["waiting_for_opponent", "playing"]
    created_at: float
    expires_at: float


# 8. Relay envelope
class RelayMessage(BaseModel):
    match_id: str
    sender: Literal["host", "guest"]
    seq: int = Field(..., ge=1, description="Per-sender counter, strictly increasing")
    kind: Literal["player_joined", "secret_set", "guess_submitted", "sync_request", "sync_response"]
    payload: Dict[str, Any] = Field(default_factory=dict)
    sent_at: float
