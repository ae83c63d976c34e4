"""
Match state machine.

One MatchMachine owns one MatchState. Every accepted operation swaps in a new
(frozen) state; a rejected one raises and leaves the current state alone.

Phases per mode:
  single_player     setup_p1 -> turn_p1 <-> turn_p2 -> game_over
  two_player_local  setup_p1 -> handoff -> setup_p2 -> handoff -> turn_p1 -> handoff -> turn_p2 ...
  online            waiting_for_opponent -> setup_p1/setup_p2 (either order) -> turn_p1 <-> turn_p2 ...

Player 1 always guesses first. No I/O happens here: time and randomness come in
through `clock` and `secret_source`.
"""

from __future__ import annotations

import logging
import random
from dataclasses import asdict, dataclass, field, replace
from time import time
from typing import Any, Callable, Dict, Iterable, Optional, Tuple
from uuid import uuid4

from .engine import score_guess, validate
from .errors import IllegalTransition, ValidationError
from .random_client import generate_secret
from .solver import next_guess
from .types import Code, GameMode, Phase, PlayerId, Role

logger = logging.getLogger(__name__)

VALID_LENGTHS = (2, 3, 4)
VALID_TIME_LIMITS = (30, 60, 90)
VALID_MODES = ("single_player", "two_player_local", "online")
SETUP_PHASES = ("setup_p1", "setup_p2")
TURN_PHASES = ("turn_p1", "turn_p2")

SecretSource = Callable[[int, Optional[Code]], Code]
Clock = Callable[[], float]


def other(player: PlayerId) -> PlayerId:
    return "player2" if player == "player1" else "player1"


def turn_phase(player: PlayerId) -> Phase:
    return "turn_p1" if player == "player1" else "turn_p2"


def setup_phase(player: PlayerId) -> Phase:
    return "setup_p1" if player == "player1" else "setup_p2"


def player_for_role(role: Role) -> PlayerId:
    # host always plays as player 1
    return "player1" if role == "host" else "player2"


@dataclass(frozen=True)
class MatchConfig:
    n: int = 4
    time_limit: int = 60
    mode: GameMode = "single_player"
    role: Optional[Role] = None  # online only

    def __post_init__(self) -> None:
        if self.n not in VALID_LENGTHS:
            raise ValueError(f"n must be one of {VALID_LENGTHS}.")
        if self.time_limit not in VALID_TIME_LIMITS:
            raise ValueError(f"time_limit must be one of {VALID_TIME_LIMITS}.")
        if self.mode not in VALID_MODES:
            raise ValueError(f"mode must be one of {VALID_MODES}.")
        if self.mode == "online" and self.role not in ("host", "guest"):
            raise ValueError("Online matches need a role (host or guest).")


@dataclass(frozen=True)
class GuessRecord:
    guess: Code
    on: int
    order: int
    submitted_at: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GuessRecord":
        return cls(
            guess=str(data["guess"]),
            on=int(data["on"]),
            order=int(data["order"]),
            submitted_at=float(data["submitted_at"]),
        )


@dataclass(frozen=True)
class MatchState:
    id: str
    config: MatchConfig
    phase: Phase
    secret_p1: Optional[Code] = None
    secret_p2: Optional[Code] = None
    history_p1: Tuple[GuessRecord, ...] = ()  # player 1's guesses against secret_p2
    history_p2: Tuple[GuessRecord, ...] = ()  # player 2's guesses against secret_p1
    winner: Optional[PlayerId] = None
    time_remaining: int = 60
    handoff_to: Optional[Phase] = None
    cpu_due_at: Optional[float] = None
    created_at: float = field(default_factory=time)
    updated_at: float = field(default_factory=time)

    def secret_of(self, player: PlayerId) -> Optional[Code]:
        return self.secret_p1 if player == "player1" else self.secret_p2

    def history_of(self, player: PlayerId) -> Tuple[GuessRecord, ...]:
        return self.history_p1 if player == "player1" else self.history_p2

    @property
    def mover(self) -> Optional[PlayerId]:
        if self.phase == "turn_p1":
            return "player1"
        if self.phase == "turn_p2":
            return "player2"
        return None

    @property
    def rounds(self) -> int:
        return max(len(self.history_p1), len(self.history_p2))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "config": asdict(self.config),
            "phase": self.phase,
            "secret_p1": self.secret_p1,
            "secret_p2": self.secret_p2,
            "history_p1": [r.to_dict() for r in self.history_p1],
            "history_p2": [r.to_dict() for r in self.history_p2],
            "winner": self.winner,
            "time_remaining": self.time_remaining,
            "handoff_to": self.handoff_to,
            "cpu_due_at": self.cpu_due_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MatchState":
        return cls(
            id=data["id"],
            config=MatchConfig(**data["config"]),
            phase=data["phase"],
            secret_p1=data.get("secret_p1"),
            secret_p2=data.get("secret_p2"),
            history_p1=tuple(GuessRecord.from_dict(r) for r in data.get("history_p1", [])),
            history_p2=tuple(GuessRecord.from_dict(r) for r in data.get("history_p2", [])),
            winner=data.get("winner"),
            time_remaining=int(data.get("time_remaining", data["config"]["time_limit"])),
            handoff_to=data.get("handoff_to"),
            cpu_due_at=data.get("cpu_due_at"),
            created_at=float(data["created_at"]),
            updated_at=float(data["updated_at"]),
        )


@dataclass(frozen=True)
class MatchRecord:
    """Write-once snapshot of a finished match for the history log."""
    id: str
    finished_at: float
    mode: GameMode
    n: int
    winner: PlayerId
    rounds: int
    secret_p1: Code
    secret_p2: Code
    history_p1: Tuple[GuessRecord, ...]
    history_p2: Tuple[GuessRecord, ...]


def initial_phase(config: MatchConfig) -> Phase:
    if config.mode == "online":
        return "waiting_for_opponent"
    return "setup_p1"


class MatchMachine:
    def __init__(
        self,
        state: MatchState,
        secret_source: SecretSource = generate_secret,
        clock: Clock = time,
    ) -> None:
        self.state = state
        self._secret_source = secret_source
        self._clock = clock

    @classmethod
    def start(
        cls,
        config: MatchConfig,
        match_id: Optional[str] = None,
        secret_source: SecretSource = generate_secret,
        clock: Clock = time,
    ) -> "MatchMachine":
        now = clock()
        state = MatchState(
            id=match_id or str(uuid4()),
            config=config,
            phase=initial_phase(config),
            time_remaining=config.time_limit,
            created_at=now,
            updated_at=now,
        )
        return cls(state, secret_source=secret_source, clock=clock)

    # --- helpers ---

    def _commit(self, **changes: Any) -> MatchState:
        self.state = replace(self.state, updated_at=self._clock(), **changes)
        return self.state

    @property
    def timer_running(self) -> bool:
        """
        The clock only runs for a mover who already has a guess on the board,
        so each player's opening guess is untimed. The CPU is never timed.
        """
        mover = self.state.mover
        if mover is None:
            return False
        if self.state.config.mode == "single_player" and mover == "player2":
            return False
        return len(self.state.history_of(mover)) > 0

    # --- transitions ---

    def opponent_joined(self) -> MatchState:
        if self.state.config.mode != "online":
            raise IllegalTransition("Only online matches wait for an opponent.")
        if self.state.phase != "waiting_for_opponent":
            raise IllegalTransition("Opponent already joined.")
        return self._commit(phase="setup_p1")

    def submit_secret(self, player: PlayerId, raw: str) -> MatchState:
        state = self.state
        config = state.config

        if state.phase not in SETUP_PHASES:
            raise IllegalTransition(f"Cannot set a secret during {state.phase}.")
        if state.secret_of(player) is not None:
            raise IllegalTransition(f"{player} already set a secret.")
        # online peers set their secrets concurrently; offline it's strictly in turn
        if config.mode != "online" and state.phase != setup_phase(player):
            raise IllegalTransition(f"It is not {player}'s turn to set a secret.")

        secret = validate(raw, config.n)
        secrets = {"secret_p1": state.secret_p1, "secret_p2": state.secret_p2}
        secrets["secret_p1" if player == "player1" else "secret_p2"] = secret

        if config.mode == "single_player":
            secrets["secret_p2"] = self._secret_source(config.n, secret)
            return self._commit(phase="turn_p1", time_remaining=config.time_limit, **secrets)

        if config.mode == "two_player_local":
            next_phase = "setup_p2" if player == "player1" else "turn_p1"
            return self._commit(phase="handoff", handoff_to=next_phase, **secrets)

        if secrets["secret_p1"] is not None and secrets["secret_p2"] is not None:
            return self._commit(phase="turn_p1", time_remaining=config.time_limit, **secrets)
        missing: PlayerId = "player1" if secrets["secret_p1"] is None else "player2"
        return self._commit(phase=setup_phase(missing), **secrets)

    def confirm_handoff(self) -> MatchState:
        if self.state.phase != "handoff" or self.state.handoff_to is None:
            raise IllegalTransition("No handoff pending.")
        target = self.state.handoff_to
        changes: Dict[str, Any] = {"phase": target, "handoff_to": None}
        if target in TURN_PHASES:
            changes["time_remaining"] = self.state.config.time_limit
        return self._commit(**changes)

    def submit_guess(self, player: PlayerId, raw: str) -> MatchState:
        # in single player, player 2 is the CPU and only moves via play_cpu_turn
        if self.state.config.mode == "single_player" and player == "player2":
            raise IllegalTransition("The CPU makes its own guesses.")
        return self._guess(player, raw)

    def _guess(self, player: PlayerId, raw: str) -> MatchState:
        state = self.state
        config = state.config

        if state.phase != turn_phase(player):
            raise IllegalTransition(f"It is not {player}'s turn.")

        guess = validate(raw, config.n)
        target = state.secret_of(other(player))
        if target is None:
            raise IllegalTransition(f"{other(player)} has no secret yet.")

        feedback = score_guess(target, guess)
        record = GuessRecord(
            guess=guess,
            on=feedback.on,
            order=feedback.order,
            submitted_at=self._clock(),
        )
        key = "history_p1" if player == "player1" else "history_p2"
        changes: Dict[str, Any] = {key: state.history_of(player) + (record,), "cpu_due_at": None}

        if feedback.order == config.n:
            return self._commit(phase="game_over", winner=player, **changes)

        changes["time_remaining"] = config.time_limit
        opponent_turn = turn_phase(other(player))
        if config.mode == "two_player_local":
            return self._commit(phase="handoff", handoff_to=opponent_turn, **changes)
        return self._commit(phase=opponent_turn, **changes)

    def play_cpu_turn(self, rng: Optional[random.Random] = None) -> MatchState:
        if self.state.config.mode != "single_player" or self.state.phase != "turn_p2":
            raise IllegalTransition("The CPU can only move on its own turn.")
        guess = next_guess(self.state.config.n, self.state.history_p2, rng)
        return self._guess("player2", guess)

    def tick(self) -> MatchState:
        """
        One second off the mover's clock. At zero the mover's last guess is
        resubmitted on their behalf, which hands the turn over.
        """
        if not self.timer_running:
            return self.state

        remaining = self.state.time_remaining - 1
        if remaining > 0:
            return self._commit(time_remaining=remaining)

        mover = self.state.mover
        fallback = self.state.history_of(mover)[-1].guess
        logger.info("Match %s: %s ran out of time, resubmitting %s", self.state.id, mover, fallback)
        return self._guess(mover, fallback)

    def restart(self) -> MatchState:
        fresh = MatchMachine.start(self.state.config, secret_source=self._secret_source, clock=self._clock)
        self.state = fresh.state
        return self.state

    def record(self) -> MatchRecord:
        state = self.state
        if state.phase != "game_over" or state.winner is None:
            raise IllegalTransition("Only finished matches are archived.")
        return MatchRecord(
            id=state.id,
            finished_at=state.updated_at,
            mode=state.config.mode,
            n=state.config.n,
            winner=state.winner,
            rounds=state.rounds,
            secret_p1=state.secret_p1 or "",
            secret_p2=state.secret_p2 or "",
            history_p1=state.history_p1,
            history_p2=state.history_p2,
        )

    # --- online reconciliation ---

    def reconcile(self, snapshot: Dict[str, Any]) -> MatchState:
        """
        Merge a peer's state snapshot (MatchState.to_dict() shape).

        Set secrets never change; a history is only replaced by a longer one
        that starts with the same guesses, and adopted guesses are re-scored
        against our own copy of the secret. The phase is then recomputed.
        """
        state = self.state
        if state.phase == "game_over":
            return state

        n = state.config.n
        try:
            secret_p1 = state.secret_p1 or _remote_secret(snapshot.get("secret_p1"), n)
            secret_p2 = state.secret_p2 or _remote_secret(snapshot.get("secret_p2"), n)
            history_p1 = _extend_history(state.history_p1, snapshot.get("history_p1"), secret_p2)
            history_p2 = _extend_history(state.history_p2, snapshot.get("history_p2"), secret_p1)
        except ValidationError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise IllegalTransition(f"Malformed snapshot: {exc!r}") from exc

        remote_phase = snapshot.get("phase")
        phase = state.phase
        winner: Optional[PlayerId] = None
        for player, history in (("player1", history_p1), ("player2", history_p2)):
            if any(r.order == n for r in history):
                winner = player

        if phase == "waiting_for_opponent" and remote_phase not in (None, "waiting_for_opponent"):
            phase = "setup_p1"

        if winner is not None:
            phase = "game_over"
        elif secret_p1 is not None and secret_p2 is not None:
            phase = turn_phase("player1" if len(history_p1) == len(history_p2) else "player2")
        elif phase in SETUP_PHASES:
            phase = setup_phase("player1" if secret_p1 is None else "player2")

        changes: Dict[str, Any] = {
            "secret_p1": secret_p1,
            "secret_p2": secret_p2,
            "history_p1": history_p1,
            "history_p2": history_p2,
            "phase": phase,
            "winner": winner,
        }
        if phase != state.phase and phase in TURN_PHASES:
            changes["time_remaining"] = state.config.time_limit
        return self._commit(**changes)


def _remote_secret(raw: Optional[str], n: int) -> Optional[Code]:
    if raw is None:
        return None
    return validate(raw, n)


def _extend_history(
    local: Tuple[GuessRecord, ...],
    remote: Optional[Iterable[Dict[str, Any]]],
    target: Optional[Code],
) -> Tuple[GuessRecord, ...]:
    if not remote or target is None:
        return local
    records = [GuessRecord.from_dict(r) for r in remote]
    if len(records) <= len(local):
        return local
    for mine, theirs in zip(local, records):
        if mine.guess != theirs.guess:
            # diverged; keep ours and let the next sync sort it out
            return local

    extended = list(local)
    for theirs in records[len(local):]:
        feedback = score_guess(target, validate(theirs.guess, len(target)))
        extended.append(GuessRecord(theirs.guess, feedback.on, feedback.order, theirs.submitted_at))
    return tuple(extended)
