"""
Match service: the surface front ends call into.

start_match / submit_secret / submit_guess / confirm_handoff / tick /
get_state / restart / exit, plus match history and stats.

Live states sit in an in-memory cache; every accepted change is also written
through to the persistence backend (DB repository or MemoryPersistence). A
persistence failure is logged and play continues from the cache.

Single player: after the human's guess the CPU move is scheduled
`cpu_delay` seconds out (state.cpu_due_at) and applied by the first call
that sees the deadline has passed.
"""

import logging
import random
from dataclasses import dataclass, replace
from time import time
from typing import Any, Callable, List, Optional, Tuple

from .config import Config
from .errors import PersistenceFailure
from .machine import Clock, MatchConfig, MatchMachine, MatchRecord, MatchState, SecretSource
from .random_client import generate_secret
from .store import MemoryPersistence
from .types import PlayerId

logger = logging.getLogger(__name__)


@dataclass
class Stats:
    matches_played: int = 0
    player1_wins: int = 0
    player2_wins: int = 0

    single_player: int = 0
    two_player_local: int = 0
    online: int = 0

    average_rounds: Optional[float] = None
    fewest_rounds: Optional[int] = None


class MatchService:
    def __init__(
        self,
        persistence: Any,
        cache: Optional[MemoryPersistence] = None,
        secret_source: SecretSource = generate_secret,
        cpu_delay: Tuple[float, float] = (Config.CPU_DELAY_MIN_SEC, Config.CPU_DELAY_MAX_SEC),
        clock: Clock = time,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.persistence = persistence
        self.cache = cache if cache is not None else MemoryPersistence()
        self._secret_source = secret_source
        self._cpu_delay = cpu_delay
        self._clock = clock
        self._rng = rng or random.Random()

    # --- internals ---

    def _machine(self, state: MatchState) -> MatchMachine:
        return MatchMachine(state, secret_source=self._secret_source, clock=self._clock)

    def _persist(self, action: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except PersistenceFailure as exc:
            logger.warning("Could not %s (%s); continuing in memory", action, exc)
            return None

    def _load(self, match_id: str) -> Optional[MatchState]:
        state = self.cache.load_session(match_id)
        if state is None:
            # not live in this process; maybe saved before a restart
            state = self._persist("load session", self.persistence.load_session, match_id)
            if state is not None:
                self.cache.save_session(state)
        return state

    def _store(self, before: Optional[MatchState], state: MatchState) -> MatchState:
        self.cache.save_session(state)
        self._persist("save session", self.persistence.save_session, state)

        # archive exactly once, on the transition into game_over
        if state.phase == "game_over" and (before is None or before.phase != "game_over"):
            record = self._machine(state).record()
            self.cache.append_match_record(record)
            self._persist("archive match", self.persistence.append_match_record, record)
        return state

    def _settle_cpu(self, machine: MatchMachine) -> None:
        state = machine.state
        if state.config.mode != "single_player" or state.phase != "turn_p2":
            return

        if state.cpu_due_at is None:
            low, high = self._cpu_delay
            machine.state = replace(state, cpu_due_at=self._clock() + self._rng.uniform(low, high))

        if self._clock() >= machine.state.cpu_due_at:
            machine.play_cpu_turn(self._rng)

    def _apply(self, match_id: str, operation: Callable[[MatchMachine], Any]) -> Optional[MatchState]:
        with self.cache.lock:
            before = self._load(match_id)
            if before is None:
                return None

            machine = self._machine(before)
            # raises ValidationError / IllegalTransition before anything is stored
            operation(machine)
            self._settle_cpu(machine)

            if machine.state is before:
                return before
            return self._store(before, machine.state)

    # --- public API ---

    def start_match(self, config: MatchConfig) -> MatchState:
        machine = MatchMachine.start(config, secret_source=self._secret_source, clock=self._clock)
        with self.cache.lock:
            return self._store(None, machine.state)

    def resume(self, state: MatchState) -> MatchState:
        """Adopt a previously saved session (ex. loaded at startup)."""
        with self.cache.lock:
            return self._store(self.cache.load_session(state.id), state)

    def get_state(self, match_id: str) -> Optional[MatchState]:
        return self._apply(match_id, lambda machine: None)

    def submit_secret(self, match_id: str, player: PlayerId, sequence: str) -> Optional[MatchState]:
        return self._apply(match_id, lambda machine: machine.submit_secret(player, sequence))

    def submit_guess(self, match_id: str, player: PlayerId, sequence: str) -> Optional[MatchState]:
        return self._apply(match_id, lambda machine: machine.submit_guess(player, sequence))

    def confirm_handoff(self, match_id: str) -> Optional[MatchState]:
        return self._apply(match_id, lambda machine: machine.confirm_handoff())

    def tick(self, match_id: str) -> Optional[MatchState]:
        return self._apply(match_id, lambda machine: machine.tick())

    def restart(self, match_id: str) -> Optional[MatchState]:
        with self.cache.lock:
            old = self._load(match_id)
            if old is None:
                return None
            machine = self._machine(old)
            machine.restart()
            self.exit(match_id)
            return self._store(None, machine.state)

    def exit(self, match_id: str) -> None:
        with self.cache.lock:
            self.cache.clear_session(match_id)
            self._persist("clear session", self.persistence.clear_session, match_id)

    def list_records(self) -> List[MatchRecord]:
        records = self._persist("list match records", self.persistence.list_match_records)
        if records is None:
            return self.cache.list_match_records()
        return records

    def get_stats(self) -> Stats:
        stats = Stats()
        total_rounds = 0
        for record in self.list_records():
            stats.matches_played += 1
            if record.winner == "player1":
                stats.player1_wins += 1
            else:
                stats.player2_wins += 1

            if record.mode == "single_player":
                stats.single_player += 1
            elif record.mode == "two_player_local":
                stats.two_player_local += 1
            else:
                stats.online += 1

            total_rounds += record.rounds
            if stats.fewest_rounds is None or record.rounds < stats.fewest_rounds:
                stats.fewest_rounds = record.rounds

        if stats.matches_played > 0:
            stats.average_rounds = total_rounds / stats.matches_played
        return stats
