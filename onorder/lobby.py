"""
Online lobby: a host opens a match and gets a short join code; a guest joins
with the code. Entries expire after LOBBY_TTL_SEC if nobody joins.
"""

import secrets
from dataclasses import dataclass
from threading import RLock
from time import time
from typing import Dict, List, Optional
from uuid import uuid4

from .config import Config
from .errors import IllegalTransition
from .machine import Clock, MatchConfig

# no 0/O, 1/I look-alikes
JOIN_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
JOIN_CODE_LENGTH = 6


@dataclass
class LobbyEntry:
    match_id: str
    join_code: str
    host_name: str
    n: int
    time_limit: int
    created_at: float
    expires_at: float
    status: str = "waiting_for_opponent"
    guest_name: Optional[str] = None

    def config_for(self, role: str) -> MatchConfig:
        return MatchConfig(n=self.n, time_limit=self.time_limit, mode="online", role=role)


def _new_join_code() -> str:
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))


class Lobby:
    def __init__(self, ttl: int = Config.LOBBY_TTL_SEC, clock: Clock = time) -> None:
        self._entries: Dict[str, LobbyEntry] = {}
        self._codes: Dict[str, str] = {}  # join code -> match id
        self._ttl = ttl
        self._clock = clock
        self._lock = RLock()

    def _expire(self) -> None:
        now = self._clock()
        for code, match_id in list(self._codes.items()):
            if self._entries[match_id].expires_at <= now:
                del self._codes[code]
                del self._entries[match_id]

    def host(self, host_name: str, n: int = 4, time_limit: int = 60) -> LobbyEntry:
        # same rules as any match config; raises ValueError on bad n / time_limit
        MatchConfig(n=n, time_limit=time_limit, mode="online", role="host")

        with self._lock:
            self._expire()
            code = _new_join_code()
            while code in self._codes:
                code = _new_join_code()

            now = self._clock()
            entry = LobbyEntry(
                match_id=str(uuid4()),
                join_code=code,
                host_name=host_name,
                n=n,
                time_limit=time_limit,
                created_at=now,
                expires_at=now + self._ttl,
            )
            self._entries[entry.match_id] = entry
            self._codes[code] = entry.match_id
            return entry

    def join(self, code: str, guest_name: str) -> LobbyEntry:
        with self._lock:
            self._expire()
            match_id = self._codes.get(code.strip().upper())
            if match_id is None:
                raise LookupError("Invalid or expired match code.")

            entry = self._entries[match_id]
            if entry.status != "waiting_for_opponent":
                raise IllegalTransition("Match is full or no longer available.")

            entry.status = "playing"
            entry.guest_name = guest_name
            return entry

    def open_matches(self) -> List[LobbyEntry]:
        with self._lock:
            self._expire()
            waiting = [e for e in self._entries.values() if e.status == "waiting_for_opponent"]
            return sorted(waiting, key=lambda e: e.created_at, reverse=True)
