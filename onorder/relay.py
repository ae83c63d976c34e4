"""
Online synchronization.

Each participant runs its own MatchMachine. Local moves are applied first and
then broadcast; the peer applies them on arrival. There is no authoritative
server, so the two sides are only eventually consistent.

Protocol (RelayMessage):
- every sender numbers its messages 1, 2, 3, ...
- a receiver drops its own echoes and any seq it has already seen
- a jump in seq, or a remote move that does not fit the local state,
  triggers a sync_request; the answer (sync_response) carries the sender's
  whole state and is merged with MatchMachine.reconcile()

Transports only need send(match_id, message) and
subscribe(match_id, on_message) -> unsubscribe.
"""

import logging
from threading import RLock
from time import time
from typing import Any, Callable, Dict, List, Optional

import requests

from .config import Config
from .errors import IllegalTransition, TransportFailure, ValidationError
from .machine import TURN_PHASES, Clock, MatchMachine, MatchState, other, player_for_role
from .schemas import RelayMessage

logger = logging.getLogger(__name__)

OnMessage = Callable[[RelayMessage], None]
Unsubscribe = Callable[[], None]


class InMemoryRelay:
    """
    Append-only message log per match. New subscribers get the backlog
    replayed first, then live messages. Also backs the HTTP relay endpoints.

    A log is dropped once its last subscriber leaves, or once it has seen no
    traffic for `idle_ttl` seconds.
    """

    def __init__(self, idle_ttl: int = Config.RELAY_IDLE_TTL_SEC, clock: Clock = time) -> None:
        self._logs: Dict[str, List[RelayMessage]] = {}
        self._subscribers: Dict[str, List[OnMessage]] = {}
        self._last_activity: Dict[str, float] = {}
        self._idle_ttl = idle_ttl
        self._clock = clock
        self._lock = RLock()

    def _prune(self) -> None:
        cutoff = self._clock() - self._idle_ttl
        for match_id, last in list(self._last_activity.items()):
            if last <= cutoff:
                self.drop(match_id)

    def drop(self, match_id: str) -> None:
        with self._lock:
            self._logs.pop(match_id, None)
            self._subscribers.pop(match_id, None)
            self._last_activity.pop(match_id, None)

    def send(self, match_id: str, message: RelayMessage) -> None:
        with self._lock:
            self._prune()
            self._logs.setdefault(match_id, []).append(message)
            self._last_activity[match_id] = self._clock()
            listeners = list(self._subscribers.get(match_id, []))
        for listener in listeners:
            listener(message)

    def subscribe(self, match_id: str, on_message: OnMessage) -> Unsubscribe:
        with self._lock:
            backlog = list(self._logs.get(match_id, []))
            self._subscribers.setdefault(match_id, []).append(on_message)
            self._last_activity[match_id] = self._clock()
        for message in backlog:
            on_message(message)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._subscribers.get(match_id, [])
                if on_message in listeners:
                    listeners.remove(on_message)
                    if not listeners:
                        self.drop(match_id)

        return unsubscribe

    def messages(self, match_id: str, after: int = 0) -> List[RelayMessage]:
        with self._lock:
            self._prune()
            return list(self._logs.get(match_id, [])[after:])


class _Subscription:
    def __init__(self, match_id: str, on_message: OnMessage) -> None:
        self.match_id = match_id
        self.on_message = on_message
        self.offset = 0  # log entries already delivered


class HttpRelayTransport:
    """
    Client side of the HTTP relay (POST/GET /relay/{match_id}/messages).
    Nothing arrives on its own: call poll() on the 1 Hz clock.
    """

    def __init__(self, base_url: str, http: Optional[Any] = None, timeout: float = Config.RELAY_TIMEOUT_SEC) -> None:
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()
        self.timeout = timeout
        self._subscriptions: List[_Subscription] = []

    def _url(self, match_id: str) -> str:
        return f"{self.base_url}/relay/{match_id}/messages"

    def send(self, match_id: str, message: RelayMessage) -> None:
        try:
            response = self.http.post(
                self._url(match_id), json=message.model_dump(mode="json"), timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise TransportFailure(f"Relay send failed: {exc}") from exc

    def subscribe(self, match_id: str, on_message: OnMessage) -> Unsubscribe:
        subscription = _Subscription(match_id, on_message)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    def poll(self) -> int:
        delivered = 0
        for subscription in list(self._subscriptions):
            try:
                response = self.http.get(
                    self._url(subscription.match_id),
                    params={"after": subscription.offset},
                    timeout=self.timeout,
                )
                response.raise_for_status()
                entries = response.json()
            except requests.RequestException as exc:
                raise TransportFailure(f"Relay poll failed: {exc}") from exc

            for raw in entries:
                subscription.offset += 1
                subscription.on_message(RelayMessage.model_validate(raw))
                delivered += 1
        return delivered


class OnlinePeer:
    """Binds one side's MatchMachine to a relay transport."""

    def __init__(self, machine: MatchMachine, transport: Any, clock: Clock = time) -> None:
        config = machine.state.config
        if config.mode != "online":
            raise ValueError("OnlinePeer needs an online match.")

        self.machine = machine
        self.transport = transport
        self.role = config.role
        self.player = player_for_role(config.role)
        self.connected = False
        self._clock = clock
        self._seq = 0
        self._ticks = 0
        self._last_seen = 0
        self._unsubscribe: Optional[Unsubscribe] = None

    @property
    def state(self) -> MatchState:
        return self.machine.state

    @property
    def match_id(self) -> str:
        return self.machine.state.id

    # --- lifecycle ---

    def connect(self) -> None:
        self._unsubscribe = self.transport.subscribe(self.match_id, self._on_message)
        # the backlog may already have moved us past the waiting room
        if self.state.phase == "waiting_for_opponent":
            self._send("player_joined", {})

    def leave(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.connected = False

    # --- local moves: apply, then broadcast ---

    def submit_secret(self, raw: str) -> MatchState:
        state = self.machine.submit_secret(self.player, raw)
        self._send("secret_set", {"secret": state.secret_of(self.player)})
        return self.state

    def submit_guess(self, raw: str) -> MatchState:
        state = self.machine.submit_guess(self.player, raw)
        self._send("guess_submitted", {"guess": state.history_of(self.player)[-1].guess})
        return self.state

    def tick(self) -> MatchState:
        """
        Call at 1 Hz. Runs the local player's clock (each side only runs its
        own) and keeps the two sides converging: while the last send failed a
        sync is requested every tick, otherwise every RELAY_SYNC_EVERY_TICKS
        ticks during turns.
        """
        self._ticks += 1
        if self.state.mover == self.player:
            before = len(self.state.history_of(self.player))
            state = self.machine.tick()
            if len(state.history_of(self.player)) > before:
                self._send("guess_submitted", {"guess": state.history_of(self.player)[-1].guess})

        if self._unsubscribe is None:
            return self.state
        periodic = self.state.phase in TURN_PHASES and self._ticks % Config.RELAY_SYNC_EVERY_TICKS == 0
        if not self.connected or periodic:
            self.request_sync()
        return self.state

    def request_sync(self) -> None:
        self._send("sync_request", {})

    # --- wire ---

    def _send(self, kind: str, payload: Dict[str, Any]) -> None:
        self._seq += 1
        message = RelayMessage(
            match_id=self.match_id,
            sender=self.role,
            seq=self._seq,
            kind=kind,
            payload=payload,
            sent_at=self._clock(),
        )
        try:
            self.transport.send(self.match_id, message)
            self.connected = True
        except TransportFailure as exc:
            # local state stands; the peer will notice the seq gap and resync
            self.connected = False
            logger.warning("Match %s: %s #%d not delivered (%s)", self.match_id, kind, self._seq, exc)

    def _on_message(self, message: RelayMessage) -> None:
        if message.sender == self.role:
            return
        if message.seq <= self._last_seen:
            logger.debug("Match %s: dropping duplicate %s #%d", self.match_id, message.kind, message.seq)
            return

        needs_sync = message.seq > self._last_seen + 1
        if needs_sync:
            logger.info("Match %s: missed messages before #%d from %s", self.match_id, message.seq, message.sender)
        # advance first: handlers below may trigger nested deliveries
        self._last_seen = message.seq

        try:
            self._dispatch(message)
        except (IllegalTransition, ValidationError) as exc:
            logger.info("Match %s: could not apply %s #%d (%s)", self.match_id, message.kind, message.seq, exc)
            needs_sync = True

        # never answer a sync_response with another request
        if needs_sync and message.kind != "sync_response":
            self.request_sync()

    def _dispatch(self, message: RelayMessage) -> None:
        opponent = other(self.player)
        payload = message.payload

        if message.kind == "player_joined":
            if self.state.phase == "waiting_for_opponent":
                self.machine.opponent_joined()
                # let them know we're here too
                self._send("player_joined", {})

        elif message.kind == "secret_set":
            if self.state.phase == "waiting_for_opponent":
                self.machine.opponent_joined()
            self.machine.submit_secret(opponent, str(payload.get("secret", "")))

        elif message.kind == "guess_submitted":
            self.machine.submit_guess(opponent, str(payload.get("guess", "")))

        elif message.kind == "sync_request":
            self._send("sync_response", self.state.to_dict())

        elif message.kind == "sync_response":
            self.machine.reconcile(payload)
