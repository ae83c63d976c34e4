"""
Testing online play
- Two OnlinePeers talk through an InMemoryRelay (or the HTTP relay via TestClient).
- Duplicate, missing and out-of-turn messages must not break either side.
"""

import pytest

from onorder.config import Config
from onorder.errors import TransportFailure
from onorder.machine import MatchConfig, MatchMachine
from onorder.relay import HttpRelayTransport, InMemoryRelay, OnlinePeer
from onorder.schemas import RelayMessage


def make_peer(role, transport, match_id="match-1", n=3):
    machine = MatchMachine.start(MatchConfig(n=n, time_limit=30, mode="online", role=role), match_id=match_id)
    return OnlinePeer(machine, transport)


def connected_pair(transport=None):
    relay = transport or InMemoryRelay()
    host = make_peer("host", relay)
    guest = make_peer("guest", relay)
    host.connect()
    guest.connect()
    return relay, host, guest


class FlakyRelay(InMemoryRelay):
    """
    Loses the next message when told to: drop_next fails the send,
    lose_next swallows it without the sender noticing.
    """

    def __init__(self):
        super().__init__()
        self.drop_next = False
        self.lose_next = False

    def send(self, match_id, message):
        if self.drop_next:
            self.drop_next = False
            raise TransportFailure("connection reset")
        if self.lose_next:
            self.lose_next = False
            return
        super().send(match_id, message)


def test_handshake_moves_both_out_of_waiting_room():
    relay, host, guest = connected_pair()
    assert host.state.phase == "setup_p1"
    assert guest.state.phase == "setup_p1"
    assert host.connected and guest.connected


def test_full_online_match():
    relay, host, guest = connected_pair()

    guest.submit_secret("456")
    host.submit_secret("123")
    assert host.state.phase == guest.state.phase == "turn_p1"
    assert host.state.secret_p2 == "456"
    assert guest.state.secret_p1 == "123"

    host.submit_guess("450")
    assert host.state.phase == guest.state.phase == "turn_p2"
    assert guest.state.history_p1[-1].guess == "450"
    assert (guest.state.history_p1[-1].on, guest.state.history_p1[-1].order) == (2, 2)

    guest.submit_guess("123")
    assert host.state.phase == guest.state.phase == "game_over"
    assert host.state.winner == guest.state.winner == "player2"


def test_own_echoes_and_duplicates_are_ignored():
    relay, host, guest = connected_pair()
    guest.submit_secret("456")
    host.submit_secret("123")
    host.submit_guess("789")

    # replay everything the host ever sent
    for message in relay.messages("match-1"):
        if message.sender == "host":
            guest._on_message(message)

    assert [r.guess for r in guest.state.history_p1] == ["789"]
    assert guest.state.phase == "turn_p2"


def test_lost_message_is_recovered_by_sync():
    relay = FlakyRelay()
    relay_, host, guest = connected_pair(relay)
    guest.submit_secret("456")
    host.submit_secret("123")

    relay.drop_next = True
    host.submit_guess("789")
    assert host.connected is False
    assert host.state.phase == "turn_p2"
    assert guest.state.phase == "turn_p1"  # never heard about it

    # the next host message shows a gap in seq; the guest asks for a sync
    host.request_sync()
    assert [r.guess for r in guest.state.history_p1] == ["789"]
    assert guest.state.phase == "turn_p2"
    assert host.connected is True


def test_out_of_turn_remote_guess_triggers_sync():
    relay, host, guest = connected_pair()
    guest.submit_secret("456")
    host.submit_secret("123")

    bogus = RelayMessage(
        match_id="match-1",
        sender="guest",
        seq=guest._seq + 1,
        kind="guess_submitted",
        payload={"guess": "120"},
        sent_at=0.0,
    )
    guest._seq += 1
    relay.send("match-1", bogus)

    # rejected locally; after the sync the host still expects its own move
    assert host.state.history_p2 == ()
    assert host.state.phase == "turn_p1"
    kinds = [m.kind for m in relay.messages("match-1")]
    assert "sync_request" in kinds
    assert "sync_response" in kinds


def test_timeout_is_broadcast():
    relay, host, guest = connected_pair()
    guest.submit_secret("456")
    host.submit_secret("123")
    host.submit_guess("789")
    guest.submit_guess("012")

    # guest's clock isn't ticked by the host side
    assert guest.tick().time_remaining == 30

    for _ in range(30):
        host.tick()
    assert [r.guess for r in guest.state.history_p1] == ["789", "789"]
    assert guest.state.phase == "turn_p2"


def test_leave_stops_delivery():
    relay, host, guest = connected_pair()
    guest.leave()
    host.submit_secret("123")
    assert guest.state.secret_p1 is None


def test_lost_winning_guess_is_recovered_by_ticking():
    relay = FlakyRelay()
    relay_, host, guest = connected_pair(relay)
    guest.submit_secret("456")
    host.submit_secret("123")

    relay.drop_next = True
    host.submit_guess("456")
    assert host.state.phase == "game_over"
    assert host.connected is False
    assert guest.state.phase == "turn_p1"

    # nobody calls request_sync by hand; the 1 Hz tick does it
    for _ in range(3):
        host.tick()
        guest.tick()

    assert host.connected is True
    assert guest.state.phase == "game_over"
    assert guest.state.winner == "player1"
    assert [r.guess for r in guest.state.history_p1] == ["456"]


def test_silently_lost_guess_is_recovered_by_periodic_sync():
    relay = FlakyRelay()
    relay_, host, guest = connected_pair(relay)
    guest.submit_secret("456")
    host.submit_secret("123")

    relay.lose_next = True
    host.submit_guess("789")
    assert host.connected is True  # the sender can't tell
    assert guest.state.phase == "turn_p1"

    for _ in range(Config.RELAY_SYNC_EVERY_TICKS):
        host.tick()
        guest.tick()

    assert [r.guess for r in guest.state.history_p1] == ["789"]
    assert guest.state.phase == "turn_p2"


def test_malformed_sync_response_is_ignored():
    relay, host, guest = connected_pair()
    guest.submit_secret("456")
    host.submit_secret("123")
    before = host.state

    for payload in ({"history_p1": [{"guess": "450"}]}, {"history_p2": "oops"}, {"history_p1": [None]}):
        guest._seq += 1
        relay.send(
            "match-1",
            RelayMessage(
                match_id="match-1",
                sender="guest",
                seq=guest._seq,
                kind="sync_response",
                payload=payload,
                sent_at=0.0,
            ),
        )

    assert host.state is before
    assert host.state.phase == "turn_p1"
    # no sync storm in answer to a bad response
    assert [m.kind for m in relay.messages("match-1")].count("sync_request") == 0


def test_log_is_dropped_once_both_peers_leave():
    relay, host, guest = connected_pair()
    host.submit_secret("123")
    assert relay.messages("match-1") != []

    host.leave()
    assert relay.messages("match-1") != []  # guest still listening
    guest.leave()
    assert relay.messages("match-1") == []


def test_idle_logs_are_pruned():
    class FakeClock:
        now = 1000.0

        def __call__(self):
            return self.now

    clock = FakeClock()
    relay = InMemoryRelay(idle_ttl=60, clock=clock)
    message = RelayMessage(match_id="old", sender="host", seq=1, kind="player_joined", sent_at=0.0)
    relay.send("old", message)

    clock.now += 61
    relay.send("new", message.model_copy(update={"match_id": "new"}))
    assert relay.messages("old") == []
    assert len(relay.messages("new")) == 1


def test_peer_requires_online_match():
    machine = MatchMachine.start(MatchConfig(n=3, time_limit=30))
    with pytest.raises(ValueError):
        OnlinePeer(machine, InMemoryRelay())


def test_peers_over_http_relay(client):
    host_transport = HttpRelayTransport("http://testserver", http=client)
    guest_transport = HttpRelayTransport("http://testserver", http=client)
    host = make_peer("host", host_transport, match_id="http-match")
    guest = make_peer("guest", guest_transport, match_id="http-match")

    host.connect()
    guest.connect()
    guest_transport.poll()  # sees host's player_joined, answers
    host_transport.poll()   # sees guest's player_joined
    assert host.state.phase == guest.state.phase == "setup_p1"

    host.submit_secret("123")
    guest.submit_secret("456")
    host_transport.poll()
    guest_transport.poll()
    assert host.state.phase == guest.state.phase == "turn_p1"

    host.submit_guess("456")
    guest_transport.poll()
    assert guest.state.winner == "player1"
