"""
Testing the online lobby: host, join by code, expiry.
"""

import pytest

from onorder.errors import IllegalTransition
from onorder.lobby import JOIN_CODE_ALPHABET, JOIN_CODE_LENGTH, Lobby


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_host_and_join():
    lobby = Lobby(ttl=60, clock=FakeClock())
    entry = lobby.host("ana", n=3, time_limit=30)

    assert len(entry.join_code) == JOIN_CODE_LENGTH
    assert all(ch in JOIN_CODE_ALPHABET for ch in entry.join_code)
    assert entry.status == "waiting_for_opponent"
    assert lobby.open_matches() == [entry]

    joined = lobby.join(entry.join_code.lower(), "bo")
    assert joined.match_id == entry.match_id
    assert joined.status == "playing"
    assert joined.guest_name == "bo"
    assert lobby.open_matches() == []

    guest_config = joined.config_for("guest")
    assert (guest_config.n, guest_config.time_limit, guest_config.role) == (3, 30, "guest")


def test_second_guest_is_turned_away():
    lobby = Lobby(ttl=60, clock=FakeClock())
    entry = lobby.host("ana")
    lobby.join(entry.join_code, "bo")
    with pytest.raises(IllegalTransition):
        lobby.join(entry.join_code, "cy")


def test_unknown_code():
    lobby = Lobby(ttl=60, clock=FakeClock())
    with pytest.raises(LookupError):
        lobby.join("ZZZZZZ", "bo")


def test_entries_expire():
    clock = FakeClock()
    lobby = Lobby(ttl=60, clock=clock)
    entry = lobby.host("ana")

    clock.now += 61
    assert lobby.open_matches() == []
    with pytest.raises(LookupError):
        lobby.join(entry.join_code, "bo")


def test_joined_entries_are_dropped_after_expiry():
    clock = FakeClock()
    lobby = Lobby(ttl=60, clock=clock)
    for i in range(5):
        entry = lobby.host(f"host-{i}")
        lobby.join(entry.join_code, f"guest-{i}")

    clock.now += 61
    lobby.open_matches()
    assert lobby._entries == {}
    assert lobby._codes == {}


def test_open_matches_newest_first():
    clock = FakeClock()
    lobby = Lobby(ttl=600, clock=clock)
    older = lobby.host("ana")
    clock.now += 5
    newer = lobby.host("bo")
    assert [e.match_id for e in lobby.open_matches()] == [newer.match_id, older.match_id]


def test_host_rejects_bad_settings():
    lobby = Lobby()
    with pytest.raises(ValueError):
        lobby.host("ana", n=7)
