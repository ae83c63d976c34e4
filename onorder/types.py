"""
Labels for clarity.
"""

from typing import Literal

Code = str  # repeat-free digit string, ex. "4725"
PlayerId = Literal["player1", "player2"]
Phase = Literal[
    "waiting_for_opponent",  # online lobby/handshake
    "setup_p1",
    "setup_p2",
    "handoff",  # local 2P: pass the device
    "turn_p1",
    "turn_p2",
    "game_over",
]
GameMode = Literal["single_player", "two_player_local", "online"]
Role = Literal["host", "guest"]
ValidationReason = Literal["wrong_length", "non_digit", "duplicate_digit"]
