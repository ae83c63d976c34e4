"""
Settings pulled from the environment (or a local .env in dev).
DATABASE_URL is read by db.py directly since the engine is built at import time.
"""

import os

from dotenv import load_dotenv

load_dotenv()


class Config:
    APP_ENV = os.environ.get("APP_ENV", "local")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # CPU "thinking" pause before its guess lands (seconds); cosmetic only
    CPU_DELAY_MIN_SEC = float(os.environ.get("CPU_DELAY_MIN_SEC", "1.0"))
    CPU_DELAY_MAX_SEC = float(os.environ.get("CPU_DELAY_MAX_SEC", "2.0"))

    # Use random.org for the CPU's secret (falls back to local randomness)
    USE_RANDOM_ORG = os.environ.get("USE_RANDOM_ORG", "0") == "1"
    RANDOM_ORG_TIMEOUT_SEC = float(os.environ.get("RANDOM_ORG_TIMEOUT_SEC", "3.0"))

    # Online play
    LOBBY_TTL_SEC = int(os.environ.get("LOBBY_TTL_SEC", "1800"))
    RELAY_TIMEOUT_SEC = float(os.environ.get("RELAY_TIMEOUT_SEC", "3.0"))
    # Peers resync every N ticks during turns (and every tick while disconnected)
    RELAY_SYNC_EVERY_TICKS = int(os.environ.get("RELAY_SYNC_EVERY_TICKS", "5"))
    # Relay logs with no traffic for this long are dropped
    RELAY_IDLE_TTL_SEC = int(os.environ.get("RELAY_IDLE_TTL_SEC", "1800"))
