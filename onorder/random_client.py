"""
Secret generation.
- generate_secret(): local sampling without replacement (SystemRandom), always available.
- fetch_secret(): HTTP call to random.org with clear fallback. If anything goes wrong
  (no internet, timeout, bad response), we fall back to generate_secret() so the game still works.
"""

import logging
from random import SystemRandom
from typing import Optional

import requests

from .config import Config
from .engine import DIGITS
from .types import Code

logger = logging.getLogger(__name__)

RANDOM_URL = "https://www.random.org/sequences/"

_system_random = SystemRandom()


def generate_secret(n: int, exclude: Optional[Code] = None) -> Code:
    secret = "".join(_system_random.sample(DIGITS, n))
    if exclude is not None and secret == exclude:
        # one redraw is enough; a repeat collision is harmless
        secret = "".join(_system_random.sample(DIGITS, n))
    return secret


def fetch_secret(n: int, exclude: Optional[Code] = None) -> Code:
    # random.org shuffles 0..9 for us; we keep the first n
    params = {
        "min": 0,
        "max": 9,
        "col": 1,           # one number per line
        "format": "plain",  # plain text response
        "rnd": "new",       # always generate new numbers
    }

    try:
        response = requests.get(RANDOM_URL, params=params, timeout=Config.RANDOM_ORG_TIMEOUT_SEC)
        response.raise_for_status()

        # The body looks like:
        #   7\n0\n3\n...
        digits = [line.strip() for line in response.text.splitlines() if line.strip() != ""]

        if sorted(digits) != list(DIGITS):
            raise ValueError(f"random.org returned {digits!r}, expected a permutation of 0..9.")

        secret = "".join(digits[:n])
        if exclude is not None and secret == exclude:
            return generate_secret(n, exclude)
        return secret

    except (requests.RequestException, ValueError) as exc:
        logger.warning("random.org unavailable (%s); using local generator", exc)
        return generate_secret(n, exclude)
