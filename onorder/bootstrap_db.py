"""
Dev convenience: create the match_sessions / match_records tables if missing.
Only called at startup when APP_ENV=local.
"""

from . import models  # noqa: F401  (registers the tables on Base.metadata)
from .db import Base, engine


def create_all() -> None:
    Base.metadata.create_all(bind=engine)
