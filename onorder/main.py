'''
On & Order API

Matches (single player vs CPU, or two players sharing one device):
POST   /matches                  -> start a match
GET    /matches/{id}             -> read state (applies a due CPU move)
POST   /matches/{id}/secret      -> set a secret
POST   /matches/{id}/guess       -> submit a guess
POST   /matches/{id}/handoff     -> device passed to the other player
POST   /matches/{id}/tick        -> one second off the mover's clock
POST   /matches/{id}/restart     -> fresh match, same settings
DELETE /matches/{id}             -> leave the match

History:
GET  /history                    -> archived matches, newest first
GET  /stats                      -> scoreboard

Online (each peer runs its own match; the server only relays):
POST /lobby                      -> host a match, get a join code
GET  /lobby                      -> open matches
POST /lobby/{code}/join          -> join by code
POST /relay/{match_id}/messages  -> append a message
GET  /relay/{match_id}/messages  -> read messages after an offset
'''

import logging
from dataclasses import asdict
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import errors
from .bootstrap_db import create_all  # dev-only: create tables
from .config import Config
from .db import get_db
from .lobby import Lobby
from .machine import MatchConfig, MatchState
from .random_client import fetch_secret, generate_secret
from .relay import InMemoryRelay
from .repository import DBMatchRepository
from .schemas import (
    LobbyEntryOut,
    LobbyHostIn,
    LobbyJoinIn,
    MatchConfigIn,
    MatchRecordOut,
    MatchStateOut,
    RelayMessage,
    SequenceIn,
    StatsOut,
)
from .service import MatchService
from .store import MemoryPersistence

logging.basicConfig(level=Config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="On & Order API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Process-wide state: live matches, lobby, relay log
live_matches = MemoryPersistence()
lobby = Lobby()
relay = InMemoryRelay()

# --- Dev convenience: auto-create tables locally ---
if Config.APP_ENV == "local":
    @app.on_event("startup")
    def _dev_create_tables():
        create_all()


@app.exception_handler(errors.ValidationError)
def _invalid_sequence(request: Request, exc: errors.ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": exc.message, "reason": exc.reason})


@app.exception_handler(errors.IllegalTransition)
def _illegal_transition(request: Request, exc: errors.IllegalTransition) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


# Per-request service bound to the current DB session
def get_service(session=Depends(get_db)) -> MatchService:
    return MatchService(
        DBMatchRepository(session),
        cache=live_matches,
        secret_source=fetch_secret if Config.USE_RANDOM_ORG else generate_secret,
    )


def _found(state: MatchState | None) -> MatchStateOut:
    if state is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return MatchStateOut.from_state(state)


# ---------------- Matches ----------------

@app.post("/matches", response_model=MatchStateOut, summary="Start a match")
def start_match(payload: MatchConfigIn, service: MatchService = Depends(get_service)) -> MatchStateOut:
    if payload.mode == "online":
        raise HTTPException(status_code=400, detail="Online matches run on each peer; use /lobby and /relay.")
    config = MatchConfig(n=payload.n, time_limit=payload.time_limit, mode=payload.mode)
    return MatchStateOut.from_state(service.start_match(config))


@app.get("/matches/{match_id}", response_model=MatchStateOut, summary="Get match state")
def get_match(match_id: str, service: MatchService = Depends(get_service)) -> MatchStateOut:
    return _found(service.get_state(match_id))


@app.post("/matches/{match_id}/secret", response_model=MatchStateOut, summary="Set a secret")
def submit_secret(match_id: str, payload: SequenceIn, service: MatchService = Depends(get_service)) -> MatchStateOut:
    return _found(service.submit_secret(match_id, payload.player, payload.sequence))


@app.post("/matches/{match_id}/guess", response_model=MatchStateOut, summary="Submit a guess")
def submit_guess(match_id: str, payload: SequenceIn, service: MatchService = Depends(get_service)) -> MatchStateOut:
    return _found(service.submit_guess(match_id, payload.player, payload.sequence))


@app.post("/matches/{match_id}/handoff", response_model=MatchStateOut, summary="Device handed to the other player")
def confirm_handoff(match_id: str, service: MatchService = Depends(get_service)) -> MatchStateOut:
    return _found(service.confirm_handoff(match_id))


@app.post("/matches/{match_id}/tick", response_model=MatchStateOut, summary="Advance the turn timer by one second")
def tick(match_id: str, service: MatchService = Depends(get_service)) -> MatchStateOut:
    return _found(service.tick(match_id))


@app.post("/matches/{match_id}/restart", response_model=MatchStateOut, summary="Start over with the same settings")
def restart(match_id: str, service: MatchService = Depends(get_service)) -> MatchStateOut:
    return _found(service.restart(match_id))


@app.delete("/matches/{match_id}", summary="Leave the match")
def exit_match(match_id: str, service: MatchService = Depends(get_service)) -> dict:
    service.exit(match_id)
    return {"message": "Match closed."}


# ---------------- History ----------------

@app.get("/history", response_model=List[MatchRecordOut], summary="Finished matches")
def history(service: MatchService = Depends(get_service)) -> List[MatchRecordOut]:
    return [MatchRecordOut.from_record(r) for r in service.list_records()]


@app.get("/stats", response_model=StatsOut, summary="Get scoreboard")
def stats(service: MatchService = Depends(get_service)) -> StatsOut:
    return StatsOut(**asdict(service.get_stats()))


# ---------------- Lobby ----------------

@app.post("/lobby", response_model=LobbyEntryOut, summary="Host an online match")
def host_match(payload: LobbyHostIn) -> LobbyEntryOut:
    entry = lobby.host(payload.host_name, n=payload.n, time_limit=payload.time_limit)
    return LobbyEntryOut(**asdict(entry))


@app.get("/lobby", response_model=List[LobbyEntryOut], summary="Open online matches")
def open_matches() -> List[LobbyEntryOut]:
    return [LobbyEntryOut(**asdict(e)) for e in lobby.open_matches()]


@app.post("/lobby/{code}/join", response_model=LobbyEntryOut, summary="Join an online match by code")
def join_match(code: str, payload: LobbyJoinIn) -> LobbyEntryOut:
    try:
        entry = lobby.join(code, payload.guest_name)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return LobbyEntryOut(**asdict(entry))


# ---------------- Relay ----------------

@app.post("/relay/{match_id}/messages", summary="Append a relay message")
def relay_send(match_id: str, message: RelayMessage) -> dict:
    if message.match_id != match_id:
        raise HTTPException(status_code=400, detail="match_id in path and body differ")
    relay.send(match_id, message)
    return {"message": "Queued."}


@app.get("/relay/{match_id}/messages", response_model=List[RelayMessage], summary="Read relay messages")
def relay_read(match_id: str, after: int = 0) -> List[RelayMessage]:
    if after < 0:
        raise HTTPException(status_code=400, detail="after must be >= 0")
    return relay.messages(match_id, after=after)
