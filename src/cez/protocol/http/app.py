from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, Field

from .error import (
    engine_exception_handler,
    exception_handler,
    http_exception_handler,
    request_validation_exception_handler,
)
from .logging_middleware import RequestIDLoggingMiddleware
from .session import GameSession, InMemorySessionStore
from ...config import Settings, get_settings
from ...engine.board import Board
from ...engine.errors import CezError
from ...engine.game import Game
from ...engine.move import Move, Square, parse_uci
from ...engine.notation import history_rows, move_to_notation
from ...engine.perft import perft as perft_nodes
from ...remote.bridge import request_engine_move
from ...remote.client import MoveSearchClient


logger = logging.getLogger(__name__)


class CreateGameResponse(BaseModel):
    game_id: str
    fen: str


class SetPositionRequest(BaseModel):
    fen: str = Field(..., description="FEN string")


class MoveRequest(BaseModel):
    move: str = Field(..., description="UCI move string, e.g., e2e4")


class EngineMoveRequest(BaseModel):
    difficulty: Optional[int] = Field(default=None, ge=1, le=3)


class PerftRequest(BaseModel):
    fen: str
    depth: int = Field(default=1, ge=0, le=5)


class MoveView(BaseModel):
    uci: str
    notation: str
    from_square: str
    to_square: str
    capture: Optional[str]
    promotion: Optional[str]
    castle: Optional[str]
    en_passant: bool


class GameState(BaseModel):
    game_id: str
    fen: str
    cells: List[List[str]]
    side_to_move: str
    legal_moves: list[str]
    in_check: bool
    status: str
    winner: str
    is_game_over: bool
    checkmate: bool
    stalemate: bool
    draw: bool
    last_move: Optional[str]
    move_history: list[str]
    history_notation: list[str]


class HistoryRowView(BaseModel):
    number: int
    white: str
    black: Optional[str]


def create_app(
    settings: Optional[Settings] = None,
    search_client: Optional[MoveSearchClient] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if app.state.search_client is not None:
            await app.state.search_client.aclose()

    app = FastAPI(title="Cez Engine API", version="0.1.0", lifespan=lifespan)

    logging.basicConfig(level=settings.log_level)

    # Middleware & error handling
    app.add_middleware(RequestIDLoggingMiddleware)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(CezError, engine_exception_handler)
    app.add_exception_handler(Exception, exception_handler)

    store = InMemorySessionStore()
    app.state.store = store
    app.state.search_client = search_client

    def _client() -> MoveSearchClient:
        if app.state.search_client is None:
            app.state.search_client = MoveSearchClient(settings)
        return app.state.search_client

    @app.get("/healthz")
    async def healthz() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/games", response_model=CreateGameResponse)
    async def create_game() -> CreateGameResponse:
        game_id = store.create(Game.new())
        session = _require_session(store, game_id)
        logger.info("game created", extra={"game_id": game_id})
        return CreateGameResponse(game_id=game_id, fen=session.game.to_fen())

    @app.get("/api/games/{game_id}/state", response_model=GameState)
    async def get_state(game_id: str) -> GameState:
        session = _require_session(store, game_id)
        return _state(game_id, session.game)

    @app.get("/api/games/{game_id}/legal-moves", response_model=List[MoveView])
    async def legal_moves(
        game_id: str, square: str = Query(..., description="Square name, e.g. e2")
    ) -> List[MoveView]:
        session = _require_session(store, game_id)
        try:
            sq = Square.parse(square)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return [_move_view(m) for m in session.game.legal_moves_from(sq)]

    @app.post("/api/games/{game_id}/position", response_model=GameState)
    async def set_position(game_id: str, req: SetPositionRequest) -> GameState:
        session = _require_session(store, game_id)
        async with session.lock:
            # Decode first so a bad FEN leaves the live game untouched
            game = Game.from_fen(req.fen)
            store.replace_game(game_id, game)
        return _state(game_id, game)

    @app.post("/api/games/{game_id}/move", response_model=GameState)
    async def make_move(game_id: str, req: MoveRequest) -> GameState:
        session = _require_session(store, game_id)
        try:
            move = parse_uci(req.move)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        async with session.lock:
            session.game.apply_move(move)
        return _state(game_id, session.game)

    @app.post("/api/games/{game_id}/engine-move", response_model=GameState)
    async def engine_move(game_id: str, req: EngineMoveRequest) -> GameState:
        session = _require_session(store, game_id)
        difficulty = req.difficulty or settings.default_difficulty
        async with session.lock:
            await request_engine_move(session.game, _client(), difficulty)
        return _state(game_id, session.game)

    @app.post("/api/games/{game_id}/restart", response_model=GameState)
    async def restart(game_id: str) -> GameState:
        session = _require_session(store, game_id)
        async with session.lock:
            session.game.restart()
        return _state(game_id, session.game)

    @app.get("/api/games/{game_id}/history", response_model=List[HistoryRowView])
    async def history(game_id: str) -> List[HistoryRowView]:
        session = _require_session(store, game_id)
        return [
            HistoryRowView(number=row.number, white=row.white, black=row.black)
            for row in history_rows(session.game.move_stack)
        ]

    @app.post("/api/perft")
    async def perft(req: PerftRequest) -> Dict[str, Any]:
        nodes = perft_nodes(Board.from_fen(req.fen), req.depth)
        return {"nodes": nodes}

    return app


def _require_session(store: InMemorySessionStore, game_id: str) -> GameSession:
    session = store.get(game_id)
    if session is None:
        raise HTTPException(status_code=404, detail="game not found")
    return session


def _move_view(m: Move) -> MoveView:
    return MoveView(
        uci=m.to_uci(),
        notation=move_to_notation(m),
        from_square=str(m.from_sq),
        to_square=str(m.to_sq),
        capture=str(m.captured_sq) if m.captured_sq else None,
        promotion=m.promotion,
        castle=m.castle,
        en_passant=m.en_passant,
    )


def _state(game_id: str, game: Game) -> GameState:
    history = game.move_history_uci()
    return GameState(
        game_id=game_id,
        fen=game.to_fen(),
        cells=game.snapshot().rows(),
        side_to_move=game.board.side_to_move,
        legal_moves=[m.to_uci() for m in game.legal_moves()],
        in_check=game.in_check(),
        status=game.status.value,
        winner=game.winner.value,
        is_game_over=game.is_game_over,
        checkmate=game.checkmate(),
        stalemate=game.stalemate(),
        draw=game.is_draw(),
        last_move=history[-1] if history else None,
        move_history=history,
        history_notation=game.history_notation(),
    )
