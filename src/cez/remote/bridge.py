from __future__ import annotations

import logging

from ..engine.errors import GameOverError, IllegalMoveRequested
from ..engine.game import Game
from ..engine.move import Move
from .client import MoveSearchClient, RemoteMove


logger = logging.getLogger(__name__)


def resolve_remote_move(game: Game, remote: RemoteMove) -> Move:
    """Map a service answer onto the current legal-move set.

    Promotions default to a queen when the answer names none. A reported
    capture square must agree with the legal move's.

    Raises:
        IllegalMoveRequested: If the answer is not a legal move here.
    """
    candidate = remote.to_move()
    legal = game.resolve_move(candidate, default_promotion="q")
    if candidate.captured_sq is not None and candidate.captured_sq != legal.captured_sq:
        raise IllegalMoveRequested(candidate.to_uci(), "capture square mismatch")
    return legal


async def request_engine_move(game: Game, client: MoveSearchClient, difficulty: int) -> Move:
    """Consult the search service for the side to move and apply its answer.

    The game is only touched after a complete, legal answer arrives, so a
    failed or cancelled request leaves it unchanged.
    """
    if game.is_game_over:
        raise GameOverError(f"game is over ({game.status.value})")
    fen = game.to_fen()
    remote = await client.request_move(fen, difficulty)
    if game.to_fen() != fen:
        raise IllegalMoveRequested(remote.to_move().to_uci(), "position changed during search")
    move = resolve_remote_move(game, remote)
    applied = game.apply_move(move)
    logger.info("engine move %s", applied.to_uci(), extra={"difficulty": difficulty})
    return applied
