from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .board import WHITE, Board, BoardSnapshot
from .errors import GameOverError, IllegalMoveRequested
from .move import Move, Square
from .notation import move_to_notation


logger = logging.getLogger(__name__)

FIFTY_MOVE_HALFMOVES = 100
REPETITION_LIMIT = 3


class GameStatus(str, Enum):
    NONE = "none"
    IN_PROGRESS = "in_progress"
    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    DRAW_BY_RULE = "draw_by_rule"


class Winner(str, Enum):
    WHITE = "white"
    BLACK = "black"
    DRAW = "draw"
    NONE = "none"


TERMINAL_STATUSES = {GameStatus.CHECKMATE, GameStatus.STALEMATE, GameStatus.DRAW_BY_RULE}


@dataclass
class Game:
    """Session-owned game: board, move record and terminal-state tracking.

    Responsibility: expose legal moves, validate and apply moves, evaluate
    check/checkmate/stalemate/draw after each move, restart.
    """

    board: Board
    move_stack: List[Move] = field(default_factory=list)
    repetition: Dict[int, int] = field(default_factory=dict)
    status: GameStatus = GameStatus.NONE
    winner: Winner = Winner.NONE
    _in_check: bool = field(default=False, repr=False)
    _legal: List[Move] = field(default_factory=list, repr=False)

    @classmethod
    def new(cls) -> "Game":
        return cls(board=Board.startpos())

    @classmethod
    def from_fen(cls, fen: str) -> "Game":
        return cls(board=Board.from_fen(fen))

    def __post_init__(self) -> None:
        # Seed repetition with current position
        key = self.board.position_key()
        self.repetition[key] = self.repetition.get(key, 0) + 1
        self._evaluate()

    def to_fen(self) -> str:
        return self.board.to_fen()

    # --- Queries ---
    def legal_moves(self) -> List[Move]:
        """Legal moves for the side to move; empty once the game is over."""
        if self.is_game_over:
            return []
        return list(self._legal)

    def legal_moves_from(self, square: Square) -> List[Move]:
        return [m for m in self.legal_moves() if m.from_sq == square]

    def legal_moves_by_square(self) -> Dict[Square, List[Move]]:
        out: Dict[Square, List[Move]] = {}
        for m in self.legal_moves():
            out.setdefault(m.from_sq, []).append(m)
        return out

    def snapshot(self) -> BoardSnapshot:
        return self.board.snapshot()

    @property
    def is_game_over(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_whites_turn(self) -> bool:
        return self.board.side_to_move == WHITE

    def in_check(self) -> bool:
        return self._in_check

    def checkmate(self) -> bool:
        return self.status is GameStatus.CHECKMATE

    def stalemate(self) -> bool:
        return self.status is GameStatus.STALEMATE

    def is_draw(self) -> bool:
        return self.winner is Winner.DRAW

    def move_history_uci(self) -> List[str]:
        return [m.to_uci() for m in self.move_stack]

    def history_notation(self) -> List[str]:
        return [move_to_notation(m) for m in self.move_stack]

    # --- Commands ---
    def resolve_move(self, candidate: Move, default_promotion: Optional[str] = None) -> Move:
        """Find the legal move matching ``candidate``'s squares and promotion.

        Args:
            candidate (Move): Move carrying at least from/to squares.
            default_promotion (Optional[str]): Promotion piece assumed when the
                candidate names none and the move promotes.

        Raises:
            GameOverError: If the game is already over.
            IllegalMoveRequested: If no legal move matches.
        """
        if self.is_game_over:
            raise GameOverError(f"game is over ({self.status.value})")
        promotion = candidate.promotion
        for m in self._legal:
            if m.from_sq != candidate.from_sq or m.to_sq != candidate.to_sq:
                continue
            if m.promotion == promotion or (promotion is None and m.promotion == default_promotion):
                return m
        raise IllegalMoveRequested(candidate.to_uci())

    def apply_move(self, move: Move, default_promotion: Optional[str] = None) -> Move:
        """Validate ``move`` against the legal-move set and commit it.

        Returns:
            Move: The fully described legal move that was applied.
        """
        legal = self.resolve_move(move, default_promotion)
        self.board.make_move(legal)
        self.move_stack.append(legal)
        key = self.board.position_key()
        self.repetition[key] = self.repetition.get(key, 0) + 1
        logger.debug("applied %s (%s)", legal.to_uci(), move_to_notation(legal))
        self._evaluate()
        return legal

    def restart(self) -> None:
        """Discard the position and record; back to the standard start."""
        self.board = Board.startpos()
        self.move_stack = []
        self.repetition = {self.board.position_key(): 1}
        self.status = GameStatus.NONE
        self.winner = Winner.NONE
        self._evaluate()
        logger.info("game restarted")

    # --- Terminal-state evaluation ---
    def _evaluate(self) -> None:
        self._legal = self.board.generate_legal_moves()
        self._in_check = self.board.in_check()
        mover = Winner.BLACK if self.is_whites_turn else Winner.WHITE

        if not self._legal:
            if self._in_check:
                self.status, self.winner = GameStatus.CHECKMATE, mover
            else:
                self.status, self.winner = GameStatus.STALEMATE, Winner.DRAW
        elif self.board.halfmove_clock >= FIFTY_MOVE_HALFMOVES:
            self.status, self.winner = GameStatus.DRAW_BY_RULE, Winner.DRAW
        elif self.repetition.get(self.board.position_key(), 0) >= REPETITION_LIMIT:
            self.status, self.winner = GameStatus.DRAW_BY_RULE, Winner.DRAW
        else:
            self.status = GameStatus.IN_PROGRESS if self.move_stack else GameStatus.NONE
            self.winner = Winner.NONE
            return
        logger.info(
            "game over: %s, winner %s", self.status.value, self.winner.value,
            extra={"fen": self.board.to_fen(), "plies": len(self.move_stack)},
        )
