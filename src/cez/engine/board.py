from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, NamedTuple, Optional, Tuple

from .errors import InvalidPositionEncoding
from .move import PROMOTION_PIECES, Move, Square, square_in_bounds
from .zobrist import MASK64, ZOBRIST, compute_hash_from_scratch


STARTPOS_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"

WHITE = "w"
BLACK = "b"
EMPTY = ""
PIECE_LETTERS = "PNBRQKpnbrqk"

KNIGHT_DELTAS = ((-1, 2), (1, 2), (-2, 1), (2, 1), (-2, -1), (2, -1), (-1, -2), (1, -2))
KING_DELTAS = ((-1, -1), (0, -1), (1, -1), (-1, 0), (1, 0), (-1, 1), (0, 1), (1, 1))
BISHOP_DIRS = ((-1, -1), (1, -1), (-1, 1), (1, 1))
ROOK_DIRS = ((-1, 0), (1, 0), (0, -1), (0, 1))
QUEEN_DIRS = BISHOP_DIRS + ROOK_DIRS
SLIDER_DIRS = {"b": BISHOP_DIRS, "r": ROOK_DIRS, "q": QUEEN_DIRS}

# Back row of each side (row 0 is rank 8)
HOME_ROW = {WHITE: 7, BLACK: 0}
# Corner rook columns per castling right
CASTLE_ROOK_COLUMN = {"K": 7, "Q": 0}
CASTLE_ROOK_TARGET = {"K": 5, "Q": 3}
CASTLE_KING_TARGET = {"K": 6, "Q": 2}
KING_START_COLUMN = 4


def piece_color(piece: str) -> Optional[str]:
    """Return ``"w"`` for uppercase pieces, ``"b"`` for lowercase, None for empty."""
    if not piece:
        return None
    return WHITE if piece.isupper() else BLACK


def piece_type(piece: str) -> str:
    return piece.lower()


def opponent(side: str) -> str:
    return BLACK if side == WHITE else WHITE


def _rights_for(side: str) -> Tuple[str, str]:
    return ("K", "Q") if side == WHITE else ("k", "q")


class CastlingRights(NamedTuple):
    white_kingside: bool
    white_queenside: bool
    black_kingside: bool
    black_queenside: bool


@dataclass(frozen=True)
class BoardSnapshot:
    """Read-only copy of the position for presentation layers."""

    cells: Tuple[str, ...]
    side_to_move: str
    castling: str
    ep_square: Optional[Square]
    halfmove_clock: int
    fullmove_number: int

    def piece_at(self, square: Square) -> Optional[str]:
        return self.cells[square.index] or None

    def rows(self) -> List[List[str]]:
        """Cells grouped by row, row 0 first (rank 8)."""
        return [list(self.cells[r * 8 : r * 8 + 8]) for r in range(8)]


@dataclass
class Board:
    """Mailbox board with make/unmake and FEN I/O.

    Notes:
    - ``cells`` holds 64 piece letters indexed ``row * 8 + column`` (row 0 is
      rank 8). Uppercase is white, lowercase black, ``EMPTY`` is an empty square.
    - ``make_move`` trusts its caller; legality lives in ``generate_legal_moves``.
    """

    cells: List[str]
    side_to_move: str  # 'w' or 'b'
    castling: str  # subset of 'KQkq' or ''
    ep_square: Optional[Square]
    halfmove_clock: int
    fullmove_number: int
    # reversible state for unmake_move
    _history: List[Tuple] = field(default_factory=list, repr=False)
    zobrist_hash: int = 0

    @classmethod
    def startpos(cls) -> "Board":
        """Create a board initialized to the standard starting position."""
        return cls.from_fen(STARTPOS_FEN)

    @classmethod
    def from_fen(cls, fen: str) -> "Board":
        """Create a board from a Forsyth–Edwards Notation (FEN) string.

        Args:
            fen (str): FEN string describing the position to load.

        Returns:
            Board: Board instance initialized with state encoded in ``fen``.

        Raises:
            InvalidPositionEncoding: If ``fen`` is empty, has the wrong number of
                fields, contains invalid piece placement, castling rights, en
                passant square or move counters, or does not hold exactly one
                king per side.
        """
        if not fen or not isinstance(fen, str):
            raise InvalidPositionEncoding("FEN must be a non-empty string")
        parts = fen.strip().split()
        if len(parts) != 6:
            raise InvalidPositionEncoding("FEN must have 6 fields")
        placement, stm, castling, ep, halfmove, fullmove = parts

        # Piece placement, rank 8 first which is row 0
        ranks = placement.split("/")
        if len(ranks) != 8:
            raise InvalidPositionEncoding("FEN board must have 8 ranks")
        cells = [EMPTY] * 64
        for row, rank in enumerate(ranks):
            column = 0
            for ch in rank:
                if ch.isdigit():
                    n = int(ch)
                    if n < 1 or n > 8:
                        raise InvalidPositionEncoding("invalid empty count in FEN rank")
                    column += n
                else:
                    if ch not in PIECE_LETTERS:
                        raise InvalidPositionEncoding(f"invalid piece in FEN: {ch!r}")
                    if column >= 8:
                        raise InvalidPositionEncoding("too many squares in FEN rank")
                    cells[row * 8 + column] = ch
                    column += 1
            if column != 8:
                raise InvalidPositionEncoding("rank does not sum to 8 squares in FEN")
        if cells.count("K") != 1 or cells.count("k") != 1:
            raise InvalidPositionEncoding("FEN must contain exactly one king per side")

        if stm not in (WHITE, BLACK):
            raise InvalidPositionEncoding("side to move must be 'w' or 'b'")

        if castling != "-":
            for ch in castling:
                if ch not in "KQkq":
                    raise InvalidPositionEncoding("invalid castling rights")
            castling = "".join(c for c in "KQkq" if c in castling)
        else:
            castling = ""

        ep_square: Optional[Square]
        if ep == "-":
            ep_square = None
        else:
            try:
                ep_square = Square.parse(ep)
            except ValueError as e:
                raise InvalidPositionEncoding("invalid en passant square") from e
            if ep_square.rank != (6 if stm == WHITE else 3):
                raise InvalidPositionEncoding("en passant square does not match side to move")
            # The pawn that just double-pushed stands in front of the square
            ahead = 1 if stm == WHITE else -1
            pushed = "p" if stm == WHITE else "P"
            if (
                cells[(ep_square.row + ahead) * 8 + ep_square.column] != pushed
                or cells[ep_square.index]
                or cells[(ep_square.row - ahead) * 8 + ep_square.column]
            ):
                raise InvalidPositionEncoding("en passant square without a double-pushed pawn")

        try:
            halfmove_clock = int(halfmove)
            fullmove_number = int(fullmove)
        except ValueError as e:
            raise InvalidPositionEncoding("invalid move counters in FEN") from e
        if halfmove_clock < 0 or fullmove_number <= 0:
            raise InvalidPositionEncoding("invalid move counters in FEN")

        board = cls(
            cells=cells,
            side_to_move=stm,
            castling=castling,
            ep_square=ep_square,
            halfmove_clock=halfmove_clock,
            fullmove_number=fullmove_number,
        )
        if board.in_check(opponent(stm)):
            raise InvalidPositionEncoding("side not to move is in check")
        board.zobrist_hash = compute_hash_from_scratch(board)
        return board

    def to_fen(self) -> str:
        """Serialize the current position into a normalized FEN string."""
        ranks_str: List[str] = []
        for row in range(8):
            run = 0
            out = []
            for column in range(8):
                ch = self.cells[row * 8 + column]
                if not ch:
                    run += 1
                else:
                    if run > 0:
                        out.append(str(run))
                        run = 0
                    out.append(ch)
            if run > 0:
                out.append(str(run))
            ranks_str.append("".join(out))
        placement = "/".join(ranks_str)

        castling = self.castling if self.castling else "-"
        ep = str(self.ep_square) if self.ep_square is not None else "-"
        return (
            f"{placement} {self.side_to_move} {castling} {ep} "
            f"{self.halfmove_clock} {self.fullmove_number}"
        )

    # --- Accessors ---
    def piece_at(self, square: Square) -> Optional[str]:
        return self.cells[square.index] or None

    def king_square(self, side: str) -> Square:
        return Square.from_index(self.cells.index("K" if side == WHITE else "k"))

    @property
    def castling_rights(self) -> CastlingRights:
        return CastlingRights(*(c in self.castling for c in "KQkq"))

    def position_key(self) -> int:
        """Repetition key: the Zobrist hash, counting the en-passant file only
        when a pawn of the side to move could actually capture there."""
        if self.ep_square is not None and not self._ep_capturable():
            return self.zobrist_hash ^ ZOBRIST.ep_file[self.ep_square.column]
        return self.zobrist_hash

    def _ep_capturable(self) -> bool:
        ep = self.ep_square
        pawn = "P" if self.side_to_move == WHITE else "p"
        row = ep.row + 1 if self.side_to_move == WHITE else ep.row - 1
        return any(
            square_in_bounds(ep.column + dc, row) and self.cells[row * 8 + ep.column + dc] == pawn
            for dc in (-1, 1)
        )

    def snapshot(self) -> BoardSnapshot:
        return BoardSnapshot(
            cells=tuple(self.cells),
            side_to_move=self.side_to_move,
            castling=self.castling,
            ep_square=self.ep_square,
            halfmove_clock=self.halfmove_clock,
            fullmove_number=self.fullmove_number,
        )

    def _pieces_of(self, side: str) -> Iterator[Tuple[Square, str]]:
        for idx, piece in enumerate(self.cells):
            if piece and piece_color(piece) == side:
                yield Square.from_index(idx), piece

    # --- Move generation ---
    def generate_legal_moves(self) -> List[Move]:
        """Return every legal move for the side to move, in board-scan order.

        Each pseudo-legal candidate is made on this board, tested for leaving
        the mover's king attacked, and unmade again.
        """
        side = self.side_to_move
        enemy = opponent(side)
        legal: List[Move] = []
        for mv in self.generate_pseudo_legal_moves():
            self.make_move(mv)
            if not self.is_square_attacked(self.king_square(side), enemy):
                legal.append(mv)
            self.unmake_move()
        return legal

    def generate_pseudo_legal_moves(self) -> List[Move]:
        """Return geometrically valid moves, ignoring self-check."""
        side = self.side_to_move
        moves: List[Move] = []
        for sq, piece in self._pieces_of(side):
            kind = piece_type(piece)
            if kind == "p":
                self._pawn_moves(sq, side, moves)
            elif kind == "n":
                self._step_moves(sq, side, KNIGHT_DELTAS, moves)
            elif kind == "k":
                self._step_moves(sq, side, KING_DELTAS, moves)
                self._castling_moves(sq, side, moves)
            else:
                self._slide_moves(sq, side, SLIDER_DIRS[kind], moves)
        return moves

    def _pawn_moves(self, sq: Square, side: str, moves: List[Move]) -> None:
        dr = -1 if side == WHITE else 1
        start_row = 6 if side == WHITE else 1
        promo_row = 0 if side == WHITE else 7
        c, r = sq.column, sq.row

        def add(to: Square, captured: Optional[Square] = None, ep: bool = False) -> None:
            if to.row == promo_row:
                for promo in PROMOTION_PIECES:
                    moves.append(Move(sq, to, captured_sq=captured, promotion=promo))
            else:
                moves.append(Move(sq, to, captured_sq=captured, en_passant=ep))

        # Forward advances only onto empty squares
        if square_in_bounds(c, r + dr) and not self.cells[(r + dr) * 8 + c]:
            add(Square(c, r + dr))
            if r == start_row and not self.cells[(r + 2 * dr) * 8 + c]:
                moves.append(Move(sq, Square(c, r + 2 * dr)))

        for dc in (-1, 1):
            tc, tr = c + dc, r + dr
            if not square_in_bounds(tc, tr):
                continue
            target = Square(tc, tr)
            occupant = self.cells[target.index]
            if occupant and piece_color(occupant) != side:
                add(target, captured=target)
            elif target == self.ep_square:
                add(target, captured=Square(tc, r), ep=True)

    def _step_moves(
        self, sq: Square, side: str, deltas: Tuple[Tuple[int, int], ...], moves: List[Move]
    ) -> None:
        for dc, dr in deltas:
            tc, tr = sq.column + dc, sq.row + dr
            if not square_in_bounds(tc, tr):
                continue
            occupant = self.cells[tr * 8 + tc]
            if not occupant:
                moves.append(Move(sq, Square(tc, tr)))
            elif piece_color(occupant) != side:
                target = Square(tc, tr)
                moves.append(Move(sq, target, captured_sq=target))

    def _slide_moves(
        self, sq: Square, side: str, dirs: Tuple[Tuple[int, int], ...], moves: List[Move]
    ) -> None:
        for dc, dr in dirs:
            tc, tr = sq.column, sq.row
            while True:
                tc += dc
                tr += dr
                if not square_in_bounds(tc, tr):
                    break
                occupant = self.cells[tr * 8 + tc]
                target = Square(tc, tr)
                if not occupant:
                    moves.append(Move(sq, target))
                    continue
                # Stop at the first occupied square
                if piece_color(occupant) != side:
                    moves.append(Move(sq, target, captured_sq=target))
                break

    def _castling_moves(self, sq: Square, side: str, moves: List[Move]) -> None:
        row = HOME_ROW[side]
        if sq != Square(KING_START_COLUMN, row):
            return
        enemy = opponent(side)
        rook = "R" if side == WHITE else "r"
        king_side, queen_side = _rights_for(side)
        for right, flag in ((king_side, "K"), (queen_side, "Q")):
            if right not in self.castling:
                continue
            if self.cells[row * 8 + CASTLE_ROOK_COLUMN[flag]] != rook:
                continue
            # Squares strictly between king and rook must be empty
            lo, hi = sorted((KING_START_COLUMN, CASTLE_ROOK_COLUMN[flag]))
            if any(self.cells[row * 8 + col] for col in range(lo + 1, hi)):
                continue
            # King start, transit and destination must not be attacked
            step = 1 if flag == "K" else -1
            king_path = [Square(KING_START_COLUMN + step * i, row) for i in range(3)]
            if any(self.is_square_attacked(s, enemy) for s in king_path):
                continue
            moves.append(Move(sq, Square(CASTLE_KING_TARGET[flag], row), castle=flag))

    # --- Attack detection ---
    def is_square_attacked(self, square: Square, by_side: str) -> bool:
        """Return True if ``by_side`` attacks ``square``.

        Scans outward from ``square`` with each piece's movement pattern, so
        pawn pushes and castling never count and no legality filtering is
        involved.
        """
        c, r = square.column, square.row
        cells = self.cells
        white = by_side == WHITE

        # Attacking pawns sit one row behind from the attacker's perspective
        pawn = "P" if white else "p"
        pr = r + 1 if white else r - 1
        for dc in (-1, 1):
            if square_in_bounds(c + dc, pr) and cells[pr * 8 + c + dc] == pawn:
                return True

        knight = "N" if white else "n"
        for dc, dr in KNIGHT_DELTAS:
            if square_in_bounds(c + dc, r + dr) and cells[(r + dr) * 8 + c + dc] == knight:
                return True

        king = "K" if white else "k"
        for dc, dr in KING_DELTAS:
            if square_in_bounds(c + dc, r + dr) and cells[(r + dr) * 8 + c + dc] == king:
                return True

        diag = ("B", "Q") if white else ("b", "q")
        ortho = ("R", "Q") if white else ("r", "q")
        for dirs, attackers in ((BISHOP_DIRS, diag), (ROOK_DIRS, ortho)):
            for dc, dr in dirs:
                tc, tr = c, r
                while True:
                    tc += dc
                    tr += dr
                    if not square_in_bounds(tc, tr):
                        break
                    occupant = cells[tr * 8 + tc]
                    if occupant:
                        if occupant in attackers:
                            return True
                        break
        return False

    # --- Status helpers ---
    def in_check(self, side: Optional[str] = None) -> bool:
        """Return True if ``side`` (default: side to move) is in check."""
        s = self.side_to_move if side is None else side
        if s not in (WHITE, BLACK):
            raise ValueError("side must be 'w' or 'b'")
        return self.is_square_attacked(self.king_square(s), opponent(s))

    # --- Make / unmake ---
    def make_move(self, move: Move) -> None:
        """Apply ``move`` in-place with reversible state.

        The move must come from this position's generated move set; no
        validation is performed here.
        """
        from_sq, to_sq = move.from_sq, move.to_sq
        side = self.side_to_move
        moved_piece = self.cells[from_sq.index]
        captured_piece = self.cells[move.captured_sq.index] if move.captured_sq else EMPTY

        self._history.append(
            (
                move,
                moved_piece,
                captured_piece,
                self.ep_square,
                self.castling,
                self.halfmove_clock,
                self.fullmove_number,
                self.zobrist_hash,
            )
        )

        h = self.zobrist_hash
        prev_castling = self.castling
        if self.ep_square is not None:
            h ^= ZOBRIST.ep_file[self.ep_square.column]

        # Lift moving piece and any captured piece
        self.cells[from_sq.index] = EMPTY
        h ^= ZOBRIST.piece_square[moved_piece][from_sq.index]
        if move.captured_sq is not None and captured_piece:
            self.cells[move.captured_sq.index] = EMPTY
            h ^= ZOBRIST.piece_square[captured_piece][move.captured_sq.index]

        placed = moved_piece
        if move.promotion:
            placed = move.promotion.upper() if side == WHITE else move.promotion
        self.cells[to_sq.index] = placed
        h ^= ZOBRIST.piece_square[placed][to_sq.index]

        if move.castle:
            row = from_sq.row
            rook = "R" if side == WHITE else "r"
            rook_from = row * 8 + CASTLE_ROOK_COLUMN[move.castle]
            rook_to = row * 8 + CASTLE_ROOK_TARGET[move.castle]
            self.cells[rook_from] = EMPTY
            self.cells[rook_to] = rook
            h ^= ZOBRIST.piece_square[rook][rook_from]
            h ^= ZOBRIST.piece_square[rook][rook_to]

        self._update_castling_rights_on_move(moved_piece, from_sq, move.captured_sq, captured_piece)

        # En passant target only after a two-square pawn advance
        self.ep_square = None
        if piece_type(moved_piece) == "p" and abs(to_sq.row - from_sq.row) == 2:
            self.ep_square = Square(from_sq.column, (from_sq.row + to_sq.row) // 2)
            h ^= ZOBRIST.ep_file[from_sq.column]

        if piece_type(moved_piece) == "p" or captured_piece:
            self.halfmove_clock = 0
        else:
            self.halfmove_clock += 1
        if side == BLACK:
            self.fullmove_number += 1

        h ^= ZOBRIST.castling_key(prev_castling) ^ ZOBRIST.castling_key(self.castling)
        h ^= ZOBRIST.side_to_move
        self.zobrist_hash = h & MASK64
        self.side_to_move = opponent(side)

    def unmake_move(self) -> Move:
        """Undo the last made move, restoring the previous state exactly.

        Returns:
            Move: The move that was undone.

        Raises:
            ValueError: If there is no move to unmake.
        """
        if not self._history:
            raise ValueError("no move to unmake")
        (
            move,
            moved_piece,
            captured_piece,
            prev_ep,
            prev_castling,
            prev_halfmove,
            prev_fullmove,
            prev_hash,
        ) = self._history.pop()

        self.side_to_move = opponent(self.side_to_move)
        self.ep_square = prev_ep
        self.castling = prev_castling
        self.halfmove_clock = prev_halfmove
        self.fullmove_number = prev_fullmove
        self.zobrist_hash = prev_hash

        self.cells[move.to_sq.index] = EMPTY
        self.cells[move.from_sq.index] = moved_piece
        if move.captured_sq is not None and captured_piece:
            self.cells[move.captured_sq.index] = captured_piece
        if move.castle:
            row = move.from_sq.row
            self.cells[row * 8 + CASTLE_ROOK_TARGET[move.castle]] = EMPTY
            self.cells[row * 8 + CASTLE_ROOK_COLUMN[move.castle]] = "R" if row == 7 else "r"
        return move

    def _update_castling_rights_on_move(
        self,
        moved_piece: str,
        from_sq: Square,
        captured_sq: Optional[Square],
        captured_piece: str,
    ) -> None:
        """Clear castling rights on king/rook moves and rook captures."""
        rights = set(self.castling)
        if moved_piece in ("K", "k"):
            for ch in _rights_for(piece_color(moved_piece)):
                rights.discard(ch)
        elif moved_piece in ("R", "r"):
            rights.discard(_corner_right(moved_piece, from_sq))
        if captured_piece in ("R", "r") and captured_sq is not None:
            rights.discard(_corner_right(captured_piece, captured_sq))
        self.castling = "".join(c for c in "KQkq" if c in rights)


def _corner_right(rook: str, sq: Square) -> str:
    """Castling right tied to a rook standing on ``sq``, or '' off the corners."""
    side = piece_color(rook)
    if sq.row != HOME_ROW[side]:
        return ""
    king_side, queen_side = _rights_for(side)
    if sq.column == CASTLE_ROOK_COLUMN["K"]:
        return king_side
    if sq.column == CASTLE_ROOK_COLUMN["Q"]:
        return queen_side
    return ""
