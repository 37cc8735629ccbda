from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Optional


PROMOTION_PIECES = ("q", "r", "b", "n")
FILES = "abcdefgh"


class Square(NamedTuple):
    """Board coordinate.

    Attributes:
        column (int): 0..7, column 0 is file ``a``.
        row (int): 0..7, row 0 is rank 8 (top of an on-screen board).
    """

    column: int
    row: int

    @property
    def index(self) -> int:
        return self.row * 8 + self.column

    @property
    def file(self) -> str:
        return FILES[self.column]

    @property
    def rank(self) -> int:
        return 8 - self.row

    @classmethod
    def from_index(cls, idx: int) -> "Square":
        if idx < 0 or idx > 63:
            raise ValueError(f"invalid square index: {idx}")
        return cls(idx % 8, idx // 8)

    @classmethod
    def parse(cls, s: str) -> "Square":
        """Convert algebraic notation (``"e4"``) into a square.

        Raises:
            ValueError: If ``s`` is not a valid square.
        """
        if len(s) != 2 or s[0] < "a" or s[0] > "h" or s[1] < "1" or s[1] > "8":
            raise ValueError(f"invalid square: {s!r}")
        return cls(ord(s[0]) - ord("a"), 8 - int(s[1]))

    def __str__(self) -> str:
        return self.file + str(self.rank)


def square_in_bounds(column: int, row: int) -> bool:
    return 0 <= column < 8 and 0 <= row < 8


@dataclass(frozen=True)
class Move:
    """Engine move representation.

    Attributes:
        from_sq (Square): Origin square.
        to_sq (Square): Destination square.
        captured_sq (Optional[Square]): Square of the captured piece. Differs
            from ``to_sq`` only for en-passant captures.
        promotion (Optional[str]): Lowercase promotion piece, if any.
        castle (Optional[str]): ``"K"`` or ``"Q"`` for king-/queen-side castling.
        en_passant (bool): True for en-passant captures.
    """

    from_sq: Square
    to_sq: Square
    captured_sq: Optional[Square] = None
    promotion: Optional[str] = None
    castle: Optional[str] = None
    en_passant: bool = False

    @property
    def is_capture(self) -> bool:
        return self.captured_sq is not None

    def to_uci(self) -> str:
        """Serialize the move into long algebraic UCI form (``"e2e4"``, ``"e7e8q"``)."""
        return str(self.from_sq) + str(self.to_sq) + (self.promotion or "")


def parse_uci(uci: str) -> Move:
    """Parse a UCI move string into a bare from/to/promotion move.

    The result carries no capture or castling details; resolve it against the
    legal-move set to obtain the fully described move.

    Raises:
        ValueError: If the string has an invalid length, squares, or promotion
            piece.
    """
    if len(uci) not in (4, 5):
        raise ValueError(f"invalid UCI move length: {uci!r}")
    from_sq = Square.parse(uci[0:2])
    to_sq = Square.parse(uci[2:4])
    promo: Optional[str] = None
    if len(uci) == 5:
        promo = uci[4].lower()
        if promo not in PROMOTION_PIECES:
            raise ValueError(f"invalid promotion piece: {promo!r}")
    return Move(from_sq, to_sq, promotion=promo)
