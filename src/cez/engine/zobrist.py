from __future__ import annotations

from typing import Dict, List, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .board import Board


MASK64 = 0xFFFFFFFFFFFFFFFF
PIECE_CHARS = "PNBRQKpnbrqk"
CASTLING_ORDER = "KQkq"


class _SplitMix64:
    def __init__(self, seed: int) -> None:
        self.state = seed & MASK64

    def next(self) -> int:
        # Deterministic 64-bit SplitMix64
        self.state = (self.state + 0x9E3779B97F4A7C15) & MASK64
        z = self.state
        z = (z ^ (z >> 30)) * 0xBF58476D1CE4E5B9 & MASK64
        z = (z ^ (z >> 27)) * 0x94D049BB133111EB & MASK64
        z = z ^ (z >> 31)
        return z & MASK64


class Zobrist:
    """Zobrist keys for position identity.

    Table layout:
    - piece_square[piece_char][64]: square index is ``row * 8 + column``
    - side_to_move: toggled when black is to move
    - castling[4]: K, Q, k, q
    - ep_file[8]: files a..h
    """

    piece_square: Dict[str, List[int]]
    side_to_move: int
    castling: List[int]
    ep_file: List[int]

    def __init__(self, seed: int = 0xC0FFEE_F00D_DEAD) -> None:
        prng = _SplitMix64(seed)
        self.piece_square = {}
        for ch in PIECE_CHARS:
            self.piece_square[ch] = [prng.next() for _ in range(64)]
        self.side_to_move = prng.next()
        self.castling = [prng.next() for _ in range(4)]
        self.ep_file = [prng.next() for _ in range(8)]

    def castling_key(self, castling: str) -> int:
        h = 0
        for i, ch in enumerate(CASTLING_ORDER):
            if ch in castling:
                h ^= self.castling[i]
        return h


# Global deterministic table
ZOBRIST = Zobrist()


def compute_hash_from_scratch(board: "Board") -> int:
    """Compute the 64-bit Zobrist hash of ``board``.

    Deterministic across runs given the fixed ZOBRIST table.
    """
    h = 0
    for idx, piece in enumerate(board.cells):
        if piece:
            h ^= ZOBRIST.piece_square[piece][idx]
    if board.side_to_move == "b":
        h ^= ZOBRIST.side_to_move
    h ^= ZOBRIST.castling_key(board.castling)
    if board.ep_square is not None:
        h ^= ZOBRIST.ep_file[board.ep_square.column]
    return h & MASK64
