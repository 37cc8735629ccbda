"""Compact move tokens for the history panel.

A token is the source square, ``>`` for a quiet move or ``x`` for a capture,
then the destination rank digit (same file) or destination file letter (same
rank). Moves that change both file and rank have no token and render as
``UNREPRESENTABLE``.
"""

from __future__ import annotations

from typing import Iterable, List, NamedTuple, Optional

from .move import Move


UNREPRESENTABLE = "<invalid>"
QUIET_MARKER = ">"
CAPTURE_MARKER = "x"


class HistoryRow(NamedTuple):
    number: int
    white: str
    black: Optional[str]


def move_to_notation(move: Move) -> str:
    marker = CAPTURE_MARKER if move.is_capture else QUIET_MARKER
    origin = str(move.from_sq)
    if move.to_sq.column == move.from_sq.column:
        return f"{origin}{marker}{move.to_sq.rank}"
    if move.to_sq.row == move.from_sq.row:
        return f"{origin}{marker}{move.to_sq.file}"
    return UNREPRESENTABLE


def is_representable(move: Move) -> bool:
    return move.to_sq.column == move.from_sq.column or move.to_sq.row == move.from_sq.row


def history_rows(moves: Iterable[Move]) -> List[HistoryRow]:
    """Pair plies into numbered rows; even-indexed plies are white's."""
    rows: List[HistoryRow] = []
    for i, move in enumerate(moves):
        token = move_to_notation(move)
        if i % 2 == 0:
            rows.append(HistoryRow(i // 2 + 1, token, None))
        else:
            rows[-1] = rows[-1]._replace(black=token)
    return rows
