from __future__ import annotations

from typing import Optional


class CezError(Exception):
    """Base class for engine errors."""


class IllegalMoveRequested(CezError):
    """A move outside the current legal-move set was submitted."""

    def __init__(self, move: str, reason: Optional[str] = None) -> None:
        self.move = move
        self.reason = reason
        msg = f"illegal move: {move}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class InvalidPositionEncoding(CezError, ValueError):
    """A FEN-like string could not be decoded."""


class GameOverError(CezError):
    """The game has reached a terminal state; no further moves are accepted."""


class RemoteServiceFailure(CezError):
    """The remote move-search exchange failed or timed out."""
