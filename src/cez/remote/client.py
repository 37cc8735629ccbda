from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from ..config import DIFFICULTIES, Settings
from ..engine.errors import RemoteServiceFailure
from ..engine.move import Move, Square


logger = logging.getLogger(__name__)


class Coordinate(BaseModel):
    row: int = Field(..., ge=0, le=7)
    column: int = Field(..., ge=0, le=7)

    def to_square(self) -> Square:
        return Square(self.column, self.row)


class RemoteMove(BaseModel):
    """Move returned by the search service; row/column match ``Square``."""

    from_: Coordinate = Field(..., validation_alias=AliasChoices("from_", "from"))
    to: Coordinate
    capture: Optional[Coordinate] = None

    def to_move(self) -> Move:
        return Move(
            self.from_.to_square(),
            self.to.to_square(),
            captured_sq=self.capture.to_square() if self.capture else None,
        )


class MoveSearchClient:
    """Async client for the remote move-search service.

    A request is a single POST; cancelling the awaiting task abandons it.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._client = httpx.AsyncClient(
            timeout=settings.search_timeout_s,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "MoveSearchClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request_move(self, fen: str, difficulty: int) -> RemoteMove:
        """Ask the service for a move in position ``fen``.

        Raises:
            ValueError: If ``difficulty`` is not 1, 2 or 3.
            RemoteServiceFailure: On transport errors, timeouts, non-2xx
                responses or a malformed body.
        """
        if difficulty not in DIFFICULTIES:
            raise ValueError(f"difficulty must be one of {DIFFICULTIES}, got {difficulty}")
        url = self._settings.search_endpoint
        logger.info("requesting engine move", extra={"url": url, "difficulty": difficulty})
        try:
            response = await self._client.post(
                url, json={"position": fen, "difficulty": difficulty}
            )
        except httpx.TimeoutException as e:
            logger.warning("move search timed out", extra={"url": url})
            raise RemoteServiceFailure("move search timed out") from e
        except httpx.HTTPError as e:
            logger.warning("move search request failed: %s", e, extra={"url": url})
            raise RemoteServiceFailure(f"move search request failed: {e}") from e
        _raise_for_status(response)
        try:
            return RemoteMove.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RemoteServiceFailure("malformed move search response") from e


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    logger.warning("move search returned %s", response.status_code)
    raise RemoteServiceFailure(
        f"move search service: {response.status_code} {response.text.strip()}".strip()
    )
