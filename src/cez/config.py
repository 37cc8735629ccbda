from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache

from dotenv import load_dotenv


DEFAULT_SEARCH_URL = "http://localhost:8080"
DEFAULT_SEARCH_PATH = "cez/ai/move"
DIFFICULTIES = (1, 2, 3)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


@dataclass
class Settings:
    """Runtime configuration for the engine service and its remote search backend."""

    search_url: str = field(default_factory=lambda: os.getenv("CEZ_SEARCH_URL", DEFAULT_SEARCH_URL))
    search_path: str = field(
        default_factory=lambda: os.getenv("CEZ_SEARCH_PATH", DEFAULT_SEARCH_PATH)
    )
    search_timeout_s: float = field(default_factory=lambda: _env_float("CEZ_SEARCH_TIMEOUT_S", 10.0))
    default_difficulty: int = field(default_factory=lambda: _env_int("CEZ_DEFAULT_DIFFICULTY", 1))
    log_level: str = field(default_factory=lambda: os.getenv("CEZ_LOG_LEVEL", "INFO").upper())
    host: str = field(default_factory=lambda: os.getenv("CEZ_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("CEZ_PORT", 8000))

    def __post_init__(self) -> None:
        if self.default_difficulty not in DIFFICULTIES:
            raise ValueError("default difficulty must be 1, 2 or 3")
        if self.search_timeout_s <= 0:
            raise ValueError("search timeout must be positive")

    @property
    def search_endpoint(self) -> str:
        return f"{self.search_url.rstrip('/')}/{self.search_path.strip('/')}/"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_dotenv()
    return Settings()
