"""Runtime configuration for the sync engine and its server."""

from __future__ import annotations

from functools import lru_cache
import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .layout import LAYOUT_STRATEGIES


class SyncConfig(BaseModel):
    """Configuration loaded from DIAGRAM_SYNC_* environment variables."""

    model_config = ConfigDict(frozen=True)

    debounce_ms: int = Field(
        default=300,
        description="Delay between the last text change and the reparse",
    )
    comment_marker: str = Field(
        default="%%",
        description="Comment marker of the diagram syntax, prefixes every directive",
    )
    layout_strategy: str = Field(
        default="waterfall",
        description="Layout used for nodes without coordinates",
    )
    root_title: str = Field(
        default="Root",
        description="Breadcrumb title of the top-level diagram",
    )
    log_level: str = Field(default="INFO", description="Package log level")
    host: str = Field(default="127.0.0.1", description="Bind address of the API server")
    port: int = Field(default=8765, description="Port of the API server")

    @field_validator("debounce_ms")
    @classmethod
    def _positive_debounce(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("DIAGRAM_SYNC_DEBOUNCE_MS must be positive")
        return value

    @field_validator("comment_marker", mode="before")
    @classmethod
    def _non_empty_marker(cls, value: Optional[str]) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValueError("DIAGRAM_SYNC_COMMENT_MARKER cannot be empty")
        return cleaned

    @field_validator("layout_strategy")
    @classmethod
    def _known_layout(cls, value: str) -> str:
        if value not in LAYOUT_STRATEGIES:
            raise ValueError(
                f"Unknown layout strategy {value!r}; expected one of {sorted(LAYOUT_STRATEGIES)}"
            )
        return value

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000


def _read_env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(key, default)


def load_config() -> SyncConfig:
    """Build a configuration from the current environment."""
    values = {
        "debounce_ms": _read_env("DIAGRAM_SYNC_DEBOUNCE_MS"),
        "comment_marker": _read_env("DIAGRAM_SYNC_COMMENT_MARKER"),
        "layout_strategy": _read_env("DIAGRAM_SYNC_LAYOUT"),
        "root_title": _read_env("DIAGRAM_SYNC_ROOT_TITLE"),
        "log_level": _read_env("DIAGRAM_SYNC_LOG_LEVEL"),
        "host": _read_env("DIAGRAM_SYNC_HOST"),
        "port": _read_env("DIAGRAM_SYNC_PORT"),
    }
    return SyncConfig(**{k: v for k, v in values.items() if v is not None})


@lru_cache(maxsize=1)
def get_config() -> SyncConfig:
    """Load and cache configuration."""
    return load_config()
