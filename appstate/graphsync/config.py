"""
Configuration management for GraphSync.

All configuration is done via environment variables (prefix ``GRAPHSYNC_``)
or by constructing the dataclasses directly. This module provides typed
configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Config objects are immutable once built
    - validate() runs before a config is handed to a reconciler by from_env()

How to change safely:
    - Add new settings with defaults that keep existing behaviour
    - Read every new environment variable in the matching from_env()
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

ENV_PREFIX = "GRAPHSYNC_"


def _env(name: str, default: str) -> str:
    return os.getenv(ENV_PREFIX + name, default)


def _env_bool(name: str, default: bool) -> bool:
    return _env(name, "true" if default else "false").lower() == "true"


@dataclass(frozen=True)
class ReconcilerConfig:
    """Reconciler behaviour.

    Attributes:
        remotes: Remote targets transactions and queries are collected for
        normalize: Whether initial state and novelty are normalized
        pathopt: Whether components with identity are read through their ref
        history_size: Number of store snapshots kept in history
        id_key: Entity field updated with the permanent id on tempid migration
        render_delay_ms: Coalescing delay before a scheduled render runs
        send_delay_ms: Coalescing delay before scheduled sends run
        slow_query_ms: Component reads slower than this are logged
    """

    remotes: tuple[str, ...] = ("remote",)
    normalize: bool = True
    pathopt: bool = False
    history_size: int = 100
    id_key: str | None = None
    render_delay_ms: int = 16
    send_delay_ms: int = 0
    slow_query_ms: int = 16

    @classmethod
    def from_env(cls) -> ReconcilerConfig:
        """Load configuration from environment variables."""
        remotes = tuple(r.strip() for r in _env("REMOTES", "remote").split(",") if r.strip())
        return cls(
            remotes=remotes,
            normalize=_env_bool("NORMALIZE", True),
            pathopt=_env_bool("PATHOPT", False),
            history_size=int(_env("HISTORY_SIZE", "100")),
            id_key=_env("ID_KEY", "") or None,
            render_delay_ms=int(_env("RENDER_DELAY_MS", "16")),
            send_delay_ms=int(_env("SEND_DELAY_MS", "0")),
            slow_query_ms=int(_env("SLOW_QUERY_MS", "16")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=_env("LOG_LEVEL", "INFO"),
            log_format=_env("LOG_FORMAT", "json"),
        )


@dataclass
class GraphSyncConfig:
    """Complete configuration.

    Attributes:
        reconciler: Reconciler configuration
        observability: Logging configuration
    """

    reconciler: ReconcilerConfig = field(default_factory=ReconcilerConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> GraphSyncConfig:
        """Load complete configuration from environment variables.

        Returns:
            GraphSyncConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            reconciler=ReconcilerConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        r = self.reconciler
        if r.history_size < 1:
            raise ValueError(f"GRAPHSYNC_HISTORY_SIZE must be at least 1, got {r.history_size}")
        if r.render_delay_ms < 0 or r.send_delay_ms < 0:
            raise ValueError("GRAPHSYNC_RENDER_DELAY_MS and GRAPHSYNC_SEND_DELAY_MS must not be negative")
        if len(set(r.remotes)) != len(r.remotes):
            raise ValueError(f"GRAPHSYNC_REMOTES has duplicates: {list(r.remotes)}")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid GRAPHSYNC_LOG_FORMAT '{self.observability.log_format}'. "
                "Must be one of: json, text"
            )
        if not r.remotes:
            logger.warning("No remotes configured, transactions will never be sent")

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "GraphSync configuration loaded",
            extra={
                "remotes": list(self.reconciler.remotes),
                "normalize": self.reconciler.normalize,
                "pathopt": self.reconciler.pathopt,
                "history_size": self.reconciler.history_size,
                "render_delay_ms": self.reconciler.render_delay_ms,
                "send_delay_ms": self.reconciler.send_delay_ms,
                "log_level": self.observability.log_level,
            },
        )
