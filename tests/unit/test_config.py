"""
Unit tests for configuration and logging setup.
"""

import logging

import json_log_formatter
import pytest

from appstate.graphsync.config import (
    GraphSyncConfig,
    ObservabilityConfig,
    ReconcilerConfig,
)
from appstate.graphsync.logs import setup_logging


@pytest.fixture
def root_logger():
    logger = logging.getLogger()
    handlers, level = list(logger.handlers), logger.level
    yield logger
    logger.handlers = handlers
    logger.setLevel(level)


class TestReconcilerConfig:
    """Tests for ReconcilerConfig."""

    def test_defaults(self):
        config = ReconcilerConfig()

        assert config.remotes == ("remote",)
        assert config.normalize is True
        assert config.pathopt is False
        assert config.history_size == 100

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("GRAPHSYNC_REMOTES", "remote, search")
        monkeypatch.setenv("GRAPHSYNC_NORMALIZE", "false")
        monkeypatch.setenv("GRAPHSYNC_PATHOPT", "TRUE")
        monkeypatch.setenv("GRAPHSYNC_HISTORY_SIZE", "5")
        monkeypatch.setenv("GRAPHSYNC_ID_KEY", "id")

        config = ReconcilerConfig.from_env()

        assert config.remotes == ("remote", "search")
        assert config.normalize is False
        assert config.pathopt is True
        assert config.history_size == 5
        assert config.id_key == "id"

    def test_immutable(self):
        with pytest.raises(AttributeError):
            ReconcilerConfig().pathopt = True


class TestGraphSyncConfig:
    """Tests for validation."""

    def test_from_env_validates(self, monkeypatch):
        monkeypatch.setenv("GRAPHSYNC_HISTORY_SIZE", "0")

        with pytest.raises(ValueError):
            GraphSyncConfig.from_env()

    @pytest.mark.parametrize(
        "reconciler",
        [
            ReconcilerConfig(render_delay_ms=-1),
            ReconcilerConfig(remotes=("remote", "remote")),
        ],
    )
    def test_invalid_reconciler(self, reconciler):
        with pytest.raises(ValueError):
            GraphSyncConfig(reconciler=reconciler).validate()

    def test_invalid_log_format(self):
        config = GraphSyncConfig(observability=ObservabilityConfig(log_format="xml"))

        with pytest.raises(ValueError):
            config.validate()

    def test_no_remotes_warns(self, caplog):
        config = GraphSyncConfig(reconciler=ReconcilerConfig(remotes=()))

        with caplog.at_level(logging.WARNING):
            config.validate()

        assert "No remotes" in caplog.text


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json(self, root_logger):
        setup_logging(GraphSyncConfig(observability=ObservabilityConfig(log_level="debug")))

        assert root_logger.level == logging.DEBUG
        assert isinstance(root_logger.handlers[0].formatter, json_log_formatter.JSONFormatter)

    def test_text(self, root_logger):
        setup_logging(GraphSyncConfig(observability=ObservabilityConfig(log_format="text")))

        assert len(root_logger.handlers) == 1
        assert not isinstance(root_logger.handlers[0].formatter, json_log_formatter.JSONFormatter)
