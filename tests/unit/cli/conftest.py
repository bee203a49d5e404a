"""Unit test fixtures for the CLI module.

CLI tests never reach a cluster or run a promote command:
- structlog configuration is patched out (it would bind to the real stderr)
- KubernetesResourceStore is replaced by FakeResourceStore
- CommandPromotionEngine is replaced by RecordingPromotionEngine

For shared fixtures across all test modules, see ../../conftest.py.
"""

from __future__ import annotations

from collections.abc import Generator
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from testing.fixtures.engine import RecordingPromotionEngine
from testing.fixtures.resources import FakeResourceStore


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner.

    Returns:
        CliRunner instance for testing Click commands.
    """
    return CliRunner()


@pytest.fixture(autouse=True)
def mock_configure_logging() -> Generator[MagicMock, None, None]:
    """Keep CLI commands from reconfiguring structlog during tests."""
    with patch("promoflow.cli.utils.configure_logging") as mock:
        yield mock


@pytest.fixture
def cli_store(fake_store: FakeResourceStore) -> FakeResourceStore:
    """FakeResourceStore with the startup/shutdown lifecycle of the real store."""
    fake_store.startup = MagicMock()  # type: ignore[attr-defined]
    fake_store.shutdown = MagicMock()  # type: ignore[attr-defined]
    return fake_store


@pytest.fixture
def promote_store(cli_store: FakeResourceStore) -> Generator[FakeResourceStore, None, None]:
    """Patch the promote command's store and engine factories."""
    with patch("promoflow.cli.promote.KubernetesResourceStore", return_value=cli_store):
        yield cli_store


@pytest.fixture
def promote_engine(
    recording_engine: RecordingPromotionEngine,
) -> Generator[RecordingPromotionEngine, None, None]:
    with patch("promoflow.cli.promote.CommandPromotionEngine", return_value=recording_engine):
        yield recording_engine
