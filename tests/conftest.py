"""Root-level test configuration for promoflow.

Fixtures:
    - fake_store: In-memory resource store with the team namespace "jx"
    - recording_engine: Promotion engine that records requests
    - directory: Empty WorkflowDirectory
    - tracer_with_exporter: TracerProvider + InMemorySpanExporter
    - mock_k8s_client: Mocked kubernetes client module

Tracer caches and structlog configuration are reset around every test.
"""

from __future__ import annotations

from collections.abc import Generator
from unittest.mock import MagicMock

import pytest
import structlog
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from promoflow.directory import WorkflowDirectory
from promoflow.telemetry.tracing import reset_tracer
from testing.fixtures.engine import RecordingPromotionEngine
from testing.fixtures.resources import FakeResourceStore


@pytest.fixture(autouse=True)
def reset_telemetry() -> Generator[None, None, None]:
    """Reset tracer cache and structlog configuration for test isolation."""
    reset_tracer()
    yield
    reset_tracer()
    structlog.reset_defaults()


@pytest.fixture
def fake_store() -> FakeResourceStore:
    """Empty in-memory store for the team namespace "jx"."""
    return FakeResourceStore()


@pytest.fixture
def recording_engine() -> RecordingPromotionEngine:
    return RecordingPromotionEngine()


@pytest.fixture
def directory() -> WorkflowDirectory:
    return WorkflowDirectory()


@pytest.fixture
def tracer_with_exporter() -> tuple[TracerProvider, InMemorySpanExporter]:
    """Create a TracerProvider with an InMemorySpanExporter for testing.

    Returns:
        Tuple of (TracerProvider, InMemorySpanExporter) for span verification.
    """
    exporter = InMemorySpanExporter()
    provider = TracerProvider(resource=Resource.create({}))
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    return provider, exporter


@pytest.fixture
def mock_k8s_client() -> MagicMock:
    """Create mocked kubernetes client module.

    Returns:
        MagicMock configured as kubernetes client.
    """
    mock_client = MagicMock()
    mock_client.V1Namespace = MagicMock()
    mock_client.V1ObjectMeta = MagicMock()

    class MockApiException(Exception):
        """Mock Kubernetes API Exception."""

        def __init__(self, status: int = 500, reason: str = "Error") -> None:
            self.status = status
            self.reason = reason
            super().__init__(f"{status}: {reason}")

    mock_client.rest = MagicMock()
    mock_client.rest.ApiException = MockApiException

    return mock_client
