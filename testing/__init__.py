"""Testing infrastructure for promoflow.

Components:
    fixtures: In-memory resource store, recording promotion engine, resource
        builders and polling helpers

Usage:
    from testing.fixtures.resources import FakeResourceStore, activity_resource

No test needs a Kubernetes cluster: the store is faked and the kubernetes
client is mocked where the real store is exercised.
"""

from __future__ import annotations

__version__ = "0.1.0"
