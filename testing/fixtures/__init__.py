"""Shared test doubles and helpers for promoflow tests.

Modules:
    resources: Raw resource builders and FakeResourceStore
    engine: RecordingPromotionEngine
    polling: wait_for_condition for informer-thread tests

Example:
    from testing.fixtures.resources import FakeResourceStore, make_activity
    from testing.fixtures.engine import RecordingPromotionEngine
"""

from __future__ import annotations
