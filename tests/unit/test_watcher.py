"""Unit tests for promoflow.watcher.ResourceInformer.

Synchronous tests drive relist() and watch_until_resync() directly. Thread
tests start the informer against FakeResourceStore and poll for results.
"""

from __future__ import annotations

import threading
from typing import Any

import pytest
import structlog

from promoflow.errors import ResourceStoreError
from promoflow.store import ResourceKind, WatchEvent, WatchEventType, object_name
from promoflow.watcher import EventHandlerFuncs, ResourceInformer
from testing.fixtures.polling import wait_for_condition
from testing.fixtures.resources import (
    FakeResourceStore,
    gone_event,
    store_unavailable,
    watch_event,
    workflow_resource,
)

KIND = ResourceKind.WORKFLOW


class HandlerRecorder:
    """Records informer callbacks as ``(action, name, resource_version)``."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str]] = []
        self.updates: list[tuple[dict[str, Any], dict[str, Any]]] = []
        self._lock = threading.Lock()

    def _record(self, action: str, obj: dict[str, Any]) -> None:
        with self._lock:
            self.calls.append((action, object_name(obj), obj["metadata"]["resourceVersion"]))

    def on_add(self, obj: dict[str, Any]) -> None:
        self._record("add", obj)

    def on_update(self, old: dict[str, Any], new: dict[str, Any]) -> None:
        self.updates.append((old, new))
        self._record("update", new)

    def on_delete(self, obj: dict[str, Any]) -> None:
        self._record("delete", obj)

    def handlers(self) -> EventHandlerFuncs:
        return EventHandlerFuncs(
            on_add=self.on_add, on_update=self.on_update, on_delete=self.on_delete
        )

    def actions(self, action: str) -> list[str]:
        with self._lock:
            return [name for a, name, _ in self.calls if a == action]


@pytest.fixture
def recorder() -> HandlerRecorder:
    return HandlerRecorder()


def _informer(
    store: FakeResourceStore,
    recorder: HandlerRecorder,
    **kwargs: Any,
) -> ResourceInformer:
    kwargs.setdefault("backoff_seconds", 0.01)
    return ResourceInformer(store, KIND, "jx", recorder.handlers(), **kwargs)


class TestRelist:
    """Tests for ResourceInformer.relist."""

    def test_initial_list_adds_every_object(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        fake_store.add(KIND, workflow_resource("hotfix"))
        fake_store.add(KIND, workflow_resource("default"))
        informer = _informer(fake_store, recorder)

        informer.relist()

        assert recorder.calls == [("add", "default", "1"), ("add", "hotfix", "1")]
        assert informer.known_names == ["default", "hotfix"]
        assert informer.resource_version == "100"

    def test_resync_updates_present_and_deletes_vanished(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        fake_store.add(KIND, workflow_resource("default"))
        fake_store.add(KIND, workflow_resource("hotfix"))
        informer = _informer(fake_store, recorder)
        informer.relist()
        recorder.calls.clear()

        fake_store.remove(KIND, "hotfix")
        fake_store.add(KIND, workflow_resource("canary"))
        informer.relist()

        assert recorder.calls == [
            ("delete", "hotfix", "1"),
            ("add", "canary", "1"),
            ("update", "default", "1"),
        ]
        assert informer.known_names == ["canary", "default"]

    def test_unchanged_object_still_gets_update(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        fake_store.add(KIND, workflow_resource("default"))
        informer = _informer(fake_store, recorder)
        informer.relist()

        informer.relist()

        old, new = recorder.updates[0]
        assert old == new

    def test_list_failure_propagates(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        fake_store.list_errors[KIND] = store_unavailable("list workflows")

        with pytest.raises(ResourceStoreError):
            _informer(fake_store, recorder).relist()
        assert recorder.calls == []


class TestProcessEvent:
    """Tests for ResourceInformer.process_event."""

    def test_added_then_modified_then_deleted(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        informer = _informer(fake_store, recorder)

        informer.process_event(watch_event("ADDED", workflow_resource(resource_version="101")))
        informer.process_event(
            watch_event("MODIFIED", workflow_resource(resource_version="102"))
        )
        informer.process_event(watch_event("DELETED", workflow_resource(resource_version="103")))

        assert recorder.calls == [
            ("add", "default", "101"),
            ("update", "default", "102"),
            ("delete", "default", "102"),
        ]
        old, new = recorder.updates[0]
        assert old["metadata"]["resourceVersion"] == "101"
        assert new["metadata"]["resourceVersion"] == "102"
        assert informer.resource_version == "103"
        assert informer.known_names == []

    def test_modified_unknown_object_is_an_add(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        informer = _informer(fake_store, recorder)

        informer.process_event(watch_event("MODIFIED", workflow_resource("hotfix")))

        assert recorder.actions("add") == ["hotfix"]

    def test_delete_of_unknown_object_uses_event_object(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        informer = _informer(fake_store, recorder)

        informer.process_event(watch_event("DELETED", workflow_resource("hotfix")))

        assert recorder.actions("delete") == ["hotfix"]

    def test_bookmark_only_advances_resource_version(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        informer = _informer(fake_store, recorder)

        informer.process_event(
            WatchEvent(
                type=WatchEventType.BOOKMARK,
                object={"metadata": {"resourceVersion": "250"}},
            )
        )

        assert recorder.calls == []
        assert informer.resource_version == "250"

    def test_handler_exception_is_contained(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        def explode(obj: dict[str, Any]) -> None:
            raise RuntimeError("handler bug")

        informer = ResourceInformer(
            fake_store,
            KIND,
            "jx",
            EventHandlerFuncs(on_add=explode, on_delete=recorder.on_delete),
        )

        informer.process_event(watch_event("ADDED", workflow_resource("default")))
        informer.process_event(watch_event("DELETED", workflow_resource("default")))

        assert recorder.actions("delete") == ["default"]

    def test_missing_handlers_are_skipped(self, fake_store: FakeResourceStore) -> None:
        informer = ResourceInformer(fake_store, KIND, "jx", EventHandlerFuncs())

        informer.process_event(watch_event("ADDED", workflow_resource("default")))

        assert informer.known_names == ["default"]


class TestWatchUntilResync:
    """Tests for ResourceInformer.watch_until_resync."""

    def test_gone_error_returns_for_relist(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        fake_store.watch_scripts[KIND] = [
            [watch_event("ADDED", workflow_resource(resource_version="101")), gone_event()]
        ]
        informer = _informer(fake_store, recorder)

        informer.watch_until_resync()

        assert recorder.actions("add") == ["default"]
        assert informer.resource_version == "101"

    def test_watch_resumes_from_last_resource_version(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        fake_store.add(KIND, workflow_resource("default"))
        fake_store.watch_scripts[KIND] = [
            [watch_event("MODIFIED", workflow_resource(resource_version="101"))],
            [gone_event()],
        ]
        informer = _informer(fake_store, recorder)
        informer.relist()

        informer.watch_until_resync()

        assert fake_store.watch_calls == [(KIND, "100"), (KIND, "101")]

    def test_other_error_raises(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        fake_store.watch_scripts[KIND] = [
            [WatchEvent(type=WatchEventType.ERROR, object={"code": 500, "message": "boom"})]
        ]

        with pytest.raises(ResourceStoreError, match=r"boom \(HTTP 500\)"):
            _informer(fake_store, recorder).watch_until_resync()

    def test_returns_at_resync_deadline(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        informer = _informer(fake_store, recorder, resync_seconds=0.05)

        informer.watch_until_resync()

        assert len(fake_store.watch_calls) >= 1

    def test_stopped_informer_does_not_watch(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        informer = _informer(fake_store, recorder)
        informer.stop()

        informer.watch_until_resync()

        assert fake_store.watch_calls == []
        assert informer.stopped


class TestSyncRetry:
    """Tests for ResourceInformer.sync retrying store failures."""

    def test_consecutive_failures_back_off_exponentially(
        self,
        fake_store: FakeResourceStore,
        recorder: HandlerRecorder,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        fake_store.add(KIND, workflow_resource("default"))
        fake_store.watch_scripts[KIND] = [store_unavailable("watch workflows")] * 4
        informer = _informer(fake_store, recorder, backoff_seconds=1, max_backoff_seconds=4)
        fake_store.on_watch_exhausted = informer.stop
        sleeps: list[float] = []
        monkeypatch.setattr(informer._stop_event, "wait", sleeps.append)

        informer.sync(relist=False)

        assert sleeps == [1, 2, 4, 4]
        # Every retry relists before watching again
        assert fake_store.list_calls == [KIND] * 4
        assert len(fake_store.watch_calls) == 5

    def test_first_attempt_relists_when_asked(
        self,
        fake_store: FakeResourceStore,
        recorder: HandlerRecorder,
    ) -> None:
        informer = _informer(fake_store, recorder)
        fake_store.on_watch_exhausted = informer.stop

        informer.sync(relist=True)

        assert fake_store.list_calls == [KIND]

    def test_retry_is_logged(
        self,
        fake_store: FakeResourceStore,
        recorder: HandlerRecorder,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        fake_store.watch_scripts[KIND] = [store_unavailable("watch workflows")]

        with structlog.testing.capture_logs() as logs:
            informer = _informer(fake_store, recorder, backoff_seconds=0.5)
            fake_store.on_watch_exhausted = informer.stop
            monkeypatch.setattr(informer._stop_event, "wait", lambda _seconds: None)
            informer.sync(relist=False)

        retries = [log for log in logs if log["event"] == "informer_retry"]
        assert len(retries) == 1
        assert retries[0]["log_level"] == "warning"
        assert retries[0]["attempt"] == 1
        assert retries[0]["error_type"] == "ResourceStoreError"
        assert retries[0]["next_wait_seconds"] == 0.5
        assert retries[0]["kind"] == "workflows"

    def test_unexpected_error_is_not_retried(
        self,
        fake_store: FakeResourceStore,
        recorder: HandlerRecorder,
    ) -> None:
        fake_store.watch_scripts[KIND] = [RuntimeError("bug")]
        informer = _informer(fake_store, recorder)

        with pytest.raises(RuntimeError, match="bug"):
            informer.sync(relist=False)
        assert fake_store.list_calls == []

    def test_max_backoff_never_below_first_delay(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        informer = _informer(fake_store, recorder, backoff_seconds=10, max_backoff_seconds=1)
        assert informer.max_backoff_seconds == 10


class TestInformerThread:
    """Tests for the start/run/stop lifecycle on a background thread."""

    def test_start_lists_synchronously(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        fake_store.add(KIND, workflow_resource("default"))
        informer = _informer(fake_store, recorder)

        informer.start()
        try:
            assert recorder.actions("add") == ["default"]
        finally:
            informer.stop()
            informer.join(timeout=5)

    def test_start_fails_when_initial_list_fails(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        fake_store.list_errors[KIND] = store_unavailable("list workflows")
        informer = _informer(fake_store, recorder)

        with pytest.raises(ResourceStoreError):
            informer.start()
        assert fake_store.watch_calls == []

    def test_watch_failure_backs_off_and_relists(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        fake_store.add(KIND, workflow_resource("default"))
        fake_store.watch_scripts[KIND] = [
            store_unavailable("watch workflows"),
            [watch_event("ADDED", workflow_resource("hotfix", resource_version="101"))],
        ]
        informer = _informer(fake_store, recorder)

        informer.start()
        try:
            wait_for_condition(
                lambda: "hotfix" in recorder.actions("add"),
                description="watch event after failure",
            )
        finally:
            informer.stop()
            informer.join(timeout=5)

        assert fake_store.list_calls[:2] == [KIND, KIND]
        assert recorder.actions("update") == ["default"]

    def test_gone_relists_without_backoff(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        fake_store.add(KIND, workflow_resource("default"))
        fake_store.watch_scripts[KIND] = [[gone_event()]]
        informer = _informer(fake_store, recorder, backoff_seconds=60)

        informer.start()
        try:
            wait_for_condition(lambda: len(fake_store.list_calls) >= 2, description="relist")
        finally:
            informer.stop()
            informer.join(timeout=5)

        assert recorder.actions("update") == ["default"]

    def test_periodic_resync(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        fake_store.add(KIND, workflow_resource("default"))
        informer = _informer(fake_store, recorder, resync_seconds=0.05)

        informer.start()
        try:
            wait_for_condition(
                lambda: len(recorder.actions("update")) >= 2,
                description="two resync updates",
            )
        finally:
            informer.stop()
            informer.join(timeout=5)

    def test_relist_failure_is_retried(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        informer = _informer(fake_store, recorder)
        informer.start()
        fake_store.list_errors[KIND] = store_unavailable("list workflows")
        fake_store.watch_scripts[KIND] = [[gone_event()]]
        try:
            wait_for_condition(
                lambda: len(fake_store.list_calls) >= 3, description="failed relists"
            )
            fake_store.add(KIND, workflow_resource("default"))
            fake_store.list_errors.clear()
            wait_for_condition(
                lambda: recorder.actions("add") == ["default"],
                description="add after recovery",
            )
        finally:
            informer.stop()
            informer.join(timeout=5)

    def test_stop_ends_thread(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        informer = _informer(fake_store, recorder)
        informer.start()

        informer.stop()
        informer.join(timeout=5)

        assert informer._thread is not None
        assert not informer._thread.is_alive()

    def test_stop_during_backoff_ends_thread(
        self, fake_store: FakeResourceStore, recorder: HandlerRecorder
    ) -> None:
        fake_store.watch_scripts[KIND] = [store_unavailable("watch workflows")]
        informer = _informer(fake_store, recorder, backoff_seconds=60)
        informer.start()
        wait_for_condition(lambda: len(fake_store.watch_calls) >= 1, description="failed watch")

        informer.stop()
        informer.join(timeout=5)

        assert informer._thread is not None
        assert not informer._thread.is_alive()
