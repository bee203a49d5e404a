"""List-then-watch informer for one kind of custom resource.

A ResourceInformer keeps a subscription open for one resource kind in one
namespace and delivers add, update and delete callbacks on its own daemon
thread.

Lifecycle:
    1. ``start()`` lists every object synchronously and delivers an add for
       each. A failure here propagates, so startup problems are fatal.
    2. The thread then watches from the list's resourceVersion.
    3. Every ``resync_seconds`` the informer relists. Objects still present
       get an update (even if unchanged), and objects that vanished get a
       delete, which heals missed delete events.
    4. A watch ERROR with code 410 (Gone) relists immediately. Any other
       store failure is retried with exponential backoff (tenacity), and
       every retry relists before watching again.

Handler exceptions are logged and never end the thread.

Example:
    >>> informer = ResourceInformer(
    ...     store, ResourceKind.WORKFLOW, "jx",
    ...     EventHandlerFuncs(on_add=print, on_update=lambda old, new: print(new)),
    ... )
    >>> informer.start()
    >>> informer.stop()
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_when_event_set,
    wait_exponential,
)

from promoflow.errors import ResourceStoreError
from promoflow.store import ResourceKind, WatchEvent, WatchEventType, object_name

if TYPE_CHECKING:
    from promoflow.store import ResourceStore

logger = structlog.get_logger(__name__)

RawObject = dict[str, Any]

HTTP_GONE = 410

DEFAULT_MAX_BACKOFF_SECONDS = 60.0


@dataclass(frozen=True)
class EventHandlerFuncs:
    """Callbacks invoked by a ResourceInformer. Any of them may be None."""

    on_add: Callable[[RawObject], None] | None = None
    on_update: Callable[[RawObject, RawObject], None] | None = None
    on_delete: Callable[[RawObject], None] | None = None


class ResourceInformer:
    """Delivers change callbacks for one resource kind in one namespace.

    Attributes:
        kind: Resource kind being watched.
        namespace: Namespace being watched.
        resync_seconds: Interval between full relists.
        backoff_seconds: First delay after a failed watch or relist. Each
            consecutive failure doubles it.
        max_backoff_seconds: Upper bound of the retry delay.
    """

    def __init__(
        self,
        store: ResourceStore,
        kind: ResourceKind,
        namespace: str,
        handlers: EventHandlerFuncs,
        *,
        resync_seconds: float = 600,
        backoff_seconds: float = 5.0,
        max_backoff_seconds: float = DEFAULT_MAX_BACKOFF_SECONDS,
    ) -> None:
        self._store = store
        self._handlers = handlers
        self.kind = kind
        self.namespace = namespace
        self.resync_seconds = resync_seconds
        self.backoff_seconds = backoff_seconds
        self.max_backoff_seconds = max(max_backoff_seconds, backoff_seconds)

        self._known: dict[str, RawObject] = {}
        self._resource_version = ""
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._log = logger.bind(kind=kind.value, namespace=namespace)

    @property
    def resource_version(self) -> str:
        """Last resourceVersion observed from a list or watch event."""
        return self._resource_version

    @property
    def known_names(self) -> list[str]:
        return sorted(self._known)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """List synchronously, then watch on a daemon thread.

        Raises:
            ResourceStoreError: If the initial list fails.
        """
        self.relist()
        self._thread = threading.Thread(
            target=self.run,
            name=f"informer-{self.kind.value}",
            daemon=True,
        )
        self._thread.start()
        self._log.info("informer_started", objects=len(self._known))

    def stop(self) -> None:
        """Ask the watch loop to exit at its next event or backoff boundary."""
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self) -> None:
        """Watch and relist until ``stop()`` is called."""
        relist = False
        while not self._stop_event.is_set():
            try:
                self.sync(relist=relist)
            except ResourceStoreError:
                # Retries only give up once stop() was called
                break
            except Exception:
                self._log.exception("informer_failed")
                raise
            relist = True
        self._log.info("informer_stopped")

    def sync(self, *, relist: bool) -> None:
        """Run one watch cycle, retrying store failures with exponential backoff.

        Every retry relists before watching again, so events missed while the
        store was unavailable are reconciled.

        Args:
            relist: Relist before the first watch attempt.

        Raises:
            ResourceStoreError: The last failure, once ``stop()`` ends the retries.
        """
        for attempt in self._retrying():
            with attempt:
                if relist or attempt.retry_state.attempt_number > 1:
                    self.relist()
                self.watch_until_resync()

    def _retrying(self) -> Retrying:
        return Retrying(
            wait=wait_exponential(
                multiplier=self.backoff_seconds,
                min=self.backoff_seconds,
                max=self.max_backoff_seconds,
            ),
            retry=retry_if_exception_type(ResourceStoreError),
            stop=stop_when_event_set(self._stop_event),
            sleep=self._stop_event.wait,
            before_sleep=self._log_retry_attempt,
            reraise=True,
        )

    def _log_retry_attempt(self, retry_state: RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        self._log.warning(
            "informer_retry",
            attempt=retry_state.attempt_number,
            error_type=type(exception).__name__ if exception else "unknown",
            error=str(exception) if exception else "unknown",
            next_wait_seconds=(retry_state.next_action.sleep if retry_state.next_action else 0),
        )

    # =========================================================================
    # List and watch
    # =========================================================================

    def relist(self) -> None:
        """List all objects and reconcile them against the known set.

        Raises:
            ResourceStoreError: If the list call fails.
        """
        items, resource_version = self._store.list_raw(self.kind, self.namespace)
        listed: dict[str, RawObject] = {}
        for item in items:
            name = object_name(item)
            if name:
                listed[name] = item

        for name in sorted(set(self._known) - set(listed)):
            removed = self._known.pop(name)
            self._log.debug("object_vanished_on_relist", name=name)
            self._dispatch("delete", self._handlers.on_delete, removed)

        for name in sorted(listed):
            self._apply(listed[name])

        self._resource_version = resource_version
        self._log.debug(
            "relist_completed",
            objects=len(listed),
            resource_version=resource_version,
        )

    def watch_until_resync(self) -> None:
        """Consume watch streams until the resync deadline, a 410 or ``stop()``.

        Raises:
            ResourceStoreError: On a watch ERROR other than 410.
        """
        deadline = time.monotonic() + self.resync_seconds
        while not self._stop_event.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            events = self._store.watch(
                self.kind,
                self.namespace,
                self._resource_version,
                max(1, int(remaining)),
            )
            for event in events:
                if self._stop_event.is_set():
                    return
                if event.type is WatchEventType.ERROR:
                    code = event.object.get("code")
                    message = str(event.object.get("message") or "")
                    if code == HTTP_GONE:
                        self._log.info("watch_expired", message=message)
                        return
                    raise ResourceStoreError(
                        operation=f"watch {self.kind.value}",
                        reason=f"{message} (HTTP {code})",
                    )
                self.process_event(event)

    def process_event(self, event: WatchEvent) -> None:
        """Apply one non-error watch event and invoke its handler."""
        if event.resource_version:
            self._resource_version = event.resource_version

        if event.type is WatchEventType.BOOKMARK:
            return

        if event.type is WatchEventType.DELETED:
            removed = self._known.pop(event.name, None)
            self._dispatch("delete", self._handlers.on_delete, removed or event.object)
            return

        self._apply(event.object)

    def _apply(self, obj: RawObject) -> None:
        name = object_name(obj)
        if not name:
            return
        previous = self._known.get(name)
        self._known[name] = obj
        if previous is None:
            self._dispatch("add", self._handlers.on_add, obj)
        else:
            self._dispatch("update", self._handlers.on_update, previous, obj)

    def _dispatch(
        self,
        action: str,
        handler: Callable[..., None] | None,
        *objects: RawObject,
    ) -> None:
        if handler is None:
            return
        try:
            handler(*objects)
        except Exception:
            self._log.exception(
                "event_handler_failed",
                action=action,
                name=object_name(objects[-1]),
            )


__all__ = ["EventHandlerFuncs", "ResourceInformer"]
