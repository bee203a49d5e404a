"""Workflow controller: wires watchers, directory, decisions and trigger.

The controller runs in one of two modes:

- Watch mode (``watch_forever``): one informer for Workflows feeding the
  directory, one for PipelineActivities feeding the decision engine and the
  trigger. Blocks until ``stop()``.
- Batch mode (``run_once``): list all Workflows, then process every
  PipelineActivity once, in name order.

Example:
    >>> controller = WorkflowController(store, engine, ControllerConfig(namespace="jx"))
    >>> outcomes = controller.run_once()
"""

from __future__ import annotations

import functools
import threading
from typing import TYPE_CHECKING, Any

import structlog

from promoflow.config import ControllerConfig
from promoflow.decision import PromotionDecisionEngine
from promoflow.default_workflow import create_default_workflow
from promoflow.directory import WorkflowDirectory
from promoflow.errors import PromoflowError
from promoflow.models import PipelineActivity, Workflow, is_resource_version_newer
from promoflow.policy import ReleaseBranchPolicy
from promoflow.store import ResourceKind, object_name
from promoflow.telemetry.tracing import controller_span, get_tracer
from promoflow.trigger import PromotionOutcome, PromotionTrigger
from promoflow.watcher import EventHandlerFuncs, ResourceInformer

if TYPE_CHECKING:
    from opentelemetry.trace import Tracer

    from promoflow.engine import PromotionEngine
    from promoflow.store import ResourceStore

logger = structlog.get_logger(__name__)


class WorkflowController:
    """Reconciles PipelineActivities against Workflows in one namespace.

    Attributes:
        namespace: Team namespace being reconciled.
        directory: Known Workflows, shared by both subscriptions.
        decision_engine: Computes promotion intents per activity.
        trigger: Fires intents at the promotion engine.
    """

    def __init__(
        self,
        store: ResourceStore,
        engine: PromotionEngine,
        config: ControllerConfig | None = None,
        *,
        namespace: str | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            store: Resource store for lists, reads and watches.
            engine: Promotion engine the trigger calls.
            config: Controller configuration. Uses defaults if None.
            namespace: Namespace override. Falls back to the configured
                namespace, then the store's current namespace.
            tracer: Tracer for controller spans.
        """
        self.config = config or ControllerConfig()
        self._store = store
        self._tracer = tracer or get_tracer()
        self.namespace = namespace or self.config.namespace or store.current_namespace()

        self.directory = WorkflowDirectory()
        self.decision_engine = PromotionDecisionEngine(
            self.directory,
            namespace=self.namespace,
            bootstrap=functools.partial(
                create_default_workflow,
                store,
                self.namespace,
                name=self.config.default_workflow_name,
            ),
            policy=ReleaseBranchPolicy(self.config.release_branches),
            default_workflow_name=self.config.default_workflow_name,
            tracer=self._tracer,
        )
        self.trigger = PromotionTrigger(engine, namespace=self.namespace, tracer=self._tracer)

        self._informers: list[ResourceInformer] = []
        self._stop_event = threading.Event()
        self._log = logger.bind(namespace=self.namespace)

    # =========================================================================
    # Workflow events
    # =========================================================================

    def on_workflow_added(self, obj: dict[str, Any]) -> None:
        self.directory.upsert(Workflow.from_resource(obj))

    def on_workflow_updated(self, old: dict[str, Any], new: dict[str, Any]) -> None:  # noqa: ARG002
        self.directory.upsert(Workflow.from_resource(new))

    def on_workflow_deleted(self, obj: dict[str, Any]) -> None:
        self.directory.remove(object_name(obj))

    # =========================================================================
    # Activity events
    # =========================================================================

    def on_activity_added(self, obj: dict[str, Any]) -> list[PromotionOutcome]:
        activity = self.refresh_activity(PipelineActivity.from_resource(obj))
        return self.process_activity(activity)

    def on_activity_updated(
        self, old: dict[str, Any], new: dict[str, Any]  # noqa: ARG002
    ) -> list[PromotionOutcome]:
        return self.on_activity_added(new)

    def refresh_activity(self, activity: PipelineActivity) -> PipelineActivity:
        """Prefer the stored copy when it is newer than the event's snapshot.

        Read failures fall back to the event's snapshot.
        """
        try:
            stored = self._store.get_activity(self.namespace, activity.name)
        except PromoflowError as e:
            self._log.debug("activity_refresh_failed", activity=activity.name, error=e.message)
            return activity

        if stored is not None and is_resource_version_newer(
            stored.resource_version, activity.resource_version
        ):
            self._log.debug(
                "activity_refreshed",
                activity=activity.name,
                event_resource_version=activity.resource_version,
                stored_resource_version=stored.resource_version,
            )
            return stored
        return activity

    def process_activity(self, activity: PipelineActivity) -> list[PromotionOutcome]:
        """Decide for one activity and fire the resulting intents."""
        intents = self.decision_engine.decide(activity)
        if not intents:
            return []
        return self.trigger.fire(intents)

    # =========================================================================
    # Modes
    # =========================================================================

    def run_once(self) -> list[PromotionOutcome]:
        """Process every Workflow and PipelineActivity once.

        Returns:
            Outcomes of all fired intents, in activity name order.

        Raises:
            ResourceStoreError: If listing Workflows or activities fails.
        """
        with controller_span(self._tracer, "batch_run", namespace=self.namespace) as span:
            workflows = self._store.list_workflows(self.namespace)
            for workflow in workflows:
                self.directory.upsert(workflow)

            activities = sorted(
                self._store.list_activities(self.namespace), key=lambda a: a.name
            )
            outcomes: list[PromotionOutcome] = []
            for activity in activities:
                outcomes.extend(self.process_activity(activity))

            failed = sum(1 for o in outcomes if not o.succeeded)
            span.set_attribute("promoflow.activity_count", len(activities))
            span.set_attribute("promoflow.promotion_count", len(outcomes))
            self._log.info(
                "batch_run_completed",
                workflows=len(workflows),
                activities=len(activities),
                promotions=len(outcomes),
                failed=failed,
            )
            return outcomes

    def start(self) -> None:
        """Start both informers. Workflows are listed before activities.

        Raises:
            ResourceStoreError: If an initial list fails.
        """
        workflow_informer = ResourceInformer(
            self._store,
            ResourceKind.WORKFLOW,
            self.namespace,
            EventHandlerFuncs(
                on_add=self.on_workflow_added,
                on_update=self.on_workflow_updated,
                on_delete=self.on_workflow_deleted,
            ),
            resync_seconds=self.config.resync_seconds,
            backoff_seconds=self.config.watch_backoff_seconds,
            max_backoff_seconds=self.config.watch_backoff_max_seconds,
        )
        # Activity deletions need no action
        activity_informer = ResourceInformer(
            self._store,
            ResourceKind.ACTIVITY,
            self.namespace,
            EventHandlerFuncs(
                on_add=self.on_activity_added,
                on_update=self.on_activity_updated,
            ),
            resync_seconds=self.config.resync_seconds,
            backoff_seconds=self.config.watch_backoff_seconds,
            max_backoff_seconds=self.config.watch_backoff_max_seconds,
        )
        self._informers = [workflow_informer, activity_informer]
        for informer in self._informers:
            informer.start()
        self._log.info(
            "controller_started",
            release_branches=list(self.config.release_branches),
            resync_seconds=self.config.resync_seconds,
        )

    def watch_forever(self) -> None:
        """Start the informers and block until ``stop()`` is called.

        Raises:
            ResourceStoreError: If an initial list fails.
        """
        try:
            self.start()
            self._stop_event.wait()
        finally:
            for informer in self._informers:
                informer.stop()
        self._log.info("controller_stopped")

    def stop(self) -> None:
        """Stop the informers at their next receive boundary."""
        self._stop_event.set()
        for informer in self._informers:
            informer.stop()


__all__ = ["WorkflowController"]
