"""Promotion decision engine.

Given one PipelineActivity snapshot, the engine decides which environments
should be promoted now. It never mutates the activity: idempotency comes from
the pull request URL the promotion engine records on each Promote step, and
ordering comes from the preconditions declared on the Workflow.

Decision order:
    1. Missing repository, version, build or pipeline: no intents (info)
    2. Terminal workflow status: no intents
    3. Branch outside the release allow-list: no intents
    4. Workflow resolution, bootstrapping the default workflow if needed
    5. For each promote step: skip if already triggered, skip if a
       precondition has not succeeded, otherwise emit an intent

The engine keeps no per-activity state and may be called from several
threads at once. The workflow directory is its only shared state.

Example:
    >>> engine = PromotionDecisionEngine(directory, namespace="jx", bootstrap=factory)
    >>> [i.environment for i in engine.decide(activity)]
    ['staging']
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from promoflow.errors import PromoflowError, WorkflowNotFoundError
from promoflow.models import (
    DEFAULT_WORKFLOW_NAME,
    ActivityStatus,
    PipelineActivity,
    PromoteActivityStep,
    PromotionIntent,
    Workflow,
    WorkflowStep,
)
from promoflow.policy import ReleaseBranchPolicy
from promoflow.telemetry.tracing import controller_span, get_tracer

if TYPE_CHECKING:
    from opentelemetry.trace import Tracer

    from promoflow.directory import WorkflowDirectory

logger = structlog.get_logger(__name__)


def build_promote_status_map(activity: PipelineActivity) -> dict[str, PromoteActivityStep]:
    """Map environment name to the activity's Promote step for it.

    When several Promote steps target the same environment the last one wins.
    """
    status_map: dict[str, PromoteActivityStep] = {}
    for step in activity.promote_steps:
        if step.environment:
            status_map[step.environment] = step
    return status_map


def preconditions_met(
    step: WorkflowStep,
    status_map: dict[str, PromoteActivityStep],
) -> bool:
    """Return True if every precondition environment has succeeded.

    A precondition on an environment with no Promote step on the activity
    is never met.
    """
    for env in step.preconditions.environments:
        promoted = status_map.get(env)
        if promoted is None or promoted.status is not ActivityStatus.SUCCEEDED:
            return False
    return True


class PromotionDecisionEngine:
    """Computes promotion intents for pipeline activities.

    Attributes:
        namespace: Team namespace, used for span attributes and logs.
        policy: Release branch allow-list.
        default_workflow_name: Workflow name that may be bootstrapped.
    """

    def __init__(
        self,
        directory: WorkflowDirectory,
        *,
        namespace: str,
        bootstrap: Callable[[], Workflow],
        policy: ReleaseBranchPolicy | None = None,
        default_workflow_name: str = DEFAULT_WORKFLOW_NAME,
        tracer: Tracer | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            directory: Workflow directory to resolve workflow names against.
            namespace: Team namespace.
            bootstrap: Factory building the default workflow when it is absent.
            policy: Release branch policy. Defaults to ``["master"]``.
            default_workflow_name: Name of the bootstrapped workflow.
            tracer: Tracer for decision spans. Defaults to the promoflow tracer.
        """
        self._directory = directory
        self._bootstrap = bootstrap
        self._tracer = tracer or get_tracer()
        self.namespace = namespace
        self.policy = policy or ReleaseBranchPolicy()
        self.default_workflow_name = default_workflow_name
        self._log = logger.bind(namespace=namespace)

    def decide(self, activity: PipelineActivity) -> list[PromotionIntent]:
        """Decide which environments should be promoted for ``activity``.

        Args:
            activity: Snapshot of a PipelineActivity.

        Returns:
            Intents in workflow step order. Empty when nothing should happen.
        """
        with controller_span(
            self._tracer,
            "decide",
            namespace=self.namespace,
            activity=activity.name,
        ) as span:
            intents = self._decide(activity)
            span.set_attribute("promoflow.intent_count", len(intents))
            return intents

    def _decide(self, activity: PipelineActivity) -> list[PromotionIntent]:
        log = self._log.bind(activity=activity.name)

        repo_name = activity.repository_name
        missing = [
            field
            for field, value in (
                ("repository", repo_name),
                ("version", activity.version),
                ("build", activity.build),
                ("pipeline", activity.pipeline),
            )
            if not value
        ]
        if missing:
            log.info("activity_missing_data", missing=missing)
            return []

        if activity.workflow_status.is_terminated():
            log.debug("activity_terminated", workflow_status=activity.workflow_status.value)
            return []

        branch = activity.branch_name
        if not self.policy.is_release_branch(branch):
            log.debug("activity_not_release_branch", branch=branch)
            return []

        workflow_name = activity.workflow_name(self.default_workflow_name)
        try:
            workflow = self._resolve_workflow(workflow_name)
        except WorkflowNotFoundError as e:
            log.warning("workflow_not_found", workflow=e.workflow)
            return []
        except PromoflowError as e:
            log.warning(
                "default_workflow_bootstrap_failed",
                workflow=workflow_name,
                error=e.message,
            )
            return []

        status_map = build_promote_status_map(activity)
        intents: list[PromotionIntent] = []
        for step in workflow.steps:
            env = step.promote_environment
            if not env:
                continue
            promoted = status_map.get(env)
            if promoted is not None and promoted.triggered:
                log.debug(
                    "promotion_already_triggered",
                    environment=env,
                    pull_request=promoted.pull_request_url,
                    pull_request_number=promoted.pull_request.number
                    if promoted.pull_request is not None
                    else None,
                )
                continue
            if not preconditions_met(step, status_map):
                log.debug(
                    "promotion_preconditions_pending",
                    environment=env,
                    preconditions=step.preconditions.environments,
                )
                continue
            intents.append(
                PromotionIntent(
                    activity=activity.name,
                    application=repo_name,
                    environment=env,
                    pipeline=activity.pipeline,
                    build=activity.build,
                    version=activity.version,
                )
            )

        if intents:
            log.info(
                "promotion_intents_decided",
                workflow=workflow.name,
                environments=[i.environment for i in intents],
                version=activity.version,
            )
        return intents

    def _resolve_workflow(self, name: str) -> Workflow:
        """Look up ``name``, bootstrapping it when it is the default workflow.

        Raises:
            WorkflowNotFoundError: If a non-default workflow is unknown.
            DefaultWorkflowError: If the default workflow cannot be built.
        """
        workflow = self._directory.get(name)
        if workflow is not None:
            return workflow
        if name != self.default_workflow_name:
            raise WorkflowNotFoundError(name)
        return self._directory.get_or_create(name, self._bootstrap)


__all__ = [
    "PromotionDecisionEngine",
    "build_promote_status_map",
    "preconditions_met",
]
