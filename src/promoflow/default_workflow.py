"""Built-in ``default`` Workflow bootstrap.

Activities that do not name a Workflow follow the ``default`` Workflow. When
no such Workflow exists in the team namespace, one is built from the team's
Environments: a promote step per permanent Environment with the ``Auto``
strategy, in ``(order, name)`` order, each gated on the previous one.

The result lives only in the controller's directory and is never written
back to the cluster.

Example:
    >>> workflow = create_default_workflow(store, "jx")
    >>> workflow.promote_environments
    ['staging', 'production']
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from promoflow.errors import DefaultWorkflowError, PromoflowError
from promoflow.models import (
    DEFAULT_WORKFLOW_NAME,
    Environment,
    Preconditions,
    PromoteSpec,
    Workflow,
    WorkflowStep,
    sort_environments,
)

if TYPE_CHECKING:
    from promoflow.store import ResourceStore

logger = structlog.get_logger(__name__)


def automatic_environments(environments: list[Environment]) -> list[Environment]:
    """Permanent Environments with the Auto strategy, sorted by ``(order, name)``."""
    return sort_environments(
        [e for e in environments if e.kind.is_permanent and e.is_automatic]
    )


def build_default_workflow(
    environments: list[Environment],
    *,
    name: str = DEFAULT_WORKFLOW_NAME,
    namespace: str = "",
) -> Workflow:
    """Build the default Workflow from a list of Environments.

    Args:
        environments: All Environments of the team.
        name: Name of the built Workflow.
        namespace: Namespace recorded on the Workflow.

    Returns:
        A Workflow chaining the automatic Environments in order.
    """
    steps: list[WorkflowStep] = []
    previous = ""
    for env in automatic_environments(environments):
        steps.append(
            WorkflowStep(
                kind="Promote",
                promote=PromoteSpec(environment=env.name),
                preconditions=Preconditions(
                    environments=[previous] if previous else []
                ),
            )
        )
        previous = env.name
    return Workflow(name=name, namespace=namespace, steps=steps)


def create_default_workflow(
    store: ResourceStore,
    namespace: str,
    *,
    name: str = DEFAULT_WORKFLOW_NAME,
) -> Workflow:
    """Build the default Workflow for ``namespace`` from its Environments.

    Args:
        store: Resource store used to list Environments.
        namespace: Team namespace.
        name: Name of the built Workflow.

    Returns:
        The in-memory default Workflow. It may have no steps.

    Raises:
        DefaultWorkflowError: If the Environments cannot be listed.
    """
    try:
        environments = store.list_environments(namespace)
    except PromoflowError as e:
        raise DefaultWorkflowError(namespace, e.message) from e

    workflow = build_default_workflow(environments, name=name, namespace=namespace)
    logger.info(
        "default_workflow_built",
        workflow=name,
        namespace=namespace,
        environments=workflow.promote_environments,
    )
    return workflow


__all__ = [
    "automatic_environments",
    "build_default_workflow",
    "create_default_workflow",
]
