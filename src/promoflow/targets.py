"""Target namespace resolution for human-invoked promotions.

Given an optional Environment name and an optional namespace, work out which
namespace a promotion deploys into, and make sure it exists.

Resolution order:
    1. An explicit Environment: its namespace (which must be set)
    2. An explicit namespace
    3. The caller's current namespace

Example:
    >>> resolver = TargetNamespaceResolver(store, team_namespace="jx")
    >>> target = resolver.resolve(environment="staging")
    >>> target.namespace
    'jx-staging'
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ConfigDict

from promoflow.default_workflow import automatic_environments
from promoflow.errors import (
    EnvironmentNamespaceError,
    EnvironmentNotFoundError,
    NoEnvironmentsError,
)
from promoflow.models import Environment
from promoflow.telemetry.tracing import controller_span, get_tracer

if TYPE_CHECKING:
    from opentelemetry.trace import Tracer

    from promoflow.store import ResourceStore

logger = structlog.get_logger(__name__)

CONFIRM_PROMPT = "Do you wish to promote anyway?"


class PromotionTarget(BaseModel):
    """Where a promotion deploys to.

    Attributes:
        namespace: Target namespace.
        environment: The Environment, when one was named or implied.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    namespace: str
    environment: Environment | None = None

    @property
    def environment_name(self) -> str:
        return self.environment.name if self.environment is not None else ""


class TargetNamespaceResolver:
    """Resolves promotion targets against a team's Environments."""

    def __init__(
        self,
        store: ResourceStore,
        *,
        team_namespace: str,
        tracer: Tracer | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            store: Resource store for Environments and namespaces.
            team_namespace: Namespace holding the team's Environment resources.
            tracer: Tracer for resolution spans.
        """
        self._store = store
        self._tracer = tracer or get_tracer()
        self.team_namespace = team_namespace

    def _environments(self) -> list[Environment]:
        environments = self._store.list_environments(self.team_namespace)
        if not environments:
            raise NoEnvironmentsError(self.team_namespace)
        return environments

    def resolve(
        self,
        environment: str | None = None,
        namespace: str | None = None,
    ) -> PromotionTarget:
        """Resolve and ensure the promotion target namespace.

        Args:
            environment: Environment name. Takes precedence over ``namespace``.
            namespace: Explicit target namespace.

        Returns:
            The resolved target.

        Raises:
            NoEnvironmentsError: If the team has no Environments.
            EnvironmentNotFoundError: If ``environment`` is unknown.
            EnvironmentNamespaceError: If the Environment has no namespace.
            ResourceStoreError: If the namespace cannot be ensured.
        """
        with controller_span(
            self._tracer,
            "resolve_target",
            namespace=self.team_namespace,
            environment=environment,
        ) as span:
            environments = self._environments()

            env_resource: Environment | None = None
            if environment:
                by_name = {e.name: e for e in environments}
                env_resource = by_name.get(environment)
                if env_resource is None:
                    raise EnvironmentNotFoundError(environment, available=sorted(by_name))
                if not env_resource.namespace:
                    raise EnvironmentNamespaceError(environment)
                target_namespace = env_resource.namespace
            elif namespace:
                target_namespace = namespace
            else:
                target_namespace = self._store.current_namespace()

            self._store.ensure_namespace(target_namespace)
            span.set_attribute("promoflow.target_namespace", target_namespace)
            logger.info(
                "promotion_target_resolved",
                environment=environment,
                target_namespace=target_namespace,
            )
            return PromotionTarget(namespace=target_namespace, environment=env_resource)

    def automatic_targets(self) -> list[PromotionTarget]:
        """Targets for every permanent Auto Environment, in ``(order, name)`` order.

        Raises:
            NoEnvironmentsError: If the team has no Environments.
            EnvironmentNamespaceError: If one of them has no namespace.
        """
        targets: list[PromotionTarget] = []
        for env in automatic_environments(self._environments()):
            if not env.namespace:
                raise EnvironmentNamespaceError(env.name)
            targets.append(PromotionTarget(namespace=env.namespace, environment=env))
        return targets


def confirm_promotion(
    target: PromotionTarget,
    confirm: Callable[[str], bool],
    batch_mode: bool,
) -> bool:
    """Return whether a human-invoked promotion into ``target`` may proceed.

    Only Environments promoted automatically by pipelines ask for
    confirmation, and never in batch mode.

    Args:
        target: The resolved target.
        confirm: Asks the user a yes/no question.
        batch_mode: True when prompting is not allowed.
    """
    env = target.environment
    if batch_mode or env is None or not env.is_automatic:
        return True
    logger.warning("promoting_automatic_environment", environment=env.name)
    return confirm(
        f"The Environment {env.name} is setup to promote automatically as part of "
        f"the CI/CD Pipelines. {CONFIRM_PROMPT}"
    )


__all__ = [
    "CONFIRM_PROMPT",
    "PromotionTarget",
    "TargetNamespaceResolver",
    "confirm_promotion",
]
