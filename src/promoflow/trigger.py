"""Promotion trigger: turns intents into promotion engine calls.

The trigger is fire-and-forget. A failed promotion is logged and recorded in
its outcome, and the remaining intents still run. There is no retry counter:
the next event for the same activity decides again, and because the pull
request URL is still empty the intent is emitted again.

Example:
    >>> trigger = PromotionTrigger(engine, namespace="jx")
    >>> outcomes = trigger.fire(intents)
    >>> [o.succeeded for o in outcomes]
    [True]
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ConfigDict, Field

from promoflow.engine import PromotionRequest
from promoflow.errors import PromotionEngineError
from promoflow.models import PromotionIntent
from promoflow.telemetry.tracing import controller_span, get_tracer

if TYPE_CHECKING:
    from opentelemetry.trace import Tracer

    from promoflow.engine import PromotionEngine

logger = structlog.get_logger(__name__)


class PromotionOutcome(BaseModel):
    """Result of firing one intent.

    Attributes:
        intent: The intent that was fired.
        succeeded: True if the engine accepted the promotion.
        error: Failure message when ``succeeded`` is False.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    intent: PromotionIntent
    succeeded: bool
    error: str | None = Field(default=None)


class PromotionTrigger:
    """Invokes the promotion engine for each intent, in order."""

    def __init__(
        self,
        engine: PromotionEngine,
        *,
        namespace: str,
        tracer: Tracer | None = None,
    ) -> None:
        """Initialize the trigger.

        Args:
            engine: Promotion engine to call.
            namespace: Controller namespace passed on every request.
            tracer: Tracer for promote spans. Defaults to the promoflow tracer.
        """
        self._engine = engine
        self._tracer = tracer or get_tracer()
        self.namespace = namespace
        self._log = logger.bind(namespace=namespace)

    def build_request(self, intent: PromotionIntent) -> PromotionRequest:
        """Controller requests never prompt and ignore local files."""
        return PromotionRequest(
            application=intent.application,
            environment=intent.environment,
            version=intent.version,
            namespace=self.namespace,
            pipeline=intent.pipeline,
            build=intent.build,
            batch_mode=True,
            ignore_local_files=True,
            no_poll=True,
        )

    def fire(self, intents: list[PromotionIntent]) -> list[PromotionOutcome]:
        """Fire every intent and collect the outcomes.

        Args:
            intents: Intents in the order they should be promoted.

        Returns:
            One outcome per intent, in the same order.
        """
        return [self._fire_one(intent) for intent in intents]

    def _fire_one(self, intent: PromotionIntent) -> PromotionOutcome:
        log = self._log.bind(
            activity=intent.activity,
            application=intent.application,
            environment=intent.environment,
            version=intent.version,
        )
        log.info("promotion_triggered")
        try:
            with controller_span(
                self._tracer,
                "promote",
                namespace=self.namespace,
                activity=intent.activity,
                environment=intent.environment,
                extra_attributes={"promoflow.version": intent.version},
            ):
                self._engine.promote(self.build_request(intent))
        except PromotionEngineError as e:
            log.warning("promotion_failed", error=e.message)
            return PromotionOutcome(intent=intent, succeeded=False, error=e.message)
        except Exception as e:
            log.exception("promotion_failed_unexpectedly")
            return PromotionOutcome(intent=intent, succeeded=False, error=str(e))

        log.info("promotion_accepted")
        return PromotionOutcome(intent=intent, succeeded=True)


__all__ = ["PromotionOutcome", "PromotionTrigger"]
