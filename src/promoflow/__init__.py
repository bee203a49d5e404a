"""promoflow: promotion workflow controller.

Watches PipelineActivity and Workflow custom resources and promotes each
release build into the next environment once the environments before it have
succeeded. The same promotion is never fired twice.

Example:
    >>> from promoflow import ControllerConfig, KubernetesResourceStore, WorkflowController
    >>> config = ControllerConfig(namespace="jx")
    >>> store = KubernetesResourceStore(config)
    >>> store.startup()
    >>> controller = WorkflowController(store, CommandPromotionEngine(), config)
    >>> controller.run_once()
"""

from __future__ import annotations

from typing import Any

__version__ = "0.1.0"
__all__ = [
    "CommandPromotionEngine",
    "ControllerConfig",
    "KubernetesResourceStore",
    "PromotionDecisionEngine",
    "WorkflowController",
    "WorkflowDirectory",
]

_LAZY_IMPORTS: dict[str, str] = {
    "CommandPromotionEngine": "promoflow.engine",
    "ControllerConfig": "promoflow.config",
    "KubernetesResourceStore": "promoflow.store",
    "PromotionDecisionEngine": "promoflow.decision",
    "WorkflowController": "promoflow.controller",
    "WorkflowDirectory": "promoflow.directory",
}


# Lazy imports keep `import promoflow` cheap for the CLI
def __getattr__(name: str) -> Any:
    """Lazy import of public components."""
    module_name = _LAZY_IMPORTS.get(name)
    if module_name is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)
    import importlib

    return getattr(importlib.import_module(module_name), name)
