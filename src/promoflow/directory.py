"""In-memory, lock-guarded directory of Workflow definitions.

The directory is the only mutable state shared between the workflow and
activity subscriptions. Every read and write holds the same lock, so a
reader never observes a partially updated map.

Example:
    >>> from promoflow.models import Workflow
    >>> directory = WorkflowDirectory()
    >>> directory.upsert(Workflow(name="default"))
    >>> "default" in directory
    True
"""

from __future__ import annotations

import threading
from collections.abc import Callable

import structlog

from promoflow.models import Workflow

logger = structlog.get_logger(__name__)


class WorkflowDirectory:
    """Mapping of workflow name to the latest known Workflow."""

    def __init__(self) -> None:
        self._workflows: dict[str, Workflow] = {}
        self._lock = threading.Lock()

    def upsert(self, workflow: Workflow) -> None:
        """Insert or replace the entry for ``workflow.name``."""
        with self._lock:
            self._workflows[workflow.name] = workflow
        logger.debug(
            "workflow_upserted",
            workflow=workflow.name,
            resource_version=workflow.resource_version,
        )

    def remove(self, name: str) -> Workflow | None:
        """Remove an entry.

        Returns:
            The removed Workflow, or None if no entry existed.
        """
        with self._lock:
            removed = self._workflows.pop(name, None)
        if removed is not None:
            logger.debug("workflow_removed", workflow=name)
        return removed

    def get(self, name: str) -> Workflow | None:
        with self._lock:
            return self._workflows.get(name)

    def get_or_create(self, name: str, factory: Callable[[], Workflow]) -> Workflow:
        """Return the entry for ``name``, creating it with ``factory`` if absent.

        The factory runs under the directory lock, so it is called at most
        once per missing name even when several threads race on it.
        Exceptions raised by the factory propagate and nothing is stored.

        Args:
            name: Workflow name to look up.
            factory: Zero-argument callable building the Workflow.

        Returns:
            The existing or newly created Workflow.

        Raises:
            ValueError: If the factory returns a Workflow with a different name.
        """
        with self._lock:
            existing = self._workflows.get(name)
            if existing is not None:
                return existing
            # A bootstrap factory lists Environments while holding the lock.
            # Upserts and removals wait for it, once per missing name.
            created = factory()
            if created.name != name:
                msg = f"Factory built workflow '{created.name}', expected '{name}'"
                raise ValueError(msg)
            self._workflows[name] = created
        logger.info(
            "workflow_created",
            workflow=name,
            steps=len(created.steps),
        )
        return created

    def names(self) -> list[str]:
        """Sorted names of all known workflows."""
        with self._lock:
            return sorted(self._workflows)

    def __len__(self) -> int:
        with self._lock:
            return len(self._workflows)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._workflows


__all__ = ["WorkflowDirectory"]
