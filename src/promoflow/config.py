"""Configuration model for the promotion workflow controller.

Configuration is read from ``PROMOFLOW_*`` environment variables so the CLI
surface stays limited to ``--namespace`` and ``--no-watch``.

Example:
    >>> from promoflow.config import ControllerConfig
    >>> config = ControllerConfig(release_branches=["master", "release-*"])
    >>> config.resync_seconds
    600
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Field name -> environment variable
_ENV_VARS: dict[str, str] = {
    "namespace": "PROMOFLOW_NAMESPACE",
    "kubeconfig_path": "KUBECONFIG",
    "context": "PROMOFLOW_KUBE_CONTEXT",
    "release_branches": "PROMOFLOW_RELEASE_BRANCHES",
    "default_workflow_name": "PROMOFLOW_DEFAULT_WORKFLOW",
    "resync_seconds": "PROMOFLOW_RESYNC_SECONDS",
    "watch_backoff_seconds": "PROMOFLOW_WATCH_BACKOFF_SECONDS",
    "watch_backoff_max_seconds": "PROMOFLOW_WATCH_BACKOFF_MAX_SECONDS",
    "promote_command": "PROMOFLOW_PROMOTE_COMMAND",
    "promote_timeout_seconds": "PROMOFLOW_PROMOTE_TIMEOUT",
    "log_level": "PROMOFLOW_LOG_LEVEL",
    "log_json": "PROMOFLOW_LOG_JSON",
}


class ControllerConfig(BaseModel):
    """Configuration for the workflow controller and promote command.

    Attributes:
        namespace: Namespace to watch. None uses the current namespace.
        kubeconfig_path: Path to kubeconfig file. None tries in-cluster first.
        context: Kubeconfig context to use. None uses current context.
        release_branches: Glob patterns of branches eligible for promotion.
        default_workflow_name: Workflow name that is bootstrapped on demand.
        resync_seconds: Full relist interval for each watch subscription.
        watch_backoff_seconds: First delay before relisting after a watch failure.
        watch_backoff_max_seconds: Upper bound of the doubling retry delay.
        promote_command: Command line prefix of the external promotion engine.
        promote_timeout_seconds: Timeout for a single promotion engine call.
        log_level: Minimum log level.
        log_json: Emit JSON logs (True) or console logs (False).

    Example:
        >>> config = ControllerConfig.from_env({"PROMOFLOW_RELEASE_BRANCHES": "main,release-*"})
        >>> config.release_branches
        ['main', 'release-*']
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        json_schema_extra={
            "examples": [
                {"namespace": "jx"},
                {
                    "namespace": "jx",
                    "release_branches": ["main", "release-*"],
                    "resync_seconds": 300,
                },
            ]
        },
    )

    namespace: str | None = Field(
        default=None,
        min_length=1,
        max_length=63,
        description="Namespace to watch. None uses the current namespace.",
        examples=["jx", "cd-team"],
    )

    kubeconfig_path: str | None = Field(
        default=None,
        description="Path to kubeconfig file. None tries in-cluster config first.",
        examples=["~/.kube/config"],
    )

    context: str | None = Field(
        default=None,
        description="Kubeconfig context to use. None uses current context.",
        examples=["kind-jx", "prod-cluster"],
    )

    release_branches: list[str] = Field(
        default_factory=lambda: ["master"],
        min_length=1,
        description="Glob patterns of branches whose builds may be promoted",
        examples=[["master"], ["main", "release-*"]],
    )

    default_workflow_name: str = Field(
        default="default",
        min_length=1,
        description="Workflow name that is created on first reference",
    )

    resync_seconds: int = Field(
        default=600,
        ge=1,
        description="Full relist interval for each watch subscription",
    )

    watch_backoff_seconds: float = Field(
        default=5.0,
        ge=0,
        description="First delay before relisting after a watch stream failure",
    )

    watch_backoff_max_seconds: float = Field(
        default=60.0,
        ge=0,
        description="Upper bound of the exponential watch retry delay",
    )

    promote_command: str = Field(
        default="jx promote",
        min_length=1,
        description="Command line prefix used to invoke the promotion engine",
        examples=["jx promote", "/usr/local/bin/promote"],
    )

    promote_timeout_seconds: int = Field(
        default=300,
        ge=1,
        description="Timeout for a single promotion engine invocation",
    )

    log_level: str = Field(
        default="INFO",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum log level",
    )

    log_json: bool = Field(
        default=True,
        description="Emit JSON logs (True) or human-readable console logs (False)",
    )

    @field_validator("kubeconfig_path")
    @classmethod
    def expand_kubeconfig_path(cls, v: str | None) -> str | None:
        """Expand ~ in kubeconfig path.

        Args:
            v: The kubeconfig path value.

        Returns:
            Expanded path or None.
        """
        if v is None:
            return None
        # KUBECONFIG may hold a path list; the kubernetes client takes the first
        first = v.split(os.pathsep)[0]
        return str(Path(first).expanduser())

    @field_validator("release_branches")
    @classmethod
    def strip_release_branches(cls, v: list[str]) -> list[str]:
        """Drop blank patterns and surrounding whitespace.

        Raises:
            ValueError: If no pattern remains.
        """
        patterns = [p.strip() for p in v if p.strip()]
        if not patterns:
            msg = "release_branches must contain at least one pattern"
            raise ValueError(msg)
        return patterns

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> ControllerConfig:
        """Build configuration from environment variables.

        Empty variables are treated as unset. Explicit keyword overrides win
        over the environment; None overrides are ignored.

        Args:
            environ: Mapping to read from. Defaults to os.environ.
            **overrides: Field values that take precedence over the environment.

        Returns:
            Validated ControllerConfig.

        Raises:
            pydantic.ValidationError: If a value is invalid.
        """
        source = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for field_name, env_var in _ENV_VARS.items():
            raw = source.get(env_var, "").strip()
            if not raw:
                continue
            if field_name == "release_branches":
                values[field_name] = raw.split(",")
            else:
                values[field_name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)


__all__ = ["ControllerConfig"]
