"""Promotion engine interface and the command-line implementation.

The promotion engine is the external collaborator that actually promotes an
application version into an environment, typically by raising a pull request
against the environment's git repository. The controller only needs
``promote(request)``; it learns about the result later through the pull
request URL recorded on the PipelineActivity.

Example:
    >>> engine = CommandPromotionEngine("jx promote", timeout_seconds=300)
    >>> engine.build_command(PromotionRequest(
    ...     application="api", environment="staging", version="1.0.3",
    ...     namespace="jx-staging", batch_mode=True,
    ... ))
    ['jx', 'promote', 'api', '--env', 'staging', '--version', '1.0.3', '--namespace', 'jx-staging', '--batch-mode']
"""

from __future__ import annotations

import shlex
import subprocess
import time
from typing import Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, ConfigDict, Field

from promoflow.errors import PromotionEngineError
from promoflow.telemetry.sanitization import sanitize_error_message

logger = structlog.get_logger(__name__)


class PromotionRequest(BaseModel):
    """Arguments of a single promotion.

    Attributes:
        application: Application (repository) name.
        environment: Target Environment name, "" when only a namespace is known.
        version: Version to promote.
        namespace: Namespace the promotion targets.
        pipeline: Pipeline identifier the version was built by.
        build: Build number within the pipeline.
        batch_mode: Never prompt.
        ignore_local_files: Ignore local chart and config files.
        no_poll: Return once the pull request is raised instead of waiting for merge.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    application: str = Field(..., min_length=1)
    environment: str = ""
    version: str = Field(..., min_length=1)
    namespace: str = ""
    pipeline: str = ""
    build: str = ""
    batch_mode: bool = False
    ignore_local_files: bool = False
    no_poll: bool = False


@runtime_checkable
class PromotionEngine(Protocol):
    """Anything that can carry out a promotion."""

    def promote(self, request: PromotionRequest) -> None:
        """Promote ``request.application`` into ``request.environment``.

        Raises:
            PromotionEngineError: If the promotion could not be started.
        """
        ...


class CommandPromotionEngine:
    """Runs an external promote command as a subprocess.

    Attributes:
        command: Command line prefix, split with shell rules.
        timeout_seconds: Maximum runtime of a single invocation.
    """

    def __init__(self, command: str = "jx promote", *, timeout_seconds: int = 300) -> None:
        self.command = shlex.split(command)
        if not self.command:
            msg = "promote command must not be empty"
            raise ValueError(msg)
        self.timeout_seconds = timeout_seconds
        self._log = logger.bind(command=self.command[0])

    def build_command(self, request: PromotionRequest) -> list[str]:
        """Build the argv for ``request``."""
        argv = [*self.command, request.application]
        if request.environment:
            argv += ["--env", request.environment]
        argv += ["--version", request.version]
        if request.pipeline:
            argv += ["--pipeline", request.pipeline]
        if request.build:
            argv += ["--build", request.build]
        if request.namespace:
            argv += ["--namespace", request.namespace]
        if request.batch_mode:
            argv.append("--batch-mode")
        if request.ignore_local_files:
            argv.append("--ignore-local-file")
        if request.no_poll:
            argv.append("--no-poll")
        return argv

    def promote(self, request: PromotionRequest) -> None:
        """Run the promote command and wait for it to exit.

        Args:
            request: The promotion to carry out.

        Raises:
            PromotionEngineError: If the command is missing, times out or
                exits non-zero.
        """
        argv = self.build_command(request)
        start_time = time.monotonic()
        self._log.info(
            "promotion_command_started",
            application=request.application,
            environment=request.environment,
            version=request.version,
        )

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except FileNotFoundError as e:
            raise PromotionEngineError(
                request.application,
                request.environment,
                f"command not found: {self.command[0]}",
            ) from e
        except subprocess.TimeoutExpired as e:
            raise PromotionEngineError(
                request.application,
                request.environment,
                f"timed out after {self.timeout_seconds} seconds",
            ) from e

        duration_ms = int((time.monotonic() - start_time) * 1000)
        if result.returncode != 0:
            reason = f"exit code {result.returncode}"
            if result.stderr:
                reason = f"{reason}: {sanitize_error_message(result.stderr.strip())}"
            raise PromotionEngineError(request.application, request.environment, reason)

        self._log.info(
            "promotion_command_completed",
            application=request.application,
            environment=request.environment,
            duration_ms=duration_ms,
        )


__all__ = ["CommandPromotionEngine", "PromotionEngine", "PromotionRequest"]
