"""CLI utility functions and error handling.

Shared helpers for the promoflow CLI:
- Exit code constants
- Output helpers for consistent stderr/stdout usage
- Configuration loading and logging setup

Errors go to stderr as plain text with a non-zero exit code, so the
commands behave well inside CI jobs.

Example:
    from promoflow.cli.utils import ExitCode, error_exit

    error_exit("Environment not found", exit_code=ExitCode.NOT_FOUND, env="qa")
"""

from __future__ import annotations

import sys
from enum import IntEnum
from typing import TYPE_CHECKING, Any

import click
from pydantic import ValidationError

from promoflow.config import ControllerConfig
from promoflow.telemetry.logging import configure_logging

if TYPE_CHECKING:
    from typing import NoReturn

    from promoflow.errors import PromoflowError


class ExitCode(IntEnum):
    """Standard exit codes for CLI commands.

    These line up with the ``exit_code`` attribute of each promoflow error.
    """

    SUCCESS = 0
    """Command completed successfully."""

    GENERAL_ERROR = 1
    """General error (catch-all for failures)."""

    USAGE_ERROR = 2
    """Invalid usage or configuration."""

    NOT_FOUND = 3
    """Workflow or Environment not found."""

    PERMISSION_ERROR = 4
    """Permission denied by the Kubernetes API."""

    STORE_UNAVAILABLE = 5
    """Kubernetes API unavailable."""

    PROMOTION_ERROR = 8
    """Promotion engine failed."""


def _format(prefix: str, message: str, context: dict[str, Any]) -> str:
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
        return f"{prefix}: {message} ({context_str})"
    return f"{prefix}: {message}"


def error(message: str, **context: str | int | bool | None) -> None:
    """Print an error message to stderr.

    Example:
        error("Environment not found", env="qa")
        # Output: Error: Environment not found (env=qa)
    """
    click.echo(_format("Error", message, context), err=True)


def error_exit(
    message: str,
    exit_code: ExitCode = ExitCode.GENERAL_ERROR,
    **context: str | int | bool | None,
) -> NoReturn:
    """Print an error message to stderr and exit with a code.

    Raises:
        SystemExit: Always exits with the specified code.
    """
    error(message, **context)
    sys.exit(exit_code)


def exit_with_error(e: PromoflowError) -> NoReturn:
    """Report a promoflow error and exit with its exit code."""
    try:
        code = ExitCode(e.exit_code)
    except ValueError:
        code = ExitCode.GENERAL_ERROR
    error_exit(e.message, exit_code=code)


def warn(message: str, **context: str | int | bool | None) -> None:
    """Print a warning message to stderr."""
    click.echo(_format("Warning", message, context), err=True)


def success(message: str) -> None:
    """Print a success message to stdout."""
    click.echo(message)


def info(message: str) -> None:
    """Print an informational message to stderr.

    Used for progress updates that should not be captured by stdout
    redirection.
    """
    click.echo(message, err=True)


def load_config(**overrides: Any) -> ControllerConfig:
    """Load configuration from the environment, exiting on invalid values.

    Args:
        **overrides: Field values from command line options.

    Raises:
        SystemExit: With USAGE_ERROR if the configuration is invalid.
    """
    try:
        return ControllerConfig.from_env(**overrides)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        error_exit(f"Invalid configuration: {fields}", exit_code=ExitCode.USAGE_ERROR)


def setup_logging(config: ControllerConfig) -> None:
    """Configure structured logging from the loaded configuration."""
    configure_logging(log_level=config.log_level, json_output=config.log_json)


__all__ = [
    "ExitCode",
    "error",
    "error_exit",
    "exit_with_error",
    "info",
    "load_config",
    "setup_logging",
    "success",
    "warn",
]
