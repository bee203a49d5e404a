"""Exception hierarchy for promoflow.

All exceptions inherit from PromoflowError so callers can catch every
controller failure with a single except clause. Each exception carries the
CLI exit code used when it escapes a command.

Exception Hierarchy:
    PromoflowError (base)
    ├── ResourceStoreError          # K8s API unavailable, list/watch setup failed
    ├── WorkflowNotFoundError       # Workflow name does not resolve
    ├── DefaultWorkflowError        # Built-in default workflow could not be built
    ├── EnvironmentNotFoundError    # Unknown Environment name
    ├── EnvironmentNamespaceError   # Environment has no namespace
    ├── NoEnvironmentsError         # Team has no Environments at all
    └── PromotionEngineError        # External promotion call failed

Exit Codes:
    0 - Success
    1 - General error (PromoflowError, DefaultWorkflowError)
    2 - Invalid environment configuration (EnvironmentNamespaceError)
    3 - Not found (WorkflowNotFoundError, EnvironmentNotFoundError, NoEnvironmentsError)
    5 - Kubernetes API unavailable (ResourceStoreError)
    8 - Promotion engine failure (PromotionEngineError)

Example:
    >>> from promoflow.errors import EnvironmentNotFoundError
    >>> raise EnvironmentNotFoundError("qa", available=["staging", "production"])
    Traceback (most recent call last):
        ...
    EnvironmentNotFoundError: Environment 'qa' not found (available: staging, production)
"""

from __future__ import annotations


class PromoflowError(Exception):
    """Base exception for all promoflow errors.

    Attributes:
        message: Human-readable error message.
        exit_code: CLI exit code for this error type (default: 1).
    """

    exit_code: int = 1

    def __init__(self, message: str) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message.
        """
        self.message = message
        super().__init__(message)


class ResourceStoreError(PromoflowError, ConnectionError):
    """Raised when the Kubernetes API cannot be reached or queried.

    Inherits from ConnectionError so infrastructure failures can be caught
    either way. Raised at startup this aborts the controller.

    Attributes:
        operation: The store operation that failed (e.g. "list_workflows").
        reason: Additional context about the failure.
        exit_code: CLI exit code (5).
    """

    exit_code: int = 5

    def __init__(self, *, operation: str = "", reason: str = "") -> None:
        """Initialize the exception.

        Args:
            operation: The store operation that failed.
            reason: Additional context about the failure.
        """
        self.operation = operation
        self.reason = reason
        message = "Kubernetes resource store unavailable"
        if operation:
            message = f"{message} during {operation}"
        if reason:
            message = f"{message}: {reason}"
        PromoflowError.__init__(self, message)


class WorkflowNotFoundError(PromoflowError):
    """Raised when a Workflow name does not resolve.

    Attributes:
        workflow: The Workflow name that was not found.
        exit_code: CLI exit code (3).
    """

    exit_code: int = 3

    def __init__(self, workflow: str) -> None:
        """Initialize the exception.

        Args:
            workflow: The Workflow name that was not found.
        """
        self.workflow = workflow
        super().__init__(f"Workflow '{workflow}' not found")


class DefaultWorkflowError(PromoflowError):
    """Raised when the built-in default Workflow cannot be created.

    Attributes:
        namespace: Namespace the default Workflow was built for.
        reason: Why creation failed.
    """

    def __init__(self, namespace: str, reason: str) -> None:
        """Initialize the exception.

        Args:
            namespace: Namespace the default Workflow was built for.
            reason: Why creation failed.
        """
        self.namespace = namespace
        self.reason = reason
        super().__init__(
            f"Cannot create default Workflow in namespace '{namespace}': {reason}"
        )


class EnvironmentNotFoundError(PromoflowError, ValueError):
    """Raised when an Environment name is not known in the team namespace.

    Attributes:
        environment: The Environment name that was requested.
        available: Names of the Environments that do exist.
        exit_code: CLI exit code (3).
    """

    exit_code: int = 3

    def __init__(self, environment: str, *, available: list[str] | None = None) -> None:
        """Initialize the exception.

        Args:
            environment: The Environment name that was requested.
            available: Names of the Environments that do exist.
        """
        self.environment = environment
        self.available = list(available or [])
        message = f"Environment '{environment}' not found"
        if self.available:
            message = f"{message} (available: {', '.join(self.available)})"
        PromoflowError.__init__(self, message)


class EnvironmentNamespaceError(PromoflowError, ValueError):
    """Raised when an Environment does not declare a target namespace.

    Attributes:
        environment: The Environment without a namespace.
        exit_code: CLI exit code (2).
    """

    exit_code: int = 2

    def __init__(self, environment: str) -> None:
        """Initialize the exception.

        Args:
            environment: The Environment without a namespace.
        """
        self.environment = environment
        PromoflowError.__init__(
            self, f"Environment '{environment}' does not have a namespace associated with it"
        )


class NoEnvironmentsError(PromoflowError):
    """Raised when the team namespace has no Environments.

    Attributes:
        namespace: The team namespace that was searched.
        exit_code: CLI exit code (3).
    """

    exit_code: int = 3

    def __init__(self, namespace: str) -> None:
        """Initialize the exception.

        Args:
            namespace: The team namespace that was searched.
        """
        self.namespace = namespace
        super().__init__(f"No Environments have been created yet in namespace '{namespace}'")


class PromotionEngineError(PromoflowError):
    """Raised when the external promotion engine fails.

    The controller logs this as a warning and relies on the next activity
    event to retry.

    Attributes:
        application: Application being promoted.
        environment: Target Environment name.
        reason: Failure detail (exit status, stderr, timeout).
        exit_code: CLI exit code (8).
    """

    exit_code: int = 8

    def __init__(self, application: str, environment: str, reason: str) -> None:
        """Initialize the exception.

        Args:
            application: Application being promoted.
            environment: Target Environment name.
            reason: Failure detail.
        """
        self.application = application
        self.environment = environment
        self.reason = reason
        super().__init__(
            f"Promotion of '{application}' to '{environment}' failed: {reason}"
        )


__all__ = [
    "DefaultWorkflowError",
    "EnvironmentNamespaceError",
    "EnvironmentNotFoundError",
    "NoEnvironmentsError",
    "PromoflowError",
    "PromotionEngineError",
    "ResourceStoreError",
    "WorkflowNotFoundError",
]
