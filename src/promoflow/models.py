"""Resource models for workflows, pipeline activities and environments.

This module defines Pydantic v2 models for the ``jenkins.io/v1`` custom
resources the controller reads, plus the promotion intent it computes.

Key Components:
    ActivityStatus: Status of an activity or activity step
    PromotionStrategy: How an Environment expects to be promoted to
    EnvironmentKind: Kind of an Environment (permanent, preview, ...)
    Workflow / WorkflowStep: Declared promotion steps and preconditions
    PipelineActivity: One build of one pipeline, with its promotion history
    ActivityStep: Discriminated union of StageActivityStep | PromoteActivityStep
    Environment: A promotion target and its namespace
    PromotionIntent: A decision that an environment should be promoted now

Kubernetes objects carry many fields this controller does not use, so the
models ignore unknown fields. Use ``from_resource()`` to build a model from
the raw ``{"metadata": ..., "spec": ...}`` shape returned by the API.

Example:
    >>> activity = PipelineActivity.from_resource({
    ...     "metadata": {"name": "acme-api-master-3", "resourceVersion": "812"},
    ...     "spec": {"pipeline": "acme/api/master", "build": "3", "version": "1.0.3"},
    ... })
    >>> activity.repository_name, activity.branch_name
    ('api', 'master')
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_WORKFLOW_NAME = "default"


# =============================================================================
# Enums
# =============================================================================


class ActivityStatus(str, Enum):
    """Status of a pipeline activity or one of its steps.

    Attributes:
        NONE: Not started yet (empty string on the resource).
        PENDING: Waiting to start.
        RUNNING: In progress.
        SUCCEEDED: Completed successfully.
        FAILED: Completed with failure.
        WAITING_FOR_APPROVAL: Paused for a manual approval.
        ERROR: Completed with an error.
        ABORTED: Aborted, e.g. superseded by a newer build.

    Examples:
        >>> ActivityStatus("Succeeded").is_terminated()
        True
        >>> ActivityStatus.RUNNING.is_terminated()
        False
    """

    NONE = ""
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    WAITING_FOR_APPROVAL = "WaitingForApproval"
    ERROR = "Error"
    ABORTED = "Aborted"

    def is_terminated(self) -> bool:
        """Return True once no further promotion decisions should be made."""
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {
        ActivityStatus.SUCCEEDED,
        ActivityStatus.FAILED,
        ActivityStatus.ERROR,
        ActivityStatus.ABORTED,
    }
)


class PromotionStrategy(str, Enum):
    """Promotion strategy declared on an Environment.

    Attributes:
        NONE: Not declared.
        AUTOMATIC: Promoted by the pipeline/controller path.
        MANUAL: Promoted by a human.
        NEVER: Promotion disabled.
    """

    NONE = ""
    AUTOMATIC = "Auto"
    MANUAL = "Manual"
    NEVER = "Never"


class EnvironmentKind(str, Enum):
    """Kind of an Environment resource."""

    NONE = ""
    PERMANENT = "Permanent"
    PREVIEW = "Preview"
    TEST = "Test"
    EDIT = "Edit"
    DEVELOPMENT = "Development"

    @property
    def is_permanent(self) -> bool:
        """Permanent environments are the ones workflows promote into."""
        return self is EnvironmentKind.PERMANENT


def _coerce_enum(enum_cls: type[Enum], value: Any) -> Any:
    """Map None and unknown strings to the enum's empty member."""
    if value is None:
        return ""
    if isinstance(value, str) and value not in {m.value for m in enum_cls}:
        return ""
    return value


# =============================================================================
# Helpers
# =============================================================================


def pull_request_number(url: str) -> int:
    """Parse the pull request number from a pull request URL.

    Args:
        url: Pull request URL, e.g. ``https://github.com/acme/env-staging/pull/12``.

    Returns:
        The trailing pull request number.

    Raises:
        ValueError: If the last path segment is not a number.

    Examples:
        >>> pull_request_number("https://github.com/acme/env-staging/pull/12/")
        12
    """
    last = url.rstrip("/").split("/")[-1]
    try:
        return int(last)
    except ValueError as e:
        msg = f"Failed to parse PR number from {last!r} on URL {url}"
        raise ValueError(msg) from e


def is_resource_version_newer(candidate: str, current: str) -> bool:
    """Return True if resourceVersion ``candidate`` is newer than ``current``.

    Resource versions are compared numerically when both parse as integers,
    otherwise lexically.

    Examples:
        >>> is_resource_version_newer("1000", "999")
        True
    """
    try:
        return int(candidate) > int(current)
    except ValueError:
        return candidate > current


class _ResourceModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


def _metadata_fields(obj: Mapping[str, Any]) -> dict[str, Any]:
    metadata = obj.get("metadata") or {}
    return {
        "name": metadata.get("name") or "",
        "namespace": metadata.get("namespace") or "",
        "resource_version": metadata.get("resourceVersion") or "",
    }


# =============================================================================
# Workflow
# =============================================================================


class Preconditions(_ResourceModel):
    """Environments that must have succeeded before a step may fire."""

    environments: list[str] = Field(
        default_factory=list,
        description="Environment names that must already have succeeded",
    )

    @field_validator("environments", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class PromoteSpec(_ResourceModel):
    """Promote action of a workflow step."""

    environment: str = Field(default="", description="Target Environment name")


class WorkflowStep(_ResourceModel):
    """A single declared step of a Workflow.

    Attributes:
        kind: Step kind as declared on the resource (informational).
        promote: Promote action, if this step promotes.
        preconditions: Environments that gate this step.
    """

    kind: str = ""
    promote: PromoteSpec | None = None
    preconditions: Preconditions = Field(default_factory=Preconditions)

    @field_validator("preconditions", mode="before")
    @classmethod
    def none_to_default(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def promote_environment(self) -> str:
        """Target environment name, or "" when the step does not promote."""
        return self.promote.environment if self.promote is not None else ""


class Workflow(_ResourceModel):
    """Ordered declaration of promotion steps.

    Step order is an iteration order only; gating happens through each
    step's preconditions.

    Examples:
        >>> wf = Workflow(name="default", steps=[
        ...     WorkflowStep(promote=PromoteSpec(environment="staging")),
        ... ])
        >>> wf.promote_environments
        ['staging']
    """

    name: str = Field(..., min_length=1, description="Workflow name (unique)")
    namespace: str = ""
    resource_version: str = ""
    steps: list[WorkflowStep] = Field(default_factory=list)

    @field_validator("steps", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def promote_environments(self) -> list[str]:
        """Environment names of the promote steps, in declared order."""
        return [s.promote_environment for s in self.steps if s.promote_environment]

    @classmethod
    def from_resource(cls, obj: Mapping[str, Any]) -> Workflow:
        """Build a Workflow from a raw ``jenkins.io/v1`` Workflow object."""
        spec = obj.get("spec") or {}
        return cls.model_validate({**_metadata_fields(obj), "steps": spec.get("steps")})


# =============================================================================
# PipelineActivity
# =============================================================================


class PullRequestRef(_ResourceModel):
    """Pull request raised by the promotion engine for one environment."""

    url: str = Field(default="", alias="pullRequestURL")
    merge_commit_sha: str = Field(default="", alias="mergeCommitSHA")
    status: ActivityStatus = ActivityStatus.NONE

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v: Any) -> Any:
        return _coerce_enum(ActivityStatus, v)

    @property
    def number(self) -> int | None:
        """Pull request number, or None when the URL does not end in one."""
        if not self.url:
            return None
        try:
            return pull_request_number(self.url)
        except ValueError:
            return None


class StageActivityStep(_ResourceModel):
    """A pipeline stage; carries no promotion information."""

    kind: Literal["Stage"] = "Stage"
    name: str = ""
    status: ActivityStatus = ActivityStatus.NONE

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v: Any) -> Any:
        return _coerce_enum(ActivityStatus, v)


class PromoteActivityStep(_ResourceModel):
    """Promotion of this build into one environment."""

    kind: Literal["Promote"] = "Promote"
    name: str = ""
    environment: str = ""
    status: ActivityStatus = ActivityStatus.NONE
    pull_request: PullRequestRef | None = Field(default=None, alias="pullRequest")

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v: Any) -> Any:
        return _coerce_enum(ActivityStatus, v)

    @property
    def pull_request_url(self) -> str:
        return self.pull_request.url if self.pull_request is not None else ""

    @property
    def triggered(self) -> bool:
        """True once a promotion has been initiated (PR URL recorded)."""
        return bool(self.pull_request_url)


ActivityStep = Annotated[
    StageActivityStep | PromoteActivityStep,
    Field(discriminator="kind"),
]
"""Discriminated union of activity step variants, keyed by ``kind``."""

# kind -> key of the nested payload on the raw resource
_STEP_PAYLOAD_KEYS = {"Stage": "stage", "Promote": "promote"}


def _flatten_activity_step(raw: Any) -> Any:
    """Flatten ``{"kind": "Promote", "promote": {...}}`` into the variant shape.

    Returns None for step kinds outside the union (e.g. "Preview").
    """
    if isinstance(raw, BaseModel) or not isinstance(raw, Mapping):
        return raw
    kind = raw.get("kind") or next(
        (k for k, key in _STEP_PAYLOAD_KEYS.items() if raw.get(key)), ""
    )
    if kind not in _STEP_PAYLOAD_KEYS:
        return None
    payload = raw.get(_STEP_PAYLOAD_KEYS[kind])
    if isinstance(payload, Mapping):
        return {**payload, "kind": kind}
    return {**raw, "kind": kind}


class PipelineActivity(_ResourceModel):
    """The record of one build of one pipeline.

    Attributes:
        name: Resource name, e.g. ``acme-api-master-3``.
        pipeline: Slash-delimited ``owner/repo/branch``.
        build: Build number.
        version: Version being released.
        git_repository: Repository name, derived from pipeline when empty.
        workflow: Name of the Workflow to follow ("" means default).
        workflow_status: Status of the promotion workflow for this build.
        steps: Ordered stage and promote steps.
    """

    name: str = ""
    namespace: str = ""
    resource_version: str = ""
    pipeline: str = ""
    build: str = ""
    version: str = ""
    git_repository: str = Field(default="", alias="gitRepository")
    git_owner: str = Field(default="", alias="gitOwner")
    git_url: str = Field(default="", alias="gitUrl")
    workflow: str = ""
    workflow_status: ActivityStatus = Field(
        default=ActivityStatus.NONE, alias="workflowStatus"
    )
    status: ActivityStatus = ActivityStatus.NONE
    steps: list[ActivityStep] = Field(default_factory=list)

    @field_validator("workflow_status", "status", mode="before")
    @classmethod
    def coerce_status(cls, v: Any) -> Any:
        return _coerce_enum(ActivityStatus, v)

    @field_validator("steps", mode="before")
    @classmethod
    def flatten_steps(cls, v: Any) -> Any:
        if v is None:
            return []
        if not isinstance(v, list):
            return v
        flattened = (_flatten_activity_step(step) for step in v)
        return [step for step in flattened if step is not None]

    @property
    def repository_name(self) -> str:
        """Repository name, falling back to the second-to-last pipeline segment."""
        if self.git_repository:
            return self.git_repository
        paths = self.pipeline.split("/")
        if len(paths) > 1:
            return paths[-2]
        return ""

    @property
    def branch_name(self) -> str:
        """Branch name: the last segment of the pipeline name."""
        if not self.pipeline:
            return ""
        return self.pipeline.split("/")[-1]

    @property
    def promote_steps(self) -> list[PromoteActivityStep]:
        """Promote steps in recorded order."""
        return [s for s in self.steps if isinstance(s, PromoteActivityStep)]

    def workflow_name(self, default: str = DEFAULT_WORKFLOW_NAME) -> str:
        """Declared workflow name, or ``default`` when none is declared."""
        return self.workflow or default

    @classmethod
    def from_resource(cls, obj: Mapping[str, Any]) -> PipelineActivity:
        """Build a PipelineActivity from a raw ``jenkins.io/v1`` object."""
        spec = dict(obj.get("spec") or {})
        return cls.model_validate({**spec, **_metadata_fields(obj)})


# =============================================================================
# Environment
# =============================================================================


class Environment(_ResourceModel):
    """A promotion target.

    Attributes:
        name: Environment resource name, e.g. ``staging``.
        namespace: Namespace the environment deploys into.
        promotion_strategy: How this environment is expected to be promoted to.
        kind: Environment kind.
        order: Sort order among environments.
        source_url: Git repository backing the environment.
    """

    name: str = Field(..., min_length=1)
    namespace: str = ""
    promotion_strategy: PromotionStrategy = Field(
        default=PromotionStrategy.NONE, alias="promotionStrategy"
    )
    kind: EnvironmentKind = EnvironmentKind.NONE
    order: int = 0
    source_url: str = ""
    label: str = ""

    @field_validator("promotion_strategy", mode="before")
    @classmethod
    def coerce_strategy(cls, v: Any) -> Any:
        return _coerce_enum(PromotionStrategy, v)

    @field_validator("kind", mode="before")
    @classmethod
    def coerce_kind(cls, v: Any) -> Any:
        return _coerce_enum(EnvironmentKind, v)

    @field_validator("order", mode="before")
    @classmethod
    def none_to_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @property
    def is_automatic(self) -> bool:
        return self.promotion_strategy is PromotionStrategy.AUTOMATIC

    @classmethod
    def from_resource(cls, obj: Mapping[str, Any]) -> Environment:
        """Build an Environment from a raw ``jenkins.io/v1`` Environment object.

        Note that ``namespace`` is the environment's *target* namespace from
        its spec, not the namespace the resource lives in.
        """
        metadata = obj.get("metadata") or {}
        spec = obj.get("spec") or {}
        source = spec.get("source") or {}
        return cls.model_validate(
            {
                "name": metadata.get("name") or "",
                "namespace": spec.get("namespace") or "",
                "promotionStrategy": spec.get("promotionStrategy"),
                "kind": spec.get("kind"),
                "order": spec.get("order"),
                "source_url": source.get("url") or "",
                "label": spec.get("label") or "",
            }
        )


def sort_environments(environments: list[Environment]) -> list[Environment]:
    """Sort environments by ``(order, name)``."""
    return sorted(environments, key=lambda e: (e.order, e.name))


# =============================================================================
# Decisions
# =============================================================================


class PromotionIntent(BaseModel):
    """A decision that an environment should now be promoted for an activity.

    Examples:
        >>> intent = PromotionIntent(
        ...     activity="acme-api-master-3", application="api",
        ...     environment="staging", pipeline="acme/api/master",
        ...     build="3", version="1.0.3",
        ... )
        >>> intent.environment
        'staging'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    activity: str = Field(..., description="PipelineActivity name")
    application: str = Field(..., min_length=1, description="Application/repository name")
    environment: str = Field(..., min_length=1, description="Target Environment name")
    pipeline: str = Field(..., min_length=1, description="Pipeline identifier")
    build: str = Field(..., min_length=1, description="Build number")
    version: str = Field(..., min_length=1, description="Version to promote")


__all__ = [
    "DEFAULT_WORKFLOW_NAME",
    "ActivityStatus",
    "ActivityStep",
    "Environment",
    "EnvironmentKind",
    "PipelineActivity",
    "Preconditions",
    "PromoteActivityStep",
    "PromoteSpec",
    "PromotionIntent",
    "PromotionStrategy",
    "PullRequestRef",
    "StageActivityStep",
    "Workflow",
    "WorkflowStep",
    "is_resource_version_newer",
    "pull_request_number",
    "sort_environments",
]
