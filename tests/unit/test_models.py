"""Unit tests for promoflow.models.

Tests cover parsing of raw custom resources, the activity step union,
derived activity fields, and the PR number and resourceVersion helpers.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from promoflow.models import (
    ActivityStatus,
    Environment,
    EnvironmentKind,
    PipelineActivity,
    PromoteActivityStep,
    PromotionIntent,
    PromotionStrategy,
    PullRequestRef,
    StageActivityStep,
    Workflow,
    is_resource_version_newer,
    pull_request_number,
)
from testing.fixtures.resources import (
    activity_resource,
    environment_resource,
    promote_step,
    stage_step,
    workflow_resource,
)


class TestActivityStatus:
    """Tests for ActivityStatus."""

    @pytest.mark.parametrize(
        "status",
        [
            ActivityStatus.SUCCEEDED,
            ActivityStatus.FAILED,
            ActivityStatus.ERROR,
            ActivityStatus.ABORTED,
        ],
    )
    def test_terminal_statuses(self, status: ActivityStatus) -> None:
        """Test Succeeded, Failed, Error and Aborted are terminal."""
        assert status.is_terminated()

    @pytest.mark.parametrize(
        "status",
        [
            ActivityStatus.NONE,
            ActivityStatus.PENDING,
            ActivityStatus.RUNNING,
            ActivityStatus.WAITING_FOR_APPROVAL,
        ],
    )
    def test_non_terminal_statuses(self, status: ActivityStatus) -> None:
        """Test in-flight statuses are not terminal."""
        assert not status.is_terminated()

    def test_unknown_status_parses_as_none(self) -> None:
        """Test an unrecognised status string does not reject the activity."""
        activity = PipelineActivity.from_resource(
            activity_resource(workflow_status="NotExecuted")
        )
        assert activity.workflow_status is ActivityStatus.NONE


class TestPipelineActivityParsing:
    """Tests for PipelineActivity.from_resource."""

    def test_metadata_and_spec_fields(self) -> None:
        """Test metadata and camelCase spec fields are mapped."""
        activity = PipelineActivity.from_resource(
            activity_resource(
                "acme-api-master-7",
                build="7",
                version="1.0.7",
                workflow="hotfix",
                workflow_status="Running",
                resource_version="812",
            )
        )

        assert activity.name == "acme-api-master-7"
        assert activity.namespace == "jx"
        assert activity.resource_version == "812"
        assert activity.build == "7"
        assert activity.version == "1.0.7"
        assert activity.workflow == "hotfix"
        assert activity.workflow_status is ActivityStatus.RUNNING

    def test_numeric_build_is_coerced_to_string(self) -> None:
        """Test a numeric build number is accepted."""
        obj = activity_resource()
        obj["spec"]["build"] = 12
        assert PipelineActivity.from_resource(obj).build == "12"

    def test_unknown_fields_are_ignored(self) -> None:
        """Test fields the controller does not model are ignored."""
        obj = activity_resource()
        obj["spec"]["author"] = "jstrachan"
        obj["spec"]["releaseNotesURL"] = "https://example.com/notes"
        assert PipelineActivity.from_resource(obj).name == "acme-api-master-1"

    def test_steps_are_flattened_into_variants(self) -> None:
        """Test nested Stage and Promote payloads become union variants."""
        activity = PipelineActivity.from_resource(
            activity_resource(
                steps=[
                    stage_step("Build"),
                    promote_step(
                        "staging",
                        status="Running",
                        pull_request_url="https://github.com/acme/env-staging/pull/12",
                    ),
                ]
            )
        )

        stage, promote = activity.steps
        assert isinstance(stage, StageActivityStep)
        assert stage.name == "Build"
        assert stage.status is ActivityStatus.SUCCEEDED
        assert isinstance(promote, PromoteActivityStep)
        assert promote.environment == "staging"
        assert promote.status is ActivityStatus.RUNNING
        assert promote.pull_request_url == "https://github.com/acme/env-staging/pull/12"
        assert promote.triggered

    def test_missing_kind_is_inferred_from_payload(self) -> None:
        """Test a step without kind is classified by its nested key."""
        activity = PipelineActivity.from_resource(
            activity_resource(steps=[{"promote": {"environment": "staging"}}])
        )
        assert isinstance(activity.steps[0], PromoteActivityStep)

    def test_other_step_kinds_are_dropped(self) -> None:
        """Test Preview steps never reach the decision engine."""
        activity = PipelineActivity.from_resource(
            activity_resource(
                steps=[
                    {"kind": "Preview", "preview": {"environment": "preview-pr-3"}},
                    promote_step("staging"),
                ]
            )
        )
        assert len(activity.steps) == 1
        assert activity.promote_steps[0].environment == "staging"

    def test_null_steps(self) -> None:
        """Test a null steps list parses as empty."""
        obj = activity_resource()
        obj["spec"]["steps"] = None
        assert PipelineActivity.from_resource(obj).steps == []

    def test_promote_step_without_pull_request_is_not_triggered(self) -> None:
        activity = PipelineActivity.from_resource(
            activity_resource(steps=[promote_step("staging", status="Succeeded")])
        )
        step = activity.promote_steps[0]
        assert step.pull_request is None
        assert step.pull_request_url == ""
        assert not step.triggered


class TestPipelineActivityDerivedFields:
    """Tests for repository_name, branch_name and workflow_name."""

    def test_repository_from_pipeline(self) -> None:
        activity = PipelineActivity(pipeline="acme/api/master")
        assert activity.repository_name == "api"
        assert activity.branch_name == "master"

    def test_explicit_git_repository_wins(self) -> None:
        activity = PipelineActivity(pipeline="acme/api/master", git_repository="api-service")
        assert activity.repository_name == "api-service"

    def test_single_segment_pipeline_has_no_repository(self) -> None:
        activity = PipelineActivity(pipeline="master")
        assert activity.repository_name == ""
        assert activity.branch_name == "master"

    def test_empty_pipeline(self) -> None:
        activity = PipelineActivity()
        assert activity.repository_name == ""
        assert activity.branch_name == ""

    def test_workflow_name_defaults(self) -> None:
        """Test an empty workflow name means the default workflow."""
        assert PipelineActivity().workflow_name() == "default"
        assert PipelineActivity().workflow_name("standard") == "standard"
        assert PipelineActivity(workflow="hotfix").workflow_name() == "hotfix"

    def test_activity_is_frozen(self) -> None:
        activity = PipelineActivity(pipeline="acme/api/master")
        with pytest.raises(ValidationError):
            activity.pipeline = "acme/api/feature"  # type: ignore[misc]


class TestWorkflowParsing:
    """Tests for Workflow.from_resource."""

    def test_steps_and_preconditions(self) -> None:
        workflow = Workflow.from_resource(
            workflow_resource(
                "default",
                [("staging", []), ("production", ["staging"])],
                resource_version="5",
            )
        )

        assert workflow.name == "default"
        assert workflow.resource_version == "5"
        assert workflow.promote_environments == ["staging", "production"]
        assert workflow.steps[1].preconditions.environments == ["staging"]

    def test_null_preconditions(self) -> None:
        """Test null preconditions parse as none."""
        obj = workflow_resource("default", [("staging", [])])
        obj["spec"]["steps"][0]["preconditions"] = None
        workflow = Workflow.from_resource(obj)
        assert workflow.steps[0].preconditions.environments == []

    def test_step_without_promote(self) -> None:
        workflow = Workflow.from_resource(
            {"metadata": {"name": "noop"}, "spec": {"steps": [{"kind": "Stage"}]}}
        )
        assert workflow.steps[0].promote_environment == ""
        assert workflow.promote_environments == []

    def test_name_is_required(self) -> None:
        with pytest.raises(ValidationError):
            Workflow.from_resource({"metadata": {}, "spec": {}})


class TestEnvironmentParsing:
    """Tests for Environment.from_resource."""

    def test_spec_fields(self) -> None:
        env = Environment.from_resource(
            environment_resource("production", strategy="Manual", order=200)
        )

        assert env.name == "production"
        assert env.namespace == "jx-production"
        assert env.promotion_strategy is PromotionStrategy.MANUAL
        assert env.kind is EnvironmentKind.PERMANENT
        assert env.kind.is_permanent
        assert env.order == 200
        assert env.source_url == "https://github.com/acme/environment-production.git"
        assert not env.is_automatic

    def test_missing_strategy_and_kind(self) -> None:
        env = Environment.from_resource({"metadata": {"name": "dev"}, "spec": {}})
        assert env.promotion_strategy is PromotionStrategy.NONE
        assert env.kind is EnvironmentKind.NONE
        assert env.order == 0
        assert env.namespace == ""


class TestPullRequestNumber:
    """Tests for pull_request_number and PullRequestRef.number."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://github.com/acme/env-staging/pull/12", 12),
            ("https://github.com/acme/env-staging/pull/12/", 12),
            ("https://gitlab.com/acme/env/merge_requests/7", 7),
        ],
    )
    def test_parses_trailing_number(self, url: str, expected: int) -> None:
        assert pull_request_number(url) == expected

    def test_rejects_non_numeric_tail(self) -> None:
        with pytest.raises(ValueError, match="Failed to parse PR number"):
            pull_request_number("https://github.com/acme/env-staging/pulls")

    def test_ref_number(self) -> None:
        assert PullRequestRef(url="https://github.com/acme/env/pull/3").number == 3
        assert PullRequestRef(url="https://github.com/acme/env").number is None
        assert PullRequestRef().number is None

    def test_ref_accepts_wire_alias(self) -> None:
        ref = PullRequestRef.model_validate(
            {"pullRequestURL": "https://github.com/acme/env/pull/3", "mergeCommitSHA": "abc"}
        )
        assert ref.url.endswith("/3")
        assert ref.merge_commit_sha == "abc"


class TestResourceVersionComparison:
    """Tests for is_resource_version_newer."""

    def test_numeric_comparison(self) -> None:
        """Test versions compare as numbers, not strings."""
        assert is_resource_version_newer("1000", "999")
        assert not is_resource_version_newer("999", "1000")
        assert not is_resource_version_newer("5", "5")

    def test_non_numeric_falls_back_to_string_comparison(self) -> None:
        assert is_resource_version_newer("b", "a")
        assert not is_resource_version_newer("", "1")


class TestPromotionIntent:
    """Tests for PromotionIntent."""

    def test_requires_environment(self) -> None:
        with pytest.raises(ValidationError):
            PromotionIntent(
                activity="a",
                application="api",
                environment="",
                pipeline="acme/api/master",
                build="1",
                version="1.0.1",
            )

    def test_is_hashable(self) -> None:
        """Test frozen intents can be collected into sets."""
        intent = PromotionIntent(
            activity="a",
            application="api",
            environment="staging",
            pipeline="acme/api/master",
            build="1",
            version="1.0.1",
        )
        assert len({intent, intent.model_copy()}) == 1
