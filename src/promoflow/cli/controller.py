"""Controller CLI commands.

This module provides the long-running controllers:
    promoflow controller workflow: Promote builds along their Workflows

Example:
    $ promoflow controller workflow
    $ promoflow controller workflow --namespace jx --no-watch
"""

from __future__ import annotations

import click

from promoflow.cli.utils import (
    ExitCode,
    error_exit,
    exit_with_error,
    info,
    load_config,
    setup_logging,
    success,
)
from promoflow.controller import WorkflowController
from promoflow.engine import CommandPromotionEngine
from promoflow.errors import PromoflowError
from promoflow.store import KubernetesResourceStore


@click.group(
    name="controller",
    help="Run promotion controllers.",
)
def controller() -> None:
    """Controller command group."""
    pass


@controller.command(
    name="workflow",
    help="Run the workflow controller.",
    epilog="""
Watches PipelineActivity and Workflow resources and triggers promotions
into the next environment once its preconditions have succeeded.

Examples:
    $ promoflow controller workflow
    $ promoflow controller workflow -n jx --no-watch
""",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option(
    "--namespace",
    "-n",
    type=str,
    default=None,
    help="The namespace to watch (default: current namespace).",
    metavar="TEXT",
)
@click.option(
    "--no-watch",
    is_flag=True,
    default=False,
    help="Process all activities once and exit instead of watching.",
)
def workflow_command(namespace: str | None, no_watch: bool) -> None:
    """Run the workflow controller.

    Args:
        namespace: Namespace to watch.
        no_watch: Run once instead of watching.
    """
    config = load_config(namespace=namespace)
    setup_logging(config)

    store = KubernetesResourceStore(config)
    try:
        store.startup()
        engine = CommandPromotionEngine(
            config.promote_command,
            timeout_seconds=config.promote_timeout_seconds,
        )
        workflow_controller = WorkflowController(store, engine, config)

        if no_watch:
            outcomes = workflow_controller.run_once()
            failed = sum(1 for o in outcomes if not o.succeeded)
            success(
                f"Triggered {len(outcomes)} promotion(s) in namespace "
                f"{workflow_controller.namespace} ({failed} failed)"
            )
            return

        info(f"Watching for pipeline activities in namespace {workflow_controller.namespace}")
        workflow_controller.watch_forever()
    except PromoflowError as e:
        exit_with_error(e)
    except ValueError as e:
        error_exit(f"Invalid configuration: {e}", exit_code=ExitCode.USAGE_ERROR)
    finally:
        store.shutdown()


__all__: list[str] = ["controller", "workflow_command"]
