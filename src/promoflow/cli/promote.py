"""Promote command implementation.

This module implements ``promoflow promote``, the human-invoked promotion of
one application version into an environment or namespace:
- Resolves the target namespace from ``--env`` or ``--namespace``
- Asks for confirmation before promoting into an automatic environment
- ``--all-auto`` promotes into every automatic environment in order

Example:
    $ promoflow promote api --version 1.0.3 --env production
    $ promoflow promote api --version 1.0.3 --all-auto --batch-mode
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
    warn,
)
from promoflow.engine import CommandPromotionEngine, PromotionRequest
from promoflow.errors import PromoflowError
from promoflow.store import KubernetesResourceStore
from promoflow.targets import PromotionTarget, TargetNamespaceResolver, confirm_promotion


def _confirm(message: str) -> bool:
    return click.confirm(message, default=False)


@click.command(
    name="promote",
    help="Promote a version of an application to an environment.",
    epilog="""
Examples:
    $ promoflow promote api --version 1.0.3 --env production
    $ promoflow promote api --version 1.0.3 --namespace jx-production
    $ promoflow promote api --version 1.0.3 --all-auto --batch-mode
""",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.argument("application")
@click.option("--version", "-v", "version", required=True, help="Version to promote.")
@click.option("--env", "-e", "environment", default=None, help="Environment to promote to.")
@click.option("--namespace", "-n", default=None, help="Namespace to promote to.")
@click.option(
    "--all-auto",
    is_flag=True,
    default=False,
    help="Promote to every environment with the Auto promotion strategy.",
)
@click.option("--pipeline", default="", help="Pipeline that built the version.")
@click.option("--build", default="", help="Build number of the pipeline.")
@click.option(
    "--batch-mode",
    "-b",
    is_flag=True,
    default=False,
    help="Never prompt for confirmation.",
)
def promote_command(
    application: str,
    version: str,
    environment: str | None,
    namespace: str | None,
    all_auto: bool,
    pipeline: str,
    build: str,
    batch_mode: bool,
) -> None:
    """Promote APPLICATION at VERSION.

    Args:
        application: Application name.
        version: Version to promote.
        environment: Target Environment name.
        namespace: Target namespace.
        all_auto: Promote to every automatic Environment.
        pipeline: Pipeline identifier.
        build: Build number.
        batch_mode: Never prompt.
    """
    if all_auto and (environment or namespace):
        error_exit(
            "--all-auto cannot be combined with --env or --namespace",
            exit_code=ExitCode.USAGE_ERROR,
        )

    config = load_config()
    setup_logging(config)

    store = KubernetesResourceStore(config)
    try:
        store.startup()
        resolver = TargetNamespaceResolver(
            store, team_namespace=config.namespace or store.current_namespace()
        )

        targets: list[PromotionTarget]
        if all_auto:
            targets = resolver.automatic_targets()
            if not targets:
                warn("No Environments use the Auto promotion strategy")
                return
        else:
            target = resolver.resolve(environment=environment, namespace=namespace)
            if not confirm_promotion(target, _confirm, batch_mode):
                info("Promotion cancelled")
                return
            targets = [target]

        engine = CommandPromotionEngine(
            config.promote_command,
            timeout_seconds=config.promote_timeout_seconds,
        )
        for target in targets:
            info(f"Promoting {application} version {version} to namespace {target.namespace}")
            engine.promote(
                PromotionRequest(
                    application=application,
                    environment=target.environment_name,
                    version=version,
                    namespace=target.namespace,
                    pipeline=pipeline,
                    build=build,
                    batch_mode=batch_mode,
                    ignore_local_files=False,
                )
            )
            destination = target.environment_name or target.namespace
            success(f"Promoted {application} {version} to {destination}")
    except PromoflowError as e:
        exit_with_error(e)
    except ValueError as e:
        error_exit(str(e), exit_code=ExitCode.USAGE_ERROR)
    finally:
        store.shutdown()


__all__: list[str] = ["promote_command"]
