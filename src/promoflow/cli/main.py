"""Main entry point for the promoflow CLI.

Command Groups:
    promoflow controller workflow: Run the promotion workflow controller
    promoflow promote: Promote an application version by hand

Example:
    $ promoflow --help
    $ promoflow controller workflow --namespace jx
    $ promoflow promote api --version 1.0.3 --env staging
"""

from __future__ import annotations

import sys
from importlib.metadata import version as get_version

import click

from promoflow.cli.controller import controller
from promoflow.cli.promote import promote_command


def _get_version() -> str:
    """Get the promoflow package version, or 'unknown' if not installed."""
    try:
        return get_version("promoflow")
    except Exception:
        return "unknown"


@click.group(
    name="promoflow",
    help="promoflow - promote builds through environments along workflows.",
    epilog="Use 'promoflow <command> --help' for command-specific help.",
    context_settings={
        "help_option_names": ["-h", "--help"],
    },
)
@click.version_option(
    version=_get_version(),
    prog_name="promoflow",
    message="%(prog)s %(version)s",
)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Root command group for the promoflow CLI."""
    ctx.ensure_object(dict)


cli.add_command(controller)
cli.add_command(promote_command)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the promoflow CLI.

    Args:
        argv: Command-line arguments (uses sys.argv if None).
    """
    try:
        cli(args=argv, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
