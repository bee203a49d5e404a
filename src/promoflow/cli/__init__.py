"""promoflow command line interface.

Example:
    $ promoflow controller workflow --namespace jx
"""

from __future__ import annotations

from promoflow.cli.main import cli, main

__all__: list[str] = ["cli", "main"]
