"""CLI entry point — Typer app.

Subcommands build their services from ``get_settings()`` on demand, so
``--help`` never touches the network, the credential store or the license
file.
"""

from __future__ import annotations

import logging

import typer

from esmc.settings import get_settings

app = typer.Typer(name="esmc", no_args_is_help=True)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """ESMC SDK — login, license and integrity tooling."""
    level = logging.DEBUG if verbose else getattr(logging, get_settings().log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


# Register subcommands
from esmc.api.cli.auth import register_auth_commands  # noqa: E402
from esmc.api.cli.integrity import register_integrity_commands  # noqa: E402
from esmc.api.cli.license import license_app  # noqa: E402

register_auth_commands(app)
register_integrity_commands(app)

app.add_typer(license_app, name="license")
