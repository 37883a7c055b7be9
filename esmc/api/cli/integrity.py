"""esmc verify-package / hash."""

from __future__ import annotations

from pathlib import Path

import typer

from esmc.services.integrity import verify_package
from esmc.settings import get_settings
from esmc.utils.hashing import file_sha256, hash_hex


def register_integrity_commands(app: typer.Typer):
    """Register integrity commands directly on the main app."""

    @app.command("verify-package")
    def verify_package_command(
        dist_dir: Path = typer.Argument(Path("."), help="Package root containing .claude/ESMC-Chaos"),
    ):
        """Verify the package signature and every file checksum in the manifest."""
        report = verify_package(dist_dir, get_settings().package_signature_key)
        if report.build_version:
            typer.echo(f"  build:     {report.build_version}")
        typer.echo(f"  signature: {'valid' if report.signature_valid else 'INVALID'}")
        typer.echo(f"  verified:  {report.verified}")
        for rel in report.modified:
            typer.echo(f"  modified:  {rel}")
        for rel in report.missing:
            typer.echo(f"  missing:   {rel}")
        if report.error:
            typer.echo(f"  error:     {report.error}")
        typer.echo(f"  result:    {'PASS' if report.ok else 'FAIL'}")
        if not report.ok:
            raise typer.Exit(1)

    @app.command("hash")
    def hash_command(
        target: str = typer.Argument(help="File path, or literal text with --text"),
        text: bool = typer.Option(False, "--text", "-t", help="Hash the argument itself"),
    ):
        """Print the SHA-256 hex digest of a file or string."""
        if text:
            typer.echo(hash_hex(target))
            return
        path = Path(target)
        if not path.is_file():
            typer.echo(f"Not a file: {target}", err=True)
            raise typer.Exit(1)
        typer.echo(file_sha256(path))
