"""esmc license — inspect, validate and sync the license file."""

from __future__ import annotations

import asyncio

import typer
import yaml

from esmc.services.credentials import CredentialStore
from esmc.services.license import LicenseManager, verify_blessing_token
from esmc.settings import get_settings

license_app = typer.Typer(no_args_is_help=True)


@license_app.command("show")
def show_command():
    """Print the license file as YAML."""
    license_data = LicenseManager(get_settings()).get_license_info()
    if license_data is None:
        typer.echo("No license file found - run `esmc login`.")
        raise typer.Exit(1)
    typer.echo(yaml.safe_dump(license_data.to_wire(), sort_keys=False, allow_unicode=True))


async def _validate(check_remote: bool) -> bool:
    licenses = LicenseManager(get_settings())
    result = licenses.validate_license()
    typer.echo(f"  path:      {licenses.license_path}")
    typer.echo(f"  valid:     {result.valid}")
    typer.echo(f"  tier:      {result.tier.value}")
    if not result.valid:
        typer.echo(f"  reason:    {result.reason}")
        return False
    typer.echo(f"  status:    {result.subscription_status}")

    license_data = licenses.get_license_info()
    ok = True
    if license_data is not None and license_data.blessing is not None:
        blessed = verify_blessing_token(license_data.blessing)
        typer.echo(f"  blessing:  {'valid' if blessed else 'INVALID'}")
        ok = ok and blessed
    if check_remote and license_data is not None:
        checked = await licenses.validate_vercel_checksum(
            license_data.email, license_data.tier, license_data.vercel_checksum
        )
        typer.echo(f"  checksum:  {'valid' if checked else 'INVALID'}")
        ok = ok and checked
    return ok


@license_app.command("validate")
def validate_command(
    remote: bool = typer.Option(False, "--remote", "-r", help="Also validate the rotation checksum online"),
):
    """Validate the license file (and optionally its checksum with the server)."""
    if not asyncio.run(_validate(remote)):
        raise typer.Exit(1)


@license_app.command("sync")
def sync_command():
    """Convert stored login credentials into a license file."""
    settings = get_settings()
    credentials = CredentialStore(settings=settings).load()
    if credentials is None:
        typer.echo("No credentials found. Run `esmc login` first.", err=True)
        raise typer.Exit(1)

    try:
        license_data = LicenseManager(settings).sync_from_credentials(credentials)
    except OSError as e:
        typer.echo(f"License sync failed: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"  user:     {license_data.email}")
    typer.echo(f"  tier:     {license_data.tier.value}")
    if license_data.subscription_end_date:
        typer.echo(f"  expires:  {license_data.subscription_end_date:%b %d, %Y}")
