"""esmc login / logout / status / whoami / hardware."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from esmc.services.credentials import CredentialStore
from esmc.services.hardware import get_device_name, get_hardware_id, get_os_info
from esmc.services.license import LicenseManager
from esmc.services.login import LoginError, LoginFlow
from esmc.services.tiers import TierManager
from esmc.settings import get_settings

_con = Console()


def _login() -> None:
    flow = LoginFlow(get_settings())
    typer.echo("Opening browser for authentication...")
    try:
        license_data = asyncio.run(flow.run())
    except LoginError as e:
        typer.echo(f"Login failed: {e}", err=True)
        if flow.auth_url:
            typer.echo(f"  auth url: {flow.auth_url}", err=True)
        raise typer.Exit(1)

    typer.echo(f"  user:     {license_data.email}")
    typer.echo(f"  tier:     {license_data.tier.value}")
    if license_data.subscription_end_date:
        typer.echo(f"  expires:  {license_data.subscription_end_date:%b %d, %Y}")


async def _status() -> None:
    manager = TierManager(get_settings())
    status = await manager.initialize()
    features = manager.features

    typer.echo(f"  tier:          {status.tier.value}")
    typer.echo(f"  source:        {status.source}")
    typer.echo(f"  authenticated: {'yes' if status.authenticated else 'no'}")
    if status.email:
        typer.echo(f"  email:         {status.email}")
    if status.expires_at:
        typer.echo(f"  expires:       {status.expires_at:%Y-%m-%d}")
    if status.message:
        typer.echo(f"  note:          {status.message}")
    table = Table(title=f"{features.display_name} features ({features.version})", show_lines=False)
    table.add_column("Feature", style="cyan", no_wrap=True)
    table.add_column("Value")
    table.add_row("memory", features.memory)
    table.add_row("projects", str(features.max_projects))
    table.add_row("intelligence", ", ".join(features.intelligence) or "-")
    table.add_row("colonels", ", ".join(features.colonels) or "-")
    table.add_row("modules", ", ".join(features.modules) or "-")
    for flag in ("red_teaming", "time_machine", "memory_bank", "echelon"):
        table.add_row(flag.replace("_", " "), "yes" if getattr(features, flag) else "no")
    _con.print(table)


def register_auth_commands(app: typer.Typer):
    """Register account commands directly on the main app."""

    @app.command()
    def login():
        """Authenticate in the browser and write the license file."""
        _login()

    @app.command()
    def logout():
        """Remove stored credentials and the license file."""
        settings = get_settings()
        CredentialStore(settings=settings).clear()
        removed = LicenseManager(settings).delete_license_file()
        typer.echo("Logged out." if removed else "Logged out (no license file found).")

    @app.command()
    def status():
        """Show the active tier and its features."""
        asyncio.run(_status())

    @app.command()
    def whoami():
        """Show who the license file belongs to."""
        license_data = LicenseManager(get_settings()).get_license_info()
        if license_data is None:
            typer.echo("Not logged in.")
            raise typer.Exit(1)
        typer.echo(f"  user:     {license_data.display_name} <{license_data.email}>")
        typer.echo(f"  tier:     {license_data.tier.value} ({license_data.subscription_status})")
        if license_data.composite_device_id:
            typer.echo(f"  device:   {license_data.composite_device_id}")

    @app.command()
    def hardware():
        """Show this device's fingerprint."""
        typer.echo(f"  hardware id: {get_hardware_id()}")
        typer.echo(f"  device:      {get_device_name()}")
        typer.echo(f"  os:          {get_os_info()}")
