"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import typer

from hotspotctl.core.errors import HotspotctlError
from hotspotctl.core.model import Command, CommandResult, JoinResult, SessionStatus
from hotspotctl.core.service import HotspotService

app = typer.Typer(help="Toggle a phone's Wi-Fi hotspot over Bluetooth LE and join it")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_service() -> HotspotService:
    service = HotspotService()
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _progress_printer() -> Callable[[SessionStatus], None]:
    last: str | None = None

    def _print(status: SessionStatus) -> None:
        nonlocal last
        if status.message and status.message != last:
            last = status.message
            typer.echo(f"  {status.message}", err=True)

    return _print


@app.command("profiles")
def list_profiles() -> None:
    """List available device profiles."""
    try:
        service = _build_service()
        profiles = service.list_profiles()
        if not profiles:
            typer.echo("No profiles loaded")
            raise typer.Exit(code=1)

        for profile in profiles:
            typer.echo(f"{profile.id}: {profile.name}")
            typer.echo(f"  service: {profile.service_uuid}")
            typer.echo(f"  characteristic: {profile.characteristic_uuid}")
            for command, payload in profile.commands.items():
                typer.echo(f"  {command.value}: {payload.hex()}")
    except HotspotctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("scan")
def scan(
    timeout: float | None = typer.Option(None, "--timeout", help="Scan duration in seconds"),
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
) -> None:
    """Scan for nearby BLE devices."""
    try:
        service = _build_service()
        devices = asyncio.run(service.scan(profile_id=profile, timeout_s=timeout))
        if not devices:
            typer.echo("No devices found")
            return

        service_uuid = service.get_profile(profile).service_uuid
        for device in devices:
            marker = " *" if service_uuid in device.advertised_services else ""
            typer.echo(f"{device.identity} {device.name} rssi={device.rssi}{marker}")
    except HotspotctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def _trigger(
    command: Command,
    device: str | None,
    profile: str | None,
    join: bool,
    wait: float,
    timeout: float | None,
) -> None:
    try:
        service = _build_service()
        result = asyncio.run(
            service.trigger(
                command,
                profile_id=profile,
                device_hint=device,
                join=join,
                wait_s=wait,
                scan_timeout_s=timeout,
                on_status=_progress_printer(),
            )
        )
    except HotspotctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    typer.echo(
        f"Sent {result.command.value} to {result.device.identity} ({result.device.name}) "
        f"payload={result.payload_hex}: {result.message}"
    )
    if result.result is not CommandResult.SUCCESS:
        raise typer.Exit(code=1)
    if result.credentials is not None:
        typer.echo(f"Hotspot: {result.credentials.ssid}")
    if result.join_status:
        typer.echo(result.join_status)
    if result.join_outcome is not None and result.join_outcome.result is JoinResult.FAILED:
        raise typer.Exit(code=1)


@app.command("enable")
def enable(
    device: str | None = typer.Option(None, "--device", help="Address or partial name"),
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
    join: bool = typer.Option(True, "--join/--no-join", help="Join the hotspot once credentials arrive"),
    wait: float = typer.Option(20.0, "--wait", help="Seconds to wait for hotspot credentials"),
    timeout: float | None = typer.Option(None, "--timeout", help="Scan duration in seconds"),
) -> None:
    """Enable the hotspot on the companion device and join it."""
    _trigger(Command.ENABLE, device, profile, join, wait, timeout)


@app.command("disable")
def disable(
    device: str | None = typer.Option(None, "--device", help="Address or partial name"),
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
    timeout: float | None = typer.Option(None, "--timeout", help="Scan duration in seconds"),
) -> None:
    """Disable the hotspot on the companion device."""
    _trigger(Command.DISABLE, device, profile, False, 0.0, timeout)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
