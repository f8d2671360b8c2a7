"""Service layer used by CLI and future UI frontends."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace

from hotspotctl.core.device_match import select_device
from hotspotctl.core.errors import (
    CommandError,
    DeviceSelectionError,
    ProfileLoadError,
    TransportConnectError,
    TransportTimeoutError,
    TransportUnavailableError,
)
from hotspotctl.core.model import (
    Command,
    CommandResult,
    ConnectionState,
    DiscoveredDevice,
    Profile,
    SessionStatus,
    TriggerResult,
)
from hotspotctl.core.profile_loader import DEFAULT_PROFILE_ID, load_profiles
from hotspotctl.core.session import Session
from hotspotctl.network.join import NetworkJoinService, default_join_service
from hotspotctl.transports.base import TransportAdapter
from hotspotctl.transports.ble_gatt import BleakTransport

LOGGER = logging.getLogger(__name__)

# Slack on top of the session's own timers before a wait is considered hung.
_WAIT_SLACK_S = 5.0


class HotspotService:
    def __init__(
        self,
        *,
        transport: TransportAdapter | None = None,
        join_service: NetworkJoinService | None = None,
    ) -> None:
        loaded = load_profiles()
        self.profiles = loaded.profiles
        self.load_warnings = loaded.warnings
        self.transport = transport or BleakTransport()
        self.join_service = join_service or default_join_service()

    def list_profiles(self) -> list[Profile]:
        return sorted(self.profiles.values(), key=lambda p: p.id)

    def get_profile(self, profile_id: str | None = None) -> Profile:
        wanted = profile_id or DEFAULT_PROFILE_ID
        profile = self.profiles.get(wanted)
        if profile is None:
            available = ", ".join(sorted(self.profiles))
            raise ProfileLoadError(f"Unknown profile '{wanted}'. Available: {available}")
        return profile

    def create_session(self, profile: Profile, *, auto_join: bool | None = None) -> Session:
        return Session(self.transport, profile, join_service=self.join_service, auto_join=auto_join)

    async def scan(
        self,
        *,
        profile_id: str | None = None,
        timeout_s: float | None = None,
    ) -> list[DiscoveredDevice]:
        profile = _with_scan_timeout(self.get_profile(profile_id), timeout_s)
        session = self.create_session(profile)
        session.attach()
        try:
            _start_scan(session)
            status = await _wait(
                session,
                lambda s: not s.scanning,
                profile.timing.scan_timeout_s + _WAIT_SLACK_S,
                "Timed out scanning for devices",
            )
            return list(status.devices)
        finally:
            session.stop_scan()
            session.pump()
            session.close()
            await self.transport.drain()

    async def trigger(
        self,
        command: Command,
        *,
        profile_id: str | None = None,
        device_hint: str | None = None,
        join: bool = True,
        wait_s: float = 20.0,
        scan_timeout_s: float | None = None,
        on_status: Callable[[SessionStatus], None] | None = None,
    ) -> TriggerResult:
        """Find the device, connect, send one command and collect the outcome.

        For `Command.ENABLE`, waits up to `wait_s` for the credentials
        notification and, when `join` is set, for the network join to finish.
        """
        profile = _with_scan_timeout(self.get_profile(profile_id), scan_timeout_s)
        timing = profile.timing
        session = self.create_session(profile, auto_join=join)
        unsubscribe = session.subscribe(on_status) if on_status else None
        session.attach()
        try:
            _start_scan(session)
            device = await _await_target(session, profile, device_hint)

            session.connect(device.identity)
            session.pump()
            status = await _wait(
                session,
                lambda s: s.state in (ConnectionState.READY, ConnectionState.DEGRADED, ConnectionState.DISCONNECTED),
                timing.connect_timeout_s + _WAIT_SLACK_S,
                f"Timed out connecting to {device.name}",
            )
            if status.state is not ConnectionState.READY:
                raise TransportConnectError(status.message or f"Could not connect to {device.name}")

            session.dispatch(command)
            session.pump()
            # A rejected dispatch neither goes in flight nor records a result.
            if not session.status.in_flight and session.status.command_result is None:
                raise CommandError(session.status.message or "Command was not sent")
            status = await _wait(
                session,
                lambda s: not s.in_flight,
                timing.command_timeout_s + _WAIT_SLACK_S,
                "Timed out waiting for command acknowledgement",
            )
            result = status.command_result or CommandResult.FAILED
            message = status.message

            if result is CommandResult.SUCCESS and command is Command.ENABLE and wait_s > 0:
                try:
                    status = await session.wait_until(
                        lambda s: s.credentials is not None and not s.joining,
                        timeout=wait_s,
                    )
                except asyncio.TimeoutError:
                    LOGGER.info("No credentials received within %.1fs", wait_s)
                    status = session.status

            return TriggerResult(
                device=device,
                command=command,
                payload_hex=profile.commands[command].hex(),
                result=result,
                message=message,
                credentials=status.credentials,
                join_outcome=status.join_outcome,
                join_status=status.join_status,
            )
        finally:
            session.stop_scan()
            session.disconnect()
            session.pump()
            if unsubscribe is not None:
                unsubscribe()
            session.close()
            await self.transport.drain()


def _with_scan_timeout(profile: Profile, timeout_s: float | None) -> Profile:
    if timeout_s is None:
        return profile
    timing = replace(
        profile.timing,
        scan_timeout_s=timeout_s,
        broadcast_grace_s=min(profile.timing.broadcast_grace_s, timeout_s / 2),
    )
    return replace(profile, timing=timing)


def _start_scan(session: Session) -> None:
    session.start_scan()
    session.pump()
    if not session.status.scanning:
        raise TransportUnavailableError(session.status.message or "Bluetooth is not available")


async def _wait(
    session: Session,
    predicate: Callable[[SessionStatus], bool],
    timeout_s: float,
    message: str,
) -> SessionStatus:
    try:
        return await session.wait_until(predicate, timeout=timeout_s)
    except asyncio.TimeoutError as exc:
        raise TransportTimeoutError(message) from exc


async def _await_target(session: Session, profile: Profile, device_hint: str | None) -> DiscoveredDevice:
    def _found(status: SessionStatus) -> bool:
        if not status.scanning:
            return True
        try:
            return select_device(status.devices, profile, device_hint) is not None
        except DeviceSelectionError:
            return False

    status = await _wait(
        session,
        _found,
        profile.timing.scan_timeout_s + _WAIT_SLACK_S,
        "Timed out scanning for devices",
    )
    device = select_device(status.devices, profile, device_hint)
    if device is None:
        if device_hint:
            raise DeviceSelectionError(f"No device found matching '{device_hint}'")
        raise DeviceSelectionError(
            "No device advertising the hotspot service was found. Use --device to choose one."
        )
    return device
