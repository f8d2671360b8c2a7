"""Stable public API for building tooling on top of hotspotctl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals. Long-running frontends (tray apps, daemons) should drive
a `Session` directly and subscribe to its status; `Client` covers one-shot use.
"""

from __future__ import annotations

import asyncio

from hotspotctl.core.errors import (
    CommandError,
    DeviceSelectionError,
    HotspotctlError,
    NetworkJoinError,
    ProfileLoadError,
    ProfileValidationError,
    TransportConnectError,
    TransportError,
    TransportTimeoutError,
    TransportUnavailableError,
)
from hotspotctl.core.model import (
    Command,
    CommandResult,
    ConnectionState,
    Credentials,
    DiscoveredDevice,
    JoinOutcome,
    JoinResult,
    PowerState,
    Profile,
    SessionStatus,
    TriggerResult,
)
from hotspotctl.core.service import HotspotService
from hotspotctl.core.session import Session
from hotspotctl.network.join import NetworkJoinService
from hotspotctl.transports.base import TransportAdapter
from hotspotctl.transports.ble_gatt import BleakTransport

__all__ = [
    "HotspotctlError",
    "CommandError",
    "DeviceSelectionError",
    "NetworkJoinError",
    "ProfileLoadError",
    "ProfileValidationError",
    "TransportError",
    "TransportConnectError",
    "TransportTimeoutError",
    "TransportUnavailableError",
    "Command",
    "CommandResult",
    "ConnectionState",
    "Credentials",
    "DiscoveredDevice",
    "JoinOutcome",
    "JoinResult",
    "PowerState",
    "Profile",
    "SessionStatus",
    "TriggerResult",
    "BleakTransport",
    "Session",
    "Client",
]


class Client:
    """Public client for interacting with hotspotctl core capabilities.

    A `Client` instance wraps profile loading, BLE discovery and one-shot
    hotspot commands behind a blocking API intended for scripts and simple
    tools. Each call runs its own event loop.
    """

    def __init__(
        self,
        *,
        transport: TransportAdapter | None = None,
        join_service: NetworkJoinService | None = None,
    ) -> None:
        self._service = HotspotService(transport=transport, join_service=join_service)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    def list_profiles(self) -> list[Profile]:
        return self._service.list_profiles()

    def scan(
        self,
        *,
        profile_id: str | None = None,
        timeout_s: float | None = None,
    ) -> list[DiscoveredDevice]:
        return asyncio.run(self._service.scan(profile_id=profile_id, timeout_s=timeout_s))

    def enable(
        self,
        *,
        profile_id: str | None = None,
        device_hint: str | None = None,
        join: bool = True,
        wait_s: float = 20.0,
        scan_timeout_s: float | None = None,
    ) -> TriggerResult:
        return asyncio.run(
            self._service.trigger(
                Command.ENABLE,
                profile_id=profile_id,
                device_hint=device_hint,
                join=join,
                wait_s=wait_s,
                scan_timeout_s=scan_timeout_s,
            )
        )

    def disable(
        self,
        *,
        profile_id: str | None = None,
        device_hint: str | None = None,
        scan_timeout_s: float | None = None,
    ) -> TriggerResult:
        return asyncio.run(
            self._service.trigger(
                Command.DISABLE,
                profile_id=profile_id,
                device_hint=device_hint,
                join=False,
                wait_s=0.0,
                scan_timeout_s=scan_timeout_s,
            )
        )
