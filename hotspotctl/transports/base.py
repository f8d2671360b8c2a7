"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Protocol

from hotspotctl.core.events import SessionEvent
from hotspotctl.core.model import PowerState

EventSink = Callable[[SessionEvent], None]


class TransportAdapter(Protocol):
    """BLE central role as seen by the session.

    Every operation returns immediately. Outcomes are delivered later as
    events to the sink passed to `bind`, possibly from another thread.
    """

    def bind(self, sink: EventSink) -> None:
        """Set the callback that receives transport events."""

    def power_state(self) -> PowerState:
        """Current radio state."""

    def start_scan(self, service_uuids: Sequence[str] | None = None) -> None:
        """Start (or restart) scanning, optionally filtered by advertised services."""

    def stop_scan(self) -> None:
        """Stop any running scan."""

    def connect(self, handle: Any, *, timeout_s: float = 10.0) -> None:
        """Connect to a device handle from a `DeviceDiscovered` event."""

    def discover_services(self, peer: Any, service_uuid: str) -> None:
        """Look up a service on a connected peer."""

    def discover_characteristics(self, peer: Any, service: Any, characteristic_uuid: str) -> None:
        """Look up a characteristic within a discovered service."""

    def write(self, peer: Any, characteristic: Any, data: bytes, *, token: int) -> None:
        """Write with response; the ack event echoes `token`."""

    def set_notify(self, peer: Any, characteristic: Any, enabled: bool) -> None:
        """Enable or disable notifications on a characteristic."""

    def disconnect(self, peer: Any) -> None:
        """Drop the link to a connected or connecting peer."""

    async def drain(self) -> None:
        """Wait for operations that were already scheduled to finish."""
