"""In-memory registry of devices seen during the current scan."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from hotspotctl.core.model import DiscoveredDevice


class DeviceRegistry:
    """Insertion-ordered, identity-unique list of discovered devices.

    Entries only disappear when a new scan begins. Repeated advertisements for
    a known identity are dropped; the first-seen entry (and its RSSI) is kept.
    """

    def __init__(self) -> None:
        self._devices: dict[str, DiscoveredDevice] = {}

    def begin_scan(self) -> None:
        self._devices.clear()

    def observe(
        self,
        identity: str,
        name: str | None,
        rssi: int,
        handle: Any = None,
        services: Iterable[str] = (),
    ) -> DiscoveredDevice | None:
        """Record an advertisement. Returns the new entry, or None when it was dropped."""
        if not name or identity in self._devices:
            return None
        device = DiscoveredDevice(
            identity=identity,
            name=name,
            rssi=rssi,
            handle=handle,
            advertised_services=tuple(uuid.lower() for uuid in services),
        )
        self._devices[identity] = device
        return device

    def get(self, identity: str) -> DiscoveredDevice | None:
        return self._devices.get(identity)

    def all(self) -> tuple[DiscoveredDevice, ...]:
        return tuple(self._devices.values())

    def __len__(self) -> int:
        return len(self._devices)
