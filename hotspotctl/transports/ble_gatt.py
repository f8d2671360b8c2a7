"""BLE GATT transport implementation on top of bleak."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from hotspotctl.core.events import (
    CharacteristicsDiscovered,
    ConnectFailed,
    ConnectSucceeded,
    DeviceDiscovered,
    NotificationReceived,
    PeerDisconnected,
    ScanFailed,
    ServicesDiscovered,
    SessionEvent,
    WriteCompleted,
)
from hotspotctl.core.model import PowerState
from hotspotctl.transports.base import EventSink

LOGGER = logging.getLogger(__name__)


def _advertised_name(device: BLEDevice, adv: AdvertisementData) -> str | None:
    if adv.local_name:
        return adv.local_name
    # BlueZ reports the address (with dashes) as the alias of an unnamed device.
    name = device.name
    if not name or name.replace("-", ":").upper() == device.address.upper():
        return None
    return name


class BleakTransport:
    """Fire-and-forget adapter: each call schedules a task that reports back as an event.

    Scan and connect operations share a lock so a connect never overlaps an
    active scan; tasks run in the order they were scheduled.
    """

    def __init__(self) -> None:
        self._sink: EventSink | None = None
        self._scanner: BleakScanner | None = None
        self._radio_lock: asyncio.Lock | None = None
        self._connects: dict[str, asyncio.Task[None]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def bind(self, sink: EventSink) -> None:
        self._sink = sink

    def power_state(self) -> PowerState:
        # bleak has no portable power query; failures surface as ScanFailed/ConnectFailed.
        return PowerState.READY

    # ------------------------------------------------------------------ plumbing

    def _emit(self, event: SessionEvent) -> None:
        if self._sink is not None:
            self._sink(event)

    def _lock(self) -> asyncio.Lock:
        if self._radio_lock is None:
            self._radio_lock = asyncio.Lock()
        return self._radio_lock

    def _schedule(self, coro: Awaitable[None]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------ scanning

    def start_scan(self, service_uuids: Sequence[str] | None = None) -> None:
        self._schedule(self._start_scan(list(service_uuids) if service_uuids else None))

    def stop_scan(self) -> None:
        self._schedule(self._stop_scan())

    def _on_advertisement(self, device: BLEDevice, adv: AdvertisementData) -> None:
        self._emit(
            DeviceDiscovered(
                identity=device.address,
                name=_advertised_name(device, adv),
                rssi=adv.rssi,
                handle=device,
                service_uuids=tuple(adv.service_uuids),
            )
        )

    async def _start_scan(self, service_uuids: list[str] | None) -> None:
        async with self._lock():
            await self._stop_scanner()
            scanner = BleakScanner(detection_callback=self._on_advertisement, service_uuids=service_uuids)
            try:
                await scanner.start()
            except (BleakError, OSError) as exc:
                LOGGER.warning("BLE scan failed to start: %s", exc)
                self._emit(ScanFailed(reason=str(exc) or type(exc).__name__))
                return
            self._scanner = scanner
            LOGGER.debug("Scanning (filter=%s)", service_uuids or "none")

    async def _stop_scan(self) -> None:
        async with self._lock():
            await self._stop_scanner()

    async def _stop_scanner(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            await scanner.stop()
        except (BleakError, OSError) as exc:
            LOGGER.warning("BLE scan failed to stop cleanly: %s", exc)

    # ------------------------------------------------------------------ connection

    def connect(self, handle: Any, *, timeout_s: float = 10.0) -> None:
        address = handle.address if isinstance(handle, BLEDevice) else str(handle)
        self._connects[address] = self._schedule(self._connect(handle, address, timeout_s))

    async def _connect(self, handle: Any, address: str, timeout_s: float) -> None:
        client: BleakClient | None = None

        def _on_disconnect(disconnected: BleakClient) -> None:
            self._emit(PeerDisconnected(peer=disconnected))

        try:
            async with self._lock():
                client = BleakClient(handle, disconnected_callback=_on_disconnect, timeout=timeout_s)
                await client.connect()
        except asyncio.CancelledError:
            if client is not None:
                await self._disconnect_client(client)
            raise
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            LOGGER.warning("BLE connect failed for %s: %s", address, exc)
            self._emit(ConnectFailed(handle=handle, reason=str(exc) or type(exc).__name__))
            return
        finally:
            self._connects.pop(address, None)
        self._emit(ConnectSucceeded(handle=handle, peer=client))

    def disconnect(self, peer: Any) -> None:
        if isinstance(peer, BleakClient):
            self._schedule(self._disconnect_client(peer))
            return
        address = peer.address if isinstance(peer, BLEDevice) else str(peer)
        pending = self._connects.pop(address, None)
        if pending is not None:
            pending.cancel()

    async def _disconnect_client(self, client: BleakClient) -> None:
        try:
            await client.disconnect()
        except (BleakError, OSError) as exc:
            LOGGER.warning("BLE disconnect failed: %s", exc)

    # ------------------------------------------------------------------ GATT

    def discover_services(self, peer: Any, service_uuid: str) -> None:
        # bleak resolves the GATT table while connecting; lookup is synchronous.
        try:
            service = peer.services.get_service(service_uuid)
        except BleakError as exc:
            self._emit(ServicesDiscovered(peer=peer, error=str(exc)))
            return
        self._emit(ServicesDiscovered(peer=peer, service=service))

    def discover_characteristics(self, peer: Any, service: Any, characteristic_uuid: str) -> None:
        self._emit(
            CharacteristicsDiscovered(peer=peer, characteristic=service.get_characteristic(characteristic_uuid))
        )

    def write(self, peer: Any, characteristic: Any, data: bytes, *, token: int) -> None:
        self._schedule(self._write(peer, characteristic, data, token))

    async def _write(self, peer: BleakClient, characteristic: Any, data: bytes, token: int) -> None:
        try:
            await peer.write_gatt_char(characteristic, data, response=True)
        except (BleakError, OSError) as exc:
            LOGGER.warning("BLE write failed: %s", exc)
            self._emit(WriteCompleted(token=token, error=str(exc) or type(exc).__name__))
            return
        self._emit(WriteCompleted(token=token))

    def set_notify(self, peer: Any, characteristic: Any, enabled: bool) -> None:
        self._schedule(self._set_notify(peer, characteristic, enabled))

    async def _set_notify(self, peer: BleakClient, characteristic: Any, enabled: bool) -> None:
        def _on_notify(sender: BleakGATTCharacteristic, data: bytearray) -> None:
            self._emit(NotificationReceived(characteristic=characteristic, data=bytes(data)))

        try:
            if enabled:
                await peer.start_notify(characteristic, _on_notify)
            else:
                await peer.stop_notify(characteristic)
        except (BleakError, OSError) as exc:
            LOGGER.warning("BLE notify %s failed: %s", "enable" if enabled else "disable", exc)
