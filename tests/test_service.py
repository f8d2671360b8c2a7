from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from hotspotctl.core.errors import (
    DeviceSelectionError,
    ProfileLoadError,
    TransportConnectError,
    TransportUnavailableError,
)
from hotspotctl.core.events import (
    CharacteristicsDiscovered,
    ConnectFailed,
    ConnectSucceeded,
    DeviceDiscovered,
    NotificationReceived,
    PeerDisconnected,
    ServicesDiscovered,
    WriteCompleted,
)
from hotspotctl.core.model import Command, CommandResult, JoinOutcome, JoinResult, PowerState
from hotspotctl.core.service import HotspotService

SERVICE_UUID = "c15aba22-c32c-4a01-a770-80b82782d92f"


class LoopbackTransport:
    """Answers every request immediately, the way a cooperative phone would."""

    def __init__(
        self,
        *,
        devices: tuple[tuple[str, str, bool], ...] = (("AA:BB:CC:DD:EE:01", "Pixel 8", True),),
        power: PowerState = PowerState.READY,
        connect_error: str | None = None,
        write_error: str | None = None,
        notification: bytes | None = b'{"ssid": "Pixel Hotspot", "password": "secret"}',
    ) -> None:
        self.devices = devices
        self.power = power
        self.connect_error = connect_error
        self.write_error = write_error
        self.notification = notification
        self.sink: Any = None
        self.writes: list[bytes] = []
        self.scan_filters: list[Any] = []
        self.disconnected: list[Any] = []
        self.drained = 0

    def bind(self, sink: Any) -> None:
        self.sink = sink

    def power_state(self) -> PowerState:
        return self.power

    def start_scan(self, service_uuids: Any = None) -> None:
        self.scan_filters.append(service_uuids)
        for identity, name, advertises in self.devices:
            services = (SERVICE_UUID,) if advertises else ()
            self.sink(DeviceDiscovered(identity, name, -50, handle=identity, service_uuids=services))

    def stop_scan(self) -> None:
        pass

    def connect(self, handle: Any, *, timeout_s: float = 10.0) -> None:
        if self.connect_error:
            self.sink(ConnectFailed(handle=handle, reason=self.connect_error))
        else:
            self.sink(ConnectSucceeded(handle=handle, peer=f"peer-{handle}"))

    def discover_services(self, peer: Any, service_uuid: str) -> None:
        self.sink(ServicesDiscovered(peer=peer, service="svc"))

    def discover_characteristics(self, peer: Any, service: Any, characteristic_uuid: str) -> None:
        self.sink(CharacteristicsDiscovered(peer=peer, characteristic="char"))

    def write(self, peer: Any, characteristic: Any, data: bytes, *, token: int) -> None:
        self.writes.append(data)
        self.sink(WriteCompleted(token=token, error=self.write_error))
        if self.write_error is None and data == b"\x01" and self.notification is not None:
            self.sink(NotificationReceived(characteristic=characteristic, data=self.notification))

    def set_notify(self, peer: Any, characteristic: Any, enabled: bool) -> None:
        pass

    def disconnect(self, peer: Any) -> None:
        self.disconnected.append(peer)
        self.sink(PeerDisconnected(peer=peer))

    async def drain(self) -> None:
        self.drained += 1


class RecordingJoinService:
    def __init__(self, outcome: JoinOutcome | None = None) -> None:
        self.outcome = outcome or JoinOutcome.joined()
        self.calls: list[tuple[str, str]] = []

    async def join(self, ssid: str, passphrase: str) -> JoinOutcome:
        self.calls.append((ssid, passphrase))
        return self.outcome


@pytest.fixture(autouse=True)
def _isolated_profiles(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))


def test_enable_sends_payload_and_joins() -> None:
    transport = LoopbackTransport()
    joiner = RecordingJoinService()
    service = HotspotService(transport=transport, join_service=joiner)

    result = asyncio.run(service.trigger(Command.ENABLE))

    assert result.device.identity == "AA:BB:CC:DD:EE:01"
    assert result.payload_hex == "01"
    assert result.result is CommandResult.SUCCESS
    assert result.credentials is not None
    assert result.credentials.ssid == "Pixel Hotspot"
    assert result.join_outcome == JoinOutcome.joined()
    assert result.join_status == "Connected to Pixel Hotspot"
    assert joiner.calls == [("Pixel Hotspot", "secret")]
    assert transport.writes == [b"\x01"]
    assert transport.scan_filters[0] == [SERVICE_UUID]
    assert transport.disconnected == ["peer-AA:BB:CC:DD:EE:01"]
    assert transport.drained == 1


def test_enable_without_join_reports_credentials_only() -> None:
    joiner = RecordingJoinService()
    service = HotspotService(transport=LoopbackTransport(), join_service=joiner)

    result = asyncio.run(service.trigger(Command.ENABLE, join=False))

    assert result.credentials is not None
    assert result.join_outcome is None
    assert joiner.calls == []


def test_disable_sends_disable_payload() -> None:
    transport = LoopbackTransport()
    service = HotspotService(transport=transport, join_service=RecordingJoinService())

    result = asyncio.run(service.trigger(Command.DISABLE, wait_s=0.0))

    assert result.result is CommandResult.SUCCESS
    assert result.payload_hex == "00"
    assert result.credentials is None
    assert transport.writes == [b"\x00"]


def test_write_error_is_reported_as_failed_result() -> None:
    service = HotspotService(
        transport=LoopbackTransport(write_error="write not permitted"),
        join_service=RecordingJoinService(),
    )

    result = asyncio.run(service.trigger(Command.ENABLE))

    assert result.result is CommandResult.FAILED
    assert result.message == "Failed to send command: write not permitted"
    assert result.credentials is None


def test_join_failure_is_carried_in_result() -> None:
    service = HotspotService(
        transport=LoopbackTransport(),
        join_service=RecordingJoinService(JoinOutcome.failed("wrong password")),
    )

    result = asyncio.run(service.trigger(Command.ENABLE))

    assert result.join_outcome.result is JoinResult.FAILED
    assert result.join_status == "Failed to join Pixel Hotspot: wrong password"


def test_device_hint_picks_non_advertising_device() -> None:
    transport = LoopbackTransport(
        devices=(("AA:BB:CC:DD:EE:01", "Pixel 8", True), ("AA:BB:CC:DD:EE:02", "Galaxy S24", False)),
    )
    service = HotspotService(transport=transport, join_service=RecordingJoinService())

    result = asyncio.run(service.trigger(Command.DISABLE, device_hint="galaxy"))
    assert result.device.identity == "AA:BB:CC:DD:EE:02"


def test_multiple_advertising_devices_need_hint() -> None:
    transport = LoopbackTransport(
        devices=(("AA:BB:CC:DD:EE:01", "Pixel 8", True), ("AA:BB:CC:DD:EE:02", "Pixel 7", True)),
    )
    service = HotspotService(transport=transport, join_service=RecordingJoinService())

    with pytest.raises(DeviceSelectionError, match="Multiple candidate devices"):
        asyncio.run(service.trigger(Command.ENABLE, scan_timeout_s=0.2))


def test_no_device_found() -> None:
    service = HotspotService(transport=LoopbackTransport(devices=()), join_service=RecordingJoinService())

    with pytest.raises(DeviceSelectionError, match="No device advertising the hotspot service"):
        asyncio.run(service.trigger(Command.ENABLE, scan_timeout_s=0.2))


def test_connect_failure_raises() -> None:
    service = HotspotService(
        transport=LoopbackTransport(connect_error="peer unreachable"),
        join_service=RecordingJoinService(),
    )

    with pytest.raises(TransportConnectError, match="peer unreachable"):
        asyncio.run(service.trigger(Command.ENABLE))


def test_bluetooth_off_raises() -> None:
    service = HotspotService(
        transport=LoopbackTransport(power=PowerState.POWERED_OFF),
        join_service=RecordingJoinService(),
    )

    with pytest.raises(TransportUnavailableError):
        asyncio.run(service.trigger(Command.ENABLE))


def test_scan_lists_devices_until_timeout() -> None:
    transport = LoopbackTransport(
        devices=(("AA:BB:CC:DD:EE:01", "Pixel 8", True), ("AA:BB:CC:DD:EE:02", "Galaxy S24", False)),
    )
    service = HotspotService(transport=transport, join_service=RecordingJoinService())

    devices = asyncio.run(service.scan(timeout_s=0.2))

    assert [d.identity for d in devices] == ["AA:BB:CC:DD:EE:01", "AA:BB:CC:DD:EE:02"]
    assert SERVICE_UUID in devices[0].advertised_services


def test_unknown_profile_rejected() -> None:
    service = HotspotService(transport=LoopbackTransport(), join_service=RecordingJoinService())

    with pytest.raises(ProfileLoadError, match="Unknown profile 'nope'"):
        service.get_profile("nope")
