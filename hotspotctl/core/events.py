"""Inbound events consumed by the session actor.

Everything that can change session state arrives as one of these: caller
requests, transport callbacks, timer firings and join results.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from hotspotctl.core.model import Command, JoinOutcome, PowerState


# Caller requests


@dataclass(frozen=True)
class StartScanRequested:
    pass


@dataclass(frozen=True)
class StopScanRequested:
    pass


@dataclass(frozen=True)
class ConnectRequested:
    identity: str


@dataclass(frozen=True)
class DispatchRequested:
    command: Command


@dataclass(frozen=True)
class DisconnectRequested:
    pass


# Transport callbacks


@dataclass(frozen=True)
class PowerStateChanged:
    power: PowerState


@dataclass(frozen=True)
class DeviceDiscovered:
    identity: str
    name: str | None
    rssi: int
    handle: Any = None
    service_uuids: tuple[str, ...] = ()


@dataclass(frozen=True)
class ScanFailed:
    reason: str


@dataclass(frozen=True)
class ConnectSucceeded:
    handle: Any
    peer: Any


@dataclass(frozen=True)
class ConnectFailed:
    handle: Any
    reason: str | None = None


@dataclass(frozen=True)
class ServicesDiscovered:
    peer: Any
    service: Any = None
    error: str | None = None


@dataclass(frozen=True)
class CharacteristicsDiscovered:
    peer: Any
    characteristic: Any = None
    error: str | None = None


@dataclass(frozen=True)
class WriteCompleted:
    token: int
    error: str | None = None


@dataclass(frozen=True)
class NotificationReceived:
    characteristic: Any
    data: bytes


@dataclass(frozen=True)
class PeerDisconnected:
    peer: Any
    reason: str | None = None


# Timers


@dataclass(frozen=True)
class BroadcastGraceElapsed:
    scan_id: int


@dataclass(frozen=True)
class ScanCeilingReached:
    scan_id: int


@dataclass(frozen=True)
class CommandTimedOut:
    token: int


# Network join


@dataclass(frozen=True)
class JoinFinished:
    ssid: str
    outcome: JoinOutcome
    join_id: int = 0


SessionEvent = Union[
    StartScanRequested,
    StopScanRequested,
    ConnectRequested,
    DispatchRequested,
    DisconnectRequested,
    PowerStateChanged,
    DeviceDiscovered,
    ScanFailed,
    ConnectSucceeded,
    ConnectFailed,
    ServicesDiscovered,
    CharacteristicsDiscovered,
    WriteCompleted,
    NotificationReceived,
    PeerDisconnected,
    BroadcastGraceElapsed,
    ScanCeilingReached,
    CommandTimedOut,
    JoinFinished,
]
