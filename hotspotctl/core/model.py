"""Core data models used across loader, session, service, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Command(str, Enum):
    ENABLE = "enable"
    DISABLE = "disable"


class PowerState(str, Enum):
    UNKNOWN = "unknown"
    RESETTING = "resetting"
    UNSUPPORTED = "unsupported"
    UNAUTHORIZED = "unauthorized"
    POWERED_OFF = "powered_off"
    READY = "ready"


class ConnectionState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    NEGOTIATING = "negotiating"
    READY = "ready"
    DEGRADED = "degraded"
    DISCONNECTED = "disconnected"

    @property
    def is_connected(self) -> bool:
        return self in (ConnectionState.NEGOTIATING, ConnectionState.READY, ConnectionState.DEGRADED)


class CommandResult(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class JoinResult(str, Enum):
    JOINED = "joined"
    ALREADY_JOINED = "already_joined"
    FAILED = "failed"


@dataclass(frozen=True)
class JoinOutcome:
    result: JoinResult
    reason: str | None = None

    @classmethod
    def joined(cls) -> JoinOutcome:
        return cls(JoinResult.JOINED)

    @classmethod
    def already_joined(cls) -> JoinOutcome:
        return cls(JoinResult.ALREADY_JOINED)

    @classmethod
    def failed(cls, reason: str) -> JoinOutcome:
        return cls(JoinResult.FAILED, reason)


@dataclass(frozen=True)
class MatchRules:
    name_contains: tuple[str, ...] = ()
    address_prefix: tuple[str, ...] = ()


@dataclass(frozen=True)
class Timing:
    scan_timeout_s: float = 30.0
    broadcast_grace_s: float = 3.0
    min_command_interval_s: float = 0.5
    command_timeout_s: float = 5.0
    connect_timeout_s: float = 10.0


@dataclass(frozen=True)
class Profile:
    id: str
    name: str
    service_uuid: str
    characteristic_uuid: str
    commands: dict[Command, bytes]
    match: MatchRules = field(default_factory=MatchRules)
    timing: Timing = field(default_factory=Timing)
    auto_join: bool = True


@dataclass(frozen=True)
class DiscoveredDevice:
    identity: str
    name: str
    rssi: int
    handle: Any = field(default=None, compare=False, repr=False)
    advertised_services: tuple[str, ...] = ()


@dataclass(frozen=True)
class Credentials:
    ssid: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class WriteTarget:
    service: Any
    characteristic: Any


@dataclass(frozen=True)
class SessionStatus:
    """Snapshot of everything a presentation layer may render."""

    state: ConnectionState = ConnectionState.IDLE
    power: PowerState = PowerState.UNKNOWN
    scanning: bool = False
    devices: tuple[DiscoveredDevice, ...] = ()
    device: DiscoveredDevice | None = None
    in_flight: bool = False
    message: str | None = None
    command_result: CommandResult | None = None
    credentials: Credentials | None = None
    joining: bool = False
    join_status: str | None = None
    join_outcome: JoinOutcome | None = None


@dataclass(frozen=True)
class TriggerResult:
    device: DiscoveredDevice
    command: Command
    payload_hex: str
    result: CommandResult
    message: str | None
    credentials: Credentials | None = None
    join_outcome: JoinOutcome | None = None
    join_status: str | None = None
