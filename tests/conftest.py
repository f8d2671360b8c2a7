from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest

from hotspotctl.core.events import (
    CharacteristicsDiscovered,
    ConnectSucceeded,
    DeviceDiscovered,
    ServicesDiscovered,
    SessionEvent,
)
from hotspotctl.core.model import Command, JoinOutcome, MatchRules, PowerState, Profile, Timing
from hotspotctl.core.session import Session

SERVICE_UUID = "c15aba22-c32c-4a01-a770-80b82782d92f"
CHARACTERISTIC_UUID = "19a0b431-9e31-41c4-9db0-d8ea70e81501"


def make_profile(**overrides: Any) -> Profile:
    fields: dict[str, Any] = {
        "id": "android_hotspot",
        "name": "Android Hotspot Companion",
        "service_uuid": SERVICE_UUID,
        "characteristic_uuid": CHARACTERISTIC_UUID,
        "commands": {Command.ENABLE: b"\x01", Command.DISABLE: b"\x00"},
        "match": MatchRules(),
        "timing": Timing(),
    }
    fields.update(overrides)
    return Profile(**fields)


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@dataclass
class FakeTimer:
    when: float
    callback: Any
    args: tuple[Any, ...]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback: Any, *args: Any) -> FakeTimer:
        timer = FakeTimer(when=self.clock.now + delay, callback=callback, args=args)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        self.clock.now += seconds
        due = sorted((t for t in self.pending if t.when <= self.clock.now), key=lambda t: t.when)
        for timer in due:
            timer.fired = True
            timer.callback(*timer.args)


class FakeTransport:
    def __init__(self, power: PowerState = PowerState.READY) -> None:
        self.power = power
        self.sink: Any = None
        self.calls: list[tuple[Any, ...]] = []

    def bind(self, sink: Any) -> None:
        self.sink = sink

    def power_state(self) -> PowerState:
        return self.power

    def start_scan(self, service_uuids: Any = None) -> None:
        self.calls.append(("start_scan", tuple(service_uuids) if service_uuids else None))

    def stop_scan(self) -> None:
        self.calls.append(("stop_scan",))

    def connect(self, handle: Any, *, timeout_s: float = 10.0) -> None:
        self.calls.append(("connect", handle))

    def discover_services(self, peer: Any, service_uuid: str) -> None:
        self.calls.append(("discover_services", peer, service_uuid))

    def discover_characteristics(self, peer: Any, service: Any, characteristic_uuid: str) -> None:
        self.calls.append(("discover_characteristics", peer, service, characteristic_uuid))

    def write(self, peer: Any, characteristic: Any, data: bytes, *, token: int) -> None:
        self.calls.append(("write", peer, characteristic, data, token))

    def set_notify(self, peer: Any, characteristic: Any, enabled: bool) -> None:
        self.calls.append(("set_notify", peer, characteristic, enabled))

    def disconnect(self, peer: Any) -> None:
        self.calls.append(("disconnect", peer))

    async def drain(self) -> None:
        return None

    def named(self, name: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == name]


class FakeJoinService:
    def __init__(self, outcome: JoinOutcome | None = None, error: Exception | None = None) -> None:
        self.outcome = outcome or JoinOutcome.joined()
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def join(self, ssid: str, passphrase: str) -> JoinOutcome:
        self.calls.append((ssid, passphrase))
        if self.error is not None:
            raise self.error
        return self.outcome


@dataclass
class Harness:
    """Drives a session synchronously: events are posted, then pumped."""

    profile: Profile = field(default_factory=make_profile)
    transport: FakeTransport = field(default_factory=FakeTransport)
    join_service: FakeJoinService = field(default_factory=FakeJoinService)
    clock: FakeClock = field(default_factory=FakeClock)
    spawned: list[Any] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.scheduler = FakeScheduler(self.clock)
        self.session = Session(
            self.transport,
            self.profile,
            join_service=self.join_service,
            scheduler=self.scheduler,
            clock=self.clock,
            spawn=self.spawned.append,
        )

    @property
    def status(self):
        return self.session.status

    def send(self, *events: SessionEvent) -> None:
        for event in events:
            self.session.post(event)
        self.session.pump()

    def advance(self, seconds: float) -> None:
        self.scheduler.advance(seconds)
        self.session.pump()

    def run_spawned(self) -> None:
        pending, self.spawned[:] = list(self.spawned), []
        for coro in pending:
            asyncio.run(coro)
        self.session.pump()

    def scan(self, *devices: tuple[str, str]) -> None:
        self.session.start_scan()
        self.session.pump()
        self.send(*(DeviceDiscovered(identity, name, -50, handle=f"dev-{identity}") for identity, name in devices))

    def ready(self, identity: str = "AA:BB:CC:DD:EE:01", name: str = "Pixel 8") -> None:
        self.scan((identity, name))
        self.session.connect(identity)
        self.session.pump()
        self.send(ConnectSucceeded(handle=f"dev-{identity}", peer=f"peer-{identity}"))
        self.send(ServicesDiscovered(peer=f"peer-{identity}", service="svc"))
        self.send(CharacteristicsDiscovered(peer=f"peer-{identity}", characteristic="char"))


@pytest.fixture
def harness() -> Harness:
    return Harness()
