"""Session actor: scan, connect, negotiate, command and notification handling.

All session state is mutated in `Session.pump()`, which drains an inbox of
events. Transport callbacks, timers and join results never touch state
directly; they `post()` an event. Once `attach()`ed to an asyncio loop, posting
schedules a pump on that loop, so the session behaves as a single-threaded
actor no matter which thread the transport calls back from.

Timers are armed through a scheduler with the `call_later(delay, callback,
*args)` shape (the asyncio loop by default). Each timer event carries the scan
cycle id or command token it was armed for and is ignored if that cycle or
command is no longer current.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from hotspotctl.core.credentials import CredentialHandler, decode_credentials, describe_payload
from hotspotctl.core.events import (
    BroadcastGraceElapsed,
    CharacteristicsDiscovered,
    CommandTimedOut,
    ConnectFailed,
    ConnectRequested,
    ConnectSucceeded,
    DeviceDiscovered,
    DisconnectRequested,
    DispatchRequested,
    JoinFinished,
    NotificationReceived,
    PeerDisconnected,
    PowerStateChanged,
    ScanCeilingReached,
    ScanFailed,
    ServicesDiscovered,
    SessionEvent,
    StartScanRequested,
    StopScanRequested,
    WriteCompleted,
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
    WriteTarget,
)
from hotspotctl.core.registry import DeviceRegistry
from hotspotctl.network.join import NetworkJoinService
from hotspotctl.transports.base import TransportAdapter

LOGGER = logging.getLogger(__name__)

_POWER_MESSAGES = {
    PowerState.READY: "Bluetooth is ready",
    PowerState.POWERED_OFF: "Please turn on Bluetooth",
    PowerState.UNAUTHORIZED: "Please allow Bluetooth access for this application",
    PowerState.UNSUPPORTED: "Bluetooth LE is not supported on this device",
    PowerState.RESETTING: "Bluetooth is resetting...",
    PowerState.UNKNOWN: "Bluetooth state is unknown",
}

StatusObserver = Callable[[SessionStatus], None]


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Any:
        """Run `callback(*args)` after `delay` seconds; the result has `cancel()`."""


class Session:
    def __init__(
        self,
        transport: TransportAdapter,
        profile: Profile,
        *,
        join_service: NetworkJoinService,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.monotonic,
        spawn: Callable[[Awaitable[None]], Any] | None = None,
        auto_join: bool | None = None,
    ) -> None:
        self.profile = profile
        self._transport = transport
        self._scheduler = scheduler
        self._clock = clock
        self._spawn = spawn
        self._auto_join = profile.auto_join if auto_join is None else auto_join
        self._registry = DeviceRegistry()
        self._credential_handler = CredentialHandler(join_service, self.post, self._spawn_task)

        self._inbox: deque[SessionEvent] = deque()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._pumping = False
        self._observers: list[StatusObserver] = []

        self._state = ConnectionState.IDLE
        self._power = transport.power_state()
        self._scan_id = 0
        self._scan_timers: list[Any] = []
        self._device: DiscoveredDevice | None = None
        self._peer: Any = None
        self._service: Any = None
        self._write_target: WriteTarget | None = None
        self._in_flight = False
        self._command_token = 0
        self._command_timer: Any = None
        self._last_command_at: float | None = None
        self._message: str | None = None
        self._command_result: CommandResult | None = None
        self._credentials: Credentials | None = None
        self._joining = False
        self._join_status: str | None = None
        self._join_outcome: JoinOutcome | None = None
        self._join_id = 0

        self._handlers: dict[type, Callable[[Any], None]] = {
            StartScanRequested: self._on_start_scan,
            StopScanRequested: self._on_stop_scan,
            ConnectRequested: self._on_connect,
            DispatchRequested: self._on_dispatch,
            DisconnectRequested: self._on_disconnect,
            PowerStateChanged: self._on_power_state,
            DeviceDiscovered: self._on_device_discovered,
            ScanFailed: self._on_scan_failed,
            ConnectSucceeded: self._on_connect_succeeded,
            ConnectFailed: self._on_connect_failed,
            ServicesDiscovered: self._on_services_discovered,
            CharacteristicsDiscovered: self._on_characteristics_discovered,
            WriteCompleted: self._on_write_completed,
            NotificationReceived: self._on_notification,
            PeerDisconnected: self._on_peer_disconnected,
            BroadcastGraceElapsed: self._on_broadcast_grace,
            ScanCeilingReached: self._on_scan_ceiling,
            CommandTimedOut: self._on_command_timeout,
            JoinFinished: self._on_join_finished,
        }
        self._status = self._snapshot()
        transport.bind(self.post)

    # ------------------------------------------------------------------ entry points

    def start_scan(self) -> None:
        self.post(StartScanRequested())

    def stop_scan(self) -> None:
        self.post(StopScanRequested())

    def connect(self, identity: str) -> None:
        self.post(ConnectRequested(identity))

    def dispatch(self, command: Command) -> None:
        self.post(DispatchRequested(command))

    def disconnect(self) -> None:
        self.post(DisconnectRequested())

    # ------------------------------------------------------------------ actor plumbing

    @property
    def status(self) -> SessionStatus:
        return self._status

    def attach(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Bind the session to an event loop for pumping, timers and join tasks."""
        self._loop = loop or asyncio.get_running_loop()
        if self._scheduler is None:
            self._scheduler = self._loop
        if self._inbox:
            self._loop.call_soon(self.pump)

    def close(self) -> None:
        self._cancel_scan_timers()
        self._cancel_command_timer()
        for task in list(self._tasks):
            task.cancel()
        self._loop = None

    def post(self, event: SessionEvent) -> None:
        """Queue an event for the actor. Safe to call from any thread."""
        self._inbox.append(event)
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self.pump)

    def pump(self) -> int:
        """Handle every queued event in order. Returns how many were handled."""
        if self._pumping:
            return 0
        self._pumping = True
        handled = 0
        try:
            while self._inbox:
                event = self._inbox.popleft()
                self._handlers[type(event)](event)
                handled += 1
                self._publish()
        finally:
            self._pumping = False
        return handled

    def subscribe(self, observer: StatusObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    async def wait_until(
        self,
        predicate: Callable[[SessionStatus], bool],
        timeout: float | None = None,
    ) -> SessionStatus:
        """Wait for a status snapshot satisfying `predicate`."""
        if predicate(self._status):
            return self._status
        future: asyncio.Future[SessionStatus] = asyncio.get_running_loop().create_future()

        def _observer(status: SessionStatus) -> None:
            if not future.done() and predicate(status):
                future.set_result(status)

        unsubscribe = self.subscribe(_observer)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            unsubscribe()

    def _publish(self) -> None:
        status = self._snapshot()
        if status == self._status:
            return
        self._status = status
        for observer in list(self._observers):
            observer(status)

    def _snapshot(self) -> SessionStatus:
        return SessionStatus(
            state=self._state,
            power=self._power,
            scanning=self._state is ConnectionState.SCANNING,
            devices=self._registry.all(),
            device=self._device,
            in_flight=self._in_flight,
            message=self._message,
            command_result=self._command_result,
            credentials=self._credentials,
            joining=self._joining,
            join_status=self._join_status,
            join_outcome=self._join_outcome,
        )

    def _call_later(self, delay: float, event: SessionEvent) -> Any:
        if self._scheduler is None:
            raise RuntimeError("Session has no scheduler; call attach() from a running event loop")
        return self._scheduler.call_later(delay, self.post, event)

    def _spawn_task(self, coro: Awaitable[None]) -> Any:
        if self._spawn is not None:
            return self._spawn(coro)
        if self._loop is None:
            raise RuntimeError("Session is not attached to an event loop")
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            LOGGER.info("Session state %s -> %s", self._state.value, state.value)
            self._state = state

    # ------------------------------------------------------------------ scanning

    def _on_start_scan(self, _: StartScanRequested) -> None:
        if self._state is ConnectionState.CONNECTING or self._state.is_connected:
            self._message = "Disconnect before scanning for devices"
            return
        if self._power is not PowerState.READY:
            self._message = "Bluetooth is not available"
            return

        self._cancel_scan_timers()
        self._registry.begin_scan()
        self._scan_id += 1
        self._set_state(ConnectionState.SCANNING)
        self._message = "Looking for devices..."
        timing = self.profile.timing
        self._transport.start_scan([self.profile.service_uuid])
        self._scan_timers = [
            self._call_later(timing.broadcast_grace_s, BroadcastGraceElapsed(self._scan_id)),
            self._call_later(timing.scan_timeout_s, ScanCeilingReached(self._scan_id)),
        ]

    def _on_stop_scan(self, _: StopScanRequested) -> None:
        if self._state is not ConnectionState.SCANNING:
            return
        self._end_scan()
        self._message = "Scan stopped" if len(self._registry) else "No devices found"

    def _on_broadcast_grace(self, event: BroadcastGraceElapsed) -> None:
        if self._state is not ConnectionState.SCANNING or event.scan_id != self._scan_id:
            LOGGER.debug("Ignoring broadcast grace timer for scan %d", event.scan_id)
            return
        if len(self._registry):
            return
        LOGGER.info("No devices advertise the hotspot service yet; scanning all devices")
        self._transport.start_scan(None)

    def _on_scan_ceiling(self, event: ScanCeilingReached) -> None:
        if self._state is not ConnectionState.SCANNING or event.scan_id != self._scan_id:
            LOGGER.debug("Ignoring scan ceiling timer for scan %d", event.scan_id)
            return
        self._end_scan()
        self._message = "Scan completed"

    def _on_device_discovered(self, event: DeviceDiscovered) -> None:
        if self._state is not ConnectionState.SCANNING:
            return
        device = self._registry.observe(
            event.identity, event.name, event.rssi, event.handle, event.service_uuids
        )
        if device is not None:
            LOGGER.info("Discovered %s (%s) rssi=%d", device.name, device.identity, device.rssi)

    def _on_scan_failed(self, event: ScanFailed) -> None:
        if self._state is not ConnectionState.SCANNING:
            return
        self._cancel_scan_timers()
        self._set_state(ConnectionState.IDLE)
        self._message = f"Scan failed: {event.reason}"

    def _end_scan(self) -> None:
        self._cancel_scan_timers()
        self._transport.stop_scan()
        self._set_state(ConnectionState.IDLE)

    def _cancel_scan_timers(self) -> None:
        for timer in self._scan_timers:
            timer.cancel()
        self._scan_timers = []

    # ------------------------------------------------------------------ connection lifecycle

    def _on_connect(self, event: ConnectRequested) -> None:
        if self._state is ConnectionState.CONNECTING or self._state.is_connected:
            self._message = "Disconnect before connecting to another device"
            return
        device = self._registry.get(event.identity)
        if device is None:
            self._message = f"Unknown device {event.identity}"
            return
        if self._power is not PowerState.READY:
            self._message = "Bluetooth is not available"
            return

        if self._state is ConnectionState.SCANNING:
            self._end_scan()
        self._device = device
        self._set_state(ConnectionState.CONNECTING)
        self._message = f"Connecting to {device.name}..."
        self._transport.connect(device.handle, timeout_s=self.profile.timing.connect_timeout_s)

    def _on_connect_succeeded(self, event: ConnectSucceeded) -> None:
        if (
            self._state is not ConnectionState.CONNECTING
            or self._device is None
            or event.handle != self._device.handle
        ):
            LOGGER.info("Dropping link that completed after its connect was abandoned")
            self._transport.disconnect(event.peer)
            return
        self._peer = event.peer
        self._set_state(ConnectionState.NEGOTIATING)
        self._message = "Discovering services..."
        self._transport.discover_services(event.peer, self.profile.service_uuid)

    def _on_connect_failed(self, event: ConnectFailed) -> None:
        if (
            self._state is not ConnectionState.CONNECTING
            or self._device is None
            or event.handle != self._device.handle
        ):
            return
        self._teardown()
        self._message = f"Connection failed: {event.reason}" if event.reason else "Failed to connect"

    def _on_services_discovered(self, event: ServicesDiscovered) -> None:
        if self._state is not ConnectionState.NEGOTIATING or event.peer != self._peer:
            return
        if event.error:
            self._degrade(f"Service discovery failed: {event.error}")
            return
        if event.service is None:
            self._degrade("Hotspot service not found on device")
            return
        self._service = event.service
        self._transport.discover_characteristics(
            event.peer, event.service, self.profile.characteristic_uuid
        )

    def _on_characteristics_discovered(self, event: CharacteristicsDiscovered) -> None:
        if self._state is not ConnectionState.NEGOTIATING or event.peer != self._peer:
            return
        if event.error:
            self._degrade(f"Characteristic discovery failed: {event.error}")
            return
        if event.characteristic is None:
            self._degrade("Hotspot characteristic not found on device")
            return
        self._write_target = WriteTarget(service=self._service, characteristic=event.characteristic)
        self._transport.set_notify(self._peer, event.characteristic, True)
        self._set_state(ConnectionState.READY)
        self._message = "Ready to trigger hotspot"

    def _degrade(self, message: str) -> None:
        LOGGER.warning("%s", message)
        self._set_state(ConnectionState.DEGRADED)
        self._message = message

    def _on_disconnect(self, _: DisconnectRequested) -> None:
        if not self._drop_link():
            return
        self._teardown()
        self._message = "Disconnected from device"

    def _drop_link(self) -> bool:
        """Ask the transport to release the pending or live link, if there is one."""
        if self._state is ConnectionState.CONNECTING and self._device is not None:
            self._transport.disconnect(self._device.handle)
        elif self._state.is_connected:
            self._transport.disconnect(self._peer)
        else:
            return False
        return True

    def _on_peer_disconnected(self, event: PeerDisconnected) -> None:
        if self._peer is None or event.peer != self._peer:
            LOGGER.debug("Ignoring disconnect for a peer that is not the current session")
            return
        self._teardown()
        self._message = f"Disconnected: {event.reason}" if event.reason else "Disconnected from device"

    def _teardown(self) -> None:
        self._cancel_command_timer()
        self._device = None
        self._peer = None
        self._service = None
        self._write_target = None
        self._in_flight = False
        self._set_state(ConnectionState.DISCONNECTED)

    def _on_power_state(self, event: PowerStateChanged) -> None:
        self._power = event.power
        self._message = _POWER_MESSAGES.get(event.power, "Unknown Bluetooth state")
        if event.power is PowerState.READY:
            return
        if self._state is ConnectionState.SCANNING:
            self._end_scan()
        elif self._drop_link():
            self._teardown()

    # ------------------------------------------------------------------ commands

    def _on_dispatch(self, event: DispatchRequested) -> None:
        if self._state is not ConnectionState.READY or self._write_target is None:
            self._message = "Not connected to device"
            return
        if self._in_flight:
            self._message = "Command already in progress"
            return
        now = self._clock()
        if (
            self._last_command_at is not None
            and now - self._last_command_at < self.profile.timing.min_command_interval_s
        ):
            self._message = "Please wait before sending another command"
            return

        payload = self.profile.commands[event.command]
        self._in_flight = True
        self._last_command_at = now
        self._command_token += 1
        self._command_result = None
        self._message = "Enabling hotspot..." if event.command is Command.ENABLE else "Disabling hotspot..."
        LOGGER.info("Sending %s command (token %d)", event.command.value, self._command_token)
        self._transport.write(
            self._peer,
            self._write_target.characteristic,
            payload,
            token=self._command_token,
        )
        self._command_timer = self._call_later(
            self.profile.timing.command_timeout_s,
            CommandTimedOut(self._command_token),
        )

    def _on_write_completed(self, event: WriteCompleted) -> None:
        if not self._in_flight or event.token != self._command_token:
            LOGGER.debug("Ignoring stale write ack for token %d", event.token)
            return
        self._cancel_command_timer()
        self._in_flight = False
        if event.error:
            self._command_result = CommandResult.FAILED
            self._message = f"Failed to send command: {event.error}"
        else:
            self._command_result = CommandResult.SUCCESS
            self._message = "Command sent successfully"

    def _on_command_timeout(self, event: CommandTimedOut) -> None:
        if not self._in_flight or event.token != self._command_token:
            return
        self._command_timer = None
        self._in_flight = False
        self._command_result = CommandResult.TIMED_OUT
        self._message = "Command timeout - please try again"

    def _cancel_command_timer(self) -> None:
        if self._command_timer is not None:
            self._command_timer.cancel()
            self._command_timer = None

    # ------------------------------------------------------------------ notifications and join

    def _on_notification(self, event: NotificationReceived) -> None:
        if self._write_target is None or event.characteristic != self._write_target.characteristic:
            return
        credentials = decode_credentials(event.data)
        if credentials is None:
            self._message = f"Response: {describe_payload(event.data)}"
            return
        self._credentials = credentials
        self._message = f"Received credentials for {credentials.ssid}"
        if self._auto_join:
            self._joining = True
            self._join_status = f"Joining {credentials.ssid}..."
            self._join_outcome = None
            self._join_id += 1
            self._credential_handler.begin_join(credentials, self._join_id)

    def _on_join_finished(self, event: JoinFinished) -> None:
        if not self._joining or event.join_id != self._join_id:
            LOGGER.debug("Ignoring result of superseded join %d for %s", event.join_id, event.ssid)
            return
        self._joining = False
        self._join_outcome = event.outcome
        if event.outcome.result is JoinResult.ALREADY_JOINED:
            self._join_status = f"Already connected to {event.ssid}"
        elif event.outcome.result is JoinResult.JOINED:
            self._join_status = f"Connected to {event.ssid}"
        else:
            self._join_status = f"Failed to join {event.ssid}: {event.outcome.reason}"
        self._message = self._join_status
