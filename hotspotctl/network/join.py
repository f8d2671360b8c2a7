"""OS network-join services used once hotspot credentials arrive."""

from __future__ import annotations

import asyncio
import logging
import subprocess
import sys
from collections.abc import Sequence
from typing import Protocol

from hotspotctl.core.errors import NetworkJoinError
from hotspotctl.core.model import JoinOutcome

LOGGER = logging.getLogger(__name__)


class NetworkJoinService(Protocol):
    async def join(self, ssid: str, passphrase: str) -> JoinOutcome:
        """Join a Wi-Fi network and report how it went."""


def _run(cmd: Sequence[str], *, timeout_s: float) -> str:
    try:
        completed = subprocess.run(
            list(cmd),
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout_s,
        )
    except FileNotFoundError as exc:
        raise NetworkJoinError(f"{cmd[0]} command unavailable") from exc
    except subprocess.TimeoutExpired as exc:
        raise NetworkJoinError(f"{cmd[0]} command timed out") from exc
    except subprocess.CalledProcessError as exc:
        error_output = (exc.stderr or "").strip() or (exc.stdout or "").strip() or str(exc)
        raise NetworkJoinError(error_output) from exc
    return completed.stdout


class NmcliJoinService:
    """Join networks through NetworkManager's nmcli."""

    def __init__(self, interface: str | None = None, *, timeout_s: float = 45.0) -> None:
        self._interface = interface
        self._timeout_s = timeout_s

    def active_ssid(self) -> str | None:
        output = _run(["nmcli", "-t", "-f", "ACTIVE,SSID", "device", "wifi"], timeout_s=self._timeout_s)
        for line in output.splitlines():
            active, _, ssid = line.partition(":")
            if active == "yes" and ssid:
                return ssid.replace("\\:", ":")
        return None

    def _join_blocking(self, ssid: str, passphrase: str) -> JoinOutcome:
        try:
            if self.active_ssid() == ssid:
                return JoinOutcome.already_joined()
            args = ["nmcli", "device", "wifi", "connect", ssid]
            if passphrase:
                args.extend(["password", passphrase])
            if self._interface:
                args.extend(["ifname", self._interface])
            _run(args, timeout_s=self._timeout_s)
        except NetworkJoinError as exc:
            LOGGER.warning("nmcli failed to join %s: %s", ssid, exc)
            return JoinOutcome.failed(str(exc))
        return JoinOutcome.joined()

    async def join(self, ssid: str, passphrase: str) -> JoinOutcome:
        return await asyncio.to_thread(self._join_blocking, ssid, passphrase)


class NetworksetupJoinService:
    """Join networks through macOS networksetup.

    networksetup exits 0 even when the join fails; any output from the join
    command is an error message.
    """

    def __init__(self, interface: str = "en0", *, timeout_s: float = 45.0) -> None:
        self._interface = interface
        self._timeout_s = timeout_s

    def active_ssid(self) -> str | None:
        output = _run(["networksetup", "-getairportnetwork", self._interface], timeout_s=self._timeout_s)
        prefix = "Current Wi-Fi Network: "
        for line in output.splitlines():
            if line.startswith(prefix):
                return line[len(prefix):].strip() or None
        return None

    def _join_blocking(self, ssid: str, passphrase: str) -> JoinOutcome:
        try:
            if self.active_ssid() == ssid:
                return JoinOutcome.already_joined()
            args = ["networksetup", "-setairportnetwork", self._interface, ssid]
            if passphrase:
                args.append(passphrase)
            output = _run(args, timeout_s=self._timeout_s).strip()
        except NetworkJoinError as exc:
            LOGGER.warning("networksetup failed to join %s: %s", ssid, exc)
            return JoinOutcome.failed(str(exc))
        if output:
            return JoinOutcome.failed(output)
        return JoinOutcome.joined()

    async def join(self, ssid: str, passphrase: str) -> JoinOutcome:
        return await asyncio.to_thread(self._join_blocking, ssid, passphrase)


def default_join_service() -> NetworkJoinService:
    if sys.platform == "darwin":
        return NetworksetupJoinService()
    return NmcliJoinService()
