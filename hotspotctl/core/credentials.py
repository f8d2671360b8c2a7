"""Credential notification decoding and the network-join hand-off."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from functools import lru_cache
from importlib import resources
from typing import Any

from jsonschema import ValidationError, validators

from hotspotctl.core.events import JoinFinished, SessionEvent
from hotspotctl.core.model import Credentials, JoinOutcome
from hotspotctl.network.join import NetworkJoinService

LOGGER = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _credentials_validator() -> Any:
    schema_text = resources.files("hotspotctl.schemas").joinpath("credentials.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def decode_credentials(data: bytes) -> Credentials | None:
    """Decode a credential record, or return None if the payload is something else.

    Unknown fields are ignored so newer firmware can add to the record.
    """
    try:
        doc = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    try:
        _credentials_validator().validate(doc)
    except ValidationError as exc:
        LOGGER.debug("Notification JSON is not a credential record: %s", exc.message)
        return None
    return Credentials(ssid=doc["ssid"], password=doc["password"])


def describe_payload(data: bytes) -> str:
    """Render an opaque notification payload for a status line."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return f"0x{data.hex()}"
    return text.strip()


class CredentialHandler:
    """Drives one join attempt per received credential record.

    The outcome is never returned to the caller directly; it is posted back to
    the session as a `JoinFinished` event so that status updates stay on the
    session's thread of control.
    """

    def __init__(
        self,
        join_service: NetworkJoinService,
        post: Callable[[SessionEvent], None],
        spawn: Callable[[Awaitable[None]], Any],
    ) -> None:
        self._join_service = join_service
        self._post = post
        self._spawn = spawn

    def begin_join(self, credentials: Credentials, join_id: int = 0) -> None:
        LOGGER.info("Joining Wi-Fi network %s", credentials.ssid)
        self._spawn(self._join(credentials, join_id))

    async def _join(self, credentials: Credentials, join_id: int) -> None:
        try:
            outcome = await self._join_service.join(credentials.ssid, credentials.password)
        except Exception as exc:
            LOGGER.warning("Network join for %s raised: %s", credentials.ssid, exc)
            outcome = JoinOutcome.failed(str(exc) or type(exc).__name__)
        self._post(JoinFinished(ssid=credentials.ssid, outcome=outcome, join_id=join_id))
