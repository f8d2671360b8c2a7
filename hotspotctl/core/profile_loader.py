"""Profile loading and validation for YAML-based hotspotctl device profiles."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from hotspotctl.core.errors import ProfileLoadError, ProfileValidationError
from hotspotctl.core.model import Command, MatchRules, Profile, Timing

DEFAULT_PROFILE_ID = "android_hotspot"

_HEX_RE = re.compile(r"^[0-9a-f]+$")
_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
_MAX_PAYLOAD_BYTES = 20
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ProfileValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedProfiles:
    profiles: dict[str, Profile]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("hotspotctl.schemas").joinpath("profile.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _profile_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "hotspotctl/profiles", xdg_data / "hotspotctl/profiles"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProfileLoadError(f"Could not read profile file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ProfileValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ProfileValidationError(f"Profile file {path} must contain a mapping at root")
    return loaded


def _normalize_hex(value: str, *, context: str) -> bytes:
    normalized = value.strip().lower().replace(" ", "")
    if len(normalized) == 0:
        raise ProfileValidationError(f"{context} must not be empty")
    if len(normalized) % 2 != 0:
        raise ProfileValidationError(f"{context} must have even-length hex")
    if not _HEX_RE.match(normalized):
        raise ProfileValidationError(f"{context} must contain only [0-9a-f]")
    payload = bytes.fromhex(normalized)
    if len(payload) > _MAX_PAYLOAD_BYTES:
        raise ProfileValidationError(
            f"{context} exceeds max payload size {_MAX_PAYLOAD_BYTES} bytes"
        )
    return payload


def _normalize_address_prefix(prefix: str) -> str:
    return prefix.strip().upper()


def _normalize_uuid(value: str, *, context: str) -> str:
    normalized = value.strip().lower()
    if not _UUID_RE.match(normalized):
        raise ProfileValidationError(f"{context} must be a 128-bit UUID string")
    return normalized


def _normalize_bool(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise ProfileValidationError(f"{context} must be boolean true/false")


def _build_timing(doc: dict[str, Any]) -> Timing:
    defaults = Timing()
    timing = doc.get("timing", {})
    return Timing(
        scan_timeout_s=float(timing.get("scan_timeout_s", defaults.scan_timeout_s)),
        broadcast_grace_s=float(timing.get("broadcast_grace_s", defaults.broadcast_grace_s)),
        min_command_interval_s=float(timing.get("min_command_interval_s", defaults.min_command_interval_s)),
        command_timeout_s=float(timing.get("command_timeout_s", defaults.command_timeout_s)),
        connect_timeout_s=float(timing.get("connect_timeout_s", defaults.connect_timeout_s)),
    )


def _build_profile(doc: dict[str, Any], source: Path | Traversable) -> Profile:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ProfileValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    commands: dict[Command, bytes] = {}
    for command in Command:
        context = f"{doc['id']}.commands.{command.value}"
        commands[command] = _normalize_hex(doc["commands"][command.value], context=context)

    timing = _build_timing(doc)
    if timing.broadcast_grace_s >= timing.scan_timeout_s:
        raise ProfileValidationError(
            f"{doc['id']}.timing.broadcast_grace_s must be shorter than scan_timeout_s"
        )

    return Profile(
        id=doc["id"],
        name=doc["name"],
        service_uuid=_normalize_uuid(doc["service_uuid"], context=f"{doc['id']}.service_uuid"),
        characteristic_uuid=_normalize_uuid(
            doc["characteristic_uuid"],
            context=f"{doc['id']}.characteristic_uuid",
        ),
        commands=commands,
        match=MatchRules(
            name_contains=tuple(doc.get("match", {}).get("name_contains", [])),
            address_prefix=tuple(
                _normalize_address_prefix(p) for p in doc.get("match", {}).get("address_prefix", [])
            ),
        ),
        timing=timing,
        auto_join=_normalize_bool(doc.get("auto_join", True), context=f"{doc['id']}.auto_join"),
    )


def _iter_packaged_profile_paths() -> list[Traversable]:
    profile_root = resources.files("hotspotctl.profiles")
    return [item for item in profile_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_profile_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _profile_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_profiles() -> LoadedProfiles:
    profiles: dict[str, Profile] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_profile_paths(), key=lambda p: p.name):
        doc = _read_yaml(path)
        profile = _build_profile(doc, path)
        profiles[profile.id] = profile

    for path in _iter_user_profile_paths():
        doc = _read_yaml(path)
        profile = _build_profile(doc, path)
        if profile.id in profiles:
            warning = f"User profile '{profile.id}' overrides packaged profile"
            LOGGER.warning(warning)
            warnings.append(warning)
        profiles[profile.id] = profile

    return LoadedProfiles(profiles=profiles, warnings=tuple(warnings))
