from __future__ import annotations

from pathlib import Path

import pytest

from hotspotctl.core.errors import ProfileValidationError
from hotspotctl.core.model import Command
from hotspotctl.core.profile_loader import load_profiles

_VALID = """
id: {id}
name: {name}
service_uuid: "C15ABA22-C32C-4A01-A770-80B82782D92F"
characteristic_uuid: "19a0b431-9e31-41c4-9db0-d8ea70e81501"
commands:
  enable: "{enable}"
  disable: "00"
"""


def _write_profile(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture
def user_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    return tmp_path / "cfg" / "hotspotctl" / "profiles"


def test_load_packaged_profile(user_dir: Path) -> None:
    loaded = load_profiles()
    assert loaded.warnings == ()
    profile = loaded.profiles["android_hotspot"]
    assert profile.service_uuid == "c15aba22-c32c-4a01-a770-80b82782d92f"
    assert profile.characteristic_uuid == "19a0b431-9e31-41c4-9db0-d8ea70e81501"
    assert profile.commands == {Command.ENABLE: b"\x01", Command.DISABLE: b"\x00"}
    assert profile.timing.scan_timeout_s == 30
    assert profile.timing.broadcast_grace_s == 3
    assert profile.timing.min_command_interval_s == 0.5
    assert profile.timing.command_timeout_s == 5
    assert profile.auto_join is True


def test_user_profile_defaults_and_normalization(user_dir: Path) -> None:
    _write_profile(user_dir / "mine.yaml", _VALID.format(id="mine", name="Mine", enable="AA 01"))

    profile = load_profiles().profiles["mine"]
    assert profile.service_uuid == "c15aba22-c32c-4a01-a770-80b82782d92f"
    assert profile.commands[Command.ENABLE] == b"\xaa\x01"
    assert profile.timing.connect_timeout_s == 10
    assert profile.auto_join is True


def test_invalid_hex_in_user_profile_rejected(user_dir: Path) -> None:
    _write_profile(user_dir / "bad.yaml", _VALID.format(id="bad_hex", name="Bad Hex", enable="xyz"))

    with pytest.raises(ProfileValidationError):
        load_profiles()


def test_unquoted_payload_rejected(user_dir: Path) -> None:
    _write_profile(user_dir / "bad.yaml", _VALID.format(id="bad", name="Bad", enable="01").replace('"01"', "01"))

    with pytest.raises(ProfileValidationError, match="commands"):
        load_profiles()


def test_invalid_uuid_rejected(user_dir: Path) -> None:
    content = _VALID.format(id="short_uuid", name="Short", enable="01").replace(
        "C15ABA22-C32C-4A01-A770-80B82782D92F", "180f"
    )
    _write_profile(user_dir / "uuid.yaml", content)

    with pytest.raises(ProfileValidationError, match="service_uuid"):
        load_profiles()


def test_missing_commands_rejected(user_dir: Path) -> None:
    _write_profile(
        user_dir / "missing.yaml",
        """
id: missing
name: Missing
service_uuid: "c15aba22-c32c-4a01-a770-80b82782d92f"
characteristic_uuid: "19a0b431-9e31-41c4-9db0-d8ea70e81501"
commands:
  enable: "01"
""",
    )

    with pytest.raises(ProfileValidationError):
        load_profiles()


def test_grace_must_be_shorter_than_scan_timeout(user_dir: Path) -> None:
    content = _VALID.format(id="slow", name="Slow", enable="01") + "timing:\n  scan_timeout_s: 2\n  broadcast_grace_s: 3\n"
    _write_profile(user_dir / "slow.yaml", content)

    with pytest.raises(ProfileValidationError, match="broadcast_grace_s"):
        load_profiles()


def test_auto_join_can_be_disabled(user_dir: Path) -> None:
    _write_profile(user_dir / "manual.yml", _VALID.format(id="manual", name="Manual", enable="01") + "auto_join: false\n")

    assert load_profiles().profiles["manual"].auto_join is False


def test_user_profile_overrides_packaged(user_dir: Path) -> None:
    content = _VALID.format(id="android_hotspot", name="User Override", enable="02")
    _write_profile(user_dir / "override.yaml", content)

    loaded = load_profiles()
    assert loaded.profiles["android_hotspot"].name == "User Override"
    assert loaded.profiles["android_hotspot"].commands[Command.ENABLE] == b"\x02"
    assert any("overrides" in warning for warning in loaded.warnings)


def test_duplicate_yaml_keys_rejected(user_dir: Path) -> None:
    _write_profile(
        user_dir / "dup.yaml",
        """
id: dup
name: Duplicate
service_uuid: "c15aba22-c32c-4a01-a770-80b82782d92f"
characteristic_uuid: "19a0b431-9e31-41c4-9db0-d8ea70e81501"
commands:
  enable: "01"
  enable: "02"
  disable: "00"
""",
    )

    with pytest.raises(ProfileValidationError):
        load_profiles()
