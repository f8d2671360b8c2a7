"""Device-to-profile matching and target selection."""

from __future__ import annotations

from collections.abc import Sequence

from hotspotctl.core.errors import DeviceSelectionError
from hotspotctl.core.model import DiscoveredDevice, Profile


def _address_prefix_match(identity: str, profile: Profile) -> bool:
    upper_identity = identity.upper()
    return any(upper_identity.startswith(prefix) for prefix in profile.match.address_prefix)


def _name_contains_match(device_name: str, profile: Profile) -> bool:
    lower_name = device_name.lower()
    return any(token.lower() in lower_name for token in profile.match.name_contains)


def match_score(device: DiscoveredDevice, profile: Profile) -> int:
    score = 0
    if profile.service_uuid in device.advertised_services:
        score += 4
    if _address_prefix_match(device.identity, profile):
        score += 2
    if _name_contains_match(device.name, profile):
        score += 1
    return score


def hint_matches(device: DiscoveredDevice, hint: str) -> bool:
    lowered = hint.lower()
    return lowered in device.identity.lower() or lowered in device.name.lower()


def select_device(
    devices: Sequence[DiscoveredDevice],
    profile: Profile,
    device_hint: str | None = None,
) -> DiscoveredDevice | None:
    """Pick the target among discovered devices.

    With a hint, only hinted devices qualify and an exact identity match wins.
    Without one, devices advertising the profile service or matching its rules
    qualify and the best score wins. Returns None when nothing qualifies yet
    and raises `DeviceSelectionError` when the choice is ambiguous.
    """
    if device_hint:
        exact = [d for d in devices if d.identity.lower() == device_hint.lower()]
        if exact:
            return exact[0]
        candidates = [d for d in devices if hint_matches(d, device_hint)]
    else:
        scored = [(match_score(d, profile), d) for d in devices]
        best_score = max((score for score, _ in scored), default=0)
        candidates = [d for score, d in scored if score and score == best_score]

    if not candidates:
        return None
    if len(candidates) > 1:
        candidate_desc = ", ".join(f"{d.identity} ({d.name})" for d in candidates)
        raise DeviceSelectionError(
            f"Multiple candidate devices found: {candidate_desc}. Use --device to choose one."
        )
    return candidates[0]
