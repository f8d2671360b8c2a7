"""Domain-specific errors for hotspotctl."""


class HotspotctlError(Exception):
    """Base error for hotspotctl."""


class ProfileValidationError(HotspotctlError):
    """Raised when a profile file does not conform to schema or semantics."""


class ProfileLoadError(HotspotctlError):
    """Raised when loading profile sources fails."""


class DeviceSelectionError(HotspotctlError):
    """Raised when device matching cannot resolve a single target."""


class CommandError(HotspotctlError):
    """Raised when a hotspot command did not complete successfully."""


class TransportError(HotspotctlError):
    """Base transport error."""


class TransportUnavailableError(TransportError):
    """Raised when the Bluetooth radio is off, unauthorized or unsupported."""


class TransportConnectError(TransportError):
    """Raised on BLE connect or negotiation failures."""


class TransportTimeoutError(TransportError):
    """Raised when waiting on the BLE peer times out."""


class NetworkJoinError(HotspotctlError):
    """Raised when the OS network-join facility reports a failure."""
