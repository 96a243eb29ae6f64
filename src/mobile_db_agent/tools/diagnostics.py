"""Human hints for libimobiledevice failures."""

from __future__ import annotations

_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("installation_proxy", "Could not connect to lockdownd", "PasswordProtected"),
        "Unlock the device, tap 'Trust' on it and enable Developer Mode "
        "(Settings > Privacy & Security) on iOS 16+, then reconnect.",
    ),
    (
        ("No device found", "ERROR: Device", "not found"),
        "Check the USB cable, reconnect the device and re-pair it if needed.",
    ),
    (
        ("usbmuxd",),
        "Restart the device or use a different USB port; on macOS try 'sudo pkill usbmuxd'.",
    ),
    (
        ("house_arrest", "InstallationLookupFailed", "ApplicationLookupFailed"),
        "The app is not installed or does not share its documents (UIFileSharingEnabled).",
    ),
)

GENERIC_HINT = "Unlock the device, trust this computer and reconnect the cable."


def explain_ios_error(message: str) -> str:
    """Return a remediation hint for a physical iOS tool error message."""
    for markers, hint in _HINTS:
        if any(marker in message for marker in markers):
            return hint
    return GENERIC_HINT
