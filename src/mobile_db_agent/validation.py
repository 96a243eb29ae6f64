"""Validation helpers for user input."""

from __future__ import annotations

import re

from mobile_db_agent.errors import invalid_device_id_error, invalid_package_error

# Android package or Apple bundle id: dot-separated segments, hyphens allowed after the first
PACKAGE_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]*(\.[a-zA-Z0-9_][a-zA-Z0-9_-]*)+$")

# adb serials (emulator-5554, 192.168.1.5:5555, R58M...), UDIDs and simulator UUIDs
DEVICE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:\-]*$")


def validate_package(package: str) -> None:
    """Validate Android package name or Apple bundle identifier format.

    Args:
        package: Package name to validate

    Raises:
        AgentError: If package name is invalid
    """
    if not PACKAGE_PATTERN.match(package):
        raise invalid_package_error(package)


def validate_device_id(device_id: str) -> None:
    """Validate a device id before it is handed to a platform tool.

    Raises:
        AgentError: If the id contains characters a tool argument cannot carry
    """
    if not device_id or not DEVICE_ID_PATTERN.match(device_id):
        raise invalid_device_id_error(device_id)
