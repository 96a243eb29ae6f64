"""Tests for validation helpers."""

from __future__ import annotations

import pytest

from mobile_db_agent.errors import AgentError


class TestValidatePackage:
    """Tests for validate_package."""

    def test_valid_package(self) -> None:
        """Should accept Android packages and Apple bundle ids."""
        from mobile_db_agent.validation import validate_package

        # Should not raise
        validate_package("com.example.app")
        validate_package("com.example.my_app")
        validate_package("org.test.App123")
        validate_package("com.acme.notes-lite")

    def test_invalid_package_spaces(self) -> None:
        """Should reject package with spaces."""
        from mobile_db_agent.validation import validate_package

        with pytest.raises(AgentError) as exc_info:
            validate_package("com.example app")

        assert exc_info.value.code == "ERR_INVALID_PACKAGE"

    def test_invalid_package_shell_chars(self) -> None:
        """Should reject characters that would reach a device shell."""
        from mobile_db_agent.validation import validate_package

        with pytest.raises(AgentError) as exc_info:
            validate_package("com.example;rm")

        assert exc_info.value.code == "ERR_INVALID_PACKAGE"

    def test_invalid_package_single_segment(self) -> None:
        """Should reject a name without dots."""
        from mobile_db_agent.validation import validate_package

        with pytest.raises(AgentError):
            validate_package("example")


class TestValidateDeviceId:
    """Tests for validate_device_id."""

    def test_valid_ids(self) -> None:
        """Should accept serials, network addresses and UDIDs."""
        from mobile_db_agent.validation import validate_device_id

        validate_device_id("emulator-5554")
        validate_device_id("192.168.1.5:5555")
        validate_device_id("00008030-001A2B3C4D5E802E")
        validate_device_id("5B1E6A3C-7D2F-4E8A-9C1B-2D3E4F5A6B7C")

    def test_empty_id(self) -> None:
        """Should reject an empty id."""
        from mobile_db_agent.validation import validate_device_id

        with pytest.raises(AgentError) as exc_info:
            validate_device_id("")

        assert exc_info.value.code == "ERR_INVALID_DEVICE_ID"

    def test_option_like_id(self) -> None:
        """Should reject ids that a tool would parse as a flag."""
        from mobile_db_agent.validation import validate_device_id

        with pytest.raises(AgentError):
            validate_device_id("-l")
