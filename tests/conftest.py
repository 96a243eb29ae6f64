"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from mobile_db_agent.config import AgentConfig
from mobile_db_agent.errors import tool_not_found_error
from mobile_db_agent.tools.runner import CommandResult


class FakeRunner:
    """Stand-in for CommandRunner that answers from a scripted table.

    ``responses`` maps a tuple prefix of the argument list (tool name first,
    already resolved to the bare name) to a CommandResult or a callable.
    """

    def __init__(self, responses: dict[tuple[str, ...], Any] | None = None) -> None:
        self.responses = responses or {}
        self.calls: list[list[str]] = []
        self.inputs: list[str | None] = []
        self.file_writes: dict[str, bytes] = {}

    def _lookup(self, args: list[str]) -> Any:
        best: tuple[str, ...] | None = None
        for prefix in self.responses:
            if tuple(args[: len(prefix)]) == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is None:
            raise tool_not_found_error(args[0])
        return self.responses[best]

    async def run(
        self,
        args: list[str],
        *,
        input_text: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        self.calls.append(list(args))
        self.inputs.append(input_text)
        answer = self._lookup(args)
        if isinstance(answer, BaseException):
            raise answer
        if callable(answer):
            answer = answer(args)
        return answer

    async def run_checked(
        self,
        args: list[str],
        *,
        input_text: str | None = None,
        timeout: float | None = None,
        hint: str | None = None,
    ) -> CommandResult:
        from mobile_db_agent.errors import tool_command_error

        result = await self.run(args, input_text=input_text, timeout=timeout)
        if not result.ok:
            raise tool_command_error(" ".join(args), result.reason, hint)
        return result

    async def run_to_file(
        self, args: list[str], dest: Path, *, timeout: float | None = None
    ) -> CommandResult:
        self.calls.append(list(args))
        answer = self._lookup(args)
        if isinstance(answer, BaseException):
            raise answer
        content, returncode, stderr = answer(args) if callable(answer) else answer
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(content)
        return CommandResult(args=list(args), returncode=returncode, stdout="", stderr=stderr)


def ok(stdout: str = "") -> CommandResult:
    return CommandResult(args=[], returncode=0, stdout=stdout, stderr="")


def failed(stderr: str = "boom", returncode: int = 1) -> CommandResult:
    return CommandResult(args=[], returncode=returncode, stdout="", stderr=stderr)


class BareLocator:
    """Locator that resolves every tool to its bare name."""

    def path_for(self, tool: str) -> str:
        return tool

    def check(self) -> dict[str, str | None]:
        return {"adb": "/usr/bin/adb", "afcclient": None}


@pytest.fixture
def fake_runner_factory() -> Callable[..., FakeRunner]:
    return FakeRunner


@pytest.fixture
def locator() -> BareLocator:
    return BareLocator()


@pytest.fixture
def agent_config(tmp_path: Path) -> AgentConfig:
    """Config with a per-test staging directory."""
    return AgentConfig(staging_dir=tmp_path / "staging")
