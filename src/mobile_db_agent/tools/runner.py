"""Command runner - bounded subprocess execution off the event loop."""

from __future__ import annotations

import asyncio
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path

import structlog

from mobile_db_agent.config import DEFAULT_COMMAND_TIMEOUT
from mobile_db_agent.errors import timeout_error, tool_command_error, tool_not_found_error

logger = structlog.get_logger()


@dataclass
class CommandResult:
    """Exit status and decoded output of one process."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def reason(self) -> str:
        return (self.stderr or self.stdout or f"exit status {self.returncode}").strip()


class CommandRunner:
    """Run external tools in a worker thread with a hard timeout.

    ``subprocess.run`` kills the child when the timeout expires, so a hung
    tool never blocks its caller forever.
    """

    def __init__(self, timeout: float = DEFAULT_COMMAND_TIMEOUT) -> None:
        self.timeout = timeout

    async def run(
        self,
        args: list[str],
        *,
        input_text: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        limit = timeout or self.timeout

        def _run() -> subprocess.CompletedProcess[str]:
            return subprocess.run(
                args,
                input=input_text,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=limit,
                check=False,
            )

        try:
            completed = await asyncio.to_thread(_run)
        except (FileNotFoundError, PermissionError) as exc:
            raise tool_not_found_error(args[0]) from exc
        except subprocess.TimeoutExpired as exc:
            logger.error("command_timeout", command=_display(args), timeout_s=limit)
            raise timeout_error(_display(args), limit) from exc

        result = CommandResult(
            args=list(args),
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        logger.debug("command_finished", command=_display(args), returncode=result.returncode)
        return result

    async def run_checked(
        self,
        args: list[str],
        *,
        input_text: str | None = None,
        timeout: float | None = None,
        hint: str | None = None,
    ) -> CommandResult:
        result = await self.run(args, input_text=input_text, timeout=timeout)
        if not result.ok:
            raise tool_command_error(_display(args), result.reason, hint)
        return result

    async def run_to_file(
        self,
        args: list[str],
        dest: Path,
        *,
        timeout: float | None = None,
    ) -> CommandResult:
        """Stream raw stdout bytes into ``dest``; stdout in the result stays empty."""
        limit = timeout or self.timeout

        def _run() -> subprocess.CompletedProcess[bytes]:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with dest.open("wb") as handle:
                try:
                    return subprocess.run(
                        args,
                        stdout=handle,
                        stderr=subprocess.PIPE,
                        timeout=limit,
                        check=False,
                    )
                except (FileNotFoundError, PermissionError) as exc:
                    raise tool_not_found_error(args[0]) from exc

        try:
            completed = await asyncio.to_thread(_run)
        except subprocess.TimeoutExpired as exc:
            logger.error("command_timeout", command=_display(args), timeout_s=limit)
            raise timeout_error(_display(args), limit) from exc

        stderr = completed.stderr.decode("utf-8", errors="replace") if completed.stderr else ""
        return CommandResult(
            args=list(args), returncode=completed.returncode, stdout="", stderr=stderr
        )


def _display(args: list[str]) -> str:
    return " ".join(shlex.quote(arg) for arg in args)
