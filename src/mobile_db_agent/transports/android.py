"""Android transport - adb shell, run-as elevation and exec-out transfers."""

from __future__ import annotations

import asyncio
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from adbutils import AdbError

from mobile_db_agent.config import AgentConfig
from mobile_db_agent.errors import (
    AgentError,
    elevated_copy_error,
    file_not_found_error,
    tool_command_error,
    transfer_failed_error,
)
from mobile_db_agent.models import (
    ApplicationRef,
    DatabaseFileDescriptor,
    DeviceCategory,
    DeviceHandle,
    SandboxLocation,
)
from mobile_db_agent.tools.locator import ADB, ToolLocator
from mobile_db_agent.tools.runner import CommandRunner
from mobile_db_agent.transports.base import (
    DATABASE_EXTENSIONS,
    DeviceFileTransport,
    is_database_file,
)
from mobile_db_agent.validation import validate_device_id, validate_package

if TYPE_CHECKING:
    from adbutils import AdbDevice

logger = structlog.get_logger()

INTERNAL_BASE = "/data/data"
EXTERNAL_BASE = "/sdcard/Android/data"
RUN_AS_ERROR_PREFIX = b"run-as:"


@dataclass(frozen=True)
class StorageRoot:
    """One per-app storage root and the sub-paths searched under it."""

    base: str
    admin: bool
    # (sub-path or None for the root itself, location tag)
    locations: tuple[tuple[str | None, SandboxLocation], ...]

    def app_dir(self, package: str) -> str:
        return f"{self.base}/{package}"


INTERNAL_ROOT = StorageRoot(
    base=INTERNAL_BASE,
    admin=True,
    locations=(
        ("databases", SandboxLocation.DATABASES),
        ("files", SandboxLocation.FILES),
        ("shared_prefs", SandboxLocation.SHARED_PREFS),
        ("app_databases", SandboxLocation.APP_DATABASES),
        ("app_db", SandboxLocation.APP_DB),
        (None, SandboxLocation.ROOT),
    ),
)

EXTERNAL_ROOT = StorageRoot(
    base=EXTERNAL_BASE,
    admin=False,
    locations=(
        ("databases", SandboxLocation.EXTERNAL_DATABASES),
        ("files", SandboxLocation.EXTERNAL_FILES),
        ("shared_prefs", SandboxLocation.EXTERNAL_SHARED_PREFS),
        ("app_databases", SandboxLocation.EXTERNAL_APP_DATABASES),
        ("app_db", SandboxLocation.EXTERNAL_APP_DB),
        (None, SandboxLocation.EXTERNAL_ROOT),
    ),
)

STORAGE_ROOTS = (INTERNAL_ROOT, EXTERNAL_ROOT)
EXTERNAL_LOCATIONS = frozenset(location for _, location in EXTERNAL_ROOT.locations)
EXTERNAL_PREFIXES = ("/sdcard/", "/storage/", "/mnt/sdcard/")


@dataclass
class ShellOutput:
    returncode: int
    output: str


def is_external_path(remote_path: str) -> bool:
    """True for world-readable shared storage that needs no run-as."""
    return remote_path.startswith(EXTERNAL_PREFIXES)


def parse_find_output(output: str, directory: str) -> list[tuple[str, str]]:
    """Return ``(remote_path, relative_path)`` pairs for database files in find output.

    Lines that are not absolute paths (run-as or permission messages) are dropped.
    """
    prefix = directory.rstrip("/") + "/"
    matches: list[tuple[str, str]] = []
    for line in output.splitlines():
        path = line.strip()
        if not path.startswith("/"):
            continue
        name = path.rsplit("/", 1)[-1]
        if not is_database_file(name):
            continue
        relative = path[len(prefix) :] if path.startswith(prefix) else name
        matches.append((path, relative))
    return matches


def manual_push_instructions(
    serial: str, local_path: Path, package: str, temp_path: str, remote_path: str
) -> str:
    return (
        "1. Try manually with these commands:\n"
        f'   adb -s {serial} push "{local_path}" {temp_path}\n'
        f"   adb -s {serial} shell run-as {package} cp {temp_path} {remote_path}\n"
        "\n"
        "2. If that fails, check permissions or try with root:\n"
        f"   adb -s {serial} shell \"su -c 'cp {temp_path} {remote_path}'\"\n"
    )


class AndroidSource(DeviceFileTransport):
    """Android devices and emulators over adb."""

    category = DeviceCategory.ANDROID
    concurrent_transfers = True

    def __init__(
        self,
        runner: CommandRunner,
        locator: ToolLocator,
        config: AgentConfig | None = None,
    ) -> None:
        self.runner = runner
        self.locator = locator
        self.config = config or AgentConfig()

    async def list_applications(self, device: DeviceHandle) -> list[ApplicationRef]:
        """List third-party packages, sorted by package name."""
        validate_device_id(device.id)
        result = await self._shell(device.id, "pm list packages -3")
        if result.returncode != 0:
            raise tool_command_error("pm list packages -3", result.output.strip())

        packages: set[str] = set()
        for line in result.output.splitlines():
            line = line.strip()
            if line.startswith("package:"):
                packages.add(line.removeprefix("package:").strip())
        return [ApplicationRef(bundle_id=pkg, name=pkg) for pkg in sorted(packages) if pkg]

    async def locate_database_files(
        self, device: DeviceHandle, application: ApplicationRef
    ) -> list[DatabaseFileDescriptor]:
        validate_device_id(device.id)
        validate_package(application.bundle_id)
        per_location = await asyncio.gather(
            *(
                self._locate_in_location(device.id, application, root, subpath, location)
                for root in STORAGE_ROOTS
                for subpath, location in root.locations
            )
        )
        return [descriptor for found in per_location for descriptor in found]

    async def pull(self, descriptor: DatabaseFileDescriptor, dest: Path) -> None:
        serial = descriptor.device_id
        remote = descriptor.remote_path
        adb = self.locator.path_for(ADB)
        validate_device_id(serial)

        if descriptor.location in EXTERNAL_LOCATIONS:
            result = await self.runner.run(
                [adb, "-s", serial, "pull", remote, str(dest)],
                timeout=self.config.transfer_timeout,
            )
            if not result.ok:
                raise transfer_failed_error(remote, result.reason)
            return

        package = descriptor.application.bundle_id
        validate_package(package)
        # exec-out keeps binary content intact, unlike shell
        try:
            result = await self.runner.run_to_file(
                [adb, "-s", serial, "exec-out", "run-as", package, "cat", shlex.quote(remote)],
                dest,
                timeout=self.config.transfer_timeout,
            )
        except AgentError:
            # A partial copy without a sidecar would be listed as staged
            dest.unlink(missing_ok=True)
            raise
        if not result.ok or self._starts_with_run_as_error(dest):
            reason = result.stderr.strip() or self._read_error_text(dest)
            dest.unlink(missing_ok=True)
            raise transfer_failed_error(remote, reason or f"exit status {result.returncode}")

    async def push(
        self,
        local_path: Path,
        device_id: str,
        application: ApplicationRef,
        remote_path: str,
    ) -> str:
        if not local_path.is_file():
            raise file_not_found_error(str(local_path))
        validate_device_id(device_id)
        adb = self.locator.path_for(ADB)

        if is_external_path(remote_path):
            result = await self.runner.run(
                [adb, "-s", device_id, "push", str(local_path), remote_path],
                timeout=self.config.transfer_timeout,
            )
            if not result.ok:
                raise transfer_failed_error(remote_path, result.reason)
            logger.info("file_pushed", serial=device_id, local=str(local_path), remote=remote_path)
            return f"Database successfully pushed to {remote_path}"

        package = application.bundle_id
        validate_package(package)
        temp_path = f"{self.config.device_tmp_dir}/{local_path.name}"
        result = await self.runner.run(
            [adb, "-s", device_id, "push", str(local_path), temp_path],
            timeout=self.config.transfer_timeout,
        )
        if not result.ok:
            raise transfer_failed_error(remote_path, result.reason)

        copy_cmd = f"run-as {package} cp {shlex.quote(temp_path)} {shlex.quote(remote_path)}"
        try:
            copied = await self._shell(device_id, copy_cmd)
            reason = copied.output.strip()
            failed = copied.returncode != 0 or bool(reason)
        except AgentError as exc:
            reason = exc.message
            failed = True
        if failed:
            # The temp copy stays on the device so the manual steps can reuse it
            instructions = manual_push_instructions(
                device_id, local_path, package, temp_path, remote_path
            )
            logger.error(
                "elevated_copy_failed",
                serial=device_id,
                package=package,
                temp=temp_path,
                remote=remote_path,
                reason=reason,
            )
            raise elevated_copy_error(
                package, temp_path, remote_path, reason or "run-as cp failed", instructions
            )

        await self._remove_temp(device_id, temp_path)
        logger.info(
            "app_file_pushed", serial=device_id, local=str(local_path), remote=remote_path
        )
        return f"Database successfully pushed to {remote_path}"

    async def _locate_in_location(
        self,
        serial: str,
        application: ApplicationRef,
        root: StorageRoot,
        subpath: str | None,
        location: SandboxLocation,
    ) -> list[DatabaseFileDescriptor]:
        package = application.bundle_id
        app_dir = root.app_dir(package)
        directory = f"{app_dir}/{subpath}" if subpath else app_dir
        command = self._find_command(
            package, directory, admin=root.admin, max_depth=None if subpath else 1
        )
        try:
            result = await self._shell(serial, command)
        except AgentError as exc:
            logger.warning(
                "location_unreachable",
                serial=serial,
                package=package,
                location=location.value,
                reason=exc.message,
            )
            return []
        if result.returncode != 0:
            # Missing directory, permission denied or app not debuggable
            logger.debug(
                "location_query_failed",
                serial=serial,
                package=package,
                location=location.value,
                returncode=result.returncode,
            )
        return [
            DatabaseFileDescriptor(
                device_id=serial,
                device_category=self.category,
                application=application,
                location=location,
                remote_path=remote,
                relative_path=relative,
            )
            for remote, relative in parse_find_output(result.output, directory)
        ]

    @staticmethod
    def _find_command(package: str, directory: str, admin: bool, max_depth: int | None) -> str:
        names = " -o ".join(f"-name '*.{ext}'" for ext in DATABASE_EXTENSIONS)
        depth = f" -maxdepth {max_depth}" if max_depth is not None else ""
        prefix = f"run-as {package} " if admin else ""
        return f"{prefix}find {shlex.quote(directory)}{depth} -type f \\( {names} \\) 2>/dev/null"

    async def _remove_temp(self, serial: str, temp_path: str) -> None:
        try:
            result = await self._shell(serial, f"rm -f {shlex.quote(temp_path)}")
        except AgentError as exc:
            logger.warning("temp_cleanup_failed", serial=serial, temp=temp_path, reason=exc.message)
            return
        if result.returncode != 0:
            logger.warning(
                "temp_cleanup_failed", serial=serial, temp=temp_path, reason=result.output.strip()
            )

    def _adb_device(self, serial: str) -> AdbDevice:
        from adbutils import adb

        return adb.device(serial=serial)

    async def _shell(self, serial: str, command: str) -> ShellOutput:
        def _run() -> ShellOutput:
            device = self._adb_device(serial)
            result = device.shell2(command, timeout=self.config.command_timeout)
            output = getattr(result, "output", "")
            return ShellOutput(
                returncode=int(getattr(result, "returncode", 0)),
                output=output if isinstance(output, str) else str(output),
            )

        try:
            return await asyncio.to_thread(_run)
        except AdbError as exc:
            raise tool_command_error(f"adb -s {serial} shell {command}", str(exc)) from exc

    @staticmethod
    def _starts_with_run_as_error(path: Path) -> bool:
        if not path.exists():
            return True
        with path.open("rb") as handle:
            return handle.read(len(RUN_AS_ERROR_PREFIX)) == RUN_AS_ERROR_PREFIX

    @staticmethod
    def _read_error_text(path: Path) -> str:
        if not path.exists():
            return ""
        with path.open("rb") as handle:
            return handle.read(512).decode("utf-8", errors="replace").strip()
