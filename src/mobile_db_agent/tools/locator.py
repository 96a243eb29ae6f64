"""Tool locator - resolve paths to platform binaries."""

from __future__ import annotations

import shutil
import sys
from pathlib import Path

IDEVICE_ID = "idevice_id"
IDEVICEINFO = "ideviceinfo"
IDEVICEINSTALLER = "ideviceinstaller"
AFCCLIENT = "afcclient"

ADB = "adb"
XCRUN = "xcrun"
PLUTIL = "plutil"
EMULATOR = "emulator"

IOS_DEVICE_TOOLS = (IDEVICE_ID, IDEVICEINFO, IDEVICEINSTALLER, AFCCLIENT)
HOST_TOOLS = (ADB, XCRUN, PLUTIL, EMULATOR)


class ToolLocator:
    """Find bundled or installed binaries.

    Lookup order is the configured tools directory, then ``PATH``, then the
    bare command name so the runner can report the tool as unavailable.
    """

    def __init__(self, tools_dir: Path | None = None) -> None:
        self.tools_dir = tools_dir

    def path_for(self, tool: str) -> str:
        return self.resolve(tool) or tool

    def resolve(self, tool: str) -> str | None:
        """Return the resolved path for ``tool`` or None when it cannot be found."""
        name = self._executable_name(tool)
        if self.tools_dir is not None:
            bundled = self.tools_dir / name
            if bundled.is_file():
                return str(bundled)
        return shutil.which(name)

    def check(self) -> dict[str, str | None]:
        """Resolve every known tool, for diagnostics."""
        return {tool: self.resolve(tool) for tool in (*HOST_TOOLS, *IOS_DEVICE_TOOLS)}

    @staticmethod
    def _executable_name(tool: str) -> str:
        if sys.platform == "win32" and not tool.endswith(".exe"):
            return f"{tool}.exe"
        return tool
