"""Staging area - local copies of device databases plus provenance sidecars."""

from __future__ import annotations

import json
import shutil
from pathlib import Path, PurePosixPath

import structlog

from mobile_db_agent.errors import provenance_missing_error
from mobile_db_agent.models import DatabaseFileDescriptor, DeviceCategory, ProvenanceRecord

logger = structlog.get_logger()

SIDECAR_SUFFIX = ".meta.json"

_ANDROID_PREFIXES = ("/data/", "/sdcard/", "/storage/")
_SIMULATOR_MARKER = "/CoreSimulator/Devices/"


def sidecar_path(local_path: Path) -> Path:
    return local_path.with_name(local_path.name + SIDECAR_SUFFIX)


def infer_category(remote_path: str) -> DeviceCategory:
    """Guess the device category from a remote path recorded in a sidecar."""
    if remote_path.startswith(_ANDROID_PREFIXES):
        return DeviceCategory.ANDROID
    if _SIMULATOR_MARKER in remote_path:
        return DeviceCategory.IOS_SIMULATOR
    return DeviceCategory.IOS_DEVICE


class StagingArea:
    """One directory of staged copies, cleared at the start of every discovery run.

    Copies are namespaced by sandbox location so that ``databases/app.db`` and
    ``external/files/app.db`` land in different local files.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def reset(self) -> None:
        """Remove and recreate the staging directory."""
        if self.root.exists():
            shutil.rmtree(self.root, ignore_errors=True)
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info("staging_reset", root=str(self.root))

    def path_for(self, descriptor: DatabaseFileDescriptor) -> Path:
        """Local path for a descriptor: ``<root>/<location slug>/<relative path>``."""
        relative = PurePosixPath(descriptor.relative_path or descriptor.filename)
        parts = [part for part in relative.parts if part not in ("", ".", "..", "/")]
        if not parts:
            parts = [descriptor.filename]
        return self.root.joinpath(descriptor.location.slug, *parts)

    def write_provenance(self, local_path: Path, record: ProvenanceRecord) -> Path:
        path = sidecar_path(local_path)
        path.write_text(json.dumps(record.to_json_dict(), indent=2), encoding="utf-8")
        return path

    def read_provenance(self, local_path: Path) -> ProvenanceRecord:
        """Load the sidecar next to ``local_path``.

        Raises:
            AgentError: If the sidecar is missing or unreadable
        """
        path = sidecar_path(local_path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return ProvenanceRecord.from_json_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.error("provenance_unreadable", local=str(local_path), error=str(exc))
            raise provenance_missing_error(str(local_path)) from exc

    def staged_files(self) -> list[Path]:
        """Staged copies currently on disk, sidecars excluded."""
        if not self.root.exists():
            return []
        return sorted(
            path
            for path in self.root.rglob("*")
            if path.is_file() and not path.name.endswith(SIDECAR_SUFFIX)
        )
