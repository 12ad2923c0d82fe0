"""Storage manager tying together blob storage and the database."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from yinx.storage.blob import BlobStore
from yinx.storage.database import Database, DbStats

__all__ = ["StorageStats", "StorageManager"]

_COMPRESSION_THRESHOLD = 1024
_UNITS = ("B", "KB", "MB", "GB", "TB")


@dataclass(frozen=True)
class StorageStats:
    """Combined database and on-disk storage statistics."""

    db: DbStats
    machine_zone_size: int
    human_zone_size: int

    def total_size(self) -> int:
        return self.machine_zone_size + self.human_zone_size

    @staticmethod
    def format_size(num_bytes: int) -> str:
        """Format a byte count such as ``1536`` as ``"1.50 KB"``."""
        size = float(num_bytes)
        unit = _UNITS[0]
        for unit in _UNITS:
            if size < 1024.0 or unit == _UNITS[-1]:
                break
            size /= 1024.0
        return f"{size:.2f} {unit}"


def _dir_size(path: Path) -> int:
    if not path.is_dir():
        return 0
    total = 0
    for entry in path.iterdir():
        if entry.is_dir():
            total += _dir_size(entry)
        else:
            total += entry.lstat().st_size
    return total


class StorageManager:
    """Owns the machine zone (``store/``) and the human zone (``reports/``)."""

    def __init__(self, base_path: str | os.PathLike[str]) -> None:
        self.base_path = Path(base_path)
        machine_zone = self.machine_zone()
        for directory in (
            machine_zone,
            self.human_zone(),
            machine_zone / "vectors",
            machine_zone / "keywords",
        ):
            directory.mkdir(parents=True, exist_ok=True)
        self.blob_store = BlobStore(machine_zone, _COMPRESSION_THRESHOLD)
        self.database = Database(machine_zone / "db.sqlite")

    def machine_zone(self) -> Path:
        """Internal, rebuildable data."""
        return self.base_path / "store"

    def human_zone(self) -> Path:
        """Reports, evidence and exports."""
        return self.base_path / "reports"

    def session_report_dir(self, session_name: str) -> Path:
        return self.human_zone() / session_name

    def ensure_session_report_dir(self, session_name: str) -> Path:
        """Create the report directory of a session with its evidence and export folders."""
        directory = self.session_report_dir(session_name)
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "evidence").mkdir(parents=True, exist_ok=True)
        (directory / "export").mkdir(parents=True, exist_ok=True)
        return directory

    def stats(self) -> StorageStats:
        return StorageStats(
            db=self.database.stats(),
            machine_zone_size=_dir_size(self.machine_zone()),
            human_zone_size=_dir_size(self.human_zone()),
        )