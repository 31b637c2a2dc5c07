"""
Local file utilities.

Hashing, existence checks, policy-driven writes and timestamped backups
with retention pruning for the local copies of variable files.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .errors import AlreadyExistsError, NotFoundError, TfvarenvError
from .util import utc_now

logger = logging.getLogger(__name__)

DEFAULT_BACKUP_DIR = ".backups"
DEFAULT_TIME_FORMAT = "%Y%m%d%H%M%S"
DEFAULT_MAX_BACKUPS = 10
_CHUNK = 64 * 1024


@dataclass(frozen=True)
class FileInfo:
    path: Path
    hash: str
    size: int
    modified_at: datetime


class FileUtils:
    """Filesystem operations on local variable files."""

    @staticmethod
    def compute_hash(content: bytes) -> str:
        """Hex-encoded sha256 of raw bytes."""
        return hashlib.sha256(content).hexdigest()

    def calculate_hash(self, path: str | Path) -> str:
        """Hex-encoded sha256 of a file's bytes."""
        path = Path(path)
        digest = hashlib.sha256()
        try:
            with path.open("rb") as f:
                for chunk in iter(lambda: f.read(_CHUNK), b""):
                    digest.update(chunk)
        except FileNotFoundError as e:
            raise NotFoundError(f"File not found: {path}") from e
        except OSError as e:
            raise TfvarenvError(f"Failed to read {path}: {e}") from e
        return digest.hexdigest()

    def file_exists(self, path: str | Path) -> bool:
        return Path(path).is_file()

    def read_file(self, path: str | Path) -> bytes:
        path = Path(path)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise NotFoundError(f"File not found: {path}") from e
        except OSError as e:
            raise TfvarenvError(f"Failed to read {path}: {e}") from e

    def ensure_directory(self, path: str | Path) -> Path:
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def write_file(
        self,
        path: str | Path,
        content: bytes,
        *,
        create_dirs: bool = True,
        overwrite: bool = False,
    ) -> None:
        """
        Write bytes to a file.

        Args:
            path: Destination path
            content: Bytes to write
            create_dirs: Create missing parent directories
            overwrite: Replace an existing file; otherwise AlreadyExistsError

        The write goes to a sibling temp file that is then renamed into
        place, so readers never observe a half-written file.
        """
        path = Path(path)
        if path.exists() and not overwrite:
            raise AlreadyExistsError(f"File already exists: {path}")
        if create_dirs:
            self.ensure_directory(path.parent)
        elif not path.parent.is_dir():
            raise NotFoundError(f"Directory does not exist: {path.parent}")

        temp_path = path.with_name(f".{path.name}.tmp")
        try:
            temp_path.write_bytes(content)
            temp_path.replace(path)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise TfvarenvError(f"Failed to write {path}: {e}") from e

    def copy_file(self, src: str | Path, dst: str | Path, *, overwrite: bool = False) -> None:
        self.write_file(dst, self.read_file(src), create_dirs=True, overwrite=overwrite)

    def get_file_info(self, path: str | Path) -> FileInfo:
        path = Path(path)
        try:
            stat = path.stat()
        except FileNotFoundError as e:
            raise NotFoundError(f"File not found: {path}") from e
        return FileInfo(
            path=path,
            hash=self.calculate_hash(path),
            size=stat.st_size,
            modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    def create_backup(
        self,
        path: str | Path,
        base_path: str | Path = DEFAULT_BACKUP_DIR,
        *,
        time_format: str = DEFAULT_TIME_FORMAT,
        max_backups: int = DEFAULT_MAX_BACKUPS,
    ) -> Path:
        """
        Copy a file into ``base_path`` as ``{name}.{timestamp}.bak``.

        Backups of the same file beyond ``max_backups`` are pruned oldest
        first. Returns the path of the new backup.
        """
        path = Path(path)
        if not path.is_file():
            raise NotFoundError(f"File not found: {path}")

        backup_dir = self.ensure_directory(base_path)
        stamp = utc_now().strftime(time_format)
        backup_path = backup_dir / f"{path.name}.{stamp}.bak"
        counter = 1
        while backup_path.exists():
            backup_path = backup_dir / f"{path.name}.{stamp}_{counter:03d}.bak"
            counter += 1

        try:
            shutil.copyfile(path, backup_path)
        except OSError as e:
            raise TfvarenvError(f"Failed to back up {path}: {e}") from e
        logger.debug(f"backed up {path} -> {backup_path}")

        if max_backups > 0:
            self._prune_backups(backup_dir, path.name, max_backups)
        return backup_path

    def list_backups(self, base_path: str | Path, name: str) -> list[Path]:
        """Backups of ``name`` in ``base_path``, newest first."""
        backup_dir = Path(base_path)
        if not backup_dir.is_dir():
            return []
        backups = [p for p in backup_dir.glob(f"{name}.*.bak") if p.is_file()]
        backups.sort(key=lambda p: (p.stat().st_mtime_ns, p.name), reverse=True)
        return backups

    def _prune_backups(self, backup_dir: Path, name: str, max_backups: int) -> None:
        for old in self.list_backups(backup_dir, name)[max_backups:]:
            try:
                old.unlink()
            except OSError as e:
                logger.warning(f"Failed to remove old backup {old}: {e}")
