from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from shimdeploy.core.errors import BackupConflict, FilesystemError

from ._path import PathLike, expand_host_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigFile:
    canonical_path: Path
    backup_path: Path
    existed_before_mutation: bool | None  # None: no backup state recorded yet


class ConfigBackupStore:
    """
    Backup-once / restore-once over single files.

    On-disk layout next to each managed file:
    - <path><suffix>         pristine copy taken before the first mutation
    - <path><suffix>.absent  marker: the file did not exist before the first mutation

    Both survive process restarts, so re-running an install never backs up a
    file the agent itself has already modified.
    """

    def __init__(self, suffix: str = ".bak", absent_suffix: str = ".absent"):
        if not suffix:
            raise ValueError("backup suffix must be non-empty")
        self._suffix = suffix
        self._absent_suffix = absent_suffix

    def backup_path(self, path: PathLike) -> Path:
        p = expand_host_path(path)
        return p.with_name(p.name + self._suffix)

    def absent_marker_path(self, path: PathLike) -> Path:
        b = self.backup_path(path)
        return b.with_name(b.name + self._absent_suffix)

    def describe(self, path: PathLike) -> ConfigFile:
        p = expand_host_path(path)
        backup = self.backup_path(p)
        marker = self.absent_marker_path(p)
        self._check_consistent(p, backup, marker)
        existed: bool | None = None
        if os.path.lexists(backup):
            existed = True
        elif marker.exists():
            existed = False
        return ConfigFile(canonical_path=p, backup_path=backup, existed_before_mutation=existed)

    def has_backup_state(self, path: PathLike) -> bool:
        return self.describe(path).existed_before_mutation is not None

    def backup_once(self, path: PathLike) -> bool:
        """
        Record the pre-mutation state of `path` unless it is already recorded.

        Returns True only when a backup copy was created by this call.
        """
        p = expand_host_path(path)
        if p.is_symlink():
            # Writes would go through the link and restore would replace it with a plain file.
            raise FilesystemError(
                code="fs.symlinked_config",
                message=f"Refusing to manage a symlinked file: {p}",
                data={"path": str(p), "link_target": os.readlink(p)},
            )
        state = self.describe(p)
        if state.existed_before_mutation is not None:
            return False

        try:
            if not p.exists():
                state.backup_path.parent.mkdir(parents=True, exist_ok=True)
                self.absent_marker_path(p).write_bytes(b"")
                logger.info("no pre-existing %s; recorded absence", p)
                return False
            if not p.is_file():
                raise FilesystemError(code="fs.not_a_file", message=f"Cannot back up non-regular file: {p}", data={"path": str(p)})
            shutil.copy2(p, state.backup_path)
        except OSError as e:
            raise FilesystemError(code="fs.backup_failed", message=f"Backup of {p} failed", data={"path": str(p), "error": repr(e)}) from e

        logger.info("backed up %s -> %s", p, state.backup_path)
        return True

    def restore(self, path: PathLike) -> None:
        """
        Put `path` back into its recorded pre-mutation state and consume the record.
        No-op when nothing is recorded.
        """
        p = expand_host_path(path)
        state = self.describe(p)
        marker = self.absent_marker_path(p)
        try:
            if state.existed_before_mutation is True:
                os.replace(state.backup_path, p)
                logger.info("restored %s from %s", p, state.backup_path)
            elif state.existed_before_mutation is False:
                if os.path.lexists(p):
                    p.unlink()
                marker.unlink()
                logger.info("removed %s (absent before install)", p)
        except OSError as e:
            raise FilesystemError(code="fs.restore_failed", message=f"Restore of {p} failed", data={"path": str(p), "error": repr(e)}) from e

    def _check_consistent(self, path: Path, backup: Path, marker: Path) -> None:
        if os.path.lexists(backup) and (backup.is_symlink() or not backup.is_file()):
            raise BackupConflict(
                code="backup.not_a_file",
                message=f"Backup location is occupied by a non-regular file: {backup}",
                data={"path": str(path), "backup_path": str(backup)},
            )
        if os.path.lexists(backup) and os.path.lexists(marker):
            raise BackupConflict(
                code="backup.ambiguous",
                message=f"Both a backup and an absence marker exist for {path}",
                data={"path": str(path), "backup_path": str(backup), "marker_path": str(marker)},
            )
