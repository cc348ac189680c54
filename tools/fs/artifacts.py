from __future__ import annotations

import logging
import os
import shutil
import stat
from pathlib import Path
from typing import Any, Dict

from shimdeploy.core.errors import FilesystemError

from ._path import PathLike, expand_host_path

logger = logging.getLogger(__name__)

_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


class ArtifactInstaller:
    """
    Copies the runtime payload (binaries, configuration, kernel/images) from the
    agent image onto the host, and removes it again.
    """

    def __init__(self, source_dir: PathLike, install_dir: PathLike):
        self._source = expand_host_path(source_dir)
        self._dest = expand_host_path(install_dir)

    @property
    def install_dir(self) -> Path:
        return self._dest

    def install(self) -> Dict[str, Any]:
        if not self._source.is_dir():
            raise FilesystemError(
                code="fs.artifacts_missing",
                message=f"Artifact source directory not found: {self._source}",
                data={"source_dir": str(self._source)},
            )
        try:
            self._dest.mkdir(parents=True, exist_ok=True)
            shutil.copytree(self._source, self._dest, symlinks=True, dirs_exist_ok=True)
            made_executable = []
            bin_dir = self._dest / "bin"
            if bin_dir.is_dir():
                for p in sorted(bin_dir.iterdir()):
                    if p.is_file() and not p.is_symlink():
                        p.chmod(p.stat().st_mode | _EXEC_BITS)
                        made_executable.append(p.name)
        except OSError as e:
            raise FilesystemError(
                code="fs.artifacts_copy_failed",
                message=f"Failed to copy artifacts into {self._dest}",
                data={"source_dir": str(self._source), "install_dir": str(self._dest), "error": repr(e)},
            ) from e

        logger.info("copied artifacts %s -> %s", self._source, self._dest)
        return {"install_dir": str(self._dest), "executables": made_executable}

    def remove(self) -> Dict[str, Any]:
        existed = os.path.lexists(self._dest)
        try:
            if self._dest.is_symlink() or self._dest.is_file():
                self._dest.unlink()
            elif existed:
                shutil.rmtree(self._dest)
        except OSError as e:
            raise FilesystemError(
                code="fs.artifacts_remove_failed",
                message=f"Failed to remove {self._dest}",
                data={"install_dir": str(self._dest), "error": repr(e)},
            ) from e

        if existed:
            logger.info("deleted artifacts in %s", self._dest)
        return {"install_dir": str(self._dest), "removed": existed}
