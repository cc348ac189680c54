from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

from shimdeploy.core.errors import FilesystemError
from tools.fs._path import PathLike, expand_host_path
from tools.fs.backup import ConfigBackupStore
from tools.fs.shim_link import ShimLinkManager

from .stanza import format_toml_value

logger = logging.getLogger(__name__)


def render_runtime_block(handler: str, runtime_type: str) -> str:
    return (
        "[plugins]\n"
        "  [plugins.cri]\n"
        "    [plugins.cri.containerd]\n"
        f"      [plugins.cri.containerd.runtimes.{handler}]\n"
        f"        runtime_type = {format_toml_value(runtime_type)}\n"
    )


class ContainerdAdapter:
    """
    Whole-file strategy for containerd's config.toml.

    While installed the agent owns the entire file: any pre-existing config is
    moved into the backup and restored verbatim by cleanup(). containerd
    locates v2 shims by name on $PATH, so the shim binary is also exposed
    through a symlink.
    """

    def __init__(
        self,
        config_path: PathLike,
        handler: str,
        runtime_type: str,
        shim_link_path: PathLike,
        shim_target_path: PathLike,
        shim_backup_path: PathLike,
        backups: ConfigBackupStore | None = None,
        links: ShimLinkManager | None = None,
    ):
        self._path = expand_host_path(config_path)
        self._block = render_runtime_block(handler, runtime_type)
        self._link = expand_host_path(shim_link_path)
        self._target = expand_host_path(shim_target_path)
        self._link_backup = expand_host_path(shim_backup_path)
        self._backups = backups or ConfigBackupStore()
        self._links = links or ShimLinkManager()

    @property
    def config_path(self) -> Path:
        return self._path

    @property
    def block(self) -> str:
        return self._block

    def configure(self) -> Dict[str, Any]:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(code="fs.mkdir_failed", message=f"Failed to create {self._path.parent}", data={"error": repr(e)}) from e

        backed_up = self._backups.backup_once(self._path)

        changed = True
        try:
            if self._path.is_file() and self._path.read_text(encoding="utf-8") == self._block:
                changed = False
            else:
                self._path.write_text(self._block, encoding="utf-8")
        except OSError as e:
            raise FilesystemError(code="fs.write_failed", message=f"Failed to write {self._path}", data={"error": repr(e)}) from e
        if changed:
            logger.info("wrote kata runtime config to %s", self._path)

        link = self._links.ensure_linked(self._link, self._target, self._link_backup)
        return {"config_path": str(self._path), "changed": changed, "backed_up": backed_up, "shim": link.to_dict()}

    def _owns_file(self) -> bool:
        try:
            return self._path.is_file() and self._path.read_text(encoding="utf-8") == self._block
        except OSError as e:
            raise FilesystemError(code="fs.read_failed", message=f"Failed to read {self._path}", data={"error": repr(e)}) from e

    def cleanup(self) -> Dict[str, Any]:
        recorded = self._backups.describe(self._path).existed_before_mutation

        # Only a file this agent wrote is deleted; without a backup record the
        # file on disk is the operator's (never installed, or already restored).
        removed = False
        if recorded is not None or self._owns_file():
            # Delete first, then restore: a failure in between leaves no agent-written file behind.
            try:
                removed = self._path.exists()
                self._path.unlink(missing_ok=True)
            except OSError as e:
                raise FilesystemError(code="fs.delete_failed", message=f"Failed to delete {self._path}", data={"error": repr(e)}) from e
        else:
            logger.info("no backup record for %s; leaving it untouched", self._path)

        restored = recorded is True
        self._backups.restore(self._path)

        link = self._links.ensure_unlinked(self._link, self._link_backup, self._target)
        return {"config_path": str(self._path), "removed": removed, "restored": restored, "shim": link.to_dict()}

    def status(self) -> Dict[str, Any]:
        try:
            content = self._path.read_text(encoding="utf-8") if self._path.is_file() else None
        except OSError as e:
            raise FilesystemError(code="fs.read_failed", message=f"Failed to read {self._path}", data={"error": repr(e)}) from e
        return {
            "config_path": str(self._path),
            "exists": content is not None,
            "owned": content == self._block,
            "backup": self._backups.describe(self._path).existed_before_mutation,
            "shim": self._links.inspect(self._link, self._target, self._link_backup).to_dict(),
        }
