from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

from shimdeploy.core.errors import FilesystemError
from tools.fs._path import PathLike, expand_host_path
from tools.fs.backup import ConfigBackupStore

from .stanza import (
    ConfigStanza,
    ToggleDirective,
    append_missing_stanzas,
    apply_toggle,
    find_toggle_value,
    runtime_table_stanza,
)

logger = logging.getLogger(__name__)


class CRIOAdapter:
    """
    Append-and-toggle strategy for CRI-O's crio.conf.

    configure() appends one `[crio.runtime.runtimes.<name>]` table per runtime
    handler and sets a boolean in `[crio.runtime]`. cleanup() restores the whole
    file from the backup taken before the first configure().
    """

    def __init__(
        self,
        config_path: PathLike,
        runtimes: Sequence[Tuple[str, str]],
        toggle: ToggleDirective,
        backups: ConfigBackupStore | None = None,
    ):
        self._path = expand_host_path(config_path)
        self._stanzas: List[ConfigStanza] = [
            runtime_table_stanza(f"crio.runtime.runtimes.{name}", "runtime_path", runtime_path) for name, runtime_path in runtimes
        ]
        self._toggle = toggle
        self._backups = backups or ConfigBackupStore()

    @property
    def config_path(self) -> Path:
        return self._path

    @property
    def stanzas(self) -> List[ConfigStanza]:
        return list(self._stanzas)

    def _read(self) -> str:
        try:
            return self._path.read_text(encoding="utf-8") if self._path.exists() else ""
        except OSError as e:
            raise FilesystemError(code="fs.read_failed", message=f"Failed to read {self._path}", data={"error": repr(e)}) from e

    def configure(self) -> Dict[str, Any]:
        self._backups.backup_once(self._path)

        before = self._read()
        after = append_missing_stanzas(before, self._stanzas)
        after = apply_toggle(after, self._toggle)

        changed = after != before
        if changed:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                self._path.write_text(after, encoding="utf-8")
            except OSError as e:
                raise FilesystemError(code="fs.write_failed", message=f"Failed to write {self._path}", data={"error": repr(e)}) from e
            logger.info("added kata runtimes to %s", self._path)
        return {"config_path": str(self._path), "changed": changed}

    def cleanup(self) -> Dict[str, Any]:
        recorded = self._backups.has_backup_state(self._path)
        self._backups.restore(self._path)
        return {"config_path": str(self._path), "restored": recorded}

    def status(self) -> Dict[str, Any]:
        content = self._read()
        return {
            "config_path": str(self._path),
            "exists": self._path.exists(),
            "stanzas": {s.marker: s.present_in(content) for s in self._stanzas},
            "toggle": {"key": self._toggle.key, "value": find_toggle_value(content, self._toggle)},
            "backup": self._backups.describe(self._path).existed_before_mutation,
        }
