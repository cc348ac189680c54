from __future__ import annotations

from typing import Any, Dict, Protocol

from shimdeploy.config import AgentConfig
from shimdeploy.core.errors import UnsupportedBackend
from shimdeploy.core.runtime_kind import RuntimeKind
from tools.fs.backup import ConfigBackupStore

from .containerd import ContainerdAdapter
from .crio import CRIOAdapter
from .stanza import ConfigStanza, ToggleDirective


class BackendAdapter(Protocol):
    """
    Capability every backend variant provides.

    Contract: configure() is idempotent (a second call leaves the file
    byte-for-byte unchanged) and cleanup() returns the node to its pre-install
    state. Both return a JSON-able summary of what they did.
    """

    def configure(self) -> Dict[str, Any]: ...

    def cleanup(self) -> Dict[str, Any]: ...

    def status(self) -> Dict[str, Any]: ...


def build_adapter(kind: RuntimeKind, config: AgentConfig) -> BackendAdapter:
    backups = ConfigBackupStore(suffix=config.backup_suffix)
    if kind is RuntimeKind.CRIO:
        c = config.crio
        return CRIOAdapter(
            config_path=c.config_path,
            runtimes=c.runtimes,
            toggle=ToggleDirective(section=c.toggle_section, key=c.toggle_key, value=c.toggle_value),
            backups=backups,
        )
    if kind is RuntimeKind.CONTAINERD:
        d = config.containerd
        return ContainerdAdapter(
            config_path=d.config_path,
            handler=d.handler,
            runtime_type=d.runtime_type,
            shim_link_path=d.shim_link_path,
            shim_target_path=d.shim_target_path,
            shim_backup_path=d.shim_backup_path,
            backups=backups,
        )
    raise UnsupportedBackend(code="backend.unsupported", message=f"No adapter for runtime kind: {kind.value}", data={"kind": kind.value})


__all__ = [
    "BackendAdapter",
    "CRIOAdapter",
    "ConfigStanza",
    "ContainerdAdapter",
    "ToggleDirective",
    "build_adapter",
]
