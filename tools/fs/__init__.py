from .artifacts import ArtifactInstaller
from .backup import ConfigBackupStore, ConfigFile
from .shim_link import ShimLink, ShimLinkManager, ShimLinkState

__all__ = [
    "ArtifactInstaller",
    "ConfigBackupStore",
    "ConfigFile",
    "ShimLink",
    "ShimLinkManager",
    "ShimLinkState",
]
