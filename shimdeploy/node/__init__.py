from .collaborators import (
    LabelValue,
    NodeLabeler,
    NullLabeler,
    NullServiceManager,
    RuntimeVersionSource,
    ServiceManager,
    StaticRuntimeVersion,
)
from .kubectl import KubectlNode, parse_runtime_version
from .systemd import SystemdServiceManager

__all__ = [
    "KubectlNode",
    "LabelValue",
    "NodeLabeler",
    "NullLabeler",
    "NullServiceManager",
    "RuntimeVersionSource",
    "ServiceManager",
    "StaticRuntimeVersion",
    "SystemdServiceManager",
    "parse_runtime_version",
]
