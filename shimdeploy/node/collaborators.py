from __future__ import annotations

from enum import Enum
from typing import List, Protocol, Tuple


class LabelValue(str, Enum):
    INSTALLING = "installing"
    INSTALLED = "true"
    CLEANUP = "cleanup"
    ERROR = "error"


class NodeLabeler(Protocol):
    def set(self, value: LabelValue) -> None: ...

    def clear(self) -> None: ...


class ServiceManager(Protocol):
    def restart(self, unit: str) -> None: ...


class RuntimeVersionSource(Protocol):
    def runtime_version(self) -> str: ...


class NullLabeler:
    """Labeler for runs without an orchestrator (records calls only)."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, str | None]] = []

    def set(self, value: LabelValue) -> None:
        self.calls.append(("set", value.value))

    def clear(self) -> None:
        self.calls.append(("clear", None))


class NullServiceManager:
    def __init__(self) -> None:
        self.restarted: List[str] = []

    def restart(self, unit: str) -> None:
        self.restarted.append(unit)


class StaticRuntimeVersion:
    def __init__(self, version: str):
        self._version = version

    def runtime_version(self) -> str:
        return self._version
