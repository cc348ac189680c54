from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ShimDeployError(Exception):
    code: str
    message: str
    data: dict[str, Any] | None = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data:
            out["data"] = dict(self.data)
        return out


class ValidationError(ShimDeployError):
    pass


class DetectionError(ShimDeployError):
    pass


class UnsupportedBackend(ShimDeployError):
    pass


class FilesystemError(ShimDeployError):
    pass


class BackupConflict(ShimDeployError):
    pass


class CollaboratorError(ShimDeployError):
    pass


class TransitionInProgress(ShimDeployError):
    pass
