from .errors import (
    BackupConflict,
    CollaboratorError,
    DetectionError,
    FilesystemError,
    ShimDeployError,
    TransitionInProgress,
    UnsupportedBackend,
    ValidationError,
)
from .runtime_context import RuntimeContext
from .runtime_kind import RuntimeKind, classify

__all__ = [
  "BackupConflict",
  "CollaboratorError",
  "DetectionError",
  "FilesystemError",
  "RuntimeContext",
  "RuntimeKind",
  "ShimDeployError",
  "TransitionInProgress",
  "UnsupportedBackend",
  "ValidationError",
  "classify",
]
