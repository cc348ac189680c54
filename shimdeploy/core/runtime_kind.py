from __future__ import annotations

from enum import Enum
from typing import Any

from .errors import DetectionError


class RuntimeKind(str, Enum):
    CRIO = "crio"
    CONTAINERD = "containerd"
    OTHER = "other"

    @property
    def service_name(self) -> str | None:
        # systemd unit names; CRI-O's unit is "crio" even though it reports "cri-o".
        if self is RuntimeKind.OTHER:
            return None
        return self.value


_ALIASES = {
    "cri-o": RuntimeKind.CRIO,
    "crio": RuntimeKind.CRIO,
    "containerd": RuntimeKind.CONTAINERD,
}


def classify(raw: Any) -> RuntimeKind:
    """
    Map a runtime version string such as "containerd://1.4.3" to a RuntimeKind.

    Notes:
    - A bare name without "://<version>" is accepted.
    - Unknown names map to OTHER (known-unsupported, not an error).
    - Empty or malformed input raises DetectionError.
    """
    if not isinstance(raw, str):
        raise DetectionError(code="detect.invalid", message="Runtime version must be a string", data={"value": repr(raw)})

    s = raw.strip()
    if not s:
        raise DetectionError(code="detect.empty", message="Runtime version string is empty")

    name = s.split("://", 1)[0].strip().lower()
    if not name:
        raise DetectionError(code="detect.malformed", message=f"Runtime version has no runtime name: {raw!r}")

    return _ALIASES.get(name, RuntimeKind.OTHER)
