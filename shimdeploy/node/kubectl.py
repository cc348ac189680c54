from __future__ import annotations

import re

from shimdeploy.core.errors import CollaboratorError, DetectionError

from .collaborators import LabelValue
from .commands import run_command

_RUNTIME_VERSION_RE = re.compile(r"^\s*Container Runtime Version:\s*(?P<version>\S*)\s*$", re.MULTILINE)


def parse_runtime_version(describe_output: str) -> str:
    """Extract `Container Runtime Version` from `kubectl describe node` output."""
    m = _RUNTIME_VERSION_RE.search(describe_output)
    if m is None:
        raise DetectionError(code="detect.not_reported", message="Node does not report a container runtime version")
    return m.group("version")


class KubectlNode:
    """
    Node-scoped kubectl calls: runtime discovery and the install-status label.
    """

    def __init__(self, node_name: str, *, label_key: str, kubectl: str = "kubectl", timeout_s: float = 60.0):
        if not node_name:
            raise CollaboratorError(code="node.name_missing", message="Node name is required (set NODE_NAME or --node-name)")
        self._node = node_name
        self._label_key = label_key
        self._kubectl = kubectl
        self._timeout_s = timeout_s

    def runtime_version(self) -> str:
        out = run_command([self._kubectl, "describe", "node", self._node], timeout_s=self._timeout_s)
        return parse_runtime_version(out)

    def set(self, value: LabelValue) -> None:
        run_command(
            [self._kubectl, "label", "node", self._node, "--overwrite", f"{self._label_key}={value.value}"],
            timeout_s=self._timeout_s,
        )

    def clear(self) -> None:
        # Trailing "-" removes the label; kubectl treats a missing label as success.
        run_command([self._kubectl, "label", "node", self._node, f"{self._label_key}-"], timeout_s=self._timeout_s)
