from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from shimdeploy.contract_store import default_contracts
from shimdeploy.core.errors import ValidationError

DEFAULT_CONFIG_PATH = "/etc/shimdeploy/agent.yml"
CONFIG_ENV_VAR = "SHIMDEPLOY_CONFIG"


@dataclass(frozen=True)
class CrioSettings:
    config_path: str = "/etc/crio/crio.conf"
    runtimes: Tuple[Tuple[str, str], ...] = (
        ("kata-qemu", "/opt/kata/bin/kata-qemu"),
        ("kata-fc", "/opt/kata/bin/kata-fc"),
    )
    toggle_section: str = "crio.runtime"
    toggle_key: str = "manage_network_ns_lifecycle"
    toggle_value: Any = True


@dataclass(frozen=True)
class ContainerdSettings:
    config_path: str = "/etc/containerd/config.toml"
    handler: str = "kata"
    runtime_type: str = "io.containerd.kata.v2"
    shim_link_path: str = "/usr/local/bin/containerd-shim-kata-v2"
    shim_target_path: str = "/opt/kata/bin/containerd-shim-kata-v2"
    shim_backup_path: str = "/usr/local/bin/containerd-shim-kata-v2.bak"


@dataclass(frozen=True)
class NodeSettings:
    label_key: str = "katacontainers.io/kata-runtime"
    kubelet_service: str = "kubelet"
    kubectl: str = "kubectl"
    systemctl: str = "systemctl"
    command_timeout_s: float = 60.0


@dataclass(frozen=True)
class AgentConfig:
    """
    Agent configuration. Every field has a default matching a stock node, so an
    empty (or missing) config file is valid.
    """

    install_dir: str = "/opt/kata"
    artifacts_source_dir: str = "/opt/kata-artifacts/opt/kata"
    backup_suffix: str = ".bak"
    trace_path: str = "/var/log/shimdeploy/trace.jsonl"
    crio: CrioSettings = field(default_factory=CrioSettings)
    containerd: ContainerdSettings = field(default_factory=ContainerdSettings)
    node: NodeSettings = field(default_factory=NodeSettings)


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    v = raw.get(name)
    return v if isinstance(v, dict) else {}


def _pick(d: Dict[str, Any], keys: List[str]) -> Dict[str, Any]:
    return {k: d[k] for k in keys if k in d}


def config_from_dict(raw: Dict[str, Any]) -> AgentConfig:
    errors = default_contracts().validate("agent_config.schema.json", raw)
    if errors:
        raise ValidationError(code="config.schema_invalid", message="Config does not match schema", data={"errors": errors})

    crio_raw = _section(raw, "crio")
    crio_kwargs = _pick(crio_raw, ["config_path"])
    if "runtimes" in crio_raw:
        crio_kwargs["runtimes"] = tuple((r["name"], r["runtime_path"]) for r in crio_raw["runtimes"])
    toggle = crio_raw.get("toggle")
    if isinstance(toggle, dict):
        crio_kwargs["toggle_section"] = toggle["section"]
        crio_kwargs["toggle_key"] = toggle["key"]
        crio_kwargs["toggle_value"] = toggle["value"]

    containerd_raw = _section(raw, "containerd")
    containerd_kwargs = _pick(
        containerd_raw,
        ["config_path", "handler", "runtime_type", "shim_link_path", "shim_target_path", "shim_backup_path"],
    )
    node_kwargs = _pick(_section(raw, "node"), ["label_key", "kubelet_service", "kubectl", "systemctl", "command_timeout_s"])

    top = _pick(raw, ["install_dir", "artifacts_source_dir", "backup_suffix", "trace_path"])
    return AgentConfig(
        crio=CrioSettings(**crio_kwargs),
        containerd=ContainerdSettings(**containerd_kwargs),
        node=NodeSettings(**node_kwargs),
        **top,
    )


def load_config(path: Optional[str] = None) -> AgentConfig:
    """
    Load the agent config from YAML.

    Resolution order: explicit path, $SHIMDEPLOY_CONFIG, /etc/shimdeploy/agent.yml.
    Only an explicitly requested file must exist; otherwise defaults apply.
    """
    explicit = path or os.environ.get(CONFIG_ENV_VAR)
    p = Path(explicit or DEFAULT_CONFIG_PATH).expanduser()
    if not p.exists():
        if explicit:
            raise ValidationError(code="config.not_found", message=f"Config not found: {p}")
        return AgentConfig()

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValidationError(code="config.invalid_yaml", message="Failed to parse YAML config", data={"error": repr(e)}) from e
    if raw is None:
        return AgentConfig()
    if not isinstance(raw, dict):
        raise ValidationError(code="config.invalid", message="Config must be a YAML mapping/object at top-level")
    return config_from_dict(raw)
