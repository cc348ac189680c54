from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
import uuid
from pathlib import Path
from typing import Any, Dict, Tuple

from shimdeploy.config import AgentConfig, load_config
from shimdeploy.contract_store import default_contracts
from shimdeploy.core.errors import ShimDeployError, ValidationError
from shimdeploy.core.lifecycle import LifecycleController
from shimdeploy.core.runtime_context import RuntimeContext
from shimdeploy.core.runtime_kind import RuntimeKind, classify
from shimdeploy.node import KubectlNode, NullLabeler, NullServiceManager, SystemdServiceManager
from shimdeploy.trace.replay import Replay
from shimdeploy.trace.trace_emitter import TraceEmitter
from shimdeploy.trace.trace_store_jsonl import TraceStoreJSONL
from tools.fs.artifacts import ArtifactInstaller

logger = logging.getLogger("shimdeploy")

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _format_cli_error(e: Exception) -> str:
    """
    Print-friendly error formatting.
    - Always includes code/message (via __str__) when it's a ShimDeployError
    - Includes structured `data` payload when present
    """
    if isinstance(e, ShimDeployError) and isinstance(e.data, dict) and e.data:
        return str(e) + "\n" + json.dumps(e.data, ensure_ascii=False, indent=2, default=str)
    return str(e)


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2, default=str))


def _node_name(args: argparse.Namespace) -> str | None:
    return args.node_name or os.environ.get("NODE_NAME") or None


def _kubectl(args: argparse.Namespace, cfg: AgentConfig) -> KubectlNode:
    return KubectlNode(
        _node_name(args) or "",
        label_key=cfg.node.label_key,
        kubectl=cfg.node.kubectl,
        timeout_s=cfg.node.command_timeout_s,
    )


def _resolve_kind(args: argparse.Namespace, cfg: AgentConfig) -> Tuple[str, RuntimeKind]:
    version = args.runtime_version
    if not version:
        if args.offline:
            raise ValidationError(code="cli.invalid", message="--offline requires --runtime-version")
        version = _kubectl(args, cfg).runtime_version()
    return version, classify(version)


def _require_root(args: argparse.Namespace) -> None:
    if args.allow_non_root:
        return
    if hasattr(os, "geteuid") and os.geteuid() != 0:
        raise ValidationError(code="cli.not_root", message="This command must be run as root (or pass --allow-non-root)")


def _build_controller(args: argparse.Namespace, cfg: AgentConfig, ctx: RuntimeContext) -> LifecycleController:
    trace = TraceEmitter(store=TraceStoreJSONL(ctx.trace_path), run_id=ctx.run_id)
    artifacts = None
    if not args.skip_artifacts:
        artifacts = ArtifactInstaller(cfg.artifacts_source_dir, cfg.install_dir)
    if args.offline:
        return LifecycleController(cfg, labeler=NullLabeler(), services=NullServiceManager(), artifacts=artifacts, trace=trace)
    return LifecycleController(
        cfg,
        labeler=_kubectl(args, cfg),
        services=SystemdServiceManager(cfg.node.systemctl, timeout_s=cfg.node.command_timeout_s),
        artifacts=artifacts,
        trace=trace,
    )


def _wait_forever() -> None:
    # Run as a DaemonSet: exiting would make the supervisor re-run the action.
    logger.info("action complete; idling until terminated")
    while True:
        time.sleep(3600)


def cmd_lifecycle(args: argparse.Namespace) -> int:
    _require_root(args)
    cfg = load_config(args.config)
    ctx = RuntimeContext(
        run_id=args.run_id or f"run_{uuid.uuid4().hex[:12]}",
        node_name=_node_name(args),
        trace_path=Path(args.trace or cfg.trace_path),
    )
    version, kind = _resolve_kind(args, cfg)
    logger.info("node %s runs %r (%s)", ctx.node_name or "-", version, kind.value)

    controller = _build_controller(args, cfg, ctx)
    result = getattr(controller, args.action)(kind)
    out: Dict[str, Any] = result.to_dict()

    errors = default_contracts().validate("lifecycle_result.schema.json", out)
    if errors:
        raise ValidationError(code="result.schema_invalid", message="Lifecycle result does not match contract", data={"errors": errors})

    _print_json(dict(out, run_id=ctx.run_id, runtime_version=version))
    if not result.ok:
        # Exit so the supervisor restarts the agent and the action is retried.
        return 1
    if args.wait:
        _wait_forever()
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    version, kind = _resolve_kind(args, cfg)
    controller = LifecycleController(cfg)
    last = Replay(Path(cfg.trace_path)).last_outcome()
    _print_json(dict(controller.status(kind), runtime_version=version, last_outcome=last))
    return 0


def cmd_detect(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    version, kind = _resolve_kind(args, cfg)
    _print_json({"runtime_version": version, "kind": kind.value, "managed": kind is not RuntimeKind.OTHER})
    return 0


def cmd_show_trace(args: argparse.Namespace) -> int:
    path = Path(args.trace or load_config(args.config).trace_path)
    events = list(Replay(path).iter_events(event_type=args.event_type, run_id=args.run_id, action=args.action))

    if args.tail is not None and args.tail >= 0:
        events = events[-args.tail :] if args.tail else []

    for e in events:
        if args.pretty:
            print(json.dumps(e, ensure_ascii=False, indent=2))
        else:
            print(json.dumps(e, ensure_ascii=False))
    return 0


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", help="Agent config YAML (default: $SHIMDEPLOY_CONFIG or /etc/shimdeploy/agent.yml)")
    p.add_argument("--node-name", help="Kubernetes node name (default: $NODE_NAME)")
    p.add_argument("--runtime-version", help="Skip discovery and use this runtime version (e.g. containerd://1.4.3)")
    p.add_argument("--offline", action="store_true", help="Do not call kubectl/systemctl (requires --runtime-version)")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="shimdeploy", description="Install the kata runtime handler into the node's CRI backend")
    parser.add_argument("--log-level", default=os.environ.get("SHIMDEPLOY_LOG_LEVEL", "INFO"), help="Logging level (default: INFO)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    for action, help_text in (
        ("install", "Copy artifacts, configure the runtime handler, restart the backend, label the node"),
        ("cleanup", "Restore backend config and shim link, label the node, remove artifacts"),
        ("reset", "Clear the node label and restart the backend and kubelet (no file changes)"),
    ):
        p = sub.add_parser(action, help=help_text)
        _add_common(p)
        p.add_argument("--trace", help="Trace output path (jsonl) (default: from config)")
        p.add_argument("--run-id", help="Run ID for trace correlation (default: random)")
        p.add_argument("--skip-artifacts", action="store_true", help="Do not copy/remove the runtime payload")
        p.add_argument("--allow-non-root", action="store_true", help="Do not require euid 0")
        p.add_argument("--wait", action="store_true", help="Block after the action completes (DaemonSet mode)")
        p.set_defaults(func=cmd_lifecycle, action=action)

    p_status = sub.add_parser("status", help="Show what is currently applied for the node's backend")
    _add_common(p_status)
    p_status.set_defaults(func=cmd_status)

    p_detect = sub.add_parser("detect", help="Classify the node's container runtime")
    _add_common(p_detect)
    p_detect.set_defaults(func=cmd_detect)

    p_trace = sub.add_parser("show-trace", help="Show trace events from a JSONL file")
    p_trace.add_argument("--config", help="Agent config YAML (for the default trace path)")
    p_trace.add_argument("--trace", help="Trace path (jsonl)")
    p_trace.add_argument("--event-type", help="Filter by event_type")
    p_trace.add_argument("--run-id", help="Filter by run_id")
    p_trace.add_argument("--action", choices=["install", "cleanup", "reset"], help="Filter by lifecycle action")
    p_trace.add_argument("--tail", type=int, help="Show only last N events")
    p_trace.add_argument("--pretty", action="store_true", help="Pretty-print each event as JSON")
    p_trace.set_defaults(func=cmd_show_trace)

    ns = parser.parse_args(argv)
    logging.basicConfig(level=str(ns.log_level).upper(), format=_LOG_FORMAT, stream=sys.stderr)
    try:
        return int(ns.func(ns))
    except Exception as e:  # noqa: BLE001
        print(_format_cli_error(e))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
