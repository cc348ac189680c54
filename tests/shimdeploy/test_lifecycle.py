import json
import os
import tempfile
import unittest
from pathlib import Path
from typing import Any, Dict

from shimdeploy.config import AgentConfig, ContainerdSettings, CrioSettings
from shimdeploy.contract_store import default_contracts
from shimdeploy.core.errors import CollaboratorError, FilesystemError
from shimdeploy.core.lifecycle import Action, LifecycleController, LifecycleState
from shimdeploy.core.runtime_kind import RuntimeKind
from shimdeploy.node.collaborators import NullLabeler, NullServiceManager
from shimdeploy.trace.trace_emitter import TraceEmitter
from shimdeploy.trace.trace_store_jsonl import TraceStoreJSONL
from tools.fs.artifacts import ArtifactInstaller


class _FailingAdapter:
    def configure(self) -> Dict[str, Any]:
        raise FilesystemError(code="fs.write_failed", message="disk full")

    def cleanup(self) -> Dict[str, Any]:
        raise FilesystemError(code="fs.delete_failed", message="read-only filesystem")

    def status(self) -> Dict[str, Any]:
        return {}


class _FailingLabeler(NullLabeler):
    def set(self, value) -> None:
        super().set(value)
        raise CollaboratorError(code="command.failed", message="kubectl failed")


class TestLifecycleController(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name)
        self.shim_target = self.root / "opt" / "kata" / "bin" / "containerd-shim-kata-v2"
        self.config = AgentConfig(
            install_dir=str(self.root / "opt" / "kata"),
            artifacts_source_dir=str(self.root / "payload"),
            crio=CrioSettings(config_path=str(self.root / "etc" / "crio" / "crio.conf")),
            containerd=ContainerdSettings(
                config_path=str(self.root / "etc" / "containerd" / "config.toml"),
                shim_link_path=str(self.root / "usr" / "local" / "bin" / "containerd-shim-kata-v2"),
                shim_target_path=str(self.shim_target),
                shim_backup_path=str(self.root / "usr" / "local" / "bin" / "containerd-shim-kata-v2.bak"),
            ),
        )
        self.labeler = NullLabeler()
        self.services = NullServiceManager()
        self.trace_path = self.root / "trace.jsonl"

    def tearDown(self) -> None:
        self._td.cleanup()

    def _controller(self, **kwargs: Any) -> LifecycleController:
        kwargs.setdefault("labeler", self.labeler)
        kwargs.setdefault("services", self.services)
        kwargs.setdefault("trace", TraceEmitter(store=TraceStoreJSONL(self.trace_path), run_id="run_test"))
        return LifecycleController(self.config, **kwargs)

    def _events(self):
        return [json.loads(l) for l in self.trace_path.read_text(encoding="utf-8").splitlines() if l.strip()]

    def test_containerd_fresh_node_install_then_cleanup(self) -> None:
        controller = self._controller()
        config_path = Path(self.config.containerd.config_path)
        link = Path(self.config.containerd.shim_link_path)

        result = controller.install(RuntimeKind.CONTAINERD)
        self.assertTrue(result.ok, result.errors)
        self.assertEqual(result.state, LifecycleState.INSTALLED)
        self.assertEqual(controller.state, LifecycleState.INSTALLED)
        self.assertIn("runtime_type = \"io.containerd.kata.v2\"", config_path.read_text(encoding="utf-8"))
        self.assertTrue(link.is_symlink())
        self.assertEqual(self.services.restarted, ["containerd"])
        self.assertEqual(self.labeler.calls, [("set", "installing"), ("set", "true")])

        result = controller.cleanup(RuntimeKind.CONTAINERD)
        self.assertTrue(result.ok, result.errors)
        self.assertEqual(result.state, LifecycleState.CLEANED_UP)
        self.assertFalse(config_path.exists())
        self.assertFalse(os.path.lexists(link))
        cleanup_out = result.steps[0]["output"]
        self.assertFalse(cleanup_out["restored"])
        self.assertEqual(self.labeler.calls[-1], ("set", "cleanup"))

    def test_crio_install_twice_then_cleanup_round_trips(self) -> None:
        conf = Path(self.config.crio.config_path)
        conf.parent.mkdir(parents=True)
        original = "[crio.runtime]\nconmon = \"/usr/bin/conmon\"\n"
        conf.write_text(original, encoding="utf-8")
        controller = self._controller()

        controller.install(RuntimeKind.CRIO)
        first = conf.read_bytes()
        result = controller.install(RuntimeKind.CRIO)
        self.assertTrue(result.ok)
        self.assertEqual(conf.read_bytes(), first)
        self.assertEqual(self.services.restarted, ["crio", "crio"])

        controller.cleanup(RuntimeKind.CRIO)
        self.assertEqual(conf.read_text(encoding="utf-8"), original)

    def test_other_runtime_is_successful_noop(self) -> None:
        controller = self._controller()
        for fn in (controller.install, controller.cleanup, controller.reset):
            result = fn(RuntimeKind.OTHER)
            self.assertTrue(result.ok)
            self.assertTrue(result.skipped)
            self.assertEqual(result.state, LifecycleState.UNINSTALLED)
        self.assertEqual(self.labeler.calls, [])
        self.assertEqual(self.services.restarted, [])
        self.assertEqual({e["event_type"] for e in self._events()}, {"transition_skipped"})

    def test_adapter_failure_aborts_and_reports(self) -> None:
        controller = self._controller(adapter_factory=lambda kind, cfg: _FailingAdapter())

        result = controller.install(RuntimeKind.CRIO)
        self.assertFalse(result.ok)
        self.assertEqual(result.state, LifecycleState.INSTALLING)
        self.assertEqual(result.errors[0]["code"], "fs.write_failed")
        self.assertEqual(result.errors[0]["step"], "configure_runtime")
        self.assertEqual(self.services.restarted, [])
        self.assertEqual(self.labeler.calls[-1], ("set", "error"))
        self.assertIn("error", [e["event_type"] for e in self._events()])

        # A failed transition does not block the next invocation.
        result = controller.cleanup(RuntimeKind.CRIO)
        self.assertFalse(result.ok)
        self.assertEqual(result.state, LifecycleState.CLEANING_UP)

    def test_label_failure_is_reported_without_masking_cause(self) -> None:
        controller = self._controller(labeler=_FailingLabeler())
        result = controller.install(RuntimeKind.CONTAINERD)
        self.assertFalse(result.ok)
        self.assertEqual([e["step"] for e in result.errors], ["label_installing", "label_error"])
        self.assertFalse(Path(self.config.containerd.config_path).exists())

    def test_reentrant_transition_is_rejected(self) -> None:
        holder: Dict[str, LifecycleController] = {}

        class _Reentrant(_FailingAdapter):
            def configure(self) -> Dict[str, Any]:
                return holder["c"].cleanup(RuntimeKind.CRIO).to_dict()

        controller = self._controller(adapter_factory=lambda kind, cfg: _Reentrant())
        holder["c"] = controller
        result = controller.install(RuntimeKind.CRIO)
        self.assertFalse(result.ok)
        self.assertEqual(result.errors[0]["code"], "lifecycle.busy")

    def test_reset_touches_only_collaborators(self) -> None:
        controller = self._controller(state=LifecycleState.INSTALLED)
        result = controller.reset(RuntimeKind.CRIO)
        self.assertTrue(result.ok)
        self.assertEqual(result.state, LifecycleState.UNINSTALLED)
        self.assertEqual(self.labeler.calls, [("clear", None)])
        self.assertEqual(self.services.restarted, ["crio", "kubelet"])
        self.assertFalse((self.root / "etc").exists())

    def test_artifacts_installed_and_removed(self) -> None:
        payload = self.root / "payload" / "bin"
        payload.mkdir(parents=True)
        (payload / "containerd-shim-kata-v2").write_text("#!/bin/sh\n", encoding="utf-8")
        artifacts = ArtifactInstaller(self.config.artifacts_source_dir, self.config.install_dir)
        controller = self._controller(artifacts=artifacts)

        result = controller.install(RuntimeKind.CONTAINERD)
        self.assertEqual([s["step"] for s in result.steps], [
            "label_installing",
            "install_artifacts",
            "configure_runtime",
            "restart_runtime",
            "label_installed",
        ])
        self.assertTrue(self.shim_target.exists())
        self.assertTrue(Path(self.config.containerd.shim_link_path).resolve().samefile(self.shim_target))

        controller.cleanup(RuntimeKind.CONTAINERD)
        self.assertFalse(Path(self.config.install_dir).exists())

    def test_result_and_trace_match_contracts(self) -> None:
        controller = self._controller()
        result = controller.install(RuntimeKind.CONTAINERD)
        self.assertEqual(result.action, Action.INSTALL)

        contracts = default_contracts()
        self.assertEqual(contracts.validate("lifecycle_result.schema.json", result.to_dict()), [])
        events = self._events()
        self.assertEqual(events[0]["event_type"], "transition_started")
        self.assertEqual(events[-1]["event_type"], "transition_finished")
        for e in events:
            self.assertEqual(contracts.validate("trace_event.schema.json", e), [])

    def test_status(self) -> None:
        controller = self._controller()
        self.assertFalse(controller.status(RuntimeKind.OTHER)["managed"])
        controller.install(RuntimeKind.CONTAINERD)
        st = controller.status(RuntimeKind.CONTAINERD)
        self.assertTrue(st["managed"])
        self.assertEqual(st["state"], "installed")
        self.assertTrue(st["runtime"]["owned"])
