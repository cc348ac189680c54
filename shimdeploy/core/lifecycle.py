from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from shimdeploy.adapters import BackendAdapter, build_adapter
from shimdeploy.config import AgentConfig
from shimdeploy.node.collaborators import LabelValue, NodeLabeler, NullLabeler, NullServiceManager, ServiceManager
from shimdeploy.trace.trace_emitter import TraceEmitter
from tools.fs.artifacts import ArtifactInstaller

from .errors import ShimDeployError, TransitionInProgress, UnsupportedBackend
from .runtime_kind import RuntimeKind

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[RuntimeKind, AgentConfig], BackendAdapter]
Step = Tuple[str, Callable[[], Any]]


class LifecycleState(str, Enum):
    UNINSTALLED = "uninstalled"
    INSTALLING = "installing"
    INSTALLED = "installed"
    CLEANING_UP = "cleaning_up"
    CLEANED_UP = "cleaned_up"
    RESETTING_EXTERNAL = "resetting_external"


class Action(str, Enum):
    INSTALL = "install"
    CLEANUP = "cleanup"
    RESET = "reset"


@dataclass
class LifecycleResult:
    action: Action
    kind: RuntimeKind
    state: LifecycleState
    ok: bool = True
    skipped: bool = False
    steps: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "kind": self.kind.value,
            "state": self.state.value,
            "ok": self.ok,
            "skipped": self.skipped,
            "steps": list(self.steps),
            "errors": list(self.errors),
        }


class LifecycleController:
    """
    Sequences install / cleanup / reset for one node.

    Hard rules:
    - No in-process retry and no rollback: a failed step ends the transition and
      the filesystem stays as far as it got. Re-running the same transition is
      the recovery path, which is safe because every step is idempotent.
    - OTHER runtimes are a successful no-op so the agent can run on nodes it
      does not manage.
    - reset() only talks to collaborators; it never touches files.
    """

    def __init__(
        self,
        config: AgentConfig,
        *,
        labeler: Optional[NodeLabeler] = None,
        services: Optional[ServiceManager] = None,
        artifacts: Optional[ArtifactInstaller] = None,
        trace: Optional[TraceEmitter] = None,
        adapter_factory: AdapterFactory = build_adapter,
        state: LifecycleState = LifecycleState.UNINSTALLED,
    ):
        self._config = config
        self._labeler = labeler if labeler is not None else NullLabeler()
        self._services = services if services is not None else NullServiceManager()
        self._artifacts = artifacts
        self._trace = trace
        self._adapter_factory = adapter_factory
        self._state = state
        self._running = False

    @property
    def state(self) -> LifecycleState:
        return self._state

    def install(self, kind: RuntimeKind) -> LifecycleResult:
        def steps(adapter: BackendAdapter) -> List[Step]:
            out: List[Step] = [("label_installing", lambda: self._labeler.set(LabelValue.INSTALLING))]
            if self._artifacts is not None:
                out.append(("install_artifacts", self._artifacts.install))
            out.append(("configure_runtime", adapter.configure))
            out.append(("restart_runtime", lambda: self._restart(kind)))
            out.append(("label_installed", lambda: self._labeler.set(LabelValue.INSTALLED)))
            return out

        return self._transition(Action.INSTALL, kind, LifecycleState.INSTALLING, LifecycleState.INSTALLED, steps)

    def cleanup(self, kind: RuntimeKind) -> LifecycleResult:
        def steps(adapter: BackendAdapter) -> List[Step]:
            out: List[Step] = [
                ("cleanup_runtime", adapter.cleanup),
                ("label_cleanup", lambda: self._labeler.set(LabelValue.CLEANUP)),
            ]
            if self._artifacts is not None:
                out.append(("remove_artifacts", self._artifacts.remove))
            return out

        return self._transition(Action.CLEANUP, kind, LifecycleState.CLEANING_UP, LifecycleState.CLEANED_UP, steps)

    def reset(self, kind: RuntimeKind) -> LifecycleResult:
        def steps(_adapter: Optional[BackendAdapter]) -> List[Step]:
            return [
                ("clear_label", self._labeler.clear),
                ("restart_runtime", lambda: self._restart(kind)),
                ("restart_kubelet", lambda: self._services.restart(self._config.node.kubelet_service)),
            ]

        return self._transition(
            Action.RESET,
            kind,
            LifecycleState.RESETTING_EXTERNAL,
            LifecycleState.UNINSTALLED,
            steps,
            needs_adapter=False,
        )

    def status(self, kind: RuntimeKind) -> Dict[str, Any]:
        try:
            adapter = self._adapter_factory(kind, self._config)
        except UnsupportedBackend:
            return {"kind": kind.value, "state": self._state.value, "managed": False}
        return {"kind": kind.value, "state": self._state.value, "managed": True, "runtime": adapter.status()}

    def _restart(self, kind: RuntimeKind) -> None:
        unit = kind.service_name
        if unit is not None:
            self._services.restart(unit)

    def _emit(self, event_type: str, **kwargs: Any) -> None:
        if self._trace is not None:
            self._trace.emit(event_type, **kwargs)

    def _transition(
        self,
        action: Action,
        kind: RuntimeKind,
        busy: LifecycleState,
        done: LifecycleState,
        build_steps: Callable[[Any], List[Step]],
        *,
        needs_adapter: bool = True,
    ) -> LifecycleResult:
        if self._running:
            raise TransitionInProgress(
                code="lifecycle.busy",
                message=f"Cannot {action.value} while another transition is running",
                data={"state": self._state.value},
            )

        result = LifecycleResult(action=action, kind=kind, state=self._state)
        if kind is RuntimeKind.OTHER:
            result.skipped = True
            self._emit("transition_skipped", action=action.value, kind=kind.value, message="Runtime not managed")
            logger.info("%s: runtime not managed by this agent; nothing to do", action.value)
            return result

        adapter: Optional[BackendAdapter] = None
        if needs_adapter:
            try:
                adapter = self._adapter_factory(kind, self._config)
            except UnsupportedBackend as e:
                result.skipped = True
                self._emit("transition_skipped", action=action.value, kind=kind.value, message=e.message)
                return result

        self._running = True
        try:
            self._state = busy
            self._emit("transition_started", action=action.value, kind=kind.value, data={"state": busy.value})
            for name, fn in build_steps(adapter):
                try:
                    out = fn()
                except ShimDeployError as e:
                    self._fail(result, name, e)
                    return result
                result.steps.append({"step": name, "output": out})
                self._emit("step_finished", action=action.value, kind=kind.value, step=name, data={"output": out})

            self._state = done
            self._emit("transition_finished", action=action.value, kind=kind.value, data={"state": done.value})
            logger.info("%s finished for %s", action.value, kind.value)
        finally:
            self._running = False
            result.state = self._state
        return result

    def _fail(self, result: LifecycleResult, step: str, error: ShimDeployError) -> None:
        result.ok = False
        result.errors.append(dict(error.to_dict(), step=step))
        self._emit(
            "error",
            action=result.action.value,
            kind=result.kind.value,
            step=step,
            message=str(error),
            data=error.to_dict(),
        )
        logger.error("%s failed at %s: %s", result.action.value, step, error)

        try:
            self._labeler.set(LabelValue.ERROR)
        except ShimDeployError as label_error:
            result.errors.append(dict(label_error.to_dict(), step="label_error"))
            logger.error("could not label node as failed: %s", label_error)
