from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class RuntimeContext:
    """
    Per-invocation settings for a lifecycle run.

    Hard rules:
    - One run mutates one node; the agent is the sole writer of the files it owns.
    - Every transition is traced to trace_path.
    """

    run_id: str
    node_name: str | None = None
    trace_path: Path = Path("trace.jsonl")
