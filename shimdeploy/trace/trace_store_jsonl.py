from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any


class TraceStoreJSONL:
    """
    Append-only JSONL file.

    Each event is flushed and fsync'd before append() returns: the supervisor
    may kill the agent at any point and the trail must show how far it got.
    """

    def __init__(self, path: Path, *, durable: bool = True):
        self._path = path
        self._durable = durable

    @property
    def path(self) -> Path:
        return self._path

    def append(self, event: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(event, ensure_ascii=False, default=str) + "\n"
        with self._path.open("a", encoding="utf-8") as f:
            f.write(line)
            if self._durable:
                f.flush()
                os.fsync(f.fileno())
