from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)


class Replay:
    """
    Reads a lifecycle trace back, optionally filtered by run/action/event type.

    A process killed mid-append can leave a torn last line; it is skipped with
    a warning. Undecodable lines anywhere else are an error.
    """

    def __init__(self, path: Path):
        self._path = path

    def _lines(self) -> List[str]:
        if not self._path.exists():
            return []
        with self._path.open("r", encoding="utf-8") as f:
            return [line.strip() for line in f if line.strip()]

    def iter_events(
        self,
        *,
        event_type: Optional[str] = None,
        run_id: Optional[str] = None,
        action: Optional[str] = None,
    ) -> Iterator[Dict[str, Any]]:
        lines = self._lines()
        for i, line in enumerate(lines):
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                if i == len(lines) - 1:
                    logger.warning("ignoring torn last line in %s", self._path)
                    return
                raise
            if event_type is not None and event.get("event_type") != event_type:
                continue
            if run_id is not None and event.get("run_id") != run_id:
                continue
            if action is not None and event.get("action") != action:
                continue
            yield event

    def last_outcome(self, action: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Most recent finished, skipped or failed transition (optionally for one action)."""
        outcome = None
        for event in self.iter_events(action=action):
            if event.get("event_type") in ("transition_finished", "transition_skipped", "error"):
                outcome = event
        return outcome
