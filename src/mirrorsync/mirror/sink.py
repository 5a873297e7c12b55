"""
Status Sink — Observable lifecycle events for mirror runs.

Every renderer (state table, log stream, JSON emitter, audit ledger)
implements the same two-method interface, so the pipeline never depends
on a particular display.

## Usage

    table = StateTable([d.id for d in registry])
    table.subscribe(LoggingSink())
    table.subscribe(JsonLinesSink())

    table.record_event("svc", Phase.WAITING)
    table.append_log("svc", "Cloned https://example.com/svc.git", step="clone")
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .state import LogLine, Phase, ProjectState

logger = logging.getLogger(__name__)


class StatusSink(ABC):
    """
    Capability interface consumed by the mirror pipeline.

    Both methods must be safe to call from concurrently running pipelines.
    """

    @abstractmethod
    def record_event(self, project_id: str, phase: Phase) -> None:
        """Record that a project entered a new phase."""
        pass

    @abstractmethod
    def append_log(self, project_id: str, text: str, step: Optional[str] = None) -> None:
        """Append a log line for a project."""
        pass


class StateTable(StatusSink):
    """
    Thread-safe store of all Project States for one run.

    Validates lifecycle transitions and forwards every accepted event
    to the subscribed sinks.
    """

    def __init__(self, project_ids: Iterable[str] = ()):
        self._lock = threading.Lock()
        self._states: Dict[str, ProjectState] = {}
        self._lines: List[Tuple[str, LogLine]] = []
        self._subscribers: List[StatusSink] = []
        for project_id in project_ids:
            self._states[project_id] = ProjectState(id=project_id)

    def subscribe(self, sink: StatusSink) -> None:
        with self._lock:
            self._subscribers.append(sink)

    def register(self, project_id: str) -> None:
        """Ensure a state entry exists (stays UNKNOWN until an event arrives)."""
        with self._lock:
            self._states.setdefault(project_id, ProjectState(id=project_id))

    # ─── StatusSink ─────────────────────────────────────────

    def record_event(self, project_id: str, phase: Phase) -> None:
        with self._lock:
            state = self._states.setdefault(project_id, ProjectState(id=project_id))
            state.transition(phase)
            subscribers = list(self._subscribers)
        self._notify(subscribers, lambda s: s.record_event(project_id, phase))

    def append_log(self, project_id: str, text: str, step: Optional[str] = None) -> None:
        line = LogLine(text=text, step=step)
        with self._lock:
            state = self._states.setdefault(project_id, ProjectState(id=project_id))
            state.append(line)
            self._lines.append((project_id, line))
            subscribers = list(self._subscribers)
        self._notify(subscribers, lambda s: s.append_log(project_id, text, step))

    def _notify(self, subscribers: List[StatusSink], call: Callable[[StatusSink], None]) -> None:
        for sink in subscribers:
            try:
                call(sink)
            except Exception:
                logger.exception(f"[mirror] Status sink {type(sink).__name__} failed")

    # ─── Readers ────────────────────────────────────────────

    def get(self, project_id: str) -> Optional[ProjectState]:
        with self._lock:
            state = self._states.get(project_id)
            return state.copy() if state else None

    def snapshot(self) -> List[ProjectState]:
        """Copies of all states, in registration order."""
        with self._lock:
            return [s.copy() for s in self._states.values()]

    def phases(self) -> Dict[str, Phase]:
        with self._lock:
            return {pid: s.phase for pid, s in self._states.items()}

    def lines(self, limit: Optional[int] = None) -> List[Tuple[str, LogLine]]:
        """All log lines across projects in arrival order."""
        with self._lock:
            if limit is None:
                return list(self._lines)
            return self._lines[-limit:] if limit > 0 else []

    def all_terminal(self) -> bool:
        with self._lock:
            return all(s.is_terminal for s in self._states.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)


class LoggingSink(StatusSink):
    """Forward lifecycle events to the standard logging system."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logging.getLogger("mirrorsync.status")

    def record_event(self, project_id: str, phase: Phase) -> None:
        level = logging.ERROR if phase == Phase.ERROR else logging.INFO
        self._log.log(
            level,
            f"[{project_id}] {phase.label}",
            extra={"project_id": project_id, "phase": phase.value},
        )

    def append_log(self, project_id: str, text: str, step: Optional[str] = None) -> None:
        prefix = f"[{project_id}]" + (f" {step}:" if step else "")
        self._log.info(
            f"{prefix} {text}",
            extra={"project_id": project_id, "step": step},
        )


class JsonLinesSink(StatusSink):
    """
    Emit one JSON object per event (for streaming consumers).

    Output format:
    {"event": "phase", "project": "svc", "phase": "done", "label": "...", "ts": "..."}
    {"event": "log", "project": "svc", "step": "push", "text": "...", "ts": "..."}
    """

    def __init__(self, write: Optional[Callable[[str], None]] = None, run_id: Optional[str] = None):
        self._write = write or (lambda line: print(line, flush=True))
        self._run_id = run_id
        self._lock = threading.Lock()

    def _emit(self, data: Dict) -> None:
        data["ts"] = datetime.now(timezone.utc).isoformat()
        if self._run_id:
            data["run_id"] = self._run_id
        line = json.dumps(data, ensure_ascii=False)
        with self._lock:
            self._write(line)

    def record_event(self, project_id: str, phase: Phase) -> None:
        self._emit({
            "event": "phase",
            "project": project_id,
            "phase": phase.value,
            "label": phase.label,
        })

    def append_log(self, project_id: str, text: str, step: Optional[str] = None) -> None:
        self._emit({
            "event": "log",
            "project": project_id,
            "step": step,
            "text": text,
        })
