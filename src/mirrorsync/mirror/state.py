"""
Project State — Lifecycle state machine for one project's sync attempt.

## Phases

    UNKNOWN → WAITING → DOWNLOADING → UPLOADING → {DONE, DONE_NOTHING, ERROR}

- UNKNOWN: default display state before any event was recorded
- DONE / DONE_NOTHING / ERROR: terminal, never left within one run
- ERROR can be entered from any non-terminal phase after WAITING
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from ..errors import IllegalTransitionError


class Phase(str, Enum):
    """Lifecycle phases of a project."""
    UNKNOWN = "unknown"
    WAITING = "waiting"
    DOWNLOADING = "downloading"
    UPLOADING = "uploading"
    DONE = "done"
    DONE_NOTHING = "done_nothing"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES

    @property
    def label(self) -> str:
        """Dashboard label for this phase."""
        return PHASE_LABELS[self]


TERMINAL_PHASES: FrozenSet[Phase] = frozenset(
    {Phase.DONE, Phase.DONE_NOTHING, Phase.ERROR}
)

PHASE_LABELS: Dict[Phase, str] = {
    Phase.UNKNOWN: "❓ unknown",
    Phase.WAITING: "⌛ waiting",
    Phase.DOWNLOADING: "⏬ downloading",
    Phase.UPLOADING: "⏫ uploading",
    Phase.DONE: "✅ project updated",
    Phase.DONE_NOTHING: "✅ already up to date",
    Phase.ERROR: "🚨 error",
}

# Downloading → Downloading happens between clone and fetch.
TRANSITIONS: Dict[Phase, FrozenSet[Phase]] = {
    Phase.UNKNOWN: frozenset({Phase.WAITING}),
    Phase.WAITING: frozenset({Phase.DOWNLOADING, Phase.ERROR}),
    Phase.DOWNLOADING: frozenset({Phase.DOWNLOADING, Phase.UPLOADING, Phase.ERROR}),
    Phase.UPLOADING: frozenset({Phase.DONE, Phase.DONE_NOTHING, Phase.ERROR}),
    Phase.DONE: frozenset(),
    Phase.DONE_NOTHING: frozenset(),
    Phase.ERROR: frozenset(),
}


def can_transition(current: Phase, new: Phase) -> bool:
    """Check whether the state machine allows current → new."""
    return new in TRANSITIONS[current]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class LogLine:
    """A single timestamped log entry for a project."""

    text: str
    step: Optional[str] = None
    ts_iso: str = field(default_factory=_now_iso)

    def render(self) -> str:
        if self.step:
            return f"[{self.step}] {self.text}"
        return self.text


@dataclass
class ProjectState:
    """Mutable lifecycle record for one project within one run."""

    id: str
    phase: Phase = Phase.UNKNOWN
    log: List[LogLine] = field(default_factory=list)
    phase_changed_iso: Optional[str] = None

    def transition(self, new_phase: Phase) -> None:
        """Move to new_phase, enforcing the legal transitions."""
        if not can_transition(self.phase, new_phase):
            raise IllegalTransitionError(
                f"{self.phase.value} → {new_phase.value} is not allowed",
                field=self.id,
            )
        self.phase = new_phase
        self.phase_changed_iso = _now_iso()

    def append(self, line: LogLine) -> None:
        self.log.append(line)

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    @property
    def last_line(self) -> Optional[LogLine]:
        return self.log[-1] if self.log else None

    def copy(self) -> "ProjectState":
        """Detached copy for readers outside the table lock."""
        return ProjectState(
            id=self.id,
            phase=self.phase,
            log=list(self.log),
            phase_changed_iso=self.phase_changed_iso,
        )
