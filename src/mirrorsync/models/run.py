"""
Run Models — Pydantic schemas for the outcome of a mirror run.

A RunResult is returned by the scheduler and persisted as the
last-run report (state/last_run.json).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


def generate_run_id() -> str:
    """Generate a unique run ID, e.g. R-20260204T221903-92929A."""
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    suffix = uuid4().hex[:6].upper()
    return f"R-{ts}-{suffix}"


class ProjectSummary(BaseModel):
    """Final state of one project in a run."""

    id: str
    phase: str
    log_count: int = 0
    last_log: Optional[str] = None
    phase_changed_iso: Optional[str] = None


class RunResult(BaseModel):
    """Summary of a completed (or stopped) run."""

    run_id: str = Field(default_factory=generate_run_id)
    started_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    ended_at: Optional[str] = None
    duration_ms: int = 0
    parallel: bool = False
    completed: bool = True
    projects: List[ProjectSummary] = Field(default_factory=list)

    def _count(self, *phases: str) -> int:
        return sum(1 for p in self.projects if p.phase in phases)

    @property
    def updated(self) -> int:
        return self._count("done")

    @property
    def unchanged(self) -> int:
        return self._count("done_nothing")

    @property
    def failed(self) -> int:
        return self._count("error")

    @property
    def not_started(self) -> int:
        return self._count("unknown")

    @property
    def has_errors(self) -> bool:
        return self.failed > 0

    def phase_of(self, project_id: str) -> Optional[str]:
        for p in self.projects:
            if p.id == project_id:
                return p.phase
        return None
