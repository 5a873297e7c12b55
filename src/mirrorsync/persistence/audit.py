"""
Audit Ledger — Append-only NDJSON record of mirror runs.

Each line is one JSON object (newline-delimited JSON).
Events are never edited, only appended.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

from ..mirror.sink import StatusSink
from ..mirror.state import Phase


class AuditWriter:
    """
    Append-only NDJSON audit ledger writer.

    Usage:
        audit = AuditWriter(Path("audit/ledger.ndjson"))
        audit.emit("run_start", run_id="R-123", details={"projects": 3})
    """

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()
        self._ensure_exists()

    def _ensure_exists(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.path.touch()

    def emit(
        self,
        event_type: str,
        run_id: str,
        project_id: Optional[str] = None,
        level: str = "info",
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Append one event to the ledger.

        Returns:
            The generated event ID
        """
        event_id = f"E-{uuid4().hex[:12].upper()}"
        entry: Dict[str, Any] = {
            "event_id": event_id,
            "ts_iso": datetime.now(timezone.utc).isoformat(),
            "type": event_type,
            "level": level,
            "run_id": run_id,
        }
        if project_id is not None:
            entry["project_id"] = project_id
        if details:
            entry["details"] = details

        line = json.dumps(entry, ensure_ascii=False)
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        return event_id

    def read_all(self) -> list:
        """Read every ledger entry (for tests and the status command)."""
        entries = []
        with self.path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    entries.append(json.loads(line))
        return entries


class AuditSink(StatusSink):
    """Status sink that writes every lifecycle event to the ledger."""

    def __init__(self, writer: AuditWriter, run_id: str):
        self.writer = writer
        self.run_id = run_id

    def record_event(self, project_id: str, phase: Phase) -> None:
        self.writer.emit(
            "phase",
            run_id=self.run_id,
            project_id=project_id,
            level="error" if phase == Phase.ERROR else "info",
            details={"phase": phase.value},
        )

    def append_log(self, project_id: str, text: str, step: Optional[str] = None) -> None:
        self.writer.emit(
            "log",
            run_id=self.run_id,
            project_id=project_id,
            details={"step": step, "text": text},
        )
