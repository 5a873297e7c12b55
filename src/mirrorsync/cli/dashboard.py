"""
Terminal Dashboard — Live table of project phases plus the log tail.

    Repo                 Status
    svc                  ✅ project updated
    org/repo             ⏬ downloading

    Log output
    [svc]:    [clone] Cloned https://example.com/svc.git
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional, Tuple

import click

from ..mirror.sink import StateTable
from ..mirror.state import LogLine, Phase, ProjectState


def render(
    states: List[ProjectState],
    lines: List[Tuple[str, LogLine]],
    title: str = "Active Elements",
) -> str:
    """Render one dashboard frame as plain text."""
    width = max([len("Repo")] + [len(s.id) for s in states]) + 2
    out = [title, "", f"{'Repo':<{width}} Status"]
    for state in states:
        out.append(f"{state.id:<{width}} {state.phase.label}")

    done = sum(1 for s in states if s.is_terminal)
    failed = sum(1 for s in states if s.phase == Phase.ERROR)
    out.append("")
    out.append(f"{done}/{len(states)} finished, {failed} error(s)")

    out.append("")
    out.append("Log output")
    for project_id, line in lines:
        out.append(f"[{project_id}]:\t {line.render()}")
    return "\n".join(out)


class TerminalDashboard:
    """
    Redraws the current run's state table until stopped.

    The table is looked up on every frame so a scheduler running
    repeated runs can swap tables underneath the dashboard.
    """

    def __init__(
        self,
        table_provider: Callable[[], Optional[StateTable]],
        refresh_seconds: float = 1.0,
        log_lines: int = 20,
        echo: Callable[[str], None] = click.echo,
        clear: Callable[[], None] = click.clear,
        quiet_level: int = logging.WARNING,
    ):
        self.table_provider = table_provider
        self.refresh_seconds = refresh_seconds
        self.log_lines = log_lines
        self._echo = echo
        self._clear = clear
        self.quiet_level = quiet_level
        self._saved_level: Optional[int] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def frame(self) -> str:
        table = self.table_provider()
        if table is None:
            return render([], [])
        return render(table.snapshot(), table.lines(self.log_lines))

    def draw(self) -> None:
        self._clear()
        self._echo(self.frame())

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.draw()
            self._stop.wait(timeout=self.refresh_seconds)
        self.draw()

    def start(self) -> None:
        """Start redrawing; log records below quiet_level are muted meanwhile."""
        root = logging.getLogger()
        self._saved_level = root.level
        root.setLevel(max(root.level, self.quiet_level))
        self._thread = threading.Thread(target=self._loop, name="mirror-dashboard", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop redrawing; the final frame is drawn before returning."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
        if self._saved_level is not None:
            logging.getLogger().setLevel(self._saved_level)
            self._saved_level = None
