"""
Sync Scheduler — Fan the mirror pipeline out over all projects.

Runs every registry entry either sequentially (explicit projects first,
then github shorthands) or with one thread per project. Every launched
execution signals completion exactly once, whatever its outcome, and
`start` returns only when all launched executions have signalled.

## Usage

    scheduler = SyncScheduler(GitClient(), credential)
    result = scheduler.start(registry, parallel=True)

    # From a signal handler: stop launching new projects
    scheduler.stop()
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..config.credentials import SSHCredential
from ..errors import IllegalTransitionError
from ..models.run import ProjectSummary, RunResult, generate_run_id
from .git_client import VersionControlClient
from .pipeline import MirrorPipeline
from .registry import ProjectDescriptor
from .sink import StateTable
from .state import Phase

logger = logging.getLogger(__name__)


class CompletionBarrier:
    """Counts launched vs. finished executions."""

    def __init__(self):
        self._cond = threading.Condition()
        self._launched = 0
        self._completed = 0

    def launch(self) -> None:
        with self._cond:
            self._launched += 1

    def complete(self) -> None:
        with self._cond:
            self._completed += 1
            self._cond.notify_all()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until every launched execution completed."""
        with self._cond:
            return self._cond.wait_for(
                lambda: self._completed >= self._launched, timeout=timeout
            )

    @property
    def launched(self) -> int:
        with self._cond:
            return self._launched

    @property
    def pending(self) -> int:
        with self._cond:
            return self._launched - self._completed


class SyncScheduler:
    """
    Runs mirror pipelines under a parallel or sequential policy.

    `stop()` stops launching new projects; in-flight pipelines are
    never interrupted mid-step. A stopped scheduler stays stopped.
    """

    def __init__(
        self,
        client: VersionControlClient,
        credential: SSHCredential,
        pipeline_factory: Optional[Callable[[StateTable], MirrorPipeline]] = None,
    ):
        self.client = client
        self.credential = credential
        self._pipeline_factory = pipeline_factory or (
            lambda table: MirrorPipeline(self.client, table, self.credential)
        )
        self._stop = threading.Event()
        self.table: Optional[StateTable] = None

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Stop accepting new work."""
        if not self._stop.is_set():
            logger.info("[mirror] Stop requested, no new projects will be started")
        self._stop.set()

    # ─── Single run ─────────────────────────────────────────

    def start(
        self,
        registry: List[ProjectDescriptor],
        parallel: bool,
        table: Optional[StateTable] = None,
        run_id: Optional[str] = None,
    ) -> RunResult:
        """Run every project and block until all launched ones are terminal."""
        table = table if table is not None else StateTable()
        for descriptor in registry:
            table.register(descriptor.id)
        self.table = table

        result = RunResult(parallel=parallel)
        if run_id:
            result.run_id = run_id
        started = time.monotonic()
        pipeline = self._pipeline_factory(table)
        barrier = CompletionBarrier()

        logger.info(
            f"[mirror] Run {result.run_id}: {len(registry)} project(s), "
            f"{'parallel' if parallel else 'sequential'}"
        )

        threads: List[threading.Thread] = []
        for descriptor in registry:
            if self._stop.is_set():
                break
            barrier.launch()
            if parallel:
                thread = threading.Thread(
                    target=self._execute,
                    args=(pipeline, descriptor, table, barrier),
                    name=f"mirror-{descriptor.id}",
                    daemon=True,
                )
                threads.append(thread)
                thread.start()
            else:
                self._execute(pipeline, descriptor, table, barrier)

        barrier.wait()

        result.ended_at = datetime.now(timezone.utc).isoformat()
        result.duration_ms = int((time.monotonic() - started) * 1000)
        result.completed = barrier.launched == len(registry)
        result.projects = [
            ProjectSummary(
                id=state.id,
                phase=state.phase.value,
                log_count=len(state.log),
                last_log=state.last_line.render() if state.last_line else None,
                phase_changed_iso=state.phase_changed_iso,
            )
            for state in table.snapshot()
        ]

        logger.info(
            f"[mirror] Run {result.run_id} finished in {result.duration_ms}ms: "
            f"{result.updated} updated, {result.unchanged} unchanged, "
            f"{result.failed} failed"
            + (f", {result.not_started} not started" if result.not_started else "")
        )
        return result

    def _execute(
        self,
        pipeline: MirrorPipeline,
        descriptor: ProjectDescriptor,
        table: StateTable,
        barrier: CompletionBarrier,
    ) -> None:
        """Run one pipeline and always signal completion."""
        try:
            pipeline.run(descriptor)
        except Exception as e:
            logger.exception(f"[mirror] Pipeline for {descriptor.id} crashed")
            self._mark_failed(table, descriptor.id, e)
        finally:
            barrier.complete()

    def _mark_failed(self, table: StateTable, project_id: str, error: Exception) -> None:
        """Force a crashed project into ERROR so the run still ends terminal."""
        try:
            state = table.get(project_id)
            if state is not None and state.is_terminal:
                return
            table.append_log(project_id, f"Unexpected error: {error}", step="pipeline")
            if state is None or state.phase == Phase.UNKNOWN:
                table.record_event(project_id, Phase.WAITING)
            table.record_event(project_id, Phase.ERROR)
        except IllegalTransitionError as e:
            logger.error(f"[mirror] Could not mark {project_id} as failed: {e}")

    # ─── Scheduled runs ─────────────────────────────────────

    def run_forever(
        self,
        registry: List[ProjectDescriptor],
        parallel: bool,
        interval: float,
        table_factory: Callable[[str], StateTable] = lambda run_id: StateTable(),
        on_result: Optional[Callable[[RunResult], None]] = None,
        max_runs: Optional[int] = None,
    ) -> int:
        """
        Repeat runs every `interval` seconds until stop() is called.

        table_factory receives the new run's ID so observers can tag
        their output. Returns the number of runs performed.
        """
        runs = 0
        while not self._stop.is_set():
            run_id = generate_run_id()
            result = self.start(registry, parallel, table=table_factory(run_id), run_id=run_id)
            runs += 1
            if on_result:
                on_result(result)
            if max_runs is not None and runs >= max_runs:
                break
            self._stop.wait(timeout=interval)
        return runs
