"""
Mirror Pipeline — The per-project sync sequence.

Each run takes one project from WAITING to a terminal phase:
1. Ensure the local workspace exists
2. Clone the origin (an existing repository is fine)
3. Open the local repository
4. Fetch branches, pull-request refs and tags (force-update)
5. Recreate the mirror remote pointing at the target URL
6. Push everything to the mirror remote, pruning stale refs

Every step returns a StepResult: SUCCESS and NOOP continue to the next
step, FAILURE sets ERROR and ends the run. The pipeline has no
concurrency of its own; the scheduler decides where it runs.

## Usage

    pipeline = MirrorPipeline(GitClient(), table, credential)
    phase = pipeline.run(descriptor)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from ..config.credentials import SSHCredential
from ..errors import MirrorSyncError
from .git_client import CloneOutcome, FetchOutcome, PushOutcome, VersionControlClient
from .registry import ProjectDescriptor
from .sink import StatusSink
from .state import Phase

logger = logging.getLogger(__name__)

STEP_WORKSPACE = "workspace"
STEP_CLONE = "clone"
STEP_OPEN = "open"
STEP_FETCH = "fetch"
STEP_REMOTE = "remote"
STEP_PUSH = "push"

STEPS = (STEP_WORKSPACE, STEP_CLONE, STEP_OPEN, STEP_FETCH, STEP_REMOTE, STEP_PUSH)


class StepStatus(str, Enum):
    SUCCESS = "success"
    NOOP = "noop"
    FAILURE = "failure"


@dataclass
class StepResult:
    """Outcome of one pipeline step."""

    status: StepStatus
    message: Optional[str] = None
    value: Any = None

    @property
    def failed(self) -> bool:
        return self.status == StepStatus.FAILURE

    @classmethod
    def success(cls, message: Optional[str] = None, value: Any = None) -> "StepResult":
        return cls(StepStatus.SUCCESS, message, value)

    @classmethod
    def noop(cls, message: Optional[str] = None, value: Any = None) -> "StepResult":
        return cls(StepStatus.NOOP, message, value)

    @classmethod
    def failure(cls, message: str) -> "StepResult":
        return cls(StepStatus.FAILURE, message)


class MirrorPipeline:
    """Runs the mirror sequence for one project at a time."""

    def __init__(
        self,
        client: VersionControlClient,
        sink: StatusSink,
        credential: SSHCredential,
    ):
        self.client = client
        self.sink = sink
        self.credential = credential

    def run(self, descriptor: ProjectDescriptor) -> Phase:
        """Execute all steps for descriptor and return its terminal phase."""
        pid = descriptor.id
        started = time.monotonic()
        self.sink.record_event(pid, Phase.WAITING)

        result = self._step(pid, STEP_WORKSPACE, lambda: self._ensure_workspace(descriptor))
        if result.failed:
            return Phase.ERROR

        self.sink.record_event(pid, Phase.DOWNLOADING)
        result = self._step(pid, STEP_CLONE, lambda: self._clone(descriptor))
        if result.failed:
            return Phase.ERROR

        result = self._step(pid, STEP_OPEN, lambda: self._open(descriptor))
        if result.failed:
            return Phase.ERROR
        handle = result.value

        self.sink.record_event(pid, Phase.DOWNLOADING)
        result = self._step(pid, STEP_FETCH, lambda: self._fetch(handle))
        if result.failed:
            return Phase.ERROR

        result = self._step(pid, STEP_REMOTE, lambda: self._retarget(handle, descriptor))
        if result.failed:
            return Phase.ERROR

        self.sink.record_event(pid, Phase.UPLOADING)
        result = self._step(pid, STEP_PUSH, lambda: self._push(handle, descriptor))
        if result.failed:
            return Phase.ERROR

        phase = Phase.DONE if result.status == StepStatus.SUCCESS else Phase.DONE_NOTHING
        self.sink.record_event(pid, phase)
        logger.debug(
            f"[mirror] {pid} finished as {phase.value} "
            f"in {(time.monotonic() - started) * 1000:.0f}ms"
        )
        return phase

    def _step(self, pid: str, step: str, action: Callable[[], StepResult]) -> StepResult:
        """Run one step, turning errors into a FAILURE result."""
        try:
            result = action()
        except MirrorSyncError as e:
            result = StepResult.failure(f"{type(e).__name__}: {e}")
        except Exception as e:
            logger.exception(f"[mirror] {pid}: unexpected error in step {step}")
            result = StepResult.failure(f"Unexpected error: {e}")

        if result.message:
            self.sink.append_log(pid, result.message, step=step)
        if result.failed:
            self.sink.record_event(pid, Phase.ERROR)
        return result

    # ─── Steps ──────────────────────────────────────────────

    def _ensure_workspace(self, descriptor: ProjectDescriptor) -> StepResult:
        self.client.ensure_workspace(descriptor.workspace_path)
        return StepResult.success()

    def _clone(self, descriptor: ProjectDescriptor) -> StepResult:
        outcome = self.client.clone_or_open(descriptor.origin_url, descriptor.workspace_path)
        if outcome == CloneOutcome.ALREADY_EXISTS:
            return StepResult.noop("Repository already exists")
        return StepResult.success(f"Cloned {descriptor.origin_url}")

    def _open(self, descriptor: ProjectDescriptor) -> StepResult:
        handle = self.client.open(descriptor.workspace_path)
        return StepResult.success(value=handle)

    def _fetch(self, handle) -> StepResult:
        outcome = self.client.fetch(handle)
        if outcome == FetchOutcome.ALREADY_UP_TO_DATE:
            return StepResult.noop("Already up to date")
        return StepResult.success("Fetched updates from origin")

    def _retarget(self, handle, descriptor: ProjectDescriptor) -> StepResult:
        self.client.set_mirror_remote(handle, descriptor.target_url)
        return StepResult.success(f"Mirror remote set to {descriptor.target_url}")

    def _push(self, handle, descriptor: ProjectDescriptor) -> StepResult:
        outcome = self.client.push(handle, self.credential)
        if outcome == PushOutcome.ALREADY_UP_TO_DATE:
            return StepResult.noop("Nothing to push")
        return StepResult.success(f"Pushed to {descriptor.target_url}")
