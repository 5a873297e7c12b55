"""
Git Client — Version control operations for one local workspace.

The pipeline only depends on the VersionControlClient interface.
GitClient implements it by running the `git` executable.

Each operation either returns an outcome (including the benign
"already exists" / "already up to date" outcomes) or raises one of:
WorkspaceError, TransportError (AuthError, RepositoryOpenError),
RemoteConfigError.
"""

from __future__ import annotations

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from ..config.credentials import SSHCredential
from ..errors import (
    AuthError,
    RemoteConfigError,
    RepositoryOpenError,
    TransportError,
    WorkspaceError,
)

logger = logging.getLogger(__name__)

MIRROR_REMOTE = "mirror"
ORIGIN_REMOTE = "origin"

FETCH_REFSPECS = [
    "+refs/heads/*:refs/heads/*",
    "+refs/pull/*/head:refs/pull/*/head",
]

# Lower-cased fragments of git/ssh stderr that mean the credential was refused
AUTH_FAILURE_MARKERS = (
    "permission denied",
    "authentication failed",
    "could not read username",
    "could not read password",
    "invalid username or password",
    "host key verification failed",
    "access denied",
    "the requested url returned error: 403",
)


class CloneOutcome(str, Enum):
    CLONED = "cloned"
    ALREADY_EXISTS = "already_exists"


class FetchOutcome(str, Enum):
    UPDATED = "updated"
    ALREADY_UP_TO_DATE = "already_up_to_date"


class PushOutcome(str, Enum):
    PUSHED = "pushed"
    ALREADY_UP_TO_DATE = "already_up_to_date"


@dataclass(frozen=True)
class RepositoryHandle:
    """An opened on-disk repository."""

    path: Path
    git_dir: Path


class VersionControlClient(ABC):
    """Operations the mirror pipeline needs from a version control system."""

    @abstractmethod
    def ensure_workspace(self, path: str) -> None:
        """Create the workspace directory if absent. Idempotent."""
        pass

    @abstractmethod
    def clone_or_open(self, origin_url: str, path: str) -> CloneOutcome:
        """Clone a bare mirror, or report that a repository already exists."""
        pass

    @abstractmethod
    def open(self, path: str) -> RepositoryHandle:
        """Open the repository at path."""
        pass

    @abstractmethod
    def fetch(self, handle: RepositoryHandle) -> FetchOutcome:
        """Fetch all branches, pull-request refs and tags, force-updating."""
        pass

    @abstractmethod
    def set_mirror_remote(self, handle: RepositoryHandle, target_url: str) -> None:
        """Replace the mirror remote with one pointing at target_url."""
        pass

    @abstractmethod
    def push(self, handle: RepositoryHandle, credential: SSHCredential) -> PushOutcome:
        """Push all refs to the mirror remote, pruning stale remote refs."""
        pass


# ---------------------------------------------------------------------------
# Git helpers
# ---------------------------------------------------------------------------

def _git(
    *args: str,
    cwd: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: int = 600,
) -> subprocess.CompletedProcess:
    """Run a git command. Raises TransportError if git cannot be run at all."""
    cmd = ["git"] + list(args)
    run_env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
    if env:
        run_env.update(env)
    try:
        return subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=run_env,
        )
    except subprocess.TimeoutExpired as e:
        raise TransportError(f"git {args[0]} timed out after {timeout}s") from e
    except OSError as e:
        raise TransportError(f"could not run git: {e}") from e


def _output(result: subprocess.CompletedProcess) -> str:
    return (result.stderr or "").strip() or (result.stdout or "").strip()


def _transport_error(action: str, result: subprocess.CompletedProcess) -> TransportError:
    """Classify a failed clone/fetch/push."""
    message = _output(result) or f"git exited with status {result.returncode}"
    lowered = message.lower()
    if any(marker in lowered for marker in AUTH_FAILURE_MARKERS):
        return AuthError(f"{action} rejected: {message}")
    return TransportError(f"{action} failed: {message}")


def _git_dir_of(path: Path) -> Path:
    """Bare repositories are their own git dir; working trees have .git."""
    dot_git = path / ".git"
    return dot_git if dot_git.exists() else path


def is_repository(path: Path) -> bool:
    """Check for an existing repository without walking up to parents."""
    git_dir = _git_dir_of(path)
    return (git_dir / "HEAD").is_file() and (git_dir / "objects").is_dir()


class GitClient(VersionControlClient):
    """VersionControlClient backed by the git command line."""

    def __init__(
        self,
        remote_name: str = MIRROR_REMOTE,
        timeout: int = 600,
        strict_host_key_checking: str = "accept-new",
    ):
        self.remote_name = remote_name
        self.timeout = timeout
        self.strict_host_key_checking = strict_host_key_checking

    def _run(self, handle: RepositoryHandle, *args: str, env: Optional[Dict[str, str]] = None):
        return _git(
            f"--git-dir={handle.git_dir}",
            *args,
            cwd=handle.path,
            env=env,
            timeout=self.timeout,
        )

    def ensure_workspace(self, path: str) -> None:
        try:
            Path(path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorkspaceError(f"Could not create directory {path}: {e}") from e

    def clone_or_open(self, origin_url: str, path: str) -> CloneOutcome:
        target = Path(path)
        if is_repository(target):
            return CloneOutcome.ALREADY_EXISTS

        logger.debug(f"[git] Cloning {origin_url} into {target}")
        result = _git("clone", "--bare", origin_url, str(target), timeout=self.timeout)
        if result.returncode != 0:
            if "already exists" in _output(result).lower() and is_repository(target):
                return CloneOutcome.ALREADY_EXISTS
            raise _transport_error("clone", result)
        return CloneOutcome.CLONED

    def open(self, path: str) -> RepositoryHandle:
        target = Path(path)
        if not target.is_dir():
            raise RepositoryOpenError(f"Loading repository failed: {target} does not exist")
        handle = RepositoryHandle(path=target, git_dir=_git_dir_of(target))
        result = self._run(handle, "rev-parse", "--git-dir")
        if result.returncode != 0:
            raise RepositoryOpenError(f"Loading repository failed: {_output(result)}")
        return handle

    def _ref_snapshot(self, handle: RepositoryHandle) -> List[str]:
        result = self._run(handle, "for-each-ref", "--format=%(objectname) %(refname)")
        if result.returncode != 0:
            raise RepositoryOpenError(f"Could not list refs: {_output(result)}")
        return sorted(line for line in result.stdout.splitlines() if line.strip())

    def fetch(self, handle: RepositoryHandle) -> FetchOutcome:
        before = self._ref_snapshot(handle)
        result = self._run(
            handle,
            "fetch",
            "--force",
            "--tags",
            "--update-head-ok",
            ORIGIN_REMOTE,
            *FETCH_REFSPECS,
        )
        if result.returncode != 0:
            raise _transport_error("fetch", result)

        after = self._ref_snapshot(handle)
        if after == before:
            return FetchOutcome.ALREADY_UP_TO_DATE
        return FetchOutcome.UPDATED

    def set_mirror_remote(self, handle: RepositoryHandle, target_url: str) -> None:
        removed = self._run(handle, "remote", "remove", self.remote_name)
        if removed.returncode != 0 and "no such remote" not in _output(removed).lower():
            raise RemoteConfigError(
                f"Could not remove remote {self.remote_name}: {_output(removed)}"
            )

        added = self._run(handle, "remote", "add", self.remote_name, target_url)
        if added.returncode != 0:
            raise RemoteConfigError(
                f"Could not add remote {self.remote_name}: {_output(added)}"
            )

    def push(self, handle: RepositoryHandle, credential: SSHCredential) -> PushOutcome:
        env = {"GIT_SSH_COMMAND": credential.ssh_command(self.strict_host_key_checking)}
        result = self._run(handle, "push", "--mirror", self.remote_name, env=env)
        if result.returncode != 0:
            raise _transport_error("push", result)

        if "Everything up-to-date" in _output(result):
            return PushOutcome.ALREADY_UP_TO_DATE
        return PushOutcome.PUSHED
