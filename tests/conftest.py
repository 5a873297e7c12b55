"""
Shared fixtures for mirror-sync tests.

Provides a scripted VersionControlClient so pipeline and scheduler tests
run without git or a network, plus a throwaway SSH key and a settings
factory rooted in tmp_path.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from mirrorsync.config.credentials import SSHCredential
from mirrorsync.config.loader import MirrorSettings, ProjectEntry
from mirrorsync.mirror.git_client import (
    CloneOutcome,
    FetchOutcome,
    PushOutcome,
    RepositoryHandle,
    VersionControlClient,
)


class ScriptedClient(VersionControlClient):
    """
    VersionControlClient whose outcomes are configured per workspace.

    `script[workspace_path][op]` is either an outcome to return or an
    exception instance to raise. Unscripted ops succeed.
    """

    def __init__(self, script: Optional[Dict[str, Dict[str, object]]] = None, delay: float = 0.0):
        self.script = script or {}
        self.delay = delay
        self.calls: List[Tuple[str, str]] = []
        self._lock = threading.Lock()
        self.release = threading.Event()
        self.release.set()

    def _do(self, op: str, path: str, default):
        with self._lock:
            self.calls.append((op, path))
        self.release.wait(timeout=5)
        if self.delay:
            threading.Event().wait(self.delay)
        outcome = self.script.get(path, {}).get(op, default)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def ops_for(self, path: str) -> List[str]:
        with self._lock:
            return [op for op, p in self.calls if p == path]

    def ensure_workspace(self, path: str) -> None:
        self._do("workspace", path, None)

    def clone_or_open(self, origin_url: str, path: str) -> CloneOutcome:
        return self._do("clone", path, CloneOutcome.CLONED)

    def open(self, path: str) -> RepositoryHandle:
        outcome = self._do("open", path, None)
        return outcome or RepositoryHandle(path=Path(path), git_dir=Path(path))

    def fetch(self, handle: RepositoryHandle) -> FetchOutcome:
        return self._do("fetch", str(handle.path), FetchOutcome.UPDATED)

    def set_mirror_remote(self, handle: RepositoryHandle, target_url: str) -> None:
        self._do("remote", str(handle.path), None)

    def push(self, handle: RepositoryHandle, credential: SSHCredential) -> PushOutcome:
        return self._do("push", str(handle.path), PushOutcome.PUSHED)


@pytest.fixture
def client() -> ScriptedClient:
    return ScriptedClient()


@pytest.fixture
def credential(tmp_path: Path) -> SSHCredential:
    """A credential that is never actually used to connect."""
    return SSHCredential(
        key_path=tmp_path / "id_ed25519",
        key_type="ssh-ed25519",
        fingerprint="SHA256:test",
    )


@pytest.fixture
def ssh_key_file(tmp_path: Path) -> Path:
    """Write a freshly generated Ed25519 key in OpenSSH format."""
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import ed25519

    key = ed25519.Ed25519PrivateKey.generate()
    path = tmp_path / "keys" / "id_ed25519"
    path.parent.mkdir()
    path.write_bytes(key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.OpenSSH,
        encryption_algorithm=serialization.NoEncryption(),
    ))
    return path


@pytest.fixture
def make_settings(tmp_path: Path):
    """Factory for MirrorSettings rooted in tmp_path."""

    def _make(
        projects: Optional[Dict[str, str]] = None,
        github_projects: Optional[List[str]] = None,
        parallel: bool = False,
    ) -> MirrorSettings:
        return MirrorSettings(
            default_url="ssh://git@mirror.example.com/m/",
            data_path=f"{tmp_path}/data/",
            ssh_key=str(tmp_path / "id_ed25519"),
            parallel=parallel,
            github_projects=github_projects or [],
            projects={
                name: ProjectEntry(local_name=name, origin_url=url)
                for name, url in (projects or {}).items()
            },
        )

    return _make


@pytest.fixture
def client_factory():
    """Build ScriptedClients with a custom script or delay."""
    return ScriptedClient
