"""
Errors — The mirror-sync error taxonomy.

Run-fatal errors (abort before any project is scheduled):
- ConfigError: malformed or missing configuration
- CredentialError: private key missing or unparsable

Project-scoped errors (end one project in ERROR, never the run):
- WorkspaceError: local workspace directory cannot be created
- TransportError: clone/fetch/push failure (AuthError, RepositoryOpenError)
- RemoteConfigError: the mirror remote cannot be retargeted
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class MirrorSyncError(Exception):
    """Base class for all mirror-sync errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.field = field
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message


class ConfigError(MirrorSyncError):
    """Raised when configuration is missing or invalid."""


class CredentialError(MirrorSyncError):
    """Raised when the SSH private key cannot be loaded."""


class WorkspaceError(MirrorSyncError):
    """Raised when a local workspace directory cannot be created."""


class TransportError(MirrorSyncError):
    """Raised when a clone, fetch or push fails."""


class AuthError(TransportError):
    """Raised when the target rejects the push credential."""


class RepositoryOpenError(TransportError):
    """Raised when an on-disk repository cannot be opened."""


class RemoteConfigError(MirrorSyncError):
    """Raised when the mirror remote cannot be (re)created."""


class IllegalTransitionError(MirrorSyncError):
    """Raised on a lifecycle transition the state machine does not allow."""
