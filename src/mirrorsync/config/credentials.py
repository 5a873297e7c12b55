"""
Credentials — Load the SSH private key used for every push.

The key is parsed once at startup. A missing or unparsable key is fatal
to the whole run: without it nothing can be pushed.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path

from ..errors import CredentialError

logger = logging.getLogger(__name__)

SSH_USER = "git"


@dataclass(frozen=True)
class SSHCredential:
    """A parsed private key, shared read-only by all pipelines."""

    key_path: Path
    key_type: str
    fingerprint: str
    user: str = SSH_USER

    def ssh_command(self, strict_host_key_checking: str = "accept-new") -> str:
        """Render a GIT_SSH_COMMAND value that uses only this key."""
        return " ".join([
            "ssh",
            "-i", shlex.quote(str(self.key_path)),
            "-o", "IdentitiesOnly=yes",
            "-o", "BatchMode=yes",
            "-o", f"StrictHostKeyChecking={strict_host_key_checking}",
        ])


def _load_private_key(data: bytes):
    from cryptography.hazmat.primitives import serialization

    try:
        return serialization.load_ssh_private_key(data, password=None)
    except ValueError:
        # Not OpenSSH format, try PEM (RSA/EC "BEGIN ... PRIVATE KEY")
        return serialization.load_pem_private_key(data, password=None)


def _fingerprint(private_key) -> str:
    """SHA256 fingerprint in the same format as `ssh-keygen -l`."""
    from cryptography.hazmat.primitives import serialization

    public_blob = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    )
    raw = base64.b64decode(public_blob.split()[1])
    digest = hashlib.sha256(raw).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")


def _key_type(private_key) -> str:
    from cryptography.hazmat.primitives import serialization

    public_blob = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    )
    return public_blob.split()[0].decode("ascii")


def load_credential(path: Path) -> SSHCredential:
    """
    Load and parse an SSH private key.

    Args:
        path: Path to the private key file

    Returns:
        SSHCredential describing the key

    Raises:
        CredentialError: If the key is missing, unreadable, unparsable
            or passphrase-protected
    """
    path = Path(path).expanduser()

    try:
        data = path.read_bytes()
    except FileNotFoundError as e:
        raise CredentialError(f"SSH key not found: {path}", field="ssh_key") from e
    except OSError as e:
        raise CredentialError(f"Could not load {path}: {e}", field="ssh_key") from e

    try:
        private_key = _load_private_key(data)
    except TypeError as e:
        # Encrypted key, no password given
        raise CredentialError(
            f"{path} is passphrase-protected; use an unencrypted deploy key",
            field="ssh_key",
        ) from e
    except ValueError as e:
        raise CredentialError(f"Could not parse {path}: {e}", field="ssh_key") from e
    except Exception as e:
        # cryptography raises UnsupportedAlgorithm for unknown key types
        raise CredentialError(f"Unsupported key in {path}: {e}", field="ssh_key") from e

    credential = SSHCredential(
        key_path=path.resolve(),
        key_type=_key_type(private_key),
        fingerprint=_fingerprint(private_key),
    )
    logger.info(f"Loaded SSH key {credential.key_type} {credential.fingerprint}")
    return credential
