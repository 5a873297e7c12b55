"""
Configuration Validator — Check mirror configuration before a run.

Goes beyond schema validation: verifies that the referenced paths and
tools exist and flags settings that are valid but probably not intended.

## Usage

    from mirrorsync.config.validator import ConfigValidator

    validator = ConfigValidator(Path("config.yaml"))
    for check in validator.validate_all():
        if not check.ok:
            print(f"{check.name}: {check.message}")
            print(f"  → {check.guidance}")
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import ConfigError, CredentialError
from .credentials import load_credential
from .loader import MirrorSettings, load_config

logger = logging.getLogger(__name__)

LEVEL_OK = "ok"
LEVEL_WARNING = "warning"
LEVEL_ERROR = "error"


@dataclass
class ConfigCheck:
    """Result of a single configuration check."""

    name: str
    level: str
    message: str
    guidance: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.level == LEVEL_OK

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "level": self.level,
            "message": self.message,
            "guidance": self.guidance,
        }


class ConfigValidator:
    """
    Validate the mirror configuration file and its environment.

    Checks are independent: a broken ssh_key does not hide a missing
    data_path.
    """

    def __init__(self, config_path: Path):
        self.config_path = Path(config_path)

    def validate_all(self) -> List[ConfigCheck]:
        checks: List[ConfigCheck] = [self._check_git()]

        try:
            settings = load_config(self.config_path)
        except ConfigError as e:
            checks.append(ConfigCheck(
                "config_file", LEVEL_ERROR, str(e),
                guidance="See config.example.yaml for the expected format",
            ))
            return checks

        checks.append(ConfigCheck(
            "config_file", LEVEL_OK,
            f"{self.config_path} ({settings.project_count} project(s))",
        ))
        checks.append(self._check_registry(settings))
        checks.append(self._check_data_path(settings))
        checks.append(self._check_default_url(settings))
        checks.append(self._check_ssh_key(settings))
        return checks

    def has_errors(self, checks: Optional[List[ConfigCheck]] = None) -> bool:
        checks = checks if checks is not None else self.validate_all()
        return any(c.level == LEVEL_ERROR for c in checks)

    def log_status(self, checks: Optional[List[ConfigCheck]] = None) -> List[ConfigCheck]:
        """Log every check result; passing checks are only logged at debug."""
        checks = checks if checks is not None else self.validate_all()
        for check in checks:
            extra = {"check": check.name, "guidance": check.guidance}
            if check.ok:
                logger.debug(f"✓ {check.name}: {check.message}", extra=extra)
            elif check.level == LEVEL_WARNING:
                logger.warning(f"! {check.name}: {check.message}", extra=extra)
            else:
                logger.error(f"✗ {check.name}: {check.message}", extra=extra)
        return checks

    # ─── Individual checks ──────────────────────────────────

    def _check_git(self) -> ConfigCheck:
        git = shutil.which("git")
        if git:
            return ConfigCheck("git", LEVEL_OK, git)
        return ConfigCheck(
            "git", LEVEL_ERROR, "git executable not found on PATH",
            guidance="Install git (https://git-scm.com/downloads)",
        )

    def _check_registry(self, settings: MirrorSettings) -> ConfigCheck:
        from ..mirror.registry import build_registry

        try:
            registry = build_registry(settings)
        except ConfigError as e:
            return ConfigCheck(
                "projects", LEVEL_ERROR, str(e),
                guidance="Every project needs a unique local_name / org/repo",
            )
        if not registry:
            return ConfigCheck(
                "projects", LEVEL_WARNING, "no projects configured",
                guidance="Add entries under projects: or github_projects:",
            )
        return ConfigCheck("projects", LEVEL_OK, f"{len(registry)} unique project id(s)")

    def _check_data_path(self, settings: MirrorSettings) -> ConfigCheck:
        path = Path(settings.data_path)
        if not settings.data_path.endswith("/"):
            return ConfigCheck(
                "data_path", LEVEL_WARNING,
                f"{settings.data_path} has no trailing '/'; workspaces will be "
                f"created as {settings.data_path}<id>",
                guidance="End data_path with '/' to keep workspaces inside it",
            )
        if not path.exists():
            return ConfigCheck(
                "data_path", LEVEL_WARNING,
                f"{path} does not exist (it will be created on first run)",
            )
        return ConfigCheck("data_path", LEVEL_OK, str(path))

    def _check_default_url(self, settings: MirrorSettings) -> ConfigCheck:
        if not settings.default_url.endswith(("/", ":")):
            return ConfigCheck(
                "default_url", LEVEL_WARNING,
                f"{settings.default_url} does not end with '/' or ':'; "
                f"targets will be {settings.default_url}<id>",
            )
        return ConfigCheck("default_url", LEVEL_OK, settings.default_url)

    def _check_ssh_key(self, settings: MirrorSettings) -> ConfigCheck:
        try:
            credential = load_credential(settings.ssh_key_path)
        except CredentialError as e:
            return ConfigCheck(
                "ssh_key", LEVEL_ERROR, str(e),
                guidance="Generate one with: ssh-keygen -t ed25519 -f <path>",
            )
        return ConfigCheck(
            "ssh_key", LEVEL_OK, f"{credential.key_type} {credential.fingerprint}",
        )


def check_config_on_startup(config_path: Path) -> List[ConfigCheck]:
    """Run the configuration checks before a sync (call from the CLI)."""
    return ConfigValidator(config_path).log_status()
