"""
Config Loader — Load the mirror configuration from a YAML file.

## Format

    default_url: "ssh://git@git.example.com/mirrors/"
    data_path: "/var/lib/mirror-sync/"
    ssh_key: "~/.ssh/id_ed25519"
    parallel: true
    github_projects:
      - "org/repo"
    projects:
      svc:
        local_name: "svc"
        origin_url: "https://example.com/svc.git"

## Usage

    from mirrorsync.config.loader import load_config

    settings = load_config(Path("config.yaml"))
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from ..errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.yaml"
CONFIG_ENV_VAR = "MIRROR_SYNC_CONFIG"


class ProjectEntry(BaseModel):
    """An explicitly configured project."""

    local_name: str
    origin_url: str


class MirrorSettings(BaseModel):
    """The config.yaml schema."""

    default_url: str
    data_path: str
    ssh_key: str
    parallel: bool = False
    github_projects: List[str] = Field(default_factory=list)
    projects: Dict[str, ProjectEntry] = Field(default_factory=dict)

    @property
    def ssh_key_path(self) -> Path:
        return Path(os.path.expanduser(self.ssh_key))

    @property
    def project_count(self) -> int:
        return len(self.projects) + len(self.github_projects)


def load_yaml(path: Path) -> Any:
    """Load a YAML file and return its contents."""
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def resolve_config_path(config_file: Optional[str] = None) -> Path:
    """Pick the config file: explicit argument, then env var, then default."""
    return Path(config_file or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE)


def parse_config(data: Any, source: str = "<config>") -> MirrorSettings:
    """Validate an already-parsed config document."""
    if data is None:
        raise ConfigError("configuration is empty", field=source)
    if not isinstance(data, dict):
        raise ConfigError("configuration must be a mapping", field=source)

    # YAML `projects:` with no entries parses as None
    data = {k: v for k, v in data.items() if v is not None}

    try:
        return MirrorSettings(**data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(
            f"invalid configuration ({problems})",
            field=source,
            details={"errors": e.errors()},
        ) from e


def load_config(path: Path) -> MirrorSettings:
    """
    Load and validate the mirror configuration.

    Args:
        path: Path to the YAML configuration file

    Returns:
        Validated MirrorSettings

    Raises:
        ConfigError: If the file is missing, unreadable, or invalid
    """
    path = Path(path)
    logger.debug(f"Loading configuration from {path}")

    if not path.is_file():
        raise ConfigError(f"configuration file not found: {path}")

    try:
        data = load_yaml(path)
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e}") from e

    settings = parse_config(data, source=str(path))
    logger.info(
        f"Loaded configuration: {len(settings.projects)} project(s), "
        f"{len(settings.github_projects)} github project(s), "
        f"parallel={settings.parallel}"
    )
    return settings
