"""
Project Registry — Normalize configuration into mirror targets.

Two sources are unioned, explicit projects first:
- projects: each with its own local_name and origin_url
- github_projects: "org/repo" shorthands, cloned from https://github.com/

Ids must be unique across both sources.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List

from ..config.loader import MirrorSettings
from ..errors import ConfigError

logger = logging.getLogger(__name__)

GITHUB_URL = "https://github.com/"

SOURCE_PROJECT = "project"
SOURCE_GITHUB = "github"


@dataclass(frozen=True)
class ProjectDescriptor:
    """Identity and locations for one mirror target."""

    id: str
    origin_url: str
    target_url: str
    workspace_path: str
    source: str = SOURCE_PROJECT


def _is_shorthand(value: str) -> bool:
    parts = value.split("/")
    return (
        len(parts) == 2
        and all(parts)
        and not any(c.isspace() for c in value)
    )


def make_descriptor(
    settings: MirrorSettings,
    project_id: str,
    origin_url: str,
    source: str = SOURCE_PROJECT,
) -> ProjectDescriptor:
    """Build a descriptor, computing target URL and workspace path."""
    return ProjectDescriptor(
        id=project_id,
        origin_url=origin_url,
        target_url=settings.default_url + project_id,
        workspace_path=settings.data_path + project_id,
        source=source,
    )


def build_registry(settings: MirrorSettings) -> List[ProjectDescriptor]:
    """
    Build the ordered list of mirror targets.

    Raises:
        ConfigError: On a malformed entry or when two entries share an id
    """
    descriptors: List[ProjectDescriptor] = []
    seen: Dict[str, str] = {}

    def _add(descriptor: ProjectDescriptor, origin_key: str) -> None:
        if descriptor.id in seen:
            raise ConfigError(
                f"duplicate project id '{descriptor.id}' "
                f"({seen[descriptor.id]} and {origin_key})",
                field="projects",
            )
        seen[descriptor.id] = origin_key
        descriptors.append(descriptor)

    for key, entry in settings.projects.items():
        if not entry.local_name.strip():
            raise ConfigError("local_name must not be empty", field=f"projects.{key}")
        if not entry.origin_url.strip():
            raise ConfigError("origin_url must not be empty", field=f"projects.{key}")
        _add(
            make_descriptor(settings, entry.local_name, entry.origin_url),
            f"projects.{key}",
        )

    for index, shorthand in enumerate(settings.github_projects):
        if not _is_shorthand(shorthand):
            raise ConfigError(
                f"expected 'org/repo', got '{shorthand}'",
                field=f"github_projects[{index}]",
            )
        _add(
            make_descriptor(settings, shorthand, GITHUB_URL + shorthand, SOURCE_GITHUB),
            f"github_projects[{index}]",
        )

    logger.debug(f"Registry built with {len(descriptors)} project(s)")
    return descriptors
