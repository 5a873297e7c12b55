"""
Mirror Module — Registry, git client, per-project pipeline and scheduler.
"""

from .git_client import GitClient, VersionControlClient
from .pipeline import MirrorPipeline, StepResult
from .registry import ProjectDescriptor, build_registry
from .scheduler import SyncScheduler
from .sink import JsonLinesSink, LoggingSink, StateTable, StatusSink
from .state import Phase, ProjectState

__all__ = [
    "GitClient",
    "VersionControlClient",
    "MirrorPipeline",
    "StepResult",
    "ProjectDescriptor",
    "build_registry",
    "SyncScheduler",
    "StatusSink",
    "StateTable",
    "LoggingSink",
    "JsonLinesSink",
    "Phase",
    "ProjectState",
]
