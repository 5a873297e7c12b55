"""
Tests for the per-project mirror pipeline.

Uses the ScriptedClient from conftest; no git involved.
"""

from mirrorsync.errors import AuthError, RemoteConfigError, RepositoryOpenError, WorkspaceError
from mirrorsync.mirror.git_client import CloneOutcome, FetchOutcome, PushOutcome
from mirrorsync.mirror.pipeline import (
    STEP_CLONE,
    STEP_FETCH,
    STEP_PUSH,
    STEP_REMOTE,
    STEP_WORKSPACE,
    MirrorPipeline,
    StepResult,
    StepStatus,
)
from mirrorsync.mirror.registry import build_registry
from mirrorsync.mirror.sink import StateTable, StatusSink
from mirrorsync.mirror.state import Phase


class PhaseRecorder(StatusSink):
    def __init__(self):
        self.phases = []

    def record_event(self, project_id, phase):
        self.phases.append(phase)

    def append_log(self, project_id, text, step=None):
        pass


def _setup(make_settings, client, credential):
    settings = make_settings(projects={"svc": "https://example.com/svc.git"})
    (svc,) = build_registry(settings)
    table = StateTable([svc.id])
    recorder = PhaseRecorder()
    table.subscribe(recorder)
    return svc, table, recorder, MirrorPipeline(client, table, credential)


class TestStepResult:
    def test_constructors(self):
        assert StepResult.success("ok").status == StepStatus.SUCCESS
        assert StepResult.noop().status == StepStatus.NOOP
        assert StepResult.failure("bad").failed
        assert not StepResult.noop().failed


class TestSuccessfulRun:
    """A project that clones, fetches and pushes."""

    def test_svc_updated(self, make_settings, client, credential):
        """Fresh clone with new refs ends DONE with four log entries."""
        svc, table, recorder, pipeline = _setup(make_settings, client, credential)

        assert pipeline.run(svc) == Phase.DONE

        state = table.get("svc")
        assert state.phase == Phase.DONE
        assert [line.step for line in state.log] == [
            STEP_CLONE, STEP_FETCH, STEP_REMOTE, STEP_PUSH,
        ]
        assert state.log[0].text == "Cloned https://example.com/svc.git"
        assert state.log[-1].text == f"Pushed to {svc.target_url}"
        assert recorder.phases == [
            Phase.WAITING, Phase.DOWNLOADING, Phase.DOWNLOADING,
            Phase.UPLOADING, Phase.DONE,
        ]

    def test_client_called_in_order(self, make_settings, client, credential):
        svc, _, _, pipeline = _setup(make_settings, client, credential)
        pipeline.run(svc)
        assert client.ops_for(svc.workspace_path) == [
            "workspace", "clone", "open", "fetch", "remote", "push",
        ]

    def test_already_cloned_continues(self, make_settings, client, credential):
        """An existing repository is a no-op, not a failure."""
        svc, table, _, pipeline = _setup(make_settings, client, credential)
        client.script[svc.workspace_path] = {"clone": CloneOutcome.ALREADY_EXISTS}

        assert pipeline.run(svc) == Phase.DONE
        assert table.get("svc").log[0].text == "Repository already exists"

    def test_nothing_new(self, make_settings, client, credential):
        """Up-to-date fetch and nothing to push end DONE_NOTHING."""
        svc, table, recorder, pipeline = _setup(make_settings, client, credential)
        client.script[svc.workspace_path] = {
            "clone": CloneOutcome.ALREADY_EXISTS,
            "fetch": FetchOutcome.ALREADY_UP_TO_DATE,
            "push": PushOutcome.ALREADY_UP_TO_DATE,
        }

        assert pipeline.run(svc) == Phase.DONE_NOTHING
        state = table.get("svc")
        assert state.phase == Phase.DONE_NOTHING
        assert [line.text for line in state.log] == [
            "Repository already exists",
            "Already up to date",
            f"Mirror remote set to {svc.target_url}",
            "Nothing to push",
        ]
        assert Phase.ERROR not in recorder.phases


class TestFailures:
    """A failing step ends the project in ERROR and stops the sequence."""

    def test_workspace_failure(self, make_settings, client, credential):
        svc, table, recorder, pipeline = _setup(make_settings, client, credential)
        client.script[svc.workspace_path] = {
            "workspace": WorkspaceError("Could not create directory: read-only"),
        }

        assert pipeline.run(svc) == Phase.ERROR

        state = table.get("svc")
        assert len(state.log) == 1
        assert state.log[0].step == STEP_WORKSPACE
        assert "read-only" in state.log[0].text
        assert client.ops_for(svc.workspace_path) == ["workspace"]
        assert recorder.phases == [Phase.WAITING, Phase.ERROR]

    def test_push_auth_failure(self, make_settings, client, credential):
        svc, table, recorder, pipeline = _setup(make_settings, client, credential)
        client.script[svc.workspace_path] = {
            "push": AuthError("push rejected: Permission denied (publickey)"),
        }

        assert pipeline.run(svc) == Phase.ERROR

        state = table.get("svc")
        assert state.last_line.step == STEP_PUSH
        assert "AuthError" in state.last_line.text
        assert "Permission denied" in state.last_line.text
        assert recorder.phases[-2:] == [Phase.UPLOADING, Phase.ERROR]

    def test_open_failure_logs_once(self, make_settings, client, credential):
        svc, table, _, pipeline = _setup(make_settings, client, credential)
        client.script[svc.workspace_path] = {
            "open": RepositoryOpenError("Loading repository failed"),
        }

        assert pipeline.run(svc) == Phase.ERROR
        log = table.get("svc").log
        assert [line.step for line in log] == [STEP_CLONE, "open"]
        assert "fetch" not in client.ops_for(svc.workspace_path)

    def test_remote_failure(self, make_settings, client, credential):
        svc, table, _, pipeline = _setup(make_settings, client, credential)
        client.script[svc.workspace_path] = {"remote": RemoteConfigError("locked")}

        assert pipeline.run(svc) == Phase.ERROR
        assert "push" not in client.ops_for(svc.workspace_path)
        assert table.get("svc").last_line.step == STEP_REMOTE

    def test_unexpected_exception_becomes_error(self, make_settings, client, credential):
        svc, table, _, pipeline = _setup(make_settings, client, credential)
        client.script[svc.workspace_path] = {"fetch": KeyError("boom")}

        assert pipeline.run(svc) == Phase.ERROR
        assert table.get("svc").last_line.text.startswith("Unexpected error:")
