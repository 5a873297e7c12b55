"""
Tests for the sync scheduler: policies, completion, stop.
"""

import threading
import time

import pytest

from mirrorsync.errors import AuthError, WorkspaceError
from mirrorsync.mirror.git_client import FetchOutcome, PushOutcome
from mirrorsync.mirror.registry import build_registry
from mirrorsync.mirror.scheduler import CompletionBarrier, SyncScheduler
from mirrorsync.mirror.sink import StateTable
from mirrorsync.mirror.state import Phase


def _registry(make_settings, count=5):
    return build_registry(make_settings(
        projects={f"p{i}": f"https://example.com/p{i}.git" for i in range(count)},
        github_projects=["org/repo"],
    ))


def _mixed_script(registry):
    """First project fails, second has nothing new, the rest update."""
    return {
        registry[0].workspace_path: {"push": AuthError("push rejected: denied")},
        registry[1].workspace_path: {
            "fetch": FetchOutcome.ALREADY_UP_TO_DATE,
            "push": PushOutcome.ALREADY_UP_TO_DATE,
        },
    }


class TestCompletionBarrier:
    def test_wait_returns_when_all_complete(self):
        barrier = CompletionBarrier()
        for _ in range(3):
            barrier.launch()
        assert barrier.pending == 3
        assert not barrier.wait(timeout=0.01)

        for _ in range(3):
            threading.Thread(target=barrier.complete).start()
        assert barrier.wait(timeout=2)
        assert barrier.pending == 0
        assert barrier.launched == 3

    def test_nothing_launched(self):
        assert CompletionBarrier().wait(timeout=0)


class TestPolicies:
    """Sequential and parallel runs."""

    @pytest.mark.parametrize("parallel", [False, True])
    def test_every_project_terminal(self, make_settings, client_factory, credential, parallel):
        registry = _registry(make_settings)
        client = client_factory(_mixed_script(registry))
        scheduler = SyncScheduler(client, credential)

        result = scheduler.start(registry, parallel=parallel)

        assert result.completed
        assert scheduler.table.all_terminal()
        assert len(result.projects) == len(registry)
        assert result.phase_of("p0") == "error"
        assert result.phase_of("p1") == "done_nothing"
        assert result.phase_of("org/repo") == "done"
        assert (result.updated, result.unchanged, result.failed) == (4, 1, 1)
        assert result.parallel is parallel

    def test_parallel_matches_sequential(self, make_settings, client_factory, credential):
        registry = _registry(make_settings)
        phases = []
        for parallel in (False, True):
            client = client_factory(_mixed_script(registry))
            result = SyncScheduler(client, credential).start(registry, parallel=parallel)
            phases.append({p.id: p.phase for p in result.projects})
        assert phases[0] == phases[1]

    def test_sequential_order(self, make_settings, client_factory, credential):
        registry = _registry(make_settings, count=3)
        client = client_factory()
        SyncScheduler(client, credential).start(registry, parallel=False)

        clone_order = [path for op, path in client.calls if op == "clone"]
        assert clone_order == [d.workspace_path for d in registry]

    def test_parallel_runs_concurrently(self, make_settings, client_factory, credential):
        """Ten projects with 0.2s of scripted git work each beat the 2s a sequential run needs."""
        registry = _registry(make_settings, count=9)
        client = client_factory(delay=0.2 / 6)
        started = time.monotonic()

        result = SyncScheduler(client, credential).start(registry, parallel=True)

        assert result.completed
        assert time.monotonic() - started < 1.5

    def test_failure_isolated(self, make_settings, client_factory, credential):
        registry = _registry(make_settings, count=3)
        client = client_factory({
            registry[0].workspace_path: {"workspace": WorkspaceError("denied")},
        })
        result = SyncScheduler(client, credential).start(registry, parallel=True)
        assert result.failed == 1
        assert result.updated == len(registry) - 1

    def test_empty_registry(self, client_factory, credential):
        result = SyncScheduler(client_factory(), credential).start([], parallel=True)
        assert result.completed
        assert result.projects == []

    def test_uses_given_table(self, make_settings, client_factory, credential):
        registry = _registry(make_settings, count=1)
        table = StateTable()
        scheduler = SyncScheduler(client_factory(), credential)
        scheduler.start(registry, parallel=False, table=table, run_id="R-fixed")
        assert scheduler.table is table
        assert table.get("p0").phase == Phase.DONE


class TestCrashHandling:
    """A pipeline that raises still ends terminal."""

    def test_crashing_pipeline(self, make_settings, client_factory, credential):
        registry = _registry(make_settings, count=2)

        class Exploding:
            def run(self, descriptor):
                raise RuntimeError("kaboom")

        scheduler = SyncScheduler(
            client_factory(), credential, pipeline_factory=lambda table: Exploding()
        )
        result = scheduler.start(registry, parallel=True)

        assert result.completed
        assert result.failed == len(registry)
        state = scheduler.table.get("p0")
        assert state.phase == Phase.ERROR
        assert "kaboom" in state.last_line.text


class TestStop:
    """stop() prevents new launches, in-flight projects finish."""

    def test_stop_before_start(self, make_settings, client_factory, credential):
        registry = _registry(make_settings, count=2)
        client = client_factory()
        scheduler = SyncScheduler(client, credential)
        scheduler.stop()

        result = scheduler.start(registry, parallel=False)

        assert scheduler.stopped
        assert not result.completed
        assert result.not_started == len(registry)
        assert client.calls == []

    def test_stop_during_sequential_run(self, make_settings, client_factory, credential):
        registry = _registry(make_settings, count=3)
        scheduler = SyncScheduler(client_factory(), credential)

        class StopAfterFirst:
            def __init__(self, inner):
                self.inner = inner

            def run(self, descriptor):
                phase = self.inner.run(descriptor)
                scheduler.stop()
                return phase

        from mirrorsync.mirror.pipeline import MirrorPipeline

        scheduler._pipeline_factory = lambda table: StopAfterFirst(
            MirrorPipeline(scheduler.client, table, credential)
        )
        result = scheduler.start(registry, parallel=False)

        assert not result.completed
        assert result.phase_of("p0") == "done"
        assert result.phase_of("p1") == "unknown"
        assert result.not_started == len(registry) - 1

    def test_inflight_parallel_projects_finish(self, make_settings, client_factory, credential):
        registry = _registry(make_settings, count=3)
        client = client_factory()
        client.release.clear()
        scheduler = SyncScheduler(client, credential)

        done = []
        runner = threading.Thread(
            target=lambda: done.append(scheduler.start(registry, parallel=True))
        )
        runner.start()
        while len(client.calls) < len(registry):
            time.sleep(0.01)
        scheduler.stop()
        client.release.set()
        runner.join(timeout=5)

        (result,) = done
        assert result.completed
        assert result.updated == len(registry)

    def test_run_forever_honours_max_runs(self, make_settings, client_factory, credential):
        registry = _registry(make_settings, count=1)
        seen = []
        scheduler = SyncScheduler(client_factory(), credential)

        runs = scheduler.run_forever(
            registry, parallel=False, interval=0,
            on_result=seen.append, max_runs=2,
        )

        assert runs == 2
        assert len({r.run_id for r in seen}) == 2

    def test_run_forever_stops(self, make_settings, client_factory, credential):
        registry = _registry(make_settings, count=1)
        scheduler = SyncScheduler(client_factory(), credential)
        runs = scheduler.run_forever(
            registry, parallel=False, interval=60,
            on_result=lambda result: scheduler.stop(),
        )
        assert runs == 1

    def test_table_factory_receives_run_id(self, make_settings, client_factory, credential):
        registry = _registry(make_settings, count=1)
        ids = []
        results = []

        def factory(run_id):
            ids.append(run_id)
            return StateTable()

        SyncScheduler(client_factory(), credential).run_forever(
            registry, parallel=False, interval=0,
            table_factory=factory, on_result=results.append, max_runs=1,
        )
        assert ids == [results[0].run_id]
