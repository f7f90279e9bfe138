"""Tests for agent/run_registry.py -- run status map and loop ownership."""

import threading

import pytest

from agent.run_registry import (
    DONE,
    ERROR,
    PENDING,
    RUNNING,
    RunAlreadyActiveError,
    RunRegistry,
)


class TestLifecycle:
    def test_create_pending(self):
        registry = RunRegistry()
        state = registry.create()
        assert state.status == PENDING
        assert state.step_count == 0
        assert registry.get(state.id).id == state.id

    def test_explicit_id_collision_gets_fresh_id(self):
        registry = RunRegistry()
        first = registry.create("run_a")
        second = registry.create("run_a")
        assert first.id == "run_a"
        assert second.id != "run_a"

    def test_unknown_run(self):
        assert RunRegistry().get("missing") is None

    def test_finish(self):
        registry = RunRegistry()
        run_id = registry.create().id
        registry.update(run_id, status=RUNNING)
        registry.set_step(run_id, 4)
        state = registry.finish(run_id, {"manifestUrl": "u"})
        assert state.status == DONE
        assert state.step_count == 4
        assert state.result == {"manifestUrl": "u"}
        assert state.terminal

    def test_fail_defaults_message(self):
        registry = RunRegistry()
        run_id = registry.create().id
        assert registry.fail(run_id, "").error == "unknown error"
        assert registry.get(run_id).status == ERROR

    def test_terminal_runs_are_frozen(self):
        registry = RunRegistry()
        run_id = registry.create().id
        registry.fail(run_id, "boom")
        registry.finish(run_id, {"late": True})
        registry.set_step(run_id, 99)
        state = registry.get(run_id)
        assert state.status == ERROR
        assert state.result is None
        assert state.step_count == 0

    def test_unknown_field_rejected(self):
        registry = RunRegistry()
        run_id = registry.create().id
        with pytest.raises(AttributeError):
            registry.update(run_id, colour="red")

    def test_get_returns_copy(self):
        registry = RunRegistry()
        run_id = registry.create().id
        registry.finish(run_id, {"a": [1]})
        registry.get(run_id).result["a"].append(2)
        assert registry.get(run_id).result == {"a": [1]}

    def test_snapshot(self):
        registry = RunRegistry()
        run_id = registry.create().id
        assert registry.snapshot()[run_id]["status"] == PENDING


class TestOwnership:
    def test_claim_twice_rejected(self):
        registry = RunRegistry()
        run_id = registry.create().id
        registry.claim(run_id)
        with pytest.raises(RunAlreadyActiveError):
            registry.claim(run_id)
        registry.release(run_id)
        registry.claim(run_id)

    def test_finished_run_cannot_be_claimed(self):
        registry = RunRegistry()
        run_id = registry.create().id
        registry.finish(run_id)
        with pytest.raises(RunAlreadyActiveError):
            registry.claim(run_id)

    def test_start_runs_target_and_releases(self):
        registry = RunRegistry()
        run_id = registry.create().id
        gate = threading.Event()

        def target():
            gate.wait(5)
            registry.finish(run_id, {"ok": True})

        thread = registry.start(run_id, target)
        with pytest.raises(RunAlreadyActiveError):
            registry.start(run_id, target)
        gate.set()
        thread.join(5)
        assert registry.get(run_id).status == DONE
        assert run_id not in registry._active
