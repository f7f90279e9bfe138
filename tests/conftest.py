"""Shared fixtures: temp log directories, stores and a scripted reasoning service."""

import json
from types import SimpleNamespace

import pytest

from agent.artifact_store import ArtifactStore
from agent.audit_store import AuditStore
from agent.config import CoordinatorConfig, RetentionConfig
from agent.run_context import RunContext, TaskInput
from agent.trajectory import TrajectoryRecorder


class ScriptedChat:
    """Reasoning-service double that replays canned replies in order.

    Dicts are sent as JSON text, strings as-is, and exceptions are raised.
    Every call's messages are kept in ``calls`` for assertions.
    """

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def __call__(self, messages, model=None):
        self.calls.append([dict(m) for m in messages])
        if not self.replies:
            raise RuntimeError("scripted replies exhausted")
        item = self.replies.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, dict):
            item = json.dumps(item)
        return SimpleNamespace(content=item)


@pytest.fixture
def scripted_chat():
    return ScriptedChat


@pytest.fixture
def config(tmp_path):
    return CoordinatorConfig(
        log_dir=tmp_path / "logs",
        algorithms_dir=tmp_path / "algorithms",
        max_steps=20,
        retention=RetentionConfig(),
    )


@pytest.fixture
def store(config):
    return AuditStore(config.log_dir)


@pytest.fixture
def artifacts(config, store):
    return ArtifactStore(config.log_dir, config.algorithms_dir, store)


@pytest.fixture
def make_ctx(config, store, artifacts):
    """Factory for a RunContext over the temp stores."""

    def _make(task=None, chats=None, **kwargs):
        task = task or TaskInput(url="https://video.example.com/watch/1", algo_name="example")
        return RunContext(
            run_id="run_test",
            task=task,
            store=store,
            artifacts=artifacts,
            config=config,
            recorder=TrajectoryRecorder.for_run(config.log_dir, "run_test"),
            chats=chats or {},
            **kwargs,
        )

    return _make
