"""Tests for tools/artifact_tools.py -- code writes and finalization."""

from agent.capabilities import CapabilityRegistry
from agent.run_context import TaskInput
from tools import artifact_tools

CODE = "async function parse(pageUrl, helpers, headers) { return { headers } }"


def _registry(ctx, target=None):
    reg = CapabilityRegistry()
    artifact_tools.register(reg, ctx, target=target)
    return reg


class TestWrite:
    def test_model_chooses_target(self, make_ctx):
        ctx = make_ctx()
        out = _registry(ctx).dispatch("code_maintainer_agent_write",
                                      {"target": "dynamic", "title": "v1", "code": CODE})
        assert out["target"] == "dynamic"
        assert ctx.artifacts.current_code("dynamic") == CODE

    def test_fixed_target_wins(self, make_ctx):
        ctx = make_ctx()
        out = _registry(ctx, target="static").dispatch("code_maintainer_agent_write",
                                                       {"target": "dynamic", "code": CODE})
        assert out["target"] == "static"

    def test_write_logged_with_keep(self, make_ctx, store):
        _registry(make_ctx()).dispatch("code_maintainer_agent_write", {"target": "static", "code": CODE})
        entry = store.entries()[-1]
        assert entry.type == "write_code_static"
        assert "KEEP" in entry.flags


class TestFinalize:
    def test_uses_task_name_by_default(self, make_ctx, config):
        ctx = make_ctx()
        out = _registry(ctx).dispatch("code_maintainer_agent_finalize", {"algo_pick": "static"})
        assert out["ok"] is True
        assert out["targetName"] == "example"
        assert (config.algorithms_dir / "example.js").exists()

    def test_missing_name_reported(self, make_ctx, store):
        ctx = make_ctx(task=TaskInput(url="https://a.example/v"))
        out = _registry(ctx).dispatch("code_maintainer_agent_finalize", {"algo_pick": "static"})
        assert out["ok"] is False
        assert out["errorType"] == "ArtifactNameRequiredError"
        assert store.entries()[-1].flags == ("ERROR",)

    def test_conflict_reported(self, make_ctx):
        reg = _registry(make_ctx())
        reg.dispatch("code_maintainer_agent_finalize", {"algo_pick": "dynamic", "targetName": "dup"})
        out = reg.dispatch("code_maintainer_agent_finalize", {"algo_pick": "dynamic", "targetName": "dup"})
        assert out["ok"] is False
        assert out["errorType"] == "ArtifactNameConflictError"


class TestStoredAlgorithms:
    def test_list_empty(self, make_ctx):
        out = _registry(make_ctx()).dispatch("code_maintainer_agent_list_algorithms", {})
        assert out == {"algorithms": []}

    def test_list_and_read_after_finalize(self, make_ctx):
        ctx = make_ctx()
        reg = _registry(ctx)
        reg.dispatch("code_maintainer_agent_write", {"target": "static", "code": CODE})
        reg.dispatch("code_maintainer_agent_finalize", {"algo_pick": "static", "targetName": "site_a"})

        listed = reg.dispatch("code_maintainer_agent_list_algorithms", {})
        assert [a["name"] for a in listed["algorithms"]] == ["site_a"]

        out = reg.dispatch("code_maintainer_agent_read_algorithm", {"name": "site_a"})
        assert out == {"ok": True, "name": "site_a", "code": CODE}

    def test_read_missing(self, make_ctx):
        out = _registry(make_ctx()).dispatch("code_maintainer_agent_read_algorithm", {"name": "nope"})
        assert out["ok"] is False
        assert out["notes"] == "not found"
