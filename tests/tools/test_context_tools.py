"""Tests for tools/context_tools.py -- audit log notes, reads and crop plans."""

import pytest

from agent.capabilities import CapabilityRegistry
from tools import context_tools


@pytest.fixture
def registry(make_ctx):
    reg = CapabilityRegistry()
    context_tools.register(reg, make_ctx())
    return reg


class TestRecordMessage:
    def test_note_written_with_flags(self, registry, store):
        out = registry.dispatch("record_message", {"text": "found headers", "payload": {"a": 1},
                                                   "flags": "CRITICAL"})
        assert out["ok"] is True
        entry = store.entries()[-1]
        assert entry.id == out["msgId"]
        assert entry.agent == "coordinator(LLM)"
        assert entry.type == "note"
        assert entry.flags == ("CRITICAL",)
        assert entry.payload == {"a": 1}

    def test_agent_override(self, make_ctx, store):
        reg = CapabilityRegistry()
        context_tools.register(reg, make_ctx(), agent="static_parser(LLM)")
        reg.dispatch("record_message", {"text": "report"})
        assert store.entries()[-1].agent == "static_parser(LLM)"


class TestReads:
    def test_filters(self, registry, store):
        first = store.append("a", "note", "one")
        store.append("b", "note", "two")
        store.append("a", "scan", "three")
        out = registry.dispatch("read_md_messages", {"agent": "a", "sinceMsgId": first.id})
        assert [m["text"] for m in out["messages"]] == ["three"]

    def test_measure_and_estimate(self, registry, store):
        store.append("a", "note", "x" * 100)
        measured = registry.dispatch("measure_md_file")
        assert measured["fileChars"] == len(store.read_text())
        tokens = registry.dispatch("estimate_tokens")
        assert tokens["count"] == 1
        assert tokens["tokens"] > 25


class TestCropHistory:
    def test_plan_is_read_only_and_logged(self, registry, store):
        for i in range(20):
            store.append("browser", "event", f"event {i}")
        before = [e.id for e in store.entries()]
        plan = registry.dispatch("crop_history", {"targetTokens": 1, "otherWindow": 10})
        assert plan["keptCount"] == 3
        assert plan["removedCount"] == 17
        assert plan["windowSize"]["otherWindow"] == 3
        after = store.entries()
        assert [e.id for e in after[:-1]] == before
        assert after[-1].type == "crop_plan"
        assert after[-1].flags == ("CROP_LOG",)


class TestDebugRecent:
    def test_reads_recorder(self, make_ctx):
        ctx = make_ctx()
        ctx.recorder.record_output(1, "model said hi")
        reg = CapabilityRegistry()
        context_tools.register(reg, ctx)
        assert reg.dispatch("read_debug_recent", {"limit": 1})["llmOutputs"] == ["model said hi"]
