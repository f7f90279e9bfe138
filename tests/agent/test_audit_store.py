"""Tests for agent/audit_store.py -- the dual-channel markdown ledger."""

import math
import json
from unittest.mock import MagicMock

import pytest

from agent.audit_store import (
    RAW,
    WORKING,
    AuditEntry,
    AuditStore,
    estimate_tokens,
    generate_id,
    parse_blocks,
    render_block,
)
from coordinator_constants import RAW_LOG_HEADER, WORKING_LOG_HEADER


@pytest.fixture
def fresh_store(tmp_path):
    return AuditStore(tmp_path / "logs")


class TestFiles:
    def test_headers_written_on_creation(self, fresh_store):
        assert fresh_store.read_text(WORKING).startswith(WORKING_LOG_HEADER)
        assert fresh_store.read_text(RAW).startswith(RAW_LOG_HEADER)

    def test_unknown_channel(self, fresh_store):
        with pytest.raises(ValueError):
            fresh_store.read_text("scratch")

    def test_reopen_keeps_entries_and_ids(self, tmp_path):
        first = AuditStore(tmp_path / "logs")
        entry = first.append("coordinator(LLM)", "note", "hello")
        second = AuditStore(tmp_path / "logs")
        assert [e.id for e in second.entries()] == [entry.id]
        assert second.raw_count() == 1


class TestAppend:
    def test_append_goes_to_both_channels_with_same_id(self, fresh_store):
        entry = fresh_store.append("coordinator(LLM)", "tool_call", "Called x", payload={"tool": "x"},
                                   flags=["KEEP"])
        working = fresh_store.entries(WORKING)
        raw = fresh_store.entries(RAW)
        assert [e.id for e in working] == [entry.id]
        assert [e.id for e in raw] == [entry.id]
        assert working[0].payload == {"tool": "x"}
        assert working[0].flags == ("KEEP",)

    def test_append_raw_skips_working(self, fresh_store):
        fresh_store.append_raw("html_preprocessor", "html_original", "big", payload={"html": "<p>"})
        assert fresh_store.entries(WORKING) == []
        assert len(fresh_store.entries(RAW)) == 1

    def test_ids_unique(self, fresh_store):
        ids = {fresh_store.append("a", "note", str(i)).id for i in range(200)}
        assert len(ids) == 200
        assert fresh_store.raw_count() == 200

    def test_hook_runs_after_working_writes_only(self, tmp_path):
        hook = MagicMock()
        s = AuditStore(tmp_path / "logs", on_working_write=hook)
        s.append("a", "note", "one")
        s.append_raw("a", "note", "raw only")
        s.append("a", "note", "quiet", run_retention=False)
        hook.assert_called_once_with(s)

    def test_text_with_fences_round_trips(self, fresh_store):
        text = 'model said ```json\n{"msgId": "fake"}\n``` and stopped'
        fresh_store.append("coordinator(LLM)", "note", text, payload={"code": "a ``` b"})
        entries = fresh_store.entries()
        assert len(entries) == 1
        assert entries[0].text == text
        assert entries[0].payload == {"code": "a ``` b"}


class TestReads:
    def test_filters(self, fresh_store):
        first = fresh_store.append("coordinator(LLM)", "note", "1")
        fresh_store.append("static_parser(LLM)", "tool_call", "2")
        fresh_store.append("coordinator(LLM)", "tool_call", "3")

        assert [e.text for e in fresh_store.read_entries(agent="coordinator(LLM)")] == ["1", "3"]
        assert [e.text for e in fresh_store.read_entries(type=["tool_call"])] == ["2", "3"]
        assert [e.text for e in fresh_store.read_entries(since_id=first.id)] == ["2", "3"]

    def test_unknown_since_id_returns_everything(self, fresh_store):
        fresh_store.append("a", "note", "1")
        assert len(fresh_store.read_entries(since_id="missing")) == 1

    def test_measure(self, fresh_store):
        fresh_store.append("a", "note", "hello")
        content = fresh_store.read_text()
        assert fresh_store.measure() == {"fileChars": len(content), "fileLines": len(content.split("\n"))}


class TestRewrite:
    def test_rewrite_working_leaves_raw(self, fresh_store):
        entries = [fresh_store.append("a", "note", str(i)) for i in range(5)]
        fresh_store.rewrite_working(entries[-2:])
        assert [e.text for e in fresh_store.entries()] == ["3", "4"]
        assert len(fresh_store.entries(RAW)) == 5

    def test_mirror_to_raw_adds_unseen_only(self, fresh_store):
        existing = fresh_store.append("a", "note", "kept")
        summary = AuditEntry(id=generate_id(), agent="history_compressor", type="summary", text="s")
        assert fresh_store.mirror_to_raw([existing, summary]) == 1
        assert fresh_store.raw_count() == 2


class TestHelpers:
    def test_generate_id_format(self):
        ms, suffix = generate_id().split("_")
        assert ms.isdigit()
        assert len(suffix) == 6

    def test_parse_blocks_skips_records_without_id(self):
        content = '# Log\n\n```json\n{"agent": "a"}\n```\n```json\nnot json\n```\n'
        assert parse_blocks(content) == []

    def test_render_then_parse(self):
        entry = AuditEntry(id="1_abcdef", agent="a", type="note", text="t", flags=("KEEP",), parent_id="0_x")
        assert parse_blocks(render_block(entry)) == [entry]

    def test_estimate_tokens(self):
        entry = AuditEntry(id="1_abcdef", agent="a", type="note", text="x" * 100)
        compact = json.dumps(entry.to_record(), ensure_ascii=False, separators=(",", ":"))
        assert estimate_tokens([entry]) == math.ceil(len(compact) / 4)
        assert estimate_tokens([]) == 0
