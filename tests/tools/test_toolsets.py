"""Tests for toolsets.py and the per-role registries built by tools.build_registry."""

import pytest

import toolsets
from toolsets import TOOLSETS, get_toolset_info, resolve_toolset
from tools import build_registry


class TestResolve:
    def test_leaf(self):
        assert resolve_toolset("page") == ["fetch_page_html", "static_extract_html_candidates"]

    def test_includes_flattened(self):
        assert resolve_toolset("context") == [
            "crop_history", "estimate_tokens", "measure_md_file",
            "read_debug_recent", "read_md_messages", "record_message",
        ]

    def test_unknown_is_empty(self):
        assert resolve_toolset("nope") == []

    def test_cycle_detected(self, monkeypatch):
        monkeypatch.setitem(toolsets.TOOLSETS, "loop_a", {"description": "", "tools": [], "includes": ["loop_b"]})
        monkeypatch.setitem(toolsets.TOOLSETS, "loop_b", {"description": "", "tools": [], "includes": ["loop_a"]})
        with pytest.raises(ValueError, match="Circular"):
            resolve_toolset("loop_a")

    def test_info(self):
        info = get_toolset_info("static_parser")
        assert info["is_composite"] is True
        assert "code_maintainer_agent_write" in info["resolved_tools"]
        assert get_toolset_info("nope") is None


class TestRoleRegistries:
    def test_coordinator_has_everything(self, make_ctx):
        registry = build_registry(make_ctx(), "coordinator")
        every = set()
        for toolset in TOOLSETS.values():
            every.update(toolset["tools"])
        assert registry.names() == sorted(every)

    def test_coordinator_can_browse_stored_algorithms(self, make_ctx):
        names = build_registry(make_ctx(), "coordinator").names()
        assert "code_maintainer_agent_list_algorithms" in names
        assert "code_maintainer_agent_read_algorithm" in names

    def test_static_parser_cannot_delegate_or_finalize(self, make_ctx):
        names = build_registry(make_ctx(), "static_parser").names()
        assert "call_static_parser_agent" not in names
        assert "code_maintainer_agent_finalize" not in names
        assert "capture_network" not in names
        assert "static_extract_html_candidates" in names

    def test_network_capture_role(self, make_ctx):
        names = build_registry(make_ctx(), "network_capture").names()
        assert names == [
            "call_html_preprocessor", "capture_network", "code_maintainer_agent_write",
            "read_debug_recent", "record_message",
        ]
