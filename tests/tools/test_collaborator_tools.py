"""Tests for tools/collaborator_tools.py -- network capture and human acceptance."""

from unittest.mock import MagicMock

from agent.capabilities import CapabilityRegistry
from tools import collaborator_tools


def _registry(ctx):
    reg = CapabilityRegistry()
    collaborator_tools.register(reg, ctx)
    return reg


class TestCaptureNetwork:
    def test_not_configured(self, make_ctx):
        out = _registry(make_ctx()).dispatch("capture_network", {})
        assert out["ok"] is False
        assert "not configured" in out["notes"]

    def test_headers_recorded_as_critical(self, make_ctx, store):
        capture = MagicMock(return_value={
            "manifestUrl": "https://cdn.example.com/master.m3u8",
            "headers": {"Referer": "https://video.example.com/"},
        })
        ctx = make_ctx(capture_network=capture)
        out = _registry(ctx).dispatch("capture_network", {})
        capture.assert_called_once_with("https://video.example.com/watch/1", None)
        assert out["manifestUrl"] == "https://cdn.example.com/master.m3u8"
        assert ctx.last_headers == {"Referer": "https://video.example.com/"}
        assert ctx.last_manifest_url == "https://cdn.example.com/master.m3u8"
        entries = store.entries()
        assert [e.type for e in entries] == ["capture", "headers"]
        assert entries[1].flags == ("CRITICAL",)

    def test_empty_result(self, make_ctx, store):
        ctx = make_ctx(capture_network=MagicMock(return_value=None))
        assert _registry(ctx).dispatch("capture_network", {"url": "https://b.example/"}) == {}
        assert ctx.last_headers is None
        assert [e.type for e in store.entries()] == ["capture"]


class TestHumanAcceptance:
    def test_request_carries_current_code_and_last_capture(self, make_ctx, store):
        accept = MagicMock(return_value={"ok": True, "accepted": True})
        ctx = make_ctx(human_acceptance=accept)
        ctx.last_headers = {"Referer": "https://video.example.com/"}
        ctx.last_manifest_url = "https://cdn.example.com/master.m3u8"
        out = _registry(ctx).dispatch("human_acceptance_flow", {"algo_pick": "DYNAMIC"})
        assert out == {"ok": True, "accepted": True}
        request = accept.call_args.args[0]
        assert request["algo_pick"] == "dynamic"
        assert request["code"] == ctx.artifacts.current_code("dynamic")
        assert request["headers"] == {"Referer": "https://video.example.com/"}
        assert request["manifestUrl"] == "https://cdn.example.com/master.m3u8"
        assert request["pageUrl"] == "https://video.example.com/watch/1"
        assert store.entries()[-1].type == "start_human_acceptance"

    def test_not_configured_still_logged(self, make_ctx, store):
        out = _registry(make_ctx()).dispatch("human_acceptance_flow", {"algo_pick": "static"})
        assert out["ok"] is False
        assert store.entries()[-1].text == "Submitted static algorithm for human acceptance"
