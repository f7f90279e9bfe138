"""Tests for agent/reasoning_client.py -- transport framing and error mapping."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from agent.config import ClientConfig
from agent.reasoning_client import ReasoningClient, ReasoningServiceError, client_for_role
from coordinator_constants import ARK_BASE_URL, ARK_DEFAULT_MODEL


def _response(content):
    resp = MagicMock()
    resp.choices = [SimpleNamespace(message=SimpleNamespace(content=content))]
    resp.model_dump.return_value = {"id": "resp_1"}
    return resp


def _client(openai_client, sensitive_filter=True):
    return ReasoningClient(ClientConfig(api_key="k", model="model-a"),
                           sensitive_filter=sensitive_filter, client=openai_client)


class TestChat:
    def test_reply_content_and_raw(self):
        openai_client = MagicMock()
        openai_client.chat.completions.create.return_value = _response('{"tool": "x"}')
        reply = _client(openai_client).chat([{"role": "user", "content": "hi"}])
        assert reply.content == '{"tool": "x"}'
        assert reply.raw == {"id": "resp_1"}

    def test_request_framing(self):
        openai_client = MagicMock()
        openai_client.chat.completions.create.return_value = _response("{}")
        _client(openai_client).chat([{"role": "user", "content": "hi"}], model="model-b")
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "model-b"
        assert kwargs["response_format"] == {"type": "json_object"}

    def test_outbound_masked_and_reply_unmasked(self):
        openai_client = MagicMock()
        openai_client.chat.completions.create.return_value = _response("xv1deos result")
        reply = _client(openai_client).chat([{"role": "user", "content": "xvideos page"}])
        sent = openai_client.chat.completions.create.call_args.kwargs["messages"]
        assert sent[0]["content"] == "xv1deos page"
        assert reply.content == "xvideos result"

    def test_filter_off(self):
        openai_client = MagicMock()
        openai_client.chat.completions.create.return_value = _response("xv1deos")
        reply = _client(openai_client, sensitive_filter=False).chat([{"role": "user", "content": "xvideos"}])
        sent = openai_client.chat.completions.create.call_args.kwargs["messages"]
        assert sent[0]["content"] == "xvideos"
        assert reply.content == "xv1deos"

    def test_transport_error_wrapped(self):
        openai_client = MagicMock()
        openai_client.chat.completions.create.side_effect = TimeoutError("read timeout")
        with pytest.raises(ReasoningServiceError, match="read timeout"):
            _client(openai_client).chat([{"role": "user", "content": "hi"}])

    def test_malformed_response(self):
        openai_client = MagicMock()
        resp = MagicMock()
        resp.choices = []
        openai_client.chat.completions.create.return_value = resp
        with pytest.raises(ReasoningServiceError, match="Malformed"):
            _client(openai_client).chat([{"role": "user", "content": "hi"}])

    def test_missing_key(self):
        client = ReasoningClient(ClientConfig(api_key="", model="m"))
        with pytest.raises(ReasoningServiceError, match="ARK_API_KEY"):
            client.chat([{"role": "user", "content": "hi"}])

    def test_callable(self):
        openai_client = MagicMock()
        openai_client.chat.completions.create.return_value = _response("{}")
        assert _client(openai_client)([{"role": "user", "content": "hi"}]).content == "{}"


class TestRoleConfig:
    def test_role_specific_key_and_model(self, monkeypatch):
        monkeypatch.setenv("ARK_API_KEY", "shared")
        monkeypatch.setenv("STATIC_PARSER_API_KEY", "static-key")
        monkeypatch.setenv("STATIC_PARSER_MODEL_ID", "static-model")
        cfg = ClientConfig.for_role("static_parser")
        assert cfg.api_key == "static-key"
        assert cfg.model == "static-model"

    def test_falls_back_to_shared(self, monkeypatch):
        monkeypatch.setenv("ARK_API_KEY", "shared")
        monkeypatch.setenv("ARK_MODEL_ID", "shared-model")
        monkeypatch.delenv("NETWORK_CAPTURE_API_KEY", raising=False)
        monkeypatch.delenv("NETWORK_CAPTURE_MODEL_ID", raising=False)
        cfg = ClientConfig.for_role("NETWORK_CAPTURE")
        assert cfg.api_key == "shared"
        assert cfg.model == "shared-model"

    def test_defaults(self, monkeypatch):
        for var in ("ARK_API_KEY", "ARK_MODEL_ID", "ARK_BASE_URL", "LLM_REQUEST_TIMEOUT"):
            monkeypatch.delenv(var, raising=False)
        cfg = ClientConfig.for_role()
        assert cfg.api_key == ""
        assert cfg.model == ARK_DEFAULT_MODEL
        assert cfg.base_url == ARK_BASE_URL
        assert cfg.timeout == 120.0

    def test_client_for_role(self, monkeypatch):
        monkeypatch.setenv("ARK_API_KEY", "shared")
        monkeypatch.delenv("HISTORY_COMPRESSOR_API_KEY", raising=False)
        client = client_for_role("HISTORY_COMPRESSOR", sensitive_filter=False)
        assert client.sensitive_filter is False
        assert client.config.api_key == "shared"
