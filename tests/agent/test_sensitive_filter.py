"""Tests for agent/sensitive_filter.py -- reversible outbound masking."""

from agent.sensitive_filter import filter_enabled, mask_messages, mask_text, unmask_text


class TestMasking:
    def test_case_preserved(self):
        assert mask_text("Porn", True) == "Born"
        assert mask_text("PORN", True) == "BORN"
        assert mask_text("porn", True) == "born"

    def test_digits_and_urls(self):
        assert mask_text("https://91.example.com/v/91", True) == "https://61.example.com/v/61"

    def test_round_trip(self):
        original = "xvideos porn page 91"
        masked = mask_text(original, True)
        assert masked == "xv1deos born page 61"
        assert unmask_text(masked, True) == original

    def test_disabled_is_identity(self):
        assert mask_text("porn 91", False) == "porn 91"
        assert unmask_text("born 61", False) == "born 61"

    def test_empty(self):
        assert mask_text("", True) == ""


class TestEnvironmentToggle:
    def test_enabled_by_default(self, monkeypatch):
        monkeypatch.delenv("SENSITIVE_FILTER_ENABLED", raising=False)
        assert filter_enabled() is True
        assert mask_text("porn") == "born"

    def test_disabled_by_env(self, monkeypatch):
        monkeypatch.setenv("SENSITIVE_FILTER_ENABLED", "false")
        assert filter_enabled() is False
        assert mask_text("porn") == "porn"


class TestMessages:
    def test_copies_messages(self):
        messages = [{"role": "user", "content": "find the porn video"}]
        masked = mask_messages(messages, True)
        assert masked == [{"role": "user", "content": "find the born video"}]
        assert messages[0]["content"] == "find the porn video"

    def test_disabled_returns_same_list(self):
        messages = [{"role": "user", "content": "x"}]
        assert mask_messages(messages, False) is messages
