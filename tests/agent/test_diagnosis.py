"""Tests for agent/diagnosis.py."""

import pytest

from agent.diagnosis import ERROR_TYPES, classify_error, detect_input_limit, diagnose, propose_fix


@pytest.mark.parametrize("logs, expected", [
    ("Request failed: input limit exceeded", "input_limit"),
    ("maximum context length is 32768 tokens", "input_limit"),
    ("GET https://cdn.example.com/x.m3u8 -> 403 Forbidden", "network_403"),
    ("Widevine DRM license required", "drm_protected"),
    ("could not parse manifest body", "manifest_parse_error"),
    ("variants list is empty", "variants_empty"),
    ("something else", "unknown"),
    ("", "unknown"),
    (None, "unknown"),
])
def test_classify(logs, expected):
    assert classify_error(logs) == expected


def test_every_type_has_a_fix():
    for error_type in ERROR_TYPES:
        fix = propose_fix(error_type)
        assert fix["action"]
        assert fix["notes"]


def test_unknown_type_gets_inspect():
    assert propose_fix("made_up")["action"] == "inspect"


def test_diagnose_combines():
    out = diagnose("HTTP 403 on segment fetch")
    assert out == {"type": "network_403", "fix": propose_fix("network_403")}


@pytest.mark.parametrize("error, expected", [
    ("", False),
    ("too many tokens in request", True),
    ("Input limit reached", True),
    ("connection reset", False),
])
def test_detect_input_limit(error, expected):
    assert detect_input_limit(error) == {"isInputLimit": expected}
