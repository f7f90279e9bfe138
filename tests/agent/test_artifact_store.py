"""Tests for agent/artifact_store.py -- algorithm documents and finalization."""

import os

import pytest

from agent.artifact_store import (
    DEFAULT_CODE,
    ArtifactNameConflictError,
    ArtifactNameRequiredError,
    ArtifactStore,
    ArtifactStoreError,
    extract_last_code_block,
    make_code_block,
)
from coordinator_constants import FINAL_FLAG

CODE_V1 = "async function parse(pageUrl) {\n  return { manifestUrl: 'https://a.example/1.m3u8' }\n}"
CODE_V2 = "async function parse(pageUrl) {\n  return { manifestUrl: 'https://a.example/2.m3u8' }\n}"


class TestDocuments:
    def test_seeded_with_default_code(self, artifacts):
        path = artifacts.document_path("static")
        assert path.name == "algorithm_static.md"
        assert artifacts.current_code("static") == DEFAULT_CODE["static"].rstrip("\n")

    def test_aggregate_document_has_no_code(self, artifacts):
        path = artifacts.document_path(None)
        assert path.name == "algorithm.md"
        assert path.read_text(encoding="utf-8").startswith("# Current Algorithm Code (Aggregate)")

    def test_newest_block_wins(self, artifacts):
        artifacts.write_code("dynamic", CODE_V1, title="v1")
        artifacts.write_code("dynamic", CODE_V2, title="v2", language="JavaScript")
        assert artifacts.current_code("dynamic") == CODE_V2

    def test_unknown_target_goes_to_aggregate(self, artifacts, store):
        out = artifacts.write_code("sideways", CODE_V1)
        assert out["target"] == "aggregate"
        assert out["path"].endswith("algorithm.md")
        assert store.read_entries(type="write_code")[0].flags == ("KEEP",)

    def test_write_records_keep_entry(self, artifacts, store):
        artifacts.write_code("static", CODE_V1, title="first")
        entry = store.read_entries(type="write_code_static")[0]
        assert "KEEP" in entry.flags
        assert entry.payload == {"language": "js", "chars": len(CODE_V1)}


class TestExtract:
    def test_no_fences_returns_text(self):
        assert extract_last_code_block("plain") == "plain"

    def test_last_fence_without_heading(self):
        md = "```js\nfirst\n```\n\n```js\nsecond\n```\n"
        assert extract_last_code_block(md) == "second"

    def test_heading_block_ignores_meta_json(self):
        md = make_code_block("t", "code here", "js", {"source": "test"})
        assert extract_last_code_block(md) == "code here"


class TestFinalize:
    def test_finalize_writes_js(self, artifacts, store, config):
        artifacts.write_code("dynamic", CODE_V1)
        out = artifacts.finalize("dynamic", "example-site")
        path = config.algorithms_dir / "example-site.js"
        assert out == {"ok": True, "targetName": "example-site", "pick": "dynamic", "filePath": str(path)}
        assert path.read_text(encoding="utf-8") == CODE_V1
        entry = store.read_entries(type="finalize")[0]
        assert FINAL_FLAG in entry.flags and "CRITICAL" in entry.flags

    def test_pick_defaults_to_static(self, artifacts):
        artifacts.write_code("static", CODE_V2)
        out = artifacts.finalize(None, "fallback")
        assert out["pick"] == "static"
        assert artifacts.read_algorithm("fallback") == CODE_V2

    def test_name_required(self, artifacts):
        with pytest.raises(ArtifactNameRequiredError):
            artifacts.finalize("static", "  ")

    def test_invalid_name(self, artifacts):
        with pytest.raises(ArtifactStoreError):
            artifacts.finalize("static", "../escape")

    def test_conflict(self, artifacts):
        artifacts.finalize("static", "taken")
        with pytest.raises(ArtifactNameConflictError):
            artifacts.finalize("static", "taken")

    def test_conflict_with_other_extension(self, artifacts, config):
        config.algorithms_dir.mkdir(parents=True)
        (config.algorithms_dir / "legacy.md").write_text("```js\nold\n```\n", encoding="utf-8")
        with pytest.raises(ArtifactNameConflictError):
            artifacts.finalize("static", "legacy")
        assert artifacts.read_algorithm("legacy") == "old"


class TestListing:
    def test_empty_when_missing(self, tmp_path):
        assert ArtifactStore(tmp_path / "logs", tmp_path / "none").list_algorithms() == []

    def test_newest_first_and_hidden_skipped(self, artifacts, config):
        artifacts.finalize("static", "older")
        artifacts.finalize("static", "newer")
        older = config.algorithms_dir / "older.js"
        os.utime(older, (1_000_000, 1_000_000))
        (config.algorithms_dir / ".hidden.js").write_text("x", encoding="utf-8")
        (config.algorithms_dir / "notes.txt").write_text("x", encoding="utf-8")
        names = [item["name"] for item in artifacts.list_algorithms()]
        assert names == ["newer", "older"]

    def test_read_missing(self, artifacts):
        assert artifacts.read_algorithm("nothing") is None
