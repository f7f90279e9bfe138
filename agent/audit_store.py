"""Dual-channel audit ledger persisted as markdown.

Two append-only logs live under the log directory:

    agents.md      working store -- injected into prompts, pruned and compacted
    agents_raw.md  raw store     -- full mirror, never rewritten

Each entry is a self-delimited block: a heading line, an optional flags
line, the text, and a fenced JSON record holding every field.  Reading a
log back means scanning for those JSON records, so a written entry is
always recoverable by re-parsing the file.

Every mutation goes through one re-entrant lock per store.  Writes land
in the raw log first, then the working log, then the optional retention
hook runs (pruning synchronously, compaction in the background).
"""

import json
import logging
import math
import random
import re
import string
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from coordinator_constants import RAW_LOG_HEADER, WORKING_LOG_HEADER

logger = logging.getLogger(__name__)

WORKING = "working"
RAW = "raw"

_JSON_BLOCK_RE = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)
_BASE36 = string.digits + string.ascii_lowercase


def generate_id() -> str:
    """``<epoch-ms>_<6 base36 chars>`` -- the id format for entries and runs."""
    suffix = "".join(random.choice(_BASE36) for _ in range(6))
    return f"{int(time.time() * 1000)}_{suffix}"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class AuditEntry:
    """One immutable record in the audit log."""

    id: str
    agent: str
    type: str
    text: str = ""
    timestamp: str = field(default_factory=utc_timestamp)
    payload: Any = None
    flags: tuple = ()
    parent_id: Optional[str] = None

    def has_any_flag(self, flags: Iterable[str]) -> bool:
        wanted = set(flags)
        return any(f in wanted for f in self.flags)

    def to_record(self) -> Dict[str, Any]:
        """Serialized form, key names as they appear in the markdown log."""
        return {
            "agent": self.agent,
            "ts": self.timestamp,
            "type": self.type,
            "text": self.text,
            "payload": self.payload,
            "flags": list(self.flags),
            "parentMsgId": self.parent_id,
            "msgId": self.id,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "AuditEntry":
        flags = record.get("flags") or []
        if isinstance(flags, str):
            flags = [flags]
        return cls(
            id=str(record["msgId"]),
            agent=str(record.get("agent", "")),
            type=str(record.get("type", "")),
            text=record.get("text") or "",
            timestamp=str(record.get("ts", "")),
            payload=record.get("payload"),
            flags=tuple(str(f) for f in flags),
            parent_id=record.get("parentMsgId"),
        )


def render_block(entry: AuditEntry) -> str:
    flags_line = ("!" + " !".join(entry.flags)) if entry.flags else ""
    # Backticks never reach the file unescaped, so fences always delimit records.
    record = json.dumps(entry.to_record(), ensure_ascii=False, indent=2, default=str).replace("`", "\\u0060")
    return "\n".join([
        f"### [msg:{entry.timestamp}] {entry.agent} → {entry.type}",
        flags_line,
        (entry.text or "").replace("```", "'''"),
        "",
        "```json",
        record,
        "```",
        "",
    ])


def parse_blocks(content: str) -> List[AuditEntry]:
    """Recover entries from a markdown log by scanning its JSON records.

    Records without a ``msgId`` and blocks that fail to decode are skipped.
    """
    entries = []
    for match in _JSON_BLOCK_RE.finditer(content or ""):
        try:
            record = json.loads(match.group(1))
        except ValueError:
            continue
        if isinstance(record, dict) and record.get("msgId"):
            entries.append(AuditEntry.from_record(record))
    return entries


def estimate_tokens(entries: Sequence[AuditEntry]) -> int:
    """Rough token estimate: compact JSON length of every record / 4."""
    total = sum(
        len(json.dumps(e.to_record(), ensure_ascii=False, separators=(",", ":"), default=str))
        for e in entries
    )
    return math.ceil(total / 4)


class AuditStore:
    """Working + raw markdown ledgers sharing one id space.

    Args:
        log_dir: Directory holding ``agents.md`` and ``agents_raw.md``.
        on_working_write: Retention hook, called with the store after each
            working-store append (outside the write, inside no lock).
    """

    def __init__(self, log_dir: Path, on_working_write: Optional[Callable[["AuditStore"], None]] = None):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.working_path = self.log_dir / "agents.md"
        self.raw_path = self.log_dir / "agents_raw.md"
        self.on_working_write = on_working_write
        self.lock = threading.RLock()
        with self.lock:
            self._ensure_file(self.working_path, WORKING_LOG_HEADER)
            self._ensure_file(self.raw_path, RAW_LOG_HEADER)
            self._raw_ids = {e.id for e in parse_blocks(self.raw_path.read_text(encoding="utf-8"))}

    @staticmethod
    def _ensure_file(path: Path, header: str):
        if not path.exists():
            path.write_text(f"{header}\n\n", encoding="utf-8")

    def _path(self, channel: str) -> Path:
        if channel == WORKING:
            return self.working_path
        if channel == RAW:
            return self.raw_path
        raise ValueError(f"Unknown audit channel: {channel}")

    def _new_entry(self, agent, type, text, payload, flags, parent_id) -> AuditEntry:
        entry_id = generate_id()
        while entry_id in self._raw_ids:
            entry_id = generate_id()
        return AuditEntry(
            id=entry_id,
            agent=agent,
            type=type,
            text=text or "",
            payload=payload,
            flags=tuple(flags or ()),
            parent_id=parent_id,
        )

    def _append_block(self, channel: str, entry: AuditEntry):
        with open(self._path(channel), "a", encoding="utf-8") as f:
            f.write(render_block(entry))
        if channel == RAW:
            self._raw_ids.add(entry.id)

    # -- Writes ---------------------------------------------------------------

    def append(self, agent: str, type: str, text: str = "", *, payload: Any = None,
               flags: Optional[Iterable[str]] = None, parent_id: Optional[str] = None,
               run_retention: bool = True) -> AuditEntry:
        """Write one entry to the raw store, then the working store."""
        with self.lock:
            entry = self._new_entry(agent, type, text, payload, flags, parent_id)
            self._append_block(RAW, entry)
            self._append_block(WORKING, entry)
        if run_retention and self.on_working_write is not None:
            self.on_working_write(self)
        return entry

    def append_raw(self, agent: str, type: str, text: str = "", *, payload: Any = None,
                   flags: Optional[Iterable[str]] = None, parent_id: Optional[str] = None) -> AuditEntry:
        """Write to the raw store only (bulky originals that never reach prompts)."""
        with self.lock:
            entry = self._new_entry(agent, type, text, payload, flags, parent_id)
            self._append_block(RAW, entry)
        return entry

    def mirror_to_raw(self, entries: Iterable[AuditEntry]) -> int:
        """Append any working entries whose id the raw store has not seen."""
        count = 0
        with self.lock:
            for entry in entries:
                if entry.id not in self._raw_ids:
                    self._append_block(RAW, entry)
                    count += 1
        return count

    def rewrite_working(self, entries: Sequence[AuditEntry]):
        """Replace the working log with *entries* (retention only)."""
        with self.lock:
            body = "".join(render_block(e) for e in entries)
            tmp = self.working_path.with_suffix(".md.tmp")
            tmp.write_text(f"{WORKING_LOG_HEADER}\n\n{body}", encoding="utf-8")
            tmp.replace(self.working_path)

    def write_working_text(self, text: str):
        """Replace the working log with raw markdown (compaction output)."""
        with self.lock:
            tmp = self.working_path.with_suffix(".md.tmp")
            tmp.write_text(text, encoding="utf-8")
            tmp.replace(self.working_path)

    # -- Reads ----------------------------------------------------------------

    def read_text(self, channel: str = WORKING) -> str:
        with self.lock:
            return self._path(channel).read_text(encoding="utf-8")

    def entries(self, channel: str = WORKING) -> List[AuditEntry]:
        return parse_blocks(self.read_text(channel))

    def read_entries(self, channel: str = WORKING, *, agent: Optional[Sequence[str]] = None,
                     type: Optional[Sequence[str]] = None, since_id: Optional[str] = None) -> List[AuditEntry]:
        """Filtered read; *since_id* keeps only entries strictly after that id."""
        records = self.entries(channel)
        if since_id:
            for idx, entry in enumerate(records):
                if entry.id == since_id:
                    records = records[idx + 1:]
                    break
        if agent:
            wanted_agents = {agent} if isinstance(agent, str) else set(agent)
            records = [e for e in records if e.agent in wanted_agents]
        if type:
            wanted_types = {type} if isinstance(type, str) else set(type)
            records = [e for e in records if e.type in wanted_types]
        return records

    def measure(self, channel: str = WORKING) -> Dict[str, int]:
        content = self.read_text(channel)
        return {"fileChars": len(content), "fileLines": len(content.split("\n"))}

    def estimate_tokens(self, channel: str = WORKING) -> int:
        return estimate_tokens(self.entries(channel))

    def raw_count(self) -> int:
        with self.lock:
            return len(self._raw_ids)
