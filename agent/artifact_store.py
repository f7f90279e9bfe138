"""Algorithm code store.

Sub-agents maintain two working documents in the log directory:

    algorithm_static.md   code owned by the static parser
    algorithm_dynamic.md  code owned by the network capture agent
    algorithm.md          aggregate document for writes that name no target

Each write appends a ``### [code:<ts>] <title>`` block holding the full
code in a language fence plus a JSON meta block; the newest block is the
current version.  ``finalize`` copies the current version of one document
into the algorithms directory as ``<name>.js``.
"""

import json
import logging
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from agent.audit_store import AuditStore
from coordinator_constants import FINAL_FLAG

logger = logging.getLogger(__name__)

CODE_AGENT = "code_maintainer"
TARGETS = ("static", "dynamic")
ALGORITHM_EXTENSIONS = (".js", ".ts", ".md")

_CODE_BLOCK_RE = re.compile(r"### \[code:[^\]]+\][\s\S]*?```[a-z0-9]*[\s\S]*?```")
_FENCE_RE = re.compile(r"```[a-z0-9]*\n([\s\S]*?)\n```")
_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class ArtifactStoreError(Exception):
    """Base class for algorithm store failures."""


class ArtifactNameRequiredError(ArtifactStoreError):
    """Finalize was called without a target algorithm name."""


class ArtifactNameConflictError(ArtifactStoreError):
    """An algorithm with the requested name already exists."""


_PARSE_PRELUDE = """\
async function parse(pageUrl, helpers, headers) {
  const nextHeaders = { ...headers }
  try {
    const u = new URL(pageUrl)
    if (!nextHeaders['Origin']) nextHeaders['Origin'] = u.origin
    if (!nextHeaders['Referer']) nextHeaders['Referer'] = u.origin + '/'
  } catch (e) {}
  if (!nextHeaders['User-Agent']) nextHeaders['User-Agent'] =
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36'
  if (!nextHeaders['Accept']) nextHeaders['Accept'] = 'text/html,*/*;q=0.8'
  const res = await helpers.fetch(pageUrl, { headers: nextHeaders })
  if (!res || res.status >= 400) return { headers: nextHeaders }
  const html = await res.text()
  const decode = (s) => s ? s.replace(/\\\\\\//g, '/').replace(/\\\\u002F/g, '/').replace(/&amp;/g, '&') : s
  const makeAbs = (u) => { if (!u) return undefined; try { return new URL(u, pageUrl).toString() } catch (e) { return u } }
"""

_PARSE_FALLBACK = """\
  const m1 = html.match(/html5player\\.setVideoHLS\\(['"]([^'"]+)['"]\\)/i)
  const manifestFromPlayer = m1 ? makeAbs(decode(m1[1])) : undefined
  const hls = html.match(/(https?:[^\\s"'<>]+\\.m3u8[^\\s"'<>]*)/i)
  const dash = html.match(/(https?:[^\\s"'<>]+\\.mpd[^\\s"'<>]*)/i)
  const mp4 = html.match(/(https?:[^\\s"'<>]+\\.mp4[^\\s"'<>]*)/i)
  const manifestUrl = manifestFromPlayer || makeAbs((hls && hls[1]) || (dash && dash[1]))
  const directUrl = makeAbs(mp4 && mp4[1])
  if (manifestUrl) return { manifestUrl, headers: nextHeaders }
  if (directUrl) return { directUrl, headers: nextHeaders }
  return { headers: nextHeaders }
}
"""

_PLAYER_CONFIG = """\
  const cfgMatch = html.match(/(__PLAYER_CONFIG__|playerConfig|window\\.(?:PLAYER|player)Config)\\s*=\\s*(\\{[\\s\\S]*?\\})/i)
  if (cfgMatch) {
    try {
      const cfg = JSON.parse(cfgMatch[2])
      const hlsUrl = cfg.hlsUrl || cfg.m3u8 || cfg.manifest || (cfg.sources && (cfg.sources.hls || cfg.sources.m3u8))
      const dashUrl = cfg.dashUrl || cfg.mpd || (cfg.sources && cfg.sources.mpd)
      const fromConfig = makeAbs(decode(hlsUrl || dashUrl))
      if (fromConfig) return { manifestUrl: fromConfig, headers: nextHeaders }
    } catch (e) {}
  }
"""

DEFAULT_CODE = {
    "static": _PARSE_PRELUDE + _PARSE_FALLBACK,
    "dynamic": _PARSE_PRELUDE + _PLAYER_CONFIG + _PARSE_FALLBACK,
}

DOCUMENT_TITLES = {
    "static": "# Static Algorithm Code",
    "dynamic": "# Dynamic Algorithm Code",
    None: "# Current Algorithm Code (Aggregate)",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def make_code_block(title: Optional[str], code: str, language: Optional[str] = None,
                    meta: Any = None) -> str:
    ts = _now_iso()
    lang = re.sub(r"[^a-z0-9]", "", (language or "js").lower()) or "js"
    meta_obj = {"ts": ts}
    if isinstance(meta, dict):
        meta_obj.update(meta)
    elif meta is not None:
        meta_obj["meta"] = meta
    return "\n".join([
        f"### [code:{ts}] {title or ''}".strip(),
        f"```{lang}",
        code,
        "```",
        "",
        "```json",
        json.dumps(meta_obj, ensure_ascii=False, indent=2, default=str),
        "```",
        "",
    ])


def extract_last_code_block(md: str) -> str:
    """Code of the newest ``[code:...]`` block.

    A document with no such block (a freshly seeded one) yields the code of
    its last fence, and a document without fences is returned whole.
    """
    md = md or ""
    blocks = _CODE_BLOCK_RE.findall(md)
    if blocks:
        fence = _FENCE_RE.search(blocks[-1])
        if fence:
            return fence.group(1)
    fences = _FENCE_RE.findall(md)
    if fences:
        return fences[-1]
    return md


class ArtifactStore:
    """Working algorithm documents plus the finalized algorithm directory.

    Args:
        log_dir: Directory holding the algorithm_*.md documents.
        algorithms_dir: Directory for finalized ``<name>.js`` files.
        store: Audit store receiving KEEP / FINAL entries.
    """

    def __init__(self, log_dir: Path, algorithms_dir: Path, store: Optional[AuditStore] = None):
        self.log_dir = Path(log_dir)
        self.algorithms_dir = Path(algorithms_dir)
        self.store = store
        self._lock = threading.Lock()

    def document_path(self, target: Optional[str]) -> Path:
        if target == "static":
            name = "algorithm_static.md"
        elif target == "dynamic":
            name = "algorithm_dynamic.md"
        else:
            name = "algorithm.md"
        path = self.log_dir / name
        if not path.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
            body = f"{DOCUMENT_TITLES[target]}\n\n"
            if target in DEFAULT_CODE:
                body += f"```js\n{DEFAULT_CODE[target]}```\n"
            path.write_text(body, encoding="utf-8")
        return path

    def _record(self, type: str, text: str, payload: Any, flags):
        if self.store is not None:
            self.store.append(CODE_AGENT, type, text, payload=payload, flags=flags)

    def write_code(self, target: Optional[str], code: str, title: Optional[str] = None,
                   language: Optional[str] = None, meta: Any = None) -> Dict[str, Any]:
        """Append the complete code as the new current version of *target*."""
        if target not in TARGETS:
            target = None
        path = self.document_path(target)
        block = make_code_block(title, code, language, meta)
        with self._lock:
            with open(path, "a", encoding="utf-8") as f:
                f.write(block)
        label = target or "aggregate"
        self._record(
            f"write_code_{target}" if target else "write_code",
            f"Wrote {label} algorithm code: {(title or '')[:40]}",
            {"language": language or "js", "chars": len(code)},
            ["KEEP"],
        )
        return {"ok": True, "target": label, "path": str(path)}

    def current_code(self, target: Optional[str]) -> str:
        return extract_last_code_block(self.document_path(target).read_text(encoding="utf-8"))

    # -- Finalized algorithms -------------------------------------------------

    def list_algorithms(self) -> List[Dict[str, Any]]:
        """Stored algorithms, newest first."""
        if not self.algorithms_dir.is_dir():
            return []
        out = []
        for path in self.algorithms_dir.iterdir():
            if path.name.startswith(".") or path.suffix.lower() not in ALGORITHM_EXTENSIONS:
                continue
            out.append({"name": path.stem, "createdAt": path.stat().st_mtime})
        out.sort(key=lambda item: item["createdAt"], reverse=True)
        return out

    def _resolve(self, name: str) -> Optional[Path]:
        for ext in ALGORITHM_EXTENSIONS:
            path = self.algorithms_dir / f"{name}{ext}"
            if path.exists():
                return path
        return None

    def read_algorithm(self, name: str) -> Optional[str]:
        path = self._resolve(name)
        if path is None:
            return None
        content = path.read_text(encoding="utf-8")
        if path.suffix == ".md":
            return extract_last_code_block(content)
        return content

    def finalize(self, pick: Optional[str], target_name: Optional[str]) -> Dict[str, Any]:
        """Store the current *pick* code as ``<target_name>.js``.

        Raises:
            ArtifactNameRequiredError: no name given.
            ArtifactNameConflictError: the name is already taken.
        """
        pick = pick if pick in TARGETS else "static"
        name = (target_name or "").strip()
        if not name:
            raise ArtifactNameRequiredError("An algorithm name is required to finalize")
        if not _NAME_RE.match(name):
            raise ArtifactStoreError(f"Invalid algorithm name: {name}")

        code = self.current_code(pick)
        with self._lock:
            if self._resolve(name) is not None:
                raise ArtifactNameConflictError(f"Algorithm name conflict: {name}")
            self.algorithms_dir.mkdir(parents=True, exist_ok=True)
            path = self.algorithms_dir / f"{name}.js"
            path.write_text(code, encoding="utf-8")

        logger.info("Finalized %s algorithm as %s", pick, path)
        self._record(
            "finalize",
            f"Stored final {pick} algorithm as {name}",
            {"name": name, "pick": pick, "path": str(path)},
            [FINAL_FLAG, "CRITICAL", "KEEP"],
        )
        return {"ok": True, "targetName": name, "pick": pick, "filePath": str(path)}
