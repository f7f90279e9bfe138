"""Debug trajectory recording.

Every reasoning call a run makes is written to disk so a failed run can be
replayed by hand:

    logs/debug/<run_id>/
        initial_input.md
        llm_input_step_N.md / llm_output_step_N.md
        subagent_static/input_N.md, output_N.md
        subagent_network/input_N.md, output_N.md

Writing a debug file never fails a run; errors are logged at debug level.
The ``read_recent`` view backs the ``read_debug_recent`` capability.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

TAIL_CHARS = 4000

_STEP_RE = re.compile(r"_(\d+)\.md$")


def _step_key(path: Path) -> int:
    match = _STEP_RE.search(path.name)
    return int(match.group(1)) if match else -1


def _tail(path: Path, chars: int = TAIL_CHARS) -> str:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.debug("Could not read %s: %s", path, e)
        return ""
    return text[-chars:]


def render_messages(messages: List[Dict[str, Any]]) -> str:
    parts = []
    for idx, msg in enumerate(messages):
        parts.append(f"## [{idx}] {msg.get('role', '')}\n\n{msg.get('content', '')}\n")
    return "\n".join(parts)


class TrajectoryRecorder:
    """Writes one run's (or one sub-agent session's) model traffic.

    Args:
        root: Directory for this recorder's files.
        input_prefix / output_prefix: File name stems; the top level uses
            ``llm_input_step_`` / ``llm_output_step_``, sub-agents use
            ``input_`` / ``output_``.
    """

    def __init__(self, root: Path, *, input_prefix: str = "llm_input_step_",
                 output_prefix: str = "llm_output_step_"):
        self.root = Path(root)
        self.input_prefix = input_prefix
        self.output_prefix = output_prefix

    @classmethod
    def for_run(cls, log_dir: Path, run_id: str) -> "TrajectoryRecorder":
        return cls(Path(log_dir) / "debug" / run_id)

    def child(self, name: str) -> "TrajectoryRecorder":
        """Recorder for a nested session (``subagent_static`` etc)."""
        return TrajectoryRecorder(self.root / name, input_prefix="input_", output_prefix="output_")

    def _write(self, name: str, text: str):
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            (self.root / name).write_text(text, encoding="utf-8")
        except OSError as e:
            logger.debug("Could not write debug file %s: %s", name, e)

    def record_initial(self, task: Dict[str, Any]):
        body = json.dumps(task, ensure_ascii=False, indent=2, default=str)
        self._write("initial_input.md", f"# Initial Input\n\n```json\n{body}\n```\n")

    def record_input(self, step: int, messages: List[Dict[str, Any]]):
        self._write(f"{self.input_prefix}{step}.md", render_messages(messages))

    def record_output(self, step: int, content: str):
        self._write(f"{self.output_prefix}{step}.md", content or "")

    def _outputs(self, directory: Path, prefix: str) -> List[Path]:
        if not directory.is_dir():
            return []
        return sorted(directory.glob(f"{prefix}*.md"), key=_step_key)

    def read_recent(self, limit: int = 3) -> Dict[str, Any]:
        """Tails of the latest model outputs, sub-agent outputs and ``*.log`` files."""
        limit = max(1, int(limit or 3))
        llm_outputs = [_tail(p) for p in self._outputs(self.root, self.output_prefix)[-limit:]]
        sub_outputs = []
        for name in ("subagent_static", "subagent_network"):
            sub_outputs.extend(_tail(p) for p in self._outputs(self.root / name, "output_")[-limit:])
        log_root = self.root.parent
        log_files = sorted(log_root.glob("*.log"))[-limit:] if log_root.is_dir() else []
        log_tail = [{"file": p.name, "tail": _tail(p)} for p in log_files]
        return {"llmOutputs": llm_outputs, "subOutputs": sub_outputs, "logTail": log_tail}


class NullRecorder(TrajectoryRecorder):
    """Recorder that writes nothing (tests, ad-hoc sessions)."""

    def __init__(self):
        super().__init__(Path("."))

    def child(self, name: str) -> "NullRecorder":
        return self

    def _write(self, name: str, text: str):
        return None

    def read_recent(self, limit: int = 3) -> Dict[str, Any]:
        return {"llmOutputs": [], "subOutputs": [], "logTail": []}


def recorder_or_null(recorder: Optional[TrajectoryRecorder]) -> TrajectoryRecorder:
    return recorder if recorder is not None else NullRecorder()
