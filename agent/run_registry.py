"""In-memory run registry used for status polling.

Each run owns its ``RunState``; the loop thread is the only writer and
callers read snapshots.  A registry-wide lock guards every mutation, and
terminal states (``done`` / ``error``) are never changed again.
"""

import copy
import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Optional

from agent.audit_store import generate_id

logger = logging.getLogger(__name__)

PENDING = "pending"
RUNNING = "running"
DONE = "done"
ERROR = "error"
TERMINAL_STATUSES = frozenset({DONE, ERROR})


class RunAlreadyActiveError(RuntimeError):
    """A second loop was started for a run id that already has one."""


@dataclass
class RunState:
    id: str
    status: str = PENDING
    step_count: int = 0
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    started_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RunRegistry:
    """Run id -> RunState map shared by every run in the process."""

    def __init__(self):
        self._runs: Dict[str, RunState] = {}
        self._active: set = set()
        self._lock = threading.Lock()

    def create(self, run_id: Optional[str] = None) -> RunState:
        with self._lock:
            run_id = run_id or generate_id()
            while run_id in self._runs:
                run_id = generate_id()
            state = RunState(id=run_id)
            self._runs[run_id] = state
            return copy.copy(state)

    def get(self, run_id: str) -> Optional[RunState]:
        with self._lock:
            state = self._runs.get(run_id)
            return copy.deepcopy(state) if state is not None else None

    def update(self, run_id: str, **changes) -> RunState:
        """Apply *changes* to a non-terminal run; terminal runs are left as they are."""
        with self._lock:
            state = self._runs[run_id]
            if state.terminal:
                logger.debug("Ignoring update to terminal run %s: %s", run_id, changes)
                return copy.deepcopy(state)
            for key, value in changes.items():
                if not hasattr(state, key):
                    raise AttributeError(f"RunState has no field {key!r}")
                setattr(state, key, value)
            state.updated_at = time.time()
            return copy.deepcopy(state)

    def set_step(self, run_id: str, step: int) -> RunState:
        return self.update(run_id, step_count=step)

    def finish(self, run_id: str, result: Optional[Dict[str, Any]] = None) -> RunState:
        return self.update(run_id, status=DONE, result=result)

    def fail(self, run_id: str, error: str) -> RunState:
        return self.update(run_id, status=ERROR, error=error or "unknown error")

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {run_id: state.to_dict() for run_id, state in self._runs.items()}

    # -- Loop ownership -------------------------------------------------------

    def claim(self, run_id: str):
        """Mark *run_id* as having a live loop; at most one per run."""
        with self._lock:
            if run_id in self._active:
                raise RunAlreadyActiveError(run_id)
            if run_id in self._runs and self._runs[run_id].terminal:
                raise RunAlreadyActiveError(f"{run_id} already finished")
            self._active.add(run_id)

    def release(self, run_id: str):
        with self._lock:
            self._active.discard(run_id)

    def start(self, run_id: str, target: Callable[[], None], *, daemon: bool = True) -> threading.Thread:
        """Claim *run_id* and run *target* on a worker thread."""
        self.claim(run_id)

        def _runner():
            try:
                target()
            finally:
                self.release(run_id)

        thread = threading.Thread(target=_runner, name=f"run-{run_id}", daemon=daemon)
        thread.start()
        return thread
