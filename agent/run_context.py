"""Per-run context handed to every capability handler.

The context is created by the coordinator when a run starts and passed
explicitly to tool registration; handlers never reach for module-level
state.  ``html`` and the ``last_*`` fields are the only mutable parts, and
only the run's own loop thread touches them.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from agent.artifact_store import ArtifactStore
from agent.audit_store import AuditEntry, AuditStore
from agent.config import CoordinatorConfig
from agent.trajectory import TrajectoryRecorder

ChatFn = Callable[..., Any]


class TaskInput(BaseModel):
    """What a caller submits to start a run."""

    url: str = ""
    example_url: str = ""
    html: str = ""
    algo_name: str = ""
    notes: str = ""
    har_path: str = ""
    prefer: Literal["static", "dynamic", "auto"] = "auto"
    max_steps: Optional[int] = Field(default=None, description="Overrides the configured step budget")

    @property
    def page_url(self) -> str:
        return self.url or self.example_url


def is_reasoning_agent(agent: str) -> bool:
    return agent.endswith("(LLM)")


def format_entry_line(entry: AuditEntry) -> str:
    return f"- {entry.agent} · {entry.type} · {entry.text}"


@dataclass
class RunContext:
    """Everything a run's capabilities may touch.

    Args:
        chats: Reasoning callables by role: ``coordinator``, ``static``,
            ``network``.  Missing roles fall back to ``coordinator``.
        capture_network: Optional browser capture collaborator,
            ``(url, headers) -> {manifestUrl?, headers?, notes?}``.
        human_acceptance: Optional human approval collaborator,
            ``(request: dict) -> dict``.
    """

    run_id: str
    task: TaskInput
    store: AuditStore
    artifacts: ArtifactStore
    config: CoordinatorConfig
    recorder: TrajectoryRecorder
    chats: Dict[str, ChatFn] = field(default_factory=dict)
    capture_network: Optional[Callable[[str, Optional[Dict[str, str]]], Dict[str, Any]]] = None
    human_acceptance: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None
    html: str = ""
    last_headers: Optional[Dict[str, str]] = None
    last_manifest_url: Optional[str] = None

    def __post_init__(self):
        if not self.html:
            self.html = self.task.html or ""

    @property
    def page_url(self) -> str:
        return self.task.page_url

    def chat_for(self, role: str) -> ChatFn:
        chat = self.chats.get(role) or self.chats.get("coordinator")
        if chat is None:
            raise KeyError(f"No reasoning client configured for role {role!r}")
        return chat

    def upstream_summary(self) -> str:
        t = self.task
        return (
            f"AlgoName={t.algo_name} | URL={t.page_url} | HTML={bool(self.html)} | "
            f"HAR={t.har_path} | Prefer={t.prefer or 'auto'} | Notes={(t.notes or '')[:80]}"
        )

    def recent_reasoning_entries(self, limit: int) -> List[AuditEntry]:
        entries = [e for e in self.store.entries() if is_reasoning_agent(e.agent)]
        return entries[-limit:] if limit > 0 else []

    def recent_directives(self, limit: int = 8) -> str:
        return "\n".join(format_entry_line(e) for e in self.recent_reasoning_entries(limit))
