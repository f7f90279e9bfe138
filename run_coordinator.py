#!/usr/bin/env python3
"""
Manifest Discovery Coordinator Runner

Drives one reasoning-service session per run: the coordinator reads the
task, calls capabilities (page fetch, HTML preprocessing, sub-agent
delegation, algorithm code maintenance) one directive at a time, and stops
when it emits a final directive, fails, or runs out of steps.

Every run writes to the shared audit store (``logs/agents.md`` plus the
raw mirror) and records its model traffic under ``logs/debug/<run_id>/``.

Usage:
    from run_coordinator import Coordinator
    from agent.run_context import TaskInput

    coordinator = Coordinator()
    handle = coordinator.start(TaskInput(url="https://example.com/watch/1", algo_name="example"))
    coordinator.wait(handle["run_id"])
    print(coordinator.status(handle["run_id"]))
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import fire
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env from ~/.coordinator/.env first, then project root as dev fallback
_coordinator_home = Path(os.getenv("COORDINATOR_HOME", Path.home() / ".coordinator"))
_user_env = _coordinator_home / ".env"
_project_env = Path(__file__).parent / ".env"
if _user_env.exists():
    try:
        load_dotenv(dotenv_path=_user_env, encoding="utf-8")
    except UnicodeDecodeError:
        load_dotenv(dotenv_path=_user_env, encoding="latin-1")
    logger.info("Loaded environment variables from %s", _user_env)
elif _project_env.exists():
    try:
        load_dotenv(dotenv_path=_project_env, encoding="utf-8")
    except UnicodeDecodeError:
        load_dotenv(dotenv_path=_project_env, encoding="latin-1")
    logger.info("Loaded environment variables from %s", _project_env)
else:
    logger.info("No .env file found. Using system environment variables.")

from agent.artifact_store import ArtifactStore
from agent.audit_store import AuditStore
from agent.config import CoordinatorConfig, resolve_max_steps
from agent.diagnosis import diagnose
from agent.prompt_assembler import PromptAssembler
from agent.reasoning_client import client_for_role
from agent.retention import RetentionEngine
from agent.run_context import RunContext, TaskInput
from agent.run_registry import RUNNING, RunRegistry, RunState
from agent.session_loop import DirectiveLoop, LoopOutcome, SessionBudget, TopLevelContract
from agent.trajectory import TrajectoryRecorder
from coordinator_constants import COORDINATOR_AGENT
from tools import build_registry

DIAGNOSER_AGENT = "error_diagnoser"

# Reasoning roles -> environment prefix used by ClientConfig.for_role
CHAT_ROLES = {
    "coordinator": "ARK",
    "static": "STATIC_PARSER",
    "network": "NETWORK_CAPTURE",
}


def setup_logging(verbose: bool = False):
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )
        # Keep third-party libraries at WARNING level to reduce noise
        for name in ('openai', 'openai._base_client', 'httpx', 'httpcore', 'urllib3'):
            logging.getLogger(name).setLevel(logging.WARNING)
        logger.info("Verbose logging enabled (third-party library logs suppressed)")
    else:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )
        for name in ('openai', 'openai._base_client', 'httpx', 'httpcore', 'urllib3'):
            logging.getLogger(name).setLevel(logging.ERROR)


class Coordinator:
    """
    Owns the shared stores and starts coordinator runs.

    One instance serves any number of runs; each run gets its own
    ``RunContext`` and loop thread, and all runs share the audit store,
    the artifact store and the run registry.

    Args:
        config: Deployment settings (``CoordinatorConfig.from_env()`` when omitted).
        chats: Reasoning callables by role (``coordinator``, ``static``,
            ``network``).  Missing roles get a ``ReasoningClient``.
        compactor: Chat callable for history compaction.  Defaults to the
            ``HISTORY_COMPRESSOR`` role client.
        capture_network: Optional browser network capture collaborator.
        human_acceptance: Optional human acceptance collaborator.
        background_retention: Run compaction on a worker thread.
    """

    def __init__(
        self,
        config: CoordinatorConfig = None,
        *,
        chats: Optional[Dict[str, Callable[..., Any]]] = None,
        compactor: Optional[Callable[..., Any]] = None,
        capture_network: Optional[Callable[..., Dict[str, Any]]] = None,
        human_acceptance: Optional[Callable[..., Dict[str, Any]]] = None,
        background_retention: bool = True,
    ):
        self.config = config or CoordinatorConfig.from_env()
        sensitive_filter = self.config.sensitive_filter

        if compactor is None:
            compactor = client_for_role("HISTORY_COMPRESSOR", sensitive_filter=sensitive_filter).chat
        self.retention = RetentionEngine(
            self.config.retention, compactor=compactor, background=background_retention
        )
        self.store = AuditStore(self.config.log_dir, on_working_write=self.retention)
        self.artifacts = ArtifactStore(self.config.log_dir, self.config.algorithms_dir, self.store)
        self.runs = RunRegistry()
        self.assembler = PromptAssembler()

        self.chats: Dict[str, Callable[..., Any]] = dict(chats or {})
        for role, env_prefix in CHAT_ROLES.items():
            if role not in self.chats:
                self.chats[role] = client_for_role(env_prefix, sensitive_filter=sensitive_filter).chat

        self.capture_network = capture_network
        self.human_acceptance = human_acceptance
        self._threads: Dict[str, threading.Thread] = {}
        self._threads_lock = threading.Lock()

    # -- Run control -----------------------------------------------------------

    def start(self, task: Union[TaskInput, Dict[str, Any]]) -> Dict[str, str]:
        """Register a run and drive it on a worker thread.  Returns ``{"run_id"}``."""
        task = task if isinstance(task, TaskInput) else TaskInput.model_validate(task)
        state = self.runs.create()
        thread = self.runs.start(state.id, lambda: self._run_loop(state.id, task))
        with self._threads_lock:
            for run_id in [rid for rid, t in self._threads.items() if not t.is_alive()]:
                del self._threads[run_id]
            self._threads[state.id] = thread
        logger.info("Run %s started", state.id)
        return {"run_id": state.id}

    def status(self, run_id: str) -> Optional[RunState]:
        return self.runs.get(run_id)

    def wait(self, run_id: str, timeout: Optional[float] = None) -> Optional[RunState]:
        """Block until *run_id*'s loop thread exits (or *timeout* elapses)."""
        with self._threads_lock:
            thread = self._threads.get(run_id)
        if thread is not None:
            thread.join(timeout)
            if not thread.is_alive():
                with self._threads_lock:
                    self._threads.pop(run_id, None)
        return self.runs.get(run_id)

    def run_task(self, task: Union[TaskInput, Dict[str, Any]]) -> RunState:
        """Run synchronously on the calling thread and return the final state."""
        task = task if isinstance(task, TaskInput) else TaskInput.model_validate(task)
        state = self.runs.create()
        self.runs.claim(state.id)
        try:
            self._run_loop(state.id, task)
        finally:
            self.runs.release(state.id)
        return self.runs.get(state.id)

    def shutdown(self):
        self.retention.wait()
        self.retention.shutdown()

    # -- Loop ------------------------------------------------------------------

    def _context(self, run_id: str, task: TaskInput) -> RunContext:
        return RunContext(
            run_id=run_id,
            task=task,
            store=self.store,
            artifacts=self.artifacts,
            config=self.config,
            recorder=TrajectoryRecorder.for_run(self.config.log_dir, run_id),
            chats=self.chats,
            capture_network=self.capture_network,
            human_acceptance=self.human_acceptance,
        )

    def _finalizer(self, ctx: RunContext) -> Callable[[Dict[str, Any]], Dict[str, Any]]:
        def finalize(payload: Dict[str, Any]) -> Dict[str, Any]:
            name = (ctx.task.algo_name or "").strip()
            if not name:
                self.store.append(COORDINATOR_AGENT, "note",
                                  "No algorithm name given; final algorithm not stored")
                return {"ok": False, "skipped": True, "notes": "no algo_name"}
            return self.artifacts.finalize(payload.get("algo_pick"), name)
        return finalize

    def _budget(self, task: TaskInput) -> SessionBudget:
        if task.max_steps is not None:
            return SessionBudget(max_steps=resolve_max_steps(task.max_steps, default=self.config.max_steps))
        return SessionBudget(max_steps=self.config.max_steps)

    def _run_loop(self, run_id: str, task: TaskInput):
        ctx = self._context(run_id, task)
        try:
            self.store.append(
                COORDINATOR_AGENT, "start", "Coordinator run started",
                payload={"runId": run_id, "url": task.page_url, "algoName": task.algo_name},
            )
            ctx.recorder.record_initial({
                **task.model_dump(exclude={"html"}),
                "htmlChars": len(task.html or ""),
            })
            messages = self.assembler.build(ctx)
            self.runs.update(run_id, status=RUNNING)

            loop = DirectiveLoop(
                chat=ctx.chat_for("coordinator"),
                registry=build_registry(ctx, "coordinator"),
                store=self.store,
                agent=COORDINATOR_AGENT,
                budget=self._budget(task),
                contract=TopLevelContract(finalizer=self._finalizer(ctx)),
                recorder=ctx.recorder,
                on_step=lambda step: self.runs.set_step(run_id, step),
            )
            outcome = loop.run(messages)
        except Exception as e:
            logger.error("Run %s crashed: %s", run_id, e, exc_info=True)
            outcome = LoopOutcome(status="failed", error=str(e))

        if outcome.status == "done":
            self.runs.finish(run_id, outcome.payload)
            logger.info("Run %s done after %d steps", run_id, outcome.steps)
        else:
            error = outcome.error or f"Run ended with status {outcome.status}"
            self.runs.fail(run_id, error)
            self._diagnose(run_id, error)
            logger.warning("Run %s failed: %s", run_id, error)

    def _diagnose(self, run_id: str, error: str):
        result = diagnose(error)
        self.store.append(DIAGNOSER_AGENT, "diagnose", f"Diagnosis: {result['type']}",
                          payload={"runId": run_id, **result})


def main(
    url: str = None,
    html_file: str = None,
    algo_name: str = None,
    notes: str = "",
    prefer: str = "auto",
    har_path: str = "",
    max_steps: int = None,
    config: str = None,
    list_tools: bool = False,
    verbose: bool = False,
):
    """
    Run one coordinator task from the command line.

    Args:
        url (str): Page whose media manifest should be found.
        html_file (str): Local file with the page source; skips the first fetch.
        algo_name (str): Name to store the final algorithm under (algorithms/<name>.js).
        notes (str): Free-form notes passed to the coordinator.
        prefer (str): "static", "dynamic" or "auto". Defaults to "auto".
        har_path (str): Optional HAR capture to mention in the task summary.
        max_steps (int): Step budget for this run. Defaults to COORDINATOR_MAX_STEPS or 100.
        config (str): Optional YAML file overlaid on the environment settings.
        list_tools (bool): Just list toolsets and their capabilities and exit.
        verbose (bool): Enable debug logging.
    """
    setup_logging(verbose)

    print("Manifest Discovery Coordinator")
    print("=" * 50)

    if list_tools:
        from toolsets import TOOLSETS, get_toolset_info
        for name in TOOLSETS:
            info = get_toolset_info(name)
            print(f"  {name:16} - {info['description']}")
            for tool in info["resolved_tools"]:
                print(f"      {tool}")
        return

    if not url and not html_file:
        print("Provide --url or --html_file")
        return

    from agent.config_validator import require_valid

    cfg = CoordinatorConfig.from_yaml(config) if config else CoordinatorConfig.from_env()
    require_valid(cfg.log_dir)

    html = ""
    if html_file:
        html = Path(html_file).read_text(encoding="utf-8", errors="replace")

    task = TaskInput(
        url=url or "",
        html=html,
        algo_name=algo_name or "",
        notes=notes or "",
        prefer=prefer,
        har_path=har_path or "",
        max_steps=max_steps,
    )

    coordinator = Coordinator(cfg)
    try:
        state = coordinator.run_task(task)
    finally:
        coordinator.shutdown()

    print(json.dumps(state.to_dict(), indent=2, ensure_ascii=False, default=str))


def cli():
    fire.Fire(main)


if __name__ == "__main__":
    cli()
