"""Bounded directive loop shared by the coordinator and its sub-agents.

One iteration is: normalize the conversation so it ends on a user turn,
call the reasoning service, parse one directive, act on it, and feed the
outcome back as the next message.  The loop stops on a terminal outcome
or when the step budget runs out.

What "terminal" means differs between the top-level run and a delegated
sub-agent session, so those rules live in a ``CompletionContract``:

    TopLevelContract   Final ends the run; Result is informational;
                       unparseable output or an unknown capability fails.
    SubAgentContract   (agent.subagent) Result ends the session only once
                       its mandatory actions happened; unparseable output
                       gets a strict-retry instruction.

Handler exceptions are caught at the dispatch boundary, written to the
audit store and turned into a failed outcome.  Nothing else escapes
``DirectiveLoop.run``.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from agent.audit_store import AuditStore
from agent.capabilities import CapabilityRegistry, UnknownCapabilityError
from agent.directives import Final, Result, ToolCall, parse_directive
from agent.prompt_builder import NEXT_ACTION_REQUEST, RESULT_NOTED
from agent.trajectory import TrajectoryRecorder, recorder_or_null
from coordinator_constants import FINAL_FLAG

logger = logging.getLogger(__name__)

MAX_TOOL_OUTPUT_CHARS = 100_000
AUDIT_ARG_CHARS = 2000

# Capabilities whose output carries manifest candidates.
CANDIDATE_CAPABILITIES = frozenset({"static_extract_html_candidates", "call_static_parser_agent"})

Message = Dict[str, str]
ChatFn = Callable[[List[Message]], Any]


@dataclass(frozen=True)
class SessionBudget:
    max_steps: int
    mandatory_actions: FrozenSet[str] = frozenset()

    def __post_init__(self):
        if self.max_steps < 1:
            raise ValueError("max_steps must be >= 1")


@dataclass
class LoopOutcome:
    """How a loop ended.

    status is one of ``done`` (Final accepted), ``result`` (sub-agent
    Result accepted), ``failed`` or ``exhausted`` (budget ran out).
    """

    status: str
    payload: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    steps: int = 0
    extras: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status in ("done", "result")


def ensure_trailing_user_turn(messages: List[Message]) -> List[Message]:
    """The reasoning service requires the exchange to end on a user turn."""
    if not messages or messages[-1].get("role") != "user":
        messages.append({"role": "user", "content": NEXT_ACTION_REQUEST})
    return messages


def tool_output_message(name: str, output: Any) -> Message:
    body = json.dumps(output, ensure_ascii=False, default=str)
    if len(body) > MAX_TOOL_OUTPUT_CHARS:
        body = body[:MAX_TOOL_OUTPUT_CHARS] + "...(truncated)"
    return {"role": "user", "content": f"TOOL_OUTPUT({name}): {body}"}


def compact_for_audit(value: Any, limit: int = AUDIT_ARG_CHARS) -> Any:
    """Clip long strings so bulky arguments (page HTML) stay out of the log."""
    if isinstance(value, str):
        return value if len(value) <= limit else value[:limit] + f"...(+{len(value) - limit} chars)"
    if isinstance(value, dict):
        return {k: compact_for_audit(v, limit) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [compact_for_audit(v, limit) for v in value]
    return value


class CompletionContract:
    """Hooks deciding what each directive means for one kind of session.

    Each hook may append messages and return a ``LoopOutcome`` to stop the
    loop, or ``None`` to keep iterating.
    """

    def on_unparseable(self, loop: "DirectiveLoop", messages: List[Message],
                       step: int, error: Optional[str]) -> Optional[LoopOutcome]:
        raise NotImplementedError

    def on_result(self, loop: "DirectiveLoop", result: Result,
                  messages: List[Message], step: int) -> Optional[LoopOutcome]:
        raise NotImplementedError

    def on_final(self, loop: "DirectiveLoop", final: Final,
                 messages: List[Message], step: int) -> Optional[LoopOutcome]:
        raise NotImplementedError

    def before_dispatch(self, loop: "DirectiveLoop", call: ToolCall,
                        messages: List[Message]) -> bool:
        """Return False to skip dispatching *call* (the hook fed back why)."""
        return True

    def after_dispatch(self, loop: "DirectiveLoop", call: ToolCall, output: Dict[str, Any],
                       messages: List[Message]) -> Optional[LoopOutcome]:
        messages.append(tool_output_message(call.name, output))
        if call.comment:
            messages.append({"role": "assistant", "content": f"COMMENT: {call.comment}"})
        return None

    def on_exhausted(self, loop: "DirectiveLoop", steps: int) -> LoopOutcome:
        raise NotImplementedError


class DirectiveLoop:
    """One bounded session against the reasoning service.

    Args:
        chat: ``chat(messages) -> reply`` with a ``.content`` attribute
            (``ReasoningClient`` or any test double).
        registry: Capabilities this session may call.
        store: Shared audit store.
        agent: Agent name written on this session's audit entries.
        budget: Step budget and mandatory actions.
        contract: Completion rules (top-level or sub-agent).
        recorder: Debug trajectory recorder; ``None`` disables recording.
        on_step: Called with the step number after every iteration.
    """

    def __init__(self, *, chat: ChatFn, registry: CapabilityRegistry, store: AuditStore,
                 agent: str, budget: SessionBudget, contract: CompletionContract,
                 recorder: Optional[TrajectoryRecorder] = None,
                 on_step: Optional[Callable[[int], None]] = None):
        self.chat = chat
        self.registry = registry
        self.store = store
        self.agent = agent
        self.budget = budget
        self.contract = contract
        self.recorder = recorder_or_null(recorder)
        self.on_step = on_step
        self.performed: set = set()
        self.last_result: Optional[Dict[str, Any]] = None

    # -- Audit helpers ---------------------------------------------------------

    def record(self, type: str, text: str = "", *, payload: Any = None, flags=None):
        return self.store.append(self.agent, type, text, payload=payload, flags=flags)

    def record_error(self, text: str, payload: Any = None):
        return self.store.append(self.agent, "error", text, payload=payload, flags=["ERROR"])

    def mandatory_satisfied(self) -> bool:
        return self.budget.mandatory_actions <= self.performed

    # -- Loop -----------------------------------------------------------------

    def _call_service(self, messages: List[Message], step: int):
        self.recorder.record_input(step, messages)
        try:
            reply = self.chat(messages)
        except Exception as e:
            logger.warning("%s step %d: reasoning call failed: %s", self.agent, step, e)
            self.recorder.record_output(step, f"ERROR: {e}")
            return None, str(e)
        content = getattr(reply, "content", reply)
        if not isinstance(content, str):
            content = "" if content is None else str(content)
        self.recorder.record_output(step, content)
        return content, None

    def run(self, messages: List[Message]) -> LoopOutcome:
        step = 0
        while step < self.budget.max_steps:
            step += 1
            ensure_trailing_user_turn(messages)
            content, error = self._call_service(messages, step)
            directive = parse_directive(content) if error is None else None
            logger.debug("%s step %d: directive=%s", self.agent,
                         step, getattr(directive, "kind", None))

            if directive is None:
                outcome = self.contract.on_unparseable(self, messages, step, error)
            elif isinstance(directive, Final):
                outcome = self.contract.on_final(self, directive, messages, step)
            elif isinstance(directive, Result):
                self.last_result = directive.payload
                outcome = self.contract.on_result(self, directive, messages, step)
            else:
                outcome = self._dispatch(directive, messages, step)

            if self.on_step is not None:
                self.on_step(step)
            if outcome is not None:
                outcome.steps = step
                return outcome

        outcome = self.contract.on_exhausted(self, step)
        outcome.steps = step
        return outcome

    def _dispatch(self, call: ToolCall, messages: List[Message], step: int) -> Optional[LoopOutcome]:
        if not self.contract.before_dispatch(self, call, messages):
            return None
        logger.info("%s step %d: dispatch %s", self.agent, step, call.name)
        try:
            output = self.registry.dispatch(call.name, call.args)
        except UnknownCapabilityError as e:
            self.record_error(str(e), payload={"tool": call.name})
            return LoopOutcome(status="failed", error=str(e))
        except Exception as e:
            logger.error("%s: capability %s raised: %s", self.agent, call.name, e, exc_info=True)
            message = f"Capability {call.name} failed: {e}"
            self.record_error(message, payload={"tool": call.name, "args": compact_for_audit(call.args)})
            return LoopOutcome(status="failed", error=message)

        self.record(
            "tool_call",
            call.comment or f"Called {call.name}",
            payload={"tool": call.name, "args": compact_for_audit(call.args)},
            flags=call.flags,
        )
        return self.contract.after_dispatch(self, call, output, messages)


class TopLevelContract(CompletionContract):
    """Completion rules for a coordinator run.

    Args:
        finalizer: Called with the Final payload after the run result is
            recorded (stores the picked algorithm).  Its failures are
            recorded and never fail the run.
    """

    def __init__(self, finalizer: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None):
        self.finalizer = finalizer

    def on_unparseable(self, loop, messages, step, error):
        if error is not None:
            text = f"Reasoning service call failed: {error}"
        else:
            text = "Model output is not JSON or could not be parsed"
        loop.record_error(text, payload={"step": step})
        return LoopOutcome(status="failed", error=f"Reasoning output unusable: {error or 'unparseable directive'}")

    def on_result(self, loop, result, messages, step):
        loop.record("result", "Intermediate result", payload=result.payload, flags=result.flags)
        messages.append(tool_output_message("result", result.payload))
        messages.append({"role": "user", "content": RESULT_NOTED})
        return None

    def on_final(self, loop, final, messages, step):
        payload = final.payload
        result = {
            "manifestUrl": payload.get("manifestUrl"),
            "filePath": payload.get("filePath"),
            "notes": payload.get("notes"),
        }
        loop.record(
            "final",
            f"Done: manifest={result['manifestUrl'] or 'null'} file={result['filePath'] or 'null'}",
            payload=result,
            flags=[FINAL_FLAG] + [f for f in final.flags if f != FINAL_FLAG],
        )
        extras: Dict[str, Any] = {}
        if self.finalizer is not None:
            try:
                extras["finalize"] = self.finalizer(payload)
            except Exception as e:
                logger.warning("Finalizing algorithm failed: %s", e)
                loop.record("finalize_failed", str(e), payload={"algo_pick": payload.get("algo_pick")})
                extras["finalize"] = {"ok": False, "error": str(e)}
            messages.append(tool_output_message("code_maintainer_agent_finalize", extras["finalize"]))
        return LoopOutcome(status="done", payload=result, extras=extras)

    def after_dispatch(self, loop, call, output, messages):
        super().after_dispatch(loop, call, output, messages)
        recent = loop.recorder.read_recent(limit=2)
        messages.append({
            "role": "assistant",
            "content": f"DEBUG_RECENT: {json.dumps(recent, ensure_ascii=False)}",
        })
        candidates = output.get("candidates") if isinstance(output, dict) else None
        if call.name in CANDIDATE_CAPABILITIES and isinstance(candidates, list):
            if candidates:
                messages.append({
                    "role": "user",
                    "content": f"HINT: Found {len(candidates)} manifest candidates. You may pick the best or finalize.",
                })
            else:
                messages.append({
                    "role": "assistant",
                    "content": "COMMENT: No static candidates; consider trying dynamic network capture.",
                })
        return None

    def on_exhausted(self, loop, steps):
        message = f"Step budget exhausted after {steps} steps without a final directive"
        loop.record_error(message, payload={"maxSteps": loop.budget.max_steps})
        return LoopOutcome(status="failed", error=message)

