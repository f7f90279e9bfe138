"""Delegated sub-agent sessions.

A sub-agent session is a ``DirectiveLoop`` with its own system prompt, a
reduced toolset and a stricter completion contract:

* a Result only ends the session once the session has both written its
  algorithm code and recorded a report; until then the model is told to
  continue;
* an algorithm write with empty or too-short code is rejected with a
  retry instruction instead of overwriting working code;
* unparseable output gets a strict-retry instruction rather than failing;
* running out of steps returns the last Result seen (or an empty one).

The delegating capability gets the session's payload back.  A failed
session (unknown capability, handler exception) is returned as
``{ok: False, error, partial}`` and never fails the parent run.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from agent.directives import Result
from agent.prompt_assembler import network_capture_prompt, static_parser_prompt, subagent_seed
from agent.prompt_builder import (
    ARTIFACT_TOO_SHORT,
    MANDATORY_CONTINUE,
    MANDATORY_REPORT,
    STRICT_RETRY,
)
from agent.run_context import RunContext
from agent.session_loop import (
    CompletionContract,
    DirectiveLoop,
    LoopOutcome,
    SessionBudget,
    tool_output_message,
)
from coordinator_constants import (
    COORDINATOR_AGENT,
    MIN_ARTIFACT_CODE_CHARS,
    NETWORK_CAPTURE_AGENT,
    STATIC_PARSER_AGENT,
)

logger = logging.getLogger(__name__)

ARTIFACT_WRITTEN = "artifact_written"
REPORT_WRITTEN = "report_written"
MANDATORY_ACTIONS = frozenset({ARTIFACT_WRITTEN, REPORT_WRITTEN})

ARTIFACT_WRITE_CAPABILITY = "code_maintainer_agent_write"
REPORT_CAPABILITY = "record_message"

ACTION_CAPABILITIES = {
    ARTIFACT_WRITE_CAPABILITY: ARTIFACT_WRITTEN,
    REPORT_CAPABILITY: REPORT_WRITTEN,
}


@dataclass(frozen=True)
class SubAgentSpec:
    """Static description of one kind of sub-agent."""

    kind: str
    agent: str
    toolset: str
    artifact_target: str
    debug_folder: str
    chat_role: str
    empty_result: Dict[str, Any]
    build_prompt: Callable[[RunContext, Dict[str, Any]], str]


STATIC_PARSER = SubAgentSpec(
    kind="static",
    agent=STATIC_PARSER_AGENT,
    toolset="static_parser",
    artifact_target="static",
    debug_folder="subagent_static",
    chat_role="static",
    empty_result={"candidates": []},
    build_prompt=lambda ctx, args: static_parser_prompt(ctx, html=args.get("html")),
)

NETWORK_CAPTURE = SubAgentSpec(
    kind="network",
    agent=NETWORK_CAPTURE_AGENT,
    toolset="network_capture",
    artifact_target="dynamic",
    debug_folder="subagent_network",
    chat_role="network",
    empty_result={"manifestUrl": None, "headers": None},
    build_prompt=lambda ctx, args: network_capture_prompt(
        ctx, html=args.get("html"), url=args.get("url") or ""),
)


class SubAgentContract(CompletionContract):
    """Completion rules for a delegated session."""

    def __init__(self, spec: SubAgentSpec, min_code_chars: int = MIN_ARTIFACT_CODE_CHARS):
        self.spec = spec
        self.min_code_chars = min_code_chars

    def on_unparseable(self, loop, messages, step, error):
        if error is not None:
            loop.record_error(f"Sub-agent reasoning call failed: {error}")
        else:
            loop.record_error("Sub-agent output could not be parsed (not JSON)")
        messages.append({"role": "user", "content": STRICT_RETRY})
        return None

    def on_result(self, loop, result, messages, step):
        loop.record("result", _result_text(result.payload), payload=result.payload, flags=result.flags)
        if loop.mandatory_satisfied():
            return LoopOutcome(status="result", payload=result.payload)
        missing = sorted(loop.budget.mandatory_actions - loop.performed)
        logger.debug("%s: result held back, missing %s", loop.agent, missing)
        messages.append({"role": "user", "content": MANDATORY_CONTINUE})
        return None

    def on_final(self, loop, final, messages, step):
        # Sub-agents have no terminal directive of their own.
        loop.last_result = final.payload
        return self.on_result(loop, Result(payload=final.payload, flags=final.flags), messages, step)

    def before_dispatch(self, loop, call, messages):
        if call.name != ARTIFACT_WRITE_CAPABILITY:
            return True
        code = str(call.args.get("code") or "").strip()
        if len(code) >= self.min_code_chars:
            return True
        loop.record_error(
            f"Rejected overwrite: submitted {self.spec.artifact_target} algorithm code is empty "
            f"or too short (<{self.min_code_chars} chars)"
        )
        messages.append(tool_output_message(call.name, {"ok": False, "error": "code_too_short"}))
        messages.append({
            "role": "user",
            "content": ARTIFACT_TOO_SHORT.format(target=self.spec.artifact_target,
                                                 min_chars=self.min_code_chars),
        })
        return False

    def after_dispatch(self, loop, call, output, messages):
        super().after_dispatch(loop, call, output, messages)
        action = ACTION_CAPABILITIES.get(call.name)
        if action and output.get("ok", True) is not False:
            loop.performed.add(action)
            if action == ARTIFACT_WRITTEN:
                messages.append({"role": "user", "content": MANDATORY_REPORT})
        return None

    def on_exhausted(self, loop, steps):
        logger.info("%s: step budget exhausted after %d steps", loop.agent, steps)
        return LoopOutcome(
            status="exhausted",
            payload=loop.last_result,
            error=f"Sub-agent step budget exhausted after {steps} steps",
        )


def _result_text(payload: Dict[str, Any]) -> str:
    candidates = payload.get("candidates")
    if isinstance(candidates, list):
        return f"{len(candidates)} candidates"
    if payload.get("manifestUrl"):
        return f"manifest={payload['manifestUrl']}"
    return "Result received"


def run_subagent(ctx: RunContext, spec: SubAgentSpec, args: Optional[Dict[str, Any]] = None,
                 *, max_steps: Optional[int] = None) -> Dict[str, Any]:
    """Run one delegated session to completion and return its payload."""
    # Lazy import: tools.delegation_tools imports this module.
    from tools import build_registry

    args = dict(args or {})
    registry = build_registry(ctx, spec.toolset, agent=spec.agent, artifact_target=spec.artifact_target)
    budget = SessionBudget(
        max_steps=max_steps or ctx.config.subagent_max_steps,
        mandatory_actions=MANDATORY_ACTIONS,
    )
    loop = DirectiveLoop(
        chat=ctx.chat_for(spec.chat_role),
        registry=registry,
        store=ctx.store,
        agent=spec.agent,
        budget=budget,
        contract=SubAgentContract(spec),
        recorder=ctx.recorder.child(spec.debug_folder),
    )
    outcome = loop.run(subagent_seed(spec.build_prompt(ctx, args)))
    logger.info("%s session ended: %s after %d steps", spec.agent, outcome.status, outcome.steps)

    ctx.store.append(
        COORDINATOR_AGENT,
        "delegate",
        f"{spec.kind} sub-agent ended with status {outcome.status} after {outcome.steps} steps",
        payload={"status": outcome.status, "steps": outcome.steps, "error": outcome.error},
    )
    if outcome.status == "failed":
        return {"ok": False, "error": outcome.error, "partial": loop.last_result}

    payload = dict(outcome.payload) if outcome.payload else dict(spec.empty_result)
    if spec.kind == "network":
        if payload.get("headers"):
            ctx.last_headers = payload["headers"]
        if payload.get("manifestUrl"):
            ctx.last_manifest_url = payload["manifestUrl"]
    return payload
