"""
Context tools: read, measure and annotate the shared audit log.

Dependencies: none (stdlib only)
"""

from agent.audit_store import estimate_tokens
from agent.retention import plan_crop
from coordinator_constants import COORDINATOR_AGENT, CROP_LOG_FLAG

CONTEXT_MANAGER_AGENT = "context_manager"


def _as_list(value):
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return [value]
    return list(value)


def register(registry, ctx, agent=COORDINATOR_AGENT):
    """Register audit-log tools bound to *ctx*; notes are written as *agent*."""

    def handle_record_message(args):
        text = str(args.get("text") or "")
        flags = _as_list(args.get("flags")) or []
        entry = ctx.store.append(agent, "note", text, payload=args.get("payload"), flags=flags)
        return {"ok": True, "msgId": entry.id}

    def handle_read_messages(args):
        entries = ctx.store.read_entries(
            agent=_as_list(args.get("agent")),
            type=_as_list(args.get("type")),
            since_id=args.get("sinceMsgId"),
        )
        return {"messages": [e.to_record() for e in entries]}

    def handle_measure(args):
        return ctx.store.measure()

    def handle_estimate_tokens(args):
        entries = ctx.store.entries()
        return {"tokens": estimate_tokens(entries), "count": len(entries)}

    def handle_crop_history(args):
        retention = ctx.config.retention
        plan = plan_crop(
            ctx.store.entries(),
            target_tokens=int(args.get("targetTokens") or retention.target_tokens),
            llm_window=int(args.get("llmWindow") or 8),
            other_window=int(args.get("otherWindow") or 10),
            min_window=retention.min_window,
        )
        ctx.store.append(
            CONTEXT_MANAGER_AGENT,
            "crop_plan",
            f"Crop plan: keep {plan['keptCount']}, remove {plan['removedCount']}",
            payload=plan["windowSize"],
            flags=[CROP_LOG_FLAG],
        )
        return plan

    def handle_read_debug_recent(args):
        return ctx.recorder.read_recent(limit=int(args.get("limit") or 3))

    registry.register(
        name="record_message",
        description="Write a note (with optional payload and flags) into agents.md.",
        parameters={"text": "string", "payload": "object?", "flags": "string[]?"},
        handler=handle_record_message,
    )
    registry.register(
        name="read_md_messages",
        description="Read working-log entries filtered by agent, type or sinceMsgId.",
        parameters={"agent": "string?", "type": "string?", "sinceMsgId": "string?"},
        handler=handle_read_messages,
    )
    registry.register(
        name="measure_md_file",
        description="Size of agents.md in characters and lines.",
        handler=handle_measure,
    )
    registry.register(
        name="estimate_tokens",
        description="Estimated token count of the working log.",
        handler=handle_estimate_tokens,
    )
    registry.register(
        name="crop_history",
        description="Plan which working-log entries a crop would keep (read only).",
        parameters={"targetTokens": "integer?", "llmWindow": "integer?", "otherWindow": "integer?"},
        handler=handle_crop_history,
    )
    registry.register(
        name="read_debug_recent",
        description="Tails of recent model outputs, sub-agent outputs and debug logs.",
        parameters={"limit": "integer?"},
        handler=handle_read_debug_recent,
    )
