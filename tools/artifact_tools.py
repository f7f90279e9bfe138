"""
Algorithm code tools: write the working algorithm documents, store the
final pick under a user-chosen name, and look up previously stored ones.

Dependencies: none (stdlib only)
"""

import logging

from agent.artifact_store import ArtifactStoreError

logger = logging.getLogger(__name__)


def register(registry, ctx, target=None):
    """Register code tools.  A fixed *target* overrides whatever the model asks for."""

    def handle_write(args):
        code = str(args.get("code") or "")
        write_target = target or args.get("target")
        return ctx.artifacts.write_code(
            write_target,
            code,
            title=args.get("title"),
            language=args.get("language"),
            meta=args.get("meta"),
        )

    def handle_finalize(args):
        pick = args.get("algo_pick")
        name = str(args.get("targetName") or ctx.task.algo_name or "").strip()
        try:
            return ctx.artifacts.finalize(pick, name)
        except ArtifactStoreError as e:
            logger.warning("Finalize rejected: %s", e)
            ctx.store.append("code_maintainer", "error", str(e),
                             payload={"algo_pick": pick, "targetName": name}, flags=["ERROR"])
            return {"ok": False, "error": str(e), "errorType": type(e).__name__}

    def handle_list(args):
        return {"algorithms": ctx.artifacts.list_algorithms()}

    def handle_read(args):
        name = str(args.get("name") or "").strip()
        code = ctx.artifacts.read_algorithm(name) if name else None
        if code is None:
            return {"ok": False, "name": name, "notes": "not found"}
        return {"ok": True, "name": name, "code": code}

    registry.register(
        name="code_maintainer_agent_write",
        description="Submit the COMPLETE algorithm code as the new current version.",
        parameters={"target": "static|dynamic?", "title": "string", "code": "string",
                    "language": "string?", "meta": "object?"},
        handler=handle_write,
    )
    registry.register(
        name="code_maintainer_agent_finalize",
        description="Store the current static or dynamic algorithm under targetName.",
        parameters={"algo_pick": "static|dynamic", "targetName": "string?"},
        handler=handle_finalize,
    )
    registry.register(
        name="code_maintainer_agent_list_algorithms",
        description="List stored algorithms, newest first.",
        parameters={},
        handler=handle_list,
    )
    registry.register(
        name="code_maintainer_agent_read_algorithm",
        description="Read the code of a stored algorithm by name.",
        parameters={"name": "string"},
        handler=handle_read,
    )
