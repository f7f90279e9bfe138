"""
External collaborator tools: browser network capture and human acceptance.

Both collaborators are optional callables on the run context.  Without one
the capability reports that it is not configured instead of failing.
"""

from coordinator_constants import COORDINATOR_AGENT

CAPTURE_AGENT = "network_capture"


def register(registry, ctx, agent=COORDINATOR_AGENT):

    def handle_capture_network(args):
        url = args.get("url") or ctx.page_url
        if ctx.capture_network is None:
            return {"ok": False, "notes": "capture_network collaborator not configured"}
        res = ctx.capture_network(url, args.get("headers")) or {}
        ctx.store.append(CAPTURE_AGENT, "capture", "Network capture requested",
                         payload={"url": url, "result": res})
        if res.get("headers"):
            ctx.store.append(CAPTURE_AGENT, "headers", "Key request headers",
                             payload=res["headers"], flags=["CRITICAL"])
            ctx.last_headers = res["headers"]
        if res.get("manifestUrl"):
            ctx.last_manifest_url = res["manifestUrl"]
        return res

    def handle_human_acceptance(args):
        pick = "static" if str(args.get("algo_pick") or "").lower() == "static" else "dynamic"
        request = {
            "algo_pick": pick,
            "algorithmPath": str(ctx.artifacts.document_path(pick)),
            "code": ctx.artifacts.current_code(pick),
            "pageUrl": args.get("url") or args.get("pageUrl") or ctx.page_url,
            "headers": args.get("headers") or ctx.last_headers,
            "manifestUrl": args.get("manifestUrl") or ctx.last_manifest_url,
        }
        ctx.store.append(agent, "start_human_acceptance",
                         f"Submitted {pick} algorithm for human acceptance")
        if ctx.human_acceptance is None:
            return {"ok": False, "notes": "human_acceptance_flow collaborator not configured"}
        return ctx.human_acceptance(request) or {}

    registry.register(
        name="capture_network",
        description="Capture the page's network traffic and report the manifest URL and headers.",
        parameters={"url": "string?", "headers": "object?"},
        handler=handle_capture_network,
    )
    registry.register(
        name="human_acceptance_flow",
        description="Ask a human to verify the chosen algorithm (variant pick, download, review).",
        parameters={"algo_pick": "static|dynamic", "url": "string?", "headers": "object?",
                    "manifestUrl": "string?"},
        handler=handle_human_acceptance,
    )
