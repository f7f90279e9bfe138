"""
Page tools: fetch page HTML, scan it for manifest links, shrink it for prompts.

Dependencies: requests (via agent.html_tools)
"""

from agent.html_tools import extract_html_candidates, fetch_page_html, preprocess_html_long
from coordinator_constants import COORDINATOR_AGENT

STATIC_ENGINE_AGENT = "static_parser_engine"
PREPROCESSOR_AGENT = "html_preprocessor"
PREVIEW_CHARS = 2000

# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register(registry, ctx, agent=COORDINATOR_AGENT):
    """Register page tools bound to *ctx*."""

    def handle_fetch_page_html(args):
        url = str(args.get("url") or ctx.page_url or "")
        res = fetch_page_html(url, headers=args.get("headers"))
        if res.get("ok"):
            text = f"Fetched page source {url} · {len(res.get('html') or '')} chars"
        else:
            text = f"Fetch failed: {res.get('notes', '')}"
        ctx.store.append(agent, "html_fetched", text, payload={"url": url, "notes": res.get("notes")})
        return res

    def handle_static_extract(args):
        html = args.get("html") or ctx.html or ""
        if not html and ctx.page_url:
            html = fetch_page_html(ctx.page_url).get("html") or ""
        if not html:
            return {"candidates": []}
        out = extract_html_candidates(html)
        ctx.store.append(
            STATIC_ENGINE_AGENT,
            "scan",
            f"HTML candidate scan finished: {len(out['candidates'])} found",
            payload={"sample": out["candidates"][:6]},
        )
        return out

    def handle_preprocess(args):
        html = args.get("html") or ctx.html or ""
        if not html:
            return {"ok": False, "notes": "no html to preprocess"}
        out = preprocess_html_long(html, args.get("maxChars") or ctx.config.html_max_chars)
        original = ctx.store.append_raw(
            PREPROCESSOR_AGENT, "html_original",
            f"Original HTML ({out['originalChars']} chars)",
            payload={"html": html},
        )
        ctx.store.append(
            PREPROCESSOR_AGENT, "html_preprocessed",
            f"HTML reduced {out['originalChars']} -> {out['processedChars']} chars ({out['notes']})",
            payload={"processedChars": out["processedChars"], "preview": out["processed"][:PREVIEW_CHARS]},
            parent_id=original.id,
        )
        ctx.html = out["processed"]
        return {
            "ok": True,
            "originalChars": out["originalChars"],
            "processedChars": out["processedChars"],
            "removedBytes": out["removedBytes"],
            "notes": out["notes"],
            "preview": out["processed"][:PREVIEW_CHARS],
        }

    registry.register(
        name="fetch_page_html",
        description="Download the page source (redirects followed, body capped at 180k chars).",
        parameters={"url": "string?", "headers": "object?"},
        handler=handle_fetch_page_html,
    )
    registry.register(
        name="static_extract_html_candidates",
        description="Scan HTML (or the fetched page) for .m3u8/.mpd manifest links.",
        parameters={"html": "string?"},
        handler=handle_static_extract,
    )
    registry.register(
        name="call_html_preprocessor",
        description="Strip and shrink oversized HTML; the reduced HTML replaces the run's HTML input.",
        parameters={"html": "string?", "maxChars": "integer?"},
        handler=handle_preprocess,
    )
