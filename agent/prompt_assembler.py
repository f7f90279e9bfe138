"""Seed conversation assembly for coordinator runs and sub-agent sessions.

Caching contract (system prompt only):
    - system_prompt() returns the cached value on subsequent calls
    - invalidate() clears the cache
    - the seed messages themselves are rebuilt for every session, since
      they embed the live audit log and algorithm code
"""

from typing import Dict, List, Optional

from agent.prompt_builder import (
    COORDINATOR_SYSTEM_PROMPT,
    NEXT_ACTION_REQUEST,
    build_network_capture_prompt,
    build_static_parser_prompt,
    build_task_summary,
)
from agent.run_context import RunContext, format_entry_line

CONTEXT_ENTRIES = 3
ERROR_ENTRIES = 5
DIRECTIVE_ENTRIES = 8
SEED_HTML_SNIPPET_CHARS = 2000
SUBAGENT_HTML_SNIPPET_CHARS = 20000

Message = Dict[str, str]


def _sub_prompt_kwargs(ctx: RunContext, target: str, html: str, url: str = "") -> dict:
    return {
        "upstream_summary": ctx.upstream_summary(),
        "directives": ctx.recent_directives(DIRECTIVE_ENTRIES),
        "user_url": url or ctx.page_url,
        "har_path": ctx.task.har_path,
        "html_snippet": html,
        "artifact_path": str(ctx.artifacts.document_path(target)),
        "artifact_code": ctx.artifacts.current_code(target),
    }


def static_parser_prompt(ctx: RunContext, html: Optional[str] = None,
                         snippet_chars: int = SUBAGENT_HTML_SNIPPET_CHARS) -> str:
    html = (ctx.html if html is None else html) or ""
    return build_static_parser_prompt(**_sub_prompt_kwargs(ctx, "static", html[:snippet_chars]))


def network_capture_prompt(ctx: RunContext, html: Optional[str] = None, url: str = "",
                           snippet_chars: int = SUBAGENT_HTML_SNIPPET_CHARS) -> str:
    html = (ctx.html if html is None else html) or ""
    return build_network_capture_prompt(**_sub_prompt_kwargs(ctx, "dynamic", html[:snippet_chars], url))


class PromptAssembler:
    """Builds the opening messages of a coordinator run.

    Args:
        system_message: Extra text appended to the coordinator system prompt.
    """

    def __init__(self, *, system_message: Optional[str] = None):
        self._system_message = system_message
        self._cached_prompt: Optional[str] = None

    def system_prompt(self) -> str:
        if self._cached_prompt is None:
            parts = [COORDINATOR_SYSTEM_PROMPT]
            if self._system_message:
                parts.append(self._system_message)
            self._cached_prompt = "\n\n".join(parts)
        return self._cached_prompt

    @property
    def cached(self):
        return self._cached_prompt

    def invalidate(self):
        self._cached_prompt = None

    def build(self, ctx: RunContext) -> List[Message]:
        """System prompt, task summary, audit excerpts and sub-agent prompts."""
        task = ctx.task
        messages: List[Message] = [
            {"role": "system", "content": self.system_prompt()},
            {"role": "user", "content": build_task_summary(
                url=task.page_url,
                har_path=task.har_path,
                prefer=task.prefer,
                algo_name=task.algo_name,
                notes=task.notes,
                has_html=bool(ctx.html),
            )},
        ]

        recent = ctx.recent_reasoning_entries(CONTEXT_ENTRIES)
        if recent:
            lines = "\n".join(format_entry_line(e) for e in recent)
            messages.append({"role": "assistant", "content": f"CONTEXT (agents.md):\n{lines}"})

        errors = [e for e in ctx.store.entries() if e.type.lower() == "error"][-ERROR_ENTRIES:]
        if errors:
            lines = "\n".join(format_entry_line(e) for e in errors)
            messages.append({
                "role": "assistant",
                "content": (
                    f"PREVIOUS_ERROR:\n{lines}\n"
                    "Review the errors above, avoid repeating them, and propose a diagnosis or fallback first."
                ),
            })

        messages.append({
            "role": "assistant",
            "content": "SUBAGENT_PROMPT(static_parser):\n"
                       + static_parser_prompt(ctx, snippet_chars=SEED_HTML_SNIPPET_CHARS),
        })
        messages.append({
            "role": "assistant",
            "content": "SUBAGENT_PROMPT(network_capture):\n"
                       + network_capture_prompt(ctx, snippet_chars=SEED_HTML_SNIPPET_CHARS),
        })
        return messages


def subagent_seed(system_prompt: str) -> List[Message]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": NEXT_ACTION_REQUEST},
    ]
