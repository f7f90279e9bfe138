"""Directive protocol: the single structured decision in a model reply.

A reply is decoded into exactly one of three shapes:

    ToolCall  {"tool": name, "args": {...}, "comment": "...", "flags": [...]}
    Result    {"result": {...}, "flags": [...]}
              (or a bare object carrying manifestUrl / directUrl / headers)
    Final     {"final": {...}, "flags": [...]}

Replies are not guaranteed to be clean JSON, so ``parse_directive`` runs a
cascade of named stages and returns the first object that passes the
acceptance rule.  The parser is total: any input yields a Directive or
``None``, never an exception.
"""

import json
import logging
import re
from typing import Any, Callable, Dict, Iterator, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

# Keys that make a bare object an implicit Result.
RESULT_SHAPED_KEYS = ("manifestUrl", "directUrl", "headers")

_JSON_FENCE_RE = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)
_ANY_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*\s*([\s\S]*?)```")


class _DirectiveBase(BaseModel):
    flags: List[str] = Field(default_factory=list)

    @field_validator("flags", mode="before")
    @classmethod
    def _coerce_flags(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, (list, tuple, set)):
            return []
        return [str(f).strip() for f in v if isinstance(f, str) and f.strip()]


class ToolCall(_DirectiveBase):
    kind: Literal["tool_call"] = "tool_call"
    name: str = Field(min_length=1)
    args: Dict[str, Any] = Field(default_factory=dict)
    comment: Optional[str] = None

    @field_validator("args", mode="before")
    @classmethod
    def _coerce_args(cls, v):
        return {} if v is None else v

    @field_validator("comment", mode="before")
    @classmethod
    def _coerce_comment(cls, v):
        if v is None:
            return None
        return v if isinstance(v, str) else json.dumps(v, ensure_ascii=False)


class Result(_DirectiveBase):
    kind: Literal["result"] = "result"
    payload: Dict[str, Any] = Field(default_factory=dict)


class Final(_DirectiveBase):
    kind: Literal["final"] = "final"
    payload: Dict[str, Any] = Field(default_factory=dict)


Directive = Union[ToolCall, Result, Final]


def directive_from_object(obj: Any) -> Optional[Directive]:
    """Apply the acceptance rule to one decoded JSON value.

    Exactly one of ``tool`` / ``result`` / ``final`` must be present (with a
    non-null value); an object with none of them is still accepted as an
    implicit Result when it carries a result-shaped key.
    """
    if not isinstance(obj, dict):
        return None

    present = [key for key in ("tool", "result", "final") if obj.get(key) is not None]
    try:
        if len(present) > 1:
            return None
        if present == ["tool"]:
            return ToolCall(
                name=obj["tool"],
                args=obj.get("args"),
                comment=obj.get("comment"),
                flags=obj.get("flags"),
            )
        if present == ["result"]:
            return Result(payload=obj["result"], flags=obj.get("flags"))
        if present == ["final"]:
            payload = obj["final"]
            # algo_pick may sit beside "final" rather than inside it
            if isinstance(payload, dict) and "algo_pick" not in payload and obj.get("algo_pick") is not None:
                payload = dict(payload, algo_pick=obj["algo_pick"])
            return Final(payload=payload, flags=obj.get("flags"))
        if any(key in obj for key in RESULT_SHAPED_KEYS):
            payload = {k: v for k, v in obj.items() if k != "flags"}
            return Result(payload=payload, flags=obj.get("flags"))
    except ValidationError as e:
        logger.debug("Directive candidate rejected: %s", e.errors()[:1])
    return None


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (ValueError, TypeError, RecursionError):
        return None


# -- Parser stages ------------------------------------------------------------
# Each stage yields candidate JSON texts in priority order.

def whole_text_stage(text: str) -> Iterator[str]:
    yield text.strip()


def json_fence_stage(text: str) -> Iterator[str]:
    for match in _JSON_FENCE_RE.finditer(text):
        yield match.group(1).strip()


def generic_fence_stage(text: str) -> Iterator[str]:
    for match in _ANY_FENCE_RE.finditer(text):
        yield match.group(1).strip()


def brace_scan_stage(text: str) -> Iterator[str]:
    """Yield every top-level ``{...}`` span, tracking string literals."""
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start >= 0:
                yield text[start:i + 1]
                start = -1


def depth_scan_stage(text: str) -> Iterator[str]:
    """Yield every top-level ``{...}`` span by brace depth alone.

    Picks up spans that ``brace_scan_stage`` swallows when prose before the
    directive holds an unbalanced quote.
    """
    depth = 0
    start = -1
    for i, ch in enumerate(text):
        if ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start >= 0:
                yield text[start:i + 1]
                start = -1


PARSER_STAGES: List[Callable[[str], Iterator[str]]] = [
    whole_text_stage,
    json_fence_stage,
    generic_fence_stage,
    brace_scan_stage,
    depth_scan_stage,
]


def parse_directive(text: Any) -> Optional[Directive]:
    """Extract a Directive from raw model output, or ``None``."""
    if not isinstance(text, str) or not text.strip():
        return None
    try:
        for stage in PARSER_STAGES:
            for candidate in stage(text):
                directive = directive_from_object(_loads(candidate))
                if directive is not None:
                    return directive
    except Exception as e:  # the parser must never raise into the loop
        logger.warning("Directive parser failed unexpectedly: %s", e)
    return None


def directive_to_dict(directive: Directive) -> Dict[str, Any]:
    """Inverse of the acceptance rule, for audit payloads."""
    if isinstance(directive, ToolCall):
        out = {"tool": directive.name, "args": directive.args}
        if directive.comment:
            out["comment"] = directive.comment
    elif isinstance(directive, Final):
        out = {"final": directive.payload}
    else:
        out = {"result": directive.payload}
    if directive.flags:
        out["flags"] = list(directive.flags)
    return out
