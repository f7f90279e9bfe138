"""Reversible masking of words that make the reasoning service refuse.

Outbound message contents are masked right before they leave the process
and model replies are unmasked as soon as they arrive, so the rest of the
system only ever sees the original words.

Toggle with ``SENSITIVE_FILTER_ENABLED`` (default: enabled).
"""

import os
import re
from typing import Dict, List, Optional

# Keep the mapping one-to-one so unmasking is unambiguous.
SENSITIVE_TO_SAFE: Dict[str, str] = {
    "porn": "born",
    "xvideos": "xv1deos",
    # Replaces every "91" in the text, URLs included.
    "91": "61",
}

SAFE_TO_SENSITIVE: Dict[str, str] = {v: k for k, v in SENSITIVE_TO_SAFE.items()}


def filter_enabled() -> bool:
    raw = os.getenv("SENSITIVE_FILTER_ENABLED")
    if raw is None:
        return True
    return raw.strip().lower() == "true"


def _match_case(sample: str, template: str) -> str:
    if sample.isupper():
        return template.upper()
    if re.fullmatch(r"[A-Z][a-z]+", sample):
        return template[:1].upper() + template[1:].lower()
    return template.lower()


def _apply_map(text: str, mapping: Dict[str, str]) -> str:
    if not text:
        return text
    out = text
    # Longest keys first so substrings don't clobber each other.
    for key in sorted(mapping, key=len, reverse=True):
        value = mapping[key]
        pattern = re.compile(re.escape(key), re.IGNORECASE)
        out = pattern.sub(lambda m, v=value: _match_case(m.group(0), v), out)
    return out


def mask_text(text: str, enabled: Optional[bool] = None) -> str:
    if not (filter_enabled() if enabled is None else enabled):
        return text
    return _apply_map(text, SENSITIVE_TO_SAFE)


def unmask_text(text: str, enabled: Optional[bool] = None) -> str:
    if not (filter_enabled() if enabled is None else enabled):
        return text
    return _apply_map(text, SAFE_TO_SENSITIVE)


def mask_messages(messages: List[Dict[str, str]], enabled: Optional[bool] = None) -> List[Dict[str, str]]:
    """Return copies of *messages* with masked ``content`` fields."""
    if not (filter_enabled() if enabled is None else enabled):
        return messages
    return [{**m, "content": mask_text(m.get("content", ""), True)} for m in messages]
