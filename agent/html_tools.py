"""Page HTML helpers: fetching, manifest link scanning and size reduction.

Pure functions except ``fetch_page_html``, which performs one HTTP GET.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

FETCH_MAX_CHARS = 180_000
FETCH_TIMEOUT = 30

MIN_HTML_CHARS = 20_000
MAX_HTML_CHARS = 500_000
DEFAULT_HTML_CHARS = 120_000
SNIPPET_WINDOW = 5000

DEFAULT_FETCH_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

_MANIFEST_RE = re.compile(r"(https?:[^\s\"']+\.(?:m3u8|mpd))(?:\?[^\s\"']*)?", re.IGNORECASE)
_ATTR_RE = re.compile(r"(src|href)=[\"']([^\"']+\.(?:m3u8|mpd))(?:\?[^\"']*)?[\"']", re.IGNORECASE)
_SCRIPT_RE = re.compile(r"<script[^>]*>[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style[^>]*>[\s\S]*?</style>", re.IGNORECASE)
_WS_RE = re.compile(r"\s+")
_NEEDLES = [re.compile(p, re.IGNORECASE) for p in (
    r"\.m3u8", r"\.mpd", r"<video", r"<source", r"hls", r"dash", r"manifest", r"player",
)]


def fetch_page_html(url: str, headers: Optional[Dict[str, str]] = None,
                    timeout: float = FETCH_TIMEOUT) -> Dict[str, Any]:
    """GET *url* following redirects; the body is capped at 180k chars."""
    if not url:
        return {"ok": False, "html": "", "notes": "missing url"}
    merged = dict(DEFAULT_FETCH_HEADERS)
    merged.update(headers or {})
    try:
        response = requests.get(url, headers=merged, timeout=timeout, allow_redirects=True)
    except requests.RequestException as e:
        logger.warning("Fetching %s failed: %s", url, e)
        return {"ok": False, "html": "", "notes": str(e)}

    html = response.text or ""
    if response.status_code >= 400:
        return {"ok": False, "html": html[:FETCH_MAX_CHARS], "notes": f"HTTP {response.status_code}"}
    if len(html) > FETCH_MAX_CHARS:
        return {"ok": True, "html": html[:FETCH_MAX_CHARS], "notes": f"truncated_to_{FETCH_MAX_CHARS}"}
    return {"ok": True, "html": html}


def find_manifest_links(html: str) -> List[str]:
    """Absolute .m3u8/.mpd URLs plus src/href values, first-seen order."""
    html = html or ""
    urls = [m.group(1) for m in _MANIFEST_RE.finditer(html)]
    urls.extend(m.group(2) for m in _ATTR_RE.finditer(html))
    return list(dict.fromkeys(urls))


def extract_html_candidates(html: str) -> Dict[str, Any]:
    return {"candidates": find_manifest_links(html), "playerParams": None}


def _pick_snippets(html: str, window: int) -> str:
    spans = []
    for needle in _NEEDLES:
        for match in needle.finditer(html):
            spans.append((max(0, match.start() - window), min(len(html), match.start() + window)))
    if not spans:
        return ""
    spans.sort()
    merged = [list(spans[0])]
    for start, end in spans[1:]:
        last = merged[-1]
        if start > last[1] + 1:
            merged.append([start, end])
        else:
            last[1] = max(last[1], end)
    return "".join(html[s:e] + "\n" for s, e in merged)


def clamp_max_chars(max_chars: Optional[int]) -> int:
    try:
        value = int(max_chars) if max_chars is not None else DEFAULT_HTML_CHARS
    except (TypeError, ValueError):
        value = DEFAULT_HTML_CHARS
    return max(MIN_HTML_CHARS, min(MAX_HTML_CHARS, value))


def preprocess_html_long(html: str, max_chars: Optional[int] = None,
                         window: int = SNIPPET_WINDOW) -> Dict[str, Any]:
    """Shrink page HTML for prompts.

    Strips script/style blocks and collapses whitespace; if the result is
    still over *max_chars*, keeps merged windows around media-related
    needles, then truncates.
    """
    html = html or ""
    original_chars = len(html)
    limit = clamp_max_chars(max_chars)
    strategy = []

    work = _STYLE_RE.sub("", _SCRIPT_RE.sub("", html))
    strategy.append("strip<script|style>")
    work = _WS_RE.sub(" ", work).strip()
    strategy.append("collapse_whitespace")

    if len(work) > limit:
        picked = _pick_snippets(work, window)
        if picked:
            work = picked
            strategy.append("pick_snippets_around_candidates")

    truncated = None
    if len(work) > limit:
        work = work[:limit]
        truncated = f"truncated_to_{limit}"
        strategy.append("truncate_soft")

    notes = "strategy=" + "+".join(strategy)
    if truncated:
        notes += f"; {truncated}"
    return {
        "processed": work,
        "originalChars": original_chars,
        "processedChars": len(work),
        "removedBytes": max(0, original_chars - len(work)),
        "notes": notes,
    }
