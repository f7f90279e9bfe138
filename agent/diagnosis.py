"""Rule-based error diagnosis for failed runs and capability errors."""

from typing import Dict

ERROR_TYPES = (
    "input_limit",
    "network_403",
    "drm_protected",
    "manifest_parse_error",
    "variants_empty",
    "unknown",
)

_FIXES = {
    "input_limit": ("crop_or_compress",
                    "Crop the prompt window, then compress non-critical messages or retrieve by key flags"),
    "network_403": ("add_headers_or_retry",
                    "Add the required request headers or cookies and retry with exponential backoff"),
    "drm_protected": ("stop", "DRM detected: stop downloading and record a compliance note"),
    "manifest_parse_error": ("fallback_capture",
                             "Switch parser or fall back to the network capture result"),
    "variants_empty": ("fallback_capture",
                       "Fall back to the capture agent's own result or flag the site as needing an adapter"),
    "unknown": ("inspect", "Inspect the logs further and propose a manual fix"),
}


def classify_error(logs: str) -> str:
    s = (logs or "").lower()
    if "input limit" in s or "context length" in s:
        return "input_limit"
    if "403" in s:
        return "network_403"
    if "drm" in s:
        return "drm_protected"
    if "parse" in s and "manifest" in s:
        return "manifest_parse_error"
    if "variants" in s and "empty" in s:
        return "variants_empty"
    return "unknown"


def propose_fix(error_type: str) -> Dict[str, str]:
    action, notes = _FIXES.get(error_type, _FIXES["unknown"])
    return {"action": action, "notes": notes}


def detect_input_limit(error: str) -> Dict[str, bool]:
    if not error:
        return {"isInputLimit": False}
    s = error.lower()
    return {"isInputLimit": "input limit" in s or "context length" in s or "too many tokens" in s}


def diagnose(logs: str) -> Dict[str, object]:
    error_type = classify_error(logs)
    return {"type": error_type, "fix": propose_fix(error_type)}
