"""Configuration validation utilities.

Validates the environment and log directory before starting a run.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Tuple
import logging

logger = logging.getLogger(__name__)

_ROLE_PREFIXES = ("STATIC_PARSER", "NETWORK_CAPTURE", "HISTORY_COMPRESSOR")


class ConfigValidationError(Exception):
    """Raised when configuration is invalid."""
    pass


def validate_api_keys() -> List[Tuple[str, bool, str]]:
    """Check the shared reasoning-service key and the per-role overrides.

    Returns:
        List of (key_name, is_set, message) tuples
    """
    results = []

    if os.environ.get("ARK_API_KEY"):
        results.append(("ARK_API_KEY", True, "Reasoning service configured"))
    else:
        results.append(("ARK_API_KEY", False, "Not set"))

    for prefix in _ROLE_PREFIXES:
        key = f"{prefix}_API_KEY"
        if os.environ.get(key):
            results.append((key, True, f"{prefix.lower()} uses a dedicated key"))
        else:
            results.append((key, False, "Not set (falls back to ARK_API_KEY)"))

    return results


def validate_log_dir(log_dir: Path) -> Tuple[bool, str]:
    """Validate that the audit log directory exists or can be created.

    Returns:
        (is_valid, message) tuple
    """
    log_dir = Path(log_dir)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return (False, f"Cannot create {log_dir}: {e}")
    if not os.access(log_dir, os.W_OK):
        return (False, f"{log_dir} is not writable")
    return (True, f"Log directory ready at {log_dir}")


def run_validation(log_dir: Path = Path("logs")) -> Dict[str, Any]:
    """Run all validation checks.

    Returns:
        Dictionary with validation results
    """
    results = {
        "api_keys": validate_api_keys(),
        "log_dir": validate_log_dir(log_dir),
        "errors": [],
        "warnings": [],
    }

    role_keys = {name: is_set for name, is_set, _ in results["api_keys"]}
    if not role_keys.get("ARK_API_KEY"):
        missing_roles = [p for p in _ROLE_PREFIXES if not role_keys.get(f"{p}_API_KEY")]
        if len(missing_roles) == len(_ROLE_PREFIXES):
            results["errors"].append("No reasoning-service API key configured")
        else:
            results["warnings"].append(
                "ARK_API_KEY not set; roles without a dedicated key will fail: "
                + ", ".join(missing_roles)
            )

    dir_ok, dir_msg = results["log_dir"]
    if not dir_ok:
        results["errors"].append(dir_msg)

    results["is_valid"] = len(results["errors"]) == 0

    return results


def require_valid(log_dir: Path = Path("logs")) -> Dict[str, Any]:
    """Run validation and raise ``ConfigValidationError`` on hard failures."""
    results = run_validation(log_dir)
    if not results["is_valid"]:
        raise ConfigValidationError("; ".join(results["errors"]))
    for warning in results["warnings"]:
        logger.warning(warning)
    return results


if __name__ == "__main__":
    # Allow running as standalone script
    import json
    results = run_validation()
    print(json.dumps(results, indent=2))
