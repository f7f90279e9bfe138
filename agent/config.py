"""Runtime configuration for the coordinator.

All values come from the environment (populated from .env by the runner)
with an optional YAML overlay.  Every knob has a safe default so that a
bare environment still yields a bounded, working configuration.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from coordinator_constants import (
    ARK_BASE_URL,
    ARK_DEFAULT_MODEL,
    DEFAULT_KEEP_FLAGS,
    DEFAULT_MAX_STEPS,
    SUBAGENT_MAX_STEPS,
)

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning("Invalid %s value: %r, using default %s", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        logger.warning("Invalid %s value: %r, using default %s", name, raw, default)
        return default


def parse_flag_list(raw: Optional[str], default: Tuple[str, ...] = DEFAULT_KEEP_FLAGS) -> Tuple[str, ...]:
    """Split a comma separated flag list, dropping blanks."""
    if raw is None:
        return tuple(default)
    flags = tuple(part.strip() for part in raw.split(",") if part.strip())
    return flags or tuple(default)


def resolve_max_steps(raw: Any = None, default: int = DEFAULT_MAX_STEPS) -> int:
    """Resolve the top-level step budget.

    Resolution order: explicit *raw* value, ``COORDINATOR_MAX_STEPS``,
    ``LLM_MAX_STEPS``.  Anything missing, non-numeric or <= 0 falls back
    to *default*, so the budget is always finite and positive.
    """
    if raw is None:
        raw = os.getenv("COORDINATOR_MAX_STEPS") or os.getenv("LLM_MAX_STEPS") or ""
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class RetentionConfig:
    """Pruning and compaction knobs for the working audit store."""

    window: int = 30
    keep_flags: Tuple[str, ...] = DEFAULT_KEEP_FLAGS
    token_budget: int = 8000
    reserve_ratio: float = 0.25
    min_window: int = 3
    damping: float = 0.7
    compress_max_tokens: int = 50000
    compress_target_tokens: int = 20000
    compress_model: Optional[str] = None

    @property
    def target_tokens(self) -> int:
        return max(1000, int(self.token_budget * (1 - self.reserve_ratio)))

    @classmethod
    def from_env(cls) -> "RetentionConfig":
        budget = os.getenv("TOKEN_BUDGET") or os.getenv("COORDINATOR_TOKEN_BUDGET")
        return cls(
            window=max(1, _env_int("AGENTS_PROMPT_WINDOW", 30)),
            keep_flags=parse_flag_list(os.getenv("AGENTS_PROMPT_KEEP_FLAGS")),
            token_budget=int(budget) if budget and budget.strip().isdigit() else 8000,
            reserve_ratio=_env_float("CONTEXT_RESERVE_RATIO", 0.25),
            compress_max_tokens=_env_int("AGENTS_PROMPT_COMPRESS_MAX_TOKENS", 50000),
            compress_target_tokens=_env_int("AGENTS_PROMPT_COMPRESS_TARGET_TOKENS", 20000),
            compress_model=os.getenv("ARK_COMPRESS_MODEL_ID") or None,
        )


@dataclass(frozen=True)
class ClientConfig:
    """Connection settings for one reasoning-service role."""

    api_key: str
    model: str
    base_url: str = ARK_BASE_URL
    timeout: float = 120.0

    @classmethod
    def for_role(cls, role: str = "ARK") -> "ClientConfig":
        """Resolve ``<ROLE>_API_KEY`` / ``<ROLE>_MODEL_ID`` with ARK_* fallback."""
        role = (role or "ARK").strip().upper()
        if role in ("ARK", "DOUBAO", "GLOBAL"):
            key_var, model_var = "ARK_API_KEY", "ARK_MODEL_ID"
        else:
            key_var, model_var = f"{role}_API_KEY", f"{role}_MODEL_ID"
        return cls(
            api_key=os.getenv(key_var) or os.getenv("ARK_API_KEY", ""),
            model=os.getenv(model_var) or os.getenv("ARK_MODEL_ID") or ARK_DEFAULT_MODEL,
            base_url=os.getenv("ARK_BASE_URL") or ARK_BASE_URL,
            timeout=_env_float("LLM_REQUEST_TIMEOUT", 120.0),
        )


@dataclass(frozen=True)
class CoordinatorConfig:
    """Top-level settings for one coordinator deployment."""

    log_dir: Path = Path("logs")
    algorithms_dir: Path = Path("algorithms")
    max_steps: int = DEFAULT_MAX_STEPS
    subagent_max_steps: int = SUBAGENT_MAX_STEPS
    html_max_chars: int = 120000
    sensitive_filter: bool = True
    retention: RetentionConfig = field(default_factory=RetentionConfig)

    @classmethod
    def from_env(cls) -> "CoordinatorConfig":
        filter_raw = os.getenv("SENSITIVE_FILTER_ENABLED")
        return cls(
            log_dir=Path(os.getenv("AGENTS_LOG_DIR") or "logs"),
            algorithms_dir=Path(os.getenv("ALGORITHMS_DIR") or "algorithms"),
            max_steps=resolve_max_steps(),
            html_max_chars=_env_int("HTML_MAX_CHARS", 120000),
            sensitive_filter=True if filter_raw is None else filter_raw.strip().lower() == "true",
            retention=RetentionConfig.from_env(),
        )

    @classmethod
    def from_yaml(cls, path: str, base: Optional["CoordinatorConfig"] = None) -> "CoordinatorConfig":
        """Overlay a YAML file on *base* (env defaults when omitted).

        Recognised sections: ``loop``, ``retention``, ``paths``.  Missing
        sections keep their base values.
        """
        base = base or cls.from_env()
        with open(path, "r", encoding="utf-8") as f:
            data: Dict[str, Any] = yaml.safe_load(f) or {}

        loop = data.get("loop") or {}
        paths = data.get("paths") or {}
        retention = data.get("retention") or {}

        ret = base.retention
        if retention:
            overrides = {}
            for key in ("window", "token_budget", "min_window",
                        "compress_max_tokens", "compress_target_tokens"):
                if key in retention:
                    overrides[key] = int(retention[key])
            for key in ("reserve_ratio", "damping"):
                if key in retention:
                    overrides[key] = float(retention[key])
            if "keep_flags" in retention:
                flags = retention["keep_flags"]
                if isinstance(flags, str):
                    overrides["keep_flags"] = parse_flag_list(flags)
                else:
                    overrides["keep_flags"] = tuple(str(f) for f in flags)
            if "compress_model" in retention:
                overrides["compress_model"] = retention["compress_model"]
            ret = replace(ret, **overrides)

        return replace(
            base,
            log_dir=Path(paths.get("log_dir", base.log_dir)),
            algorithms_dir=Path(paths.get("algorithms_dir", base.algorithms_dir)),
            max_steps=resolve_max_steps(loop["max_steps"]) if "max_steps" in loop else base.max_steps,
            subagent_max_steps=int(loop.get("subagent_max_steps", base.subagent_max_steps)),
            html_max_chars=int(loop.get("html_max_chars", base.html_max_chars)),
            retention=ret,
        )
