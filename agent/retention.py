"""Retention engine for the working audit store.

Two mechanisms keep the prompt-side log within budget:

**Pruning** (synchronous, after every write)
    Keep every protected entry plus the most recent *K* unprotected ones.
    *K* starts at the configured window and is damped (x0.7, floor 3)
    while the token estimate of the kept set is above the target.  The
    raw store is never touched, and a second pass over an unchanged store
    keeps exactly the same set.

**Compaction** (background, when the estimate exceeds a hard ceiling)
    The secondary reasoning model rewrites the log, summarising
    unprotected history.  Protected entries that the model dropped are
    re-appended verbatim.  If the call fails or the reply lacks the log
    header, a local summary of the dropped entries' type/agent tags is
    used instead.  A COMPRESS_LOG entry records the outcome either way.

Compaction commits under the same store lock that pruning uses, so the
working log is never rewritten by both at once.
"""

import logging
import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from agent.audit_store import (
    AuditEntry,
    AuditStore,
    estimate_tokens,
    generate_id,
    parse_blocks,
)
from agent.config import RetentionConfig
from agent.prompt_builder import build_history_compressor_prompt
from coordinator_constants import COMPRESS_LOG_FLAG, WORKING_LOG_HEADER

logger = logging.getLogger(__name__)

COMPRESSOR_AGENT = "history_compressor"

# Entry types the crop planner always keeps.
CRITICAL_TYPES = frozenset({
    "final", "error", "diagnose", "start_human_acceptance",
    "headers", "capture", "plan", "merge", "probe",
})

_JSON_BLOCK_RE = re.compile(r"```json[\s\S]*?```", re.IGNORECASE)


@dataclass
class PrunePlan:
    kept: List[AuditEntry]
    removed: List[AuditEntry]
    window: int
    estimated_tokens: int


def is_protected(entry: AuditEntry, keep_flags: Sequence[str]) -> bool:
    return entry.has_any_flag(keep_flags)


def prune_entries(entries: Sequence[AuditEntry], *, window: int, keep_flags: Sequence[str],
                  target_tokens: int, min_window: int = 3, damping: float = 0.7) -> PrunePlan:
    """Pure sliding-window selection; order of *entries* is preserved."""
    protected_ids = {e.id for e in entries if is_protected(e, keep_flags)}
    unprotected = [e for e in entries if e.id not in protected_ids]

    def assemble(k: int) -> List[AuditEntry]:
        tail_ids = {e.id for e in unprotected[-k:]} if k > 0 else set()
        return [e for e in entries if e.id in protected_ids or e.id in tail_ids]

    k = max(0, window)
    kept = assemble(k)
    est = estimate_tokens(kept)
    while est > target_tokens and k > min_window:
        k = max(min_window, int(k * damping))
        kept = assemble(k)
        est = estimate_tokens(kept)

    kept_ids = {e.id for e in kept}
    removed = [e for e in entries if e.id not in kept_ids]
    return PrunePlan(kept=kept, removed=removed, window=k, estimated_tokens=est)


def _is_reasoning_agent(agent: str) -> bool:
    return agent.endswith("(LLM)")


def plan_crop(entries: Sequence[AuditEntry], *, target_tokens: int, llm_window: int = 8,
              other_window: int = 10, min_window: int = 3) -> Dict[str, Any]:
    """Read-only crop plan used by the ``crop_history`` capability.

    Keeps critical entry types, a tail of reasoning-agent entries and a
    tail of everything else; the non-reasoning window shrinks first.
    """
    llm_window = max(min_window, llm_window)
    other_window = max(min_window, other_window)
    critical_ids = {e.id for e in entries if e.type.lower() in CRITICAL_TYPES}
    llm_entries = [e for e in entries if _is_reasoning_agent(e.agent)]
    other_entries = [e for e in entries if not _is_reasoning_agent(e.agent)]

    def assemble():
        keep = set(critical_ids)
        keep.update(e.id for e in llm_entries[-llm_window:])
        keep.update(e.id for e in other_entries[-other_window:])
        return [e for e in entries if e.id in keep]

    final = assemble()
    est = estimate_tokens(final)
    while est > target_tokens and (llm_window > min_window or other_window > min_window):
        if other_window > min_window:
            other_window = max(min_window, int(other_window * 0.7))
        else:
            llm_window = max(min_window, int(llm_window * 0.7))
        final = assemble()
        est = estimate_tokens(final)

    keep_ids = [e.id for e in final]
    kept_set = set(keep_ids)
    remove_ids = [e.id for e in entries if e.id not in kept_set]
    return {
        "keptCount": len(keep_ids),
        "removedCount": len(remove_ids),
        "windowSize": {"llmWindow": llm_window, "otherWindow": other_window, "targetTokens": target_tokens},
        "plan": {"keepIds": keep_ids, "removeIds": remove_ids},
    }


def local_summary(entries: Sequence[AuditEntry], *, keep_flags: Sequence[str],
                  keep_recent: int = 3) -> List[AuditEntry]:
    """Model-free compaction: protected + recent entries, plus one tag summary."""
    unprotected = [e for e in entries if not is_protected(e, keep_flags)]
    recent_ids = {e.id for e in unprotected[-keep_recent:]} if keep_recent > 0 else set()
    dropped = [e for e in unprotected if e.id not in recent_ids]
    kept = [e for e in entries if is_protected(e, keep_flags) or e.id in recent_ids]
    if not dropped:
        return kept
    tags = "; ".join(f"{e.type}@{e.agent}" for e in dropped)
    summary = AuditEntry(
        id=generate_id(),
        agent=COMPRESSOR_AGENT,
        type="summary",
        text=f"Compacted {len(dropped)} entries: {tags}",
        payload={"replacedCount": len(dropped), "replacedIds": [e.id for e in dropped]},
        flags=(COMPRESS_LOG_FLAG,),
    )
    return [summary] + kept


@dataclass
class CompactionReport:
    compressed: bool
    before_tokens: int
    after_tokens: Optional[int] = None
    replaced_count: int = 0
    mode: Optional[str] = None
    restored_ids: List[str] = field(default_factory=list)


class RetentionEngine:
    """Retention hook installed on an ``AuditStore``.

    Args:
        config: Window, keep flags and token thresholds.
        compactor: ``chat(messages, model=None)`` callable returning an
            object with ``.content``; ``None`` means always use the local
            summary.
        background: Run compaction on a single worker thread (default).
            With ``False`` compaction runs inline, which tests rely on.
    """

    def __init__(self, config: RetentionConfig, compactor: Optional[Callable[..., Any]] = None,
                 *, background: bool = True):
        self.config = config
        self.compactor = compactor
        self._executor = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="audit-compaction")
            if background else None
        )
        self._pending: Optional[Future] = None
        self._state_lock = threading.Lock()

    def __call__(self, store: AuditStore):
        self.after_write(store)

    def after_write(self, store: AuditStore):
        self.prune(store)
        if store.estimate_tokens() > self.config.compress_max_tokens:
            self.schedule_compaction(store)

    # -- Pruning --------------------------------------------------------------

    def prune(self, store: AuditStore) -> PrunePlan:
        with store.lock:
            plan = prune_entries(
                store.entries(),
                window=self.config.window,
                keep_flags=self.config.keep_flags,
                target_tokens=self.config.target_tokens,
                min_window=self.config.min_window,
                damping=self.config.damping,
            )
            if plan.removed:
                store.rewrite_working(plan.kept)
                logger.debug(
                    "Pruned %d working entries (kept %d, window=%d, ~%d tokens)",
                    len(plan.removed), len(plan.kept), plan.window, plan.estimated_tokens,
                )
        return plan

    # -- Compaction -----------------------------------------------------------

    def schedule_compaction(self, store: AuditStore) -> Optional[Future]:
        if self._executor is None:
            self.compact(store)
            return None
        with self._state_lock:
            if self._pending is not None and not self._pending.done():
                return self._pending
            self._pending = self._executor.submit(self._compact_logged, store)
            return self._pending

    def _compact_logged(self, store: AuditStore) -> Optional[CompactionReport]:
        try:
            return self.compact(store)
        except Exception as e:
            logger.error("Audit compaction failed: %s", e, exc_info=True)
            return None

    def wait(self, timeout: Optional[float] = None):
        """Block until any in-flight compaction finishes."""
        with self._state_lock:
            pending = self._pending
        if pending is not None:
            pending.result(timeout=timeout)

    def shutdown(self):
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def _model_rewrite(self, text: str) -> Optional[List[AuditEntry]]:
        if self.compactor is None:
            return None
        messages = [
            {"role": "system", "content": build_history_compressor_prompt(
                keep_flags=self.config.keep_flags,
                target_tokens=self.config.compress_target_tokens,
            )},
            {"role": "user", "content": text},
        ]
        try:
            reply = self.compactor(messages, model=self.config.compress_model)
        except Exception as e:
            logger.warning("History compressor call failed, using local summary: %s", e)
            return None
        content = (getattr(reply, "content", reply) or "")
        if not isinstance(content, str) or not content.lstrip().startswith(WORKING_LOG_HEADER):
            logger.warning("History compressor reply missing log header, using local summary")
            return None

        entries = parse_blocks(content)
        if not any(COMPRESS_LOG_FLAG in e.flags for e in entries):
            # Keep free-form summary prose that was not wrapped in a record.
            prose = _JSON_BLOCK_RE.sub("", content).replace(WORKING_LOG_HEADER, "", 1).strip()
            if prose:
                entries.insert(0, AuditEntry(
                    id=generate_id(),
                    agent=COMPRESSOR_AGENT,
                    type="summary",
                    text=prose[:4000],
                    flags=(COMPRESS_LOG_FLAG,),
                ))
        return entries

    def compact(self, store: AuditStore) -> CompactionReport:
        snapshot_text = store.read_text()
        snapshot = parse_blocks(snapshot_text)
        before = estimate_tokens(snapshot)
        if before <= self.config.compress_max_tokens:
            return CompactionReport(compressed=False, before_tokens=before)

        keep_flags = self.config.keep_flags
        rewritten = self._model_rewrite(snapshot_text)
        mode = "model" if rewritten is not None else "fallback"

        with store.lock:
            current = store.entries()
            current_ids = {e.id for e in current}
            snapshot_ids = {e.id for e in snapshot}

            if rewritten is None:
                live_snapshot = [e for e in snapshot if e.id in current_ids]
                rewritten = local_summary(live_snapshot, keep_flags=keep_flags,
                                          keep_recent=self.config.min_window)
            else:
                # Entries pruned while the model was working stay pruned.
                rewritten = [e for e in rewritten if e.id not in snapshot_ids or e.id in current_ids]

            current_by_id = {e.id: e for e in current}
            final: List[AuditEntry] = []
            seen = set()
            for e in rewritten:
                if e.id not in seen:
                    # Surviving entries are written back exactly as stored.
                    final.append(current_by_id.get(e.id, e))
                    seen.add(e.id)

            restored = []
            for e in current:
                if e.id not in seen and is_protected(e, keep_flags):
                    final.append(e)
                    seen.add(e.id)
                    restored.append(e.id)
            # Writes that landed during the model call.
            for e in current:
                if e.id not in snapshot_ids and e.id not in seen:
                    final.append(e)
                    seen.add(e.id)

            store.rewrite_working(final)
            store.mirror_to_raw(final)

        after = estimate_tokens(final)
        replaced = max(0, len(snapshot) - len([e for e in final if e.id in snapshot_ids]))
        if restored:
            logger.info("Compaction restored %d protected entries", len(restored))
        logger.info("Audit compaction (%s): ~%d -> ~%d tokens, replaced %d", mode, before, after, replaced)

        store.append(
            COMPRESSOR_AGENT,
            "history_compress",
            f"History compacted: tokens {before} -> {after}, replaced {replaced}, "
            f"target {self.config.compress_target_tokens}",
            payload={
                "beforeTokens": before,
                "afterTokens": after,
                "replacedCount": replaced,
                "targetTokens": self.config.compress_target_tokens,
                "mode": mode,
            },
            flags=[COMPRESS_LOG_FLAG],
            run_retention=False,
        )
        return CompactionReport(
            compressed=True,
            before_tokens=before,
            after_tokens=after,
            replaced_count=replaced,
            mode=mode,
            restored_ids=restored,
        )
