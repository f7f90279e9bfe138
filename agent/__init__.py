"""Coordinator internals.

Module Overview
---------------

**directives.py**
    Parses one reasoning-service reply into a ToolCall, Result or Final
    directive.

**session_loop.py**
    The bounded directive loop plus the top-level completion rules.
    ``subagent.py`` adds the sub-agent rules and ``run_subagent``.

**audit_store.py / retention.py**
    The shared markdown audit log (working and raw channels) and the
    pruning / compaction hook installed on it.

**capabilities.py**
    Name -> handler registry; handlers live in the ``tools`` package.

**prompt_builder.py / prompt_assembler.py**
    Prompt texts and per-run seeding of the conversation.

**artifact_store.py**
    Working algorithm documents and finalized ``<name>.js`` files.

**run_context.py / run_registry.py / trajectory.py**
    Per-run state handed to capabilities, the run id -> status map, and
    debug recording of model traffic.

**reasoning_client.py / sensitive_filter.py / config.py**
    Transport to the reasoning service, reversible word masking, and
    environment / YAML configuration.

**html_tools.py / diagnosis.py**
    Page fetching and manifest scanning, and rule-based error diagnosis.

Modules never import ``run_coordinator``; the ``Coordinator`` class there
wires them together.
"""
