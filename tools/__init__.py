#!/usr/bin/env python3
"""
Tools Package

Capability handlers for the coordinator and its sub-agents.  Each module
exposes ``register(registry, ctx, ...)`` and binds its handlers to the
run context:

- page_tools: page fetching, manifest link scanning, HTML preprocessing
- context_tools: audit log notes, reads, measurements and crop plans
- diagnosis_tools: error classification
- artifact_tools: algorithm code writes and finalization
- delegation_tools: the two sub-agent delegations
- collaborator_tools: network capture and human acceptance collaborators

``build_registry`` assembles the registry for one role, restricted to the
role's toolset from ``toolsets.py``.
"""

from agent.capabilities import CapabilityRegistry
from coordinator_constants import COORDINATOR_AGENT
from toolsets import resolve_toolset

from . import (
    artifact_tools,
    collaborator_tools,
    context_tools,
    delegation_tools,
    diagnosis_tools,
    page_tools,
)


def build_registry(ctx, toolset="coordinator", agent=COORDINATOR_AGENT, artifact_target=None):
    """Registry for one session: every tool bound to *ctx*, limited to *toolset*."""
    registry = CapabilityRegistry()
    page_tools.register(registry, ctx, agent)
    context_tools.register(registry, ctx, agent)
    diagnosis_tools.register(registry, ctx)
    artifact_tools.register(registry, ctx, target=artifact_target)
    collaborator_tools.register(registry, ctx, agent)
    delegation_tools.register(registry, ctx)
    return registry.subset(resolve_toolset(toolset))


__all__ = ["build_registry"]
