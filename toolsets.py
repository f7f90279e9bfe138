#!/usr/bin/env python3
"""
Toolsets Module

Groups capabilities per agent role.  A toolset lists its own tools and may
include other toolsets; ``resolve_toolset`` flattens the includes.
"""

from typing import List, Dict, Any, Set, Optional


TOOLSETS = {
    "page": {
        "description": "Page source fetching and manifest link scanning",
        "tools": ["fetch_page_html", "static_extract_html_candidates"],
        "includes": []
    },
    "preprocess": {
        "description": "Shrink oversized page HTML before it reaches a prompt",
        "tools": ["call_html_preprocessor"],
        "includes": []
    },
    "report": {
        "description": "Write notes into the shared log and read recent debug output",
        "tools": ["record_message", "read_debug_recent"],
        "includes": []
    },
    "context": {
        "description": "Inspect, measure and plan crops of the working log",
        "tools": ["read_md_messages", "measure_md_file", "estimate_tokens", "crop_history"],
        "includes": ["report"]
    },
    "diagnosis": {
        "description": "Error classification and input-limit detection",
        "tools": ["diagnose_error", "detect_input_limit"],
        "includes": []
    },
    "code_write": {
        "description": "Submit complete algorithm code",
        "tools": ["code_maintainer_agent_write"],
        "includes": []
    },
    "code": {
        "description": "Algorithm code maintenance and finalization",
        "tools": ["code_maintainer_agent_finalize", "code_maintainer_agent_list_algorithms",
                  "code_maintainer_agent_read_algorithm"],
        "includes": ["code_write"]
    },
    "delegation": {
        "description": "Nested sub-agent sessions",
        "tools": ["call_static_parser_agent", "call_network_capture_agent"],
        "includes": []
    },
    "collaborators": {
        "description": "External collaborators: network capture and human acceptance",
        "tools": ["capture_network", "human_acceptance_flow"],
        "includes": []
    },

    # Role toolsets
    "coordinator": {
        "description": "Top-level coordinator: every capability",
        "tools": [],
        "includes": ["page", "preprocess", "context", "diagnosis", "code", "delegation", "collaborators"]
    },
    "static_parser": {
        "description": "Static parser sub-agent",
        "tools": [],
        "includes": ["page", "code_write", "report"]
    },
    "network_capture": {
        "description": "Network capture sub-agent",
        "tools": ["capture_network"],
        "includes": ["preprocess", "code_write", "report"]
    },
}


def get_toolset(name: str) -> Optional[Dict[str, Any]]:
    return TOOLSETS.get(name)


def resolve_toolset(name: str, visited: Set[str] = None) -> List[str]:
    if visited is None:
        visited = set()
    if name in visited:
        raise ValueError(f"Circular dependency detected in toolset '{name}'")
    visited.add(name)
    toolset = TOOLSETS.get(name)
    if not toolset:
        return []
    tools = set(toolset.get("tools", []))
    for included_name in toolset.get("includes", []):
        tools.update(resolve_toolset(included_name, visited.copy()))
    return sorted(tools)


def get_toolset_info(name: str) -> Dict[str, Any]:
    toolset = get_toolset(name)
    if not toolset:
        return None
    resolved_tools = resolve_toolset(name)
    return {
        "name": name,
        "description": toolset["description"],
        "direct_tools": toolset["tools"],
        "includes": toolset["includes"],
        "resolved_tools": resolved_tools,
        "tool_count": len(resolved_tools),
        "is_composite": len(toolset["includes"]) > 0
    }


if __name__ == "__main__":
    print("Toolsets")
    print("=" * 60)
    for name, toolset in TOOLSETS.items():
        info = get_toolset_info(name)
        composite = "[composite]" if info["is_composite"] else "[leaf]"
        print(f"  {composite} {name:16} - {toolset['description']} ({info['tool_count']} tools)")
