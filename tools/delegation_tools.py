"""
Delegation tools: the two capabilities that run a nested sub-agent session.

The parent loop blocks until the sub-agent session resolves.
"""

from agent.subagent import NETWORK_CAPTURE, STATIC_PARSER, run_subagent


def register(registry, ctx):

    def handle_static(args):
        return run_subagent(ctx, STATIC_PARSER, args)

    def handle_network(args):
        return run_subagent(ctx, NETWORK_CAPTURE, args)

    registry.register(
        name="call_static_parser_agent",
        description="Delegate static HTML parsing and static algorithm maintenance to a sub-agent.",
        parameters={"html": "string?"},
        handler=handle_static,
    )
    registry.register(
        name="call_network_capture_agent",
        description="Delegate network capture and dynamic algorithm maintenance to a sub-agent.",
        parameters={"url": "string?", "headers": "object?"},
        handler=handle_network,
    )
