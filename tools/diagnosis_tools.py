"""
Diagnosis tools: classify an error log and propose a fix.

Dependencies: none (stdlib only)
"""

from agent.diagnosis import classify_error, detect_input_limit, propose_fix

DIAGNOSER_AGENT = "error_diagnoser"


def register(registry, ctx):

    def handle_diagnose(args):
        error_type = classify_error(str(args.get("logs") or ""))
        fix = propose_fix(error_type)
        ctx.store.append(DIAGNOSER_AGENT, "diagnose", f"Diagnosis: {error_type}", payload=fix)
        return {"type": error_type, "fix": fix}

    def handle_detect_input_limit(args):
        out = detect_input_limit(str(args.get("error") or ""))
        text = "Input limit exceeded" if out["isInputLimit"] else "Not an input limit error"
        ctx.store.append(DIAGNOSER_AGENT, "detect_input_limit", text, payload=out)
        return out

    registry.register(
        name="diagnose_error",
        description="Classify an error log (input_limit, network_403, drm_protected, ...) and propose a fix.",
        parameters={"logs": "string"},
        handler=handle_diagnose,
    )
    registry.register(
        name="detect_input_limit",
        description="Check whether an error message means the model input was too long.",
        parameters={"error": "string"},
        handler=handle_detect_input_limit,
    )
