"""Shared constants for the media coordinator.

Import-safe module with no dependencies -- can be imported from anywhere
without risk of circular imports.
"""

ARK_BASE_URL = "https://ark.cn-beijing.volces.com/api/v3"
ARK_DEFAULT_MODEL = "doubao-1-5-pro-32k-250115"

DEFAULT_MAX_STEPS = 100
SUBAGENT_MAX_STEPS = 8
MIN_ARTIFACT_CODE_CHARS = 50

# Flags that exempt an audit entry from pruning and compaction loss.
DEFAULT_KEEP_FLAGS = ("CRITICAL", "DECISION", "KEEP", "ERROR")
# Process-only flags (never protected).
CROP_LOG_FLAG = "CROP_LOG"
COMPRESS_LOG_FLAG = "COMPRESS_LOG"
FINAL_FLAG = "FINAL"

WORKING_LOG_HEADER = "# Agents Prompt Log"
RAW_LOG_HEADER = "# Agents Raw Log (Full, Uncropped)"

COORDINATOR_AGENT = "coordinator(LLM)"
STATIC_PARSER_AGENT = "static_parser(LLM)"
NETWORK_CAPTURE_AGENT = "network_capture(LLM)"
