"""Configuration module for the OpenCode session dashboard.

Centralizes all configuration constants and environment variables
so the derivation engine has no scattered magic numbers.
"""

import os

# ============================================================================
# Path Configuration
# ============================================================================

# Boulder state file, relative to a project root
BOULDER_RELATIVE_PATH = os.path.join(".sisyphus", "boulder.json")

# Tables an OpenCode SQLite database must expose to be usable
REQUIRED_SQLITE_TABLES = ("session", "message", "part")


# ============================================================================
# Session Status Thresholds
# ============================================================================

# A session (or background session) whose newest message is at most this old
# counts as busy / running
FRESHNESS_WINDOW_MS = 15_000

# How many recent messages are scanned for status and background tasks
RECENT_MESSAGE_LIMIT = 200


# ============================================================================
# Background Task Correlation
# ============================================================================

# Tool names that delegate work to a sub-agent session
TASK_TOOL_NAMES = frozenset({"delegate_task", "task"})

# Maximum rows returned by derive_background_tasks
BACKGROUND_TASK_LIMIT = 50

DESCRIPTION_MAX = 120
AGENT_MAX = 30

# Child sessions may be created slightly before the tool call is recorded,
# and may sit queued for a long time afterwards
CORRELATION_LOOKBEHIND_MS = 10_000
CORRELATION_LOOKAHEAD_MS = 15 * 60_000


# ============================================================================
# Aggregation Limits
# ============================================================================

# Messages read per session for token usage
TOKEN_USAGE_MESSAGE_LIMIT = 10_000

# Tool call listing caps
MAX_TOOL_CALL_MESSAGES = 200
MAX_TOOL_CALLS = 300

# Activity histogram defaults
TIMESERIES_WINDOW_MS = 300_000
TIMESERIES_BUCKET_MS = 2_000

# Direct child sessions folded into the background series
TIMESERIES_CHILD_SESSION_LIMIT = 25


# ============================================================================
# Server Configuration
# ============================================================================

DEFAULT_HOST = os.getenv("OMO_DASHBOARD_HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("OMO_DASHBOARD_PORT", "51234"))

# Session ids accepted by the tool-call endpoint
SESSION_ID_PATTERN = r"^[A-Za-z0-9_-]{1,128}$"
