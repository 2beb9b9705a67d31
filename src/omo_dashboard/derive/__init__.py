"""Derivations over storage reads.

This package contains modules for:
- Loading a session's messages with their tool parts (activity.py)
- Active session resolution and the main session view (session.py)
- Background task correlation (background.py)
- Tool-call activity histogram (timeseries.py)
- Token usage aggregation (token_usage.py)
- Redacted tool-call listing (tool_calls.py)

Every derivation takes a storage backend and returns a DeriveResult.
"""

from .activity import (
    SessionActivity,
    SessionActivityCache,
    load_session_activity,
)

from .session import (
    empty_main_session_view,
    get_main_session_view,
    pick_active_session_id,
    pick_latest_model,
)

from .background import (
    derive_background_tasks,
    expected_titles,
    find_child_session_id,
)

from .timeseries import (
    SERIES,
    canonicalize_agent,
    derive_time_series_activity,
)

from .token_usage import (
    aggregate_token_usage,
    derive_token_usage,
)

from .tool_calls import derive_tool_calls

__all__ = [
    # Session activity
    'SessionActivity',
    'SessionActivityCache',
    'load_session_activity',
    # Main session
    'empty_main_session_view',
    'get_main_session_view',
    'pick_active_session_id',
    'pick_latest_model',
    # Background tasks
    'derive_background_tasks',
    'expected_titles',
    'find_child_session_id',
    # Time series
    'SERIES',
    'canonicalize_agent',
    'derive_time_series_activity',
    # Token usage
    'aggregate_token_usage',
    'derive_token_usage',
    # Tool calls
    'derive_tool_calls',
]
