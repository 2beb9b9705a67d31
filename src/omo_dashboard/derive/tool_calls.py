"""Redacted per-call listing of the tool calls in one session."""

from ..config import MAX_TOOL_CALL_MESSAGES, MAX_TOOL_CALLS
from ..results import DeriveResult, derive_failed, derive_ok
from ..types import ToolCallRow, ToolCallSummary
from .activity import load_session_activity


def derive_tool_calls(backend, session_id: str) -> DeriveResult[ToolCallSummary]:
    """List tool calls of a session, newest first.

    Rows carry only sessionId, messageId, callId, tool, status and
    createdAtMs. At most 200 messages and 300 calls are returned; truncated
    is set when either cap was hit. With no messages, sessionExists comes
    from the backend's session lookup.
    """
    loaded = load_session_activity(backend, session_id, MAX_TOOL_CALL_MESSAGES)
    if not loaded.ok:
        return loaded
    activity = loaded.value

    if not activity.messages:
        exists = backend.session_exists(session_id)
        if not exists.ok:
            return derive_failed(exists.reason)
        return derive_ok({'toolCalls': [], 'truncated': False, 'sessionExists': bool(exists.rows)})

    calls: list[ToolCallRow] = []
    for meta in activity.messages:
        created = meta['time']['created']
        for part in activity.parts_for(meta['id']):
            calls.append({
                'sessionId': session_id,
                'messageId': meta['id'],
                'callId': part['callID'],
                'tool': part['tool'],
                'status': part['state']['status'],
                'createdAtMs': created,
            })

    truncated = len(activity.messages) >= MAX_TOOL_CALL_MESSAGES or len(calls) > MAX_TOOL_CALLS
    calls.sort(key=lambda c: (c['messageId'], c['callId']))
    calls.sort(key=lambda c: c['createdAtMs'], reverse=True)

    summary: ToolCallSummary = {
        'toolCalls': calls[:MAX_TOOL_CALLS],
        'truncated': truncated,
        'sessionExists': True,
    }
    return derive_ok(summary)
