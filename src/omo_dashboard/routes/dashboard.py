"""Dashboard routes: health check, snapshot and per-session tool calls."""

import re

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import MAX_TOOL_CALL_MESSAGES, MAX_TOOL_CALLS, SESSION_ID_PATTERN
from ..logging_config import get_logger
from ..snapshot import build_dashboard_payload, derive_tool_calls_with_fallback

logger = get_logger(__name__, 'api')

router = APIRouter(prefix="/api", tags=["dashboard"])

_SESSION_ID_RE = re.compile(SESSION_ID_PATTERN)


class ToolCallItem(BaseModel):
    sessionId: str
    messageId: str
    callId: str
    tool: str
    status: str
    createdAtMs: float | None = None


class ToolCallCaps(BaseModel):
    maxMessages: int
    maxToolCalls: int


class ToolCallsResponse(BaseModel):
    ok: bool
    sessionId: str
    toolCalls: list[ToolCallItem]
    caps: ToolCallCaps
    truncated: bool


def _tool_calls_error(status_code: int, session_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "sessionId": session_id, "toolCalls": []},
    )


@router.get("/health")
def health():
    """Health check endpoint."""
    return {"ok": True}


@router.get("/dashboard")
def get_dashboard(request: Request):
    """Current dashboard snapshot for the configured project."""
    state = request.app.state
    return build_dashboard_payload(state.project_root, state.backend)


@router.get("/tool-calls/{session_id}", response_model=ToolCallsResponse)
def get_tool_calls(session_id: str, request: Request):
    """Redacted tool calls of one session, newest first.

    Returns 400 for a malformed session id, 404 for an unknown session and
    503 when no storage backend can be read.
    """
    if not _SESSION_ID_RE.match(session_id):
        return _tool_calls_error(400, session_id)

    result = derive_tool_calls_with_fallback(request.app.state.backend, session_id)
    if not result.ok:
        logger.warning("Tool calls for %s unavailable: %s", session_id, result.reason)
        return _tool_calls_error(503, session_id)

    summary = result.value
    if not summary['sessionExists']:
        return _tool_calls_error(404, session_id)

    return {
        "ok": True,
        "sessionId": session_id,
        "toolCalls": summary['toolCalls'],
        "caps": {"maxMessages": MAX_TOOL_CALL_MESSAGES, "maxToolCalls": MAX_TOOL_CALLS},
        "truncated": summary['truncated'],
    }
