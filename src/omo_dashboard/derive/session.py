"""Active session resolution and the main session status view."""

from collections.abc import Sequence

from ..config import FRESHNESS_WINDOW_MS, RECENT_MESSAGE_LIMIT
from ..logging_config import get_logger
from ..results import DeriveResult, derive_failed, derive_ok
from ..types import MainSessionView, SessionMetadata, StoredMessageMeta
from ..utils import current_time_ms
from .activity import load_session_activity

logger = get_logger(__name__, 'derive')

IN_FLIGHT_STATUSES = ('pending', 'running')


def pick_active_session_id(
    backend,
    project_root: str,
    boulder_session_ids: Sequence[str] | None = None,
) -> DeriveResult[str | None]:
    """Pick the session the dashboard should follow for project_root.

    Boulder session ids are tried from last to first and the first one that
    exists wins. Otherwise the most recently updated main session whose
    directory is project_root is used. The value is None if neither exists.
    """
    for session_id in reversed(list(boulder_session_ids or [])):
        exists = backend.session_exists(session_id)
        if not exists.ok:
            return derive_failed(exists.reason)
        if exists.rows:
            return derive_ok(session_id)

    metas = backend.list_main_sessions(directory_filter=project_root)
    if not metas.ok:
        return derive_failed(metas.reason)
    return derive_ok(metas.rows[0]['id'] if metas.rows else None)


def pick_latest_model(messages: Sequence[StoredMessageMeta]) -> str | None:
    """'provider/model' of the first message (newest first) naming both."""
    for meta in messages:
        provider_id = meta.get('providerID')
        model_id = meta.get('modelID')
        if provider_id and model_id:
            return f"{provider_id}/{model_id}"
    return None


def empty_main_session_view() -> MainSessionView:
    """View rendered when no active session exists."""
    return {
        'sessionId': None,
        'agent': 'unknown',
        'currentTool': None,
        'currentModel': None,
        'lastUpdated': None,
        'sessionLabel': '(no session)',
        'status': 'unknown',
    }


def get_main_session_view(
    backend,
    session_id: str,
    session_meta: SessionMetadata | None = None,
    now_ms: int | None = None,
) -> DeriveResult[MainSessionView]:
    """Derive the live status of a session.

    Precedence (first match wins):
    1. running_tool: any pending/running tool part in the recent window,
       even when a newer message exists
    2. thinking: the newest message is an assistant message not yet completed
    3. busy/idle: newest message created within the freshness window or not
    4. unknown: no messages
    """
    now = now_ms if now_ms is not None else current_time_ms()

    loaded = load_session_activity(backend, session_id, RECENT_MESSAGE_LIMIT)
    if not loaded.ok:
        return derive_failed(loaded.reason)
    activity = loaded.value
    messages = activity.messages

    newest = messages[0] if messages else None
    last_updated = newest['time']['created'] if newest else None

    current_tool = None
    for meta in messages:
        for part in reversed(activity.parts_for(meta['id'])):
            if part['state']['status'] in IN_FLIGHT_STATUSES:
                current_tool = part['tool']
                break
        if current_tool is not None:
            break

    if current_tool is not None:
        status = 'running_tool'
    elif newest is not None and newest['role'] == 'assistant' and 'completed' not in newest['time']:
        status = 'thinking'
    elif last_updated is not None:
        status = 'busy' if now - last_updated <= FRESHNESS_WINDOW_MS else 'idle'
    else:
        status = 'unknown'

    title = session_meta.get('title') if session_meta else None
    view: MainSessionView = {
        'sessionId': session_id,
        'agent': (newest.get('agent') if newest else None) or 'unknown',
        'currentTool': current_tool,
        'currentModel': pick_latest_model(messages),
        'lastUpdated': last_updated,
        'sessionLabel': title or session_id,
        'status': status,
    }
    logger.debug("Session %s status %s", session_id, status)
    return derive_ok(view)
