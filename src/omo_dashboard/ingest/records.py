"""Shape validation for records read from either storage backend.

Each parser takes one decoded JSON object and returns either a normalized
record or None. Rejected records are dropped by the caller; they are never
surfaced as errors. Only the fields listed on the record types are carried
over, so tool outputs and errors never leave this module.
"""

from typing import Any

from ..types import SessionMetadata, StoredMessageMeta, StoredToolPart
from ..utils import as_finite_number, as_string

ROLES = ("user", "assistant")
TOOL_STATUSES = ("pending", "running", "completed", "error")


def _as_dict(value: Any) -> dict | None:
    return value if isinstance(value, dict) else None


def _non_empty(value: Any) -> str | None:
    s = as_string(value)
    return s if s else None


def is_plain_id(value: Any) -> bool:
    """True for a non-empty id that names a single path component."""
    return (
        isinstance(value, str)
        and value not in ("", ".", "..")
        and "/" not in value
        and "\\" not in value
    )


def parse_session_meta(rec: Any) -> SessionMetadata | None:
    """Validate a session record (file JSON or a SQLite row mapped to the same keys)."""
    rec = _as_dict(rec)
    if rec is None:
        return None

    session_id = _non_empty(rec.get('id'))
    project_id = _non_empty(rec.get('projectID'))
    directory = _non_empty(rec.get('directory'))
    if not session_id or not project_id or not directory:
        return None

    time = _as_dict(rec.get('time')) or {}
    created = as_finite_number(time.get('created'))
    if created is None:
        created = 0
    updated = as_finite_number(time.get('updated'))
    if updated is None:
        updated = created

    meta: SessionMetadata = {
        'id': session_id,
        'projectID': project_id,
        'directory': directory,
        'time': {'created': created, 'updated': updated},
    }
    title = _non_empty(rec.get('title'))
    if title:
        meta['title'] = title
    parent_id = _non_empty(rec.get('parentID'))
    if parent_id:
        meta['parentID'] = parent_id
    return meta


def _parse_tokens(value: Any) -> dict | None:
    tokens = _as_dict(value)
    if tokens is None:
        return None
    cache = _as_dict(tokens.get('cache')) or {}

    def num(v: Any) -> float:
        n = as_finite_number(v)
        return n if n is not None else 0

    return {
        'input': num(tokens.get('input')),
        'output': num(tokens.get('output')),
        'reasoning': num(tokens.get('reasoning')),
        'cache': {'read': num(cache.get('read')), 'write': num(cache.get('write'))},
    }


def parse_message_meta(
    rec: Any,
    fallback_id: str | None = None,
    fallback_session_id: str | None = None,
    fallback_created: Any = None,
) -> StoredMessageMeta | None:
    """Validate a message record.

    Args:
        rec: Decoded message JSON
        fallback_id: Id to use when the record has none (file name or row id)
        fallback_session_id: Session id to use when the record has none
        fallback_created: Creation time to use when time.created is missing

    Returns:
        Normalized message, or None if role is not exactly 'user' or 'assistant'
        or no id/session id can be determined, or the id contains a path
        separator
    """
    rec = _as_dict(rec)
    if rec is None:
        return None

    role = rec.get('role')
    if role not in ROLES:
        return None

    message_id = _non_empty(rec.get('id')) or fallback_id
    session_id = _non_empty(rec.get('sessionID')) or fallback_session_id
    if not message_id or not session_id:
        return None
    # message ids name part/<id> directories
    if not is_plain_id(message_id):
        return None

    time = _as_dict(rec.get('time')) or {}
    created = as_finite_number(time.get('created'))
    if created is None:
        created = as_finite_number(fallback_created)
    if created is None:
        created = 0
    completed = as_finite_number(time.get('completed'))

    meta: StoredMessageMeta = {
        'id': message_id,
        'sessionID': session_id,
        'role': role,
        'time': {'created': created} if completed is None else {'created': created, 'completed': completed},
    }

    agent = _non_empty(rec.get('agent'))
    if agent:
        meta['agent'] = agent

    # Newer records nest provider/model under "model"
    model = _as_dict(rec.get('model')) or {}
    provider_id = _non_empty(rec.get('providerID')) or _non_empty(model.get('providerID'))
    model_id = _non_empty(rec.get('modelID')) or _non_empty(model.get('modelID'))
    if provider_id:
        meta['providerID'] = provider_id
    if model_id:
        meta['modelID'] = model_id

    tokens = _parse_tokens(rec.get('tokens'))
    if tokens is not None:
        meta['tokens'] = tokens
    return meta


def parse_tool_part(
    rec: Any,
    fallback_id: str | None = None,
    fallback_message_id: str | None = None,
    fallback_session_id: str | None = None,
) -> StoredToolPart | None:
    """Validate a tool part record.

    Accepted only if type is 'tool', callID and tool are non-empty strings,
    state.status is a known status and state.input is an object.
    """
    rec = _as_dict(rec)
    if rec is None or rec.get('type') != 'tool':
        return None

    call_id = _non_empty(rec.get('callID'))
    tool = _non_empty(rec.get('tool'))
    state = _as_dict(rec.get('state'))
    if not call_id or not tool or state is None:
        return None

    status = state.get('status')
    tool_input = state.get('input')
    if status not in TOOL_STATUSES or not isinstance(tool_input, dict):
        return None

    part_id = _non_empty(rec.get('id')) or fallback_id
    message_id = _non_empty(rec.get('messageID')) or fallback_message_id
    session_id = _non_empty(rec.get('sessionID')) or fallback_session_id or ""
    if not part_id or not message_id:
        return None

    parsed_state: dict = {'status': status, 'input': tool_input}

    time = _as_dict(state.get('time'))
    if time is not None:
        parsed_time = {}
        start = as_finite_number(time.get('start'))
        end = as_finite_number(time.get('end'))
        if start is not None:
            parsed_time['start'] = start
        if end is not None:
            parsed_time['end'] = end
        parsed_state['time'] = parsed_time

    return {
        'id': part_id,
        'sessionID': session_id,
        'messageID': message_id,
        'type': 'tool',
        'callID': call_id,
        'tool': tool,
        'state': parsed_state,
    }


def tool_part_start(part: StoredToolPart) -> float | None:
    """state.time.start of a tool part, if recorded."""
    return part['state'].get('time', {}).get('start')
