"""Loading a session's recent messages together with their tool parts."""

from dataclasses import dataclass, field

from ..results import DeriveResult, derive_failed, derive_ok
from ..types import StoredMessageMeta, StoredToolPart


@dataclass
class SessionActivity:
    """Recent messages of one session (newest first) and their tool parts."""
    messages: list[StoredMessageMeta]
    parts_by_message: dict[str, list[StoredToolPart]] = field(default_factory=dict)

    def parts_for(self, message_id: str) -> list[StoredToolPart]:
        return self.parts_by_message.get(message_id, [])


def group_parts_by_message(parts: list[StoredToolPart]) -> dict[str, list[StoredToolPart]]:
    grouped: dict[str, list[StoredToolPart]] = {}
    for part in parts:
        grouped.setdefault(part['messageID'], []).append(part)
    return grouped


def load_session_activity(backend, session_id: str, limit: int) -> DeriveResult[SessionActivity]:
    """Read up to limit recent messages of a session and the tool parts attached to them."""
    messages = backend.recent_messages(session_id, limit)
    if not messages.ok:
        return derive_failed(messages.reason)

    parts = backend.tool_parts_for_messages([m['id'] for m in messages.rows])
    if not parts.ok:
        return derive_failed(parts.reason)

    return derive_ok(SessionActivity(messages.rows, group_parts_by_message(parts.rows)))


class SessionActivityCache:
    """Memoizes load_session_activity for the duration of one derivation call.

    Create a new cache per top-level call; it is never shared between calls.
    """

    def __init__(self, backend, limit: int):
        self._backend = backend
        self._limit = limit
        self._loaded: dict[str, DeriveResult[SessionActivity]] = {}

    def get(self, session_id: str) -> DeriveResult[SessionActivity]:
        if session_id not in self._loaded:
            self._loaded[session_id] = load_session_activity(self._backend, session_id, self._limit)
        return self._loaded[session_id]
