"""Read-only storage backends for OpenCode session data.

Two interchangeable backends answer the same queries:

- FilesBackend reads the legacy directory-of-JSON layout under
  <data>/opencode/storage (session/, message/, part/)
- SqliteBackend reads <data>/opencode/opencode.db

Every query returns a ReadResult. Storage that is unavailable produces a
failed result with a classified reason instead of raising, so callers can
fall back to the other backend. Records that fail validation are dropped.
"""

import json
import os
import sqlite3
from collections.abc import Callable, Mapping, Sequence
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..config import REQUIRED_SQLITE_TABLES
from ..logging_config import get_logger
from ..results import ReadResult, read_failed, read_ok
from ..types import SessionMetadata, StoredMessageMeta, StoredToolPart, TodoItem
from ..utils import as_finite_number, as_string, read_json_file
from .paths import (
    AccessDeniedError,
    assert_allowed_path,
    get_data_dir,
    get_opencode_sqlite_path,
    get_opencode_storage_dir_from_data_dir,
    realpath_safe,
)
from .records import is_plain_id, parse_message_meta, parse_session_meta, parse_tool_part, tool_part_start

logger = get_logger(__name__, 'storage')


# ============================================================================
# Shared helpers
# ============================================================================

def _normalize_directory(directory: str) -> str:
    abs_path = os.path.abspath(directory)
    return os.path.normpath(realpath_safe(abs_path) or abs_path)


def _matches_directory(meta: SessionMetadata, needle: str | None) -> bool:
    return needle is None or _normalize_directory(meta['directory']) == needle


def _directory_needle(directory_filter: str | None) -> str | None:
    if not directory_filter:
        return None
    return _normalize_directory(directory_filter)


def sort_sessions(metas: list[SessionMetadata]) -> list[SessionMetadata]:
    """Order sessions by time.updated descending, then id descending."""
    return sorted(metas, key=lambda m: (m['time']['updated'], m['id']), reverse=True)


def sort_messages(messages: list[StoredMessageMeta]) -> list[StoredMessageMeta]:
    """Order messages by time.created descending, then id descending."""
    return sorted(messages, key=lambda m: (m['time']['created'], m['id']), reverse=True)


def sort_tool_parts(parts: list[StoredToolPart]) -> list[StoredToolPart]:
    """Order tool parts by message id, start time, then part id (all ascending)."""
    return sorted(parts, key=lambda p: (p['messageID'], tool_part_start(p) or 0, p['id']))


# ============================================================================
# Files backend
# ============================================================================

@dataclass(frozen=True)
class FilesBackend:
    """Directory-of-JSON storage rooted at storage_root."""
    storage_root: str
    data_dir: str | None = None
    kind: str = field(default='files', init=False)

    @property
    def session_dir(self) -> str:
        return os.path.join(self.storage_root, 'session')

    @property
    def message_dir(self) -> str:
        return os.path.join(self.storage_root, 'message')

    @property
    def part_dir(self) -> str:
        return os.path.join(self.storage_root, 'part')

    def _guard(self, path: str) -> str:
        return assert_allowed_path(path, [self.storage_root])

    def _list_json(self, directory: str) -> list[str]:
        try:
            return sorted(f for f in os.listdir(directory) if f.endswith('.json'))
        except OSError:
            return []

    def _read_json(self, directory: str, filename: str) -> Any:
        return read_json_file(self._guard(os.path.join(directory, filename)))

    def _guarded_dir(self, path: str) -> str | None:
        """Guarded real path of a directory, or None if absent or outside the root."""
        try:
            real = self._guard(path)
        except AccessDeniedError:
            logger.debug("Ignoring id that resolves outside storage: %s", path)
            return None
        return real if os.path.isdir(real) else None

    def _find_message_dir(self, session_id: str) -> str | None:
        """Locate message/<session_id>, also checking one nested level."""
        if not is_plain_id(session_id):
            return None
        direct = self._guarded_dir(os.path.join(self.message_dir, session_id))
        if direct:
            return direct

        try:
            entries = sorted(os.listdir(self.message_dir))
        except OSError:
            return None
        for entry in entries:
            nested = self._guarded_dir(os.path.join(self.message_dir, entry, session_id))
            if nested:
                return nested
        return None

    def list_all_sessions(self) -> ReadResult[SessionMetadata]:
        if not os.path.isdir(self.storage_root):
            return read_failed('storage_missing')

        session_dir = self._guard(self.session_dir)
        if not os.path.isdir(session_dir):
            return read_ok([])

        metas: list[SessionMetadata] = []
        for project in sorted(os.listdir(session_dir)):
            project_path = self._guard(os.path.join(session_dir, project))
            if not os.path.isdir(project_path):
                continue
            for filename in self._list_json(project_path):
                meta = parse_session_meta(self._read_json(project_path, filename))
                if meta is None:
                    logger.debug("Dropping malformed session record %s/%s", project, filename)
                    continue
                metas.append(meta)

        return read_ok(sort_sessions(metas))

    def list_main_sessions(self, directory_filter: str | None = None) -> ReadResult[SessionMetadata]:
        result = self.list_all_sessions()
        if not result.ok:
            return result
        needle = _directory_needle(directory_filter)
        return read_ok([
            m for m in result.rows
            if 'parentID' not in m and _matches_directory(m, needle)
        ])

    def session_exists(self, session_id: str) -> ReadResult[dict]:
        if not os.path.isdir(self.storage_root):
            return read_failed('storage_missing')
        message_dir = self._find_message_dir(session_id)
        if message_dir is None or not self._list_json(message_dir):
            return read_ok([])
        return read_ok([{'sessionId': session_id}])

    def recent_messages(self, session_id: str, limit: int) -> ReadResult[StoredMessageMeta]:
        if not os.path.isdir(self.storage_root):
            return read_failed('storage_missing')

        message_dir = self._find_message_dir(session_id)
        if message_dir is None:
            return read_ok([])

        messages: list[StoredMessageMeta] = []
        for filename in self._list_json(message_dir):
            rec = self._read_json(message_dir, filename)
            if isinstance(rec, dict):
                rec = {**rec, 'sessionID': session_id}
            meta = parse_message_meta(rec, fallback_id=Path(filename).stem)
            if meta is None:
                logger.debug("Dropping malformed message record %s", filename)
                continue
            messages.append(meta)

        return read_ok(sort_messages(messages)[:max(0, limit)])

    def tool_parts_for_messages(self, message_ids: Sequence[str]) -> ReadResult[StoredToolPart]:
        if not os.path.isdir(self.storage_root):
            return read_failed('storage_missing')

        parts: list[StoredToolPart] = []
        for message_id in dict.fromkeys(message_ids):
            if not is_plain_id(message_id):
                continue
            part_dir = self._guarded_dir(os.path.join(self.part_dir, message_id))
            if part_dir is None:
                continue
            for filename in self._list_json(part_dir):
                rec = self._read_json(part_dir, filename)
                if isinstance(rec, dict):
                    rec = {**rec, 'messageID': message_id}
                part = parse_tool_part(rec, fallback_id=Path(filename).stem)
                if part is not None:
                    parts.append(part)

        return read_ok(sort_tool_parts(parts))


# ============================================================================
# SQLite backend
# ============================================================================

def classify_sqlite_error(exc: BaseException) -> str:
    """Map a SQLite error message to a failure reason."""
    message = str(exc).lower()
    if 'database is locked' in message or 'busy' in message:
        return 'db_busy'
    if 'malformed' in message or 'not a database' in message or 'corrupt' in message:
        return 'db_corrupt'
    if 'unable to open database file' in message or 'cannot open' in message:
        return 'db_unopenable'
    return 'db_query_failed'


def _connect_readonly(sqlite_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(f"file:{sqlite_path}?mode=ro", uri=True, timeout=1.0)
    conn.row_factory = sqlite3.Row
    return conn


def _session_from_row(row: Mapping[str, Any]) -> SessionMetadata | None:
    return parse_session_meta({
        'id': row['id'],
        'projectID': row['project_id'],
        'directory': row['directory'],
        'title': row['title'],
        'parentID': row['parent_id'],
        'time': {'created': row['time_created'], 'updated': row['time_updated']},
    })


def _load_data(value: Any) -> dict | None:
    data = as_string(value)
    if not data:
        return None
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


_SESSION_COLUMNS = "id, project_id, parent_id, directory, title, time_created, time_updated"


@dataclass(frozen=True)
class SqliteBackend:
    """OpenCode SQLite database, opened read-only once per query."""
    sqlite_path: str
    data_dir: str | None = None
    kind: str = field(default='sqlite', init=False)

    def _run(self, fn: Callable[[sqlite3.Connection], list]) -> ReadResult:
        try:
            with closing(_connect_readonly(self.sqlite_path)) as conn:
                return read_ok(fn(conn))
        except sqlite3.Error as e:
            reason = classify_sqlite_error(e)
            logger.warning("SQLite read failed (%s): %s", reason, e)
            return read_failed(reason)

    def _select_sessions(self, sql: str) -> ReadResult[SessionMetadata]:
        result = self._run(lambda conn: conn.execute(sql).fetchall())
        if not result.ok:
            return result
        metas = [m for m in (_session_from_row(row) for row in result.rows) if m is not None]
        return read_ok(sort_sessions(metas))

    def list_all_sessions(self) -> ReadResult[SessionMetadata]:
        return self._select_sessions(
            f"SELECT {_SESSION_COLUMNS} FROM session ORDER BY time_updated DESC, id DESC"
        )

    def list_main_sessions(self, directory_filter: str | None = None) -> ReadResult[SessionMetadata]:
        result = self._select_sessions(
            f"SELECT {_SESSION_COLUMNS} FROM session WHERE parent_id IS NULL "
            "ORDER BY time_updated DESC, id DESC"
        )
        if not result.ok:
            return result
        needle = _directory_needle(directory_filter)
        return read_ok([m for m in result.rows if _matches_directory(m, needle)])

    def session_exists(self, session_id: str) -> ReadResult[dict]:
        result = self._run(lambda conn: conn.execute(
            "SELECT session_id FROM message WHERE session_id = ? LIMIT 1", (session_id,)
        ).fetchall())
        if not result.ok:
            return result
        found = [as_string(row['session_id']) for row in result.rows]
        return read_ok([{'sessionId': sid} for sid in found if sid])

    def recent_messages(self, session_id: str, limit: int) -> ReadResult[StoredMessageMeta]:
        result = self._run(lambda conn: conn.execute(
            "SELECT id, session_id, time_created, data FROM message "
            "WHERE session_id = ? ORDER BY time_created DESC, id DESC LIMIT ?",
            (session_id, max(0, limit)),
        ).fetchall())
        if not result.ok:
            return result

        messages: list[StoredMessageMeta] = []
        for row in result.rows:
            message_id = as_string(row['id'])
            row_session_id = as_string(row['session_id'])
            rec = _load_data(row['data'])
            if not message_id or not row_session_id or rec is None:
                continue
            meta = parse_message_meta(
                {**rec, 'id': message_id, 'sessionID': row_session_id},
                fallback_created=row['time_created'],
            )
            if meta is not None:
                messages.append(meta)

        return read_ok(sort_messages(messages))

    def tool_parts_for_messages(self, message_ids: Sequence[str]) -> ReadResult[StoredToolPart]:
        ids = list(dict.fromkeys(message_ids))
        if not ids:
            return read_ok([])

        placeholders = ",".join("?" for _ in ids)
        result = self._run(lambda conn: conn.execute(
            "SELECT id, message_id, session_id, time_created, data FROM part "
            f"WHERE message_id IN ({placeholders}) "
            "ORDER BY message_id ASC, time_created ASC, id ASC",
            ids,
        ).fetchall())
        if not result.ok:
            return result

        parts: list[StoredToolPart] = []
        for row in result.rows:
            part_id = as_string(row['id'])
            message_id = as_string(row['message_id'])
            session_id = as_string(row['session_id'])
            rec = _load_data(row['data'])
            if not part_id or not message_id or not session_id or rec is None:
                continue
            part = parse_tool_part({**rec, 'id': part_id, 'messageID': message_id, 'sessionID': session_id})
            if part is not None:
                parts.append(part)

        # rows arrive in (message_id, time_created, id) order already
        return read_ok(parts)

    def read_todos(self, session_id: str) -> ReadResult[TodoItem]:
        """Todo items of a session ordered by position; empty when the table is absent."""
        def query(conn: sqlite3.Connection) -> list:
            try:
                return conn.execute(
                    "SELECT content, status, priority, position FROM todo "
                    "WHERE session_id = ? ORDER BY position ASC",
                    (session_id,),
                ).fetchall()
            except sqlite3.OperationalError as e:
                if 'no such table' in str(e).lower():
                    return []
                raise

        result = self._run(query)
        if not result.ok:
            return result

        todos: list[TodoItem] = []
        for row in result.rows:
            content = as_string(row['content'])
            status = as_string(row['status'])
            priority = as_string(row['priority'])
            position = as_finite_number(row['position'])
            if not content or not status or not priority or position is None:
                continue
            todos.append({'content': content, 'status': status, 'priority': priority, 'position': position})
        return read_ok(todos)


StorageBackend = FilesBackend | SqliteBackend


# ============================================================================
# Backend selection
# ============================================================================

def is_sqlite_usable(sqlite_path: str) -> bool:
    """True if the database opens read-only and has the session/message/part tables."""
    if not os.path.isfile(sqlite_path):
        return False
    try:
        with closing(_connect_readonly(sqlite_path)) as conn:
            rows = conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name IN (?, ?, ?)",
                REQUIRED_SQLITE_TABLES,
            ).fetchall()
    except sqlite3.Error as e:
        logger.info("SQLite database at %s is not usable: %s", sqlite_path, e)
        return False
    names = {row['name'] for row in rows}
    return all(table in names for table in REQUIRED_SQLITE_TABLES)


def select_storage_backend(
    env: Mapping[str, str] | None = None,
    homedir: str | None = None,
    data_dir: str | None = None,
) -> StorageBackend:
    """Choose the SQLite backend when usable, otherwise the files backend."""
    data_dir = data_dir if data_dir is not None else get_data_dir(env, homedir)
    sqlite_path = get_opencode_sqlite_path(data_dir)
    if is_sqlite_usable(sqlite_path):
        logger.info("Using SQLite storage at %s", sqlite_path)
        return SqliteBackend(sqlite_path=sqlite_path, data_dir=data_dir)

    storage_root = get_opencode_storage_dir_from_data_dir(data_dir)
    logger.info("Using file storage at %s", storage_root)
    return FilesBackend(storage_root=storage_root, data_dir=data_dir)


def files_backend_for(backend: StorageBackend) -> FilesBackend:
    """Files backend sharing the data directory of backend."""
    if isinstance(backend, FilesBackend):
        return backend
    data_dir = backend.data_dir or os.path.dirname(os.path.dirname(backend.sqlite_path))
    return FilesBackend(storage_root=get_opencode_storage_dir_from_data_dir(data_dir), data_dir=data_dir)
