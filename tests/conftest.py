"""Shared fixtures: OpenCode storage written as both JSON files and SQLite."""

import json
import os
import sqlite3
from contextlib import closing
from pathlib import Path

import pytest

from src.omo_dashboard.ingest import FilesBackend, SqliteBackend

SQLITE_SCHEMA = """
CREATE TABLE session (
    id TEXT PRIMARY KEY,
    project_id TEXT,
    parent_id TEXT,
    directory TEXT,
    title TEXT,
    time_created INTEGER,
    time_updated INTEGER
);
CREATE TABLE message (
    id TEXT PRIMARY KEY,
    session_id TEXT,
    time_created INTEGER,
    data TEXT
);
CREATE TABLE part (
    id TEXT PRIMARY KEY,
    message_id TEXT,
    session_id TEXT,
    time_created INTEGER,
    data TEXT
);
"""

SENSITIVE_KEYS = {'prompt', 'input', 'output', 'error', 'state'}


def find_sensitive_keys(value) -> list[str]:
    """Recursively collect keys named prompt/input/output/error/state."""
    found = []
    if isinstance(value, dict):
        for key, child in value.items():
            if key in SENSITIVE_KEYS:
                found.append(key)
            found.extend(find_sensitive_keys(child))
    elif isinstance(value, list):
        for item in value:
            found.extend(find_sensitive_keys(item))
    return found


def _write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding='utf-8')


class OpenCodeStore:
    """Writes the same records to a file storage tree and a SQLite database."""

    def __init__(self, data_dir: Path, project_root: Path):
        self.data_dir = data_dir
        self.project_root = project_root
        self.storage_root = data_dir / 'opencode' / 'storage'
        self.sqlite_path = data_dir / 'opencode' / 'opencode.db'
        self.sessions: list[dict] = []
        self.messages: list[dict] = []
        self.parts: list[dict] = []
        self.todos: list[tuple] = []
        for sub in ('session', 'message', 'part'):
            (self.storage_root / sub).mkdir(parents=True, exist_ok=True)

    def add_session(self, session_id, directory=None, title=None, parent_id=None,
                    created=1000, updated=None, project_id='proj_1'):
        rec = {
            'id': session_id,
            'projectID': project_id,
            'directory': str(directory if directory is not None else self.project_root),
            'time': {'created': created, 'updated': updated if updated is not None else created},
        }
        if title is not None:
            rec['title'] = title
        if parent_id is not None:
            rec['parentID'] = parent_id
        _write_json(self.storage_root / 'session' / project_id / f'{session_id}.json', rec)
        self.sessions.append(rec)
        return rec

    def add_message(self, message_id, session_id, role='assistant', created=1000, completed=None,
                    agent=None, provider_id=None, model_id=None, tokens=None, **extra):
        rec = {'id': message_id, 'sessionID': session_id, 'role': role, 'time': {'created': created}}
        if completed is not None:
            rec['time']['completed'] = completed
        if agent is not None:
            rec['agent'] = agent
        if provider_id is not None:
            rec['providerID'] = provider_id
        if model_id is not None:
            rec['modelID'] = model_id
        if tokens is not None:
            rec['tokens'] = tokens
        rec.update(extra)
        _write_json(self.storage_root / 'message' / session_id / f'{message_id}.json', rec)
        self.messages.append(rec)
        return rec

    def add_tool_part(self, part_id, message_id, session_id, tool, call_id=None, status='completed',
                      tool_input=None, start=None, end=None, **state_extra):
        state = {'status': status, 'input': tool_input if tool_input is not None else {}}
        if start is not None or end is not None:
            state['time'] = {}
            if start is not None:
                state['time']['start'] = start
            if end is not None:
                state['time']['end'] = end
        state.update(state_extra)
        rec = {
            'id': part_id,
            'sessionID': session_id,
            'messageID': message_id,
            'type': 'tool',
            'callID': call_id or f'call_{part_id}',
            'tool': tool,
            'state': state,
        }
        _write_json(self.storage_root / 'part' / message_id / f'{part_id}.json', rec)
        self.parts.append(rec)
        return rec

    def add_todo(self, session_id, content, status='pending', priority='medium', position=0):
        self.todos.append((session_id, content, status, priority, position))

    def files(self) -> FilesBackend:
        return FilesBackend(storage_root=str(self.storage_root), data_dir=str(self.data_dir))

    def sqlite(self, with_todos: bool = False) -> SqliteBackend:
        """(Re)build the SQLite database from every record added so far."""
        if self.sqlite_path.exists():
            os.remove(self.sqlite_path)
        with closing(sqlite3.connect(self.sqlite_path)) as conn:
            conn.executescript(SQLITE_SCHEMA)
            if with_todos or self.todos:
                conn.execute(
                    "CREATE TABLE todo (session_id TEXT, content TEXT, status TEXT, "
                    "priority TEXT, position INTEGER)"
                )
                conn.executemany("INSERT INTO todo VALUES (?, ?, ?, ?, ?)", self.todos)
            conn.executemany(
                "INSERT INTO session VALUES (?, ?, ?, ?, ?, ?, ?)",
                [(s['id'], s['projectID'], s.get('parentID'), s['directory'], s.get('title'),
                  s['time']['created'], s['time']['updated']) for s in self.sessions],
            )
            conn.executemany(
                "INSERT INTO message VALUES (?, ?, ?, ?)",
                [(m['id'], m['sessionID'], m['time']['created'], json.dumps(m)) for m in self.messages],
            )
            conn.executemany(
                "INSERT INTO part VALUES (?, ?, ?, ?, ?)",
                [(p['id'], p['messageID'], p['sessionID'], p['state'].get('time', {}).get('start', 0),
                  json.dumps(p)) for p in self.parts],
            )
            conn.commit()
        return SqliteBackend(sqlite_path=str(self.sqlite_path), data_dir=str(self.data_dir))

    def backend(self, kind: str):
        return self.sqlite() if kind == 'sqlite' else self.files()


@pytest.fixture
def project_root(tmp_path):
    """Empty project directory."""
    root = tmp_path / 'project'
    root.mkdir()
    return root


@pytest.fixture
def store(tmp_path, project_root):
    """OpenCode storage under a temporary XDG data directory."""
    return OpenCodeStore(tmp_path / 'data', project_root)


@pytest.fixture(params=['files', 'sqlite'])
def backend_kind(request):
    """Run a test once per storage backend."""
    return request.param


@pytest.fixture
def sensitive_keys():
    """Function returning every sensitive key found in a derived value."""
    return find_sensitive_keys
