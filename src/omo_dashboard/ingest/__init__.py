"""Ingest modules: reading OpenCode session data from disk.

This package contains modules for:
- Data directory resolution and the path access guard (paths.py)
- Record shape validation (records.py)
- Files and SQLite storage backends (storage.py)
- Boulder state and plan progress (boulder.py)

Import functions from here for a clean API:
    from src.omo_dashboard.ingest import select_storage_backend, read_boulder_state
"""

# Path guard
from .paths import (
    AccessDeniedError,
    assert_allowed_path,
    get_data_dir,
    get_opencode_sqlite_path,
    get_opencode_storage_dir,
    get_opencode_storage_dir_from_data_dir,
)

# Record validation
from .records import (
    parse_message_meta,
    parse_session_meta,
    parse_tool_part,
)

# Storage backends
from .storage import (
    FilesBackend,
    SqliteBackend,
    StorageBackend,
    classify_sqlite_error,
    files_backend_for,
    is_sqlite_usable,
    select_storage_backend,
)

# Boulder state
from .boulder import (
    get_plan_progress_from_markdown,
    get_plan_steps_from_markdown,
    read_boulder_state,
    read_plan_progress,
)

__all__ = [
    # Path guard
    'AccessDeniedError',
    'assert_allowed_path',
    'get_data_dir',
    'get_opencode_sqlite_path',
    'get_opencode_storage_dir',
    'get_opencode_storage_dir_from_data_dir',
    # Record validation
    'parse_message_meta',
    'parse_session_meta',
    'parse_tool_part',
    # Storage backends
    'FilesBackend',
    'SqliteBackend',
    'StorageBackend',
    'classify_sqlite_error',
    'files_backend_for',
    'is_sqlite_usable',
    'select_storage_backend',
    # Boulder state
    'get_plan_progress_from_markdown',
    'get_plan_steps_from_markdown',
    'read_boulder_state',
    'read_plan_progress',
]
