"""Dashboard snapshot: every derivation merged into one payload.

The selected backend is tried first. When a SQLite derivation fails
(busy, corrupt, unopenable) the whole snapshot is rebuilt from the legacy
file storage of the same data directory; when that fails too, the empty
"no active session" state is rendered instead of an error.
"""

from datetime import datetime, timezone

from .derive import (
    aggregate_token_usage,
    derive_background_tasks,
    derive_time_series_activity,
    derive_token_usage,
    derive_tool_calls,
    empty_main_session_view,
    get_main_session_view,
    pick_active_session_id,
)
from .ingest import SqliteBackend, files_backend_for, read_boulder_state, read_plan_progress
from .logging_config import get_logger
from .results import DeriveResult, derive_failed, derive_ok
from .types import MainSessionView, PlanProgress, ToolCallSummary
from .utils import current_time_ms, format_elapsed

logger = get_logger(__name__, 'derive')

NO_PLAN_NAME = "(no active plan)"


# ============================================================================
# Display helpers
# ============================================================================

def format_last_updated(ts_ms: float | None) -> str:
    """ISO 8601 UTC with milliseconds, or 'never'."""
    if not ts_ms:
        return "never"
    try:
        dt = datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return "never"
    return dt.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def main_status_pill(status: str) -> str:
    if status == 'running_tool':
        return "running tool"
    if status in ('thinking', 'busy', 'idle'):
        return status
    return "unknown"


def plan_status_pill(progress: PlanProgress) -> str:
    if progress['missing']:
        return "not started"
    return "complete" if progress['isComplete'] else "in progress"


def _main_session_block(view: MainSessionView, session_updated: float | None, now: int) -> dict:
    pill = main_status_pill(view['status'])
    if pill == "unknown" and session_updated is not None:
        pill = f"unknown ({format_elapsed(now - session_updated)})"
    return {
        'sessionId': view['sessionId'],
        'agent': view['agent'],
        'currentTool': view['currentTool'] or "-",
        'currentModel': view['currentModel'],
        'lastUpdatedLabel': format_last_updated(view['lastUpdated']),
        'session': view['sessionLabel'],
        'statusPill': pill,
    }


def _background_task_block(row: dict) -> dict:
    return {
        'id': row['id'],
        'description': row['description'],
        'agent': row['agent'],
        'status': row['status'],
        'toolCalls': row['toolCalls'] or 0,
        'lastTool': row['lastTool'] or "-",
        'lastModel': row['lastModel'],
        'timeline': row['timeline'],
        'sessionId': row['sessionId'],
    }


# ============================================================================
# Derivation
# ============================================================================

def _derive_views(backend, project_root: str, boulder_session_ids: list[str], now: int) -> DeriveResult[dict]:
    """Run every derivation against one backend, stopping at the first failure."""
    picked = pick_active_session_id(backend, project_root, boulder_session_ids)
    if not picked.ok:
        return picked
    session_id = picked.value

    session_meta = None
    main = empty_main_session_view()
    tasks = []
    todos = []
    if session_id:
        sessions = backend.list_all_sessions()
        if not sessions.ok:
            return derive_failed(sessions.reason)
        session_meta = next((m for m in sessions.rows if m['id'] == session_id), None)

        view = get_main_session_view(backend, session_id, session_meta=session_meta, now_ms=now)
        if not view.ok:
            return view
        main = view.value

        background = derive_background_tasks(backend, session_id, now_ms=now)
        if not background.ok:
            return background
        tasks = background.value

        if isinstance(backend, SqliteBackend):
            todo_rows = backend.read_todos(session_id)
            if not todo_rows.ok:
                return derive_failed(todo_rows.reason)
            todos = todo_rows.rows

    series = derive_time_series_activity(backend, session_id, now_ms=now)
    if not series.ok:
        return series

    usage = derive_token_usage(backend, session_id, [t['sessionId'] for t in tasks])
    if not usage.ok:
        return usage

    return derive_ok({
        'main': main,
        'sessionMeta': session_meta,
        'tasks': tasks,
        'todos': todos,
        'timeSeries': series.value,
        'tokenUsage': usage.value,
    })


def _empty_views(now: int) -> dict:
    series = derive_time_series_activity(None, None, now_ms=now)
    return {
        'main': empty_main_session_view(),
        'sessionMeta': None,
        'tasks': [],
        'todos': [],
        'timeSeries': series.value,
        'tokenUsage': aggregate_token_usage([]),
    }


def with_files_fallback(backend, derive):
    """Call derive(backend); retry against the files backend if a SQLite read failed."""
    result = derive(backend)
    if result.ok or not isinstance(backend, SqliteBackend):
        return result

    logger.warning("SQLite derivation failed (%s), falling back to file storage", result.reason)
    return derive(files_backend_for(backend))


def build_dashboard_payload(project_root: str, backend, now_ms: int | None = None) -> dict:
    """Build the full dashboard snapshot for project_root.

    Raises:
        AccessDeniedError: If a boulder, plan or storage path escapes its root
    """
    now = now_ms if now_ms is not None else current_time_ms()

    boulder = read_boulder_state(project_root)
    if boulder:
        plan = read_plan_progress(project_root, boulder['active_plan'])
        plan_name = boulder['plan_name'] or NO_PLAN_NAME
        plan_path = boulder['active_plan']
        boulder_session_ids = boulder['session_ids']
    else:
        plan = {'total': 0, 'completed': 0, 'isComplete': False, 'missing': True, 'steps': []}
        plan_name = NO_PLAN_NAME
        plan_path = ""
        boulder_session_ids = []

    result = with_files_fallback(
        backend,
        lambda b: _derive_views(b, project_root, boulder_session_ids, now),
    )
    if result.ok:
        views = result.value
    else:
        logger.warning("Storage unavailable (%s), rendering empty dashboard", result.reason)
        views = _empty_views(now)

    session_meta = views['sessionMeta']
    session_updated = session_meta['time']['updated'] if session_meta else None

    payload = {
        'mainSession': _main_session_block(views['main'], session_updated, now),
        'planProgress': {
            'name': plan_name,
            'completed': plan['completed'],
            'total': plan['total'],
            'path': plan_path,
            'statusPill': plan_status_pill(plan),
            'steps': plan['steps'],
        },
        'backgroundTasks': [_background_task_block(t) for t in views['tasks']],
        'todos': views['todos'],
        'timeSeries': views['timeSeries'],
        'tokenUsage': views['tokenUsage'],
    }
    payload['raw'] = {key: payload[key] for key in (
        'mainSession', 'planProgress', 'backgroundTasks', 'timeSeries', 'tokenUsage',
    )}
    return payload


def derive_tool_calls_with_fallback(backend, session_id: str) -> DeriveResult[ToolCallSummary]:
    """derive_tool_calls with the SQLite to file storage fallback."""
    return with_files_fallback(backend, lambda b: derive_tool_calls(b, session_id))
