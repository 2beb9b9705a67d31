"""Background task rows reconstructed from delegation tool calls.

Each delegate_task/task call in the main session is correlated to the child
session it spawned. Session titles have changed format over time, so the
match is best-effort: exact titles first, then a title prefix, then any
child created inside the time window.
"""

from collections.abc import Sequence
from typing import Any

from ..config import (
    AGENT_MAX,
    BACKGROUND_TASK_LIMIT,
    CORRELATION_LOOKAHEAD_MS,
    CORRELATION_LOOKBEHIND_MS,
    DESCRIPTION_MAX,
    FRESHNESS_WINDOW_MS,
    RECENT_MESSAGE_LIMIT,
    TASK_TOOL_NAMES,
)
from ..ingest.records import tool_part_start
from ..logging_config import get_logger
from ..results import DeriveResult, derive_failed, derive_ok
from ..types import BackgroundTaskRow, SessionMetadata
from ..utils import clamp_string, current_time_ms, format_timeline
from .activity import SessionActivity, SessionActivityCache
from .session import pick_latest_model

logger = get_logger(__name__, 'derive')


def _trimmed(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def expected_titles(description: str, subagent_type: str | None, title_order: str = 'background') -> list[str]:
    """Exact child-session titles a delegation may produce.

    title_order 'background' prefers "Background: ..." and 'task' prefers
    "Task: ...".
    """
    first, last = f"Background: {description}", f"Task: {description}"
    if title_order == 'task':
        first, last = last, first
    titles = [first]
    if subagent_type:
        titles.append(f"{description} (@{subagent_type} subagent)")
    titles.append(last)
    return titles


def _title_prefix_match(meta: SessionMetadata, description: str, subagent_type: str | None) -> bool:
    title = meta.get('title') or ""
    if not title.startswith(description):
        return False
    return not subagent_type or f"@{subagent_type}" in title


def find_child_session_id(
    all_sessions: Sequence[SessionMetadata],
    parent_session_id: str,
    description: str,
    subagent_type: str | None,
    started_at: float,
    title_order: str = 'background',
) -> str | None:
    """Correlate a delegation call to a child session of parent_session_id.

    Candidates are children created in [started_at - 10s, started_at + 15m].
    Ties are broken by closeness to started_at, then newer creation time,
    then the lexicographically larger id.
    """
    window_start = started_at - CORRELATION_LOOKBEHIND_MS
    window_end = started_at + CORRELATION_LOOKAHEAD_MS

    candidates = [
        m for m in all_sessions
        if m.get('parentID') == parent_session_id
        and window_start <= m['time']['created'] <= window_end
    ]
    if not candidates:
        return None

    titles = expected_titles(description, subagent_type, title_order)
    exact = [m for m in candidates if m.get('title') in titles]
    pool = exact or [m for m in candidates if _title_prefix_match(m, description, subagent_type)] or candidates

    pool = sorted(pool, key=lambda m: m['id'], reverse=True)
    pool.sort(key=lambda m: (abs(m['time']['created'] - started_at), -m['time']['created']))
    return pool[0]['id']


def _session_stats(activity: SessionActivity) -> tuple[int, str | None, float | None]:
    """(tool call count, last tool name, last message time) scanning oldest first."""
    tool_calls = 0
    last_tool = None
    last_update_at = None
    for meta in sorted(activity.messages, key=lambda m: (m['time']['created'], m['id'])):
        last_update_at = meta['time']['created']
        for part in activity.parts_for(meta['id']):
            tool_calls += 1
            last_tool = part['tool']
    return tool_calls, last_tool, last_update_at


def derive_background_tasks(
    backend,
    main_session_id: str,
    now_ms: int | None = None,
) -> DeriveResult[list[BackgroundTaskRow]]:
    """Build background task rows for the delegation calls of a main session.

    Main-session messages are scanned newest first and the output stops at
    50 rows, so older tasks drop off once newer ones fill the list.

    Returns:
        DeriveResult with the rows, or the first storage failure encountered
    """
    now = now_ms if now_ms is not None else current_time_ms()
    cache = SessionActivityCache(backend, RECENT_MESSAGE_LIMIT)

    main = cache.get(main_session_id)
    if not main.ok:
        return main

    all_sessions = backend.list_all_sessions()
    if not all_sessions.ok:
        return derive_failed(all_sessions.reason)
    sessions = all_sessions.rows

    rows: list[BackgroundTaskRow] = []
    for meta in main.value.messages:
        for part in main.value.parts_for(meta['id']):
            if part['tool'] not in TASK_TOOL_NAMES:
                continue
            tool_input: dict[str, Any] = part['state']['input']
            run_in_background = tool_input.get('run_in_background')
            if not isinstance(run_in_background, bool):
                continue

            raw_description = _trimmed(tool_input.get('description'))
            if not raw_description:
                continue
            description = raw_description[:DESCRIPTION_MAX]
            subagent_type = clamp_string(tool_input.get('subagent_type'), AGENT_MAX)
            category = clamp_string(tool_input.get('category'), AGENT_MAX)
            if subagent_type:
                agent = subagent_type
            elif category:
                agent = f"sisyphus-junior ({category})"
            else:
                agent = "unknown"

            started_at = tool_part_start(part)
            if started_at is None:
                started_at = meta['time']['created']

            child_id = None
            if not run_in_background:
                resume = _trimmed(tool_input.get('resume'))
                if resume:
                    resumed = cache.get(resume)
                    if not resumed.ok:
                        return resumed
                    if resumed.value.messages:
                        child_id = resume

            if child_id is None:
                child_id = find_child_session_id(
                    sessions, main_session_id, raw_description, subagent_type, started_at,
                )
            if child_id is None and not run_in_background:
                child_id = find_child_session_id(
                    sessions, main_session_id, raw_description, subagent_type, started_at,
                    title_order='task',
                )

            tool_calls = None
            last_tool = None
            last_model = None
            last_update_at = None
            if child_id is not None:
                child = cache.get(child_id)
                if not child.ok:
                    return child
                tool_calls, last_tool, last_update_at = _session_stats(child.value)
                last_model = pick_latest_model(child.value.messages)

            if child_id is None:
                status = 'queued'
            elif last_update_at is not None and now - last_update_at <= FRESHNESS_WINDOW_MS:
                status = 'running'
            elif tool_calls:
                status = 'completed'
            else:
                status = 'unknown'

            if status == 'unknown':
                timeline = ""
            else:
                end = last_update_at if status == 'completed' else now
                timeline = format_timeline(started_at, end)

            rows.append({
                'id': part['callID'],
                'description': description,
                'agent': agent,
                'status': status,
                'toolCalls': tool_calls,
                'lastTool': last_tool,
                'lastModel': last_model,
                'timeline': timeline,
                'sessionId': child_id,
            })
            if len(rows) >= BACKGROUND_TASK_LIMIT:
                return derive_ok(rows)

    logger.debug("Derived %d background tasks for %s", len(rows), main_session_id)
    return derive_ok(rows)
