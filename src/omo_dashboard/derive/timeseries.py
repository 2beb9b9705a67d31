"""Tool-call activity histogram for a main session and its children."""

from typing import Any

from ..config import (
    RECENT_MESSAGE_LIMIT,
    TIMESERIES_BUCKET_MS,
    TIMESERIES_CHILD_SESSION_LIMIT,
    TIMESERIES_WINDOW_MS,
)
from ..results import DeriveResult, derive_failed, derive_ok
from ..types import TimeSeriesPayload
from ..utils import current_time_ms
from .activity import SessionActivityCache

# (id, label, tone) in display order
SERIES = (
    ('overall-main', 'Overall', 'muted'),
    ('agent:sisyphus', 'Sisyphus', 'teal'),
    ('agent:prometheus', 'Prometheus', 'red'),
    ('agent:atlas', 'Atlas', 'green'),
    ('background-total', 'Background tasks (total)', 'muted'),
)

_AGENT_SERIES = {
    'sisyphus': 'agent:sisyphus',
    'prometheus': 'agent:prometheus',
    'atlas': 'agent:atlas',
}


def canonicalize_agent(label: Any) -> str:
    """Map a free-text agent label to sisyphus, prometheus, atlas or other."""
    if not isinstance(label, str):
        return 'other'
    lowered = label.strip().lower()
    # sisyphus-junior also starts with "sisyphus"
    for agent in ('sisyphus', 'prometheus', 'atlas'):
        if lowered.startswith(agent):
            return agent
    return 'other'


def derive_time_series_activity(
    backend,
    main_session_id: str | None,
    now_ms: int | None = None,
    window_ms: int = TIMESERIES_WINDOW_MS,
    bucket_ms: int = TIMESERIES_BUCKET_MS,
) -> DeriveResult[TimeSeriesPayload]:
    """Bucket tool-call counts over [anchor - window, anchor).

    The anchor is now rounded down to a bucket boundary. The main session
    counts toward the overall series and its agent's series. Up to 25 of
    its most recently updated children count toward the overall and
    background series.

    Example:
        Parts at 1000, 1001 and 2500 with bucket_ms=2000, window_ms=10000
        and now=10000 give values [2, 1, 0, 0, 0] in the overall series.
    """
    now = now_ms if now_ms is not None else current_time_ms()
    buckets = window_ms // bucket_ms
    anchor_ms = (now // bucket_ms) * bucket_ms
    start_ms = anchor_ms - window_ms

    values = {series_id: [0] * buckets for series_id, _, _ in SERIES}

    def add(series_id: str, index: int, count: int) -> None:
        if 0 <= index < buckets:
            values[series_id][index] += count

    cache = SessionActivityCache(backend, RECENT_MESSAGE_LIMIT)

    def bucket_session(session_id: str, per_agent: bool, background: bool) -> DeriveResult:
        loaded = cache.get(session_id)
        if not loaded.ok:
            return loaded
        activity = loaded.value
        ordered = sorted(activity.messages, key=lambda m: m['id'])
        ordered.sort(key=lambda m: m['time']['created'], reverse=True)

        for meta in ordered:
            created = meta['time']['created']
            if created < start_ms:
                break
            if created >= anchor_ms:
                continue
            count = len(activity.parts_for(meta['id']))
            if count <= 0:
                continue
            index = int((created - start_ms) // bucket_ms)
            add('overall-main', index, count)
            if background:
                add('background-total', index, count)
            if per_agent:
                series_id = _AGENT_SERIES.get(canonicalize_agent(meta.get('agent')))
                if series_id:
                    add(series_id, index, count)
        return derive_ok(None)

    if main_session_id:
        main = bucket_session(main_session_id, per_agent=True, background=False)
        if not main.ok:
            return main

        all_sessions = backend.list_all_sessions()
        if not all_sessions.ok:
            return derive_failed(all_sessions.reason)
        children = sorted(
            (m for m in all_sessions.rows if m.get('parentID') == main_session_id),
            key=lambda m: m['id'],
        )
        children.sort(key=lambda m: m['time']['updated'], reverse=True)

        for child in children[:TIMESERIES_CHILD_SESSION_LIMIT]:
            result = bucket_session(child['id'], per_agent=False, background=True)
            if not result.ok:
                return result

    payload: TimeSeriesPayload = {
        'windowMs': window_ms,
        'bucketMs': bucket_ms,
        'buckets': buckets,
        'anchorMs': anchor_ms,
        'serverNowMs': now,
        'series': [
            {'id': series_id, 'label': label, 'tone': tone, 'values': values[series_id]}
            for series_id, label, tone in SERIES
        ],
    }
    return derive_ok(payload)
