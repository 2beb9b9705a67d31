"""Token usage totals grouped by provider/model."""

from collections.abc import Iterable, Sequence

from ..config import TOKEN_USAGE_MESSAGE_LIMIT
from ..results import DeriveResult, derive_failed, derive_ok
from ..types import StoredMessageMeta, TokenUsage, TokenUsageRow, TokenUsageTotals

COUNTERS = ('inputTokens', 'outputTokens', 'reasoningTokens', 'cacheReadTokens', 'cacheWriteTokens')


def _zero_totals() -> TokenUsageTotals:
    return {
        'inputTokens': 0,
        'outputTokens': 0,
        'reasoningTokens': 0,
        'cacheReadTokens': 0,
        'cacheWriteTokens': 0,
        'totalTokens': 0,
    }


def aggregate_token_usage(messages: Iterable[StoredMessageMeta]) -> TokenUsage:
    """Sum assistant token counters per 'provider/model'.

    Messages without both providerID and modelID, or without tokens, are
    skipped. Rows are ordered by total descending, then model name.
    """
    groups: dict[str, TokenUsageRow] = {}
    for meta in messages:
        if meta.get('role') != 'assistant':
            continue
        provider_id = meta.get('providerID')
        model_id = meta.get('modelID')
        tokens = meta.get('tokens')
        if not provider_id or not model_id or not tokens:
            continue

        model = f"{provider_id}/{model_id}"
        row = groups.get(model)
        if row is None:
            row = groups[model] = {'model': model, **_zero_totals()}
        row['inputTokens'] += tokens['input']
        row['outputTokens'] += tokens['output']
        row['reasoningTokens'] += tokens['reasoning']
        row['cacheReadTokens'] += tokens['cache']['read']
        row['cacheWriteTokens'] += tokens['cache']['write']

    totals = _zero_totals()
    for row in groups.values():
        row['totalTokens'] = sum(row[key] for key in COUNTERS)
        for key in (*COUNTERS, 'totalTokens'):
            totals[key] += row[key]

    rows = sorted(groups.values(), key=lambda r: r['model'])
    rows.sort(key=lambda r: r['totalTokens'], reverse=True)
    return {'totals': totals, 'rows': rows}


def derive_token_usage(
    backend,
    main_session_id: str | None,
    background_session_ids: Sequence[str | None] | None = None,
) -> DeriveResult[TokenUsage]:
    """Aggregate token usage over the main session and named background sessions.

    Session ids are trimmed and de-duplicated; each session contributes at
    most its 10000 most recent messages.
    """
    session_ids: list[str] = []
    for value in [main_session_id, *(background_session_ids or [])]:
        if not isinstance(value, str):
            continue
        session_id = value.strip()
        if session_id and session_id not in session_ids:
            session_ids.append(session_id)

    messages: list[StoredMessageMeta] = []
    for session_id in session_ids:
        result = backend.recent_messages(session_id, TOKEN_USAGE_MESSAGE_LIMIT)
        if not result.ok:
            return derive_failed(result.reason)
        messages.extend(result.rows)

    return derive_ok(aggregate_token_usage(messages))
