"""Type definitions for the OpenCode session dashboard.

This module provides TypedDict definitions for the records read from
storage and the derived, ephemeral views built from them. Derived views
never carry tool inputs, outputs or errors.
"""

from typing import Literal, TypedDict
from typing_extensions import NotRequired


ToolStatus = Literal["pending", "running", "completed", "error"]
SessionStatus = Literal["idle", "busy", "thinking", "running_tool", "unknown"]
BackgroundStatus = Literal["queued", "running", "completed", "error", "unknown"]


# ============================================================================
# Stored records
# ============================================================================

class SessionTime(TypedDict):
    created: float
    updated: float


class SessionMetadata(TypedDict):
    """One conversation thread. parentID marks a delegated child session."""
    id: str
    projectID: str
    directory: str
    title: NotRequired[str]
    parentID: NotRequired[str]
    time: SessionTime


class MessageTime(TypedDict):
    created: float
    completed: NotRequired[float]


class CacheTokens(TypedDict):
    read: float
    write: float


class MessageTokens(TypedDict):
    input: float
    output: float
    reasoning: float
    cache: CacheTokens


class StoredMessageMeta(TypedDict):
    """One turn in a session. time.completed absent means still streaming."""
    id: str
    sessionID: str
    role: Literal["user", "assistant"]
    time: MessageTime
    agent: NotRequired[str]
    providerID: NotRequired[str]
    modelID: NotRequired[str]
    tokens: NotRequired[MessageTokens]


class ToolTime(TypedDict):
    start: NotRequired[float]
    end: NotRequired[float]


class ToolState(TypedDict):
    status: ToolStatus
    input: dict
    time: NotRequired[ToolTime]


class StoredToolPart(TypedDict):
    """One tool invocation. state.input is sensitive and never echoed."""
    id: str
    sessionID: str
    messageID: str
    type: Literal["tool"]
    callID: str
    tool: str
    state: ToolState


class TodoItem(TypedDict):
    content: str
    status: str
    priority: str
    position: float


# ============================================================================
# Boundary collaborator data
# ============================================================================

class BoulderState(TypedDict):
    active_plan: str
    started_at: str
    session_ids: list[str]
    plan_name: str


class PlanStep(TypedDict):
    checked: bool
    text: str


class PlanProgress(TypedDict):
    total: int
    completed: int
    isComplete: bool
    missing: bool
    steps: list[PlanStep]


# ============================================================================
# Derived views
# ============================================================================

class MainSessionView(TypedDict):
    sessionId: str | None
    agent: str
    currentTool: str | None
    currentModel: str | None
    lastUpdated: float | None
    sessionLabel: str
    status: SessionStatus


class BackgroundTaskRow(TypedDict):
    id: str
    description: str
    agent: str
    status: BackgroundStatus
    toolCalls: int | None
    lastTool: str | None
    lastModel: str | None
    timeline: str
    sessionId: str | None


class TimeSeriesSeries(TypedDict):
    id: str
    label: str
    tone: str
    values: list[int]


class TimeSeriesPayload(TypedDict):
    windowMs: int
    bucketMs: int
    buckets: int
    anchorMs: int
    serverNowMs: int
    series: list[TimeSeriesSeries]


class TokenUsageTotals(TypedDict):
    """Summed token counters. Keys never use the bare names input/output."""
    inputTokens: float
    outputTokens: float
    reasoningTokens: float
    cacheReadTokens: float
    cacheWriteTokens: float
    totalTokens: float


class TokenUsageRow(TokenUsageTotals):
    model: str


class TokenUsage(TypedDict):
    totals: TokenUsageTotals
    rows: list[TokenUsageRow]


class ToolCallRow(TypedDict):
    sessionId: str
    messageId: str
    callId: str
    tool: str
    status: ToolStatus
    createdAtMs: float | None


class ToolCallSummary(TypedDict):
    toolCalls: list[ToolCallRow]
    truncated: bool
    sessionExists: bool
