"""Pydantic models for agent session events and the state reconstructed from them.

Events are the flat, append-only input stream. Everything else in this module
(delegation groups, turns, statistics, interleaved blocks) is derived from that
stream by the reconstruction modules and never mutates it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .parser import parse_timestamp

UNKNOWN_AGENT = "unknown"
PRIMARY_AGENT = "primary"
UNKNOWN_TOOL = "unknown"
DELEGATE_TOOL_KIND = "delegate"


class EventType(str, Enum):
    """Event variant tag.

    Using str as base class keeps plain string comparisons working.
    """

    SYSTEM = "system"
    USER = "user"
    AGENT = "agent"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"


class LifecycleKind(str, Enum):
    """Closed set of bookkeeping markers an agent event can represent.

    Produced at the ingestion boundary; the reconstruction code only ever
    compares against these values.
    """

    LLM_REQUEST_END = "llm_request_end"
    DELEGATION_REQUESTED = "delegation_requested"
    DELEGATION_COMPLETED = "delegation_completed"
    DELEGATION_FAILED = "delegation_failed"
    SESSION_FORKED = "session_forked"
    PROVIDER_CHANGED = "provider_changed"
    COMPACTION_START = "compaction_start"
    COMPACTION_END = "compaction_end"
    STREAM_DELTA = "stream_delta"
    OTHER = "other"


DelegationEventType = Literal["requested", "completed", "failed"]

_DELEGATION_EVENT_TYPES: dict[LifecycleKind, DelegationEventType] = {
    LifecycleKind.DELEGATION_REQUESTED: "requested",
    LifecycleKind.DELEGATION_COMPLETED: "completed",
    LifecycleKind.DELEGATION_FAILED: "failed",
}


class DelegationStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TimingMode(str, Enum):
    """How elapsed/active time is derived.

    TURNS sums Turn start/end spans. LEGACY replays the per-agent working/idle
    state machine over lifecycle markers.
    """

    TURNS = "turns"
    LEGACY = "legacy"


# =============================================================================
# Event Payload Models
# =============================================================================


class ToolCallInfo(BaseModel):
    """Tool invocation details shared by tool_call and tool_result events."""

    model_config = {"frozen": True}

    tool_call_id: Optional[str] = None
    kind: Optional[str] = None
    status: Optional[Literal["in_progress", "completed", "failed"]] = None
    raw_input: Any = None
    raw_output: Any = None
    description: Optional[str] = None


class UsageInfo(BaseModel):
    """Token usage reported at the end of a provider request."""

    model_config = {"frozen": True}

    input_tokens: int = 0
    output_tokens: int = 0


class MetricsInfo(BaseModel):
    """Running step/turn counters reported by the agent runtime."""

    model_config = {"frozen": True}

    steps: int = 0
    turns: int = 0


class SessionLimits(BaseModel):
    """Configured session limits, passed through into SessionStats."""

    max_steps: Optional[int] = None
    max_turns: Optional[int] = None
    max_cost_usd: Optional[float] = None


# =============================================================================
# Event Variants
# =============================================================================


class BaseEvent(BaseModel):
    model_config = {"frozen": True, "extra": "ignore"}

    id: str
    agentId: Optional[str] = None
    sessionId: Optional[str] = None
    timestamp: int
    content: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # Runtime sequence numbers arrive as ints
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Any:
        if isinstance(value, str):
            parsed = parse_timestamp(value)
            if parsed is None:
                raise ValueError(f"Unparseable timestamp: {value}")
            return parsed
        if isinstance(value, float):
            return int(value)
        return value

    @property
    def agent_id(self) -> str:
        """Agent id with the "unknown" default applied."""
        return self.agentId or UNKNOWN_AGENT


class SystemEvent(BaseEvent):
    """Runtime notices and errors. Carries no statistical weight."""

    type: Literal["system"] = "system"


class UserEvent(BaseEvent):
    type: Literal["user"] = "user"
    isMessage: bool = False
    messageId: Optional[str] = None


class AgentEvent(BaseEvent):
    """Agent output: chat messages and lifecycle bookkeeping markers."""

    type: Literal["agent"] = "agent"
    isMessage: bool = False
    messageId: Optional[str] = None
    thinking: Optional[str] = None
    lifecycle: Optional[LifecycleKind] = None
    streamMessageId: Optional[str] = None
    # llm_request_end
    finishReason: Optional[str] = None
    usage: Optional[UsageInfo] = None
    costUsd: Optional[float] = None
    cumulativeCostUsd: Optional[float] = None
    contextTokens: Optional[int] = None
    metrics: Optional[MetricsInfo] = None
    # delegation_*
    delegationId: Optional[str] = None
    delegationTargetAgentId: Optional[str] = None
    delegationObjective: Optional[str] = None
    # session_forked
    forkChildSessionId: Optional[str] = None
    forkDelegationId: Optional[str] = None
    # provider_changed
    provider: Optional[str] = None
    model: Optional[str] = None
    configId: Optional[int] = None
    contextLimit: Optional[int] = None
    # compaction_*
    compactionTokenEstimate: Optional[int] = None
    compactionSummary: Optional[str] = None
    compactionSummaryLen: Optional[int] = None

    @property
    def delegationEventType(self) -> Optional[DelegationEventType]:
        if self.lifecycle is None:
            return None
        return _DELEGATION_EVENT_TYPES.get(self.lifecycle)

    @property
    def is_stop(self) -> bool:
        """True for a request-ended marker whose finish reason is "stop"."""
        return (
            self.lifecycle == LifecycleKind.LLM_REQUEST_END
            and (self.finishReason or "").lower() == "stop"
        )


class ToolCallEvent(BaseEvent):
    type: Literal["tool_call"] = "tool_call"
    toolCall: ToolCallInfo = ToolCallInfo()

    @property
    def call_key(self) -> str:
        """Correlation key: the tool call id, or the event id when absent."""
        return self.toolCall.tool_call_id or self.id

    @property
    def tool_kind(self) -> str:
        return self.toolCall.kind or UNKNOWN_TOOL

    @property
    def is_delegate(self) -> bool:
        return self.toolCall.kind == DELEGATE_TOOL_KIND


class ToolResultEvent(BaseEvent):
    type: Literal["tool_result"] = "tool_result"
    toolCall: ToolCallInfo = ToolCallInfo()

    @property
    def failed(self) -> bool:
        return self.toolCall.status == "failed"


Event = Annotated[
    Union[SystemEvent, UserEvent, AgentEvent, ToolCallEvent, ToolResultEvent],
    Field(discriminator="type"),
]


# =============================================================================
# Reconstructed State
# =============================================================================


class DelegationGroup(BaseModel):
    """One sub-agent delegation, from its delegate tool call to completion."""

    id: str
    delegateToolCallId: str
    delegateEvent: ToolCallEvent
    delegationId: Optional[str] = None
    agentId: Optional[str] = None
    targetAgentId: Optional[str] = None
    events: list[Event] = []
    status: DelegationStatus = DelegationStatus.IN_PROGRESS
    startTime: int
    endTime: Optional[int] = None
    objective: Optional[str] = None
    childSessionId: Optional[str] = None
    result: Optional[ToolResultEvent] = None


class CompactionMarker(BaseModel):
    """Point where the conversation context was summarized."""

    id: str
    timestamp: int
    tokenEstimate: int = 0
    summary: str = ""
    summaryLen: int = 0


class Turn(BaseModel):
    """One user prompt plus the responding agent's full activity arc."""

    id: str
    userMessage: Optional[UserEvent] = None
    agentMessages: list[AgentEvent] = []
    toolCalls: list[ToolCallEvent] = []
    toolResults: dict[str, ToolResultEvent] = {}
    delegations: list[DelegationGroup] = []
    agentId: Optional[str] = None
    startTime: int
    endTime: Optional[int] = None
    isActive: bool = True
    modelLabel: Optional[str] = None
    modelConfigId: Optional[int] = None
    compaction: Optional[CompactionMarker] = None


class ModelTimelineEntry(BaseModel):
    timestamp: int
    provider: str
    model: str
    configId: Optional[int] = None
    label: str  # "provider / model"


# =============================================================================
# Statistics
# =============================================================================


class AgentStats(BaseModel):
    agentId: str
    messageCount: int = 0
    toolCallCount: int = 0
    toolResultCount: int = 0
    toolBreakdown: dict[str, int] = {}
    costUsd: float = 0.0
    inputTokens: int = 0
    outputTokens: int = 0
    currentContextTokens: int = 0
    maxContextTokens: Optional[int] = None
    steps: int = 0
    turns: int = 0
    activeTimeMs: int = 0


class SessionStats(BaseModel):
    totalCostUsd: float = 0.0
    totalMessages: int = 0
    totalToolCalls: int = 0
    totalInputTokens: int = 0
    totalOutputTokens: int = 0
    startTimestamp: Optional[int] = None
    totalSteps: int = 0
    totalTurns: int = 0
    limits: Optional[SessionLimits] = None
    totalElapsedMs: int = 0
    timingMode: TimingMode = TimingMode.TURNS


class CalculatedStats(BaseModel):
    session: SessionStats
    perAgent: list[AgentStats] = []


class DelegationStats(BaseModel):
    """Stats computed from a single delegation group's events."""

    contextTokens: int = 0
    contextLimit: Optional[int] = None
    contextPercent: Optional[int] = None
    toolCallCount: int = 0
    messageCount: int = 0
    costUsd: float = 0.0
    inputTokens: int = 0
    outputTokens: int = 0
    steps: int = 0
    turns: int = 0


# =============================================================================
# Interleaved Blocks
# =============================================================================
# Render-ready sequence for one turn. Format-neutral: consumers decide how a
# message, an activity run, or a compaction divider is displayed.


@dataclass
class MessageBlock:
    event: AgentEvent
    block_type: Literal["message"] = "message"


@dataclass
class ActivityBlock:
    """Run of consecutive tool calls plus the delegations they anchor."""

    events: list[ToolCallEvent] = field(default_factory=lambda: [])
    delegations: list[DelegationGroup] = field(default_factory=lambda: [])
    block_type: Literal["activity"] = "activity"


@dataclass
class CompactionBlock:
    marker: CompactionMarker
    block_type: Literal["compaction"] = "compaction"


Block = Union[MessageBlock, ActivityBlock, CompactionBlock]


@dataclass
class InterleavedTurn:
    """Blocks for a turn, plus delegations whose anchor call was not rendered."""

    blocks: list[Block] = field(default_factory=lambda: [])
    unanchored: list[DelegationGroup] = field(default_factory=lambda: [])
