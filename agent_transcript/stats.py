"""Per-agent and per-session statistics over an event stream."""

import math
from typing import Optional

from .delegations import build_delegation_groups
from .models import (
    AgentEvent,
    AgentStats,
    CalculatedStats,
    DelegationGroup,
    DelegationStats,
    Event,
    SessionLimits,
    SessionStats,
    SystemEvent,
    TimingMode,
    ToolCallEvent,
    ToolResultEvent,
    Turn,
    UserEvent,
    PRIMARY_AGENT,
)
from .timer import ActiveTimeResult, compute_active_time, compute_turn_durations
from .turns import build_turns


def _agent_sort_key(stats: AgentStats) -> tuple[int, str]:
    return (0 if stats.agentId == PRIMARY_AGENT else 1, stats.agentId)


def _apply_agent_fields(stats: AgentStats, event: AgentEvent) -> None:
    # Latest value wins; a later smaller context size overwrites a larger one
    if event.contextTokens is not None:
        stats.currentContextTokens = event.contextTokens
    if event.contextLimit is not None:
        stats.maxContextTokens = event.contextLimit
    if event.metrics is not None:
        stats.steps = event.metrics.steps
        stats.turns = event.metrics.turns
    if event.usage is not None:
        stats.inputTokens += event.usage.input_tokens
        stats.outputTokens += event.usage.output_tokens
    if event.costUsd is not None:
        stats.costUsd += event.costUsd


def _active_time(
    events: list[Event],
    timing_mode: TimingMode,
    turns: Optional[list[Turn]],
    last_timestamp: int,
    now: Optional[int],
) -> ActiveTimeResult:
    if timing_mode == TimingMode.LEGACY:
        return compute_active_time(events, now=now)
    if turns is None:
        turns = build_turns(events, build_delegation_groups(events))
    return compute_turn_durations(turns, last_timestamp, now=now)


def calculate_stats(
    events: list[Event],
    session_limits: Optional[SessionLimits] = None,
    timing_mode: TimingMode = TimingMode.TURNS,
    turns: Optional[list[Turn]] = None,
    now: Optional[int] = None,
) -> CalculatedStats:
    """Aggregate counters per agent and for the whole session.

    Session cost is the last `cumulativeCostUsd` seen anywhere in the stream,
    falling back to the sum of per-event `costUsd` when none was reported. Per
    agent cost is always the plain sum, so the two can disagree.

    Args:
        events: Full ordered event history
        session_limits: Passed through to SessionStats.limits
        timing_mode: How activeTimeMs / totalElapsedMs are derived
        turns: Prebuilt turns for TURNS mode; built from events when omitted
        now: Reference time (ms) for still-running work

    Returns:
        CalculatedStats with agents ordered "primary" first, then by id
    """
    buckets: dict[str, AgentStats] = {}
    total_cost = 0.0
    total_messages = 0
    total_tool_calls = 0
    total_input_tokens = 0
    total_output_tokens = 0
    latest_cumulative_cost: Optional[float] = None
    start_timestamp: Optional[int] = None
    last_timestamp = 0

    for event in events:
        if isinstance(event, SystemEvent):
            continue
        if start_timestamp is None:
            start_timestamp = event.timestamp
        last_timestamp = max(last_timestamp, event.timestamp)

        agent_id = event.agent_id
        stats = buckets.get(agent_id)
        if stats is None:
            stats = buckets[agent_id] = AgentStats(agentId=agent_id)

        if isinstance(event, (UserEvent, AgentEvent)):
            if event.isMessage:
                stats.messageCount += 1
                total_messages += 1
        elif isinstance(event, ToolCallEvent):
            stats.toolCallCount += 1
            total_tool_calls += 1
            kind = event.tool_kind
            stats.toolBreakdown[kind] = stats.toolBreakdown.get(kind, 0) + 1
        elif isinstance(event, ToolResultEvent):
            stats.toolResultCount += 1

        if isinstance(event, AgentEvent):
            _apply_agent_fields(stats, event)
            if event.costUsd is not None:
                total_cost += event.costUsd
            if event.usage is not None:
                total_input_tokens += event.usage.input_tokens
                total_output_tokens += event.usage.output_tokens
            if event.cumulativeCostUsd is not None:
                latest_cumulative_cost = event.cumulativeCostUsd

    per_agent = sorted(buckets.values(), key=_agent_sort_key)

    active = _active_time(events, timing_mode, turns, last_timestamp, now)
    for stats in per_agent:
        stats.activeTimeMs = active.agent_elapsed_ms.get(stats.agentId, 0)

    # Session step/turn counters come from the primary agent, else the first seen
    reference_agent = buckets.get(PRIMARY_AGENT) or next(iter(buckets.values()), None)

    session = SessionStats(
        totalCostUsd=(
            latest_cumulative_cost if latest_cumulative_cost is not None else total_cost
        ),
        totalMessages=total_messages,
        totalToolCalls=total_tool_calls,
        totalInputTokens=total_input_tokens,
        totalOutputTokens=total_output_tokens,
        startTimestamp=start_timestamp,
        totalSteps=reference_agent.steps if reference_agent else 0,
        totalTurns=reference_agent.turns if reference_agent else 0,
        limits=session_limits,
        totalElapsedMs=active.global_elapsed_ms,
        timingMode=timing_mode,
    )
    return CalculatedStats(session=session, perAgent=per_agent)


def context_percent(tokens: int, limit: Optional[int]) -> Optional[int]:
    """Context usage as a whole percentage, clamped to 0..100.

    Returns None when no positive limit is known.
    """
    if not limit or limit <= 0:
        return None
    # Halves round up
    return max(0, min(100, math.floor(tokens / limit * 100 + 0.5)))


def calculate_delegation_stats(group: DelegationGroup) -> DelegationStats:
    """Counters for the events claimed by one delegation group."""
    stats = DelegationStats()
    for event in group.events:
        if isinstance(event, ToolCallEvent):
            stats.toolCallCount += 1
        elif isinstance(event, AgentEvent):
            if event.isMessage:
                stats.messageCount += 1
            if event.contextTokens is not None:
                stats.contextTokens = event.contextTokens
            if event.contextLimit is not None:
                stats.contextLimit = event.contextLimit
            if event.costUsd is not None:
                stats.costUsd += event.costUsd
            if event.usage is not None:
                stats.inputTokens += event.usage.input_tokens
                stats.outputTokens += event.usage.output_tokens
            if event.metrics is not None:
                stats.steps = event.metrics.steps
                stats.turns = event.metrics.turns

    stats.contextPercent = context_percent(stats.contextTokens, stats.contextLimit)
    return stats
