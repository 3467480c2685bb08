"""Partition a flat event stream into conversational turns.

A turn opens on each user chat message (or on the first agent activity of a
resumed session with no prompt) and collects the responding agent's messages
and tool calls until the next prompt. Activity of delegated sub-agents is not
collected directly; the turn references the delegation groups instead.
"""

from dataclasses import dataclass, field
from typing import Optional

from .delegations import claimed_event_ids
from .models import (
    AgentEvent,
    CompactionMarker,
    DelegationGroup,
    DelegationStatus,
    Event,
    LifecycleKind,
    ModelTimelineEntry,
    SystemEvent,
    ToolCallEvent,
    ToolResultEvent,
    Turn,
    UserEvent,
)

# -- Model Timeline -----------------------------------------------------------


def build_model_timeline(events: list[Event]) -> list[ModelTimelineEntry]:
    """Collect provider/model switches in stream order."""
    timeline: list[ModelTimelineEntry] = []
    for event in events:
        if isinstance(event, AgentEvent) and event.provider and event.model:
            timeline.append(
                ModelTimelineEntry(
                    timestamp=event.timestamp,
                    provider=event.provider,
                    model=event.model,
                    configId=event.configId,
                    label=f"{event.provider} / {event.model}",
                )
            )
    return timeline


def get_active_model_at(
    timeline: list[ModelTimelineEntry], timestamp: int
) -> Optional[ModelTimelineEntry]:
    """Most recent model switch at or before timestamp."""
    active: Optional[ModelTimelineEntry] = None
    for entry in timeline:
        if entry.timestamp > timestamp:
            break
        active = entry
    return active


def has_multiple_models(timeline: list[ModelTimelineEntry]) -> bool:
    return len({entry.label for entry in timeline}) > 1


# -- Turn Building ------------------------------------------------------------


@dataclass
class _TurnState:
    """Working state while walking the event stream.

    Attributes:
        turns: Turns opened so far, in order.
        pending_by_agent: Delegation ids requested by each agent and not yet
            completed or failed.
        compaction_estimate: Token estimate from the last compaction_start.
        pending_compaction: Compaction seen before any turn was open.
    """

    turns: list[Turn] = field(default_factory=lambda: [])  # type: list[Turn]
    pending_by_agent: dict[str, set[str]] = field(
        default_factory=lambda: {}  # type: dict[str, set[str]]
    )
    compaction_estimate: int = 0
    pending_compaction: Optional[CompactionMarker] = None

    @property
    def current(self) -> Optional[Turn]:
        return self.turns[-1] if self.turns else None

    def has_pending(self, agent_id: str) -> bool:
        return bool(self.pending_by_agent.get(agent_id))


def _add_delegation(turn: Turn, group: DelegationGroup) -> None:
    if all(existing is not group for existing in turn.delegations):
        turn.delegations.append(group)


def _open_turn(
    state: _TurnState,
    timeline: list[ModelTimelineEntry],
    start: Event,
    user_message: Optional[UserEvent],
) -> Turn:
    previous = state.current
    if previous is not None and previous.isActive:
        previous.isActive = False
        previous.endTime = previous.endTime or start.timestamp

    active_model = get_active_model_at(timeline, start.timestamp)
    turn = Turn(
        id=f"turn-{len(state.turns)}",
        userMessage=user_message,
        agentId=start.agentId,
        startTime=start.timestamp,
        isActive=True,
        modelLabel=active_model.label if active_model else None,
        modelConfigId=active_model.configId if active_model else None,
        compaction=state.pending_compaction,
    )
    state.pending_compaction = None
    state.turns.append(turn)
    return turn


def _track_lifecycle(state: _TurnState, event: AgentEvent) -> None:
    """Update pending delegations and compaction bookkeeping."""
    if event.lifecycle == LifecycleKind.DELEGATION_REQUESTED and event.delegationId:
        state.pending_by_agent.setdefault(event.agent_id, set()).add(event.delegationId)
    elif (
        event.lifecycle
        in (LifecycleKind.DELEGATION_COMPLETED, LifecycleKind.DELEGATION_FAILED)
        and event.delegationId
    ):
        pending = state.pending_by_agent.get(event.agent_id)
        if pending is not None:
            pending.discard(event.delegationId)
    elif event.lifecycle == LifecycleKind.COMPACTION_START:
        state.compaction_estimate = event.compactionTokenEstimate or 0
    elif event.lifecycle == LifecycleKind.COMPACTION_END:
        summary = event.compactionSummary or ""
        marker = CompactionMarker(
            id=event.id,
            timestamp=event.timestamp,
            tokenEstimate=state.compaction_estimate,
            summary=summary,
            summaryLen=event.compactionSummaryLen or len(summary),
        )
        state.compaction_estimate = 0
        current = state.current
        if current is not None:
            current.compaction = marker
        else:
            state.pending_compaction = marker


def _maybe_close(state: _TurnState, event: AgentEvent) -> None:
    """Close the open turn when its owning agent stops with nothing delegated."""
    turn = state.current
    if turn is None or not turn.isActive or not event.is_stop:
        return
    owner = turn.agentId or event.agent_id
    if event.agent_id != owner or state.has_pending(owner):
        return
    turn.isActive = False
    turn.endTime = event.timestamp


def build_turns(
    events: list[Event], delegation_groups: list[DelegationGroup]
) -> list[Turn]:
    """Build ordered turns from the event stream.

    Args:
        events: Full ordered event history
        delegation_groups: Output of build_delegation_groups() for the same events

    Returns:
        Turns in stream order. Events claimed by a delegation group appear only
        inside that group; the turn lists the group under `delegations`.
    """
    timeline = build_model_timeline(events)
    claimed = claimed_event_ids(delegation_groups)
    groups_by_anchor = {g.delegateEvent.id: g for g in delegation_groups}
    # Groups opened by a marker with no delegate tool call are anchored on the marker itself
    marker_anchored = {
        g.delegateEvent.id: g
        for g in delegation_groups
        if any(e.id == g.delegateEvent.id for e in g.events)
    }
    state = _TurnState()

    for event in events:
        if isinstance(event, SystemEvent):
            continue

        if isinstance(event, AgentEvent):
            _track_lifecycle(state, event)

        if event.id in claimed:
            group = marker_anchored.get(event.id)
            current = state.current
            if group is not None and current is not None:
                _add_delegation(current, group)
            continue

        if isinstance(event, UserEvent):
            if event.isMessage:
                _open_turn(state, timeline, event, event)
            continue

        turn = state.current
        is_activity = isinstance(event, ToolCallEvent) or (
            isinstance(event, AgentEvent) and event.isMessage
        )
        if turn is None:
            if not is_activity:
                continue
            # Resumed or forked session: agent acts before any prompt
            turn = _open_turn(state, timeline, event, None)
        elif is_activity and not turn.isActive:
            turn.isActive = True

        if isinstance(event, AgentEvent):
            if event.isMessage:
                turn.agentMessages.append(event)
                turn.agentId = turn.agentId or event.agentId
                turn.endTime = event.timestamp
            if event.provider and event.model:
                turn.modelLabel = f"{event.provider} / {event.model}"
                turn.modelConfigId = event.configId
            _maybe_close(state, event)
        elif isinstance(event, ToolCallEvent):
            turn.toolCalls.append(event)
            turn.endTime = event.timestamp
            group = groups_by_anchor.get(event.id)
            if group is not None:
                _add_delegation(turn, group)
        elif isinstance(event, ToolResultEvent):
            if event.toolCall.tool_call_id:
                turn.toolResults[event.toolCall.tool_call_id] = event

    return state.turns


def build_delegation_turn(
    group: DelegationGroup, delegation_groups: Optional[list[DelegationGroup]] = None
) -> Turn:
    """Present a delegation group's own activity as a Turn.

    Args:
        group: The delegation to present
        delegation_groups: All groups, used to surface delegations nested
            inside this one

    Returns:
        Turn whose activity is the delegated agent's messages and tool calls
    """
    messages = [e for e in group.events if isinstance(e, AgentEvent) and e.isMessage]
    tool_calls = [e for e in group.events if isinstance(e, ToolCallEvent)]
    tool_results = {
        e.toolCall.tool_call_id: e
        for e in group.events
        if isinstance(e, ToolResultEvent) and e.toolCall.tool_call_id
    }
    first_timestamp = group.events[0].timestamp if group.events else group.startTime
    last_timestamp = group.events[-1].timestamp if group.events else group.startTime

    call_ids = {e.id for e in tool_calls}
    nested = [
        g
        for g in (delegation_groups or [])
        if g.id != group.id and g.delegateEvent.id in call_ids
    ]

    timeline = build_model_timeline(group.events)
    active_model = get_active_model_at(timeline, first_timestamp)

    return Turn(
        id=f"delegation-{group.id}",
        agentMessages=messages,
        toolCalls=tool_calls,
        toolResults=tool_results,
        delegations=nested,
        agentId=group.targetAgentId or group.agentId,
        startTime=first_timestamp,
        endTime=group.endTime if group.endTime is not None else last_timestamp,
        isActive=group.status == DelegationStatus.IN_PROGRESS,
        modelLabel=active_model.label if active_model else None,
        modelConfigId=active_model.configId if active_model else None,
    )
