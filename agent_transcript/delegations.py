"""Group sub-agent delegations out of a flat event stream.

A delegation starts with a `delegate` tool call, is confirmed by a
`delegation_requested` marker naming the target agent, and ends with a
`delegation_completed` or `delegation_failed` marker. Everything the target
agent does in between belongs to the delegation group rather than to the
delegating agent's turn.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .models import (
    AgentEvent,
    DelegationGroup,
    DelegationStatus,
    Event,
    LifecycleKind,
    SystemEvent,
    ToolCallEvent,
    ToolCallInfo,
    ToolResultEvent,
    DELEGATE_TOOL_KIND,
)
from .parser import extract_delegate_target, extract_objective

logger = logging.getLogger(__name__)

_TERMINAL_MARKERS = {
    LifecycleKind.DELEGATION_COMPLETED: DelegationStatus.COMPLETED,
    LifecycleKind.DELEGATION_FAILED: DelegationStatus.FAILED,
}


@dataclass
class _GroupingState:
    """Working state for one pass of the grouper.

    Attributes:
        groups: Groups keyed by delegate tool call id (or delegation id when
            no tool call was seen), in creation order.
        anchored: Keys whose group has a real delegate tool call.
        pending_by_target: Delegate tool calls not yet matched to a
            delegation_requested marker, FIFO per target agent.
        key_by_delegation_id: delegation id -> group key, first writer wins.
        open_by_agent: Open group keys per target agent.
    """

    groups: dict[str, DelegationGroup] = field(
        default_factory=lambda: {}  # type: dict[str, DelegationGroup]
    )
    anchored: set[str] = field(default_factory=lambda: set())  # type: set[str]
    pending_by_target: dict[str, list[str]] = field(
        default_factory=lambda: {}  # type: dict[str, list[str]]
    )
    key_by_delegation_id: dict[str, str] = field(
        default_factory=lambda: {}  # type: dict[str, str]
    )
    open_by_agent: dict[str, list[str]] = field(
        default_factory=lambda: {}  # type: dict[str, list[str]]
    )

    def take_pending(self, target_agent_id: str) -> Optional[str]:
        pending = self.pending_by_target.get(target_agent_id)
        if not pending:
            return None
        key = pending.pop(0)
        if not pending:
            del self.pending_by_target[target_agent_id]
        return key

    def active_key_for(self, agent_id: Optional[str]) -> Optional[str]:
        """Group key for an agent's activity, only when exactly one is open."""
        if not agent_id:
            return None
        open_keys = self.open_by_agent.get(agent_id)
        if open_keys and len(open_keys) == 1:
            return open_keys[0]
        return None

    def close(self, group: DelegationGroup) -> None:
        if not group.targetAgentId:
            return
        open_keys = self.open_by_agent.get(group.targetAgentId)
        if open_keys and group.id in open_keys:
            open_keys.remove(group.id)
            if not open_keys:
                del self.open_by_agent[group.targetAgentId]

    def ensure_group(self, key: str, source: AgentEvent | ToolCallEvent) -> DelegationGroup:
        group = self.groups.get(key)
        if group is not None:
            return group
        if isinstance(source, ToolCallEvent):
            delegate_event = source
        else:
            # No tool call seen for this delegation; stand one in from the marker
            delegate_event = ToolCallEvent(
                id=source.id,
                agentId=source.agentId,
                sessionId=source.sessionId,
                timestamp=source.timestamp,
                content=source.content or DELEGATE_TOOL_KIND,
                toolCall=ToolCallInfo(
                    tool_call_id=key, kind=DELEGATE_TOOL_KIND, status="in_progress"
                ),
            )
        group = DelegationGroup(
            id=key,
            delegateToolCallId=key,
            delegateEvent=delegate_event,
            startTime=source.timestamp,
        )
        self.groups[key] = group
        return group


def _open_from_tool_call(state: _GroupingState, event: ToolCallEvent) -> None:
    key = event.call_key
    raw_input = event.toolCall.raw_input
    target = extract_delegate_target(raw_input)

    group = state.ensure_group(key, event)
    if key not in state.anchored:
        state.anchored.add(key)
        if target:
            state.pending_by_target.setdefault(target, []).append(key)
    # Later tool_call events for the same id are status updates of the same call
    group.delegateEvent = event
    group.targetAgentId = target or group.targetAgentId
    group.objective = group.objective or extract_objective(raw_input)


def _handle_requested(state: _GroupingState, event: AgentEvent) -> str:
    delegation_id = event.delegationId
    assert delegation_id is not None

    existing_key = state.key_by_delegation_id.get(delegation_id)
    if existing_key is not None:
        logger.warning(
            "Delegation %s requested again by event %s; keeping group %s",
            delegation_id,
            event.id,
            existing_key,
        )
        return existing_key

    target = event.delegationTargetAgentId
    tool_call_key = state.take_pending(target) if target else None
    key = tool_call_key or delegation_id
    state.key_by_delegation_id[delegation_id] = key

    group = state.ensure_group(key, event)
    group.delegationId = delegation_id
    group.targetAgentId = target or group.targetAgentId
    group.objective = event.delegationObjective or group.objective
    group.startTime = event.timestamp
    if group.targetAgentId:
        state.open_by_agent.setdefault(group.targetAgentId, []).append(key)
    return key


def _handle_terminal(state: _GroupingState, event: AgentEvent) -> Optional[str]:
    delegation_id = event.delegationId
    assert delegation_id is not None
    assert event.lifecycle is not None

    key = state.key_by_delegation_id.get(delegation_id, delegation_id)
    group = state.groups.get(key)
    if group is None:
        logger.debug(
            "Ignoring %s for unknown delegation %s", event.lifecycle.value, delegation_id
        )
        return None

    group.endTime = event.timestamp
    if group.status == DelegationStatus.IN_PROGRESS:
        group.status = _TERMINAL_MARKERS[event.lifecycle]
    state.close(group)
    return key


def _handle_marker(state: _GroupingState, event: AgentEvent) -> Optional[str]:
    """Apply a delegation lifecycle marker; return the group key it belongs to."""
    if not event.delegationId:
        return None
    if event.lifecycle == LifecycleKind.DELEGATION_REQUESTED:
        return _handle_requested(state, event)
    if event.lifecycle in _TERMINAL_MARKERS:
        return _handle_terminal(state, event)
    return None


def _attach_result(state: _GroupingState, event: ToolResultEvent) -> None:
    key = event.toolCall.tool_call_id
    if not key or key not in state.anchored:
        return
    group = state.groups[key]
    group.result = event
    if event.failed and group.status == DelegationStatus.IN_PROGRESS:
        group.status = DelegationStatus.FAILED
        group.endTime = event.timestamp
        state.close(group)


def build_delegation_groups(events: list[Event]) -> list[DelegationGroup]:
    """Assemble one DelegationGroup per delegate tool call (or orphan marker).

    Events are attributed to a group when they are a delegation marker
    correlated by delegation id, or when they come from the delegated agent
    while that agent has exactly one open delegation.

    Args:
        events: Full ordered event history

    Returns:
        Groups sorted by start time
    """
    state = _GroupingState()

    for event in events:
        if isinstance(event, SystemEvent):
            continue

        marker_key: Optional[str] = None
        if isinstance(event, AgentEvent):
            marker_key = _handle_marker(state, event)
            if (
                event.lifecycle == LifecycleKind.SESSION_FORKED
                and event.forkChildSessionId
                and event.forkDelegationId
            ):
                key = state.key_by_delegation_id.get(
                    event.forkDelegationId, event.forkDelegationId
                )
                forked = state.groups.get(key)
                if forked is not None:
                    forked.childSessionId = event.forkChildSessionId

        active_key = state.active_key_for(event.agentId)

        if isinstance(event, ToolCallEvent) and event.is_delegate:
            _open_from_tool_call(state, event)
        elif isinstance(event, ToolResultEvent):
            _attach_result(state, event)

        if marker_key is not None:
            state.groups[marker_key].events.append(event)
        elif active_key is not None:
            group = state.groups[active_key]
            group.events.append(event)
            if event.agentId and not group.agentId:
                group.agentId = event.agentId

    return sorted(state.groups.values(), key=lambda g: g.startTime)


def claimed_event_ids(groups: list[DelegationGroup]) -> set[str]:
    """Ids of every event that belongs to some delegation group."""
    return {event.id for group in groups for event in group.events}
