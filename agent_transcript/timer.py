"""Active working time, reconstructed two ways.

`compute_active_time` replays the legacy per-agent working/idle state machine
over lifecycle markers. `compute_turn_durations` derives the same figures from
Turn start/end timestamps. Callers pick one; the results are never mixed.
"""

from dataclasses import dataclass, field
from typing import Optional

from .models import (
    AgentEvent,
    Event,
    LifecycleKind,
    SystemEvent,
    Turn,
    UserEvent,
    UNKNOWN_AGENT,
)
from .turns import build_delegation_turn


@dataclass
class ActiveTimeResult:
    """Elapsed time for the session and per agent.

    Attributes:
        global_elapsed_ms: Session time, excluding spans where no agent worked.
        agent_elapsed_ms: Working time per agent id, in first-seen order.
        is_session_active: True if some agent is still working at the end.
    """

    global_elapsed_ms: int = 0
    agent_elapsed_ms: dict[str, int] = field(
        default_factory=lambda: {}  # type: dict[str, int]
    )
    is_session_active: bool = False


@dataclass
class _AgentClock:
    working: bool = False
    accumulated_ms: int = 0
    work_started_at: Optional[int] = None
    open_delegations: set[str] = field(default_factory=lambda: set())  # type: set[str]

    def start(self, timestamp: int) -> None:
        self.working = True
        self.work_started_at = timestamp

    def pause(self, timestamp: int) -> None:
        if self.work_started_at is not None:
            self.accumulated_ms += timestamp - self.work_started_at
        self.working = False
        self.work_started_at = None


def _apply(clock: _AgentClock, event: Event) -> None:
    """Apply one event's transition to the agent's clock."""
    if isinstance(event, UserEvent):
        if not clock.working and not clock.open_delegations:
            clock.start(event.timestamp)
        return
    if not isinstance(event, AgentEvent) or event.lifecycle is None:
        return

    lifecycle = event.lifecycle
    if lifecycle == LifecycleKind.DELEGATION_REQUESTED and event.delegationId:
        clock.open_delegations.add(event.delegationId)
        if clock.working:
            clock.pause(event.timestamp)
    elif lifecycle == LifecycleKind.DELEGATION_COMPLETED and event.delegationId:
        if event.delegationId in clock.open_delegations:
            clock.open_delegations.discard(event.delegationId)
            if not clock.open_delegations and not clock.working:
                clock.start(event.timestamp)
    elif lifecycle == LifecycleKind.DELEGATION_FAILED and event.delegationId:
        clock.open_delegations.discard(event.delegationId)
    elif event.is_stop and clock.working and not clock.open_delegations:
        clock.pause(event.timestamp)


def compute_active_time(events: list[Event], now: Optional[int] = None) -> ActiveTimeResult:
    """Replay the working/idle state machine over an event stream.

    Per agent: a prompt starts work unless delegations are open; a delegation
    request or a "stop" request end pauses it; completion of the last open
    delegation resumes it. The session timer starts at the first prompt and
    runs while at least one agent is working.

    Args:
        events: Full ordered event history
        now: Reference time (ms) for clocks still running at the end; defaults
            to the last event timestamp

    Returns:
        ActiveTimeResult with session and per-agent elapsed time
    """
    clocks: dict[str, _AgentClock] = {}
    global_accumulated = 0
    global_started = False
    global_active_since: Optional[int] = None
    last_timestamp = 0

    for event in events:
        if isinstance(event, SystemEvent):
            continue
        last_timestamp = max(last_timestamp, event.timestamp)
        clock = clocks.setdefault(event.agent_id, _AgentClock())
        _apply(clock, event)

        if isinstance(event, UserEvent) and not global_started:
            global_started = True
            global_active_since = event.timestamp
            continue
        if not global_started:
            continue

        any_working = any(c.working for c in clocks.values())
        if any_working and global_active_since is None:
            global_active_since = event.timestamp
        elif not any_working and global_active_since is not None:
            global_accumulated += event.timestamp - global_active_since
            global_active_since = None

    reference = now if now is not None else last_timestamp
    agent_elapsed: dict[str, int] = {}
    for agent_id, clock in clocks.items():
        elapsed = clock.accumulated_ms
        if clock.working and clock.work_started_at is not None:
            elapsed += max(0, reference - clock.work_started_at)
        agent_elapsed[agent_id] = elapsed

    if global_active_since is not None:
        global_accumulated += max(0, reference - global_active_since)

    return ActiveTimeResult(
        global_elapsed_ms=global_accumulated,
        agent_elapsed_ms=agent_elapsed,
        is_session_active=any(c.working for c in clocks.values()),
    )


def _turn_span(turn: Turn, reference: int) -> int:
    end = turn.endTime
    if end is None or turn.isActive:
        end = max(end or turn.startTime, reference)
    return max(0, end - turn.startTime)


def compute_turn_durations(
    turns: list[Turn], last_timestamp: int, now: Optional[int] = None
) -> ActiveTimeResult:
    """Elapsed time from turn spans.

    Session time is the sum of turn spans; each span is credited to the turn's
    agent, and each delegation's sub-turn span to the delegated agent.
    Active turns run to `now` (or the last event timestamp).
    """
    reference = now if now is not None else last_timestamp
    total = 0
    agent_elapsed: dict[str, int] = {}
    seen_groups: set[str] = set()

    for turn in turns:
        span = _turn_span(turn, reference)
        total += span
        owner = turn.agentId or UNKNOWN_AGENT
        agent_elapsed[owner] = agent_elapsed.get(owner, 0) + span

        for group in turn.delegations:
            if group.id in seen_groups:
                continue
            seen_groups.add(group.id)
            sub_turn = build_delegation_turn(group)
            sub_owner = sub_turn.agentId or UNKNOWN_AGENT
            agent_elapsed[sub_owner] = agent_elapsed.get(sub_owner, 0) + _turn_span(
                sub_turn, reference
            )

    return ActiveTimeResult(
        global_elapsed_ms=total,
        agent_elapsed_ms=agent_elapsed,
        is_session_active=any(turn.isActive for turn in turns),
    )
