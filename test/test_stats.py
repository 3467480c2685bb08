#!/usr/bin/env python3
"""Tests for the statistics engine."""

import pytest

from agent_transcript.delegations import build_delegation_groups
from agent_transcript.models import (
    AgentEvent,
    DelegationGroup,
    SessionLimits,
    TimingMode,
    ToolCallEvent,
    ToolCallInfo,
)
from agent_transcript.stats import (
    calculate_delegation_stats,
    calculate_stats,
    context_percent,
)


class TestMessageCounting:
    """Only human-visible messages count as messages."""

    def test_total_messages_counts_only_is_message(self, ev):
        """Bookkeeping agent events are not counted."""
        events = [
            ev.user("hi"),
            ev.message("hello"),
            ev.request_end("stop"),
            ev.agent(content="Event: provider_changed"),
            ev.tool_call("read"),
            ev.tool_result("call-x"),
        ]
        stats = calculate_stats(events)

        expected = sum(
            1 for e in events if e.type in ("user", "agent") and getattr(e, "isMessage", False)
        )
        assert stats.session.totalMessages == expected == 2
        primary = stats.perAgent[0]
        assert primary.messageCount == 2

    def test_system_events_skipped(self, ev):
        """System events create no agent bucket and carry no weight."""
        events = [ev.system("boot"), ev.user("hi", agent="primary")]
        stats = calculate_stats(events)

        assert [a.agentId for a in stats.perAgent] == ["primary"]
        assert stats.session.startTimestamp == events[1].timestamp

    def test_missing_agent_id_is_unknown(self, ev):
        events = [ev.agent(agent=None, isMessage=True, content="anon")]
        stats = calculate_stats(events)

        assert stats.perAgent[0].agentId == "unknown"
        assert stats.perAgent[0].messageCount == 1


class TestToolCounting:
    def test_tool_breakdown_and_results(self, ev):
        """Tool calls are broken down by kind; results are counted separately."""
        events = [
            ev.tool_call("read", call_id="a"),
            ev.tool_call("read", call_id="b"),
            ev.tool_call(None, call_id="c"),
            ev.tool_result("a"),
            ev.tool_result("zzz-never-called"),
        ]
        stats = calculate_stats(events)
        primary = stats.perAgent[0]

        assert primary.toolCallCount == 3
        assert primary.toolBreakdown == {"read": 2, "unknown": 1}
        # Not joined back to the originating call
        assert primary.toolResultCount == 2
        assert stats.session.totalToolCalls == 3


class TestCost:
    def test_sum_when_no_cumulative(self, ev):
        """Without cumulative cost the session total is the per-agent sum."""
        events = [
            ev.request_end(cost=0.10, agent="primary"),
            ev.request_end(cost=0.05, agent="worker"),
            ev.request_end(agent="worker"),
        ]
        stats = calculate_stats(events)

        per_agent_sum = sum(a.costUsd for a in stats.perAgent)
        assert stats.session.totalCostUsd == pytest.approx(per_agent_sum)
        assert stats.session.totalCostUsd == pytest.approx(0.15)

    def test_cumulative_cost_wins_and_diverges(self, ev):
        """The last cumulative cost is the session total, even when it disagrees."""
        events = [
            ev.agent(costUsd=0.10),
            ev.agent(costUsd=0.15, cumulativeCostUsd=0.30),
        ]
        stats = calculate_stats(events)

        assert stats.session.totalCostUsd == pytest.approx(0.30)
        assert sum(a.costUsd for a in stats.perAgent) == pytest.approx(0.25)

    def test_latest_cumulative_from_any_agent(self, ev):
        events = [
            ev.agent(agent="primary", cumulativeCostUsd=0.50),
            ev.agent(agent="worker", cumulativeCostUsd=0.20),
        ]
        stats = calculate_stats(events)

        assert stats.session.totalCostUsd == pytest.approx(0.20)


class TestLatestWins:
    def test_context_tokens_latest_wins_with_reset(self, ev):
        """A later zero overwrites a larger context size."""
        events = [
            ev.request_end(context=8000),
            ev.request_end(context=12000),
            ev.request_end(context=0),
            ev.request_end(),
        ]
        stats = calculate_stats(events)

        assert stats.perAgent[0].currentContextTokens == 0

    def test_context_limit_and_metrics(self, ev):
        events = [
            ev.agent(contextLimit=100_000),
            ev.request_end(metrics=(3, 1)),
            ev.agent(contextLimit=200_000),
            ev.request_end(metrics=(7, 2)),
        ]
        stats = calculate_stats(events)
        primary = stats.perAgent[0]

        assert primary.maxContextTokens == 200_000
        assert (primary.steps, primary.turns) == (7, 2)
        assert (stats.session.totalSteps, stats.session.totalTurns) == (7, 2)

    def test_usage_tokens_summed(self, ev):
        events = [
            ev.request_end(usage=(100, 20), agent="primary"),
            ev.request_end(usage=(50, 5), agent="worker"),
        ]
        stats = calculate_stats(events)

        assert stats.session.totalInputTokens == 150
        assert stats.session.totalOutputTokens == 25
        worker = next(a for a in stats.perAgent if a.agentId == "worker")
        assert (worker.inputTokens, worker.outputTokens) == (50, 5)


class TestSessionCounters:
    def test_steps_fall_back_to_first_agent(self, ev):
        """Without a primary agent, the first bucket seen supplies steps/turns."""
        events = [
            ev.request_end(agent="zeta", metrics=(4, 2)),
            ev.request_end(agent="alpha", metrics=(9, 9)),
        ]
        stats = calculate_stats(events)

        assert stats.session.totalSteps == 4
        assert stats.session.totalTurns == 2

    def test_agent_ordering(self, ev):
        """"primary" first, then lexicographic."""
        events = [
            ev.message(agent="zebra"),
            ev.message(agent="primary"),
            ev.message(agent="alpha"),
        ]
        stats = calculate_stats(events)

        assert [a.agentId for a in stats.perAgent] == ["primary", "alpha", "zebra"]

    def test_limits_pass_through(self, ev):
        limits = SessionLimits(max_steps=10, max_turns=3, max_cost_usd=1.5)
        stats = calculate_stats([ev.user()], session_limits=limits)

        assert stats.session.limits == limits

    def test_empty_stream(self):
        stats = calculate_stats([])

        assert stats.perAgent == []
        assert stats.session.totalCostUsd == 0
        assert stats.session.startTimestamp is None
        assert stats.session.totalSteps == 0


class TestPurity:
    def test_idempotent(self, ev):
        """Two runs over equal input give equal output."""
        events = [
            ev.user("go"),
            ev.delegate_call("d1", target="worker"),
            ev.requested("del-1", target="worker"),
            ev.tool_call("grep", agent="worker"),
            ev.request_end("stop", agent="worker", cost=0.02),
            ev.completed("del-1"),
            ev.message("done"),
            ev.request_end("stop", cost=0.03, cumulative=0.05),
        ]
        first = calculate_stats(list(events))
        second = calculate_stats(list(events))

        assert first == second
        assert first.model_dump() == second.model_dump()

    def test_inputs_not_mutated(self, ev):
        events = [ev.user(), ev.message(), ev.request_end("stop")]
        before = [e.model_dump() for e in events]
        calculate_stats(events, timing_mode=TimingMode.LEGACY)
        calculate_stats(events, timing_mode=TimingMode.TURNS)

        assert [e.model_dump() for e in events] == before


class TestTimingModes:
    def test_turns_mode_sums_turn_spans(self, ev):
        events = [
            ev.user(ts=1000),
            ev.message(ts=3000),
            ev.request_end("stop", ts=4000),
            ev.user(ts=10_000),
            ev.message(ts=11_000),
            ev.request_end("stop", ts=12_000),
        ]
        stats = calculate_stats(events)

        assert stats.session.timingMode == TimingMode.TURNS
        assert stats.session.totalElapsedMs == 3000 + 2000
        assert stats.perAgent[0].activeTimeMs == 5000

    def test_legacy_mode_uses_state_machine(self, ev):
        events = [
            ev.user(ts=1000),
            ev.request_end("tool_calls", ts=2000),
            ev.request_end("stop", ts=5000),
        ]
        stats = calculate_stats(events, timing_mode=TimingMode.LEGACY)

        assert stats.session.timingMode == TimingMode.LEGACY
        assert stats.perAgent[0].activeTimeMs == 4000
        assert stats.session.totalElapsedMs == 4000


class TestContextPercent:
    @pytest.mark.parametrize(
        "tokens,limit,expected",
        [
            (5000, 4000, 100),
            (2000, 4000, 50),
            (0, 4000, 0),
            (1, 8, 13),
            (5, 1000, 1),
            (3, 8, 38),
            (1000, None, None),
            (1000, 0, None),
            (1000, -5, None),
        ],
    )
    def test_context_percent(self, tokens, limit, expected):
        """Exact halves round up (12.5% -> 13%, 0.5% -> 1%)."""
        assert context_percent(tokens, limit) == expected


class TestDelegationStats:
    def _group(self, events) -> DelegationGroup:
        anchor = ToolCallEvent(
            id="anchor",
            timestamp=0,
            toolCall=ToolCallInfo(tool_call_id="d1", kind="delegate"),
        )
        return DelegationGroup(
            id="d1",
            delegateToolCallId="d1",
            delegateEvent=anchor,
            startTime=0,
            events=events,
        )

    def test_two_tool_calls_no_messages(self, ev):
        group = self._group(
            [ev.tool_call("read", agent="worker"), ev.tool_call("edit", agent="worker")]
        )
        stats = calculate_delegation_stats(group)

        assert stats.toolCallCount == 2
        assert stats.messageCount == 0

    def test_context_capped(self, ev):
        group = self._group(
            [
                AgentEvent(id="p", timestamp=1, agentId="worker", contextLimit=4000),
                AgentEvent(id="r", timestamp=2, agentId="worker", contextTokens=5000),
            ]
        )
        stats = calculate_delegation_stats(group)

        assert stats.contextPercent == 100
        assert stats.contextTokens == 5000
        assert stats.contextLimit == 4000

    def test_from_grouper(self, ev):
        """Stats over a group produced by the grouper."""
        events = [
            ev.delegate_call("d1", target="worker"),
            ev.requested("del-1", target="worker"),
            ev.message("working", agent="worker"),
            ev.tool_call("read", agent="worker"),
            ev.request_end("stop", agent="worker", cost=0.01, usage=(10, 2), metrics=(2, 1)),
            ev.completed("del-1"),
        ]
        (group,) = build_delegation_groups(events)
        stats = calculate_delegation_stats(group)

        assert stats.messageCount == 1
        assert stats.toolCallCount == 1
        assert stats.costUsd == pytest.approx(0.01)
        assert (stats.inputTokens, stats.outputTokens) == (10, 2)
        assert (stats.steps, stats.turns) == (2, 1)
        assert stats.contextPercent is None
