"""Pytest configuration and shared fixtures."""

import json
from pathlib import Path
from typing import Any, Optional

import pytest

from agent_transcript.models import (
    AgentEvent,
    LifecycleKind,
    MetricsInfo,
    SystemEvent,
    ToolCallEvent,
    ToolCallInfo,
    ToolResultEvent,
    UsageInfo,
    UserEvent,
)


class EventBuilder:
    """Builds typed events with sequential ids and default timestamps."""

    def __init__(self) -> None:
        self._counter = 0

    def _next(self, timestamp: Optional[int]) -> dict[str, Any]:
        self._counter += 1
        return {
            "id": f"e{self._counter}",
            "timestamp": timestamp if timestamp is not None else self._counter * 1000,
            "sessionId": "session-1",
        }

    def system(self, content: str = "notice", ts: Optional[int] = None, **kw: Any):
        return SystemEvent(**self._next(ts), content=content, **kw)

    def user(
        self,
        content: str = "hello",
        ts: Optional[int] = None,
        agent: str = "primary",
        **kw: Any,
    ) -> UserEvent:
        return UserEvent(**self._next(ts), agentId=agent, content=content, isMessage=True, **kw)

    def message(
        self,
        content: str = "reply",
        ts: Optional[int] = None,
        agent: str = "primary",
        **kw: Any,
    ) -> AgentEvent:
        return AgentEvent(**self._next(ts), agentId=agent, content=content, isMessage=True, **kw)

    def agent(
        self, ts: Optional[int] = None, agent: Optional[str] = "primary", **kw: Any
    ) -> AgentEvent:
        """Non-message agent event (bookkeeping)."""
        return AgentEvent(**self._next(ts), agentId=agent, **kw)

    def request_end(
        self,
        finish_reason: str = "stop",
        ts: Optional[int] = None,
        agent: str = "primary",
        cost: Optional[float] = None,
        cumulative: Optional[float] = None,
        context: Optional[int] = None,
        usage: Optional[tuple[int, int]] = None,
        metrics: Optional[tuple[int, int]] = None,
    ) -> AgentEvent:
        return AgentEvent(
            **self._next(ts),
            agentId=agent,
            content="Event: llm_request_end",
            lifecycle=LifecycleKind.LLM_REQUEST_END,
            finishReason=finish_reason,
            costUsd=cost,
            cumulativeCostUsd=cumulative,
            contextTokens=context,
            usage=UsageInfo(input_tokens=usage[0], output_tokens=usage[1]) if usage else None,
            metrics=MetricsInfo(steps=metrics[0], turns=metrics[1]) if metrics else None,
        )

    def tool_call(
        self,
        kind: Optional[str] = "read",
        call_id: Optional[str] = None,
        ts: Optional[int] = None,
        agent: str = "primary",
        raw_input: Any = None,
        status: str = "in_progress",
    ) -> ToolCallEvent:
        base = self._next(ts)
        return ToolCallEvent(
            **base,
            agentId=agent,
            content=kind or "tool",
            toolCall=ToolCallInfo(
                tool_call_id=call_id or f"call-{base['id']}",
                kind=kind,
                status=status,
                raw_input=raw_input,
            ),
        )

    def delegate_call(
        self,
        call_id: str,
        target: Optional[str] = "worker",
        objective: Optional[str] = None,
        ts: Optional[int] = None,
        agent: str = "primary",
    ) -> ToolCallEvent:
        raw_input: dict[str, Any] = {}
        if target is not None:
            raw_input["target_agent_id"] = target
        if objective is not None:
            raw_input["objective"] = objective
        return self.tool_call(
            kind="delegate", call_id=call_id, ts=ts, agent=agent, raw_input=raw_input
        )

    def tool_result(
        self,
        call_id: str,
        ts: Optional[int] = None,
        agent: str = "primary",
        failed: bool = False,
        kind: Optional[str] = None,
    ) -> ToolResultEvent:
        return ToolResultEvent(
            **self._next(ts),
            agentId=agent,
            content="result",
            toolCall=ToolCallInfo(
                tool_call_id=call_id,
                kind=kind,
                status="failed" if failed else "completed",
            ),
        )

    def delegation(
        self,
        lifecycle: LifecycleKind,
        delegation_id: str,
        target: Optional[str] = None,
        ts: Optional[int] = None,
        agent: str = "primary",
        objective: Optional[str] = None,
    ) -> AgentEvent:
        return AgentEvent(
            **self._next(ts),
            agentId=agent,
            content=f"Event: {lifecycle.value}",
            lifecycle=lifecycle,
            delegationId=delegation_id,
            delegationTargetAgentId=target,
            delegationObjective=objective,
        )

    def requested(self, delegation_id: str, target: str = "worker", **kw: Any) -> AgentEvent:
        return self.delegation(
            LifecycleKind.DELEGATION_REQUESTED, delegation_id, target=target, **kw
        )

    def completed(self, delegation_id: str, **kw: Any) -> AgentEvent:
        return self.delegation(LifecycleKind.DELEGATION_COMPLETED, delegation_id, **kw)

    def failed(self, delegation_id: str, **kw: Any) -> AgentEvent:
        return self.delegation(LifecycleKind.DELEGATION_FAILED, delegation_id, **kw)


@pytest.fixture
def ev() -> EventBuilder:
    """Fresh event builder per test."""
    return EventBuilder()


@pytest.fixture
def write_jsonl(tmp_path: Path):
    """Write records to a JSONL file and return its path."""

    def _write(records: list[Any], name: str = "events.jsonl") -> Path:
        path = tmp_path / name
        with open(path, "w", encoding="utf-8") as f:
            for record in records:
                f.write(record if isinstance(record, str) else json.dumps(record))
                f.write("\n")
        return path

    return _write
