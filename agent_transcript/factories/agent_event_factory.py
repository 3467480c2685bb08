"""Factory for translating raw agent runtime events into typed Events.

The agent runtime emits `{seq, timestamp, session_id, kind: {type, ...}}`
records (timestamps in seconds). This module maps each `kind.type` onto one
Event variant, setting the lifecycle marker so downstream code never has to
inspect free text:

- prompt_received -> UserEvent (message)
- assistant_message_stored -> AgentEvent (message)
- assistant_content_delta / assistant_thinking_delta -> AgentEvent (stream delta)
- tool_call_start -> ToolCallEvent
- tool_call_end -> ToolResultEvent
- llm_request_end, delegation_*, session_forked, provider_changed,
  compaction_* -> AgentEvent (lifecycle marker)
- error -> SystemEvent
"""

import json
from typing import Any, Callable, Optional

from ..models import (
    AgentEvent,
    Event,
    LifecycleKind,
    MetricsInfo,
    SystemEvent,
    ToolCallEvent,
    ToolCallInfo,
    ToolResultEvent,
    UsageInfo,
    UserEvent,
)
from ..parser import infer_tool_name, parse_json_maybe

UNKNOWN_EVENT_SUMMARY_LIMIT = 200


def _get(mapping: Any, key: str) -> Any:
    return mapping.get(key) if isinstance(mapping, dict) else None


def _usage(value: Any) -> Optional[UsageInfo]:
    return UsageInfo.model_validate(value) if isinstance(value, dict) else None


def _metrics(value: Any) -> Optional[MetricsInfo]:
    return MetricsInfo.model_validate(value) if isinstance(value, dict) else None


def summarize_unknown_event(kind: dict[str, Any]) -> str:
    """Short text for event kinds with no dedicated translation."""
    kind_type = kind.get("type", "unknown")
    payload = {k: v for k, v in kind.items() if k != "type"}
    if not payload:
        return f"Event: {kind_type}"
    text = json.dumps(payload, default=str)
    if len(text) > UNKNOWN_EVENT_SUMMARY_LIMIT:
        text = text[: UNKNOWN_EVENT_SUMMARY_LIMIT - 3] + "..."
    return f"Event: {kind_type} {text}"


# =============================================================================
# Per-kind Translators
# =============================================================================
# Each translator receives the shared identity fields and the `kind` payload.


def _tool_call_start(base: dict[str, Any], kind: dict[str, Any]) -> Event:
    return ToolCallEvent(
        **base,
        content=kind.get("tool_name") or "tool_call",
        toolCall=ToolCallInfo(
            tool_call_id=kind.get("tool_call_id"),
            kind=kind.get("tool_name") or infer_tool_name(kind.get("tool_call_id"), None),
            status="in_progress",
            raw_input=parse_json_maybe(kind.get("arguments")),
        ),
    )


def _tool_call_end(base: dict[str, Any], kind: dict[str, Any]) -> Event:
    return ToolResultEvent(
        **base,
        content=kind.get("result") or "",
        toolCall=ToolCallInfo(
            tool_call_id=kind.get("tool_call_id"),
            kind=kind.get("tool_name") or infer_tool_name(kind.get("tool_call_id"), None),
            status="failed" if kind.get("is_error") else "completed",
            raw_output=parse_json_maybe(kind.get("result")),
        ),
    )


def _prompt_received(base: dict[str, Any], kind: dict[str, Any]) -> Event:
    return UserEvent(
        **base,
        content=kind.get("content") or "",
        isMessage=True,
        messageId=kind.get("message_id"),
    )


def _assistant_message_stored(base: dict[str, Any], kind: dict[str, Any]) -> Event:
    return AgentEvent(
        **base,
        content=kind.get("content") or "",
        thinking=kind.get("thinking"),
        isMessage=True,
        messageId=kind.get("message_id"),
        streamMessageId=kind.get("message_id"),
    )


def _content_delta(base: dict[str, Any], kind: dict[str, Any]) -> Event:
    return AgentEvent(
        **base,
        content=kind.get("content") or "",
        lifecycle=LifecycleKind.STREAM_DELTA,
        streamMessageId=kind.get("message_id"),
    )


def _thinking_delta(base: dict[str, Any], kind: dict[str, Any]) -> Event:
    return AgentEvent(
        **base,
        thinking=kind.get("content") or "",
        lifecycle=LifecycleKind.STREAM_DELTA,
        streamMessageId=kind.get("message_id"),
    )


def _llm_request_end(base: dict[str, Any], kind: dict[str, Any]) -> Event:
    return AgentEvent(
        **base,
        content="Event: llm_request_end",
        lifecycle=LifecycleKind.LLM_REQUEST_END,
        usage=_usage(kind.get("usage")),
        costUsd=kind.get("cost_usd"),
        cumulativeCostUsd=kind.get("cumulative_cost_usd"),
        contextTokens=kind.get("context_tokens"),
        finishReason=kind.get("finish_reason"),
        metrics=_metrics(kind.get("metrics")),
    )


def _delegation_requested(base: dict[str, Any], kind: dict[str, Any]) -> Event:
    delegation = kind.get("delegation")
    return AgentEvent(
        **base,
        content="Event: delegation_requested",
        lifecycle=LifecycleKind.DELEGATION_REQUESTED,
        delegationId=_get(delegation, "public_id"),
        delegationTargetAgentId=_get(delegation, "target_agent_id"),
        delegationObjective=_get(delegation, "objective"),
    )


def _delegation_ended(lifecycle: LifecycleKind) -> Callable[..., Event]:
    def translate(base: dict[str, Any], kind: dict[str, Any]) -> Event:
        return AgentEvent(
            **base,
            content=f"Event: {lifecycle.value}",
            lifecycle=lifecycle,
            delegationId=kind.get("delegation_id"),
        )

    return translate


def _session_forked(base: dict[str, Any], kind: dict[str, Any]) -> Event:
    return AgentEvent(
        **base,
        content="Event: session_forked",
        lifecycle=LifecycleKind.SESSION_FORKED,
        forkChildSessionId=kind.get("child_session_id"),
        forkDelegationId=kind.get("fork_point_ref"),
    )


def _provider_changed(base: dict[str, Any], kind: dict[str, Any]) -> Event:
    return AgentEvent(
        **base,
        content="Event: provider_changed",
        lifecycle=LifecycleKind.PROVIDER_CHANGED,
        provider=kind.get("provider"),
        model=kind.get("model"),
        contextLimit=kind.get("context_limit"),
        configId=kind.get("config_id"),
    )


def _compaction_start(base: dict[str, Any], kind: dict[str, Any]) -> Event:
    return AgentEvent(
        **base,
        content="Context compaction started",
        lifecycle=LifecycleKind.COMPACTION_START,
        compactionTokenEstimate=kind.get("token_estimate"),
    )


def _compaction_end(base: dict[str, Any], kind: dict[str, Any]) -> Event:
    return AgentEvent(
        **base,
        content="Context compacted",
        lifecycle=LifecycleKind.COMPACTION_END,
        compactionSummary=kind.get("summary"),
        compactionSummaryLen=kind.get("summary_len"),
    )


def _error(base: dict[str, Any], kind: dict[str, Any]) -> Event:
    return SystemEvent(**{**base, "agentId": "system"}, content=kind.get("message") or "Error")


# Registry mapping runtime event kinds to their translators
AGENT_EVENT_TRANSLATORS: dict[str, Callable[[dict[str, Any], dict[str, Any]], Event]] = {
    "tool_call_start": _tool_call_start,
    "tool_call_end": _tool_call_end,
    "prompt_received": _prompt_received,
    "assistant_message_stored": _assistant_message_stored,
    "assistant_content_delta": _content_delta,
    "assistant_thinking_delta": _thinking_delta,
    "llm_request_end": _llm_request_end,
    "delegation_requested": _delegation_requested,
    "delegation_completed": _delegation_ended(LifecycleKind.DELEGATION_COMPLETED),
    "delegation_failed": _delegation_ended(LifecycleKind.DELEGATION_FAILED),
    "session_forked": _session_forked,
    "provider_changed": _provider_changed,
    "compaction_start": _compaction_start,
    "compaction_end": _compaction_end,
    "error": _error,
}


def translate_agent_event(agent_id: Optional[str], raw: dict[str, Any]) -> Event:
    """Translate one raw runtime event into a typed Event.

    Args:
        agent_id: Id of the agent whose session produced the event
        raw: Runtime event with `seq`, `timestamp` (seconds), `session_id`, `kind`

    Returns:
        The Event variant for the event kind. Unknown kinds become non-message
        AgentEvents with the OTHER lifecycle marker.

    Raises:
        ValueError: If the event has no `seq` or no numeric `timestamp`
    """
    seq = raw.get("seq")
    timestamp = raw.get("timestamp")
    if seq is None:
        raise ValueError("Agent event has no seq")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        raise ValueError(f"Agent event {seq} has no numeric timestamp")

    kind = raw.get("kind")
    if not isinstance(kind, dict):
        kind = {}
    kind_type = kind.get("type") or kind.get("type_name") or "unknown"

    base: dict[str, Any] = {
        "id": str(seq),
        "agentId": agent_id,
        "sessionId": raw.get("session_id"),
        "timestamp": int(timestamp * 1000),
    }

    translator = AGENT_EVENT_TRANSLATORS.get(kind_type)
    if translator is None:
        return AgentEvent(
            **base,
            content=summarize_unknown_event({**kind, "type": kind_type}),
            lifecycle=LifecycleKind.OTHER,
        )
    return translator(base, kind)
