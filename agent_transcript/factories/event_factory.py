"""Factory for creating typed Event instances from flat event records.

A flat record is one dictionary carrying every optional field any event kind
might use. This module narrows it into the matching variant:
- SystemEvent, UserEvent, AgentEvent, ToolCallEvent, ToolResultEvent

Also provides lifecycle narrowing for legacy records that predate the
`lifecycle` field.
"""

import logging
from typing import Any, Callable, Optional, cast

from pydantic import BaseModel

from ..models import (
    AgentEvent,
    Event,
    EventType,
    LifecycleKind,
    SystemEvent,
    ToolCallEvent,
    ToolResultEvent,
    UserEvent,
)
from ..parser import infer_tool_name, parse_json_maybe

logger = logging.getLogger(__name__)

# Content label the legacy ingestion layer used for bookkeeping agent events
LEGACY_EVENT_LABEL_PREFIX = "Event: "

DELEGATION_EVENT_LIFECYCLE: dict[str, LifecycleKind] = {
    "requested": LifecycleKind.DELEGATION_REQUESTED,
    "completed": LifecycleKind.DELEGATION_COMPLETED,
    "failed": LifecycleKind.DELEGATION_FAILED,
}

_LIFECYCLE_VALUES = {kind.value for kind in LifecycleKind}

# Statistical fields that only AgentEvent keeps
AGENT_ONLY_FIELDS = (
    "costUsd",
    "cumulativeCostUsd",
    "contextTokens",
    "contextLimit",
    "usage",
    "metrics",
)


# =============================================================================
# Lifecycle Narrowing
# =============================================================================


def narrow_lifecycle(data: dict[str, Any]) -> Optional[LifecycleKind]:
    """Determine the lifecycle marker of a flat agent record.

    Precedence: explicit `lifecycle`, then `delegationEventType`, then an
    exact "Event: <kind>" content label. Message records have no lifecycle.
    """
    explicit = data.get("lifecycle")
    if isinstance(explicit, str) and explicit in _LIFECYCLE_VALUES:
        return LifecycleKind(explicit)

    delegation_type = data.get("delegationEventType")
    if isinstance(delegation_type, str) and delegation_type in DELEGATION_EVENT_LIFECYCLE:
        return DELEGATION_EVENT_LIFECYCLE[delegation_type]

    if data.get("isMessage"):
        return None

    content = data.get("content")
    if isinstance(content, str) and content.startswith(LEGACY_EVENT_LABEL_PREFIX):
        label = content[len(LEGACY_EVENT_LABEL_PREFIX) :].strip()
        if label in _LIFECYCLE_VALUES:
            return LifecycleKind(label)
        return LifecycleKind.OTHER

    if data.get("isStreamDelta"):
        return LifecycleKind.STREAM_DELTA

    return None


# =============================================================================
# Event Creation
# =============================================================================


def _normalize_tool_call(data: dict[str, Any]) -> dict[str, Any]:
    data_copy = data.copy()
    tool_call = data_copy.get("toolCall")
    if isinstance(tool_call, dict):
        tool_call_copy = cast(dict[str, Any], tool_call).copy()
        if "raw_input" in tool_call_copy:
            tool_call_copy["raw_input"] = parse_json_maybe(tool_call_copy["raw_input"])
        if not tool_call_copy.get("kind"):
            tool_call_copy["kind"] = infer_tool_name(
                tool_call_copy.get("tool_call_id"), tool_call_copy.get("description")
            )
        data_copy["toolCall"] = tool_call_copy
    elif tool_call is None:
        data_copy.pop("toolCall", None)
    return data_copy


def _create_agent_event(data: dict[str, Any]) -> AgentEvent:
    """Create an AgentEvent, resolving its lifecycle marker."""
    data_copy = data.copy()
    data_copy["lifecycle"] = narrow_lifecycle(data)
    return AgentEvent.model_validate(data_copy)


def _validator(model: type[BaseModel]) -> Callable[[dict[str, Any]], Event]:
    return lambda data: cast(Event, model.model_validate(data))


# Registry mapping event types to their creator functions
EVENT_CREATORS: dict[str, Callable[[dict[str, Any]], Event]] = {
    "system": _validator(SystemEvent),
    "user": _validator(UserEvent),
    "agent": _create_agent_event,
    "tool_call": lambda data: ToolCallEvent.model_validate(_normalize_tool_call(data)),
    "tool_result": lambda data: ToolResultEvent.model_validate(
        _normalize_tool_call(data)
    ),
}


def create_event(data: dict[str, Any]) -> Event:
    """Create an Event from a flat JSON dictionary.

    Uses a registry-based dispatch to create the appropriate Event variant
    based on the 'type' field in the data. A missing `id` falls back to `seq`.

    Args:
        data: Dictionary parsed from JSON

    Returns:
        The appropriate Event variant

    Raises:
        ValueError: If the data doesn't match any known event type or fails
            validation (pydantic's ValidationError is a ValueError)
    """
    event_type = data.get("type")
    creator = EVENT_CREATORS.get(event_type)  # type: ignore[arg-type]
    if creator is None:
        raise ValueError(f"Unknown event type: {event_type}")
    if "id" not in data and "seq" in data:
        data = {**data, "id": str(data["seq"])}
    if event_type != EventType.AGENT:
        dropped = [name for name in AGENT_ONLY_FIELDS if data.get(name) is not None]
        if dropped:
            logger.debug(
                "Dropping %s from %s event %s", ", ".join(dropped), event_type, data.get("id")
            )
    return creator(data)
