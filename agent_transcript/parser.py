#!/usr/bin/env python3
"""Parse and extract data from raw agent event fields.

This module provides utility functions used at the ingestion boundary:
- parse_timestamp: Parse ISO timestamps to epoch milliseconds
- parse_json_maybe: Leniently decode JSON-encoded tool arguments
- infer_tool_name: Recover a tool name from a tool call id or description
- extract_delegate_target: Read the target agent from delegate tool input

For event creation, see factories/.
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Optional

RUN_TOOL_PATTERN = re.compile(r"run\s+([a-z0-9_.:-]+)", re.IGNORECASE)


def parse_timestamp(timestamp_str: str) -> Optional[int]:
    """Parse ISO timestamp to epoch milliseconds.

    Naive timestamps are treated as UTC.
    """
    try:
        dt = datetime.fromisoformat(timestamp_str.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def parse_json_maybe(value: Any) -> Any:
    """Decode a JSON string, returning the input unchanged if it isn't JSON."""
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def infer_tool_name(
    tool_call_id: Optional[str], description: Optional[str]
) -> Optional[str]:
    """Infer a tool name from a "name:suffix" call id or a "run <name>" description."""
    if tool_call_id and ":" in tool_call_id:
        name = tool_call_id.split(":", 1)[0]
        if name:
            return name
    if description:
        match = RUN_TOOL_PATTERN.search(description)
        if match:
            return match.group(1)
    return None


def extract_delegate_target(raw_input: Any) -> Optional[str]:
    """Return the target agent id from delegate tool input, if present."""
    if not isinstance(raw_input, dict):
        return None
    target = raw_input.get("target_agent_id") or raw_input.get("targetAgentId")
    return target if isinstance(target, str) else None


def extract_objective(raw_input: Any) -> Optional[str]:
    """Return the delegation objective from delegate tool input, if present."""
    if not isinstance(raw_input, dict):
        return None
    objective = raw_input.get("objective")
    return objective if isinstance(objective, str) else None
