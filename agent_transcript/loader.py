#!/usr/bin/env python3
"""Load agent session events from JSONL files."""

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import dateparser

from .factories import create_event, translate_agent_event
from .models import Event

logger = logging.getLogger(__name__)

_RELATIVE_DAY_WORDS = ("today", "yesterday")


def _parse_record(record: dict[str, Any]) -> Event:
    """Narrow one JSON object into an Event.

    Accepts flat event records (`type` in system/user/agent/tool_call/
    tool_result), raw runtime events (`kind`), and runtime events wrapped as
    `{"type": "event", "agent_id": ..., "event": {...}}`.
    """
    if record.get("type") == "event" and isinstance(record.get("event"), dict):
        return translate_agent_event(record.get("agent_id"), record["event"])
    if "kind" in record and "type" not in record:
        return translate_agent_event(record.get("agent_id"), record)
    return create_event(record)


def load_events(jsonl_path: Path) -> list[Event]:
    """Load and parse a JSONL event file.

    Lines that are blank, not JSON objects, or cannot be narrowed into an
    Event are logged and skipped.
    """
    events: list[Event] = []

    with open(jsonl_path, "r", encoding="utf-8", errors="replace") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
                if not isinstance(record, dict):
                    logger.warning(
                        "Line %d of %s is not a JSON object: %s", line_no, jsonl_path, line
                    )
                    continue
                events.append(_parse_record(record))
            except json.JSONDecodeError as e:
                logger.warning(
                    "Line %d of %s | JSON decode error: %s", line_no, jsonl_path, e
                )
            except ValueError as e:
                error_msg = str(e)
                if "validation error" in error_msg.lower():
                    error_msg = re.sub(
                        r"    For further information visit https://errors.pydantic(.*)\n?",
                        "",
                        error_msg,
                    )
                logger.warning("Line %d of %s | %s", line_no, jsonl_path, error_msg)

    logger.debug("Loaded %d events from %s", len(events), jsonl_path)
    return events


def _parse_date_bound(value: str, label: str, end_of_day: bool) -> datetime:
    # Parse in UTC to match event timestamps
    settings: Any = {"TIMEZONE": "UTC", "RETURN_AS_TIMEZONE_AWARE": False}
    parsed = dateparser.parse(value, settings=settings)
    if not parsed:
        raise ValueError(f"Could not parse {label}: {value}")
    if value in _RELATIVE_DAY_WORDS or "days ago" in value:
        if end_of_day:
            parsed = parsed.replace(hour=23, minute=59, second=59, microsecond=999999)
        else:
            parsed = parsed.replace(hour=0, minute=0, second=0, microsecond=0)
    return parsed.replace(tzinfo=timezone.utc)


def filter_events_by_date(
    events: list[Event], from_date: Optional[str], to_date: Optional[str]
) -> list[Event]:
    """Keep events whose timestamp falls inside the date range.

    Dates are natural-language or absolute strings understood by dateparser,
    interpreted in UTC. "today", "yesterday" and "N days ago" expand to the
    whole day.
    """
    if not from_date and not to_date:
        return events

    from_ms: Optional[int] = None
    to_ms: Optional[int] = None
    if from_date:
        from_ms = int(_parse_date_bound(from_date, "from-date", False).timestamp() * 1000)
    if to_date:
        to_ms = int(_parse_date_bound(to_date, "to-date", True).timestamp() * 1000)

    filtered: list[Event] = []
    for event in events:
        if from_ms is not None and event.timestamp < from_ms:
            continue
        if to_ms is not None and event.timestamp > to_ms:
            continue
        filtered.append(event)
    return filtered


def group_events_by_session(events: list[Event]) -> dict[str, list[Event]]:
    """Split a mixed stream by sessionId, keeping stream order within each.

    Events without a sessionId are grouped under the empty string.
    """
    sessions: dict[str, list[Event]] = {}
    for event in events:
        sessions.setdefault(event.sessionId or "", []).append(event)
    return sessions
