"""Factory modules for creating typed events from raw data."""

from .event_factory import (
    # Lifecycle narrowing
    narrow_lifecycle,
    # Event creation
    create_event,
    # Constants
    LEGACY_EVENT_LABEL_PREFIX,
)
from .agent_event_factory import (
    # Runtime event translation
    translate_agent_event,
    summarize_unknown_event,
)

__all__ = [
    # Lifecycle narrowing
    "narrow_lifecycle",
    # Event creation
    "create_event",
    # Constants
    "LEGACY_EVENT_LABEL_PREFIX",
    # Runtime event translation
    "translate_agent_event",
    "summarize_unknown_event",
]
