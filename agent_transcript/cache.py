"""Session-scoped memoization of reconstruction results.

Reconstruction is a pure function of the event list, so a live caller that
re-renders on every incoming chunk can skip the work while the list has not
grown. Entries are keyed by session id and are only reused for the very same
list object at the very same length, computed with the same options.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from pydantic import BaseModel

from .models import Event

if TYPE_CHECKING:
    from .transcript import SessionView

logger = logging.getLogger(__name__)

DEFAULT_MAX_SESSIONS = 32


class CacheStats(BaseModel):
    """Hit/miss counters for a ReconstructionCache."""

    sessions: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0


@dataclass
class _CacheEntry:
    events: list[Event]
    length: int
    options: Any
    view: "SessionView"


class ReconstructionCache:
    """Bounded LRU of SessionView results, one entry per session."""

    def __init__(self, max_sessions: int = DEFAULT_MAX_SESSIONS):
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self.max_sessions = max_sessions
        self._entries: "OrderedDict[str, _CacheEntry]" = OrderedDict()
        self._stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    def get(
        self, session_id: str, events: list[Event], options: Any = None
    ) -> Optional["SessionView"]:
        """Cached view for this session if `events` and `options` are unchanged.

        Args:
            session_id: Cache key
            events: The caller's event list; must be the cached list object
                at the cached length
            options: Whatever else the view was computed from; compared by
                equality

        Returns:
            The cached SessionView, or None when missing or stale
        """
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        if entry.events is not events or entry.length != len(events):
            logger.debug(
                "Cache entry for session %s is stale (%d -> %d events)",
                session_id,
                entry.length,
                len(events),
            )
            return None
        if entry.options != options:
            logger.debug("Cache entry for session %s is stale (options changed)", session_id)
            return None
        self._entries.move_to_end(session_id)
        return entry.view

    def put(
        self,
        session_id: str,
        events: list[Event],
        view: "SessionView",
        options: Any = None,
    ) -> None:
        self._entries[session_id] = _CacheEntry(
            events=events, length=len(events), options=options, view=view
        )
        self._entries.move_to_end(session_id)
        while len(self._entries) > self.max_sessions:
            evicted, _ = self._entries.popitem(last=False)
            self._stats.evictions += 1
            logger.debug("Evicted cached reconstruction for session %s", evicted)

    def get_or_compute(
        self,
        session_id: str,
        events: list[Event],
        compute: Callable[[list[Event]], "SessionView"],
        options: Any = None,
    ) -> "SessionView":
        """Return the cached view, recomputing when the event list or options changed."""
        view = self.get(session_id, events, options)
        if view is not None:
            self._stats.hits += 1
            return view
        self._stats.misses += 1
        view = compute(events)
        self.put(session_id, events, view, options)
        return view

    def invalidate(self, session_id: str) -> bool:
        """Drop one session's entry. Returns True if there was one."""
        return self._entries.pop(session_id, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def get_cache_stats(self) -> Dict[str, Any]:
        stats = self._stats.model_copy(update={"sessions": len(self._entries)})
        return stats.model_dump()
