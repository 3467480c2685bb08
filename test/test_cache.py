#!/usr/bin/env python3
"""Tests for the session reconstruction cache."""

import pytest

from agent_transcript.cache import ReconstructionCache
from agent_transcript.models import SessionLimits, TimingMode
from agent_transcript.transcript import reconstruct_session


@pytest.fixture
def events(ev):
    return [ev.user("hi"), ev.message("hello"), ev.request_end("stop")]


class TestReconstructionCache:
    def test_reuses_view_for_same_list(self, events):
        cache = ReconstructionCache()

        first = reconstruct_session(events, cache=cache, session_id="s1")
        second = reconstruct_session(events, cache=cache, session_id="s1")

        assert second is first
        assert cache.get_cache_stats() == {
            "sessions": 1,
            "hits": 1,
            "misses": 1,
            "evictions": 0,
        }

    def test_append_invalidates(self, ev, events):
        """Appending to the cached list changes its length and forces a rebuild."""
        cache = ReconstructionCache()
        first = reconstruct_session(events, cache=cache, session_id="s1")

        events.append(ev.user("again"))
        second = reconstruct_session(events, cache=cache, session_id="s1")

        assert second is not first
        assert len(second.turns) == 2

    def test_equal_but_different_list_recomputes(self, events):
        cache = ReconstructionCache()
        first = reconstruct_session(events, cache=cache, session_id="s1")

        second = reconstruct_session(list(events), cache=cache, session_id="s1")

        assert second is not first
        assert second == first

    def test_timing_mode_change_recomputes(self, events):
        """The same list under a different timing mode is not a cache hit."""
        cache = ReconstructionCache()
        turns_view = reconstruct_session(
            events, cache=cache, session_id="s1", timing_mode=TimingMode.TURNS
        )

        legacy_view = reconstruct_session(
            events, cache=cache, session_id="s1", timing_mode=TimingMode.LEGACY
        )

        assert turns_view.stats.session.timingMode == TimingMode.TURNS
        assert legacy_view.stats.session.timingMode == TimingMode.LEGACY
        assert cache.get_cache_stats()["hits"] == 0

    def test_limits_and_now_change_recompute(self, events):
        cache = ReconstructionCache()
        reconstruct_session(events, cache=cache, session_id="s1")

        limited = reconstruct_session(
            events,
            cache=cache,
            session_id="s1",
            session_limits=SessionLimits(max_steps=5),
        )
        assert limited.stats.session.limits == SessionLimits(max_steps=5)

        again = reconstruct_session(
            events,
            cache=cache,
            session_id="s1",
            session_limits=SessionLimits(max_steps=5),
        )
        assert again is limited

        later = reconstruct_session(
            events,
            cache=cache,
            session_id="s1",
            session_limits=SessionLimits(max_steps=5),
            now=99_000,
        )
        assert later is not limited
        assert cache.get_cache_stats()["hits"] == 1

    def test_no_session_id_bypasses_cache(self, events):
        cache = ReconstructionCache()

        reconstruct_session(events, cache=cache)

        assert len(cache) == 0

    def test_lru_eviction(self, events):
        cache = ReconstructionCache(max_sessions=2)
        reconstruct_session(events, cache=cache, session_id="a")
        reconstruct_session(events, cache=cache, session_id="b")
        # Touch "a" so "b" is the least recently used
        reconstruct_session(events, cache=cache, session_id="a")
        reconstruct_session(events, cache=cache, session_id="c")

        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache
        assert cache.get_cache_stats()["evictions"] == 1

    def test_invalidate_and_clear(self, events):
        cache = ReconstructionCache()
        reconstruct_session(events, cache=cache, session_id="a")
        reconstruct_session(events, cache=cache, session_id="b")

        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False
        assert "a" not in cache

        cache.clear()
        assert len(cache) == 0

    def test_get_returns_none_for_unknown_session(self, events):
        assert ReconstructionCache().get("missing", events) is None

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            ReconstructionCache(max_sessions=0)
