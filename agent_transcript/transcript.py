"""Reconstruct a full session view from its event history."""

import logging
import time
from typing import Any, Callable, Optional

from pydantic import BaseModel

from .cache import ReconstructionCache
from .delegations import build_delegation_groups
from .models import (
    CalculatedStats,
    DelegationGroup,
    Event,
    ModelTimelineEntry,
    SessionLimits,
    TimingMode,
    Turn,
)
from .stats import calculate_stats
from .timings import log_timing
from .turns import build_model_timeline, build_turns, has_multiple_models

logger = logging.getLogger(__name__)

# requestAgentConfig(configId, callback) as provided by the host application
RequestAgentConfig = Callable[[int, Callable[[Any], None]], None]


class SessionView(BaseModel):
    """Everything a consumer needs to render one session."""

    turns: list[Turn] = []
    delegations: list[DelegationGroup] = []
    stats: CalculatedStats
    model_timeline: list[ModelTimelineEntry] = []
    has_multiple_models: bool = False


def reconstruct_session(
    events: list[Event],
    session_limits: Optional[SessionLimits] = None,
    timing_mode: TimingMode = TimingMode.TURNS,
    now: Optional[int] = None,
    cache: Optional[ReconstructionCache] = None,
    session_id: Optional[str] = None,
) -> SessionView:
    """Build delegation groups, turns and statistics for one session.

    Args:
        events: Full ordered event history of the session
        session_limits: Limits passed through into the session stats
        timing_mode: TURNS or LEGACY duration computation
        now: Reference time (ms) for work still in progress
        cache: Optional cache; used only together with session_id
        session_id: Key for the cache entry

    Returns:
        SessionView with turns, delegations (by start time) and stats
    """
    if cache is not None and session_id is not None:
        return cache.get_or_compute(
            session_id,
            events,
            lambda evs: reconstruct_session(evs, session_limits, timing_mode, now),
            options=(session_limits, timing_mode, now),
        )

    t_start = time.time()
    with log_timing(lambda: f"Group delegations ({len(groups)} groups)", t_start):
        groups = build_delegation_groups(events)
    with log_timing(lambda: f"Build turns ({len(turns)} turns)", t_start):
        turns = build_turns(events, groups)
    with log_timing("Calculate stats", t_start):
        stats = calculate_stats(
            events,
            session_limits=session_limits,
            timing_mode=timing_mode,
            turns=turns,
            now=now,
        )
    timeline = build_model_timeline(events)

    logger.debug(
        "Reconstructed %d events into %d turns and %d delegations",
        len(events),
        len(turns),
        len(groups),
    )
    return SessionView(
        turns=turns,
        delegations=groups,
        stats=stats,
        model_timeline=timeline,
        has_multiple_models=has_multiple_models(timeline),
    )


def request_model_configs(
    turns: list[Turn],
    request_agent_config: RequestAgentConfig,
    callback: Callable[[int, Any], None],
) -> list[int]:
    """Ask the host for display metadata of every model config the turns use.

    Each distinct `modelConfigId` is requested once, in first-seen order. The
    host calls back asynchronously or not at all; nothing is cached here.

    Returns:
        The config ids that were requested
    """
    requested: list[int] = []
    for turn in turns:
        config_id = turn.modelConfigId
        if config_id is None or config_id in requested:
            continue
        requested.append(config_id)
        request_agent_config(config_id, lambda details, cid=config_id: callback(cid, details))
    return requested
