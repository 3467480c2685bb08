"""Phase timing for session reconstruction.

Enabled with the AGENT_TRANSCRIPT_DEBUG_TIMING environment variable ("1",
"true" or "yes"). When disabled every helper here is a no-op.
"""

import os
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Union

DEBUG_TIMING = os.getenv("AGENT_TRANSCRIPT_DEBUG_TIMING", "").lower() in (
    "1",
    "true",
    "yes",
)

# Per-operation samples: name -> [(seconds, item id)]
_samples: dict[str, list[tuple[float, str]]] = {}
_current_item: str = ""


def set_current_item(item_id: str) -> None:
    """Label subsequent timing_stat samples with an item id (e.g. a turn id)."""
    global _current_item
    if DEBUG_TIMING:
        _current_item = item_id


def reset_samples() -> None:
    global _current_item
    _samples.clear()
    _current_item = ""


@contextmanager
def log_timing(
    phase: Union[str, Callable[[], str]],
    t_start: Optional[float] = None,
) -> Iterator[None]:
    """Print how long the wrapped phase took.

    Args:
        phase: Phase name, or a callable evaluated after the phase finishes
        t_start: Start of the whole operation, to also print total elapsed time

    Example:
        with log_timing(lambda: f"Build turns ({len(turns)} turns)", t_start):
            turns = build_turns(events, groups)
    """
    if not DEBUG_TIMING:
        yield
        return

    t_phase_start = time.time()
    try:
        yield
    finally:
        t_now = time.time()
        phase_name = phase() if callable(phase) else phase
        line = f"[TIMING] {phase_name:40s} {t_now - t_phase_start:8.3f}s"
        if t_start is not None:
            line += f" (total: {t_now - t_start:8.3f}s)"
        print(line, flush=True)


@contextmanager
def timing_stat(operation: str) -> Iterator[None]:
    """Record one sample of a repeated operation under `operation`."""
    if not DEBUG_TIMING:
        yield
        return

    t_start = time.time()
    try:
        yield
    finally:
        _samples.setdefault(operation, []).append((time.time() - t_start, _current_item))


def report_timing_statistics(limit: int = 10) -> None:
    """Print totals and the slowest samples for each recorded operation."""
    if not DEBUG_TIMING:
        return
    for operation, samples in _samples.items():
        if not samples:
            continue
        total = sum(duration for duration, _ in samples)
        print(f"\n[TIMING] {operation}:", flush=True)
        print(f"[TIMING]   Total operations: {len(samples)}", flush=True)
        print(f"[TIMING]   Total time: {total:.3f}s", flush=True)
        print(f"[TIMING]   Slowest {limit} operations:", flush=True)
        for duration, item_id in sorted(samples, key=lambda s: s[0], reverse=True)[:limit]:
            print(f"[TIMING]     {item_id}: {duration * 1000:.1f}ms", flush=True)
