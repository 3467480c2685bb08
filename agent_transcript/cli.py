#!/usr/bin/env python3
"""CLI interface for agent-transcript."""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from .interleave import interleave_turn
from .loader import filter_events_by_date, group_events_by_session, load_events
from .models import (
    ActivityBlock,
    CompactionBlock,
    DelegationGroup,
    MessageBlock,
    SessionLimits,
    TimingMode,
    Turn,
)
from .stats import calculate_delegation_stats
from .timings import (
    log_timing,
    report_timing_statistics,
    set_current_item,
    timing_stat,
)
from .transcript import SessionView, reconstruct_session
from .utils import (
    format_cost,
    format_duration,
    format_timestamp,
    format_timestamp_range,
    format_tokens,
    truncate,
)


def _format_delegation(group: DelegationGroup, indent: str) -> list[str]:
    stats = calculate_delegation_stats(group)
    context = f"{stats.contextPercent}%" if stats.contextPercent is not None else "-"
    header = (
        f"{indent}[delegation {group.id}] -> {group.targetAgentId or '?'} "
        f"({group.status.value}) tools={stats.toolCallCount} "
        f"messages={stats.messageCount} cost={format_cost(stats.costUsd)} "
        f"context={context}"
    )
    lines = [header]
    if group.objective:
        lines.append(f"{indent}  objective: {truncate(group.objective)}")
    return lines


def _format_turn(turn: Turn) -> list[str]:
    end = turn.endTime if turn.endTime is not None else turn.startTime
    state = "active" if turn.isActive else "done"
    header = f"{turn.id} [{format_timestamp_range(turn.startTime, end)}] {turn.agentId or '-'} ({state})"
    if turn.modelLabel:
        header += f" {turn.modelLabel}"
    lines = [header]
    if turn.userMessage is not None:
        lines.append(f"  user: {truncate(turn.userMessage.content)}")

    set_current_item(turn.id)
    with timing_stat("Interleave"):
        interleaved = interleave_turn(turn)

    for block in interleaved.blocks:
        if isinstance(block, MessageBlock):
            lines.append(f"  agent: {truncate(block.event.content)}")
        elif isinstance(block, ActivityBlock):
            kinds = ", ".join(call.tool_kind for call in block.events)
            lines.append(f"  tools: {kinds}")
            for group in block.delegations:
                lines.extend(_format_delegation(group, "    "))
        elif isinstance(block, CompactionBlock):
            lines.append(
                f"  -- context compacted (~{format_tokens(block.marker.tokenEstimate)} tokens) --"
            )
    for group in interleaved.unanchored:
        lines.extend(_format_delegation(group, "  "))
    return lines


def format_session_text(view: SessionView) -> str:
    """Plain-text summary of a reconstructed session."""
    session = view.stats.session
    lines = [
        f"Session started: {format_timestamp(session.startTimestamp) or '-'}",
        f"Messages: {session.totalMessages}  Tool calls: {session.totalToolCalls}  "
        f"Cost: {format_cost(session.totalCostUsd)}",
        f"Tokens: {format_tokens(session.totalInputTokens)} in / "
        f"{format_tokens(session.totalOutputTokens)} out",
        f"Steps: {session.totalSteps}  Turns: {session.totalTurns}  "
        f"Elapsed: {format_duration(session.totalElapsedMs)} ({session.timingMode.value})",
    ]
    if session.limits is not None:
        limits = session.limits
        lines.append(
            f"Limits: steps={limits.max_steps if limits.max_steps is not None else '-'} "
            f"turns={limits.max_turns if limits.max_turns is not None else '-'} "
            f"cost={format_cost(limits.max_cost_usd) if limits.max_cost_usd is not None else '-'}"
        )
    if view.has_multiple_models:
        lines.append("Models: " + ", ".join(dict.fromkeys(e.label for e in view.model_timeline)))

    lines.append("")
    lines.append(f"{'Agent':<20} {'Msgs':>5} {'Tools':>6} {'Cost':>10} {'Context':>9} {'Active':>9}")
    for agent in view.stats.perAgent:
        lines.append(
            f"{agent.agentId:<20} {agent.messageCount:>5} {agent.toolCallCount:>6} "
            f"{format_cost(agent.costUsd):>10} {format_tokens(agent.currentContextTokens):>9} "
            f"{format_duration(agent.activeTimeMs):>9}"
        )

    for turn in view.turns:
        lines.append("")
        lines.extend(_format_turn(turn))
    return "\n".join(lines)


@click.command()
@click.argument("input_path", type=click.Path(path_type=Path))
@click.option(
    "-f",
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format (default: text).",
)
@click.option(
    "--timing-mode",
    type=click.Choice([mode.value for mode in TimingMode]),
    default=TimingMode.TURNS.value,
    help="Derive active time from turn spans (turns) or the lifecycle state machine (legacy).",
)
@click.option("--max-steps", type=int, default=None, help="Session step limit to report.")
@click.option("--max-turns", type=int, default=None, help="Session turn limit to report.")
@click.option(
    "--max-cost-usd", type=float, default=None, help="Session cost limit to report."
)
@click.option(
    "--from-date",
    type=str,
    help='Filter events from this date/time (e.g., "2 hours ago", "yesterday", "2025-06-08")',
)
@click.option(
    "--to-date",
    type=str,
    help='Filter events up to this date/time (e.g., "1 hour ago", "today", "2025-06-08 15:00")',
)
@click.option(
    "--session",
    "session_id",
    type=str,
    default=None,
    help="Only reconstruct events with this session id.",
)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug logging and show full traceback on errors.",
)
def main(
    input_path: Path,
    output_format: str,
    timing_mode: str,
    max_steps: Optional[int],
    max_turns: Optional[int],
    max_cost_usd: Optional[float],
    from_date: Optional[str],
    to_date: Optional[str],
    session_id: Optional[str],
    debug: bool,
) -> None:
    """Reconstruct turns, delegations and statistics from an agent event log.

    INPUT_PATH: Path to a JSONL file of session events.
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    try:
        if not input_path.is_file():
            raise FileNotFoundError(f"Input file not found: {input_path}")

        with log_timing(lambda: f"Load events ({len(events)} events)"):
            events = load_events(input_path)
        events = filter_events_by_date(events, from_date, to_date)

        if session_id is not None:
            sessions = group_events_by_session(events)
            if session_id not in sessions:
                raise ValueError(f"No events found for session {session_id}")
            events = sessions[session_id]

        limits = None
        if max_steps is not None or max_turns is not None or max_cost_usd is not None:
            limits = SessionLimits(
                max_steps=max_steps, max_turns=max_turns, max_cost_usd=max_cost_usd
            )

        view = reconstruct_session(
            events, session_limits=limits, timing_mode=TimingMode(timing_mode)
        )

        if output_format == "json":
            payload = view.model_dump(
                mode="json", include={"stats", "turns", "delegations"}
            )
            click.echo(json.dumps(payload, indent=2))
        else:
            click.echo(format_session_text(view))
            report_timing_statistics()

    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        if debug:
            import traceback

            traceback.print_exc()
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error reconstructing session: {e}", err=True)
        if debug:
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
