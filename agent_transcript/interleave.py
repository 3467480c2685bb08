"""Chronological block sequence for rendering one turn."""

from typing import Callable, Optional, Union

from .models import (
    ActivityBlock,
    AgentEvent,
    Block,
    CompactionBlock,
    CompactionMarker,
    DelegationGroup,
    InterleavedTurn,
    MessageBlock,
    ToolCallEvent,
    Turn,
)

_Item = Union[AgentEvent, ToolCallEvent, CompactionMarker]


def interleave_turn(
    turn: Turn,
    include_tool: Optional[Callable[[ToolCallEvent], bool]] = None,
) -> InterleavedTurn:
    """Merge a turn's messages, tool calls and compaction into ordered blocks.

    Items are ordered by timestamp. On equal timestamps messages come before
    tool calls, and tool calls before the compaction marker (stable sort over
    the concatenation in that order). Consecutive tool calls coalesce into one
    activity block; a message or compaction always ends the running block.

    Args:
        turn: Turn to lay out
        include_tool: Optional predicate; tool calls it rejects are not rendered

    Returns:
        InterleavedTurn with the block list and the delegations whose delegate
        tool call is not in any block
    """
    tool_calls = turn.toolCalls
    if include_tool is not None:
        tool_calls = [call for call in tool_calls if include_tool(call)]

    items: list[_Item] = [*turn.agentMessages, *tool_calls]
    if turn.compaction is not None:
        items.append(turn.compaction)
    items.sort(key=lambda item: item.timestamp)

    groups_by_call: dict[str, list[DelegationGroup]] = {}
    for group in turn.delegations:
        groups_by_call.setdefault(group.delegateToolCallId, []).append(group)

    blocks: list[Block] = []
    anchored: set[str] = set()
    activity: Optional[ActivityBlock] = None

    for item in items:
        if isinstance(item, ToolCallEvent):
            if activity is None:
                activity = ActivityBlock()
                blocks.append(activity)
            activity.events.append(item)
            for group in groups_by_call.get(item.call_key, []):
                if group.id not in anchored:
                    anchored.add(group.id)
                    activity.delegations.append(group)
            continue

        activity = None
        if isinstance(item, CompactionMarker):
            blocks.append(CompactionBlock(marker=item))
        else:
            blocks.append(MessageBlock(event=item))

    unanchored = [g for g in turn.delegations if g.id not in anchored]
    return InterleavedTurn(blocks=blocks, unanchored=unanchored)
