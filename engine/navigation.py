"""
Pattern Relay - Navigation
Cursor movement over chunk sets, with lazy chunking of stored text.
"""

import time
from enum import Enum
from typing import Tuple

from engine import chunker
from engine.session import ChunkSet, PatternResult, SessionState


class Direction(Enum):
    """Cursor movement directions."""
    NEXT = "next"
    PREV = "prev"
    FIRST = "first"
    LAST = "last"


def move(cursor: int, direction: Direction, length: int) -> Tuple[int, bool]:
    """
    Move a cursor within [0, length-1].

    next/prev clamp at the bounds instead of wrapping; first/last jump.

    Args:
        cursor: Current position
        direction: Where to move
        length: Number of items (> 0)

    Returns:
        Tuple of (new cursor, whether it moved)
    """
    if length <= 0:
        raise ValueError("Cannot navigate an empty chunk set")

    cursor = min(max(cursor, 0), length - 1)
    if direction == Direction.NEXT:
        target = min(cursor + 1, length - 1)
    elif direction == Direction.PREV:
        target = max(cursor - 1, 0)
    elif direction == Direction.FIRST:
        target = 0
    else:
        target = length - 1
    return target, target != cursor


def ensure_input_chunks(state: SessionState, max_size: int = chunker.DEFAULT_MAX_SIZE) -> ChunkSet:
    """Chunk the original input on first use."""
    if state.chunk_set is None:
        state.chunk_set = ChunkSet(chunks=chunker.split(state.original_input, max_size))
    return state.chunk_set


def ensure_output_chunks(result: PatternResult, max_size: int = chunker.DEFAULT_DISPLAY_SIZE) -> PatternResult:
    """Chunk a stored result for display on first use."""
    if not result.chunks:
        result.chunks = chunker.split_for_display(result.output, max_size)
        result.cursor = 0
    return result


def navigate_input(
    state: SessionState,
    direction: Direction,
    max_size: int = chunker.DEFAULT_MAX_SIZE
) -> Tuple[ChunkSet, bool]:
    """
    Move the input chunk cursor.

    Returns:
        Tuple of (chunk set, whether the cursor moved)
    """
    chunk_set = ensure_input_chunks(state, max_size)
    chunk_set.cursor, moved = move(chunk_set.cursor, direction, len(chunk_set.chunks))
    chunk_set.last_accessed_at = time.time()
    return chunk_set, moved


def navigate_output(
    result: PatternResult,
    direction: Direction,
    max_size: int = chunker.DEFAULT_DISPLAY_SIZE
) -> Tuple[PatternResult, bool]:
    """
    Move a result's display cursor.

    Returns:
        Tuple of (result, whether the cursor moved)
    """
    ensure_output_chunks(result, max_size)
    result.cursor, moved = move(result.cursor or 0, direction, len(result.chunks))
    return result, moved
