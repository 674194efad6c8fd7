"""
Pattern Relay - Chunker
Boundary-aware text splitting for oversized input and output.

Cuts prefer, in order: a paragraph break near the limit, a sentence
break, a word break, and finally a hard cut at the limit.
"""

from typing import List

DEFAULT_MAX_SIZE = 3800
DEFAULT_DISPLAY_SIZE = 4000

# How far back from the limit each boundary kind may be found
PARAGRAPH_WINDOW = 500
SENTENCE_WINDOW = 200
WORD_WINDOW = 50

CONTINUED_SUFFIX = "\n\n[TO BE CONTINUED]"


def continuation_prefix(part_number: int) -> str:
    """Marker placed before every input chunk after the first."""
    return f"[CONTINUATION - PART {part_number}]\n\n"


# Worst-case marker overhead per chunk, reserved so marked chunks stay within max_size
MARKER_RESERVE = len(continuation_prefix(99999)) + len(CONTINUED_SUFFIX)


def find_boundary(text: str, limit: int) -> int:
    """
    Choose where to cut text that is longer than limit.

    Args:
        text: Remaining text (len(text) > limit)
        limit: Maximum size of the piece being cut off

    Returns:
        Cut position in (0, limit]
    """
    paragraph = text.rfind("\n\n", 0, limit)
    if paragraph != -1 and paragraph > limit - PARAGRAPH_WINDOW:
        return paragraph + 2

    sentence = text.rfind(". ", 0, limit)
    if sentence != -1 and sentence > limit - SENTENCE_WINDOW:
        return sentence + 2

    word = text.rfind(" ", 0, limit)
    if word != -1 and word > limit - WORD_WINDOW:
        return word + 1

    return limit


def _cut_pieces(text: str, limit: int) -> List[str]:
    pieces = []
    remaining = text
    while len(remaining) > limit:
        cut = find_boundary(remaining, limit)
        pieces.append(remaining[:cut])
        remaining = remaining[cut:]
    pieces.append(remaining)
    return pieces


def split(text: str, max_size: int = DEFAULT_MAX_SIZE) -> List[str]:
    """
    Split input for the generation backend.

    Every chunk after the first gets a continuation prefix, and every
    chunk but the last gets a to-be-continued suffix. Chunks including
    their markers never exceed max_size.

    Args:
        text: Input text
        max_size: Maximum chunk size

    Returns:
        Non-empty list of chunks; [text] when it already fits
    """
    if len(text) <= max_size:
        return [text]

    limit = max(1, max_size - MARKER_RESERVE)
    pieces = _cut_pieces(text, limit)

    chunks = []
    last = len(pieces) - 1
    for i, piece in enumerate(pieces):
        chunk = piece
        if i > 0:
            chunk = continuation_prefix(i + 1) + chunk
        if i < last:
            chunk = chunk + CONTINUED_SUFFIX
        chunks.append(chunk)
    return chunks


def split_for_display(text: str, max_size: int = DEFAULT_DISPLAY_SIZE) -> List[str]:
    """
    Split output for a size-limited delivery channel.

    Same boundary search as split, without continuation markers.
    """
    if len(text) <= max_size:
        return [text]
    return _cut_pieces(text, max_size)


def strip_continuation_markers(chunks: List[str]) -> List[str]:
    """
    Remove the markers that split injected.

    "".join(strip_continuation_markers(split(x))) == x
    """
    stripped = []
    last = len(chunks) - 1
    for i, chunk in enumerate(chunks):
        if i > 0:
            prefix = continuation_prefix(i + 1)
            if chunk.startswith(prefix):
                chunk = chunk[len(prefix):]
        if i < last and chunk.endswith(CONTINUED_SUFFIX):
            chunk = chunk[:-len(CONTINUED_SUFFIX)]
        stripped.append(chunk)
    return stripped
