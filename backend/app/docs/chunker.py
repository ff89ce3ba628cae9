"""Text normalization and overlapping, sentence-aware chunking."""

import re
from dataclasses import dataclass

_SENTENCE_ENDERS = (". ", "! ", "? ", ".\n", "!\n", "?\n")

# How far before / after the ideal cut point to look for a sentence end
_LOOKBEHIND_CHARS = 200
_LOOKAHEAD_CHARS = 100

_HORIZONTAL_WS = re.compile(r"[ \t]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class TextChunk:
    """Slice of normalized text.

    Offsets refer to the normalized text; ``text`` is the stripped slice.
    """

    text: str
    index: int
    start_offset: int
    end_offset: int


def normalize_text(raw: str) -> str:
    """Normalize line endings and collapse redundant whitespace.

    Idempotent: normalizing already-normalized text returns it unchanged.
    """
    text = raw.replace("\r\n", "\n").replace("\r", "\n")
    text = _HORIZONTAL_WS.sub(" ", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


def _find_sentence_end(text: str, start: int, target: int) -> int:
    """Return the sentence boundary closest to ``target``, or ``target`` if none.

    A boundary is the position just after a sentence terminator. Only
    terminators beginning at or before ``target`` are considered, inside the
    window [target - 200, target + 100).
    """
    search_start = max(start, target - _LOOKBEHIND_CHARS)
    search_end = min(len(text), target + _LOOKAHEAD_CHARS)
    window = text[search_start:search_end]
    rel_target = target - search_start

    best_pos = -1
    min_distance: int | None = None

    for ender in _SENTENCE_ENDERS:
        pos = window.rfind(ender, 0, rel_target + len(ender))
        if pos == -1:
            continue
        actual_pos = search_start + pos + len(ender)
        distance = abs(actual_pos - target)
        if min_distance is None or distance < min_distance:
            min_distance = distance
            best_pos = actual_pos

    return best_pos if best_pos > start else target


def chunk_text(
    text: str,
    *,
    max_chunk_size: int = 1000,
    overlap: int = 200,
) -> list[TextChunk]:
    """Split text into overlapping chunks that prefer sentence boundaries.

    Args:
        text: Raw text; normalized before splitting
        max_chunk_size: Maximum characters per chunk window
        overlap: Characters shared between consecutive chunks

    Returns:
        Ordered chunks with 0-based, gap-free indexes. Text that fits in one
        window yields exactly one chunk; empty text yields none.

    Raises:
        ValueError: If max_chunk_size is not positive or overlap is negative
    """
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be positive")
    if overlap < 0:
        raise ValueError("overlap must not be negative")

    cleaned = normalize_text(text)
    if not cleaned:
        return []

    length = len(cleaned)
    if length <= max_chunk_size:
        return [TextChunk(text=cleaned, index=0, start_offset=0, end_offset=length)]

    chunks: list[TextChunk] = []
    cursor = 0

    while cursor < length:
        end = min(cursor + max_chunk_size, length)

        if end < length:
            sentence_end = _find_sentence_end(cleaned, cursor, end)
            if sentence_end > cursor:
                end = sentence_end

        piece = cleaned[cursor:end].strip()
        if piece:
            chunks.append(
                TextChunk(text=piece, index=len(chunks), start_offset=cursor, end_offset=end)
            )

        # The tail is fully covered once a cut lands on the end of the text
        if end >= length:
            break

        next_cursor = end - overlap
        if chunks and next_cursor <= chunks[-1].start_offset:
            next_cursor = end
        cursor = next_cursor

    return chunks


def truncate_text(text: str, max_length: int) -> str:
    """Truncate at the last word boundary before ``max_length`` and append '...'."""
    if len(text) <= max_length:
        return text

    truncated = text[:max_length]
    last_space = truncated.rfind(" ")
    if last_space > 0:
        return truncated[:last_space] + "..."
    return truncated + "..."
