"""Character-based chunking with a little format awareness."""

STRUCTURED_EXTENSIONS = {"json", "xml"}


def effective_limits(max_chars: int, overlap_chars: int, extension: str = "") -> tuple[int, int]:
    """Return (max, overlap) after format adjustment.

    Structured formats get smaller chunks so nested content is split less often;
    the result never exceeds max_chars. Overlap is capped at a quarter of the max.
    """
    effective_max = max_chars
    if extension.lower().lstrip(".") in STRUCTURED_EXTENSIONS:
        effective_max = min(max_chars, max(1500, int(max_chars * 0.75)))
    effective_overlap = min(max(overlap_chars, 0), effective_max // 4)
    return effective_max, effective_overlap


def chunk_spans(text: str, max_chars: int, overlap_chars: int, extension: str = "") -> list[tuple[int, int]]:
    """Compute [start, end) spans covering text.

    Each span ends on the last newline before the limit when that newline lies
    past the midpoint of the window; the next span starts `overlap` characters
    before the previous end.
    """
    if not text:
        return []

    limit, overlap = effective_limits(max_chars, overlap_chars, extension)
    if len(text) <= limit:
        return [(0, len(text))]

    spans: list[tuple[int, int]] = []
    start = 0
    while start < len(text):
        end = min(start + limit, len(text))

        if end < len(text):
            last_nl = text.rfind("\n", start, end)
            if last_nl >= start + limit // 2:
                end = last_nl + 1

        spans.append((start, end))
        if end == len(text):
            break

        next_start = max(0, end - overlap)
        # Always advance
        start = next_start if next_start > start else end
    return spans


def chunk_text(text: str, max_chars: int = 4000, overlap_chars: int = 200, extension: str = "") -> list[str]:
    """Split text into overlapping chunks.

    Args:
        text: The text to chunk.
        max_chars: Maximum characters per chunk.
        overlap_chars: Characters shared by consecutive chunks.
        extension: File extension used as a format hint (json/xml get smaller chunks).

    Returns:
        List of text chunks in order. Empty or whitespace-only text yields none.
    """
    if not text.strip():
        return []
    return [text[s:e] for s, e in chunk_spans(text, max_chars, overlap_chars, extension)]
