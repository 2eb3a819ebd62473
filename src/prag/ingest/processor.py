"""Turn a file on disk into chunks ready for both stores."""

import hashlib
import locale
import logging
from pathlib import Path

from ..models import Chunk, SourceType
from .chunker import chunk_text
from .extractors import EXTRACTORS

logger = logging.getLogger(__name__)


def compute_hash(file_path: Path) -> str:
    """SHA256 of the file's bytes."""
    h = hashlib.sha256()
    with open(file_path, "rb") as f:
        for block in iter(lambda: f.read(65536), b""):
            h.update(block)
    return h.hexdigest()


def file_extension(file_path: Path | str) -> str:
    """Lowercase extension without the dot, or "" when there is none."""
    return Path(file_path).suffix.lower().lstrip(".")


def read_text_safely(file_path: Path) -> str:
    """Read a text file, trying UTF-8, then the platform default, then ASCII."""
    data = file_path.read_bytes()
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        pass

    fallback = locale.getpreferredencoding(False)
    try:
        return data.decode(fallback)
    except (UnicodeDecodeError, LookupError):
        logger.debug("Falling back to ASCII for %s", file_path)
        return data.decode("ascii", errors="replace")


def extract_text(file_path: Path) -> str:
    """Extract the text of a file using a format extractor when one exists."""
    extractor = EXTRACTORS.get(file_extension(file_path))
    if extractor is not None:
        return extractor(file_path)
    return read_text_safely(file_path)


def build_file_header(rel_path: str, file_name: str, extension: str) -> str:
    return f"FILE: {rel_path}\nNAME: {file_name}\nEXT: {extension}\n---\n"


def build_chunks(
    text: str,
    rel_path: str,
    project_id: str,
    max_chars: int,
    overlap_chars: int,
    source_type: str = SourceType.FOLDERS.value,
    root: str = "",
) -> list[Chunk]:
    """Prefix the header and split text into Chunk objects.

    Args:
        text: Extracted file text.
        rel_path: Path relative to the indexed root, posix separators.
        project_id: Owning project.
        max_chars: Chunk size limit.
        overlap_chars: Overlap between consecutive chunks.
        source_type: "folders" or "files".
        root: Absolute posix path of the indexed root.

    Returns:
        Chunks in index order; none when text is blank.
    """
    if not text.strip():
        return []

    file_name = rel_path.rsplit("/", 1)[-1]
    ext = file_extension(file_name)
    content = build_file_header(rel_path, file_name, ext) + text

    return [
        Chunk(
            text=piece,
            file_path=rel_path,
            file_name=file_name,
            extension=ext,
            chunk_index=i,
            project_id=project_id,
            source_type=source_type,
            root=root,
        )
        for i, piece in enumerate(chunk_text(content, max_chars, overlap_chars, ext))
    ]
