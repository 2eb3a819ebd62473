"""Data models used throughout prag."""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator


class IndexStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    INDEXING = "INDEXING"
    READY = "READY"
    WATCHING = "WATCHING"
    FAILED = "FAILED"


class SourceType(str, Enum):
    """Independent knowledge sources tracked per project."""
    FOLDERS = "folders"
    FILES = "files"


@dataclass(frozen=True)
class Chunk:
    """An immutable unit of indexed text."""
    text: str
    file_path: str  # relative to the indexed root, posix separators
    file_name: str
    extension: str
    chunk_index: int
    project_id: str
    source_type: str = SourceType.FOLDERS.value
    root: str = ""  # absolute posix path of the indexed root

    @property
    def chunk_id(self) -> str:
        """Identity shared by the vector and keyword stores.

        Two roots may hold the same relative path, so the root and source type
        are part of it.
        """
        return hashlib.sha256(
            f"{self.project_id}:{self.source_type}:{self.root}:{self.file_path}:{self.chunk_index}".encode()
        ).hexdigest()[:32]

    def to_metadata(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "source_type": self.source_type,
            "root": self.root,
            "file_path": self.file_path,
            "file_name": self.file_name,
            "extension": self.extension,
            "chunk_index": self.chunk_index,
        }

    @classmethod
    def from_metadata(cls, text: str, metadata: dict[str, Any]) -> "Chunk":
        return cls(
            text=text,
            file_path=metadata.get("file_path", ""),
            file_name=metadata.get("file_name", ""),
            extension=metadata.get("extension", ""),
            chunk_index=int(metadata.get("chunk_index", 0)),
            project_id=metadata.get("project_id", ""),
            source_type=metadata.get("source_type", SourceType.FOLDERS.value),
            root=metadata.get("root", ""),
        )


@dataclass(frozen=True)
class FileIndexState:
    project_id: str
    file_path: str
    source_type: str
    file_hash: str
    indexed_at: str
    root: str = ""


@dataclass(frozen=True)
class IndexProgress:
    """Snapshot of indexer state. Replaced whole, never mutated."""
    status: IndexStatus = IndexStatus.NOT_STARTED
    files_indexed: int = 0
    files_total: int = 0
    error: str | None = None
    last_updated: datetime = field(default_factory=datetime.now)

    @property
    def progress_percent(self) -> int:
        if self.files_total <= 0:
            return 0
        return min(100, self.files_indexed * 100 // self.files_total)


@dataclass(frozen=True)
class IndexedFileEntry:
    """In-memory record of a watched file."""
    path: str
    last_modified: float
    indexed: datetime


@dataclass(frozen=True)
class SearchHit:
    """One ranked result from a single store."""
    chunk: Chunk
    score: float

    @property
    def chunk_id(self) -> str:
        return self.chunk.chunk_id


@dataclass(frozen=True)
class ScoredChunk:
    """A chunk with its fused score and the ranks it held in each sub-list."""
    chunk: Chunk
    score: float
    vector_rank: int | None = None
    keyword_rank: int | None = None

    @property
    def text(self) -> str:
        return self.chunk.text


@dataclass(frozen=True)
class ChatMessage:
    role: str  # "user", "assistant" or "system"
    content: str


@dataclass(frozen=True)
class RetrievalResult:
    """Ranked context for one query. Empty when retrieval was skipped."""
    chunks: tuple[ScoredChunk, ...] = ()
    retrieved: bool = True

    @classmethod
    def skipped(cls) -> "RetrievalResult":
        return cls(chunks=(), retrieved=False)

    def __iter__(self) -> Iterator[ScoredChunk]:
        return iter(self.chunks)

    def __len__(self) -> int:
        return len(self.chunks)

    @property
    def is_empty(self) -> bool:
        return not self.chunks

    def as_context(self) -> str:
        """Render the chunks as a prompt-ready block, best first."""
        parts = []
        for i, sc in enumerate(self.chunks, 1):
            parts.append(f"[{i}] {sc.chunk.file_path}:\n{sc.text}")
        return "\n\n---\n\n".join(parts)
