"""Abstract base classes for the two chunk stores."""

from abc import ABC, abstractmethod

from ..models import Chunk, SearchHit


class VectorStoreBase(ABC):
    """Common interface for nearest-neighbour chunk storage."""

    @abstractmethod
    def add(self, chunk: Chunk, embedding: list[float]) -> None:
        """Add or replace one chunk with its embedding."""

    @abstractmethod
    def query(self, embedding: list[float], limit: int = 10, min_score: float = 0.0) -> list[SearchHit]:
        """Return up to limit hits, best first, each scoring at least min_score."""

    @abstractmethod
    def delete_by_file_path(self, file_path: str, root: str | None = None, source_type: str | None = None) -> None:
        """Remove every chunk of a file, optionally only under one root and source type."""

    @abstractmethod
    def count(self) -> int:
        """Number of stored chunks."""

    @abstractmethod
    def reset(self) -> None:
        """Remove everything."""

    def close(self) -> None:
        """Release resources held by the store."""


class KeywordStoreBase(ABC):
    """Common interface for lexical chunk search."""

    @abstractmethod
    def add_chunks(self, chunks: list[Chunk]) -> None:
        """Add or replace the chunks of one file."""

    @abstractmethod
    def search(self, query: str, limit: int = 10) -> list[SearchHit]:
        """Return up to limit hits, best first."""

    @abstractmethod
    def delete_by_file_path(self, file_path: str, root: str | None = None, source_type: str | None = None) -> int:
        """Remove every chunk of a file, optionally only under one root and source type.

        Returns how many were removed.
        """

    @abstractmethod
    def count(self) -> int:
        """Number of stored chunks."""

    @abstractmethod
    def reset(self) -> None:
        """Remove everything."""

    def close(self) -> None:
        """Release resources held by the store."""
