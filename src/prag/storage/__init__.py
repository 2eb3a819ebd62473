"""Chunk storage: a vector store and a keyword store per project."""

from .base import KeywordStoreBase, VectorStoreBase
from .chromadb import ChromaVectorStore
from .keyword import FtsKeywordStore

__all__ = ["ChromaVectorStore", "FtsKeywordStore", "KeywordStoreBase", "VectorStoreBase"]
