"""SQLite FTS5 keyword store with bm25 ranking."""

import logging
import re
import shutil
import sqlite3
import threading
from pathlib import Path

from ..models import Chunk, SearchHit
from .base import KeywordStoreBase

logger = logging.getLogger(__name__)

SCHEMA_VERSIONS_DDL = """
CREATE TABLE IF NOT EXISTS schema_versions (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

CHUNKS_DDL = """
CREATE TABLE IF NOT EXISTS chunks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chunk_id TEXT NOT NULL UNIQUE,
    project_id TEXT NOT NULL,
    file_path TEXT NOT NULL,
    file_name TEXT NOT NULL,
    extension TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    content TEXT NOT NULL
);
"""

CHUNKS_FTS_DDL = """
CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(
    content, file_name,
    content='chunks', content_rowid='id',
    tokenize='porter unicode61'
);
"""

FTS_TRIGGERS = [
    """
    CREATE TRIGGER IF NOT EXISTS chunks_ai AFTER INSERT ON chunks BEGIN
        INSERT INTO chunks_fts(rowid, content, file_name)
        VALUES (new.id, new.content, new.file_name);
    END;
    """,
    """
    CREATE TRIGGER IF NOT EXISTS chunks_ad AFTER DELETE ON chunks BEGIN
        INSERT INTO chunks_fts(chunks_fts, rowid, content, file_name)
        VALUES ('delete', old.id, old.content, old.file_name);
    END;
    """,
    """
    CREATE TRIGGER IF NOT EXISTS chunks_au AFTER UPDATE ON chunks BEGIN
        INSERT INTO chunks_fts(chunks_fts, rowid, content, file_name)
        VALUES ('delete', old.id, old.content, old.file_name);
        INSERT INTO chunks_fts(rowid, content, file_name)
        VALUES (new.id, new.content, new.file_name);
    END;
    """,
]

MIGRATIONS: dict[int, list[str]] = {
    1: [
        CHUNKS_DDL,
        CHUNKS_FTS_DDL,
        *FTS_TRIGGERS,
        "CREATE INDEX IF NOT EXISTS idx_chunks_file_path ON chunks(file_path);",
    ],
    2: [
        "ALTER TABLE chunks ADD COLUMN source_type TEXT NOT NULL DEFAULT 'folders';",
        "ALTER TABLE chunks ADD COLUMN root TEXT NOT NULL DEFAULT '';",
        "CREATE INDEX IF NOT EXISTS idx_chunks_scope ON chunks(project_id, source_type, root, file_path);",
    ],
}

_TOKEN = re.compile(r"\w+", re.UNICODE)


def to_match_query(query: str) -> str:
    """Turn free text into an FTS5 MATCH expression: quoted terms joined by OR."""
    terms = _TOKEN.findall(query)
    return " OR ".join(f'"{t}"' for t in terms)


def _run_migrations(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL")
    conn.executescript(SCHEMA_VERSIONS_DDL)
    current = conn.execute("SELECT MAX(version) FROM schema_versions").fetchone()[0] or 0
    for version in sorted(MIGRATIONS):
        if version <= current:
            continue
        for statement in MIGRATIONS[version]:
            conn.executescript(statement)
        conn.execute("INSERT INTO schema_versions (version) VALUES (?)", (version,))
    conn.commit()


class FtsKeywordStore(KeywordStoreBase):
    """Lexical index over chunks, one database per project.

    When project_id is given, searches and deletes only see that project's chunks.
    """

    DB_NAME = "keywords.db"

    def __init__(self, index_dir: str | Path, project_id: str | None = None) -> None:
        self.index_dir = Path(index_dir)
        self.project_id = project_id
        self._lock = threading.Lock()
        self._conn = self._open()

    def _open(self) -> sqlite3.Connection:
        self.index_dir.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.index_dir / self.DB_NAME), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        _run_migrations(conn)
        return conn

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def add_chunks(self, chunks: list[Chunk]) -> None:
        if not chunks:
            return
        with self._lock, self._conn:
            self._conn.executemany(
                """INSERT INTO chunks
                   (chunk_id, project_id, source_type, root, file_path, file_name, extension, chunk_index, content)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(chunk_id) DO UPDATE SET content = excluded.content""",
                [
                    (
                        c.chunk_id,
                        c.project_id,
                        c.source_type,
                        c.root,
                        c.file_path,
                        c.file_name,
                        c.extension,
                        c.chunk_index,
                        c.text,
                    )
                    for c in chunks
                ],
            )

    def search(self, query: str, limit: int = 10) -> list[SearchHit]:
        """bm25-ranked search. Higher score is better."""
        match = to_match_query(query)
        if not match:
            return []
        sql = """SELECT c.project_id, c.source_type, c.root, c.file_path, c.file_name, c.extension,
                        c.chunk_index, c.content, bm25(chunks_fts) AS rank
                 FROM chunks c
                 JOIN chunks_fts ON chunks_fts.rowid = c.id
                 WHERE chunks_fts MATCH ?"""
        params: list = [match]
        if self.project_id is not None:
            sql += " AND c.project_id = ?"
            params.append(self.project_id)
        sql += " ORDER BY rank LIMIT ?"
        params.append(limit)
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()

        # bm25() is lower-is-better
        return [
            SearchHit(
                chunk=Chunk(
                    text=r["content"],
                    file_path=r["file_path"],
                    file_name=r["file_name"],
                    extension=r["extension"],
                    chunk_index=r["chunk_index"],
                    project_id=r["project_id"],
                    source_type=r["source_type"],
                    root=r["root"],
                ),
                score=-r["rank"],
            )
            for r in rows
        ]

    def delete_by_file_path(self, file_path: str, root: str | None = None, source_type: str | None = None) -> int:
        sql = "DELETE FROM chunks WHERE file_path = ?"
        params = [file_path]
        for column, value in (("project_id", self.project_id), ("source_type", source_type), ("root", root)):
            if value is not None:
                sql += f" AND {column} = ?"
                params.append(value)
        with self._lock, self._conn:
            return self._conn.execute(sql, params).rowcount

    def count(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]

    def reset(self) -> None:
        """Drop the on-disk index and start empty."""
        with self._lock:
            self._conn.close()
            shutil.rmtree(self.index_dir, ignore_errors=True)
            self._conn = self._open()
        logger.info("Keyword index reset at %s", self.index_dir)
