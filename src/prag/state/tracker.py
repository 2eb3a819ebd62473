"""Persistent per-file content hashes, scoped by project, source type and root."""

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path

from ..models import FileIndexState

logger = logging.getLogger(__name__)

SCHEMA_VERSIONS_DDL = """
CREATE TABLE IF NOT EXISTS schema_versions (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

INDEX_FILE_STATE_DDL = """
CREATE TABLE IF NOT EXISTS index_file_state (
    project_id TEXT NOT NULL,
    file_path TEXT NOT NULL,
    source_type TEXT NOT NULL,
    file_hash TEXT NOT NULL,
    indexed_at TEXT NOT NULL,
    PRIMARY KEY (project_id, file_path, source_type)
);
"""

# Relative paths alone collide across roots; the root joins the key.
INDEX_FILE_STATE_V2_DDL = """
CREATE TABLE IF NOT EXISTS index_file_state_v2 (
    project_id TEXT NOT NULL,
    source_type TEXT NOT NULL,
    root TEXT NOT NULL DEFAULT '',
    file_path TEXT NOT NULL,
    file_hash TEXT NOT NULL,
    indexed_at TEXT NOT NULL,
    PRIMARY KEY (project_id, source_type, root, file_path)
);
"""

MIGRATIONS: dict[int, list[str]] = {
    1: [
        INDEX_FILE_STATE_DDL,
        "CREATE INDEX IF NOT EXISTS idx_file_state_project ON index_file_state(project_id, source_type);",
    ],
    2: [
        INDEX_FILE_STATE_V2_DDL,
        """INSERT INTO index_file_state_v2 (project_id, source_type, root, file_path, file_hash, indexed_at)
           SELECT project_id, source_type, '', file_path, file_hash, indexed_at FROM index_file_state;""",
        "DROP TABLE index_file_state;",
        "ALTER TABLE index_file_state_v2 RENAME TO index_file_state;",
        "CREATE INDEX IF NOT EXISTS idx_file_state_project ON index_file_state(project_id, source_type, root);",
    ],
}


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


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()




def _scope(project_id: str, source_type: str, root: str | None) -> tuple[str, list]:
    """WHERE clause for one source type, or one root of it when root is given."""
    sql = "project_id = ? AND source_type = ?"
    params = [project_id, source_type]
    if root is not None:
        sql += " AND root = ?"
        params.append(root)
    return sql, params


class IndexStateTracker:
    """Maps (project_id, source_type, root, file_path) to the hash of the last indexed content.

    file_path is relative to root. Queries that take an optional root cover
    every root of the source type when it is None. One tracker is shared by
    every project indexer; access to the connection is serialized with a lock.
    """

    def __init__(self, path: str | Path = ":memory:") -> None:
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        _run_migrations(self._conn)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def get_hash(self, project_id: str, file_path: str, source_type: str, root: str = "") -> str | None:
        with self._lock:
            row = self._conn.execute(
                """SELECT file_hash FROM index_file_state
                   WHERE project_id = ? AND source_type = ? AND root = ? AND file_path = ?""",
                (project_id, source_type, root, file_path),
            ).fetchone()
        return row["file_hash"] if row else None

    def get_state(self, project_id: str, file_path: str, source_type: str, root: str = "") -> FileIndexState | None:
        with self._lock:
            row = self._conn.execute(
                """SELECT * FROM index_file_state
                   WHERE project_id = ? AND source_type = ? AND root = ? AND file_path = ?""",
                (project_id, source_type, root, file_path),
            ).fetchone()
        if row is None:
            return None
        return FileIndexState(
            project_id=row["project_id"],
            file_path=row["file_path"],
            source_type=row["source_type"],
            file_hash=row["file_hash"],
            indexed_at=row["indexed_at"],
            root=row["root"],
        )

    def get_all_hashes(self, project_id: str, source_type: str, root: str | None = None) -> dict[str, str]:
        where, params = _scope(project_id, source_type, root)
        with self._lock:
            rows = self._conn.execute(
                f"SELECT file_path, file_hash FROM index_file_state WHERE {where}", params
            ).fetchall()
        return {r["file_path"]: r["file_hash"] for r in rows}

    def get_all_file_paths(self, project_id: str, source_type: str, root: str | None = None) -> set[str]:
        where, params = _scope(project_id, source_type, root)
        with self._lock:
            rows = self._conn.execute(f"SELECT file_path FROM index_file_state WHERE {where}", params).fetchall()
        return {r["file_path"] for r in rows}

    def get_file_count(self, project_id: str, source_type: str, root: str | None = None) -> int:
        where, params = _scope(project_id, source_type, root)
        with self._lock:
            return self._conn.execute(f"SELECT COUNT(*) FROM index_file_state WHERE {where}", params).fetchone()[0]

    def save_hash(self, project_id: str, file_path: str, source_type: str, file_hash: str, root: str = "") -> None:
        with self._lock, self._conn:
            self._conn.execute(
                """INSERT INTO index_file_state (project_id, source_type, root, file_path, file_hash, indexed_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(project_id, source_type, root, file_path)
                   DO UPDATE SET file_hash = excluded.file_hash, indexed_at = excluded.indexed_at""",
                (project_id, source_type, root, file_path, file_hash, _now()),
            )

    def batch_save(self, project_id: str, source_type: str, hashes: dict[str, str], root: str | None = None) -> None:
        """Replace the state of a source type, or of one root of it, with hashes in one transaction."""
        where, params = _scope(project_id, source_type, root)
        now = _now()
        with self._lock, self._conn:
            self._conn.execute(f"DELETE FROM index_file_state WHERE {where}", params)
            self._conn.executemany(
                """INSERT INTO index_file_state (project_id, source_type, root, file_path, file_hash, indexed_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                [(project_id, source_type, root or "", fp, h, now) for fp, h in hashes.items()],
            )

    def remove_deleted(self, project_id: str, source_type: str, file_paths, root: str | None = None) -> int:
        """Forget the given paths. Returns how many rows were removed."""
        paths = list(file_paths)
        if not paths:
            return 0
        where, params = _scope(project_id, source_type, root)
        with self._lock, self._conn:
            cur = self._conn.executemany(
                f"DELETE FROM index_file_state WHERE {where} AND file_path = ?",
                [(*params, fp) for fp in paths],
            )
            return cur.rowcount

    def clear_project_source_state(self, project_id: str, source_type: str) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "DELETE FROM index_file_state WHERE project_id = ? AND source_type = ?",
                (project_id, source_type),
            )

    def clear_project_state(self, project_id: str) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM index_file_state WHERE project_id = ?", (project_id,))
        logger.info("Cleared index state for project %s", project_id)
