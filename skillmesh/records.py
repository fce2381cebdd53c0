"""Record database used by the skill store.

Every entity is a JSON document addressed by ``(table, id)``. The store
only needs create/read/update/merge/delete and equality queries, so the
SQLite implementation keeps one generic table.
"""

import contextlib
import json
import logging
import sqlite3
import threading
from collections.abc import Generator
from pathlib import Path
from typing import Any, Protocol

from skillmesh.errors import SkillMeshError

logger = logging.getLogger(__name__)


class RecordStoreError(SkillMeshError):
    """Raised when the record database rejects an operation."""

    code = "RECORD_STORE"


class RecordStore(Protocol):
    """Minimal record database contract."""

    def create(self, table: str, record_id: str, data: dict[str, Any]) -> None: ...

    def get(self, table: str, record_id: str) -> dict[str, Any] | None: ...

    def update(self, table: str, record_id: str, data: dict[str, Any]) -> None: ...

    def merge(self, table: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]: ...

    def delete(self, table: str, record_id: str) -> bool: ...

    def query(self, table: str, **equals: Any) -> list[dict[str, Any]]: ...

    def delete_where(self, table: str, **equals: Any) -> int: ...


@contextlib.contextmanager
def _db_connection(db_path: str) -> Generator[sqlite3.Connection, None, None]:
    """Open a WAL-mode connection that commits on success and always closes."""
    conn = sqlite3.connect(db_path, timeout=10.0)
    conn.execute("PRAGMA journal_mode=WAL")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _where(equals: dict[str, Any]) -> tuple[str, list[Any]]:
    clauses = ["table_name = ?"]
    params: list[Any] = []
    for key, value in equals.items():
        path = f'$."{key}"'
        if value is None:
            clauses.append("json_extract(data, ?) IS NULL")
            params.append(path)
        else:
            clauses.append("json_extract(data, ?) = ?")
            params.extend([path, value])
    return " AND ".join(clauses), params


class SQLiteRecordStore:
    """JSON documents in a single SQLite table.

    Thread-safe: every operation holds an RLock and uses its own connection.
    Returned documents always carry their ``id``.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._lock = threading.RLock()
        self._init_db()

    def _init_db(self) -> None:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self._lock, _db_connection(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                    table_name TEXT NOT NULL,
                    id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (table_name, id)
                )
                """
            )

    @staticmethod
    def _decode(record_id: str, raw: str) -> dict[str, Any]:
        data = json.loads(raw)
        data["id"] = record_id
        return data

    @staticmethod
    def _encode(record_id: str, data: dict[str, Any]) -> str:
        payload = dict(data)
        payload["id"] = record_id
        return json.dumps(payload, ensure_ascii=False)

    def create(self, table: str, record_id: str, data: dict[str, Any]) -> None:
        with self._lock:
            try:
                with _db_connection(self.db_path) as conn:
                    conn.execute(
                        "INSERT INTO records (table_name, id, data) VALUES (?, ?, ?)",
                        (table, record_id, self._encode(record_id, data)),
                    )
            except sqlite3.IntegrityError as e:
                raise RecordStoreError(f"record {table}:{record_id} already exists") from e

    def get(self, table: str, record_id: str) -> dict[str, Any] | None:
        with self._lock, _db_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT data FROM records WHERE table_name = ? AND id = ?",
                (table, record_id),
            ).fetchone()
        if row is None:
            return None
        return self._decode(record_id, row[0])

    def update(self, table: str, record_id: str, data: dict[str, Any]) -> None:
        """Replace a document, creating it when missing."""
        with self._lock, _db_connection(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO records (table_name, id, data) VALUES (?, ?, ?)",
                (table, record_id, self._encode(record_id, data)),
            )

    def merge(self, table: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Merge keys into a document (upsert). Returns the merged document."""
        with self._lock:
            merged = self.get(table, record_id) or {}
            merged.update(data)
            self.update(table, record_id, merged)
            merged["id"] = record_id
            return merged

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock, _db_connection(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM records WHERE table_name = ? AND id = ?",
                (table, record_id),
            )
            return cursor.rowcount > 0

    def query(self, table: str, **equals: Any) -> list[dict[str, Any]]:
        where, params = _where(equals)
        with self._lock, _db_connection(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT id, data FROM records WHERE {where} ORDER BY id",
                [table, *params],
            ).fetchall()
        return [self._decode(record_id, raw) for record_id, raw in rows]

    def delete_where(self, table: str, **equals: Any) -> int:
        where, params = _where(equals)
        with self._lock, _db_connection(self.db_path) as conn:
            cursor = conn.execute(f"DELETE FROM records WHERE {where}", [table, *params])
            count = cursor.rowcount
        if count:
            logger.debug(f"Deleted {count} record(s) from {table} where {equals}")
        return count
