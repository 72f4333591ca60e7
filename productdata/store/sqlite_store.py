"""
SQLite entry store for the Product Data Service.

Each SKU is one row holding its full document as JSON. Filters are
translated to SQLite JSON functions (see ``productdata.query.sql``), so
queries run inside the database rather than in Python.

Invariants:
    - ``sku`` is UNIQUE; upserts use INSERT ... ON CONFLICT(sku) DO UPDATE
    - One upsert_batch call is one transaction (BEGIN IMMEDIATE / COMMIT)
    - Rows keep their rowid on update, so insertion order is stable
    - Every sqlite3.Error leaves this module as a StoreError

How to change safely:
    - Schema changes must be backward compatible with existing files
    - Keep filter semantics in step with the memory store
    - Use transactions for all write operations

Table schema:
    skus:
        - id TEXT (UUID) PRIMARY KEY
        - sku TEXT NOT NULL UNIQUE
        - data TEXT (JSON document)
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence

from ..errors import StoreError, ValidationError
from ..models import SkuEntry
from ..query.filter import parse_filter, parse_orderby
from ..query.sql import order_by_sql, to_sql
from .base import DEFAULT_MAX_OPS_PER_CALL, UpsertInstruction, is_blank

logger = logging.getLogger(__name__)

# Stay well below SQLite's bound-parameter limit for IN (...) lists
_KEY_CHUNK_SIZE = 500


class SqliteEntryStore:
    """SQLite implementation of EntryStore.

    Thread safety:
        Each database connection is created per-operation.
        SQLite handles concurrent access via WAL mode.

    Example:
        >>> store = SqliteEntryStore("/var/lib/product-data/skus.db")
        >>> store.count_all()
        0
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        database_path: str,
        max_ops_per_call: int = DEFAULT_MAX_OPS_PER_CALL,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the store and create the schema if needed.

        Args:
            database_path: SQLite database file
            max_ops_per_call: Maximum instructions accepted by upsert_batch
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        if max_ops_per_call < 1:
            raise ValueError(f"max_ops_per_call must be positive, got {max_ops_per_call}")
        self.database_path = Path(database_path)
        self.max_ops_per_call = max_ops_per_call
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._initialize()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection for one operation."""
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.database_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")

            yield conn
        finally:
            conn.close()

    def _initialize(self) -> None:
        try:
            with self._get_connection() as conn:
                conn.executescript("""
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INTEGER PRIMARY KEY,
                        applied_at INTEGER NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS skus (
                        id TEXT PRIMARY KEY,
                        sku TEXT NOT NULL UNIQUE,
                        data TEXT NOT NULL
                    );

                    INSERT OR IGNORE INTO schema_version (version, applied_at)
                    VALUES (1, strftime('%s', 'now') * 1000);
                """)
        except sqlite3.Error as exc:
            raise StoreError(f"failed to initialize database: {exc}", operation="initialize") from exc
        logger.info("Initialized SKU database", extra={"path": str(self.database_path)})

    @staticmethod
    def _entries(rows: Iterable[sqlite3.Row]) -> List[SkuEntry]:
        return [SkuEntry.from_dict(json.loads(row["data"])) for row in rows]

    def fetch_by_keys(self, keys: Iterable[str]) -> List[SkuEntry]:
        distinct = list(dict.fromkeys(keys))
        if not distinct:
            return []
        found: dict[str, tuple[int, SkuEntry]] = {}
        try:
            with self._get_connection() as conn:
                for start in range(0, len(distinct), _KEY_CHUNK_SIZE):
                    chunk = distinct[start : start + _KEY_CHUNK_SIZE]
                    placeholders = ", ".join("?" for _ in chunk)
                    cursor = conn.execute(
                        f"SELECT rowid, sku, data FROM skus WHERE sku IN ({placeholders})",
                        chunk,
                    )
                    for row in cursor.fetchall():
                        found[row["sku"]] = (
                            row["rowid"],
                            SkuEntry.from_dict(json.loads(row["data"])),
                        )
        except sqlite3.Error as exc:
            raise StoreError(f"failed to fetch entries: {exc}", operation="fetch_by_keys") from exc
        return [entry for _, entry in sorted(found.values(), key=lambda item: item[0])]

    def count_all(self) -> int:
        try:
            with self._get_connection() as conn:
                return conn.execute("SELECT count(*) FROM skus").fetchone()[0]
        except sqlite3.Error as exc:
            raise StoreError(f"failed to count entries: {exc}", operation="count_all") from exc

    def _where(self, expression: Optional[str]) -> tuple[str, list[Any]]:
        if is_blank(expression):
            return "", []
        condition, params = to_sql(parse_filter(expression))
        return f"WHERE {condition}", params

    def evaluate_filter(
        self,
        expression: Optional[str],
        limit: int,
        skip: int = 0,
        orderby: Optional[str] = None,
    ) -> List[SkuEntry]:
        where, params = self._where(expression)
        order = order_by_sql(parse_orderby(orderby) if not is_blank(orderby) else [])
        query = f"SELECT data FROM skus {where} {order} LIMIT ? OFFSET ?"
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(query, [*params, limit, skip])
                return self._entries(cursor.fetchall())
        except sqlite3.Error as exc:
            raise StoreError(f"failed to query entries: {exc}", operation="evaluate_filter") from exc

    def count_filtered(self, expression: Optional[str]) -> int:
        where, params = self._where(expression)
        try:
            with self._get_connection() as conn:
                return conn.execute(f"SELECT count(*) FROM skus {where}", params).fetchone()[0]
        except sqlite3.Error as exc:
            raise StoreError(f"failed to count entries: {exc}", operation="count_filtered") from exc

    def upsert_batch(self, instructions: Sequence[UpsertInstruction]) -> None:
        if len(instructions) > self.max_ops_per_call:
            raise StoreError(
                f"batch of {len(instructions)} exceeds the limit of {self.max_ops_per_call}",
                operation="upsert_batch",
            )
        if not instructions:
            return
        try:
            rows = [
                (str(uuid.uuid4()), item.key, json.dumps(item.document, allow_nan=False))
                for item in instructions
            ]
        except ValueError as exc:
            raise ValidationError(
                f"entry cannot be stored as JSON: {exc}", field_name="data"
            ) from exc
        try:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conn.executemany(
                        """
                        INSERT INTO skus (id, sku, data) VALUES (?, ?, ?)
                        ON CONFLICT(sku) DO UPDATE SET data = excluded.data
                        """,
                        rows,
                    )
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
        except sqlite3.Error as exc:
            raise StoreError(f"failed to upsert entries: {exc}", operation="upsert_batch") from exc

        logger.debug("Upserted batch", extra={"count": len(rows)})

    def delete_by_key(self, key: str) -> bool:
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("DELETE FROM skus WHERE sku = ?", (key,))
                return cursor.rowcount > 0
        except sqlite3.Error as exc:
            raise StoreError(f"failed to delete entry: {exc}", operation="delete_by_key") from exc

    def find_by_product_id(self, product_id: str) -> Optional[SkuEntry]:
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    """
                    SELECT data FROM skus
                    WHERE EXISTS (
                        SELECT 1 FROM json_each(skus.data, '$.productList') AS elem
                        WHERE elem.type = 'object'
                          AND json_extract(elem.value, '$.productId') = ?
                    )
                    ORDER BY skus.rowid
                    LIMIT 1
                    """,
                    (product_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(
                f"failed to look up product: {exc}", operation="find_by_product_id"
            ) from exc
        if row is None:
            return None
        return SkuEntry.from_dict(json.loads(row["data"]))

    def close(self) -> None:
        """Nothing to release; connections are per-operation."""
