from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

from ..logging import get_logger
from ..orchestrator.commit import StoreRejected
from ..paths import default_db_path


LOG = get_logger("inventory-db")

PRODUCT_COLUMNS = (
    "user_id",
    "name",
    "product_type",
    "quantity",
    "purchase_price",
    "selling_price",
    "supplier",
    "weight",
    "size",
    "notes",
    "image_url",
)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS products (
  product_id      INTEGER PRIMARY KEY,
  user_id         TEXT NOT NULL,
  name            TEXT NOT NULL CHECK(length(trim(name)) > 0),
  product_type    TEXT,
  quantity        INTEGER NOT NULL CHECK(quantity > 0),
  purchase_price  REAL CHECK(purchase_price IS NULL OR purchase_price >= 0),
  selling_price   REAL CHECK(selling_price IS NULL OR selling_price >= 0),
  supplier        TEXT,
  weight          TEXT,
  size            TEXT,
  notes           TEXT,
  image_url       TEXT,
  created_at      TEXT DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_products_user ON products(user_id, created_at);
"""


class InventoryDatabase:
    """SQLite-backed inventory store.

    - Defaults to `<repo-root>/var/inventory/inventory.sqlite3`.
    - Ensures schema on first use.
    - ``insert_many`` is a single transaction: every row lands or none does.
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        *,
        root_dir: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        self.db_path = os.path.abspath(db_path) if db_path else default_db_path(root_dir)
        self.timeout = timeout
        os.makedirs(os.path.dirname(self.db_path), exist_ok=True)
        LOG.info(f"Inventory DB path: {self.db_path}")
        self._ensure_schema()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self.connect() as conn:
            try:
                conn.execute("PRAGMA journal_mode=WAL;")
            except sqlite3.OperationalError as exc:
                LOG.debug("WAL mode unavailable (%s); continuing with default journal", exc)
            conn.executescript(SCHEMA_SQL)
            conn.commit()
        LOG.debug("Inventory DB schema ensured.")

    def insert_many(self, rows: Sequence[Dict[str, Any]]) -> List[int]:
        sql = f"INSERT INTO products ({', '.join(PRODUCT_COLUMNS)}) VALUES ({', '.join('?' for _ in PRODUCT_COLUMNS)})"
        ids: List[int] = []
        with self.connect() as conn:
            try:
                cur = conn.cursor()
                for row in rows:
                    cur.execute(sql, tuple(row.get(col) for col in PRODUCT_COLUMNS))
                    ids.append(int(cur.lastrowid))
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                raise StoreRejected(str(exc)) from exc
        LOG.debug("Inserted %d product row(s)", len(ids))
        return ids

    @staticmethod
    def _rows_to_dicts(rows: Sequence[sqlite3.Row]) -> List[Dict[str, Any]]:
        return [dict(r) for r in rows]

    def count_products(self, user_id: Optional[str] = None) -> int:
        with self.connect() as conn:
            if user_id is None:
                row = conn.execute("SELECT COUNT(*) FROM products").fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) FROM products WHERE user_id = ?", (user_id,)).fetchone()
        return int(row[0])

    def fetch_products(self, user_id: str, *, limit: int = 100, offset: int = 0) -> Dict[str, Any]:
        with self.connect() as conn:
            rows = conn.execute(
                """
                SELECT product_id, user_id, name, product_type, quantity, purchase_price,
                       selling_price, supplier, weight, size, notes, image_url, created_at
                FROM products
                WHERE user_id = ?
                ORDER BY product_id DESC
                LIMIT ? OFFSET ?
                """,
                (user_id, limit, offset),
            ).fetchall()
        return {
            "items": self._rows_to_dicts(rows),
            "total": self.count_products(user_id),
            "limit": limit,
            "offset": offset,
        }
