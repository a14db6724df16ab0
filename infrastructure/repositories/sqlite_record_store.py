import json
import logging
import sqlite3
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from infrastructure.change_feed import ChangeEvent, ChangeFeed, Subscription
from infrastructure.repositories.sqlite_schema import apply_migrations
from use_cases.errors import StorageError

log = logging.getLogger(__name__)

TABLE_COLUMNS = {
    "users": (
        "id", "email", "first_name", "last_name", "middle_name", "contact_number",
        "address", "role", "is_active", "created_at", "updated_at",
    ),
    "document_types": (
        "id", "name", "description", "requirements", "fee", "processing_time", "is_active",
    ),
    "applications": (
        "id", "user_id", "document_type_id", "purpose", "status", "submitted_at",
        "processed_at", "processed_by", "completed_at", "rejection_reason",
        "attachments", "tracking_number",
    ),
}
JSON_COLUMNS = {
    "document_types": {"requirements"},
    "applications": {"attachments"},
}
BOOL_COLUMNS = {
    "users": {"is_active"},
    "document_types": {"is_active"},
}


class SQLiteRecordStore:
    """
    Local implementation of the record store contract: equality-filtered
    select/insert/update over the portal tables plus change subscriptions.
    """

    def __init__(self, db_path: str, change_feed: Optional[ChangeFeed] = None):
        self.db_path = db_path
        self.change_feed = change_feed or ChangeFeed()

    def _conn(self):
        return sqlite3.connect(self.db_path)

    def _migrate_v1(self, conn):
        """Baseline schema (v1)."""
        conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL UNIQUE,
                first_name TEXT NOT NULL,
                last_name TEXT NOT NULL,
                middle_name TEXT,
                contact_number TEXT NOT NULL,
                address TEXT NOT NULL,
                role TEXT NOT NULL DEFAULT 'resident'
                    CHECK (role IN ('resident', 'admin', 'staff')),
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS document_types (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL UNIQUE,
                description TEXT NOT NULL,
                requirements TEXT NOT NULL DEFAULT '[]',
                fee REAL NOT NULL DEFAULT 0 CHECK (fee >= 0),
                processing_time TEXT NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS applications (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL REFERENCES users(id),
                document_type_id TEXT NOT NULL REFERENCES document_types(id),
                purpose TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'under_review', 'approved', 'rejected', 'completed', 'cancelled')),
                submitted_at TEXT NOT NULL,
                processed_at TEXT,
                processed_by TEXT,
                completed_at TEXT,
                rejection_reason TEXT,
                attachments TEXT NOT NULL DEFAULT '[]',
                tracking_number TEXT NOT NULL UNIQUE,
                CHECK (status <> 'rejected' OR (rejection_reason IS NOT NULL AND rejection_reason <> ''))
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_applications_user ON applications(user_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_applications_submitted ON applications(submitted_at)")

    def init_db(self):
        with self._conn() as conn:
            apply_migrations(conn, "records", [self._migrate_v1])
            conn.commit()

    def _columns(self, table: str):
        if table not in TABLE_COLUMNS:
            raise StorageError(f"Unknown table: {table}")
        return TABLE_COLUMNS[table]

    def _check_columns(self, table: str, names: Iterable[str]):
        allowed = self._columns(table)
        unknown = [n for n in names if n not in allowed]
        if unknown:
            raise StorageError(f"Unknown column(s) for {table}: {', '.join(unknown)}")

    def _encode(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        encoded = {}
        for key, value in row.items():
            if key in JSON_COLUMNS.get(table, ()) and value is not None:
                value = json.dumps(value)
            elif key in BOOL_COLUMNS.get(table, ()) and value is not None:
                value = 1 if value else 0
            encoded[key] = value
        return encoded

    def _decode(self, table: str, row: sqlite3.Row) -> Dict[str, Any]:
        decoded = dict(row)
        for key in JSON_COLUMNS.get(table, ()):
            if decoded.get(key) is not None:
                decoded[key] = json.loads(decoded[key])
        for key in BOOL_COLUMNS.get(table, ()):
            if decoded.get(key) is not None:
                decoded[key] = bool(decoded[key])
        return decoded

    def _where(self, table: str, filters: Optional[Dict[str, Any]]):
        if not filters:
            return "", []
        self._check_columns(table, filters.keys())
        clauses, params = [], []
        for key, value in self._encode(table, filters).items():
            if value is None:
                clauses.append(f"{key} IS NULL")
            else:
                clauses.append(f"{key} = ?")
                params.append(value)
        return " WHERE " + " AND ".join(clauses), params

    def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        columns = self._columns(table)
        where, params = self._where(table, filters)
        query = f"SELECT {', '.join(columns)} FROM {table}{where}"
        if order_by:
            self._check_columns(table, [order_by])
            query += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}"
        if limit is not None:
            query += " LIMIT ?"
            params.append(int(limit))
        try:
            with self._conn() as conn:
                conn.row_factory = sqlite3.Row
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {table}: {e}") from e
        return [self._decode(table, r) for r in rows]

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(row)
        row.setdefault("id", str(uuid.uuid4()))
        self._check_columns(table, row.keys())
        encoded = self._encode(table, row)
        keys = list(encoded.keys())
        placeholders = ", ".join("?" for _ in keys)
        try:
            with self._conn() as conn:
                conn.execute(
                    f"INSERT INTO {table} ({', '.join(keys)}) VALUES ({placeholders})",
                    [encoded[k] for k in keys],
                )
                conn.commit()
        except sqlite3.IntegrityError as e:
            conflict = "UNIQUE" in str(e) or "PRIMARY KEY" in str(e)
            raise StorageError(f"Insert into {table} rejected: {e}", conflict=conflict) from e
        except sqlite3.Error as e:
            raise StorageError(f"Insert into {table} failed: {e}") from e

        created = self.select(table, {"id": row["id"]})[0]
        self.change_feed.publish(ChangeEvent(table=table, event_type="INSERT", record=created))
        return created

    def update(self, table: str, filters: Dict[str, Any], changes: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Update matching rows and return them as stored afterwards."""
        if not filters:
            raise StorageError("Refusing to update without filters")
        if not changes:
            return self.select(table, filters)
        self._check_columns(table, changes.keys())
        where, where_params = self._where(table, filters)
        encoded = self._encode(table, changes)
        assignments = ", ".join(f"{k} = ?" for k in encoded)
        select_cols = ", ".join(self._columns(table))
        try:
            with self._conn() as conn:
                conn.row_factory = sqlite3.Row
                # Filters double as a compare-and-set guard, so read and write under one write lock
                conn.execute("BEGIN IMMEDIATE")
                before = conn.execute(f"SELECT {select_cols} FROM {table}{where}", where_params).fetchall()
                ids = [r["id"] for r in before]
                if not ids:
                    conn.rollback()
                    return []
                id_marks = ", ".join("?" for _ in ids)
                conn.execute(
                    f"UPDATE {table} SET {assignments} WHERE id IN ({id_marks})",
                    list(encoded.values()) + ids,
                )
                after = conn.execute(f"SELECT {select_cols} FROM {table} WHERE id IN ({id_marks})", ids).fetchall()
                conn.commit()
        except sqlite3.IntegrityError as e:
            raise StorageError(f"Update of {table} rejected: {e}", conflict="UNIQUE" in str(e)) from e
        except sqlite3.Error as e:
            raise StorageError(f"Update of {table} failed: {e}") from e

        old_by_id = {r["id"]: self._decode(table, r) for r in before}
        updated = [self._decode(table, r) for r in after]
        for record in updated:
            self.change_feed.publish(
                ChangeEvent(table=table, event_type="UPDATE", record=record, old_record=old_by_id[record["id"]])
            )
        return updated

    def subscribe(
        self,
        table: str,
        events: Union[str, Iterable[str]],
        callback: Callable[[ChangeEvent], None],
    ) -> Subscription:
        self._columns(table)
        return self.change_feed.subscribe(table, events, callback)
