import sqlite3
from typing import Callable, Sequence

Migration = Callable[[sqlite3.Connection], None]


def get_schema_version(conn: sqlite3.Connection, component: str) -> int:
    row = conn.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='schema_info'").fetchone()
    if not row:
        return 0
    version_row = conn.execute("SELECT version FROM schema_info WHERE component = ?", (component,)).fetchone()
    return version_row[0] if version_row else 0


def apply_migrations(conn: sqlite3.Connection, component: str, migrations: Sequence[Migration]) -> int:
    """
    Brings ``component`` up to ``len(migrations)``. Each component keeps its own
    row in ``schema_info`` so several stores can share one database file.
    Caller owns the transaction; a failing step leaves nothing committed.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_info (
            component TEXT PRIMARY KEY,
            version INTEGER NOT NULL
        )
    """)
    current_version = get_schema_version(conn, component)
    conn.execute(
        "INSERT OR IGNORE INTO schema_info (component, version) VALUES (?, ?)",
        (component, current_version),
    )

    for i in range(current_version, len(migrations)):
        target_version = i + 1
        try:
            migrations[i](conn)
            conn.execute("UPDATE schema_info SET version = ? WHERE component = ?", (target_version, component))
        except Exception as e:
            raise RuntimeError(f"Database migration of {component} to v{target_version} failed: {e}") from e
    return max(current_version, len(migrations))
