"""Database module for the dashboard event log."""

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .models import ClientEvent, EndpointStats, EventSummary

MEMORY_DB = ":memory:"
DEFAULT_MAX_EVENTS = 50_000


class EventDatabase:
    """SQLite-backed log of every call the dashboard makes to the backend."""

    def __init__(
        self,
        db_path: str | Path | None = None,
        max_events: int | None = DEFAULT_MAX_EVENTS,
    ) -> None:
        """Initialize the database.

        Args:
            db_path: SQLite file, or ":memory:"
            max_events: Number of most recent events kept, None for no limit
        """
        if max_events is not None and max_events <= 0:
            raise ValueError(f"max_events must be positive, got {max_events}")
        self.max_events = max_events
        if db_path is None:
            db_path = Path.home() / ".thermodash" / "events.db"
        self.db_path = Path(db_path)
        if str(db_path) != MEMORY_DB:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False  # The API may serve from a worker thread
            )
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_db(self) -> None:
        """Initialize database schema."""
        conn = self._get_conn()
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS client_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                event_type TEXT NOT NULL,
                endpoint TEXT NOT NULL,
                status TEXT NOT NULL,
                message TEXT,
                duration_ms REAL
            )
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_timestamp ON client_events(timestamp)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_endpoint ON client_events(endpoint)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_event_type ON client_events(event_type)"
        )
        conn.commit()

    def log_event(
        self,
        event_type: str,
        endpoint: str,
        status: str,
        message: str | None = None,
        duration_ms: float | None = None,
    ) -> int:
        """Log a backend call."""
        conn = self._get_conn()
        cursor = conn.execute(
            """
            INSERT INTO client_events
            (timestamp, event_type, endpoint, status, message, duration_ms)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                datetime.now(timezone.utc).isoformat(),
                event_type,
                endpoint,
                status,
                message,
                duration_ms,
            ),
        )
        event_id = cursor.lastrowid
        if self.max_events is not None:
            # Ids only grow, so everything at or below this one is out of the window
            conn.execute(
                "DELETE FROM client_events WHERE id <= ?",
                (event_id - self.max_events,),
            )
        conn.commit()
        return event_id

    def get_stats(self) -> EventSummary:
        """Get overall statistics."""
        conn = self._get_conn()
        row = conn.execute(
            """
            SELECT
                COUNT(*) AS total_events,
                SUM(CASE WHEN status != 'success' THEN 1 ELSE 0 END) AS total_errors,
                SUM(CASE WHEN event_type = 'poll' THEN 1 ELSE 0 END) AS polls,
                SUM(CASE WHEN event_type = 'capture' THEN 1 ELSE 0 END) AS captures
            FROM client_events
            """
        ).fetchone()

        return {
            "total_events": row["total_events"],
            "total_errors": row["total_errors"] or 0,
            "polls": row["polls"] or 0,
            "captures": row["captures"] or 0,
        }

    def get_endpoint_stats(self) -> list[EndpointStats]:
        """Get per-endpoint statistics."""
        conn = self._get_conn()
        rows = conn.execute(
            """
            SELECT
                endpoint,
                COUNT(*) as calls,
                SUM(CASE WHEN status != 'success' THEN 1 ELSE 0 END) as errors,
                AVG(duration_ms) as avg_duration_ms
            FROM client_events
            GROUP BY endpoint
            ORDER BY calls DESC, endpoint ASC
            """
        ).fetchall()

        return [
            {
                "endpoint": row["endpoint"],
                "calls": row["calls"],
                "errors": row["errors"] or 0,
                "avg_duration_ms": round(row["avg_duration_ms"] or 0.0, 3),
            }
            for row in rows
        ]

    def get_events(
        self, limit: int = 100, offset: int = 0, event_type: str | None = None
    ) -> tuple[list[ClientEvent], int]:
        """Get paginated event log, most recent first."""
        conn = self._get_conn()
        where_clause = ""
        params: list[Any] = []
        if event_type:
            where_clause = "WHERE event_type = ?"
            params.append(event_type)

        total = conn.execute(
            f"SELECT COUNT(*) FROM client_events {where_clause}", params
        ).fetchone()[0]

        rows = conn.execute(
            f"""
            SELECT * FROM client_events
            {where_clause}
            ORDER BY timestamp DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            params + [limit, offset],
        ).fetchall()

        events = [
            ClientEvent(
                id=row["id"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
                event_type=row["event_type"],
                endpoint=row["endpoint"],
                status=row["status"],
                message=row["message"],
                duration_ms=row["duration_ms"],
            )
            for row in rows
        ]

        return events, total

    def clear_events(self) -> None:
        """Clear all events."""
        conn = self._get_conn()
        conn.execute("DELETE FROM client_events")
        conn.commit()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


# Global database instance
_db: EventDatabase | None = None


def get_database(
    db_path: str | Path | None = None,
    max_events: int | None = DEFAULT_MAX_EVENTS,
) -> EventDatabase:
    """Get the global database instance, creating it on first use."""
    global _db
    if _db is None:
        _db = EventDatabase(db_path, max_events=max_events)
    return _db
