"""
SQLite Database Adapter.

Implements the persistence port and the event/alert-state repositories on
stdlib sqlite3. Datetimes are stored as UTC ISO-8601 strings with fixed
microsecond precision so that text comparison is chronological.

Key behaviors:
- batch() runs every statement in one transaction; any failure rolls the
  whole batch back and surfaces as PersistenceError
- A connection is opened per call unless one is injected (tests)
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from veilstat.components.alerts.models import AlertState, AlertType, TriggerResult
from veilstat.core.entities import EVENT_COLUMNS, EventKind, StoredEvent
from veilstat.core.errors import PersistenceError
from veilstat.core.ports import PersistencePort, Statement

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def format_dt(dt: datetime | None) -> str | None:
    """Serialize a datetime as sortable UTC text."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def parse_dt(s: str | None) -> datetime | None:
    """Parse ISO datetime string."""
    return datetime.fromisoformat(s) if s else None


# -----------------------------------------------------------------------------
# Database
# -----------------------------------------------------------------------------


class SQLiteDatabase:
    """SQLite implementation of PersistencePort."""

    def __init__(self, db_path: str, connection: sqlite3.Connection | None = None):
        self.db_path = db_path
        self._external_conn = connection
        if connection is not None:
            connection.row_factory = dict_factory

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = dict_factory
        return conn

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None

    def execute(self, query: str, args: Sequence[Any] = ()) -> list[dict[str, Any]]:
        conn = self._get_conn()
        try:
            rows = conn.execute(query, tuple(args)).fetchall()
            conn.commit()
            return rows
        except sqlite3.Error as e:
            logger.error("SQLite statement failed: %s", e)
            raise PersistenceError(str(e)) from e
        finally:
            if self._should_close():
                conn.close()

    def batch(self, statements: Sequence[Statement]) -> list[int]:
        conn = self._get_conn()
        try:
            counts = [conn.execute(sql, tuple(args)).rowcount for sql, args in statements]
            conn.commit()
            return counts
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("SQLite batch of %d statements rolled back: %s", len(statements), e)
            raise PersistenceError(str(e)) from e
        finally:
            if self._should_close():
                conn.close()


# -----------------------------------------------------------------------------
# Event Repository
# -----------------------------------------------------------------------------

_INSERT_EVENT = (
    f"INSERT INTO events ({', '.join(EVENT_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in EVENT_COLUMNS)})"
)


class SQLiteEventRepo:
    """SQLite implementation of EventStorePort."""

    def __init__(self, db: PersistencePort):
        self._db = db

    def insert_many(self, events: Sequence[StoredEvent]) -> int:
        if not events:
            return 0
        self._db.batch([(_INSERT_EVENT, self._to_row(e)) for e in events])
        return len(events)

    def list_events(self, site_id: str, start: datetime, end: datetime) -> list[StoredEvent]:
        rows = self._db.execute(
            """
            SELECT * FROM events
            WHERE site_id = ? AND created_at >= ? AND created_at < ?
            ORDER BY created_at, rowid
            """,
            (site_id, format_dt(start), format_dt(end)),
        )
        return [self._map_row(r) for r in rows]

    def _to_row(self, event: StoredEvent) -> tuple[Any, ...]:
        values = {name: getattr(event, name) for name in EVENT_COLUMNS}
        values["kind"] = event.kind.value
        values["created_at"] = format_dt(event.created_at)
        values["client_ts"] = format_dt(event.client_ts)
        return tuple(values[name] for name in EVENT_COLUMNS)

    def _map_row(self, row: dict[str, Any]) -> StoredEvent:
        data = dict(row)
        data["kind"] = EventKind(row["kind"])
        data["created_at"] = parse_dt(row["created_at"])
        data["client_ts"] = parse_dt(row["client_ts"])
        return StoredEvent(**{name: data[name] for name in EVENT_COLUMNS})


# -----------------------------------------------------------------------------
# Alert State Repository
# -----------------------------------------------------------------------------


class SQLiteAlertStateRepo:
    """SQLite implementation of AlertStateRepoPort."""

    def __init__(self, db: PersistencePort):
        self._db = db

    def get(self, alert_id: str) -> AlertState | None:
        rows = self._db.execute("SELECT * FROM alert_state WHERE alert_id = ?", (alert_id,))
        if not rows:
            return None
        row = rows[0]
        return AlertState(
            alert_id=row["alert_id"],
            last_triggered_at=parse_dt(row["last_triggered_at"]),
            trigger_count=row["trigger_count"],
        )

    def try_mark_triggered(self, alert_id: str, now: datetime, not_after: datetime) -> bool:
        # Single upsert so two overlapping ticks cannot both win
        (count,) = self._db.batch(
            [
                (
                    """
                    INSERT INTO alert_state (alert_id, last_triggered_at, trigger_count)
                    VALUES (?, ?, 1)
                    ON CONFLICT(alert_id) DO UPDATE SET
                        last_triggered_at = excluded.last_triggered_at,
                        trigger_count = alert_state.trigger_count + 1
                    WHERE alert_state.last_triggered_at <= ?
                    """,
                    (alert_id, format_dt(now), format_dt(not_after)),
                )
            ]
        )
        return count > 0

    def append_history(self, trigger: TriggerResult) -> None:
        self._db.batch(
            [
                (
                    """
                    INSERT INTO alert_history (
                        id, alert_id, site_id, alert_type, metric,
                        current_value, reference_value, message, triggered_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        trigger.id,
                        trigger.alert_id,
                        trigger.site_id,
                        trigger.alert_type.value,
                        trigger.metric,
                        trigger.current_value,
                        trigger.reference_value,
                        trigger.message,
                        format_dt(trigger.triggered_at),
                    ),
                )
            ]
        )

    def list_history(self, alert_id: str) -> list[TriggerResult]:
        rows = self._db.execute(
            "SELECT * FROM alert_history WHERE alert_id = ? ORDER BY triggered_at, rowid",
            (alert_id,),
        )
        return [
            TriggerResult(
                id=r["id"],
                alert_id=r["alert_id"],
                site_id=r["site_id"],
                alert_type=AlertType(r["alert_type"]),
                metric=r["metric"],
                current_value=r["current_value"],
                reference_value=r["reference_value"],
                message=r["message"],
                triggered_at=parse_dt(r["triggered_at"]),
            )
            for r in rows
        ]
