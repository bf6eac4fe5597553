"""SQLite persistence for birthdays and reminder records.

One database holds members, groups, yearly events and materialized reminders.
Dedup is enforced by the schema: UNIQUE(owner_id, group_id) on events and
UNIQUE(event_id, target_date) on reminders. Every public operation runs in its
own short transaction; driver errors surface as StoreUnavailable.
"""

import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional

from logger import logger
from . import config
from .errors import StoreUnavailable
from .models import Group, MonthDay, PendingReminder, ReminderRecord, YearlyEvent

SCHEMA = """
    CREATE TABLE IF NOT EXISTS members (
        owner_id TEXT PRIMARY KEY,
        display_name TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS groups (
        group_id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS yearly_events (
        event_id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        group_id TEXT NOT NULL REFERENCES groups(group_id) ON DELETE CASCADE,
        month INTEGER NOT NULL,
        day INTEGER NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (owner_id, group_id)
    );

    CREATE INDEX IF NOT EXISTS idx_events_month_day ON yearly_events(month, day);
    CREATE INDEX IF NOT EXISTS idx_events_group ON yearly_events(group_id);

    CREATE TABLE IF NOT EXISTS reminders (
        reminder_id TEXT PRIMARY KEY,
        event_id TEXT NOT NULL REFERENCES yearly_events(event_id) ON DELETE CASCADE,
        target_date TEXT NOT NULL,
        sent INTEGER NOT NULL DEFAULT 0,
        sent_at TEXT,
        UNIQUE (event_id, target_date),
        CHECK ((sent = 0 AND sent_at IS NULL) OR (sent = 1 AND sent_at IS NOT NULL))
    );

    CREATE INDEX IF NOT EXISTS idx_reminders_date_sent ON reminders(target_date, sent);
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Database:
    """Lazily opened SQLite connection shared by the repositories.

    A single connection is reused (WAL mode) and guarded by a lock so that
    each transaction is atomic with respect to other threads and jobs.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or config.BIRTHDAY_DB
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def _connect(self) -> sqlite3.Connection:
        """Get or create the connection and bootstrap the schema."""
        if self._connection is not None:
            return self._connection

        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(self.path, check_same_thread=False, timeout=10.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.executescript(SCHEMA)
        conn.commit()

        self._connection = conn
        logger.info(f"Birthday store initialized: {self.path}")
        return conn

    @contextmanager
    def transaction(self):
        """Run a block in one transaction; commit on success, roll back on error."""
        with self._lock:
            try:
                conn = self._connect()
            except (sqlite3.Error, OSError) as e:
                raise StoreUnavailable(f"Cannot open birthday store {self.path}: {e}") from e

            try:
                yield conn
                conn.commit()
            except sqlite3.IntegrityError:
                conn.rollback()
                raise
            except sqlite3.Error as e:
                conn.rollback()
                raise StoreUnavailable(f"Birthday store error: {e}") from e
            except Exception:
                conn.rollback()
                raise

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None
                logger.debug("Birthday store connection closed")


def _event_from_row(row: sqlite3.Row) -> YearlyEvent:
    return YearlyEvent(
        event_id=row["event_id"],
        owner_id=row["owner_id"],
        group_id=row["group_id"],
        month_day=MonthDay(row["month"], row["day"]),
    )


def _reminder_from_row(row: sqlite3.Row) -> ReminderRecord:
    return ReminderRecord(
        reminder_id=row["reminder_id"],
        event_id=row["event_id"],
        target_date=date.fromisoformat(row["target_date"]),
        sent=bool(row["sent"]),
        sent_at=datetime.fromisoformat(row["sent_at"]) if row["sent_at"] else None,
    )


class BirthdayRepository:
    """Members, groups and yearly events. Also the event source for materialization."""

    def __init__(self, db: Database, clock: Callable[[], datetime] = _utcnow):
        self.db = db
        self.clock = clock

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def get_group(self, group_id: str) -> Optional[Group]:
        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT group_id, name, active FROM groups WHERE group_id = ?",
                (group_id,)
            ).fetchone()
        return Group(row["group_id"], row["name"], bool(row["active"])) if row else None

    def set_group_active(self, group_id: str, active: bool) -> bool:
        """Enable or disable announcements for a group.

        Returns:
            True if the group exists
        """
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE groups SET active = ? WHERE group_id = ?",
                (int(active), group_id)
            )
        if cursor.rowcount:
            logger.info(f"Group {group_id} {'activated' if active else 'deactivated'}")
        return cursor.rowcount > 0

    def is_group_active(self, group_id: str) -> bool:
        group = self.get_group(group_id)
        return bool(group and group.active)

    # ------------------------------------------------------------------
    # Yearly events
    # ------------------------------------------------------------------

    def add_or_update_birthday(
        self,
        owner_id: str,
        group_id: str,
        month_day: MonthDay,
        display_name: Optional[str] = None,
        group_name: Optional[str] = None
    ) -> tuple[YearlyEvent, bool]:
        """Record a birthday, replacing any existing one for the same owner and group.

        Changing the date discards the event's unsent reminders so the old
        date is never announced.

        Args:
            owner_id: Member identifier
            group_id: Group the birthday is announced in
            month_day: Birthday without year
            display_name: Optional name used in announcements
            group_name: Optional group name (group is created if missing)

        Returns:
            (event, created) - created is False when an existing birthday was updated
        """
        now = self.clock().isoformat()
        with self.db.transaction() as conn:
            if display_name:
                conn.execute(
                    """
                    INSERT INTO members (owner_id, display_name, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(owner_id) DO UPDATE SET
                        display_name = excluded.display_name,
                        updated_at = excluded.updated_at
                    """,
                    (owner_id, display_name, now, now)
                )

            # Registering a birthday reactivates the group
            conn.execute(
                """
                INSERT INTO groups (group_id, name, active, created_at) VALUES (?, ?, 1, ?)
                ON CONFLICT(group_id) DO UPDATE SET
                    name = COALESCE(?, groups.name),
                    active = 1
                """,
                (group_id, group_name or group_id, now, group_name)
            )

            existing = conn.execute(
                "SELECT * FROM yearly_events WHERE owner_id = ? AND group_id = ?",
                (owner_id, group_id)
            ).fetchone()

            if existing:
                event_id = existing["event_id"]
                if (existing["month"], existing["day"]) != (month_day.month, month_day.day):
                    conn.execute(
                        "UPDATE yearly_events SET month = ?, day = ?, updated_at = ? WHERE event_id = ?",
                        (month_day.month, month_day.day, now, event_id)
                    )
                    conn.execute(
                        "DELETE FROM reminders WHERE event_id = ? AND sent = 0",
                        (event_id,)
                    )
                created = False
            else:
                event_id = uuid.uuid4().hex
                conn.execute(
                    """
                    INSERT INTO yearly_events (event_id, owner_id, group_id, month, day, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (event_id, owner_id, group_id, month_day.month, month_day.day, now, now)
                )
                created = True

        logger.info(f"{'Added' if created else 'Updated'} birthday {month_day} for {owner_id} in {group_id}")
        return YearlyEvent(event_id, owner_id, group_id, month_day), created

    def get_birthday(self, owner_id: str, group_id: str) -> Optional[YearlyEvent]:
        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM yearly_events WHERE owner_id = ? AND group_id = ?",
                (owner_id, group_id)
            ).fetchone()
        return _event_from_row(row) if row else None

    def remove_birthday(self, owner_id: str, group_id: str) -> bool:
        """Delete a birthday and (by cascade) its reminders.

        Returns:
            True if a birthday was deleted
        """
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM yearly_events WHERE owner_id = ? AND group_id = ?",
                (owner_id, group_id)
            )
        if cursor.rowcount:
            logger.info(f"Removed birthday for {owner_id} in {group_id}")
        return cursor.rowcount > 0

    def remove_owner_from_groups(self, owner_id: str, group_ids: Iterable[str]) -> int:
        """Delete an owner's birthdays in the given groups (member left)."""
        group_ids = list(group_ids)
        if not group_ids:
            return 0
        placeholders = ",".join("?" for _ in group_ids)
        with self.db.transaction() as conn:
            cursor = conn.execute(
                f"DELETE FROM yearly_events WHERE owner_id = ? AND group_id IN ({placeholders})",
                (owner_id, *group_ids)
            )
        if cursor.rowcount:
            logger.info(f"Removed {cursor.rowcount} birthday(s) for departed member {owner_id}")
        return cursor.rowcount

    def group_birthdays(self, group_id: str) -> list[tuple[YearlyEvent, Optional[str]]]:
        """All birthdays in a group with display names, in calendar order."""
        with self.db.transaction() as conn:
            rows = conn.execute(
                """
                SELECT e.*, m.display_name
                FROM yearly_events e
                LEFT JOIN members m ON m.owner_id = e.owner_id
                WHERE e.group_id = ?
                ORDER BY e.month, e.day, e.owner_id
                """,
                (group_id,)
            ).fetchall()
        return [(_event_from_row(row), row["display_name"]) for row in rows]

    def events_on(self, month: int, day: int) -> list[YearlyEvent]:
        """Every event with the given month/day, ordered by group then owner."""
        with self.db.transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM yearly_events
                WHERE month = ? AND day = ?
                ORDER BY group_id, owner_id
                """,
                (month, day)
            ).fetchall()
        return [_event_from_row(row) for row in rows]


class ReminderStore:
    """Materialized reminder records: create-if-absent, list-pending, mark-sent, sweep."""

    def __init__(self, db: Database, clock: Callable[[], datetime] = _utcnow):
        self.db = db
        self.clock = clock

    def create_if_absent(self, event_id: str, target_date: date) -> bool:
        """Insert a pending reminder unless one exists for (event_id, target_date).

        The UNIQUE constraint makes this safe against concurrent or repeated
        materialization runs.

        Returns:
            True if a record was inserted
        """
        with self.db.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO reminders (reminder_id, event_id, target_date, sent, sent_at)
                VALUES (?, ?, ?, 0, NULL)
                """,
                (uuid.uuid4().hex, event_id, target_date.isoformat())
            )
        created = cursor.rowcount == 1
        if created:
            logger.debug(f"Created reminder for event {event_id} on {target_date}")
        return created

    def list_pending(self, target_date: date) -> list[PendingReminder]:
        """Unsent reminders for a date in active groups, ordered by group then owner."""
        with self.db.transaction() as conn:
            rows = conn.execute(
                """
                SELECT r.reminder_id, r.event_id, r.target_date,
                       e.owner_id, e.group_id, m.display_name, g.name AS group_name
                FROM reminders r
                INNER JOIN yearly_events e ON e.event_id = r.event_id
                INNER JOIN groups g ON g.group_id = e.group_id
                LEFT JOIN members m ON m.owner_id = e.owner_id
                WHERE r.target_date = ? AND r.sent = 0 AND g.active = 1
                ORDER BY e.group_id, e.owner_id
                """,
                (target_date.isoformat(),)
            ).fetchall()

        return [
            PendingReminder(
                reminder_id=row["reminder_id"],
                event_id=row["event_id"],
                target_date=date.fromisoformat(row["target_date"]),
                owner_id=row["owner_id"],
                group_id=row["group_id"],
                display_name=row["display_name"],
                group_name=row["group_name"],
            )
            for row in rows
        ]

    def mark_sent(self, reminder_id: str) -> bool:
        """Flip sent to true and stamp sent_at, only if currently unsent.

        Returns:
            False if the reminder was already sent (or does not exist)
        """
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE reminders SET sent = 1, sent_at = ? WHERE reminder_id = ? AND sent = 0",
                (self.clock().isoformat(), reminder_id)
            )
        if cursor.rowcount:
            logger.debug(f"Reminder {reminder_id} marked as sent")
        return cursor.rowcount == 1

    def delete_sent_before(self, cutoff_date: date) -> int:
        """Delete sent reminders whose target date is before cutoff_date."""
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM reminders WHERE sent = 1 AND target_date < ?",
                (cutoff_date.isoformat(),)
            )
        return cursor.rowcount

    def delete_unsent_before(self, cutoff_date: date) -> int:
        """Delete never-sent reminders whose day is long gone."""
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM reminders WHERE sent = 0 AND target_date < ?",
                (cutoff_date.isoformat(),)
            )
        return cursor.rowcount

    def list_for_date(self, target_date: date) -> list[ReminderRecord]:
        """All reminders (sent or not) for a date."""
        with self.db.transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM reminders WHERE target_date = ? ORDER BY reminder_id",
                (target_date.isoformat(),)
            ).fetchall()
        return [_reminder_from_row(row) for row in rows]

    def history(self, group_id: str, limit: int = 50) -> list[tuple[ReminderRecord, str]]:
        """Most recently sent reminders for a group, newest first.

        Returns:
            (record, name) pairs - name is the display name, or the owner id if unknown
        """
        with self.db.transaction() as conn:
            rows = conn.execute(
                """
                SELECT r.*, COALESCE(m.display_name, e.owner_id) AS name
                FROM reminders r
                INNER JOIN yearly_events e ON e.event_id = r.event_id
                LEFT JOIN members m ON m.owner_id = e.owner_id
                WHERE e.group_id = ? AND r.sent = 1
                ORDER BY r.sent_at DESC
                LIMIT ?
                """,
                (group_id, limit)
            ).fetchall()
        return [(_reminder_from_row(row), row["name"]) for row in rows]

    def stats(self, since: date, group_id: Optional[str] = None) -> dict:
        """Counts of reminders with target_date on or after since.

        Returns:
            Dict with total, sent and pending counts
        """
        sql = """
            SELECT COUNT(*) AS total,
                   COALESCE(SUM(CASE WHEN r.sent = 1 THEN 1 ELSE 0 END), 0) AS sent,
                   COALESCE(SUM(CASE WHEN r.sent = 0 THEN 1 ELSE 0 END), 0) AS pending
            FROM reminders r
            INNER JOIN yearly_events e ON e.event_id = r.event_id
            WHERE r.target_date >= ?
        """
        params: list = [since.isoformat()]
        if group_id:
            sql += " AND e.group_id = ?"
            params.append(group_id)

        with self.db.transaction() as conn:
            row = conn.execute(sql, params).fetchone()
        return {"total": row["total"], "sent": row["sent"], "pending": row["pending"]}
