"""SQLite persistence for reminders.

Rows are soft deleted: deleting a reminder stamps `deleted_at` and every read
ignores stamped rows. Delivery claims a reminder by stamping both `deleted_at`
and `claimed_at`, so two overlapping sweeps cannot both send it. A claim that
is never completed or released (crash mid-send, failed release) is reset by
`reset_stale_claims` and the reminder becomes pending again.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from logger import logger
from . import config
from .db import connect, reading, transaction
from .errors import ReminderNotFound, ReminderPermissionError


@dataclass
class Reminder:
    """A pending reminder."""
    id: int
    user_id: int
    guild_id: int
    channel_id: int
    message: str
    when_ts: int
    created_at: int
    updated_at: int
    deleted_at: Optional[int]
    claimed_at: Optional[int] = None

    @property
    def when(self) -> datetime:
        return datetime.fromtimestamp(self.when_ts, timezone.utc)

    @property
    def in_direct_message(self) -> bool:
        return self.guild_id == config.DIRECT_MESSAGE_GUILD_ID


class ReminderStore:
    """Reminder records keyed by a monotonically increasing ID."""

    def __init__(self, db_path: str = None, clock: Callable[[], float] = time.time):
        self.db_path = db_path or config.REMINDERS_DB
        self._clock = clock
        self._conn = connect(self.db_path)
        self._init_schema()
        logger.info(f"Reminder store initialized: {self.db_path}")

    def _init_schema(self) -> None:
        with transaction(self._conn, "create reminders schema") as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS reminders (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    guild_id INTEGER NOT NULL,
                    channel_id INTEGER NOT NULL,
                    message TEXT NOT NULL,
                    when_ts INTEGER NOT NULL,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL,
                    deleted_at INTEGER,
                    claimed_at INTEGER
                );

                CREATE INDEX IF NOT EXISTS idx_reminders_user ON reminders(user_id);
                CREATE INDEX IF NOT EXISTS idx_reminders_channel ON reminders(channel_id);
                CREATE INDEX IF NOT EXISTS idx_reminders_deleted ON reminders(deleted_at);
            """)

            columns = {row["name"] for row in conn.execute("PRAGMA table_info(reminders)")}
            if "claimed_at" not in columns:
                conn.execute("ALTER TABLE reminders ADD COLUMN claimed_at INTEGER")

    def _now(self) -> int:
        return int(self._clock())

    def create(
        self,
        user_id: int,
        guild_id: int,
        channel_id: int,
        message: str,
        when: datetime
    ) -> Reminder:
        """Persist a new reminder and return the stored record.

        Raises:
            StoreError: If the insert fails
        """
        now = self._now()
        with transaction(self._conn, "create reminder") as conn:
            cursor = conn.execute(
                """
                INSERT INTO reminders
                (user_id, guild_id, channel_id, message, when_ts, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (user_id, guild_id, channel_id, message, int(when.timestamp()), now, now)
            )
            reminder_id = cursor.lastrowid

        logger.info(f"Created reminder {reminder_id} for user {user_id} at {when.isoformat()}")
        return self.get(reminder_id)

    def get(self, reminder_id: int) -> Reminder:
        """Get a pending reminder by ID.

        Raises:
            ReminderNotFound: If there is no pending reminder with that ID
        """
        with reading("retrieve reminder"):
            row = self._conn.execute(
                "SELECT * FROM reminders WHERE id = ? AND deleted_at IS NULL",
                (reminder_id,)
            ).fetchone()

        if not row:
            raise ReminderNotFound(f"No reminder with id {reminder_id}")
        return Reminder(**dict(row))

    def list_by_owner(self, user_id: int) -> list[Reminder]:
        """Pending reminders owned by a user, in creation order."""
        with reading("list user reminders"):
            rows = self._conn.execute(
                "SELECT * FROM reminders WHERE user_id = ? AND deleted_at IS NULL ORDER BY id",
                (user_id,)
            ).fetchall()
        return [Reminder(**dict(row)) for row in rows]

    def list_by_channel(self, channel_id: int) -> list[Reminder]:
        """Pending reminders targeting a channel, in creation order."""
        with reading("list channel reminders"):
            rows = self._conn.execute(
                "SELECT * FROM reminders WHERE channel_id = ? AND deleted_at IS NULL ORDER BY id",
                (channel_id,)
            ).fetchall()
        return [Reminder(**dict(row)) for row in rows]

    def list_pending(self) -> list[Reminder]:
        """Every pending reminder (for startup reload)."""
        with reading("list pending reminders"):
            rows = self._conn.execute(
                "SELECT * FROM reminders WHERE deleted_at IS NULL ORDER BY id"
            ).fetchall()
        return [Reminder(**dict(row)) for row in rows]

    def count_by_owner(self, user_id: int) -> int:
        with reading("count user reminders"):
            row = self._conn.execute(
                "SELECT COUNT(*) AS count FROM reminders WHERE user_id = ? AND deleted_at IS NULL",
                (user_id,)
            ).fetchone()
        return row["count"]

    def delete(self, reminder_id: int) -> bool:
        """Soft delete a reminder.

        Returns:
            True if this call deleted it, False if it was already gone
        """
        now = self._now()
        with transaction(self._conn, "delete reminder") as conn:
            cursor = conn.execute(
                "UPDATE reminders SET deleted_at = ?, updated_at = ? WHERE id = ? AND deleted_at IS NULL",
                (now, now, reminder_id)
            )
        return cursor.rowcount == 1

    def claim(self, reminder_id: int) -> bool:
        """Take a pending reminder for delivery.

        The reminder disappears from reads like a deleted one until the
        claim is completed or released.

        Returns:
            True if this call claimed it, False if it was already gone
        """
        now = self._now()
        with transaction(self._conn, "claim reminder") as conn:
            cursor = conn.execute(
                """
                UPDATE reminders SET deleted_at = ?, claimed_at = ?, updated_at = ?
                WHERE id = ? AND deleted_at IS NULL
                """,
                (now, now, now, reminder_id)
            )
        return cursor.rowcount == 1

    def complete(self, reminder_id: int) -> None:
        """Consume a claimed reminder for good (delivered or dead-lettered)."""
        with transaction(self._conn, "complete reminder") as conn:
            conn.execute(
                "UPDATE reminders SET claimed_at = NULL, updated_at = ? WHERE id = ? AND claimed_at IS NOT NULL",
                (self._now(), reminder_id)
            )

    def release(self, reminder_id: int) -> None:
        """Restore a claimed reminder after a failed delivery."""
        with transaction(self._conn, "release reminder") as conn:
            conn.execute(
                """
                UPDATE reminders SET deleted_at = NULL, claimed_at = NULL, updated_at = ?
                WHERE id = ? AND claimed_at IS NOT NULL
                """,
                (self._now(), reminder_id)
            )
        logger.debug(f"Released reminder {reminder_id} for another delivery attempt")

    def reset_stale_claims(self, timeout_seconds: int = None) -> int:
        """Return claims held longer than the timeout to pending.

        This handles a crash mid-send or a release that failed.

        Returns:
            Number of reminders reset
        """
        timeout_seconds = timeout_seconds if timeout_seconds is not None else config.CLAIM_TIMEOUT_SECONDS
        cutoff = self._now() - timeout_seconds

        with transaction(self._conn, "reset stale claims") as conn:
            cursor = conn.execute(
                """
                UPDATE reminders SET deleted_at = NULL, claimed_at = NULL, updated_at = ?
                WHERE claimed_at IS NOT NULL AND claimed_at < ?
                """,
                (self._now(), cutoff)
            )
            reset_count = cursor.rowcount

        if reset_count:
            logger.warning(f"Reset {reset_count} stale reminder claim(s) back to pending")
        return reset_count

    def delete_by_id(
        self,
        reminder_id: int,
        requester_id: int,
        requester_guild_id: Optional[int],
        has_manage_scope: Optional[Callable[[Reminder], bool]] = None
    ) -> Reminder:
        """Delete a reminder on behalf of a user.

        Owners can always delete their own reminders. Anyone else must be in
        the guild the reminder was created in and hold manage permission over
        its channel, as decided by has_manage_scope.

        Args:
            reminder_id: Reminder to delete
            requester_id: User asking for the deletion
            requester_guild_id: Guild the request was made in (None in DMs)
            has_manage_scope: Permission check against the reminder's channel

        Returns:
            The deleted reminder

        Raises:
            ReminderNotFound: If no pending reminder has that ID
            ReminderPermissionError: If the requester may not delete it
            StoreError: On database failure
        """
        reminder = self.get(reminder_id)

        if reminder.user_id != requester_id:
            if reminder.in_direct_message or reminder.guild_id != requester_guild_id:
                raise ReminderPermissionError(
                    "You can only delete reminders that are not your own "
                    "in the guild the reminder was originally created"
                )
            if has_manage_scope is None or not has_manage_scope(reminder):
                raise ReminderPermissionError(
                    "You need manage channel permission in the channel the reminder is in "
                    "to delete reminders that are not your own"
                )

        if not self.delete(reminder.id):
            raise ReminderNotFound(f"No reminder with id {reminder_id}")

        logger.info(f"User {requester_id} deleted reminder {reminder.id} (owner {reminder.user_id})")
        return reminder

    def delete_all_by_owner(self, user_id: int) -> int:
        """Delete every pending reminder of a user and return how many there were."""
        now = self._now()
        with transaction(self._conn, "clear user reminders") as conn:
            cursor = conn.execute(
                "UPDATE reminders SET deleted_at = ?, updated_at = ? WHERE user_id = ? AND deleted_at IS NULL",
                (now, now, user_id)
            )
            count = cursor.rowcount

        if count:
            logger.info(f"Cleared {count} reminders for user {user_id}")
        return count

    def purge_deleted(self, retention_days: int = None) -> int:
        """Hard delete rows soft deleted longer ago than the retention window."""
        retention_days = retention_days if retention_days is not None else config.DELETED_RETENTION_DAYS
        cutoff = self._now() - retention_days * 86400

        with transaction(self._conn, "purge deleted reminders") as conn:
            cursor = conn.execute(
                "DELETE FROM reminders WHERE deleted_at IS NOT NULL AND deleted_at < ?",
                (cutoff,)
            )
            purged = cursor.rowcount

        if purged:
            logger.info(f"Reminder cleanup: {purged} deleted rows purged")
        return purged

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
        logger.debug("Reminder store connection closed")
