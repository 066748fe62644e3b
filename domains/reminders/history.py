"""Username and nickname history.

Append-only listings, one row per observed change. Used to name reminder
owners who are no longer in the member cache and to render member history.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from logger import logger
from . import config
from .db import connect, reading, transaction


@dataclass
class UsernameListing:
    id: int
    created_at: int
    user_id: int
    username: str


@dataclass
class NicknameListing:
    id: int
    created_at: int
    user_id: int
    guild_id: int
    nickname: str


class MemberHistoryStore:
    """Tracks username and per-guild nickname changes."""

    def __init__(self, db_path: str = None, clock: Callable[[], float] = time.time):
        self.db_path = db_path or config.REMINDERS_DB
        self._clock = clock
        self._conn = connect(self.db_path)
        self._init_schema()

    def _init_schema(self) -> None:
        with transaction(self._conn, "create member history schema") as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS username_listings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    username TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_username_user ON username_listings(user_id);

                CREATE TABLE IF NOT EXISTS nickname_listings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    guild_id INTEGER NOT NULL,
                    nickname TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_nickname_user_guild ON nickname_listings(user_id, guild_id);
            """)

    def latest_username(self, user_id: int) -> Optional[UsernameListing]:
        with reading("check username"):
            row = self._conn.execute(
                "SELECT * FROM username_listings WHERE user_id = ? ORDER BY id DESC LIMIT 1",
                (user_id,)
            ).fetchone()
        return UsernameListing(**dict(row)) if row else None

    def latest_nickname(self, user_id: int, guild_id: int) -> Optional[NicknameListing]:
        with reading("check nickname"):
            row = self._conn.execute(
                "SELECT * FROM nickname_listings WHERE user_id = ? AND guild_id = ? ORDER BY id DESC LIMIT 1",
                (user_id, guild_id)
            ).fetchone()
        return NicknameListing(**dict(row)) if row else None

    def check_username(self, user_id: int, username: str) -> bool:
        """Record the username if it differs from the last one seen.

        Returns:
            True if a new listing was written
        """
        last = self.latest_username(user_id)
        if last and last.username == username:
            return False

        with transaction(self._conn, "record username") as conn:
            conn.execute(
                "INSERT INTO username_listings (created_at, user_id, username) VALUES (?, ?, ?)",
                (int(self._clock()), user_id, username)
            )

        logger.info(f"User {user_id} changed username, old: {last.username if last else None} new: {username}")
        return True

    def check_nickname(self, user_id: int, guild_id: int, nickname: Optional[str]) -> bool:
        """Record the nickname if it differs from the last one seen in the guild.

        An empty nickname is stored as "" but never as the first listing.

        Returns:
            True if a new listing was written
        """
        nickname = nickname or ""
        last = self.latest_nickname(user_id, guild_id)

        if last is None and nickname == "":
            return False
        if last and last.nickname == nickname:
            return False

        with transaction(self._conn, "record nickname") as conn:
            conn.execute(
                "INSERT INTO nickname_listings (created_at, user_id, guild_id, nickname) VALUES (?, ?, ?, ?)",
                (int(self._clock()), user_id, guild_id, nickname)
            )

        logger.info(f"User {user_id} changed nickname in {guild_id}, old: {last.nickname if last else None} new: {nickname}")
        return True

    def get_usernames(self, user_id: int) -> list[UsernameListing]:
        """All username listings of a user, newest first."""
        with reading("list usernames"):
            rows = self._conn.execute(
                "SELECT * FROM username_listings WHERE user_id = ? ORDER BY id DESC",
                (user_id,)
            ).fetchall()
        return [UsernameListing(**dict(row)) for row in rows]

    def get_nicknames(self, user_id: int, guild_id: int) -> list[NicknameListing]:
        """All nickname listings of a user in a guild, newest first."""
        with reading("list nicknames"):
            rows = self._conn.execute(
                "SELECT * FROM nickname_listings WHERE user_id = ? AND guild_id = ? ORDER BY id DESC",
                (user_id, guild_id)
            ).fetchall()
        return [NicknameListing(**dict(row)) for row in rows]

    def close(self) -> None:
        self._conn.close()
