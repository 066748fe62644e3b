"""Durable scheduled events swept on an interval.

Work is stored as rows keyed by an event name. A periodic sweep picks up due
rows and hands each to the handler registered for its name, which answers
(retry, error). Retried events are pushed back with exponential backoff and
dead-lettered after EVENT_MAX_RETRIES attempts.

Events written by the previous scheduler live in legacy_scheduled_events as
"<event_name>:<data>" strings and are converted by per-event migrators.
"""

import dataclasses
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Protocol

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from logger import logger
from . import config
from .db import connect, reading, transaction


@dataclass
class ScheduledEvent:
    """A unit of due work."""
    id: int
    created_at: int
    guild_id: int
    event_name: str
    trigger_at: int
    data: str
    processed: int
    retries: int
    error: Optional[str]

    @property
    def trigger_time(self) -> datetime:
        return datetime.fromtimestamp(self.trigger_at, timezone.utc)


EventHandler = Callable[[ScheduledEvent, Any], Awaitable[tuple[bool, Optional[Exception]]]]
LegacyMigrator = Callable[[datetime, str], None]


class EventScheduler(Protocol):
    """What the reminders core needs from a scheduled event engine."""

    def register_handler(self, event_name: str, payload_type: type, handler: EventHandler) -> None: ...

    def register_legacy_migrator(self, event_name: str, migrator: LegacyMigrator) -> None: ...

    def schedule_event(self, event_name: str, guild_id: int, when: datetime, payload: Any) -> bool: ...

    def cancel_events(self, event_name: str, payload: Any, when: Optional[datetime] = None) -> int: ...


@dataclass
class _Registration:
    payload_type: type
    handler: EventHandler


def encode_payload(payload: Any) -> str:
    """Serialize a payload to the JSON stored in the data column."""
    if dataclasses.is_dataclass(payload):
        payload = dataclasses.asdict(payload)
    return json.dumps(payload, sort_keys=True)


def decode_payload(payload_type: type, data: str) -> Any:
    """Rebuild a payload of the registered type from stored JSON."""
    obj = json.loads(data)
    if dataclasses.is_dataclass(payload_type):
        return payload_type(**obj)
    return payload_type(obj)


class ScheduledEventEngine:
    """SQLite-backed implementation of EventScheduler."""

    def __init__(self, db_path: str = None, clock: Callable[[], float] = time.time):
        self.db_path = db_path or config.REMINDERS_DB
        self._clock = clock
        self._conn = connect(self.db_path)
        self._handlers: dict[str, _Registration] = {}
        self._migrators: dict[str, LegacyMigrator] = {}
        self._init_schema()

    def _init_schema(self) -> None:
        with transaction(self._conn, "create scheduled events schema") as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS scheduled_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at INTEGER NOT NULL,
                    guild_id INTEGER NOT NULL,
                    event_name TEXT NOT NULL,
                    trigger_at INTEGER NOT NULL,
                    data TEXT NOT NULL,
                    processed INTEGER DEFAULT 0,
                    retries INTEGER DEFAULT 0,
                    error TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_events_due ON scheduled_events(processed, trigger_at);

                CREATE TABLE IF NOT EXISTS legacy_scheduled_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    trigger_at INTEGER NOT NULL,
                    data TEXT NOT NULL
                );
            """)

    def _now(self) -> int:
        return int(self._clock())

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_handler(self, event_name: str, payload_type: type, handler: EventHandler) -> None:
        self._handlers[event_name] = _Registration(payload_type, handler)
        logger.info(f"Registered scheduled event handler: {event_name}")

    def register_legacy_migrator(self, event_name: str, migrator: LegacyMigrator) -> None:
        self._migrators[event_name] = migrator
        logger.info(f"Registered legacy event migrator: {event_name}")

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule_event(self, event_name: str, guild_id: int, when: datetime, payload: Any) -> bool:
        """Schedule work for `when`.

        An identical pending event (same name, time and payload) is not
        duplicated.

        Returns:
            True if a new event was stored
        """
        data = encode_payload(payload)
        trigger_at = int(when.timestamp())

        with transaction(self._conn, "schedule event") as conn:
            existing = conn.execute(
                """
                SELECT id FROM scheduled_events
                WHERE processed = 0 AND event_name = ? AND trigger_at = ? AND data = ?
                """,
                (event_name, trigger_at, data)
            ).fetchone()
            if existing:
                logger.debug(f"Event {event_name} {data} at {trigger_at} already scheduled")
                return False

            conn.execute(
                """
                INSERT INTO scheduled_events (created_at, guild_id, event_name, trigger_at, data)
                VALUES (?, ?, ?, ?, ?)
                """,
                (self._now(), guild_id, event_name, trigger_at, data)
            )

        logger.debug(f"Scheduled {event_name} {data} at {when.isoformat()}")
        return True

    def cancel_events(self, event_name: str, payload: Any, when: Optional[datetime] = None) -> int:
        """Drop pending events for a payload, optionally only those at `when`."""
        query = "DELETE FROM scheduled_events WHERE processed = 0 AND event_name = ? AND data = ?"
        params: list = [event_name, encode_payload(payload)]
        if when is not None:
            query += " AND trigger_at = ?"
            params.append(int(when.timestamp()))

        with transaction(self._conn, "cancel events") as conn:
            cursor = conn.execute(query, params)
        return cursor.rowcount

    def pending_events(self, event_name: str = None) -> list[ScheduledEvent]:
        """Unprocessed events, soonest first."""
        query = "SELECT * FROM scheduled_events WHERE processed = 0"
        params: list = []
        if event_name is not None:
            query += " AND event_name = ?"
            params.append(event_name)
        query += " ORDER BY trigger_at, id"

        with reading("list pending events"):
            rows = self._conn.execute(query, params).fetchall()
        return [ScheduledEvent(**dict(row)) for row in rows]

    def get_event(self, event_id: int) -> Optional[ScheduledEvent]:
        with reading("retrieve event"):
            row = self._conn.execute(
                "SELECT * FROM scheduled_events WHERE id = ?",
                (event_id,)
            ).fetchone()
        return ScheduledEvent(**dict(row)) if row else None

    # ------------------------------------------------------------------
    # Sweeping
    # ------------------------------------------------------------------

    def due_events(self, limit: int = 100) -> list[ScheduledEvent]:
        """Unprocessed events with a handler whose trigger time has passed."""
        names = list(self._handlers)
        if not names:
            return []

        placeholders = ", ".join("?" for _ in names)
        with reading("fetch due events"):
            rows = self._conn.execute(
                f"""
                SELECT * FROM scheduled_events
                WHERE processed = 0 AND trigger_at <= ? AND event_name IN ({placeholders})
                ORDER BY trigger_at, id
                LIMIT ?
                """,
                (self._now(), *names, limit)
            ).fetchall()
        return [ScheduledEvent(**dict(row)) for row in rows]

    async def run_due_events(self) -> int:
        """Process every due event once.

        Returns:
            Number of events handed to a handler
        """
        events = self.due_events()
        for event in events:
            await self._process(event)
        return len(events)

    async def _process(self, event: ScheduledEvent) -> None:
        registration = self._handlers[event.event_name]

        try:
            payload = decode_payload(registration.payload_type, event.data)
        except (ValueError, TypeError) as e:
            logger.error(f"Dropping event {event.id} ({event.event_name}) with undecodable data {event.data!r}: {e}")
            self._mark_processed(event, e)
            return

        try:
            retry, error = await registration.handler(event, payload)
        except Exception as e:
            logger.error(f"Handler for event {event.id} ({event.event_name}) raised: {e}")
            retry, error = True, e

        if retry:
            self._mark_retry(event, error)
        else:
            self._mark_processed(event, error)

    def _mark_processed(self, event: ScheduledEvent, error: Optional[Exception]) -> None:
        with transaction(self._conn, "mark event processed") as conn:
            conn.execute(
                "UPDATE scheduled_events SET processed = 1, error = ? WHERE id = ?",
                (str(error) if error else None, event.id)
            )
        if error:
            logger.error(f"Event {event.id} ({event.event_name}) finished with error: {error}")

    def _mark_retry(self, event: ScheduledEvent, error: Optional[Exception]) -> None:
        new_retries = event.retries + 1

        if new_retries >= config.EVENT_MAX_RETRIES:
            with transaction(self._conn, "dead-letter event") as conn:
                conn.execute(
                    "UPDATE scheduled_events SET processed = 1, retries = ?, error = ? WHERE id = ?",
                    (new_retries, str(error) if error else "retries exhausted", event.id)
                )
            logger.warning(f"Event {event.id} ({event.event_name}) dead-lettered after {new_retries} attempts: {error}")
            return

        delay = min(config.EVENT_RETRY_BASE_SECONDS * 2 ** event.retries, config.EVENT_RETRY_MAX_SECONDS)
        with transaction(self._conn, "reschedule event") as conn:
            conn.execute(
                "UPDATE scheduled_events SET trigger_at = ?, retries = ?, error = ? WHERE id = ?",
                (self._now() + delay, new_retries, str(error) if error else None, event.id)
            )
        logger.info(f"Event {event.id} ({event.event_name}) retry {new_retries} in {delay}s: {error}")

    async def sweep(self) -> None:
        """Interval job body; a failing sweep is logged and tried again next tick."""
        try:
            count = await self.run_due_events()
            if count:
                logger.info(f"Sweep processed {count} scheduled event(s)")
        except Exception as e:
            logger.error(f"Scheduled event sweep failed: {e}")

    def start(self, scheduler: AsyncIOScheduler) -> None:
        """Run the sweep every SWEEP_INTERVAL_SECONDS on the given scheduler."""
        scheduler.add_job(
            self.sweep,
            trigger=IntervalTrigger(seconds=config.SWEEP_INTERVAL_SECONDS),
            id="scheduled_events_sweep",
            name="Sweep due scheduled events",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        logger.info(f"Started scheduled event sweep (every {config.SWEEP_INTERVAL_SECONDS}s)")

    # ------------------------------------------------------------------
    # Legacy events
    # ------------------------------------------------------------------

    def add_legacy_event(self, when: datetime, data: str) -> int:
        """Store an event in the deprecated "<event_name>:<data>" format."""
        with transaction(self._conn, "add legacy event") as conn:
            cursor = conn.execute(
                "INSERT INTO legacy_scheduled_events (trigger_at, data) VALUES (?, ?)",
                (int(when.timestamp()), data)
            )
        return cursor.lastrowid

    def legacy_events(self) -> list[tuple[int, int, str]]:
        with reading("list legacy events"):
            rows = self._conn.execute(
                "SELECT id, trigger_at, data FROM legacy_scheduled_events ORDER BY id"
            ).fetchall()
        return [(row["id"], row["trigger_at"], row["data"]) for row in rows]

    def run_legacy_migration(self) -> int:
        """Convert legacy events through their registered migrators.

        Rows without a migrator are kept for a later run. Rows whose migrator
        raises are kept as well; everything else is removed.

        Returns:
            Number of legacy rows migrated
        """
        migrated = 0
        for row_id, trigger_at, data in self.legacy_events():
            event_name = data.split(":", 1)[0]
            migrator = self._migrators.get(event_name)
            if migrator is None:
                logger.warning(f"No migrator for legacy event {row_id}: {data!r}")
                continue

            try:
                migrator(datetime.fromtimestamp(trigger_at, timezone.utc), data)
            except Exception as e:
                logger.error(f"Failed migrating legacy event {row_id} {data!r}: {e}")
                continue

            with transaction(self._conn, "remove migrated legacy event") as conn:
                conn.execute("DELETE FROM legacy_scheduled_events WHERE id = ?", (row_id,))
            migrated += 1

        if migrated:
            logger.info(f"Migrated {migrated} legacy scheduled event(s)")
        return migrated

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup_processed(self, retention_days: int = None) -> int:
        """Delete processed events older than the retention window."""
        retention_days = retention_days if retention_days is not None else config.PROCESSED_EVENT_RETENTION_DAYS
        cutoff = self._now() - retention_days * 86400

        with transaction(self._conn, "clean up processed events") as conn:
            cursor = conn.execute(
                "DELETE FROM scheduled_events WHERE processed = 1 AND trigger_at < ?",
                (cutoff,)
            )
            deleted = cursor.rowcount

        if deleted:
            logger.info(f"Event cleanup: {deleted} processed events deleted")
        return deleted

    def close(self) -> None:
        self._conn.close()
