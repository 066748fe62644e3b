"""Connect reminders to the scheduled event engine.

Every reminder is backed by a "check user" event at its trigger time. The
event only carries the owner; the handler re-reads the owner's reminders when
it fires, so reminders sharing a trigger time share one event.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, ClassVar, Iterable, Optional, Union

from logger import logger
from . import config
from .events import EventScheduler, ScheduledEvent
from .store import Reminder, ReminderStore

EVENT_CHECK_USER = "reminders_check_user"


class PayloadKind(Enum):
    CHECK_USER = "check_user"
    LEGACY_CHECK_USER = "legacy_check_user"


@dataclass(frozen=True)
class CheckUserPayload:
    """Current payload: the owner whose reminders should be checked."""
    kind: ClassVar[PayloadKind] = PayloadKind.CHECK_USER
    user_id: int


@dataclass(frozen=True)
class LegacyCheckUserPayload:
    """Deprecated payload: "<event_name>:<user_id>"."""
    kind: ClassVar[PayloadKind] = PayloadKind.LEGACY_CHECK_USER
    raw: str


ReminderPayload = Union[CheckUserPayload, LegacyCheckUserPayload]

CheckHandler = Callable[[ScheduledEvent, CheckUserPayload], Awaitable[tuple[bool, Optional[Exception]]]]


def to_check_user(payload: ReminderPayload) -> Optional[CheckUserPayload]:
    """Normalize any payload kind to CheckUserPayload.

    Returns:
        The decoded payload, or None if legacy data is malformed
    """
    if payload.kind is PayloadKind.CHECK_USER:
        return payload

    split = payload.raw.split(":")
    if len(split) < 2:
        return None
    try:
        return CheckUserPayload(user_id=int(split[1]))
    except ValueError:
        return None


class ReminderScheduler:
    """Schedules and cancels check events for reminders."""

    def __init__(self, events: EventScheduler, store: ReminderStore):
        self.events = events
        self.store = store

    def register(self, check_handler: CheckHandler) -> None:
        """Bind the check-user event and its legacy migrator to the engine."""

        async def handle(event: ScheduledEvent, payload: ReminderPayload):
            check = to_check_user(payload)
            if check is None:
                logger.error(f"Undecodable payload for event {event.id}: {payload!r}")
                return False, None
            return await check_handler(event, check)

        self.events.register_handler(EVENT_CHECK_USER, CheckUserPayload, handle)
        self.events.register_legacy_migrator(EVENT_CHECK_USER, self.migrate_legacy_event)

    def schedule_reminder(self, reminder: Reminder, existing: Iterable[Reminder] = ()) -> bool:
        """Make sure a check event fires at the reminder's trigger time.

        Args:
            reminder: The newly created reminder
            existing: The owner's other pending reminders, if already loaded;
                a match on trigger time means the event already exists

        Returns:
            True if a schedule call was made
        """
        for other in existing:
            if other.id != reminder.id and other.user_id == reminder.user_id and other.when_ts == reminder.when_ts:
                logger.debug(f"Reminder {reminder.id} shares check event with reminder {other.id}")
                return False

        self.events.schedule_event(
            EVENT_CHECK_USER,
            reminder.guild_id,
            reminder.when,
            CheckUserPayload(user_id=reminder.user_id)
        )
        return True

    def unschedule_if_unused(self, deleted: Reminder) -> bool:
        """Cancel the deleted reminder's check event unless another reminder needs it.

        Returns:
            True if the event was cancelled
        """
        remaining = self.store.list_by_owner(deleted.user_id)
        if any(r.when_ts == deleted.when_ts for r in remaining):
            return False

        self.events.cancel_events(EVENT_CHECK_USER, CheckUserPayload(user_id=deleted.user_id), deleted.when)
        return True

    def unschedule_all(self, user_id: int) -> int:
        """Cancel every pending check event of a user."""
        return self.events.cancel_events(EVENT_CHECK_USER, CheckUserPayload(user_id=user_id))

    def schedule_followup(self, user_id: int, guild_id: int, when: datetime = None) -> None:
        """Check a user's reminders again on the next sweep."""
        when = when or datetime.now(timezone.utc)
        self.events.schedule_event(EVENT_CHECK_USER, guild_id, when, CheckUserPayload(user_id=user_id))

    def reload_pending_reminders(self) -> int:
        """Make sure every pending reminder has a check event.

        Call on startup to cover reminders whose event was lost, e.g. a crash
        between storing the reminder and scheduling it. Overdue reminders are
        scheduled at their original time and so fire on the next sweep.

        Claims left behind by a crash mid-send are reset first so those
        reminders are picked up too.

        Returns:
            Count of events newly scheduled
        """
        self.store.reset_stale_claims()

        scheduled = 0
        seen: set[tuple[int, int]] = set()
        for reminder in self.store.list_pending():
            key = (reminder.user_id, reminder.when_ts)
            if key in seen:
                continue
            seen.add(key)
            if self.events.schedule_event(
                EVENT_CHECK_USER,
                reminder.guild_id,
                reminder.when,
                CheckUserPayload(user_id=reminder.user_id)
            ):
                scheduled += 1

        logger.info(f"Reloaded {len(seen)} reminder check(s), {scheduled} newly scheduled")
        return scheduled

    def migrate_legacy_event(self, when: datetime, data: str) -> None:
        """Re-schedule a legacy "<event_name>:<user_id>" event in the current format.

        Malformed data is logged and dropped.
        """
        payload = to_check_user(LegacyCheckUserPayload(raw=data))
        if payload is None:
            logger.error(f"Invalid check user scheduled event: {data!r}")
            return

        self.events.schedule_event(EVENT_CHECK_USER, config.MIGRATED_EVENT_GUILD_ID, when, payload)
        logger.info(f"Migrated legacy check event for user {payload.user_id} at {when.isoformat()}")
