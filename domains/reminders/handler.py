"""Reminder operations exposed to the command layer.

Arguments arrive already parsed and typed. Every operation returns the reply
to show the user; usage problems become plain messages and database failures
are logged and reported generically.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from logger import logger
from . import config
from .errors import ReminderNotFound, ReminderPermissionError, StoreError, TimeSpecError
from .formatting import format_member_history, format_reminders, limit_string
from .history import MemberHistoryStore
from .parser import resolve_time
from .scheduler import ReminderScheduler
from .store import Reminder, ReminderStore

GENERIC_ERROR = "An error occurred, please try again later."


class ReminderService:
    """Create, list and delete reminders."""

    def __init__(
        self,
        store: ReminderStore,
        scheduler: ReminderScheduler,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.scheduler = scheduler
        self._clock = clock

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), timezone.utc)

    def create_reminder(
        self,
        user_id: int,
        guild_id: Optional[int],
        channel_id: int,
        message: str,
        *,
        duration: Optional[timedelta] = None,
        year: Optional[int] = None,
        month: Optional[int] = None,
        day: Optional[int] = None,
        hour: Optional[int] = None,
        minute: Optional[int] = None,
        second: Optional[int] = None,
        zone: Optional[str] = None,
        target_channel_id: Optional[int] = None,
        can_post_in: Optional[Callable[[int], bool]] = None,
        author_is_bot: bool = False
    ) -> str:
        """Schedule a reminder.

        Args:
            user_id: Author of the request, owner of the reminder
            guild_id: Guild the request came from, None in DMs
            channel_id: Channel the request came from
            message: Text to deliver
            duration: Relative delay (exclusive with the calendar fields)
            year, month, day, hour, minute, second, zone: Absolute time
            target_channel_id: Deliver somewhere other than channel_id
            can_post_in: Whether the author may post in a channel
            author_is_bot: Requests from bot accounts are refused

        Returns:
            Reply text
        """
        try:
            current = self.store.list_by_owner(user_id)
        except StoreError as e:
            logger.error(f"Failed checking reminder count for user {user_id}: {e}")
            return GENERIC_ERROR

        if len(current) >= config.MAX_REMINDERS_PER_USER:
            return (
                f"You can have a maximum of {config.MAX_REMINDERS_PER_USER} active reminders, "
                "list your reminders with the `reminders` command"
            )

        if author_is_bot:
            return "Cannot create reminders for bots."

        now = self._now()
        try:
            resolved = resolve_time(duration, year, month, day, hour, minute, second, zone, now=now)
        except TimeSpecError as e:
            return str(e)

        if resolved.when > now + timedelta(days=365 * config.MAX_REMINDER_YEARS):
            return f"Can be max {config.MAX_REMINDER_YEARS} years from now."

        destination = channel_id
        if target_channel_id is not None:
            destination = target_channel_id
            if can_post_in is None or not can_post_in(target_channel_id):
                return "You do not have permissions to send messages there"

        if guild_id is None:
            guild_id = config.DIRECT_MESSAGE_GUILD_ID

        try:
            reminder = self.store.create(user_id, guild_id, destination, message, resolved.when)
            self.scheduler.schedule_reminder(reminder, current)
        except StoreError as e:
            logger.error(f"Failed creating reminder for user {user_id}: {e}")
            return GENERIC_ERROR

        return (
            f"Set a reminder in {resolved.from_now} from now (<t:{resolved.timestamp}:f>)\n"
            "View reminders with the `reminders` command"
        )

    def list_user_reminders(self, user_id: int) -> str:
        """List a user's pending reminders."""
        try:
            reminders = self.store.list_by_owner(user_id)
        except StoreError as e:
            logger.error(f"Failed listing reminders for user {user_id}: {e}")
            return GENERIC_ERROR

        if not reminders:
            return "You have no reminders. Create reminders with the `remindme` command."

        return (
            "Your reminders:\n"
            + format_reminders(reminders, now=self._now())
            + "\nRemove a reminder with `delreminder/rmreminder (id)` where id is the first number for each reminder above."
            + "\nTo clear all reminders, use `delreminder` with the `-a` switch."
        )

    def list_channel_reminders(
        self,
        channel_id: int,
        has_manage_scope: bool = False,
        username_for: Optional[Callable[[Reminder], Optional[str]]] = None
    ) -> str:
        """List reminders targeting a channel.

        Args:
            channel_id: Channel to list
            has_manage_scope: Whether the requester may manage the channel
                (pass True in DMs); denied unless granted
            username_for: Resolves owners for display
        """
        if not has_manage_scope:
            return "You do not have access to this command (requires manage channel permission)"

        try:
            reminders = self.store.list_by_channel(channel_id)
        except StoreError as e:
            logger.error(f"Failed listing reminders for channel {channel_id}: {e}")
            return GENERIC_ERROR

        if not reminders:
            return "There are no reminders in this channel."

        return (
            "Reminders in this channel:\n"
            + format_reminders(reminders, display_usernames=True, username_for=username_for, now=self._now())
            + "\nRemove a reminder with `delreminder/rmreminder (id)` where id is the first number for each reminder above"
        )

    def delete_reminder(
        self,
        requester_id: int,
        requester_guild_id: Optional[int],
        reminder_id: Optional[int] = None,
        clear_all: bool = False,
        has_manage_scope: Optional[Callable[[Reminder], bool]] = None
    ) -> str:
        """Delete one reminder by ID, or all of the requester's reminders."""
        if clear_all:
            try:
                count = self.store.delete_all_by_owner(requester_id)
                self.scheduler.unschedule_all(requester_id)
            except StoreError as e:
                logger.error(f"Failed clearing reminders for user {requester_id}: {e}")
                return "Error clearing reminders"

            if count == 0:
                return "No reminders to clear"
            return f"Cleared {count} reminders"

        if reminder_id is None:
            return "No reminder ID provided"

        try:
            reminder = self.store.delete_by_id(reminder_id, requester_id, requester_guild_id, has_manage_scope)
        except ReminderNotFound:
            return "No reminder by that id found"
        except ReminderPermissionError as e:
            return str(e)
        except StoreError as e:
            logger.error(f"Failed deleting reminder {reminder_id}: {e}")
            return "Error retrieving reminder"

        try:
            self.scheduler.unschedule_if_unused(reminder)
        except StoreError as e:
            # The check event will fire and find nothing due
            logger.warning(f"Failed cancelling check event for reminder {reminder.id}: {e}")

        return f"Deleted reminder **#{reminder.id}**: '{limit_string(reminder.message)}'"


def describe_member_history(history: MemberHistoryStore, user_id: int, guild_id: int) -> str:
    """Render a member's username and nickname history."""
    try:
        usernames = history.get_usernames(user_id)
        nicknames = history.get_nicknames(user_id, guild_id)
    except StoreError as e:
        logger.error(f"Failed loading member history for {user_id}: {e}")
        return GENERIC_ERROR

    return format_member_history(usernames, nicknames)
