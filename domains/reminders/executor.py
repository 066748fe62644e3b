"""Deliver due reminders when a check event fires."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

import aiohttp
import discord

from logger import logger
from . import config
from .errors import DeliveryError, StoreError
from .events import ScheduledEvent
from .formatting import limit_string
from .scheduler import CheckUserPayload, ReminderScheduler
from .store import Reminder, ReminderStore

EMBED_DESCRIPTION_LIMIT = 4096


class ReminderSender(Protocol):
    """Outbound transport. Raises DeliveryError on failure."""

    async def send(self, reminder: Reminder) -> None: ...


def classify_delivery_error(error: Exception) -> DeliveryError:
    """Wrap a transport failure, marking transient ones as recoverable.

    Server errors, rate limits, timeouts and connection problems are worth
    retrying. Missing channels, missing permissions and other client errors
    are not.
    """
    if isinstance(error, (discord.Forbidden, discord.NotFound)):
        recoverable = False
    elif isinstance(error, discord.DiscordServerError):
        recoverable = True
    elif isinstance(error, discord.HTTPException):
        recoverable = error.status == 429 or error.status >= 500
    elif isinstance(error, (aiohttp.ClientError, asyncio.TimeoutError, OSError)):
        recoverable = True
    else:
        recoverable = False

    return DeliveryError(f"{type(error).__name__}: {error}", recoverable=recoverable)


class DiscordReminderSender:
    """Posts reminders to their Discord channel, mentioning the owner."""

    def __init__(self, bot: discord.Client):
        self.bot = bot

    async def send(self, reminder: Reminder) -> None:
        try:
            channel = self.bot.get_channel(reminder.channel_id)
            if not channel:
                channel = await self.bot.fetch_channel(reminder.channel_id)
        except (discord.HTTPException, discord.InvalidData, aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise classify_delivery_error(e) from e

        # Categories and forums resolve as channels but take no messages
        if not isinstance(channel, discord.abc.Messageable):
            raise DeliveryError(
                f"Channel {reminder.channel_id} ({type(channel).__name__}) cannot receive messages",
                recoverable=False
            )

        embed = discord.Embed(
            title="Reminder",
            description=limit_string(reminder.message, EMBED_DESCRIPTION_LIMIT)
        )
        try:
            await channel.send(
                content=f"<@{reminder.user_id}>",
                embed=embed,
                allowed_mentions=discord.AllowedMentions(
                    everyone=False,
                    roles=False,
                    users=[discord.Object(id=reminder.user_id)]
                )
            )
        except (discord.HTTPException, discord.InvalidData, aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise classify_delivery_error(e) from e


class ReminderExecutor:
    """Handles check-user events: sends every due reminder of the user."""

    def __init__(
        self,
        store: ReminderStore,
        sender: ReminderSender,
        scheduler: ReminderScheduler,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.sender = sender
        self.scheduler = scheduler
        self._clock = clock

    def _release(self, reminder: Reminder) -> None:
        try:
            self.store.release(reminder.id)
        except StoreError as e:
            logger.error(
                f"Failed releasing reminder {reminder.id}, claim stays until the stale claim reset: {e}"
            )

    def _complete(self, reminder: Reminder) -> None:
        try:
            self.store.complete(reminder.id)
        except StoreError as e:
            logger.error(f"Failed completing reminder {reminder.id}: {e}")

    async def trigger(self, reminder: Reminder, final_attempt: bool = False) -> bool:
        """Send one reminder and consume it.

        The reminder is claimed before sending so a concurrent sweep cannot
        send it twice. A recoverable failure puts it back unless this is the
        event's final attempt; a terminal one leaves it consumed. Any sender
        exception is classified into a DeliveryError so the claim is always
        settled.

        Returns:
            False if the reminder was already consumed elsewhere

        Raises:
            DeliveryError: If sending failed
        """
        if not self.store.claim(reminder.id):
            logger.info(f"Reminder {reminder.id} already triggered or deleted, skipping")
            return False

        try:
            await self.sender.send(reminder)
        except Exception as e:
            error = e if isinstance(e, DeliveryError) else classify_delivery_error(e)
            if error.recoverable and not final_attempt:
                self._release(reminder)
            else:
                self._complete(reminder)
            if error is e:
                raise
            raise error from e

        self._complete(reminder)
        logger.info(f"Triggered reminder {reminder.id} for user {reminder.user_id} in channel {reminder.channel_id}")
        return True

    async def check_user(
        self,
        event: ScheduledEvent,
        payload: CheckUserPayload
    ) -> tuple[bool, Optional[Exception]]:
        """Deliver the user's due reminders.

        Reminders are re-read on every call since they may have changed
        since the event was scheduled. Processing stops at the first failed
        delivery. On the event's last allowed attempt a recoverable failure
        is treated as terminal, so the reminder is dead-lettered along with
        the event instead of being left pending with nothing to send it.

        Returns:
            (retry, error) for the event engine
        """
        try:
            reminders = self.store.list_by_owner(payload.user_id)
        except StoreError as e:
            logger.error(f"Failed loading reminders for user {payload.user_id}: {e}")
            return True, e

        now = int(self._clock())
        due = [r for r in reminders if r.when_ts <= now]
        final_attempt = event.retries + 1 >= config.EVENT_MAX_RETRIES

        for index, reminder in enumerate(due):
            try:
                await self.trigger(reminder, final_attempt=final_attempt)
            except StoreError as e:
                logger.error(f"Store failure while triggering reminder {reminder.id}: {e}")
                return True, e
            except DeliveryError as e:
                if e.recoverable and not final_attempt:
                    logger.warning(f"Reminder {reminder.id} delivery failed, will retry: {e}")
                    return True, e

                if e.recoverable:
                    logger.error(
                        f"Reminder {reminder.id} dropped after {event.retries + 1} failed delivery attempts: {e}"
                    )
                else:
                    logger.error(f"Reminder {reminder.id} dropped after terminal delivery failure: {e}")
                if index + 1 < len(due):
                    # One second out so it can't collide with the event being handled
                    self.scheduler.schedule_followup(
                        payload.user_id,
                        event.guild_id,
                        datetime.fromtimestamp(now + 1, timezone.utc)
                    )
                return False, e

        return False, None
