"""Reminder bot - hosts the reminder engine on a Discord connection.

Wires the reminder store, scheduled event engine and Discord transport
together, and tracks username/nickname changes for member history.
"""

import discord
from discord.ext import commands
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from logger import logger
from config import DISCORD_TOKEN

from domains.reminders import (
    DiscordReminderSender,
    MemberHistoryStore,
    ReminderExecutor,
    ReminderScheduler,
    ReminderService,
    ReminderStore,
    ScheduledEventEngine,
    StoreError,
)

# Initialize bot
intents = discord.Intents.default()
intents.members = True
bot = commands.Bot(command_prefix="/", intents=intents)

# Initialize scheduler
scheduler = AsyncIOScheduler()

# Reminder engine
store = ReminderStore()
history = MemberHistoryStore()
events = ScheduledEventEngine()
reminder_scheduler = ReminderScheduler(events, store)
executor = ReminderExecutor(store, DiscordReminderSender(bot), reminder_scheduler)
reminder_scheduler.register(executor.check_user)

# Entry point for the command layer
reminder_service = ReminderService(store, reminder_scheduler)


async def cleanup_reminder_data():
    """Daily purge of deleted reminders and processed events.

    Also reloads pending reminders, which resets stale delivery claims.
    """
    try:
        store.purge_deleted()
        events.cleanup_processed()
        reminder_scheduler.reload_pending_reminders()
    except StoreError as e:
        logger.error(f"Reminder cleanup failed: {e}")


@bot.event
async def on_ready():
    """Called when bot is connected and ready."""
    logger.info(f"Logged in as {bot.user}")

    # on_ready fires again after reconnects
    if scheduler.running:
        return

    try:
        events.run_legacy_migration()
        reminder_scheduler.reload_pending_reminders()
    except StoreError as e:
        logger.error(f"Failed to reload reminders: {e}")

    events.start(scheduler)
    scheduler.add_job(
        cleanup_reminder_data,
        'cron',
        hour=4,
        minute=0,
        id="reminders_cleanup",
        name="Purge old reminder data",
        replace_existing=True
    )

    scheduler.start()
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")


def _track_member(member: discord.Member) -> None:
    try:
        history.check_username(member.id, member.name)
        history.check_nickname(member.id, member.guild.id, member.nick)
    except StoreError as e:
        logger.error(f"Failed tracking member {member.id}: {e}")


@bot.event
async def on_member_update(before: discord.Member, after: discord.Member):
    """Nickname changes."""
    if before.nick != after.nick:
        _track_member(after)


@bot.event
async def on_user_update(before: discord.User, after: discord.User):
    """Username changes."""
    if before.name != after.name:
        try:
            history.check_username(after.id, after.name)
        except StoreError as e:
            logger.error(f"Failed tracking username of {after.id}: {e}")


@bot.event
async def on_guild_available(guild: discord.Guild):
    """Record current names of everyone in a guild once it's available."""
    for member in guild.members:
        _track_member(member)
    logger.info(f"Checked {len(guild.members)} members in {guild.name}")


@bot.event
async def on_error(event, *args, **kwargs):
    """Handle errors."""
    logger.error(f"Bot error in {event}: {args}")


def main():
    """Entry point."""
    if not DISCORD_TOKEN:
        logger.error("DISCORD_TOKEN not set")
        return

    logger.info("Starting reminder bot...")
    # Logging is configured by logger.py
    bot.run(DISCORD_TOKEN, log_handler=None)


if __name__ == "__main__":
    main()
