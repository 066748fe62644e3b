"""Discord-backed permission checks and owner name lookup."""

from typing import Callable, Optional

import discord

from logger import logger
from .errors import StoreError
from .history import MemberHistoryStore
from .store import Reminder


def manage_scope_checker(member: discord.Member) -> Callable[[Reminder], bool]:
    """Return a check for manage channel permission over a reminder's channel."""

    def check(reminder: Reminder) -> bool:
        channel = member.guild.get_channel(reminder.channel_id)
        if channel is None:
            return False
        return channel.permissions_for(member).manage_channels

    return check


def post_permission_checker(member: discord.Member) -> Callable[[int], bool]:
    """Return a check for whether the member may read and send in a channel."""

    def check(channel_id: int) -> bool:
        channel = member.guild.get_channel(channel_id)
        if channel is None:
            return False
        perms = channel.permissions_for(member)
        return perms.read_messages and perms.send_messages

    return check


def username_resolver(
    bot: discord.Client,
    history: MemberHistoryStore
) -> Callable[[Reminder], Optional[str]]:
    """Return a lookup naming a reminder's owner.

    Cached guild members are preferred; otherwise the last tracked username
    is used.
    """

    def resolve(reminder: Reminder) -> Optional[str]:
        guild = bot.get_guild(reminder.guild_id)
        member = guild.get_member(reminder.user_id) if guild else None
        if member is not None:
            return member.name

        try:
            listing = history.latest_username(reminder.user_id)
        except StoreError as e:
            logger.warning(f"Failed looking up username of {reminder.user_id}: {e}")
            return None
        return listing.username if listing else None

    return resolve
