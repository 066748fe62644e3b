"""Tests for the Discord permission and name lookups."""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

from domains.reminders.discord_helpers import (
    manage_scope_checker,
    post_permission_checker,
    username_resolver,
)
from domains.reminders.errors import StoreError

WHEN = datetime(2026, 3, 1, 13, 0, 0, tzinfo=timezone.utc)


def member_with(**perms):
    channel = Mock()
    channel.permissions_for.return_value = Mock(**perms)
    member = Mock()
    member.guild.get_channel.return_value = channel
    return member, channel


class TestManageScope:

    def test_allowed(self, store):
        reminder = store.create(1, 10, 100, "a", WHEN)
        member, channel = member_with(manage_channels=True)

        assert manage_scope_checker(member)(reminder) is True
        member.guild.get_channel.assert_called_once_with(100)
        channel.permissions_for.assert_called_once_with(member)

    def test_denied(self, store):
        reminder = store.create(1, 10, 100, "a", WHEN)
        member, _ = member_with(manage_channels=False)
        assert manage_scope_checker(member)(reminder) is False

    def test_unknown_channel(self, store):
        reminder = store.create(1, 10, 100, "a", WHEN)
        member = Mock()
        member.guild.get_channel.return_value = None
        assert manage_scope_checker(member)(reminder) is False


class TestPostPermission:

    def test_needs_read_and_send(self):
        member, _ = member_with(read_messages=True, send_messages=True)
        assert post_permission_checker(member)(200) is True

        member, _ = member_with(read_messages=True, send_messages=False)
        assert post_permission_checker(member)(200) is False

    def test_unknown_channel(self):
        member = Mock()
        member.guild.get_channel.return_value = None
        assert post_permission_checker(member)(200) is False


class TestUsernameResolver:

    def test_cached_member(self, store, history):
        reminder = store.create(1, 10, 100, "a", WHEN)
        bot = Mock()
        bot.get_guild.return_value.get_member.return_value = Mock()
        bot.get_guild.return_value.get_member.return_value.name = "alice"

        assert username_resolver(bot, history)(reminder) == "alice"

    def test_falls_back_to_history(self, store, history):
        reminder = store.create(1, 10, 100, "a", WHEN)
        history.check_username(1, "old_alice")
        bot = Mock()
        bot.get_guild.return_value = None

        assert username_resolver(bot, history)(reminder) == "old_alice"

    def test_unknown(self, store, history):
        reminder = store.create(1, 10, 100, "a", WHEN)
        bot = Mock()
        bot.get_guild.return_value.get_member.return_value = None

        assert username_resolver(bot, history)(reminder) is None

    def test_history_failure(self, store):
        reminder = store.create(1, 10, 100, "a", WHEN)
        bot = Mock()
        bot.get_guild.return_value = None
        broken = Mock()
        broken.latest_username.side_effect = StoreError("database is locked")

        assert username_resolver(bot, broken)(reminder) is None


class TestServiceWiring:
    """The helpers as the package exports them, plugged into the service."""

    def test_exported_from_package(self):
        import domains.reminders as reminders

        assert reminders.manage_scope_checker is manage_scope_checker
        assert reminders.post_permission_checker is post_permission_checker
        assert reminders.username_resolver is username_resolver
        assert {"manage_scope_checker", "post_permission_checker", "username_resolver"} <= set(reminders.__all__)

    def test_moderator_deletes_through_member_permissions(self, service):
        service.create_reminder(1, 10, 100, "water plants", duration=timedelta(hours=1))

        moderator, _ = member_with(manage_channels=True)
        bystander, _ = member_with(manage_channels=False)

        refused = service.delete_reminder(2, 10, reminder_id=1, has_manage_scope=manage_scope_checker(bystander))
        allowed = service.delete_reminder(2, 10, reminder_id=1, has_manage_scope=manage_scope_checker(moderator))

        assert refused.startswith("You need manage channel permission")
        assert allowed.startswith("Deleted reminder **#1**")

    def test_channel_listing_names_owners(self, service, history):
        service.create_reminder(1, 10, 100, "water plants", duration=timedelta(hours=1))
        bot = Mock()
        bot.get_guild.return_value.get_member.return_value.name = "alice"

        reply = service.list_channel_reminders(100, has_manage_scope=True, username_for=username_resolver(bot, history))

        assert "**#1**: alice: 'water plants'" in reply
