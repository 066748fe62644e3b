"""Reminders module for one-off scheduled notifications.

Reminders are stored in SQLite and backed by durable "check user" events
that a periodic sweep hands to the delivery executor.
"""

from .errors import (
    DeliveryError,
    ReminderError,
    ReminderNotFound,
    ReminderPermissionError,
    StoreError,
    TimeSpecError,
)
from .parser import ResolvedTime, resolve_time, uses_relative_time, parse_relative_time, parse_absolute_time
from .store import Reminder, ReminderStore
from .history import MemberHistoryStore
from .events import EventScheduler, ScheduledEvent, ScheduledEventEngine
from .scheduler import (
    EVENT_CHECK_USER,
    CheckUserPayload,
    LegacyCheckUserPayload,
    ReminderScheduler,
)
from .executor import DiscordReminderSender, ReminderExecutor, classify_delivery_error
from .formatting import format_member_history, format_reminders, limit_string
from .handler import ReminderService, describe_member_history
from .timezones import TIMEZONE_CHOICES, match_timezones
from .discord_helpers import manage_scope_checker, post_permission_checker, username_resolver

__all__ = [
    "DeliveryError",
    "ReminderError",
    "ReminderNotFound",
    "ReminderPermissionError",
    "StoreError",
    "TimeSpecError",
    "ResolvedTime",
    "resolve_time",
    "uses_relative_time",
    "parse_relative_time",
    "parse_absolute_time",
    "Reminder",
    "ReminderStore",
    "MemberHistoryStore",
    "EventScheduler",
    "ScheduledEvent",
    "ScheduledEventEngine",
    "EVENT_CHECK_USER",
    "CheckUserPayload",
    "LegacyCheckUserPayload",
    "ReminderScheduler",
    "DiscordReminderSender",
    "ReminderExecutor",
    "classify_delivery_error",
    "format_member_history",
    "format_reminders",
    "limit_string",
    "ReminderService",
    "describe_member_history",
    "TIMEZONE_CHOICES",
    "match_timezones",
    "manage_scope_checker",
    "post_permission_checker",
    "username_resolver",
]
