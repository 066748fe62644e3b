"""Text rendering for reminder lists, durations and member history."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Iterable, Optional, TYPE_CHECKING

from dateutil.relativedelta import relativedelta

from . import config

if TYPE_CHECKING:
    from .history import NicknameListing, UsernameListing
    from .store import Reminder


class Precision(Enum):
    """Smallest unit rendered by the humanizers."""
    SECONDS = "second"
    MINUTES = "minute"


# (singular, relativedelta attribute), largest first
_UNITS = [
    ("year", "years"),
    ("month", "months"),
    ("day", "days"),
    ("hour", "hours"),
    ("minute", "minutes"),
    ("second", "seconds"),
]


def humanize_between(start: datetime, end: datetime, precision: Precision = Precision.SECONDS) -> str:
    """Render the calendar distance from start to end.

    Example: "1 year, 2 days and 3 hours".
    """
    delta = relativedelta(end, start) if end > start else relativedelta()

    parts = []
    for singular, attr in _UNITS:
        value = getattr(delta, attr)
        if value:
            parts.append(f"{value} {singular}" + ("" if value == 1 else "s"))
        if singular == precision.value:
            break

    if not parts:
        return f"less than 1 {precision.value}"
    if len(parts) == 1:
        return parts[0]
    return ", ".join(parts[:-1]) + " and " + parts[-1]


def humanize_duration(
    duration: timedelta,
    precision: Precision = Precision.SECONDS,
    now: Optional[datetime] = None
) -> str:
    """Render a duration counted from now."""
    now = now or datetime.now(timezone.utc)
    return humanize_between(now, now + duration, precision)


def humanize_time(
    when: datetime,
    precision: Precision = Precision.MINUTES,
    now: Optional[datetime] = None
) -> str:
    """Render how far in the future `when` is."""
    now = now or datetime.now(timezone.utc)
    return humanize_between(now, when, precision)


def limit_string(text: str, limit: int = None) -> str:
    """Shorten text for list views.

    Text shorter than the limit is returned as is, anything else is cut to
    limit - 3 characters followed by "...".
    """
    limit = limit or config.LIST_MESSAGE_LIMIT
    if len(text) < limit:
        return text
    return text[:limit - 3] + "..."


def format_reminders(
    reminders: Iterable["Reminder"],
    display_usernames: bool = False,
    username_for: Optional[Callable[["Reminder"], Optional[str]]] = None,
    now: Optional[datetime] = None
) -> str:
    """Render reminders one per line.

    Each line reads `**#id**: target: 'message' - 1 hour from now (<t:ts:f>)`
    where target is the channel mention, or the owner's username when
    display_usernames is set.

    Args:
        reminders: Reminders to render
        display_usernames: Show the owner instead of the channel
        username_for: Resolves a reminder's owner to a username
        now: Reference time for the relative part

    Returns:
        Newline-terminated lines
    """
    now = now or datetime.now(timezone.utc)
    out = ""
    for r in reminders:
        if display_usernames:
            target = (username_for(r) if username_for else None) or "Unknown user"
        else:
            target = f"<#{r.channel_id}>"

        from_now = humanize_time(r.when, Precision.MINUTES, now)
        out += f"**#{r.id}**: {target}: '{limit_string(r.message)}' - {from_now} from now (<t:{r.when_ts}:f>)\n"
    return out


def format_member_history(
    usernames: list["UsernameListing"],
    nicknames: list["NicknameListing"]
) -> str:
    """Render tracked usernames and nicknames, newest first."""
    body = "**Usernames:**```\n"
    for listing in usernames:
        body += f"{_format_listing_time(listing.created_at):>20}: {listing.username}\n"
    body += "```\n\n"

    body += "**Nicknames:**```\n"
    if not nicknames:
        body += "No nicknames tracked"
    else:
        for listing in nicknames:
            body += f"{_format_listing_time(listing.created_at):>20}: {listing.nickname}\n"
    body += "```"
    return body


def _format_listing_time(ts: int) -> str:
    return datetime.fromtimestamp(ts, timezone.utc).strftime("%d %b %y %H:%M UTC")
