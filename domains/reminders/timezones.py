"""Known IANA timezone names, loaded once for autocompletion.

The list comes from zoneinfo's view of the platform zone database (plus the
tzdata package when installed). If neither is available the list is empty
and autocompletion simply offers nothing.
"""

import zoneinfo

from logger import logger
from . import config


def _load_timezones() -> tuple[str, ...]:
    try:
        names = zoneinfo.available_timezones()
    except OSError as e:
        logger.warning(f"Timezone database unavailable, autocomplete disabled: {e}")
        return ()

    # Skip the lowercase helper files some zone directories ship (e.g. "posixrules")
    return tuple(sorted(n for n in names if n[:1].isupper()))


TIMEZONE_CHOICES: tuple[str, ...] = _load_timezones()


def _fuzzy_distance(candidate: str, target: str) -> int | None:
    """Return how loosely candidate matches target, or None if it doesn't.

    Candidate characters must appear in target in order (case-insensitive).
    The distance is the number of target characters skipped.
    """
    pos = 0
    for ch in candidate:
        pos = target.find(ch, pos)
        if pos < 0:
            return None
        pos += 1
    return len(target) - len(candidate)


def match_timezones(candidate: str, limit: int = None, choices: tuple[str, ...] = None) -> list[str]:
    """Rank timezone names matching a partially typed candidate.

    Args:
        candidate: What the user typed so far
        limit: Maximum number of names returned
        choices: Names to search (defaults to TIMEZONE_CHOICES)

    Returns:
        Matching names, closest first
    """
    limit = limit or config.TIMEZONE_AUTOCOMPLETE_LIMIT
    choices = TIMEZONE_CHOICES if choices is None else choices
    needle = candidate.lower()

    ranked = []
    for name in choices:
        distance = _fuzzy_distance(needle, name.lower())
        if distance is not None:
            ranked.append((distance, name))

    ranked.sort()
    return [name for _, name in ranked[:limit]]
