"""Weekday → category resolution.

Precedence (highest wins):
  1. ``remote_days`` / ``office_days`` lists
  2. ``weekday_modes`` mapping (``"Mon:Remote,Tue:Office"``)
  3. the default category

The day lists are applied after the mapping, so they override it for the
days they name.  Weekday tokens accept English and German short forms.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date

from timebooker.exceptions import ConfigurationError
from timebooker.settings.config import BookingSettings

logger = logging.getLogger(__name__)

WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

_TOKEN_MAP = {
    "mo": "Mon",
    "di": "Tue",
    "mi": "Wed",
    "do": "Thu",
    "don": "Thu",
    "fr": "Fri",
    "sa": "Sat",
    "so": "Sun",
}

REMOTE = "Remote"
OFFICE = "Office"


def normalize_weekday(token: str | None) -> str | None:
    """Map ``"monday"``, ``"Mo"``, ``"thu"``… to ``Mon``..``Sun``; ``None`` if unknown."""
    if not token:
        return None
    t = token.strip().lower()
    for day in WEEKDAYS:
        if t.startswith(day.lower()):
            return day
    return _TOKEN_MAP.get(t)


def weekday_of(item_id: str) -> str:
    """Weekday of a ``YYYY-MM-DD`` key, computed on the calendar date alone."""
    try:
        day = date.fromisoformat(item_id)
    except ValueError:
        raise ConfigurationError(f"Work item id is not a YYYY-MM-DD date: {item_id!r}") from None
    return WEEKDAYS[day.weekday()]


def _parse_mode(value: str | None) -> str:
    return OFFICE if (value or "").strip().lower().startswith("off") else REMOTE


def build_weekday_map(
    weekday_modes: str = "",
    remote_days: Iterable[str] = (),
    office_days: Iterable[str] = (),
) -> dict[str, str]:
    """Build ``{"Mon": "Remote", ...}`` from the configured sources."""
    mapping: dict[str, str] = {}

    for part in (weekday_modes or "").split(","):
        if not part.strip():
            continue
        key_raw, _, mode_raw = part.partition(":")
        key = normalize_weekday(key_raw)
        if not key:
            logger.warning("Ignoring unknown weekday token %r in weekday_modes", key_raw)
            continue
        mapping[key] = _parse_mode(mode_raw)

    for tokens, mode in ((remote_days, REMOTE), (office_days, OFFICE)):
        for token in tokens:
            key = normalize_weekday(token)
            if key:
                mapping[key] = mode
            else:
                logger.warning("Ignoring unknown weekday token %r", token)

    return mapping


class WeekdayCategoryResolver:
    """Decides the category for a work item from its weekday.

    Args:
        default_category: Used for weekdays the mapping does not name.
        mapping: Weekday → category, as produced by :func:`build_weekday_map`.
    """

    def __init__(self, default_category: str, mapping: dict[str, str] | None = None) -> None:
        self.default_category = default_category
        self.mapping = dict(mapping or {})

    @classmethod
    def from_settings(cls, booking: BookingSettings, default_category: str | None = None) -> WeekdayCategoryResolver:
        mapping = build_weekday_map(booking.weekday_modes, booking.remote_days, booking.office_days)
        return cls(default_category or booking.default_category, mapping)

    def resolve(self, item_id: str) -> str:
        weekday = weekday_of(item_id)
        configured = self.mapping.get(weekday)
        category = configured or self.default_category
        logger.info(
            "%s (%s) -> category %s (%s)",
            item_id,
            weekday,
            category,
            "schedule" if configured else "default",
        )
        return category
