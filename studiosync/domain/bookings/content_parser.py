"""
Free-text conventions used in calendar events.

Studio: the summary normally reads "Booking for <STUDIO>". Older events
used "Studio A/B/C", and some staff-created events only mention a
studio somewhere in the text. Rules are tried in table order and the
first one that matches wins; the order follows the naming history of
the calendars, newest convention first.

Customer: the description carries "Customer Name: ...",
"Customer Email: ..." and "Customer Phone: ..." lines, sometimes wrapped
in rich-text markup by the calendar UI.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from ...utils.sanitization import strip_markup
from .studios import (
    BOTH_LAB_AND_EXTENSION,
    BOTH_LAB_AND_EXTENSION_EVENTS,
    DEFAULT_STUDIO,
    THE_EXTENSION,
    THE_GROUND,
    THE_LAB,
)

logger = logging.getLogger(__name__)

BOOKING_FOR_RE = re.compile(r"booking for (.+?)(?:\s+-|$)", re.IGNORECASE)
LEGACY_STUDIO_RE = re.compile(r"\bstudio ([a-z])\b", re.IGNORECASE)
LINE_BREAK_RE = re.compile(r"<br\s*/?>|</p>|</div>", re.IGNORECASE)

# Substring (lowercase) -> studio, checked in order
KNOWN_STUDIO_SUBSTRINGS = (
    ("ground", THE_GROUND),
    ("extension", THE_EXTENSION),
    ("lab", THE_LAB),
)

KEYWORD_STUDIOS = (
    ("the ground", THE_GROUND),
    ("the extension", THE_EXTENSION),
    ("the lab", THE_LAB),
    ("studio b", "Studio B"),
    ("studio c", "Studio C"),
    ("studio a", "Studio A"),
)

CUSTOMER_KEYS = {
    "customer name": "customer_name",
    "customer email": "customer_email",
    "customer phone": "customer_phone",
}


@dataclass(frozen=True)
class StudioRule:
    name: str
    match: Callable[[str], Optional[str]]


def match_booking_for(summary: str) -> Optional[str]:
    match = BOOKING_FOR_RE.search(summary)
    if not match:
        return None

    extracted = strip_markup(match.group(1))
    lowered = extracted.lower()
    # Combined offerings map onto the names the shared-space table knows
    if lowered.startswith("both"):
        if "lab" in lowered and "extension" in lowered:
            return BOTH_LAB_AND_EXTENSION_EVENTS if "event" in lowered else BOTH_LAB_AND_EXTENSION
        return extracted.upper()
    for needle, studio in KNOWN_STUDIO_SUBSTRINGS:
        if needle in lowered:
            return studio
    return extracted.upper() or None


def match_legacy_studio_letter(summary: str) -> Optional[str]:
    match = LEGACY_STUDIO_RE.search(summary)
    if not match:
        return None
    return f"Studio {match.group(1).upper()}"


def match_keyword(summary: str) -> Optional[str]:
    lowered = summary.lower()
    for needle, studio in KEYWORD_STUDIOS:
        if needle in lowered:
            return studio
    return None


DEFAULT_STUDIO_RULES = (
    StudioRule("booking-for", match_booking_for),
    StudioRule("legacy-letter", match_legacy_studio_letter),
    StudioRule("keyword", match_keyword),
)


class EventContentParser:
    """Extracts studio and customer details from event text"""

    def __init__(self, studio_rules=DEFAULT_STUDIO_RULES, default_studio: str = DEFAULT_STUDIO):
        self.studio_rules = tuple(studio_rules)
        self.default_studio = default_studio

    def parse_studio(self, summary: Optional[str]) -> str:
        summary = (summary or "").strip()
        if summary:
            for rule in self.studio_rules:
                studio = rule.match(summary)
                if studio:
                    logger.debug(f"Studio '{studio}' resolved by rule {rule.name}: {summary!r}")
                    return studio
        return self.default_studio

    def parse_customer(self, description: Optional[str]) -> dict[str, str]:
        """
        Read customer fields from the event description.
        Markup is stripped from each value as it is extracted.
        The first non-empty line for each key wins.
        """
        details = {field: "" for field in CUSTOMER_KEYS.values()}
        if not description:
            return details

        text = LINE_BREAK_RE.sub("\n", description)
        for line in text.splitlines():
            key, sep, rest = line.partition(":")
            if not sep:
                continue
            field = CUSTOMER_KEYS.get(strip_markup(key).lower())
            if field and not details[field]:
                details[field] = strip_markup(rest)
        return details


default_parser = EventContentParser()
