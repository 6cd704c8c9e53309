import html
import re
from typing import Optional

import bleach

CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def _strip_once(value: str) -> str:
    # No tags allowed: bleach drops them and escapes stray brackets, unescape restores the text
    value = bleach.clean(value, tags=set(), attributes={}, strip=True, strip_comments=True)
    value = html.unescape(value)
    value = value.replace("\xa0", " ")
    value = CONTROL_CHARS_RE.sub("", value)
    return value.strip()


def strip_markup(value: Optional[str]) -> str:
    """
    Remove HTML tags and decode HTML entities from free text.

    Rich-text calendar descriptions arrive as e.g. "<b>Jane</b>" or
    "&lt;b&gt;Jane&lt;/b&gt;". Tags are removed and entities decoded
    repeatedly until the text stops changing, so the result is a fixed
    point: strip_markup(strip_markup(x)) == strip_markup(x).

    Returns "" for None.
    """
    if not value:
        return ""

    current = str(value)
    while True:
        cleaned = _strip_once(current)
        if cleaned == current:
            return cleaned
        current = cleaned


def has_markup(value: Optional[str]) -> bool:
    """True when the stored text would change under strip_markup"""
    if not value:
        return False
    return strip_markup(value) != value


def sanitize_fields(data: dict, fields: list[str]) -> dict:
    """
    Strip markup from the named string fields of a dictionary.
    Other keys are copied through unchanged.
    """
    if not data:
        return data

    sanitized = dict(data)
    for key in fields:
        value = sanitized.get(key)
        if isinstance(value, str) or value is None:
            sanitized[key] = strip_markup(value)
    return sanitized
