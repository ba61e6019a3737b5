"""Shared Pydantic validators.

Keep these small and dependency-free so schema modules can reuse them without
introducing import cycles.
"""

import re
import unicodedata
from typing import Any


HTML_TAG_PATTERN = re.compile(r"<[^>]+>")
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.@-]+$")


def strip_html_tags(text: str) -> str:
    """Strip HTML tags from free text (notes) before it is stored."""
    if not isinstance(text, str):
        return text
    return HTML_TAG_PATTERN.sub("", text)


def strip_invisible_edges(value: str) -> str:
    """
    Strip leading/trailing whitespace and Unicode format characters (Cf).

    Keeps "\\u200balice" from registering as a look-alike of "alice".
    """
    if not isinstance(value, str):
        return value
    start = 0
    end = len(value)
    while start < end and (
        value[start].isspace() or unicodedata.category(value[start]) == "Cf"
    ):
        start += 1
    while end > start and (
        value[end - 1].isspace() or unicodedata.category(value[end - 1]) == "Cf"
    ):
        end -= 1
    return value[start:end]


def ensure_utf8_encodable(value: str) -> str:
    """
    Reject strings that cannot be encoded to UTF-8 (e.g., unpaired surrogates).

    Unpaired surrogates arrive through JSON escapes like "\\uD800" and would
    later break encryption (which encodes to UTF-8) or response rendering.
    """
    if not isinstance(value, str):
        return value
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise ValueError("Text contains invalid Unicode characters")
    return value


def normalize_username(value: Any) -> Any:
    if value is None or not isinstance(value, str):
        return value
    text = strip_invisible_edges(value)
    if not text:
        raise ValueError("Username cannot be blank")
    if not USERNAME_PATTERN.match(text):
        raise ValueError("Username may only contain letters, digits and _ . @ -")
    return text


def normalize_required_text(
    value: Any,
    *,
    field_name: str = "Field",
    strip_invisible: bool = False,
    strip_html: bool = False,
) -> Any:
    """Normalize required text fields: trim/sanitize, reject blank, enforce UTF-8."""
    if value is None or not isinstance(value, str):
        return value
    text = strip_html_tags(value) if strip_html else value
    text = strip_invisible_edges(text) if strip_invisible else text.strip()
    if not text:
        raise ValueError(f"{field_name} cannot be blank")
    return ensure_utf8_encodable(text)


def normalize_optional_text(
    value: Any,
    *,
    strip_invisible: bool = False,
    strip_html: bool = False,
) -> Any:
    """Normalize optional text fields: trim/sanitize, blank->None, enforce UTF-8."""
    if value is None or not isinstance(value, str):
        return value
    text = strip_html_tags(value) if strip_html else value
    text = strip_invisible_edges(text) if strip_invisible else text.strip()
    if not text:
        return None
    return ensure_utf8_encodable(text)
