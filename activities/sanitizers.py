# vtl-backend/activities/sanitizers.py
"""
Input sanitization for user-supplied activity text.

Titles and comments end up inside signed credential payloads and emails,
so they are stored as plain text; descriptions keep a small HTML subset.
"""
import re
from typing import Optional

import bleach


ALLOWED_TAGS = ['p', 'br', 'strong', 'em', 'ul', 'ol', 'li', 'a']

ALLOWED_ATTRIBUTES = {
    'a': ['href', 'title'],
}

MEDIA_TYPE_RE = re.compile(r'^[\w.+-]+/[\w.+-]+$')
CONTROL_CHARS_RE = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')


def sanitize_text(text: Optional[str], max_length: Optional[int] = None) -> str:
    """
    Plain text: HTML removed, control characters dropped (newlines and tabs
    kept), trimmed and truncated.
    """
    if text is None:
        return ""

    # Before bleach: its parser turns NUL into U+FFFD
    text = CONTROL_CHARS_RE.sub("", text)
    text = bleach.clean(text, tags=[], attributes={}, strip=True).strip()

    if max_length and len(text) > max_length:
        text = text[:max_length]
    return text


def sanitize_title(title: Optional[str]) -> str:
    """Single line, max 255 characters, no HTML."""
    text = sanitize_text(title, max_length=255)
    text = re.sub(r'[\r\n]+', ' ', text)
    return re.sub(r'\s+', ' ', text)


def sanitize_description(description: Optional[str]) -> str:
    if description is None:
        return ""
    clean = bleach.clean(
        CONTROL_CHARS_RE.sub("", description).strip(),
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        strip=True,
    )
    return clean[:10000]


def sanitize_comment(comment: Optional[str]) -> str:
    """Reviewer comments are recorded in the ledger verbatim after this."""
    return sanitize_text(comment, max_length=2000)


def sanitize_media_type(media_type: Optional[str]) -> str:
    media_type = (media_type or "").split(";")[0].strip().lower()
    if not MEDIA_TYPE_RE.match(media_type):
        return "application/octet-stream"
    return media_type
