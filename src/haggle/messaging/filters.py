"""Content filter that keeps negotiations on-platform.

Masks contact details and off-platform payment or hiring channels with
``[FILTERED]``.  Price figures are left alone: the phone pattern needs at
least eight digits, so ordinary offers like ``450`` pass through.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

FILTER_REPLACEMENT = "[FILTERED]"
FILTER_REASON = "Contains potentially prohibited content"

_SUSPICIOUS_PATTERNS: tuple[re.Pattern[str], ...] = (
    # Email addresses
    re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    # Phone numbers
    re.compile(r"\+?\(?\d(?:[\s().-]?\d){7,}"),
    # Social media / messengers
    re.compile(
        r"\b(?:whatsapp|telegram|discord|skype|instagram|facebook|twitter)\b",
        re.IGNORECASE,
    ),
    # Off-platform payment
    re.compile(
        r"\b(?:paypal|venmo|cashapp|zelle|bitcoin|crypto|bank\s*transfer)\b",
        re.IGNORECASE,
    ),
    # External platforms
    re.compile(
        r"\b(?:fiverr|upwork|freelancer|github\.com|gitlab\.com)\b",
        re.IGNORECASE,
    ),
    # Contact attempts
    re.compile(r"\b(?:contact\s*me|reach\s*out|dm\s*me|message\s*me)\b", re.IGNORECASE),
)


@dataclass(frozen=True)
class FilterResult:
    """Outcome of filtering one message body.

    Attributes:
        content: The text to store (masked if anything matched).
        is_filtered: Whether any pattern matched.
        reason: Why the text was masked, if it was.
    """

    content: str
    is_filtered: bool
    reason: str | None = None


def filter_content(content: str) -> FilterResult:
    """Mask every suspicious fragment in *content*.

    Args:
        content: Raw message text.

    Returns:
        A :class:`FilterResult`; ``content`` is unchanged when nothing matched.
    """
    filtered = content
    for pattern in _SUSPICIOUS_PATTERNS:
        filtered = pattern.sub(FILTER_REPLACEMENT, filtered)

    if filtered == content:
        return FilterResult(content=content, is_filtered=False)
    return FilterResult(content=filtered, is_filtered=True, reason=FILTER_REASON)
