"""Negotiation message log, canned templates, and content filtering."""

from haggle.messaging.filters import FilterResult, filter_content
from haggle.messaging.log import MessageLog
from haggle.messaging.templates import MESSAGE_TEMPLATES, list_templates, resolve_template

__all__ = [
    "MESSAGE_TEMPLATES",
    "FilterResult",
    "MessageLog",
    "filter_content",
    "list_templates",
    "resolve_template",
]
