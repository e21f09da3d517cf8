"""Retry policies for version conflicts and storage failures."""

from haggle.resilience.retry import resilient_storage_call, retry_on_conflict

__all__ = [
    "resilient_storage_call",
    "retry_on_conflict",
]
