"""Discount credential codes and their SQLite store."""

from haggle.credentials.codes import negotiated_code, normalize_code, welcome_code
from haggle.credentials.store import CredentialStore

__all__ = [
    "CredentialStore",
    "negotiated_code",
    "normalize_code",
    "welcome_code",
]
