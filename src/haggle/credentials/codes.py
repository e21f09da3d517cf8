"""Discount code token generation.

Negotiated codes are derived from the negotiation id with a keyed hash, so
minting the same negotiation twice always lands on the same primary key.
Welcome codes are random and rely on the per-buyer unique index instead.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import string

NEGOTIATED_PREFIX = "NEGO-"
WELCOME_PREFIX = "WELCOME20-"
NEGOTIATED_TOKEN_LENGTH = 10
WELCOME_TOKEN_LENGTH = 8

_WELCOME_ALPHABET = string.ascii_uppercase + string.digits


def normalize_code(code: str) -> str:
    """Return the canonical (stripped, upper-case) form of a user-entered code."""
    return code.strip().upper()


def negotiated_code(negotiation_id: str, salt: str) -> str:
    """Derive the deterministic code for a negotiation.

    Args:
        negotiation_id: The accepted negotiation's id.
        salt: Server-side secret mixed into the HMAC so codes cannot be
            guessed from negotiation ids.

    Returns:
        ``NEGO-`` followed by 10 base32 characters (A-Z, 2-7).
    """
    digest = hmac.new(salt.encode(), negotiation_id.encode(), hashlib.sha256).digest()
    token = base64.b32encode(digest).decode("ascii")[:NEGOTIATED_TOKEN_LENGTH]
    return f"{NEGOTIATED_PREFIX}{token}"


def welcome_code() -> str:
    """Generate a random welcome code such as ``WELCOME20-7KQ2M9XD``."""
    token = "".join(secrets.choice(_WELCOME_ALPHABET) for _ in range(WELCOME_TOKEN_LENGTH))
    return f"{WELCOME_PREFIX}{token}"
