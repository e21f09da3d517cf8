"""Negotiation lifecycle: statuses, events, and the in-memory state machine."""

from haggle.state_machine.machine import DEFAULT_NEGOTIATION_TTL, NegotiationStateMachine
from haggle.state_machine.transitions import (
    TERMINAL_STATES,
    TRANSITIONS,
    NegotiationEvent,
)

__all__ = [
    "DEFAULT_NEGOTIATION_TTL",
    "NegotiationEvent",
    "NegotiationStateMachine",
    "TERMINAL_STATES",
    "TRANSITIONS",
]
