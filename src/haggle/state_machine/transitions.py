"""Transition map defining all valid (status, event) -> status mappings."""

from enum import StrEnum

from haggle.domain.types import NegotiationStatus


class NegotiationEvent(StrEnum):
    """Events that can act on a negotiation."""

    POST_MESSAGE = "post_message"
    ACCEPT = "accept"
    REJECT = "reject"
    EXPIRE = "expire"
    COMPLETE = "complete"


# All valid (current_status, event_string) -> next_status mappings.
# Any pair not in this dict is an invalid transition.
TRANSITIONS: dict[tuple[NegotiationStatus, str], NegotiationStatus] = {
    # From ACTIVE
    (NegotiationStatus.ACTIVE, NegotiationEvent.POST_MESSAGE): NegotiationStatus.ACTIVE,
    (NegotiationStatus.ACTIVE, NegotiationEvent.ACCEPT): NegotiationStatus.ACCEPTED,
    (NegotiationStatus.ACTIVE, NegotiationEvent.REJECT): NegotiationStatus.REJECTED,
    (NegotiationStatus.ACTIVE, NegotiationEvent.EXPIRE): NegotiationStatus.EXPIRED,
    # From ACCEPTED
    (NegotiationStatus.ACCEPTED, NegotiationEvent.COMPLETE): NegotiationStatus.COMPLETED,
}

# Statuses that reject all events -- no outgoing transitions allowed.
TERMINAL_STATES: frozenset[NegotiationStatus] = frozenset(
    {NegotiationStatus.REJECTED, NegotiationStatus.EXPIRED, NegotiationStatus.COMPLETED}
)
