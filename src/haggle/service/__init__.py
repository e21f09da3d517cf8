"""Request-facing services over negotiations and discount codes."""

from haggle.service.discounts import DiscountService
from haggle.service.negotiations import AcceptedOffer, NegotiationPolicy, NegotiationService
from haggle.service.sweeper import run_sweeper_periodically, sweep_expired

__all__ = [
    "AcceptedOffer",
    "DiscountService",
    "NegotiationPolicy",
    "NegotiationService",
    "run_sweeper_periodically",
    "sweep_expired",
]
