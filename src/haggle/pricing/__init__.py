"""Pricing rules for negotiation floors and discount amounts.

Re-exports key functions for convenient access:
    from haggle.pricing import calculate_minimum_price, welcome_discount
"""

from haggle.pricing.bounds import (
    DEFAULT_FLOOR_RATIO,
    OfferBoundary,
    calculate_minimum_price,
    classify_offer,
    ensure_offer_within_bounds,
)
from haggle.pricing.discounts import (
    NEGOTIATED_CODE_TTL,
    WELCOME_CODE_TTL,
    WELCOME_DISCOUNT_PERCENT,
    WELCOME_MAX_DISCOUNT,
    WELCOME_MIN_PURCHASE,
    WelcomeTerms,
    discount_percentage,
    discounted_price,
    negotiated_discount,
    welcome_discount,
)

__all__ = [
    "DEFAULT_FLOOR_RATIO",
    "NEGOTIATED_CODE_TTL",
    "WELCOME_CODE_TTL",
    "WELCOME_DISCOUNT_PERCENT",
    "WELCOME_MAX_DISCOUNT",
    "WELCOME_MIN_PURCHASE",
    "OfferBoundary",
    "WelcomeTerms",
    "calculate_minimum_price",
    "classify_offer",
    "discount_percentage",
    "discounted_price",
    "ensure_offer_within_bounds",
    "negotiated_discount",
    "welcome_discount",
]
