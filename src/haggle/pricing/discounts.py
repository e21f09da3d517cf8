"""Discount arithmetic for negotiated and welcome credentials.

Percentages are integers (``20`` means 20%) and rounding is half-up, the way
a shopper expects a rounded discount to behave.
"""

from dataclasses import dataclass
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

# Welcome code defaults
WELCOME_DISCOUNT_PERCENT = 20
WELCOME_MAX_DISCOUNT = 500
WELCOME_MIN_PURCHASE = 100
WELCOME_CODE_TTL = timedelta(days=30)

# Negotiated codes must be used within 48 hours of acceptance
NEGOTIATED_CODE_TTL = timedelta(hours=48)


@dataclass(frozen=True)
class WelcomeTerms:
    """Constraints stamped onto every newly issued welcome credential.

    Attributes:
        discount_percent: Whole-number percentage off the item price.
        max_discount_cap: Upper bound on the absolute discount.
        min_purchase_amount: Smallest item price the code applies to.
        ttl: How long the code stays valid after issuance.
    """

    discount_percent: int = WELCOME_DISCOUNT_PERCENT
    max_discount_cap: int = WELCOME_MAX_DISCOUNT
    min_purchase_amount: int = WELCOME_MIN_PURCHASE
    ttl: timedelta = WELCOME_CODE_TTL


def negotiated_discount(original_price: int, final_price: int) -> int:
    """Return the absolute discount locked in by an accepted negotiation."""
    if final_price > original_price:
        raise ValueError(
            f"final_price ({final_price}) must not exceed original_price ({original_price})"
        )
    return original_price - final_price


def welcome_discount(item_price: int, discount_percent: int, max_discount_cap: int) -> int:
    """Compute ``min(round(item_price * percent / 100), cap)``.

    Args:
        item_price: Current catalog price of the item.
        discount_percent: Whole-number percentage (0-100).
        max_discount_cap: Upper bound on the absolute discount.

    Returns:
        The discount amount as an integer.
    """
    raw = Decimal(item_price) * Decimal(discount_percent) / Decimal(100)
    rounded = int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return min(rounded, max_discount_cap)


def discounted_price(item_price: int, discount_amount: int) -> int:
    """Apply *discount_amount* to *item_price*, flooring the result at 0."""
    return max(item_price - discount_amount, 0)


def discount_percentage(original_price: int, discount_amount: int) -> int:
    """Return the discount as a whole-number percentage of the list price."""
    if original_price <= 0:
        return 0
    ratio = Decimal(discount_amount) * Decimal(100) / Decimal(original_price)
    return int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))
