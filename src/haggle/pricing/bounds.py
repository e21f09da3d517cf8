"""Price floor computation and offer boundary enforcement.

All arithmetic goes through Decimal so that the floor is exact for every
integer list price (``floor(500 * 0.7) == 350``, never 349).
"""

from decimal import ROUND_FLOOR, Decimal
from enum import StrEnum

from haggle.domain.errors import PriceOutOfBoundsError

# Hard floor: no offer below 70% of the list price
DEFAULT_FLOOR_RATIO = Decimal("0.7")


class OfferBoundary(StrEnum):
    """Classification of a proposed price relative to the negotiation bounds."""

    WITHIN_RANGE = "within_range"
    BELOW_FLOOR = "below_floor"
    ABOVE_CEILING = "above_ceiling"


def calculate_minimum_price(
    original_price: int,
    floor_ratio: Decimal = DEFAULT_FLOOR_RATIO,
) -> int:
    """Return ``floor(original_price * floor_ratio)`` as an integer.

    Args:
        original_price: The item's list price (positive integer).
        floor_ratio: Fraction of the list price below which no offer is
            accepted. Defaults to 0.7.

    Returns:
        The minimum acceptable price.

    Raises:
        ValueError: If *original_price* is not positive or the ratio is
            outside ``(0, 1]``.
    """
    if original_price <= 0:
        raise ValueError(f"original_price must be positive, got {original_price}")
    if not Decimal(0) < floor_ratio <= Decimal(1):
        raise ValueError(f"floor_ratio must be in (0, 1], got {floor_ratio}")
    product = Decimal(original_price) * floor_ratio
    return int(product.to_integral_value(rounding=ROUND_FLOOR))


def classify_offer(price: int, minimum_price: int, original_price: int) -> OfferBoundary:
    """Classify *price* against ``[minimum_price, original_price]``."""
    if price < minimum_price:
        return OfferBoundary.BELOW_FLOOR
    if price > original_price:
        return OfferBoundary.ABOVE_CEILING
    return OfferBoundary.WITHIN_RANGE


def ensure_offer_within_bounds(price: int, minimum_price: int, original_price: int) -> None:
    """Raise unless ``minimum_price <= price <= original_price``.

    Raises:
        PriceOutOfBoundsError: If the offer breaks the floor or the ceiling.
    """
    if classify_offer(price, minimum_price, original_price) != OfferBoundary.WITHIN_RANGE:
        raise PriceOutOfBoundsError(price, minimum_price, original_price)
