"""
Fixed-point money helpers and the convert-to-fixed-price rule.

All amounts are ``Decimal`` quantized to cents (ROUND_HALF_UP). Markups are
expressed in basis points: 100 bps = 1%, so a 10% markup is 1000 bps.

    fixed_price = base * (10_000 + markup_bps) / 10_000

where ``base`` comes from the auction's configured price source.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from auctionhouse.models.enums import PriceSource

CENT = Decimal("0.01")
BPS_DENOMINATOR = Decimal(10_000)


def to_money(value) -> Decimal:
    """Coerce ints, strings and Decimals to a cent-precision Decimal.

    Floats go through ``str`` so 0.1 becomes Decimal("0.10"), not its binary
    expansion.
    """
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def apply_markup(base: Decimal, markup_bps: int) -> Decimal:
    """Add ``markup_bps`` basis points on top of ``base``.

    Raises:
        ValueError: If the markup is negative.
    """
    if markup_bps < 0:
        raise ValueError("Markup must be >= 0 basis points")
    return to_money(to_money(base) * (BPS_DENOMINATOR + markup_bps) / BPS_DENOMINATOR)


def base_price(
    source: PriceSource,
    starting_bid: Decimal,
    reserve_price: Optional[Decimal] = None,
    highest_bid: Optional[Decimal] = None,
    manual_price: Optional[Decimal] = None,
) -> Decimal:
    """Pick the pre-markup price for a convert-to-fixed listing.

    A source with no value (no reserve configured, no bids, no manual price)
    falls back to the starting bid.
    """
    if source == PriceSource.MANUAL:
        candidate = manual_price
    elif source == PriceSource.RESERVE:
        candidate = reserve_price
    elif source == PriceSource.HIGHEST_BID:
        candidate = highest_bid
    elif source == PriceSource.STARTING_BID:
        candidate = starting_bid
    else:
        raise ValueError(f"Unknown price source: {source}")

    return to_money(candidate if candidate is not None else starting_bid)


def fixed_price(
    source: PriceSource,
    markup_bps: int,
    starting_bid: Decimal,
    reserve_price: Optional[Decimal] = None,
    highest_bid: Optional[Decimal] = None,
    manual_price: Optional[Decimal] = None,
) -> Decimal:
    """Final fixed price: base price from ``source`` plus the markup."""
    base = base_price(source, starting_bid, reserve_price, highest_bid, manual_price)
    return apply_markup(base, markup_bps)
