# services/units.py
"""
Conversions between the human-facing major units (BTC, USD, USD per BTC)
and the integer minor units stored in the ledger (satoshis, cents,
cents per satoshi).
"""

from decimal import Decimal, ROUND_DOWN

SATOSHIS_PER_BTC = 100_000_000
CENTS_PER_USD = 100

# USD/BTC -> cents/satoshi: * 100 / 10^8
PRICE_SCALE = SATOSHIS_PER_BTC // CENTS_PER_USD


def _to_minor(amount: float, scale: int) -> int:
    # str() keeps 0.29 from becoming 28999999.999... satoshis
    value = Decimal(str(amount)) * scale
    return int(value.to_integral_value(rounding=ROUND_DOWN))


def btc_to_satoshis(amount: float) -> int:
    return _to_minor(amount, SATOSHIS_PER_BTC)


def usd_to_cents(amount: float) -> int:
    return _to_minor(amount, CENTS_PER_USD)


def satoshis_to_btc(satoshis: int) -> float:
    return satoshis / SATOSHIS_PER_BTC


def cents_to_usd(cents: int) -> float:
    return cents / CENTS_PER_USD


def price_to_minor(usd_per_btc: float) -> float:
    """USD per BTC -> cents per satoshi."""
    return usd_per_btc / PRICE_SCALE


def price_to_major(cents_per_satoshi: float) -> float:
    """cents per satoshi -> USD per BTC."""
    return cents_per_satoshi * PRICE_SCALE
