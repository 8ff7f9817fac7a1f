# services/validators.py
import math

from services.errors import ValidationError
from services.models import Currency, Direction, OrderState
from services.units import btc_to_satoshis

# BIGINT columns hold every satoshi and cent amount
MAX_MINOR_UNITS = 2 ** 63 - 1


def require_storable(minor: int, what: str) -> None:
    if minor > MAX_MINOR_UNITS:
        raise ValidationError(f"{what} is too large.")


def require_positive(value, what: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) \
            or not math.isfinite(value) or value <= 0:
        raise ValidationError(f"{what} must be a positive number.")


def parse_direction(value) -> Direction:
    try:
        return Direction(str(value).upper())
    except ValueError:
        raise ValidationError(f"Unknown order type {value!r}.") from None


def parse_currency(value) -> Currency:
    try:
        return Currency(str(value).upper())
    except ValueError:
        raise ValidationError(f"Unknown currency {value!r}.") from None


def parse_state(value) -> OrderState:
    try:
        return OrderState(str(value).upper())
    except ValueError:
        raise ValidationError(f"Unknown order state {value!r}.") from None


def parse_quantity(quantity) -> int:
    """BTC -> satoshis, rejecting anything that is not a positive amount."""
    require_positive(quantity, "Quantity")
    satoshis = btc_to_satoshis(quantity)
    if satoshis <= 0:
        raise ValidationError("Quantity is below one satoshi.")
    require_storable(satoshis, "Quantity")
    return satoshis
