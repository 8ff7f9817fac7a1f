# services/models.py
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Direction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def opposite(self) -> "Direction":
        return Direction.SELL if self is Direction.BUY else Direction.BUY


class OrderState(str, Enum):
    LIVE = "LIVE"
    FULFILLED = "FULFILLED"
    CANCELLED = "CANCELLED"


class AdmissionOutcome(str, Enum):
    ADMITTED = "ADMITTED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"


class Currency(str, Enum):
    USD = "USD"
    BTC = "BTC"


def fiat_cost(quantity: int, price: float) -> int:
    """Cents needed for `quantity` satoshis at `price` cents/satoshi, truncated."""
    return int(quantity * price)


@dataclass
class User:
    id: str
    fiat_balance: int = 0      # USD cents
    crypto_balance: int = 0    # satoshis


@dataclass
class StandingOrder:
    """
    A resting offer to buy or sell satoshis at a fixed limit price.

    limit_price and average_price are cents per satoshi; the quantities
    are satoshis.
    """
    user_id: str
    direction: Direction
    limit_price: float
    remaining_quantity: int
    state: OrderState = OrderState.LIVE
    fulfilled_quantity: int = 0
    average_price: float = 0.0
    webhook_url: str | None = None
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def quantity(self) -> int:
        return self.fulfilled_quantity + self.remaining_quantity

    @property
    def is_live(self) -> bool:
        return self.state is OrderState.LIVE

    @property
    def pledged_fiat(self) -> int:
        if not self.is_live or self.direction is not Direction.BUY:
            return 0
        return fiat_cost(self.remaining_quantity, self.limit_price)

    @property
    def pledged_crypto(self) -> int:
        if not self.is_live or self.direction is not Direction.SELL:
            return 0
        return self.remaining_quantity

    def record_fill(self, quantity: int, notional: float) -> None:
        """Fold a filled fragment into the running VWAP and fill counters."""
        if quantity <= 0:
            return
        total = self.fulfilled_quantity + quantity
        self.average_price = (self.average_price * self.fulfilled_quantity + notional) / total
        self.fulfilled_quantity = total
        self.remaining_quantity -= quantity
        if self.remaining_quantity == 0:
            self.state = OrderState.FULFILLED


@dataclass
class Fragment:
    """One settlement between a demand and a single resting order."""
    quantity: int = 0
    fiat_amount: int = 0
    notional: float = 0.0
    demand_exhausted: bool = False


@dataclass
class MatchResult:
    quantity: int = 0
    fiat_amount: int = 0
    notional: float = 0.0
    fragments: list[Fragment] = field(default_factory=list)

    def add(self, fragment: Fragment) -> None:
        self.quantity += fragment.quantity
        self.fiat_amount += fragment.fiat_amount
        self.notional += fragment.notional
        self.fragments.append(fragment)

    @property
    def average_price(self) -> float:
        """Volume-weighted average in cents per satoshi."""
        if self.quantity == 0:
            return 0.0
        return self.notional / self.quantity


@dataclass
class MarketOrderOutcome:
    quantity: float        # BTC
    average_price: float   # USD per BTC
