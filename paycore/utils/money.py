"""Currency-tagged amounts.

Amounts are ``Decimal`` in major units (rupees, dollars). INR is the pricing
basis; USD only ever appears as a conversion *from* INR.

Usage
-----
    from paycore.utils.money import Currency, Money

    price = Money.inr(499)
    price.format()                          # "₹499"
    price.to_usd(Decimal("83")).format()    # "$6.01"
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
WHOLE = Decimal("1")


class Currency(str, enum.Enum):
    INR = "INR"
    USD = "USD"

    @property
    def symbol(self) -> str:
        return _SYMBOLS[self]


_SYMBOLS = {Currency.INR: "₹", Currency.USD: "$"}


def to_decimal(value: object) -> Decimal:
    """Coerce JSON numbers/strings to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc


def round_half_up(value: Decimal, exp: Decimal = CENT) -> Decimal:
    return value.quantize(exp, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Money:
    amount: Decimal
    currency: Currency = Currency.INR

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))
        object.__setattr__(self, "currency", Currency(self.currency))

    @classmethod
    def inr(cls, amount: object) -> Money:
        return cls(to_decimal(amount), Currency.INR)

    @classmethod
    def usd(cls, amount: object) -> Money:
        return cls(to_decimal(amount), Currency.USD)

    @property
    def minor_units(self) -> int:
        """Integer paise/cents, e.g. for gateways that want the smallest unit."""
        return int(round_half_up(self.amount * 100, WHOLE))

    def to_usd(self, inr_per_usd: Decimal) -> Money:
        """Convert an INR amount for display. Never chained from a USD amount."""
        if self.currency is Currency.USD:
            raise ValueError("USD amounts are display values and cannot be re-converted")
        rate = to_decimal(inr_per_usd)
        if rate <= 0:
            raise ValueError(f"Exchange rate must be positive, got {rate}")
        return Money(round_half_up(self.amount / rate), Currency.USD)

    def _check(self, other: Money) -> None:
        if other.currency is not self.currency:
            raise ValueError(f"Currency mismatch: {self.currency.value} vs {other.currency.value}")

    def __add__(self, other: Money) -> Money:
        self._check(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        self._check(other)
        return Money(self.amount - other.amount, self.currency)

    def format(self, *, decimals: bool | None = None) -> str:
        """Format for display: ``₹5,090`` / ``₹84.75`` / ``$61.33``.

        USD always shows two decimals. INR drops them for whole amounts
        unless *decimals* is True.
        """
        symbol = self.currency.symbol
        if self.currency is Currency.USD or decimals:
            return f"{symbol}{round_half_up(self.amount):,.2f}"
        if decimals is None and self.amount != self.amount.to_integral_value():
            return f"{symbol}{round_half_up(self.amount):,.2f}"
        return f"{symbol}{round_half_up(self.amount, WHOLE):,.0f}"

    def format_code(self) -> str:
        """Invoice style: ``INR 5,090.00``."""
        return f"{self.currency.value} {round_half_up(self.amount):,.2f}"

    def __str__(self) -> str:
        return self.format()
