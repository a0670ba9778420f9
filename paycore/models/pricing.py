"""Plan, quote and tax breakdown models."""
from __future__ import annotations

import enum
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from paycore.core.config import settings
from paycore.core.exceptions import InvalidPlanError
from paycore.utils.money import Currency, Money, to_decimal


class PlanTier(str, enum.Enum):
    """Plan rank used for access comparisons (free < pro < business < enterprise)."""
    FREE = "free"
    PRO = "pro"
    BUSINESS = "business"
    ENTERPRISE = "enterprise"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, PlanTier):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, PlanTier):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, PlanTier):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, PlanTier):
            return NotImplemented
        return self.rank >= other.rank


_TIER_ORDER = [PlanTier.FREE, PlanTier.PRO, PlanTier.BUSINESS, PlanTier.ENTERPRISE]


class BillingCycle(str, enum.Enum):
    MONTHLY = "monthly"
    ANNUAL = "annual"

    @property
    def label(self) -> str:
        return "Yearly" if self is BillingCycle.ANNUAL else "Monthly"


class Plan(BaseModel):
    """Plan definition as served by the pricing backend. Immutable once fetched."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    tier: PlanTier
    base_price: Decimal = Field(description="Monthly price in INR")
    annual_discount: Decimal = Field(default_factory=lambda: settings.ANNUAL_DISCOUNT)
    features: tuple[str, ...] = ()
    position: int = 0

    @field_validator("annual_discount")
    @classmethod
    def _discount_in_range(cls, v: Decimal) -> Decimal:
        if not Decimal("0") <= v < Decimal("1"):
            raise ValueError(f"annual_discount must be a fraction in [0, 1), got {v}")
        return v

    @property
    def is_free(self) -> bool:
        return self.tier is PlanTier.FREE

    @property
    def is_custom_priced(self) -> bool:
        """Enterprise plans without a list price are quoted by sales."""
        return self.tier is PlanTier.ENTERPRISE and self.base_price == 0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Plan:
        """Build a Plan from a ``/api/pricing`` payload.

        Accepts both the public shape (``id``) and the stored shape
        (``planId``), ``annualDiscount`` as a percentage (15 means 15%), and
        features given as strings or ``{name, included}`` objects.
        """
        plan_id = str(data.get("planId") or data.get("id") or data.get("_id") or "").strip()
        name = str(data.get("name") or plan_id.title())
        tier_key = plan_id.lower() if plan_id.lower() in PlanTier._value2member_map_ else name.lower()
        raw_discount = data.get("annualDiscount")
        discount = to_decimal(raw_discount) / 100 if raw_discount is not None else settings.ANNUAL_DISCOUNT
        if not Decimal("0") <= discount < Decimal("1"):
            raise InvalidPlanError(plan_id, f"annualDiscount must be in [0, 100), got {raw_discount}")
        features: list[str] = []
        for feature in data.get("features") or []:
            if isinstance(feature, dict):
                if feature.get("included", True) and feature.get("name"):
                    features.append(str(feature["name"]))
            elif feature:
                features.append(str(feature))
        return cls(
            id=plan_id,
            name=name,
            tier=PlanTier(tier_key),
            base_price=to_decimal(data.get("monthlyPrice", 0)),
            annual_discount=discount,
            features=tuple(features),
            position=int(data.get("position") or 0),
        )


class PriceQuote(BaseModel):
    """Derived price for one plan/cycle/currency. Recomputed, never mutated."""

    model_config = ConfigDict(frozen=True)

    plan_id: str
    cycle: BillingCycle
    currency: Currency
    amount: Decimal
    original_amount: Decimal | None = None
    savings: Decimal | None = None
    exchange_rate: Decimal = Decimal("1")
    is_custom: bool = False

    @property
    def money(self) -> Money:
        return Money(self.amount, self.currency)


class TaxBreakdown(BaseModel):
    """Tax decomposition of a tax-inclusive gross amount."""

    model_config = ConfigDict(frozen=True)

    base_amount: Decimal
    tax_amount: Decimal
    gross_amount: Decimal
    tax_rate: Decimal

    @model_validator(mode="after")
    def _sums_to_gross(self) -> TaxBreakdown:
        if self.base_amount + self.tax_amount != self.gross_amount:
            raise ValueError("base_amount + tax_amount must equal gross_amount")
        return self

    @property
    def tax_percent(self) -> str:
        """``18%`` style label."""
        percent = (self.tax_rate * 100).normalize()
        return f"{percent:f}%"
