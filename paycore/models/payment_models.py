"""Order, transaction and gateway result models.

Backend payloads use camelCase keys; the models accept them via aliases and
expose snake_case attributes.
"""
from __future__ import annotations

import datetime as dt
import enum
from decimal import Decimal
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from paycore.models.pricing import BillingCycle
from paycore.utils.money import Currency, Money, to_decimal


class OrderStatus(str, enum.Enum):
    """Order settlement status. Moves forward only: pending -> success|failed."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.PENDING


class Order(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: str
    plan_id: str
    cycle: BillingCycle
    currency: Currency
    status: OrderStatus = OrderStatus.PENDING

    def transition(self, status: OrderStatus) -> Order:
        """Return the order in *status*; backward moves are rejected."""
        if status is self.status:
            return self
        if self.status.is_terminal:
            raise ValueError(f"Order {self.order_id} is already {self.status.value}")
        return self.model_copy(update={"status": status})


# ── Checkout results ──────────────────────────────────────────────────

class Activated(BaseModel):
    """Free plan switched on without a payment."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["activated"] = "activated"
    plan_id: str
    message: str = "Your free plan has been activated."


class OrderCreated(BaseModel):
    """Paid order created; the caller opens ``payment_link`` elsewhere."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["order_created"] = "order_created"
    order: Order
    payment_link: str
    amount: Decimal | None = None

    @property
    def order_id(self) -> str:
        return self.order.order_id


class ContactSales(BaseModel):
    """Custom-priced plan; no order is created."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["contact_sales"] = "contact_sales"
    plan_id: str
    message: str = "Our team will contact you within 24 hours to discuss your enterprise needs."


OrderHandle = Union[Activated, OrderCreated, ContactSales]


class CreateOrderResponse(BaseModel):
    """``POST /api/payments/create`` body."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    success: bool
    payment_link: str | None = Field(default=None, alias="paymentLink")
    order_id: str | None = Field(default=None, alias="orderId")
    amount: Decimal | None = None
    currency: str | None = None
    message: str | None = None


# ── Verification results ──────────────────────────────────────────────

class PlanSnapshot(BaseModel):
    """User plan fields returned by verify and ``/api/users/current-plan``."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    plan: str | None = None
    plan_id: str | None = Field(default=None, alias="planId")
    subscription_status: str | None = Field(default=None, alias="subscriptionStatus")
    is_premium: bool | None = Field(default=None, alias="isPremium")
    plan_expiry_date: str | None = Field(default=None, alias="planExpiryDate")

    @property
    def looks_unupgraded(self) -> bool:
        return not self.plan or self.plan.lower() == "free"

    def merged(self, newer: PlanSnapshot) -> PlanSnapshot:
        """Overlay non-empty fields from *newer*."""
        updates = {k: v for k, v in newer.model_dump().items() if v not in (None, "")}
        return self.model_copy(update=updates)


class VerifyResponse(BaseModel):
    """``POST /api/payments/verify`` body."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    success: bool = False
    message: str | None = None
    user: PlanSnapshot | None = None
    plan_name: str | None = Field(default=None, alias="planName")
    billing_cycle: str | None = Field(default=None, alias="billingCycle")
    order_currency: str | None = Field(default=None, alias="orderCurrency")
    order_amount: Decimal | None = Field(default=None, alias="orderAmount")
    order_status: str | None = Field(default=None, alias="orderStatus")


class SettlementDetails(BaseModel):
    """What the success screen shows."""
    model_config = ConfigDict(frozen=True)

    plan_name: str
    billing_cycle: BillingCycle
    amount: Decimal | None = None
    currency: str | None = None
    user_plan: PlanSnapshot | None = None

    @property
    def display_amount(self) -> str:
        if self.amount is None:
            return ""
        return f"{self.currency or ''} {self.amount}".strip()


class VerifyPending(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["pending"] = "pending"
    message: str


class VerifySuccess(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["success"] = "success"
    message: str
    details: SettlementDetails


class VerifyFailed(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["failed"] = "failed"
    message: str
    session_expired: bool = False


VerifyOutcome = Union[VerifyPending, VerifySuccess, VerifyFailed]


# ── Admin ledger ──────────────────────────────────────────────────────

class Transaction(BaseModel):
    """Settled (or attempted) payment as listed by the admin API.

    ``gross_amount`` is tax-inclusive; base and tax are always derived.
    """
    model_config = ConfigDict(frozen=True)

    id: str | None = None
    transaction_id: str
    user_id: str | None = None
    user_name: str | None = None
    user_email: str | None = None
    plan_id: str | None = None
    plan_name: str
    cycle: BillingCycle = BillingCycle.MONTHLY
    currency: Currency = Currency.INR
    gross_amount: Decimal
    status: OrderStatus
    created_at: dt.datetime | None = None
    paid_at: dt.datetime | None = None
    expiry_date: dt.datetime | None = None
    payment_method: str | None = None
    gateway_transaction_id: str | None = None

    @field_validator("gross_amount", mode="before")
    @classmethod
    def _coerce_amount(cls, v):
        return to_decimal(v)

    @property
    def gross(self) -> Money:
        return Money(self.gross_amount, self.currency)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Transaction:
        user = data.get("user") or {}
        if not isinstance(user, dict):
            user = {"id": user}
        user_id = user.get("id") or user.get("_id") or data.get("userId")
        plan_id = data.get("planId")
        if isinstance(plan_id, dict):
            plan_id = plan_id.get("planId") or plan_id.get("_id")
        return cls(
            id=_str_or_none(data.get("id") or data.get("_id")),
            transaction_id=str(data.get("transactionId") or data.get("id") or ""),
            user_id=_str_or_none(user_id),
            user_name=user.get("username") or user.get("name"),
            user_email=user.get("email"),
            plan_id=_str_or_none(plan_id),
            plan_name=data.get("planName") or "Unknown",
            cycle=BillingCycle(data.get("billingCycle") or "monthly"),
            currency=Currency(data.get("currency") or "INR"),
            gross_amount=data.get("amount", 0),
            status=OrderStatus(data.get("status") or "pending"),
            created_at=data.get("createdAt"),
            paid_at=data.get("paidAt"),
            expiry_date=data.get("expiryDate"),
            payment_method=data.get("paymentMethod"),
            gateway_transaction_id=data.get("gatewayTransactionId"),
        )


def _str_or_none(value: Any) -> str | None:
    return None if value in (None, "") else str(value)


class SortOrder(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


class LedgerFilters(BaseModel):
    status: OrderStatus | None = None
    plan_id: str | None = None
    search: str | None = None
    user_id: str | None = None
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1)
    sort_by: str = "createdAt"
    sort_order: SortOrder = SortOrder.DESC

    def to_query(self) -> dict[str, str]:
        """Query string for ``GET /api/admin/payments``; empty filters are omitted."""
        params: dict[str, Any] = {
            "status": self.status.value if self.status else None,
            "planId": self.plan_id,
            "search": self.search.strip() if self.search else None,
            "userId": self.user_id,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "page": self.page,
            "limit": self.page_size,
            "sortBy": self.sort_by,
            "sortOrder": self.sort_order.value,
        }
        return {k: str(v) for k, v in params.items() if v not in (None, "")}

    @property
    def is_filtered(self) -> bool:
        return bool(self.status or self.plan_id or self.search or self.user_id or self.start_date or self.end_date)


class LedgerStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    total_revenue: Decimal = Field(default=Decimal("0"), alias="totalRevenue")
    total_transactions: int = Field(default=0, alias="totalTransactions")
    transaction_count: int = Field(default=0, alias="transactionCount")
    success_rate: Decimal = Field(default=Decimal("0"), alias="successRate")
    period: str | None = None


class LedgerPage(BaseModel):
    transactions: list[Transaction]
    page: int
    total_pages: int
    total: int
    stats: LedgerStats | None = None
