"""Invoice composed from one transaction. No lifecycle of its own."""
from __future__ import annotations

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from paycore.models.payment_models import OrderStatus
from paycore.models.pricing import BillingCycle
from paycore.utils.money import Currency, Money


class InvoiceParty(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    email: str | None = None
    address: str | None = None
    gstin: str | None = None
    user_id: str | None = None


class InvoiceLineItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    billing_period: str
    quantity: int = 1
    unit_price: Decimal
    amount: Decimal


class Invoice(BaseModel):
    model_config = ConfigDict(frozen=True)

    invoice_number: str
    issued_at: dt.datetime | None
    status: OrderStatus
    plan_name: str
    billing_cycle: BillingCycle
    currency: Currency
    payment_method: str
    customer: InvoiceParty
    seller: InvoiceParty
    line_items: tuple[InvoiceLineItem, ...]
    base_amount: Decimal
    tax_amount: Decimal
    tax_rate: Decimal
    total_amount: Decimal
    service_period_end: dt.datetime | None = None

    def money(self, amount: Decimal) -> Money:
        return Money(amount, self.currency)

    @property
    def tax_label(self) -> str:
        percent = (self.tax_rate * 100).normalize()
        return f"GST ({percent:f}%)"
