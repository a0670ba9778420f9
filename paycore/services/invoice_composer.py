"""Invoice composition from a settled transaction.

Pure: no I/O. The invoice number is the transaction id, and every amount
comes from the shared tax breakdown so invoice, ledger and export agree.
"""
from __future__ import annotations

from paycore.core.config import settings
from paycore.models.invoice import Invoice, InvoiceLineItem, InvoiceParty
from paycore.models.payment_models import Transaction
from paycore.services.price_calculator import PriceCalculator


class InvoiceComposer:
    def __init__(self, calculator: PriceCalculator | None = None, seller: InvoiceParty | None = None):
        self.calculator = calculator or PriceCalculator()
        self.seller = seller or InvoiceParty(
            name=settings.SELLER_NAME,
            email=settings.SELLER_EMAIL,
            address=settings.SELLER_ADDRESS,
            gstin=settings.SELLER_GSTIN,
        )

    def compose(self, transaction: Transaction) -> Invoice:
        split = self.calculator.breakdown(transaction.gross_amount)
        period = transaction.cycle.label
        item = InvoiceLineItem(
            description=f"{transaction.plan_name} Subscription - {period}",
            billing_period=period,
            quantity=1,
            unit_price=split.base_amount,
            amount=split.base_amount,
        )
        return Invoice(
            invoice_number=transaction.transaction_id,
            issued_at=transaction.paid_at or transaction.created_at,
            status=transaction.status,
            plan_name=transaction.plan_name,
            billing_cycle=transaction.cycle,
            currency=transaction.currency,
            payment_method=transaction.payment_method or "Card",
            customer=InvoiceParty(
                name=transaction.user_name or "Customer",
                email=transaction.user_email,
                user_id=transaction.user_id,
            ),
            seller=self.seller,
            line_items=(item,),
            base_amount=split.base_amount,
            tax_amount=split.tax_amount,
            tax_rate=split.tax_rate,
            total_amount=split.gross_amount,
            service_period_end=transaction.expiry_date,
        )
