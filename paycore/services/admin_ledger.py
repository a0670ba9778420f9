"""
Admin payment ledger.

Handles:
- Filtered, paginated transaction listing (filtering happens server-side)
- Single transaction detail and revenue stats
- Tax breakdown per transaction, always re-derived from the gross amount
- CSV export using the same breakdown as the on-screen view
"""
from __future__ import annotations

import csv
import datetime as dt
import logging
import math
from io import StringIO
from typing import Iterable

from pydantic import ValidationError as PydanticValidationError

from paycore import metrics
from paycore.core.config import settings
from paycore.core.exceptions import LedgerError, SessionExpiredError
from paycore.models.payment_models import LedgerFilters, LedgerPage, LedgerStats, Transaction
from paycore.models.pricing import TaxBreakdown
from paycore.services.api_client import BackendClient
from paycore.services.price_calculator import PriceCalculator
from paycore.utils.money import round_half_up

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "Transaction ID",
    "User Name",
    "User Email",
    "Plan Name",
    "Plan ID",
    "Billing Cycle",
    "Status",
    "Payment Method",
    "Currency",
    "Total Amount (incl. tax)",
    "Base Amount (excl. tax)",
    "Tax Amount",
    "Tax Percentage",
    "Created Date",
    "Paid Date",
    "Expiry Date",
    "Gateway Transaction ID",
]


class AdminPaymentLedger:
    def __init__(self, client: BackendClient, calculator: PriceCalculator | None = None):
        self.client = client
        self.calculator = calculator or PriceCalculator()

    async def _get(self, path: str, params: dict[str, str] | None = None) -> dict:
        response = await self.client.request("GET", path, params=params)
        if response.status_code == 401:
            raise SessionExpiredError("Admin session expired. Please login again.")
        data = self.client.json_body(response)
        if not response.is_success or data is None:
            message = (data or {}).get("message") or "Failed to load payments"
            logger.warning("GET %s failed: HTTP %s %s", path, response.status_code, message)
            raise LedgerError(message, status_code=response.status_code)
        return data

    async def list(self, filters: LedgerFilters | None = None) -> LedgerPage:
        filters = filters or LedgerFilters()
        data = await self._get("/api/admin/payments", params=filters.to_query())
        try:
            transactions = [Transaction.from_api(raw) for raw in data.get("payments") or []]
            stats = LedgerStats.model_validate(data["stats"]) if data.get("stats") else None
        except (PydanticValidationError, ValueError) as exc:
            logger.warning("Malformed payments page: %s", exc)
            raise LedgerError("Payments response was malformed") from exc

        total = int(data.get("total") or len(transactions))
        total_pages = data.get("totalPages")
        if total_pages is None:
            total_pages = math.ceil(total / filters.page_size) if total else 0
        return LedgerPage(
            transactions=transactions,
            page=int(data.get("currentPage") or filters.page),
            total_pages=int(total_pages),
            total=total,
            stats=stats,
        )

    async def get(self, payment_id: str) -> Transaction:
        data = await self._get(f"/api/admin/payments/{payment_id}")
        raw = data.get("payment")
        if not raw:
            raise LedgerError(f"Payment {payment_id} not found", status_code=404)
        try:
            return Transaction.from_api(raw)
        except (PydanticValidationError, ValueError) as exc:
            raise LedgerError("Payment response was malformed") from exc

    async def stats(self, period: str = "monthly") -> LedgerStats:
        data = await self._get("/api/admin/payments/stats", params={"period": period})
        return LedgerStats.model_validate(data.get("stats") or {})

    def breakdown(self, transaction: Transaction) -> TaxBreakdown:
        """Base/tax split of the charged amount; stored tax fields are ignored."""
        return self.calculator.breakdown(transaction.gross_amount)

    def export(self, transactions: Iterable[Transaction]) -> bytes:
        """CSV with explicit base/tax/gross columns, one row per transaction."""
        buf = StringIO()
        writer = csv.writer(buf)
        writer.writerow(EXPORT_COLUMNS)
        rows = 0
        for txn in transactions:
            split = self.breakdown(txn)
            writer.writerow([
                txn.transaction_id or "N/A",
                txn.user_name or "N/A",
                txn.user_email or "N/A",
                txn.plan_name,
                txn.plan_id or "N/A",
                txn.cycle.value,
                txn.status.value.capitalize(),
                txn.payment_method or "N/A",
                txn.currency.value,
                f"{round_half_up(split.gross_amount):.2f}",
                f"{split.base_amount:.2f}",
                f"{round_half_up(split.tax_amount):.2f}",
                split.tax_percent,
                _fmt_date(txn.created_at),
                _fmt_date(txn.paid_at),
                _fmt_date(txn.expiry_date),
                txn.gateway_transaction_id or "",
            ])
            rows += 1
        metrics.payments_exported(rows)
        logger.info("Exported %d payment rows", rows)
        return buf.getvalue().encode("utf-8")

    async def export_filtered(self, filters: LedgerFilters | None = None) -> bytes:
        """Export every row matching *filters*, not just the visible page."""
        filters = filters or LedgerFilters()
        everything = filters.model_copy(update={"page": 1, "page_size": settings.EXPORT_PAGE_SIZE})
        page = await self.list(everything)
        transactions = list(page.transactions)
        page_no = 1
        while page_no < page.total_pages and page.transactions:
            page_no += 1
            page = await self.list(everything.model_copy(update={"page": page_no}))
            transactions.extend(page.transactions)
        return self.export(transactions)

    @staticmethod
    def export_filename(now: dt.datetime | None = None) -> str:
        now = now or dt.datetime.now(dt.timezone.utc)
        return f"payments-export-{now.strftime('%Y-%m-%d-%H-%M-%S')}.csv"


def _fmt_date(value: dt.datetime | None) -> str:
    return value.isoformat() if value else "N/A"
