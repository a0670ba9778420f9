"""
Plan price and GST calculations.

Handles:
- Monthly / annual quotes with the annual discount
- INR -> USD display conversion
- Tax decomposition of a tax-inclusive gross amount

INR is the only computation root. USD figures are derived for display and
never fed back into a calculation.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from paycore.core.config import settings
from paycore.core.exceptions import InvalidPlanError, InvalidRateError
from paycore.models.pricing import BillingCycle, Plan, PriceQuote, TaxBreakdown
from paycore.utils.money import CENT, WHOLE, Currency, Money, round_half_up, to_decimal

logger = logging.getLogger(__name__)

MONTHS_PER_YEAR = 12


class PriceCalculator:
    """Pure pricing functions shared by storefront, checkout and admin views."""

    def __init__(self, tax_rate: Decimal | None = None):
        self.tax_rate = to_decimal(tax_rate if tax_rate is not None else settings.TAX_RATE)
        if self.tax_rate < 0:
            raise InvalidRateError("tax rate", self.tax_rate)

    @staticmethod
    def annual_inr(plan: Plan) -> Decimal:
        """Discounted annual price in whole rupees."""
        gross = plan.base_price * MONTHS_PER_YEAR * (1 - plan.annual_discount)
        return round_half_up(gross, WHOLE)

    def quote(
        self,
        plan: Plan,
        cycle: BillingCycle,
        currency: Currency,
        exchange_rate: Decimal,
    ) -> PriceQuote:
        """
        Price *plan* for *cycle* in *currency*.

        Args:
            plan: Plan definition (INR base price per month)
            cycle: Billing cycle
            currency: Display currency
            exchange_rate: INR per 1 USD, frozen for the pricing session

        Returns:
            A new PriceQuote; savings only present when positive
        """
        if plan.base_price < 0:
            raise InvalidPlanError(plan.id, "base price cannot be negative")
        if not Decimal("0") <= plan.annual_discount < Decimal("1"):
            raise InvalidPlanError(plan.id, f"annual discount {plan.annual_discount} is outside [0, 1)")
        rate = to_decimal(exchange_rate)
        if rate <= 0:
            raise InvalidRateError("exchange rate", exchange_rate)

        cycle = BillingCycle(cycle)
        currency = Currency(currency)

        if plan.is_free or plan.is_custom_priced:
            return PriceQuote(
                plan_id=plan.id,
                cycle=cycle,
                currency=currency,
                amount=Decimal("0"),
                exchange_rate=rate,
                is_custom=plan.is_custom_priced,
            )

        monthly = round_half_up(plan.base_price, WHOLE)
        if cycle is BillingCycle.ANNUAL:
            undiscounted = monthly * MONTHS_PER_YEAR
            amount = self.annual_inr(plan)
            savings = undiscounted - amount
            original = undiscounted
        else:
            amount = monthly
            savings = Decimal("0")
            original = None

        amount_out = self._convert(amount, currency, rate)
        original_out = self._convert(original, currency, rate) if original is not None else None
        savings_out = self._convert(savings, currency, rate) if savings > 0 else None

        return PriceQuote(
            plan_id=plan.id,
            cycle=cycle,
            currency=currency,
            amount=amount_out,
            original_amount=original_out,
            savings=savings_out,
            exchange_rate=rate,
        )

    @staticmethod
    def _convert(inr_amount: Decimal, currency: Currency, rate: Decimal) -> Decimal:
        money = Money.inr(inr_amount)
        if currency is Currency.USD:
            return money.to_usd(rate).amount
        return money.amount

    def breakdown(self, gross_amount: Decimal | int | str, tax_rate: Decimal | None = None) -> TaxBreakdown:
        """Split a tax-inclusive amount into base + tax.

        Base is rounded to 2 dp; tax is the remainder so the parts always add
        back to the charged amount.
        """
        rate = self.tax_rate if tax_rate is None else to_decimal(tax_rate)
        if rate < 0:
            raise InvalidRateError("tax rate", rate)
        gross = to_decimal(gross_amount)
        base = round_half_up(gross / (1 + rate), CENT)
        tax = gross - base
        return TaxBreakdown(base_amount=base, tax_amount=tax, gross_amount=gross, tax_rate=rate)

    # ── Display helpers ───────────────────────────────────────────────

    @staticmethod
    def format_price(quote: PriceQuote) -> str:
        if quote.is_custom:
            return "Custom"
        if quote.amount == 0:
            return "Free"
        return quote.money.format()

    def billing_description(self, plan: Plan, quote: PriceQuote) -> str:
        if quote.is_custom:
            return "Tailored to your needs"
        if plan.is_free:
            return "No credit card required"
        if quote.cycle is BillingCycle.ANNUAL:
            yearly = self._convert(round_half_up(plan.base_price, WHOLE) * MONTHS_PER_YEAR, quote.currency, quote.exchange_rate)
            percent = (plan.annual_discount * 100).normalize()
            return f"Billed annually ({Money(yearly, quote.currency).format()}) - Save {percent:f}%"
        return "Billed monthly - Cancel anytime"
