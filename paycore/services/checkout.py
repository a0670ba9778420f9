"""Checkout: turn a selected plan into an order handle.

Free plans activate locally, custom-priced plans go to sales, everything
else becomes a backend order with a gateway payment link. The orchestrator
never opens the link itself.
"""
from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from paycore import metrics
from paycore.core.exceptions import (
    NetworkError,
    OrderCreationError,
    SessionExpiredError,
    ValidationError,
)
from paycore.models.payment_models import (
    Activated,
    ContactSales,
    CreateOrderResponse,
    Order,
    OrderCreated,
    OrderHandle,
)
from paycore.models.pricing import BillingCycle, Plan
from paycore.services.api_client import BackendClient
from paycore.utils.money import Currency

logger = logging.getLogger(__name__)


class CheckoutOrchestrator:
    def __init__(self, client: BackendClient):
        self.client = client

    async def submit(
        self,
        plan: Plan | None,
        cycle: BillingCycle | str,
        currency: Currency | str,
    ) -> OrderHandle:
        """
        Start checkout for *plan*.

        Returns:
            Activated for the free tier (no request, safe to repeat),
            ContactSales for custom-priced plans, OrderCreated otherwise.

        Raises:
            ValidationError: no plan selected or unknown cycle/currency
            SessionExpiredError: no credential, or the backend answered 401
            OrderCreationError: backend refused the order or sent garbage
            NetworkError: request could not be sent
        """
        if plan is None:
            raise ValidationError("Please select a plan before continuing.", field="planId")
        try:
            cycle = BillingCycle(cycle)
            currency = Currency(currency)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        if plan.is_free:
            logger.info("Activating free plan %s locally", plan.id)
            metrics.free_plan_activated()
            return Activated(plan_id=plan.id)

        if plan.is_custom_priced:
            return ContactSales(plan_id=plan.id)

        payload = {"planId": plan.id, "billingCycle": cycle.value, "currency": currency.value}
        try:
            response = await self.client.request("POST", "/api/payments/create", json=payload)
        except NetworkError:
            metrics.order_failed("network")
            raise

        if response.status_code == 401:
            metrics.order_failed("session_expired")
            raise SessionExpiredError()

        data = self.client.json_body(response)
        message = (data or {}).get("message")
        if not response.is_success:
            logger.warning("Order creation for %s failed: HTTP %s %s", plan.id, response.status_code, message)
            metrics.order_failed(f"http_{response.status_code}")
            raise OrderCreationError(message, status_code=response.status_code)
        if data is None:
            metrics.order_failed("malformed")
            raise OrderCreationError(status_code=response.status_code)

        try:
            body = CreateOrderResponse.model_validate(data)
        except PydanticValidationError:
            metrics.order_failed("malformed")
            raise OrderCreationError(message, status_code=response.status_code) from None

        if not body.success or not body.payment_link or not body.order_id:
            metrics.order_failed("rejected")
            raise OrderCreationError(body.message, status_code=response.status_code)

        order = Order(order_id=body.order_id, plan_id=plan.id, cycle=cycle, currency=currency)
        logger.info(
            "Created order %s for plan %s (%s, %s)", order.order_id, plan.id, cycle.value, currency.value,
            extra={"order_id": order.order_id, "plan_id": plan.id},
        )
        metrics.order_created(plan.id)
        return OrderCreated(order=order, payment_link=body.payment_link, amount=body.amount)
