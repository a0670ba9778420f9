"""Read-only plan lookup against ``/api/pricing``.

Plans are fetched once per catalog instance (one pricing session) and then
served from memory so a plan cannot change between page view and checkout.
"""
from __future__ import annotations

import logging

from paycore.core.exceptions import PlanNotFoundError, ValidationError
from paycore.models.pricing import Plan, PlanTier
from paycore.services.api_client import BackendClient

logger = logging.getLogger(__name__)


class PlanCatalog:
    def __init__(self, client: BackendClient):
        self.client = client
        self._plans: dict[str, Plan] = {}
        self._listed = False

    async def get(self, plan_id: str) -> Plan:
        if not plan_id:
            raise ValidationError("Please select a plan.", field="planId")
        key = plan_id.lower()
        if key in self._plans:
            return self._plans[key]

        response = await self.client.request("GET", f"/api/pricing/{plan_id}", auth=False)
        data = self.client.json_body(response)
        if response.status_code == 404 or not data or not data.get("success") or not data.get("plan"):
            logger.info("Pricing plan %s not available (HTTP %s)", plan_id, response.status_code)
            raise PlanNotFoundError(plan_id)

        plan = Plan.from_api(data["plan"])
        self._plans[key] = plan
        return plan

    async def list(self) -> list[Plan]:
        """Active plans in display order (backend ``position``, then tier)."""
        if not self._listed:
            response = await self.client.request("GET", "/api/pricing", auth=False)
            data = self.client.json_body(response) or {}
            if response.is_success and data.get("success"):
                for raw in data.get("plans") or []:
                    plan = Plan.from_api(raw)
                    self._plans[plan.id.lower()] = plan
                self._listed = True
            else:
                logger.warning("Could not list pricing plans (HTTP %s)", response.status_code)
        return sorted(self._plans.values(), key=lambda p: (p.position, p.tier.rank))

    @staticmethod
    def is_upgrade(current: PlanTier | str | None, target: Plan) -> bool:
        """True when *target* ranks above the user's current tier."""
        if current is None:
            return not target.is_free
        tier = current if isinstance(current, PlanTier) else PlanTier(current.lower())
        return target.tier > tier
