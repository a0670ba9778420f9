from __future__ import annotations

import os

os.environ.setdefault("APP_ENV", "test")

from dataclasses import dataclass, field  # noqa: E402
from typing import Any  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi import FastAPI, Request  # noqa: E402
from fastapi.responses import JSONResponse, PlainTextResponse  # noqa: E402

from paycore.core.session import InMemorySession  # noqa: E402
from paycore.services.api_client import BackendClient  # noqa: E402
from paycore.services.exchange_rate import reset_rate_cache  # noqa: E402

GOOD_TOKEN = "good-token"
ADMIN_TOKEN = "admin-token"


PLANS: list[dict[str, Any]] = [
    {
        "planId": "free", "name": "Free", "monthlyPrice": 0, "yearlyPrice": 0,
        "annualDiscount": 15, "position": 0,
        "features": [{"name": "5 downloads per month", "included": True}, {"name": "Basic templates"}],
    },
    {
        "planId": "pro", "name": "Pro", "monthlyPrice": 499, "yearlyPrice": 5090,
        "annualDiscount": 15, "position": 1,
        "features": [
            {"name": "Unlimited downloads", "included": True},
            {"name": "Team collaboration", "included": False},
        ],
    },
    {
        "planId": "business", "name": "Business", "monthlyPrice": 999, "yearlyPrice": 10190,
        "annualDiscount": 15, "position": 2, "features": ["Everything in Pro", "API access"],
    },
    {
        "planId": "enterprise", "name": "Enterprise", "monthlyPrice": 0, "yearlyPrice": 0,
        "annualDiscount": 15, "position": 3, "features": ["Everything in Business"],
    },
]


def make_payment(n: int, **overrides) -> dict[str, Any]:
    data = {
        "id": f"pay-{n}",
        "transactionId": f"order_{n}",
        "user": {"id": f"user-{n}", "username": f"user{n}", "email": f"user{n}@example.com"},
        "amount": 499 if n % 2 else 5090,
        "currency": "INR",
        "status": "success",
        "planId": "pro",
        "planName": "Pro",
        "billingCycle": "monthly" if n % 2 else "annual",
        "paymentMethod": "upi",
        "createdAt": f"2025-01-{n:02d}T10:00:00Z",
        "paidAt": f"2025-01-{n:02d}T10:05:00Z",
        "expiryDate": f"2025-02-{n:02d}T10:00:00Z",
    }
    data.update(overrides)
    return data


@dataclass
class FakeBackend:
    """Scriptable stand-in for the payments backend."""

    plans: list[dict[str, Any]] = field(default_factory=lambda: list(PLANS))
    verify_script: list[tuple[int, Any]] = field(default_factory=list)
    create_response: tuple[int, Any] = (200, None)
    current_plan: tuple[int, Any] = (200, {
        "success": True, "plan": "Pro", "planId": "pro",
        "subscriptionStatus": "active", "isPremium": True, "planExpiryDate": "2026-01-01",
    })
    payments: list[dict[str, Any]] = field(default_factory=lambda: [make_payment(n) for n in range(1, 6)])
    calls: list[tuple[str, str]] = field(default_factory=list)
    queries: list[dict[str, str]] = field(default_factory=list)

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call == (method, path))

    def app(self) -> FastAPI:
        api = FastAPI()

        @api.middleware("http")
        async def record(request: Request, call_next):
            self.calls.append((request.method, request.url.path))
            return await call_next(request)

        def authorized(request: Request, token: str = GOOD_TOKEN) -> bool:
            return request.headers.get("Authorization") == f"Bearer {token}"

        @api.get("/api/pricing")
        async def list_plans():
            return {"success": True, "plans": self.plans}

        @api.get("/api/pricing/{plan_id}")
        async def get_plan(plan_id: str):
            for plan in self.plans:
                if plan["planId"] == plan_id:
                    return {"success": True, "plan": plan}
            return JSONResponse(status_code=404, content={"success": False, "message": "Pricing plan not found"})

        @api.post("/api/payments/create")
        async def create(request: Request):
            if not authorized(request):
                return JSONResponse(status_code=401, content={"success": False, "message": "Unauthorized"})
            body = await request.json()
            status, content = self.create_response
            if content is None:
                content = {
                    "success": True,
                    "paymentLink": f"https://pay.example.com/{body['planId']}",
                    "orderId": f"order_{body['planId']}_{body['billingCycle']}",
                    "amount": 5090 if body["billingCycle"] == "annual" else 499,
                    "currency": body["currency"],
                }
            return JSONResponse(status_code=status, content=content)

        @api.post("/api/payments/verify")
        async def verify(request: Request):
            if not authorized(request):
                return JSONResponse(status_code=401, content={"success": False, "message": "Unauthorized"})
            if not self.verify_script:
                return JSONResponse(status_code=200, content={"success": False, "orderStatus": "PENDING"})
            status, content = self.verify_script.pop(0) if len(self.verify_script) > 1 else self.verify_script[0]
            if isinstance(content, str):
                return PlainTextResponse(status_code=status, content=content)
            return JSONResponse(status_code=status, content=content)

        @api.get("/api/users/current-plan")
        async def current_plan(request: Request):
            if not authorized(request):
                return JSONResponse(status_code=401, content={"success": False})
            status, content = self.current_plan
            return JSONResponse(status_code=status, content=content)

        @api.get("/api/admin/payments/stats")
        async def stats(request: Request):
            if not authorized(request, ADMIN_TOKEN):
                return JSONResponse(status_code=401, content={"success": False})
            return {"success": True, "stats": {
                "period": request.query_params.get("period"), "totalRevenue": 11677,
                "transactionCount": 5, "successRate": "100.00",
            }}

        @api.get("/api/admin/payments/{payment_id}")
        async def payment_detail(payment_id: str, request: Request):
            if not authorized(request, ADMIN_TOKEN):
                return JSONResponse(status_code=401, content={"success": False})
            for payment in self.payments:
                if payment["id"] == payment_id:
                    return {"success": True, "payment": payment}
            return JSONResponse(status_code=404, content={"success": False, "message": "Payment not found"})

        @api.get("/api/admin/payments")
        async def payments(request: Request):
            if not authorized(request, ADMIN_TOKEN):
                return JSONResponse(status_code=401, content={"success": False, "message": "Authentication failed"})
            q = dict(request.query_params)
            self.queries.append(q)
            rows = [p for p in self.payments
                    if (not q.get("status") or p["status"] == q["status"])
                    and (not q.get("planId") or p["planId"] == q["planId"])
                    and (not q.get("search") or q["search"].lower() in p["transactionId"].lower())]
            page, limit = int(q.get("page", 1)), int(q.get("limit", 20))
            total_pages = -(-len(rows) // limit)
            return {
                "success": True,
                "payments": rows[(page - 1) * limit: page * limit],
                "currentPage": page,
                "totalPages": total_pages,
                "total": len(rows),
                "stats": {"totalRevenue": sum(p["amount"] for p in rows), "totalTransactions": len(rows)},
            }

        return api


@pytest.fixture(autouse=True)
def _reset_rate_cache():
    reset_rate_cache()
    yield
    reset_rate_cache()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def session() -> InMemorySession:
    return InMemorySession(GOOD_TOKEN)


@pytest.fixture
def admin_session() -> InMemorySession:
    return InMemorySession(ADMIN_TOKEN)


@pytest.fixture
def client(backend, session) -> BackendClient:
    """BackendClient talking to the fake backend in-process."""
    return BackendClient(session, base_url="http://testserver", transport=httpx.ASGITransport(app=backend.app()))


@pytest.fixture
def admin_client(backend, admin_session) -> BackendClient:
    return BackendClient(admin_session, base_url="http://testserver", transport=httpx.ASGITransport(app=backend.app()))


def mock_client(handler, session: InMemorySession | None = None) -> BackendClient:
    """BackendClient over ``httpx.MockTransport`` for raw status/body edge cases."""
    return BackendClient(
        session or InMemorySession(GOOD_TOKEN),
        base_url="http://testserver",
        transport=httpx.MockTransport(handler),
    )
