"""
Payment verification polling.

After the gateway redirects back with an order id, the verifier asks the
backend whether the order settled, retrying on a fixed delay while the
gateway still reports it in flight.

States::

    LOADING -> PENDING -> ... -> PENDING -> SUCCESS | ERROR
                  \\___________________________/

Rules:
- 401 ends in ERROR at once; the credential is cleared by the client and
  nothing is retried.
- Non-2xx, transport failures, unreadable bodies and PENDING/ACTIVE order
  statuses re-enter PENDING and schedule one retry.
- Retries are bounded by ``VERIFY_MAX_ATTEMPTS`` per order, across restarts
  and manual retries; exhausting them ends in ERROR asking the user to
  contact support.
- One task per order. Starting again cancels the previous task, and a
  terminal (non session-expiry) result is never re-verified.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, replace
from typing import Callable

from pydantic import ValidationError as PydanticValidationError

from paycore import metrics
from paycore.core.config import settings
from paycore.core.exceptions import (
    NetworkError,
    SessionExpiredError,
    ValidationError,
    VerificationFailedError,
    VerificationPendingError,
)
from paycore.models.payment_models import (
    PlanSnapshot,
    SettlementDetails,
    VerifyFailed,
    VerifyOutcome,
    VerifyPending,
    VerifyResponse,
    VerifySuccess,
)
from paycore.models.pricing import BillingCycle
from paycore.services.api_client import BackendClient

logger = logging.getLogger(__name__)

SESSION_EXPIRED_MESSAGE = "Session expired. Please login again."
LOGIN_REQUIRED_MESSAGE = "Please login to verify payment"
IN_FLIGHT_STATUSES = frozenset({"PENDING", "ACTIVE"})


class VerificationState(str, enum.Enum):
    LOADING = "loading"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class VerificationSnapshot:
    """What the result view renders for one order."""

    order_id: str
    state: VerificationState
    message: str
    attempts: int = 0
    retries_scheduled: int = 0
    details: SettlementDetails | None = None
    session_expired: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.state in (VerificationState.SUCCESS, VerificationState.ERROR)

    @property
    def next_action(self) -> str:
        if self.state is VerificationState.SUCCESS:
            return "dashboard"
        if self.session_expired:
            return "login"
        if self.state is VerificationState.ERROR:
            return "pricing"
        return "wait"

    def raise_for_state(self) -> SettlementDetails | None:
        """Settlement details on SUCCESS, otherwise the matching exception."""
        if self.state is VerificationState.SUCCESS:
            return self.details
        if self.session_expired:
            raise SessionExpiredError(self.message)
        if self.state is VerificationState.ERROR:
            raise VerificationFailedError(self.order_id, self.message)
        raise VerificationPendingError(self.order_id, self.message)


Listener = Callable[[VerificationSnapshot], None]


class PaymentVerifier:
    """Drives verification for any number of orders on the running event loop.

    Use as an async context manager (or call ``close()``) so that leaving
    the result view cancels every pending retry.
    """

    def __init__(
        self,
        client: BackendClient,
        *,
        retry_delay: float | None = None,
        max_attempts: int | None = None,
        listener: Listener | None = None,
    ):
        self.client = client
        self.retry_delay = settings.VERIFY_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.max_attempts = max_attempts or settings.VERIFY_MAX_ATTEMPTS
        self.listener = listener
        self._tasks: dict[str, asyncio.Task] = {}
        self._wakeups: dict[str, asyncio.Event] = {}
        self._snapshots: dict[str, VerificationSnapshot] = {}
        # Requests issued per order, counted when sent so a cancelled run still uses one up.
        self._attempts: dict[str, int] = {}
        self._closed = False

    async def __aenter__(self) -> PaymentVerifier:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ── Public API ────────────────────────────────────────────────────

    def snapshot(self, order_id: str) -> VerificationSnapshot | None:
        return self._snapshots.get(order_id)

    @property
    def active_orders(self) -> list[str]:
        return [oid for oid, task in self._tasks.items() if not task.done()]

    def start(self, order_id: str) -> asyncio.Future:
        """Begin (or restart) verification; resolves to the terminal snapshot.

        A finished order resolves immediately without touching the network,
        unless it ended because the session expired.
        """
        if self._closed:
            raise RuntimeError("PaymentVerifier is closed")
        if not order_id:
            raise ValidationError("No order ID found", field="orderId")

        existing = self._snapshots.get(order_id)
        if existing is not None and existing.is_terminal and not existing.session_expired:
            done = asyncio.get_running_loop().create_future()
            done.set_result(existing)
            return done

        self._cancel_task(order_id)
        task = asyncio.create_task(self._run(order_id), name=f"verify-payment-{order_id}")
        self._tasks[order_id] = task
        task.add_done_callback(lambda t, oid=order_id: self._forget(oid, t))
        return task

    async def verify(self, order_id: str) -> VerificationSnapshot:
        return await self.start(order_id)

    def retry_now(self, order_id: str) -> asyncio.Future:
        """Manual "check again": skip the remaining delay or restart a stopped check.

        A request already in flight is left alone; the running task is returned.
        """
        task = self._tasks.get(order_id)
        if task is not None and not task.done():
            wakeup = self._wakeups.get(order_id)
            if wakeup is not None:
                wakeup.set()
            return task
        return self.start(order_id)

    def cancel(self, order_id: str) -> None:
        """Stop verifying *order_id*; the last snapshot is kept as-is."""
        if self._cancel_task(order_id):
            logger.info("Cancelled verification for order %s", order_id)

    async def close(self) -> None:
        """Cancel every running verification and wait for the tasks to unwind."""
        self._closed = True
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._wakeups.clear()

    async def check(self, order_id: str) -> VerifyOutcome:
        """Issue one verify request and classify the answer."""
        try:
            response = await self.client.request("POST", "/api/payments/verify", json={"orderId": order_id})
        except SessionExpiredError:
            return VerifyFailed(message=LOGIN_REQUIRED_MESSAGE, session_expired=True)
        except NetworkError as exc:
            logger.warning("Verification request for %s could not be sent: %s", order_id, exc.details)
            return VerifyPending(message="Network error. Retrying...")

        if response.status_code == 401:
            return VerifyFailed(message=SESSION_EXPIRED_MESSAGE, session_expired=True)

        data = self.client.json_body(response)
        if not response.is_success:
            logger.warning("Verification API error for %s: HTTP %s %s", order_id, response.status_code, data)
            return VerifyPending(message="Payment verification in progress... Please wait.")
        if data is None:
            logger.warning("Verification response for %s was not JSON", order_id)
            return VerifyPending(message="Finalizing payment... Please wait.")

        try:
            body = VerifyResponse.model_validate(data)
        except PydanticValidationError as exc:
            logger.warning("Verification response for %s did not match schema: %s", order_id, exc)
            return VerifyPending(message="Finalizing payment... Please wait.")

        if body.success:
            details = await self._settlement(body)
            message = body.message or "Payment completed successfully! Your plan has been upgraded."
            return VerifySuccess(message=message, details=details)

        status = (body.order_status or "").upper()
        if status in IN_FLIGHT_STATUSES:
            logger.info("Order %s still %s at gateway", order_id, status)
            return VerifyPending(message="Payment is being processed... Please wait a moment.")

        logger.info("Order %s verification failed: status=%s message=%s", order_id, status, body.message)
        return VerifyFailed(message=body.message or "Payment verification failed. Please contact support.")

    # ── Internals ─────────────────────────────────────────────────────

    async def _run(self, order_id: str) -> VerificationSnapshot:
        started = time.monotonic()
        # Counters carry over from an earlier run so restarts never reset the bound.
        previous = self._snapshots.get(order_id) or VerificationSnapshot(order_id, VerificationState.LOADING, "")
        snap = self._emit(replace(
            previous, state=VerificationState.LOADING, message="Verifying your payment...", session_expired=False,
        ))
        attempts = self._attempts.get(order_id, 0)
        while True:
            if attempts >= self.max_attempts:
                return self._give_up(snap, attempts, started)
            attempts += 1
            self._attempts[order_id] = attempts
            outcome = await self.check(order_id)

            if isinstance(outcome, VerifySuccess):
                snap = self._emit(replace(
                    snap, state=VerificationState.SUCCESS, message=outcome.message,
                    attempts=attempts, details=outcome.details,
                ))
                metrics.verification_finished("success", time.monotonic() - started)
                logger.info("Order %s verified after %d attempt(s)", order_id, attempts, extra={"order_id": order_id})
                return snap

            if isinstance(outcome, VerifyFailed):
                snap = self._emit(replace(
                    snap, state=VerificationState.ERROR, message=outcome.message,
                    attempts=attempts, session_expired=outcome.session_expired,
                ))
                metrics.verification_finished("session_expired" if outcome.session_expired else "failed")
                return snap

            if attempts >= self.max_attempts:
                return self._give_up(snap, attempts, started)

            snap = self._emit(replace(
                snap, state=VerificationState.PENDING, message=outcome.message,
                attempts=attempts, retries_scheduled=snap.retries_scheduled + 1,
            ))
            metrics.verification_retry_scheduled()
            await self._wait_for_retry(order_id)

    def _give_up(self, snap: VerificationSnapshot, attempts: int, started: float) -> VerificationSnapshot:
        order_id = snap.order_id
        message = f"Unable to confirm your payment. Please contact support with order ID: {order_id}"
        snap = self._emit(replace(snap, state=VerificationState.ERROR, message=message, attempts=attempts))
        metrics.verification_finished("unconfirmed", time.monotonic() - started)
        logger.warning("Gave up verifying order %s after %d attempts", order_id, attempts)
        return snap

    async def _wait_for_retry(self, order_id: str) -> None:
        wakeup = asyncio.Event()
        self._wakeups[order_id] = wakeup
        try:
            await asyncio.wait_for(wakeup.wait(), timeout=self.retry_delay)
        except asyncio.TimeoutError:
            pass
        finally:
            if self._wakeups.get(order_id) is wakeup:
                del self._wakeups[order_id]

    async def _settlement(self, body: VerifyResponse) -> SettlementDetails:
        user = body.user
        if user is None or user.looks_unupgraded:
            logger.warning("Plan still showing as %s after payment, fetching current plan", user.plan if user else None)
            user = await self._reconcile_plan(user)
        try:
            cycle = BillingCycle(body.billing_cycle or "monthly")
        except ValueError:
            cycle = BillingCycle.MONTHLY
        return SettlementDetails(
            plan_name=body.plan_name or (user.plan if user and user.plan else "Your Plan"),
            billing_cycle=cycle,
            amount=body.order_amount,
            currency=body.order_currency,
            user_plan=user,
        )

    async def _reconcile_plan(self, user: PlanSnapshot | None) -> PlanSnapshot | None:
        """One read of ``/api/users/current-plan``; failures keep what we had."""
        try:
            response = await self.client.request("GET", "/api/users/current-plan")
        except (NetworkError, SessionExpiredError) as exc:
            logger.warning("Current plan lookup failed: %s", exc.message)
            return user
        data = self.client.json_body(response)
        if not response.is_success or not data or not data.get("success"):
            logger.warning("Current plan lookup returned HTTP %s", response.status_code)
            return user
        try:
            current = PlanSnapshot.model_validate(data)
        except PydanticValidationError:
            return user
        return user.merged(current) if user is not None else current

    def _emit(self, snap: VerificationSnapshot) -> VerificationSnapshot:
        previous = self._snapshots.get(snap.order_id)
        if previous is not None and previous.is_terminal and not previous.session_expired:
            raise RuntimeError(f"Order {snap.order_id} already reached {previous.state.value}")
        self._snapshots[snap.order_id] = snap
        if self.listener is not None:
            try:
                self.listener(snap)
            except Exception:  # noqa: BLE001
                logger.exception("Verification listener failed for order %s", snap.order_id)
        return snap

    def _cancel_task(self, order_id: str) -> bool:
        task = self._tasks.pop(order_id, None)
        self._wakeups.pop(order_id, None)
        if task is not None and not task.done():
            task.cancel()
            return True
        return False

    def _forget(self, order_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(order_id) is task:
            del self._tasks[order_id]
