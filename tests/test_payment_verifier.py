"""Tests for payment verification polling."""
import asyncio

import httpx
import pytest
from conftest import mock_client

from paycore.core.exceptions import (
    SessionExpiredError,
    ValidationError,
    VerificationFailedError,
    VerificationPendingError,
)
from paycore.core.session import InMemorySession
from paycore.services.payment_verifier import (
    LOGIN_REQUIRED_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    PaymentVerifier,
    VerificationSnapshot,
    VerificationState,
)

PENDING = (200, {"success": False, "orderStatus": "PENDING"})
SETTLED = (200, {
    "success": True,
    "message": "Payment completed successfully!",
    "user": {"plan": "Pro", "planId": "pro", "subscriptionStatus": "active", "isPremium": True},
    "planName": "Pro",
    "billingCycle": "annual",
    "orderCurrency": "INR",
    "orderAmount": 5090,
})


class Recorder:
    """Listener that keeps every snapshot and signals the first PENDING one."""

    def __init__(self):
        self.snapshots = []
        self.pending = asyncio.Event()

    def __call__(self, snap):
        self.snapshots.append(snap)
        if snap.state is VerificationState.PENDING:
            self.pending.set()

    async def wait_pending(self):
        await asyncio.wait_for(self.pending.wait(), timeout=2)

    @property
    def states(self):
        return [s.state for s in self.snapshots]


# ── Outcomes ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_pending_schedules_exactly_one_retry(client, backend):
    """An in-flight order re-enters PENDING with one retry queued and no extra calls."""
    recorder = Recorder()
    async with PaymentVerifier(client, retry_delay=60, listener=recorder) as verifier:
        verifier.start("order_1")
        await recorder.wait_pending()
        await asyncio.sleep(0.05)

        snap = verifier.snapshot("order_1")
        assert snap.state is VerificationState.PENDING
        assert snap.retries_scheduled == 1
        assert snap.message == "Payment is being processed... Please wait a moment."
        assert snap.next_action == "wait"
        assert backend.count("POST", "/api/payments/verify") == 1

    assert verifier.active_orders == []


@pytest.mark.asyncio
async def test_unauthorized_ends_in_error_without_retry():
    session = InMemorySession("expired")
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(401, json={"message": "Unauthorized"})

    verifier = PaymentVerifier(mock_client(handler, session), retry_delay=0.01)
    snap = await verifier.verify("order_1")

    assert snap.state is VerificationState.ERROR
    assert snap.message == SESSION_EXPIRED_MESSAGE
    assert snap.session_expired
    assert snap.retries_scheduled == 0
    assert snap.next_action == "login"
    assert session.clear_count == 1
    assert calls == ["/api/payments/verify"]


@pytest.mark.asyncio
async def test_success_with_upgraded_plan(client, backend):
    backend.verify_script = [SETTLED]
    recorder = Recorder()

    snap = await PaymentVerifier(client, listener=recorder).verify("order_1")

    assert snap.state is VerificationState.SUCCESS
    assert snap.attempts == 1
    assert snap.next_action == "dashboard"
    assert snap.details.plan_name == "Pro"
    assert snap.details.billing_cycle.value == "annual"
    assert snap.details.display_amount == "INR 5090"
    assert recorder.states == [VerificationState.LOADING, VerificationState.SUCCESS]
    assert backend.count("GET", "/api/users/current-plan") == 0


@pytest.mark.asyncio
async def test_success_with_stale_plan_reads_current_plan_once(client, backend):
    backend.verify_script = [(200, {
        "success": True, "user": {"plan": "Free"}, "planName": "Pro",
        "billingCycle": "monthly", "orderCurrency": "INR", "orderAmount": 499,
    })]

    snap = await PaymentVerifier(client).verify("order_1")

    assert snap.state is VerificationState.SUCCESS
    assert snap.details.user_plan.plan == "Pro"
    assert snap.details.user_plan.is_premium is True
    assert backend.count("GET", "/api/users/current-plan") == 1


@pytest.mark.asyncio
async def test_stale_plan_kept_when_lookup_fails(client, backend):
    backend.verify_script = [(200, {"success": True, "user": {"plan": "Free"}, "planName": "Pro"})]
    backend.current_plan = (500, {"success": False})

    snap = await PaymentVerifier(client).verify("order_1")

    assert snap.state is VerificationState.SUCCESS
    assert snap.details.user_plan.plan == "Free"


@pytest.mark.asyncio
async def test_pending_then_success(client, backend):
    backend.verify_script = [PENDING, SETTLED]
    recorder = Recorder()

    snap = await PaymentVerifier(client, retry_delay=0.01, listener=recorder).verify("order_1")

    assert snap.state is VerificationState.SUCCESS
    assert snap.attempts == 2
    assert snap.retries_scheduled == 1
    assert recorder.states == [VerificationState.LOADING, VerificationState.PENDING, VerificationState.SUCCESS]
    assert backend.count("POST", "/api/payments/verify") == 2


@pytest.mark.asyncio
async def test_terminal_failure_is_not_verified_again(client, backend):
    backend.verify_script = [(200, {"success": False, "orderStatus": "FAILED", "message": "Payment declined"})]
    verifier = PaymentVerifier(client, retry_delay=0.01)

    first = await verifier.verify("order_1")
    second = await verifier.verify("order_1")

    assert first.state is VerificationState.ERROR
    assert first.message == "Payment declined"
    assert first.next_action == "pricing"
    assert second is first
    assert backend.count("POST", "/api/payments/verify") == 1


@pytest.mark.asyncio
async def test_failure_without_message_asks_for_support(client, backend):
    backend.verify_script = [(200, {"success": False, "orderStatus": "CANCELLED"})]

    snap = await PaymentVerifier(client).verify("order_1")
    assert snap.message == "Payment verification failed. Please contact support."


@pytest.mark.asyncio
async def test_retries_are_bounded(client, backend):
    snap = await PaymentVerifier(client, retry_delay=0.001, max_attempts=3).verify("order_9")

    assert snap.state is VerificationState.ERROR
    assert snap.attempts == 3
    assert snap.retries_scheduled == 2
    assert "order_9" in snap.message
    assert backend.count("POST", "/api/payments/verify") == 3


@pytest.mark.asyncio
async def test_server_errors_and_garbage_are_retried(client, backend):
    backend.verify_script = [
        (500, {"success": False, "message": "boom"}),
        (200, "<html>upstream</html>"),
        SETTLED,
    ]
    recorder = Recorder()

    snap = await PaymentVerifier(client, retry_delay=0.001, listener=recorder).verify("order_1")

    assert snap.state is VerificationState.SUCCESS
    pending = [s.message for s in recorder.snapshots if s.state is VerificationState.PENDING]
    assert pending == [
        "Payment verification in progress... Please wait.",
        "Finalizing payment... Please wait.",
    ]


@pytest.mark.asyncio
async def test_network_error_is_retried():
    attempts = []

    def handler(request):
        attempts.append(request.url.path)
        if len(attempts) == 1:
            raise httpx.ConnectError("offline", request=request)
        return httpx.Response(200, json=SETTLED[1])

    recorder = Recorder()
    snap = await PaymentVerifier(mock_client(handler), retry_delay=0.001, listener=recorder).verify("order_1")

    assert snap.state is VerificationState.SUCCESS
    assert recorder.snapshots[1].message == "Network error. Retrying..."


@pytest.mark.asyncio
async def test_request_carries_order_id():
    bodies = []

    def handler(request):
        bodies.append(request.read())
        return httpx.Response(200, json=SETTLED[1])

    await PaymentVerifier(mock_client(handler)).verify("order_42")
    assert b"order_42" in bodies[0]


@pytest.mark.asyncio
async def test_missing_credential_then_login():
    session = InMemorySession()
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(200, json=SETTLED[1])

    verifier = PaymentVerifier(mock_client(handler, session))
    first = await verifier.verify("order_1")

    assert first.state is VerificationState.ERROR
    assert first.message == LOGIN_REQUIRED_MESSAGE
    assert first.next_action == "login"
    assert calls == []

    session.set_credential("fresh")
    second = await verifier.verify("order_1")
    assert second.state is VerificationState.SUCCESS
    assert calls == ["/api/payments/verify"]


@pytest.mark.asyncio
async def test_empty_order_id(client):
    with pytest.raises(ValidationError):
        PaymentVerifier(client).start("")


@pytest.mark.asyncio
async def test_listener_errors_do_not_stop_verification(client, backend):
    backend.verify_script = [SETTLED]

    def broken(snap):
        raise RuntimeError("render failed")

    snap = await PaymentVerifier(client, listener=broken).verify("order_1")
    assert snap.state is VerificationState.SUCCESS


# ── Lifecycle ─────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_cancel_stops_pending_retry(client, backend):
    recorder = Recorder()
    verifier = PaymentVerifier(client, retry_delay=60, listener=recorder)
    task = verifier.start("order_1")
    await recorder.wait_pending()

    verifier.cancel("order_1")
    with pytest.raises(asyncio.CancelledError):
        await task

    assert verifier.active_orders == []
    assert verifier.snapshot("order_1").state is VerificationState.PENDING
    assert backend.count("POST", "/api/payments/verify") == 1


@pytest.mark.asyncio
async def test_close_cancels_everything(client):
    recorder = Recorder()
    verifier = PaymentVerifier(client, retry_delay=60, listener=recorder)
    tasks = [verifier.start("order_a"), verifier.start("order_b")]
    await recorder.wait_pending()

    await verifier.close()

    assert all(t.done() for t in tasks)
    assert verifier.active_orders == []
    with pytest.raises(RuntimeError):
        verifier.start("order_c")


@pytest.mark.asyncio
async def test_restart_replaces_previous_task(client):
    recorder = Recorder()
    async with PaymentVerifier(client, retry_delay=60, listener=recorder) as verifier:
        old = verifier.start("order_1")
        await recorder.wait_pending()

        new = verifier.start("order_1")
        with pytest.raises(asyncio.CancelledError):
            await old

        assert new is not old
        assert verifier.active_orders == ["order_1"]


@pytest.mark.asyncio
async def test_retry_now_skips_remaining_delay(client, backend):
    recorder = Recorder()
    async with PaymentVerifier(client, retry_delay=60, listener=recorder) as verifier:
        task = verifier.start("order_1")
        await recorder.wait_pending()

        backend.verify_script = [SETTLED]
        assert verifier.retry_now("order_1") is task
        snap = await asyncio.wait_for(task, timeout=2)

    assert snap.state is VerificationState.SUCCESS
    assert snap.attempts == 2


# ── Exceptions ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_raise_for_state(client, backend):
    backend.verify_script = [SETTLED]
    details = (await PaymentVerifier(client).verify("order_1")).raise_for_state()
    assert details.plan_name == "Pro"

    backend.verify_script = [(200, {"success": False, "orderStatus": "FAILED", "message": "Declined"})]
    failed = await PaymentVerifier(client).verify("order_2")
    with pytest.raises(VerificationFailedError) as exc:
        failed.raise_for_state()
    assert exc.value.to_dict() == {
        "error": {"message": "Declined", "code": "PAY202", "details": {"order_id": "order_2"}},
    }


def test_raise_for_state_pending_and_expired():
    pending = VerificationSnapshot("order_1", VerificationState.PENDING, "Network error. Retrying...")
    with pytest.raises(VerificationPendingError) as exc:
        pending.raise_for_state()
    assert exc.value.code == "PAY201"

    expired = VerificationSnapshot(
        "order_1", VerificationState.ERROR, SESSION_EXPIRED_MESSAGE, session_expired=True
    )
    with pytest.raises(SessionExpiredError):
        expired.raise_for_state()


# ── Attempt bound ─────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_retry_now_during_request_keeps_attempt_bound():
    """Repeated "check again" while a request is in flight neither restarts nor resets the count."""
    calls = []

    async def slow_pending(request):
        calls.append(request.url.path)
        await asyncio.sleep(0.05)
        return httpx.Response(200, json=PENDING[1])

    async with PaymentVerifier(mock_client(slow_pending), retry_delay=60, max_attempts=3) as verifier:
        task = verifier.start("order_1")
        await asyncio.sleep(0.01)
        for _ in range(10):
            assert verifier.retry_now("order_1") is task
        assert verifier.snapshot("order_1").state is VerificationState.LOADING
        assert len(calls) == 1

        async def click_until_done():
            while not task.done():
                verifier.retry_now("order_1")
                await asyncio.sleep(0.01)

        await asyncio.wait_for(click_until_done(), timeout=5)
        snap = task.result()

    assert snap.state is VerificationState.ERROR
    assert snap.attempts == 3
    assert "order_1" in snap.message
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_restart_continues_attempt_count(client, backend):
    recorder = Recorder()
    async with PaymentVerifier(client, retry_delay=60, max_attempts=2, listener=recorder) as verifier:
        verifier.start("order_1")
        await recorder.wait_pending()
        verifier.cancel("order_1")

        snap = await asyncio.wait_for(verifier.start("order_1"), timeout=2)

    assert snap.state is VerificationState.ERROR
    assert snap.attempts == 2
    assert snap.retries_scheduled == 1
    assert backend.count("POST", "/api/payments/verify") == 2


@pytest.mark.asyncio
async def test_restart_after_exhausted_attempts_sends_nothing(client, backend):
    recorder = Recorder()
    async with PaymentVerifier(client, retry_delay=60, max_attempts=1, listener=recorder) as verifier:
        first = await verifier.verify("order_1")
        assert first.state is VerificationState.ERROR

        again = await verifier.verify("order_1")

    assert again is first
    assert backend.count("POST", "/api/payments/verify") == 1
