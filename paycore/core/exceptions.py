"""Exception hierarchy for the pricing and payment core.

Every error carries a user-facing message, a stable code and the HTTP
status it maps to, so callers can render or log them uniformly.

Error codes follow pattern: [CATEGORY][NUMBER]
- VAL: Input validation (001-099)
- PRC: Pricing errors (100-199)
- USR: Session errors (100-199)
- PAY: Order and verification errors (200-299)
- ADM: Admin ledger errors (300-399)
- SYS: Transport errors (400-499)
"""

from __future__ import annotations

from typing import Any


class PayCoreException(Exception):
    """Base exception for all pricing/payment errors."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with user-friendly message and metadata.

        Args:
            message: User-friendly error message
            code: Unique error code (e.g., "PAY200")
            status_code: HTTP status code (default: 400 Bad Request)
            details: Optional additional context
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "details": self.details,
            }
        }


# ============================================================================
# VALIDATION ERRORS (VAL001-099)
# ============================================================================

class ValidationError(PayCoreException):
    """Malformed or missing input; the caller must fix it before submitting."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(
            message=message,
            code="VAL001",
            status_code=422,
            details={"field": field} if field else {},
        )


# ============================================================================
# PRICING ERRORS (PRC100-199)
# ============================================================================

class PricingError(PayCoreException):
    """Base class for pricing errors."""
    pass


class InvalidPlanError(PricingError):
    """Plan definition cannot be priced (e.g. negative base price)."""

    def __init__(self, plan_id: str | None, reason: str):
        super().__init__(
            message=f"Invalid plan {plan_id}: {reason}" if plan_id else f"Invalid plan: {reason}",
            code="PRC100",
            status_code=400,
            details={"plan_id": plan_id, "reason": reason},
        )


class InvalidRateError(PricingError):
    """Exchange or tax rate is out of range."""

    def __init__(self, rate_name: str, value: Any):
        super().__init__(
            message=f"Invalid {rate_name}: {value}",
            code="PRC101",
            status_code=400,
            details={"rate": rate_name, "value": str(value)},
        )


class PlanNotFoundError(PricingError):
    """Plan id is unknown to the pricing backend."""

    def __init__(self, plan_id: str):
        super().__init__(
            message=f"Pricing plan '{plan_id}' not found",
            code="PRC102",
            status_code=404,
            details={"plan_id": plan_id},
        )


# ============================================================================
# SESSION ERRORS (USR100-199)
# ============================================================================

class SessionExpiredError(PayCoreException):
    """Credential rejected (HTTP 401) or missing. Never retried automatically."""

    def __init__(self, message: str = "Session expired. Please login again."):
        super().__init__(
            message=message,
            code="USR101",
            status_code=401,
        )


# ============================================================================
# PAYMENT ERRORS (PAY200-299)
# ============================================================================

class PaymentError(PayCoreException):
    """Base class for order and verification errors."""
    pass


class OrderCreationError(PaymentError):
    """Backend refused or garbled the order creation response."""

    GENERIC_MESSAGE = "Failed to create order. Please try again."

    def __init__(self, message: str | None = None, status_code: int | None = None):
        super().__init__(
            message=message or self.GENERIC_MESSAGE,
            code="PAY200",
            status_code=status_code or 502,
            details={"upstream_status": status_code} if status_code else {},
        )


class VerificationPendingError(PaymentError):
    """Gateway has not settled the order yet; retried automatically."""

    def __init__(self, order_id: str, message: str = "Payment is being processed... Please wait a moment."):
        super().__init__(
            message=message,
            code="PAY201",
            status_code=202,
            details={"order_id": order_id},
        )


class VerificationFailedError(PaymentError):
    """Terminal negative verification outcome."""

    def __init__(self, order_id: str, message: str | None = None):
        super().__init__(
            message=message or "Payment verification failed. Please contact support.",
            code="PAY202",
            status_code=402,
            details={"order_id": order_id},
        )


# ============================================================================
# ADMIN ERRORS (ADM300-399)
# ============================================================================

class LedgerError(PayCoreException):
    """Admin payment listing or detail lookup failed."""

    def __init__(self, message: str = "Failed to load payments", status_code: int | None = None):
        super().__init__(
            message=message,
            code="ADM300",
            status_code=status_code or 502,
            details={"upstream_status": status_code} if status_code else {},
        )


# ============================================================================
# SYSTEM ERRORS (SYS400-499)
# ============================================================================

class NetworkError(PayCoreException):
    """Request could not be sent or no response arrived."""

    def __init__(self, reason: str | None = None):
        message = "Network error. Please check your connection."
        super().__init__(
            message=message,
            code="SYS400",
            status_code=503,
            details={"reason": reason} if reason else {},
        )
