"""
Billing exceptions.

Every error here carries a human-readable ``detail``, a machine-readable
``code`` and the HTTP ``status_code`` the API layer should answer with.
The DRF exception handler in ``tracksub.core.api`` turns them into
``{"detail": ..., "code": ...}`` responses, so views can simply let them
propagate.
"""

from __future__ import annotations

from http import HTTPStatus


class BillingError(Exception):
    """Base exception for billing-related errors."""

    status_code = HTTPStatus.BAD_REQUEST

    def __init__(self, detail: str, code: str = "billing_error"):
        self.detail = detail
        self.code = code
        super().__init__(detail)


class PlanNotFoundError(BillingError):
    """Raised when a plan id does not resolve to a plan."""

    status_code = HTTPStatus.NOT_FOUND

    def __init__(self, detail: str = "Plan not found."):
        super().__init__(detail, code="plan_not_found")


class PlanNotPurchasableError(BillingError):
    """Raised when a plan exists but cannot be bought (inactive or free)."""

    def __init__(self, detail: str = "This plan cannot be purchased."):
        super().__init__(detail, code="plan_not_purchasable")


class InvalidPlanChangeError(BillingError):
    """Raised for same-plan re-selection or a downgrade while still active."""

    def __init__(self, detail: str, code: str = "invalid_plan_change"):
        super().__init__(detail, code=code)


class SubscriptionNotFoundError(BillingError):
    status_code = HTTPStatus.NOT_FOUND

    def __init__(self, detail: str = "No subscription found."):
        super().__init__(detail, code="subscription_not_found")


class SubscriptionInactiveError(BillingError):
    """Raised when the subscription is not in an active state."""

    status_code = HTTPStatus.FORBIDDEN

    def __init__(
        self,
        detail: str = "Your subscription is not active.",
        status: str = "",
    ):
        self.status = status
        super().__init__(detail, code="subscription_inactive")


class DeviceLimitError(BillingError):
    """Raised when trying to add a device beyond the plan's device limit."""

    status_code = HTTPStatus.FORBIDDEN

    def __init__(
        self,
        detail: str = "Device limit reached. Upgrade your plan to add more devices.",
        limit: int | None = None,
    ):
        self.limit = limit
        super().__init__(detail, code="device_limit_exceeded")


class PaymentNotFoundError(BillingError):
    status_code = HTTPStatus.NOT_FOUND

    def __init__(self, detail: str = "Payment not found."):
        super().__init__(detail, code="payment_not_found")


class GatewayError(BillingError):
    """Raised when a payment gateway call fails or returns garbage."""

    status_code = HTTPStatus.BAD_GATEWAY

    def __init__(self, detail: str, code: str = "gateway_error"):
        super().__init__(detail, code=code)


class GatewayNotConfiguredError(GatewayError):
    """Raised when credentials for a gateway are missing from settings."""

    status_code = HTTPStatus.SERVICE_UNAVAILABLE

    def __init__(self, detail: str = "Payment gateway is not configured."):
        super().__init__(detail, code="gateway_not_configured")


class CallbackVerificationError(BillingError):
    """
    Raised when an inbound gateway callback cannot be authenticated.

    Covers bad signatures, unparseable bodies and missing verification
    secrets. The callback endpoints answer 400 and apply nothing.
    """

    def __init__(self, detail: str = "Callback verification failed."):
        super().__init__(detail, code="callback_verification_failed")


class PaymentStateError(BillingError):
    """Raised on an attempt to move a payment out of a terminal status."""

    status_code = HTTPStatus.CONFLICT

    def __init__(self, detail: str):
        super().__init__(detail, code="payment_terminal")


class CheckoutCompletedError(BillingError):
    """Raised when a checkout cannot be cancelled because it was already paid."""

    status_code = HTTPStatus.CONFLICT

    def __init__(
        self,
        detail: str = "This checkout was already paid and cannot be cancelled.",
    ):
        super().__init__(detail, code="checkout_completed")
