"""
Billing system exceptions.

Every failure surfaced by the billing engine is a ``BillingError`` carrying
a machine-readable code, an HTTP status, context and a recovery hint.
"""

from decimal import Decimal
from typing import Any


class BillingError(Exception):
    """
    Base billing system error with enhanced context.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for API responses
        status_code: HTTP status code for this error type
        context: Additional context data about the error
        recovery_hint: Suggested action to resolve the error
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int = 400,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        self.message = message
        self.error_code = error_code or "BILLING_ERROR"
        self.status_code = status_code
        self.context = context or {}
        self.recovery_hint = recovery_hint
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
            "context": self.context,
            "recovery_hint": self.recovery_hint,
        }


# ==========================================
# Not found (404)
# ==========================================


class NotFoundError(BillingError):
    """A referenced billing entity does not exist."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
        error_code: str = "NOT_FOUND",
    ):
        super().__init__(
            message, error_code, status_code=404, context=context, recovery_hint=recovery_hint
        )


class TenantNotFoundError(NotFoundError):
    def __init__(self, tenant_id: str) -> None:
        super().__init__(
            f"Tenant {tenant_id} not found",
            context={"tenant_id": tenant_id},
            recovery_hint="Verify the tenant ID",
            error_code="TENANT_NOT_FOUND",
        )


class WalletNotFoundError(NotFoundError):
    def __init__(self, tenant_id: str) -> None:
        super().__init__(
            f"Wallet not found for tenant {tenant_id}",
            context={"tenant_id": tenant_id},
            recovery_hint="Top up the wallet to create it",
            error_code="WALLET_NOT_FOUND",
        )


class PlanNotFoundError(NotFoundError):
    def __init__(self, plan_ref: str | None) -> None:
        super().__init__(
            f"Plan {plan_ref} not found",
            context={"plan": plan_ref},
            recovery_hint="Verify the plan ID or name against the active catalog",
            error_code="PLAN_NOT_FOUND",
        )


class SubscriptionNotFoundError(NotFoundError):
    def __init__(self, subscription_id: str) -> None:
        super().__init__(
            f"Subscription {subscription_id} not found",
            context={"subscription_id": subscription_id},
            recovery_hint="Verify the subscription ID and tenant",
            error_code="SUBSCRIPTION_NOT_FOUND",
        )


class PlanRequestNotFoundError(NotFoundError):
    def __init__(self, request_id: str) -> None:
        super().__init__(
            f"Plan request {request_id} not found",
            context={"request_id": request_id},
            error_code="PLAN_REQUEST_NOT_FOUND",
        )


class TransactionNotFoundError(NotFoundError):
    def __init__(self, transaction_id: str) -> None:
        super().__init__(
            f"Transaction {transaction_id} not found",
            context={"transaction_id": transaction_id},
            error_code="TRANSACTION_NOT_FOUND",
        )


# ==========================================
# Caller errors
# ==========================================


class InvalidInputError(BillingError):
    """Malformed amount, unknown enum value or malformed resource kind."""

    def __init__(self, message: str, field: str | None = None, value: Any = None) -> None:
        context: dict[str, Any] = {}
        if field:
            context["field"] = field
        if value is not None:
            context["value"] = str(value)
        super().__init__(
            message,
            "INVALID_INPUT",
            status_code=400,
            context=context,
            recovery_hint="Correct the request and retry",
        )


class InsufficientFundsError(BillingError):
    """Wallet balance is below the requested deduction."""

    def __init__(self, tenant_id: str, balance: Decimal, required: Decimal) -> None:
        super().__init__(
            "Insufficient balance",
            "INSUFFICIENT_FUNDS",
            status_code=402,
            context={
                "tenant_id": tenant_id,
                "balance": str(balance),
                "required": str(required),
            },
            recovery_hint="Top up the wallet and retry",
        )
        self.balance = balance
        self.required = required


class LimitExceededError(BillingError):
    """Plan quota reached for a resource kind."""

    def __init__(
        self,
        resource_kind: str,
        limit: int,
        current_count: int,
        plan_name: str,
    ):
        message = (
            f"You have reached the limit of {limit} {resource_kind} for your current plan "
            f"({plan_name}). Please upgrade your tier to add more."
        )
        super().__init__(
            message,
            "LIMIT_EXCEEDED",
            status_code=403,
            context={
                "resource_kind": resource_kind,
                "limit": limit,
                "current_count": current_count,
                "plan_name": plan_name,
                "upgrade_required": True,
            },
            recovery_hint="Upgrade to a plan with a higher quota",
        )
        self.resource_kind = resource_kind
        self.limit = limit
        self.current_count = current_count
        self.plan_name = plan_name


class ConflictError(BillingError):
    """Operation is not valid for the entity's current state."""

    def __init__(
        self,
        message: str,
        current_state: str | None = None,
        requested_state: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        ctx = dict(context or {})
        if current_state is not None:
            ctx["current_state"] = current_state
        if requested_state is not None:
            ctx["requested_state"] = requested_state
        super().__init__(message, "CONFLICT", status_code=409, context=ctx)


class PlanInactiveError(BillingError):
    """Tenant has no active plan for an operation gated by plan status."""

    def __init__(self, tenant_id: str, status: str) -> None:
        super().__init__(
            f"Plan for tenant {tenant_id} is {status}",
            "PLAN_INACTIVE",
            status_code=402,
            context={"tenant_id": tenant_id, "status": status},
            recovery_hint="Renew or upgrade the plan to continue",
        )


# ==========================================
# Infrastructure errors
# ==========================================


class ProviderFailureError(BillingError):
    """Payment provider returned failure, raised, or timed out."""

    def __init__(
        self,
        message: str,
        payment_method: str | None = None,
        subscription_id: str | None = None,
        timed_out: bool = False,
    ):
        super().__init__(
            message,
            "PROVIDER_FAILURE",
            status_code=502,
            context={
                "payment_method": payment_method,
                "subscription_id": subscription_id,
                "timed_out": timed_out,
            },
            recovery_hint="The renewal will be retried on the next cycle",
        )
        self.timed_out = timed_out


class BillingConfigurationError(BillingError):
    """Billing configuration is broken (e.g. the default plan is not seeded)."""

    def __init__(self, message: str, config_key: str | None = None) -> None:
        super().__init__(
            message,
            "CONFIGURATION_ERROR",
            status_code=500,
            context={"config_key": config_key} if config_key else {},
            recovery_hint="Seed the plan catalog or fix billing settings",
        )


__all__ = [
    "BillingError",
    "NotFoundError",
    "TenantNotFoundError",
    "WalletNotFoundError",
    "PlanNotFoundError",
    "SubscriptionNotFoundError",
    "PlanRequestNotFoundError",
    "TransactionNotFoundError",
    "InvalidInputError",
    "InsufficientFundsError",
    "LimitExceededError",
    "ConflictError",
    "PlanInactiveError",
    "ProviderFailureError",
    "BillingConfigurationError",
]
