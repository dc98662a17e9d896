"""
Tests for billing error payloads.
"""

from decimal import Decimal

import pytest

from dibnow.billing.exceptions import (
    BillingConfigurationError,
    BillingError,
    ConflictError,
    InsufficientFundsError,
    InvalidInputError,
    LimitExceededError,
    NotFoundError,
    PlanInactiveError,
    PlanNotFoundError,
    ProviderFailureError,
    WalletNotFoundError,
)

pytestmark = pytest.mark.unit


class TestBillingErrors:
    def test_to_dict(self):
        error = BillingError("Something broke", context={"a": 1}, recovery_hint="Retry")
        assert error.to_dict() == {
            "error_code": "BILLING_ERROR",
            "message": "Something broke",
            "status_code": 400,
            "context": {"a": 1},
            "recovery_hint": "Retry",
        }

    @pytest.mark.parametrize(
        "error,status_code,error_code",
        [
            (PlanNotFoundError("GOLD"), 404, "PLAN_NOT_FOUND"),
            (WalletNotFoundError("tnt_1"), 404, "WALLET_NOT_FOUND"),
            (InvalidInputError("bad", field="amount", value=-1), 400, "INVALID_INPUT"),
            (
                InsufficientFundsError("tnt_1", Decimal("1"), Decimal("2")),
                402,
                "INSUFFICIENT_FUNDS",
            ),
            (LimitExceededError("brands", 5, 5, "BASIC"), 403, "LIMIT_EXCEEDED"),
            (ConflictError("busy", current_state="approved"), 409, "CONFLICT"),
            (PlanInactiveError("tnt_1", "expired"), 402, "PLAN_INACTIVE"),
            (ProviderFailureError("down", payment_method="stripe"), 502, "PROVIDER_FAILURE"),
            (BillingConfigurationError("no default plan"), 500, "CONFIGURATION_ERROR"),
        ],
    )
    def test_status_and_code(self, error, status_code, error_code):
        assert isinstance(error, BillingError)
        assert error.status_code == status_code
        assert error.error_code == error_code

    def test_not_found_family(self):
        assert isinstance(PlanNotFoundError("x"), NotFoundError)

    def test_limit_exceeded_message(self):
        error = LimitExceededError("inventoryItems", 5, 5, "BASIC")
        assert error.message == (
            "You have reached the limit of 5 inventoryItems for your current plan (BASIC). "
            "Please upgrade your tier to add more."
        )
        assert error.context["upgrade_required"] is True

    def test_context_is_json_safe(self):
        error = InsufficientFundsError("tnt_1", Decimal("1.50"), Decimal("2"))
        assert error.context == {"tenant_id": "tnt_1", "balance": "1.50", "required": "2"}
