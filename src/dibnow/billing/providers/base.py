"""
Charge provider capability.

The renewal path treats every payment provider as one opaque request:
given a subscription id, charge for the next period and report the outcome.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from dibnow.billing.subscriptions.models import PaymentMethod


@dataclass(frozen=True)
class ChargeResult:
    """Outcome of a single renewal charge."""

    ok: bool
    payment_id: str | None = None
    error: str | None = None

    @classmethod
    def success(cls, payment_id: str) -> "ChargeResult":
        return cls(ok=True, payment_id=payment_id)

    @classmethod
    def failure(cls, error: str) -> "ChargeResult":
        return cls(ok=False, error=error)


class ChargeProvider(ABC):
    """A payment method able to renew a subscription."""

    payment_method: PaymentMethod

    @abstractmethod
    async def renew(self, subscription_id: str) -> ChargeResult:
        """Charge the next billing period of ``subscription_id``.

        Implementations report provider-side failures as a failed result;
        exceptions and timeouts are handled by the caller as failures too.
        """

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
        return None


class ManualChargeProvider(ChargeProvider):
    """Manual (bank transfer) subscriptions renew through plan requests only."""

    payment_method = PaymentMethod.MANUAL

    async def renew(self, subscription_id: str) -> ChargeResult:
        return ChargeResult.failure("manual subscriptions renew through plan requests")


__all__ = ["ChargeResult", "ChargeProvider", "ManualChargeProvider"]
