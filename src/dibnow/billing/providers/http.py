"""
HTTP-backed charge providers (Stripe, PayPal, PayFast).

Each provider exposes a renewal endpoint that accepts
``{"subscriptionId": ...}`` and answers with a payment reference.
"""

from typing import Any

import httpx
import structlog

from dibnow.billing.providers.base import ChargeProvider, ChargeResult
from dibnow.billing.subscriptions.models import PaymentMethod

logger = structlog.get_logger(__name__)

# Response keys that may carry the provider's payment reference
PAYMENT_REFERENCE_KEYS = ("paymentId", "payment_id", "orderId", "id")


class HttpChargeProvider(ChargeProvider):
    """Renews subscriptions by POSTing to a provider renewal endpoint."""

    def __init__(
        self,
        payment_method: PaymentMethod,
        renewal_url: str,
        api_key: str | None = None,
        timeout: float = 20.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.payment_method = payment_method
        self.renewal_url = renewal_url
        self.api_key = api_key
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=headers)
        return self._client

    async def renew(self, subscription_id: str) -> ChargeResult:
        try:
            response = await self._get_client().post(
                self.renewal_url, json={"subscriptionId": subscription_id}
            )
        except httpx.TimeoutException:
            return ChargeResult.failure(f"{self.payment_method.value} renewal timed out")
        except httpx.HTTPError as e:
            return ChargeResult.failure(f"{self.payment_method.value} renewal error: {e}")

        data = _json_body(response)
        if not response.is_success:
            message = data.get("message") or f"HTTP {response.status_code}"
            logger.warning(
                "billing.provider.renewal_rejected",
                provider=self.payment_method.value,
                subscription_id=subscription_id,
                status_code=response.status_code,
                message=message,
            )
            return ChargeResult.failure(str(message))

        for key in PAYMENT_REFERENCE_KEYS:
            if data.get(key):
                return ChargeResult.success(str(data[key]))
        return ChargeResult.failure("provider response carried no payment reference")

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


__all__ = ["HttpChargeProvider", "PAYMENT_REFERENCE_KEYS"]
