"""
Provider registry: one charge provider per payment method.
"""

from dibnow.billing.providers.base import ChargeProvider, ManualChargeProvider
from dibnow.billing.providers.http import HttpChargeProvider
from dibnow.billing.providers.wallet import WalletChargeProvider
from dibnow.billing.settings import Settings, settings
from dibnow.billing.subscriptions.models import PaymentMethod


class ProviderRegistry:
    """Selects the charge provider for a subscription's payment method."""

    def __init__(self, providers: dict[PaymentMethod, ChargeProvider] | None = None) -> None:
        self._providers: dict[PaymentMethod, ChargeProvider] = dict(providers or {})

    def register(self, provider: ChargeProvider) -> None:
        self._providers[provider.payment_method] = provider

    def get(self, payment_method: PaymentMethod | str) -> ChargeProvider | None:
        try:
            return self._providers.get(PaymentMethod(payment_method))
        except ValueError:
            return None

    def __contains__(self, payment_method: object) -> bool:
        return payment_method in self._providers

    async def aclose(self) -> None:
        for provider in self._providers.values():
            await provider.aclose()


def build_default_registry(config: Settings | None = None) -> ProviderRegistry:
    """Registry with the HTTP providers from settings, manual and wallet."""
    cfg = (config or settings).providers
    registry = ProviderRegistry()
    endpoints = (
        (PaymentMethod.STRIPE, cfg.stripe_renewal_url, cfg.stripe_api_key),
        (PaymentMethod.PAYPAL, cfg.paypal_renewal_url, cfg.paypal_api_key),
        (PaymentMethod.PAYFAST, cfg.payfast_renewal_url, cfg.payfast_api_key),
    )
    for method, url, api_key in endpoints:
        if url:
            registry.register(
                HttpChargeProvider(
                    method, url, api_key=api_key, timeout=cfg.http_timeout_seconds
                )
            )
    registry.register(ManualChargeProvider())
    registry.register(WalletChargeProvider())
    return registry


__all__ = ["ProviderRegistry", "build_default_registry"]
