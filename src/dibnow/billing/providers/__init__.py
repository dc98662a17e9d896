"""Payment providers used for automated renewals."""

from dibnow.billing.providers.base import ChargeProvider, ChargeResult, ManualChargeProvider
from dibnow.billing.providers.http import HttpChargeProvider
from dibnow.billing.providers.registry import ProviderRegistry, build_default_registry
from dibnow.billing.providers.wallet import WalletChargeProvider

__all__ = [
    "ChargeProvider",
    "ChargeResult",
    "ManualChargeProvider",
    "HttpChargeProvider",
    "WalletChargeProvider",
    "ProviderRegistry",
    "build_default_registry",
]
