"""Tenant wallets and the transaction ledger."""

from dibnow.billing.wallet.ledger import LedgerService, RenewalReport
from dibnow.billing.wallet.locks import WalletLockRegistry, wallet_locks
from dibnow.billing.wallet.models import (
    TransactionStatus,
    TransactionTable,
    TransactionType,
    WalletTable,
)
from dibnow.billing.wallet.service import LedgerCheck, WalletService

__all__ = [
    "LedgerService",
    "RenewalReport",
    "WalletLockRegistry",
    "wallet_locks",
    "TransactionStatus",
    "TransactionTable",
    "TransactionType",
    "WalletTable",
    "LedgerCheck",
    "WalletService",
]
