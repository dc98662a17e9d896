"""
DibNow billing service.

Plan catalog, quota enforcement, subscriptions, wallets and automated
renewals for multi-tenant repair shops.
"""

__version__ = "1.0.0"
