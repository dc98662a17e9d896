"""
Money utilities using py-moneyed and Babel.

Wallet amounts are stored as ``Decimal`` quantized to the currency's minor
unit; this module validates caller-supplied amounts and currency codes and
produces locale-aware display strings.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from babel import Locale
from babel.core import UnknownLocaleError
from babel.numbers import format_currency, get_currency_precision
from moneyed import Currency, Money, get_currency
from moneyed.classes import CurrencyDoesNotExist

from dibnow.billing.exceptions import InvalidInputError
from dibnow.billing.settings import settings

DEFAULT_LOCALE = "en_US"
ZERO = Decimal("0")


class MoneyHandler:
    """Central handler for money operations with proper error handling."""

    def __init__(self, default_currency: str = "USD", default_locale: str = DEFAULT_LOCALE) -> None:
        self.default_currency = self.validate_currency(default_currency)
        self.default_locale = self._validate_locale(default_locale)

    def validate_currency(self, currency_code: str | None) -> Currency:
        """Validate and return Currency object."""
        if not currency_code:
            raise InvalidInputError("Currency code is required", field="currency")
        try:
            return get_currency(currency_code.upper())
        except CurrencyDoesNotExist:
            raise InvalidInputError(
                f"Invalid currency code: {currency_code}", field="currency", value=currency_code
            )

    def _validate_locale(self, locale_code: str) -> str:
        try:
            Locale.parse(locale_code)
            return locale_code
        except (UnknownLocaleError, ValueError):
            return DEFAULT_LOCALE

    def precision(self, currency_code: str) -> int:
        """Get decimal precision for a currency."""
        return int(get_currency_precision(currency_code.upper()))

    def quantize(self, amount: Decimal, currency_code: str) -> Decimal:
        """Round an amount to the currency's minor unit."""
        return amount.quantize(Decimal(1).scaleb(-self.precision(currency_code)))

    def validate_amount(self, value: Any, *, allow_zero: bool = False) -> Decimal:
        """Check that ``value`` is a positive, finite number, whatever the currency.

        Raises InvalidInputError for non-numeric, non-finite and negative (or
        zero unless ``allow_zero``) amounts.
        """
        if isinstance(value, bool) or value is None:
            raise InvalidInputError("Invalid amount", field="amount", value=value)
        try:
            amount = value if isinstance(value, Decimal) else Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise InvalidInputError("Invalid amount", field="amount", value=value)
        if not amount.is_finite():
            raise InvalidInputError("Invalid amount", field="amount", value=value)
        if amount < ZERO or (amount == ZERO and not allow_zero):
            raise InvalidInputError("Amount must be positive", field="amount", value=value)
        return amount

    def parse_amount(
        self, value: Any, currency: str | None = None, *, allow_zero: bool = False
    ) -> Decimal:
        """Parse a caller-supplied amount into a positive, finite Decimal.

        On top of ``validate_amount``, rejects amounts with more decimal places
        than the currency supports.
        """
        currency_code = (currency or self.default_currency.code).upper()
        amount = self.validate_amount(value, allow_zero=allow_zero)
        quantized = self.quantize(amount, currency_code)
        if quantized != amount:
            raise InvalidInputError(
                f"Amount has more precision than {currency_code} allows",
                field="amount",
                value=value,
            )
        return quantized

    def create_money(self, amount: Decimal | int | str, currency: str | None = None) -> Money:
        """Create Money object with proper validation."""
        validated = self.validate_currency(currency or self.default_currency.code)
        return Money(amount=Decimal(str(amount)), currency=validated)

    def format_money(self, money: Money, locale: str | None = None, **kwargs: Any) -> str:
        """Format Money object with locale-aware formatting."""
        validated_locale = self._validate_locale(locale or self.default_locale)
        try:
            return format_currency(
                number=money.amount, currency=money.currency.code, locale=validated_locale, **kwargs
            )
        except (TypeError, ValueError):
            return f"{money.currency.code} {money.amount}"

    def format_amount(self, amount: Decimal, currency: str, locale: str | None = None) -> str:
        return self.format_money(self.create_money(amount, currency), locale)


money_handler = MoneyHandler(
    default_currency=settings.billing.default_currency,
    default_locale=settings.billing.default_locale,
)


def parse_amount(value: Any, currency: str | None = None, *, allow_zero: bool = False) -> Decimal:
    """Parse an amount with the default handler."""
    return money_handler.parse_amount(value, currency, allow_zero=allow_zero)


def validate_amount(value: Any, *, allow_zero: bool = False) -> Decimal:
    """Currency-independent amount check with the default handler."""
    return money_handler.validate_amount(value, allow_zero=allow_zero)


def format_amount(amount: Decimal, currency: str, locale: str | None = None) -> str:
    """Format an amount with the default handler."""
    return money_handler.format_amount(amount, currency, locale)


def validate_currency(currency_code: str | None) -> str:
    """Return the upper-cased ISO code or raise InvalidInputError."""
    return money_handler.validate_currency(currency_code).code


__all__ = [
    "MoneyHandler",
    "money_handler",
    "parse_amount",
    "validate_amount",
    "format_amount",
    "validate_currency",
    "ZERO",
]
