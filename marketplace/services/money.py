"""
marketplace.services.money

Currency minor-unit handling. Stripe amounts are integers in the currency's
smallest unit: 49.00 USD -> 4900, 500 JPY -> 500, 1.250 KWD -> 1250.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
        "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
    }
)
THREE_DECIMAL_CURRENCIES = frozenset({"BHD", "JOD", "KWD", "OMR", "TND"})


def minor_unit_exponent(currency: str) -> int:
    code = (currency or "").upper()
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in THREE_DECIMAL_CURRENCIES:
        return 3
    return 2


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError(f"Not a monetary amount: {value!r}")


def quantize_amount(value: Any, currency: str) -> Decimal:
    """Round to the currency's minor unit (half-up)."""
    exp = minor_unit_exponent(currency)
    return to_decimal(value).quantize(Decimal(1).scaleb(-exp), rounding=ROUND_HALF_UP)


def to_minor_units(value: Any, currency: str) -> int:
    exp = minor_unit_exponent(currency)
    return int(quantize_amount(value, currency).scaleb(exp))


def format_amount(value: Any, currency: str) -> str:
    return str(quantize_amount(value, currency))
