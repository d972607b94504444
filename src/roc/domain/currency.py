"""SRD/USD conversion.

Rates are always expressed as SRD per 1 USD. Callers converting amounts
that belong to an existing financial record must pass the rate stored on
that record, not the current market rate.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from roc.domain.errors import InvalidAmount, InvalidRate
from roc.domain.models import Currency

CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            # str() first so floats keep their shortest repr instead of binary noise
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as e:
            raise InvalidAmount(f"Not a valid amount: {value!r}") from e
    if not result.is_finite():
        raise InvalidAmount(f"Not a valid amount: {value!r}")
    return result


def money(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def validate_rate(rate: Number) -> Decimal:
    try:
        value = to_decimal(rate)
    except InvalidAmount as e:
        raise InvalidRate(f"Exchange rate must be a number. Received: {rate!r}") from e
    if not value.is_finite() or value <= 0:
        raise InvalidRate(f"Exchange rate must be > 0. Received: {rate}")
    return value


class CurrencyConverter:
    @staticmethod
    def convert(amount: Number, from_currency: Currency | str, to_currency: Currency | str, rate: Number) -> Decimal:
        src = Currency(from_currency)
        dst = Currency(to_currency)
        srd_per_usd = validate_rate(rate)
        value = to_decimal(amount)

        if src is dst:
            return money(value)
        if src is Currency.USD:
            return money(value * srd_per_usd)
        return money(value / srd_per_usd)


convert = CurrencyConverter.convert
