"""Decimal helpers for amounts at the configured financial precision."""
from decimal import Decimal, InvalidOperation, ROUND_DOWN

from django.conf import settings

from ledger.exceptions import InvalidAmount


def money_quantum():
    return Decimal(1).scaleb(-settings.FINANCIAL_PRECISION)


def round_down(value):
    """Truncate a Decimal to the financial precision."""
    return value.quantize(money_quantum(), rounding=ROUND_DOWN)


def parse_amount(value):
    """
    Parse a request amount into a positive Decimal.

    Accepts numbers and numeric strings. Rejects missing, non-numeric,
    non-finite and non-positive values, and values with more decimal places
    than the ledger stores.

    Raises:
        InvalidAmount
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmount()

    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmount()

    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount()

    try:
        quantized = amount.quantize(money_quantum())
    except InvalidOperation:
        raise InvalidAmount()
    if quantized != amount:
        raise InvalidAmount(
            f'Amount must have at most {settings.FINANCIAL_PRECISION} decimal places.'
        )

    return quantized
