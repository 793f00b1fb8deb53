"""Exact decimal amounts for webcash (at most 8 fractional digits)."""

from __future__ import annotations

from decimal import (
    MAX_EMAX,
    MAX_PREC,
    MIN_EMIN,
    Context,
    Decimal,
    DivisionByZero,
    Inexact,
    InvalidOperation,
    Overflow,
    localcontext,
)
from typing import Any, ContextManager

from .errors import WebcashFormatError, WebcashPrecisionError

MAX_DECIMAL_PLACES = 8
UNKNOWN_AMOUNT = "?"

_INVALID_AMOUNT = "Invalid amount format for webcash."

# Additions and subtractions of amounts never round; anything inexact raises.
_EXACT_CONTEXT = Context(
    prec=MAX_PREC,
    Emax=MAX_EMAX,
    Emin=MIN_EMIN,
    traps=[InvalidOperation, DivisionByZero, Overflow, Inexact],
)


def exact_arithmetic() -> ContextManager[Context]:
    return localcontext(_EXACT_CONTEXT)


def parse_amount(amount_raw: str) -> Decimal:
    """Decode the amount segment of a webcash string.

    Only the text before the first colon is considered. A single leading
    ``e`` is a historical marker, not an exponent.
    """
    part = str(amount_raw).split(":")[0]
    count = part.count("e")
    if count == 0:
        return _to_decimal(part)
    if count > 1 or not part.startswith("e") or part == "e":
        raise WebcashFormatError(_INVALID_AMOUNT)
    return _to_decimal(part[1:])


def string_amount_to_decimal(amount: Any) -> Decimal:
    return _to_decimal(str(amount))


def amount_scale(amount: Decimal) -> int:
    """Fractional digits of ``amount`` once trailing zeros are ignored."""
    _, digits, exponent = amount.as_tuple()
    if not isinstance(exponent, int):
        raise WebcashFormatError(_INVALID_AMOUNT)
    trimmed = list(digits)
    while exponent < 0 and len(trimmed) > 1 and trimmed[-1] == 0:
        trimmed.pop()
        exponent += 1
    if trimmed == [0]:
        return 0
    return max(0, -exponent)


def validate_amount_decimals(amount: Any) -> bool:
    to_amount(amount)
    return True


def to_amount(amount: Any) -> Decimal:
    value = _coerce(amount)
    if amount_scale(value) > MAX_DECIMAL_PLACES:
        raise WebcashPrecisionError(f"Amount precision should be at most {MAX_DECIMAL_PLACES} decimals.")
    return value


def decimal_amount_to_string(amount: Decimal | int | float | None) -> str:
    """Render an amount the way webcash strings and log records expect.

    Integral values drop the fraction entirely, fractional values are printed
    without exponent and without trailing zeros, and an unknown amount is "?".
    """
    if amount is None:
        return UNKNOWN_AMOUNT
    value = _coerce(amount)
    if value.is_zero():
        return "0"
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _coerce(amount: Any) -> Decimal:
    if isinstance(amount, bool):
        raise WebcashFormatError(f"Unsupported amount type: {type(amount).__name__}")
    if isinstance(amount, Decimal):
        value = amount
    elif isinstance(amount, str):
        value = parse_amount(amount)
    elif isinstance(amount, int):
        value = Decimal(amount)
    elif isinstance(amount, float):
        value = _to_decimal(repr(amount))
    else:
        raise WebcashFormatError(f"Unsupported amount type: {type(amount).__name__}")
    if not value.is_finite():
        raise WebcashFormatError(_INVALID_AMOUNT)
    return value


def _to_decimal(text: str) -> Decimal:
    try:
        value = Decimal(text.strip())
    except (InvalidOperation, ValueError) as exc:
        raise WebcashFormatError(_INVALID_AMOUNT) from exc
    if not value.is_finite():
        raise WebcashFormatError(_INVALID_AMOUNT)
    return value
