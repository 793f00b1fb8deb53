"""Input selection for payments."""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence

from .amounts import exact_arithmetic
from .errors import WebcashInsufficientFundsError
from .tokens import SecretWebcash

INSUFFICIENT_FUNDS = "Wallet does not have enough funds to make the transfer."


def select_inputs(confirmed: Sequence[SecretWebcash], target: Decimal) -> list[SecretWebcash]:
    """Pick confirmed webcash covering ``target``.

    The first single token large enough wins; otherwise the shortest prefix of
    ``confirmed`` whose running sum reaches ``target``. Change is not minimised.
    """
    for webcash in confirmed:
        if webcash.amount >= target:
            return [webcash]

    running_amount = Decimal(0)
    running: list[SecretWebcash] = []
    for webcash in confirmed:
        with exact_arithmetic():
            running_amount += webcash.amount
        running.append(webcash)
        if running_amount >= target:
            return running

    raise WebcashInsufficientFundsError(INSUFFICIENT_FUNDS)


def total_amount(webcashes: Sequence[SecretWebcash]) -> Decimal:
    with exact_arithmetic():
        return sum((webcash.amount for webcash in webcashes), Decimal(0))
