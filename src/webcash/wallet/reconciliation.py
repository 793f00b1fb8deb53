"""Apply server health check status to wallet webcash."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
import logging
from typing import Any, Mapping

from .amounts import decimal_amount_to_string, string_amount_to_decimal
from .errors import WebcashTransportError
from .models import HealthCheckResult
from .tokens import PublicWebcash, SecretWebcash

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationSummary:
    checked: int = 0
    unspent: int = 0
    amount_corrected: int = 0
    removed: int = 0
    unknown: int = 0
    duplicates: int = 0
    warnings: list[str] = field(default_factory=list)

    def merge(self, other: "ReconciliationSummary") -> None:
        self.checked += other.checked
        self.unspent += other.unspent
        self.amount_corrected += other.amount_corrected
        self.removed += other.removed
        self.unknown += other.unknown
        self.duplicates += other.duplicates
        self.warnings.extend(other.warnings)

    def as_dict(self) -> dict[str, Any]:
        return {
            "checked": self.checked,
            "unspent": self.unspent,
            "amount_corrected": self.amount_corrected,
            "removed": self.removed,
            "unknown": self.unknown,
            "duplicates": self.duplicates,
            "warnings": list(self.warnings),
        }


def result_fields(result: HealthCheckResult | Mapping[str, Any]) -> tuple[Any, Any]:
    if isinstance(result, HealthCheckResult):
        return result.spent, result.amount
    if isinstance(result, Mapping):
        return result.get("spent"), result.get("amount")
    raise WebcashTransportError(f"Invalid webcash status: {result!r}")


def server_amount(amount: Any, hashed_value: str) -> Decimal:
    if amount is None:
        raise WebcashTransportError(f"Health check omitted the amount of unspent webcash (public={hashed_value})")
    return string_amount_to_decimal(amount)


def public_hashed_value(public_webcash: str) -> str:
    token = PublicWebcash.deserialize(public_webcash)
    if isinstance(token, SecretWebcash):
        return token.to_public().hashed_value
    return token.hashed_value


@dataclass
class ReconciliationEngine:
    """Mutates ``confirmed`` and ``pending`` in place; the wallet owns both lists."""

    confirmed: list[SecretWebcash]
    pending: list[SecretWebcash]

    def deduplicate(self) -> tuple[dict[str, SecretWebcash], list[SecretWebcash]]:
        """Collapse repeated secrets to one confirmed copy.

        Returns the hashed value index used to map server results back to
        secrets, and the duplicate occurrences that were moved to pending.
        """
        index: dict[str, SecretWebcash] = {}
        duplicates: list[SecretWebcash] = []
        for webcash in list(self.confirmed):
            hashed_value = webcash.to_public().hashed_value
            if hashed_value in index:
                logger.warning(
                    "Duplicate webcash detected in wallet, moving it to unconfirmed (public=%s)",
                    hashed_value,
                )
                self.pending.append(webcash)
                self.confirmed[:] = [item for item in self.confirmed if item.secret_value != webcash.secret_value]
                self.confirmed.append(webcash)
                duplicates.append(webcash)
            index[hashed_value] = webcash
        return index, duplicates

    def reconcile(
        self,
        results: Mapping[str, HealthCheckResult | Mapping[str, Any]],
        index: Mapping[str, SecretWebcash],
    ) -> ReconciliationSummary:
        summary = ReconciliationSummary()
        for public_webcash, result in results.items():
            summary.checked += 1
            hashed_value = public_hashed_value(public_webcash)
            wallet_cash = index.get(hashed_value)
            if wallet_cash is None:
                logger.warning("Health check returned webcash unknown to this wallet (public=%s)", hashed_value)
                summary.unknown += 1
                summary.warnings.append(f"UNKNOWN_PUBLIC_WEBCASH:{hashed_value}")
                continue

            spent, amount = result_fields(result)
            if spent is False:
                summary.unspent += 1
                result_amount = server_amount(amount, hashed_value)
                if result_amount != wallet_cash.amount:
                    logger.info(
                        "Wallet was mistaken about amount stored by a certain webcash (public=%s, wallet=%s, server=%s). Updating.",
                        hashed_value,
                        decimal_amount_to_string(wallet_cash.amount),
                        decimal_amount_to_string(result_amount),
                    )
                    self._remove_confirmed(wallet_cash)
                    self.confirmed.append(wallet_cash.with_amount(result_amount))
                    summary.amount_corrected += 1
            elif spent is None or spent is True:
                logger.info("Removing spent or unknown webcash (public=%s, spent=%s)", hashed_value, spent)
                self._remove_confirmed(wallet_cash)
                self.pending.append(wallet_cash)
                summary.removed += 1
            else:
                raise WebcashTransportError(f"Invalid webcash status: {spent!r}")
        return summary

    def _remove_confirmed(self, webcash: SecretWebcash) -> None:
        self.confirmed[:] = [item for item in self.confirmed if item != webcash]

