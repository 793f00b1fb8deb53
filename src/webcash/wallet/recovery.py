"""Gap-limit recovery of wallet webcash from the master secret."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
import logging
from typing import Any, Callable, Mapping, Sequence

from .amounts import decimal_amount_to_string
from .derivation import ChainCode, derive_secret
from .errors import WebcashPolicyError, WebcashTransportError
from .reconciliation import ReconciliationSummary, public_hashed_value, result_fields, server_amount
from .selection import total_amount
from .tokens import SecretWebcash

logger = logging.getLogger(__name__)

DEFAULT_GAP_LIMIT = 20


@dataclass
class ChainRecovery:
    chain_code: str
    reported_depth: int
    rounds: int = 0
    last_used_depth: int | None = None
    final_depth: int = 0
    recovered: list[SecretWebcash] = field(default_factory=list)
    unswept: list[SecretWebcash] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "chain_code": self.chain_code,
            "reported_depth": self.reported_depth,
            "rounds": self.rounds,
            "last_used_depth": self.last_used_depth,
            "final_depth": self.final_depth,
            "recovered_count": len(self.recovered),
            "recovered_amount": decimal_amount_to_string(total_amount(self.recovered)),
            "unswept_count": len(self.unswept),
            "unswept_amount": decimal_amount_to_string(total_amount(self.unswept)),
            "warnings": list(self.warnings),
        }


@dataclass
class RecoveryReport:
    check: ReconciliationSummary | None = None
    chains: list[ChainRecovery] = field(default_factory=list)

    @property
    def recovered(self) -> list[SecretWebcash]:
        return [webcash for chain in self.chains for webcash in chain.recovered]

    @property
    def warnings(self) -> list[str]:
        return [warning for chain in self.chains for warning in chain.warnings]

    def as_dict(self) -> dict[str, Any]:
        return {
            "check": self.check.as_dict() if self.check else None,
            "chains": [chain.as_dict() for chain in self.chains],
            "recovered_amount": decimal_amount_to_string(total_amount(self.recovered)),
        }


@dataclass
class RecoveryScanner:
    """Rediscovers webcash issued from ``master_secret``.

    Depths are derived explicitly, so scanning never advances a counter by
    itself; ``walletdepths`` only moves forward once a chain is exhausted.
    """

    master_secret: str
    walletdepths: dict[str, int]
    confirmed: list[SecretWebcash]
    pending: list[SecretWebcash]
    health_check: Callable[[Sequence[str]], Mapping[str, Any]]
    gap_limit: int = DEFAULT_GAP_LIMIT
    sweep_payments: bool = False

    def __post_init__(self) -> None:
        if int(self.gap_limit) < 1:
            raise WebcashPolicyError("gap_limit must be >= 1")

    def scan(self) -> RecoveryReport:
        report = RecoveryReport()
        for chain_code in list(self.walletdepths.keys()):
            report.chains.append(self.scan_chain(chain_code))
        return report

    def scan_chain(self, chain_code: str) -> ChainRecovery:
        reported_depth = int(self.walletdepths.get(chain_code, 0))
        recovery = ChainRecovery(chain_code=chain_code, reported_depth=reported_depth)
        cursor = 0
        while True:
            logger.info(
                "Checking gaplimit %s secrets for chainCode %s, round %s",
                self.gap_limit,
                chain_code,
                recovery.rounds,
            )
            found = self._scan_window(chain_code, cursor, recovery)
            recovery.rounds += 1
            if cursor < reported_depth:
                found = True
            if not found:
                break
            cursor += self.gap_limit

        next_depth = recovery.last_used_depth + 1 if recovery.last_used_depth is not None else 0
        if reported_depth - next_depth > self.gap_limit:
            message = (
                f"Something may have gone wrong: reported walletdepth was {reported_depth} "
                f"but only found up to {next_depth} depth for {chain_code}."
            )
            logger.warning("%s", message)
            recovery.warnings.append(message)
        if reported_depth < next_depth:
            self.walletdepths[chain_code] = next_depth
        recovery.final_depth = int(self.walletdepths.get(chain_code, reported_depth))
        return recovery

    def _scan_window(self, chain_code: str, cursor: int, recovery: ChainRecovery) -> bool:
        candidates: dict[str, tuple[int, SecretWebcash]] = {}
        request: list[str] = []
        for depth in range(cursor, cursor + self.gap_limit):
            webcash = SecretWebcash(Decimal(1), derive_secret(self.master_secret, chain_code, depth))
            public_webcash = webcash.to_public()
            candidates[public_webcash.hashed_value] = (depth, webcash)
            request.append(str(public_webcash))

        results = self.health_check(request)

        found = False
        for public_webcash, result in results.items():
            hashed_value = public_hashed_value(public_webcash)
            candidate = candidates.get(hashed_value)
            if candidate is None:
                logger.warning("Health check returned webcash outside the scanned window (public=%s)", hashed_value)
                continue
            depth, placeholder = candidate
            spent, amount = result_fields(result)
            if spent is not None and not isinstance(spent, bool):
                raise WebcashTransportError(f"Invalid webcash status: {spent!r}")
            if spent is not None:
                found = True
                if recovery.last_used_depth is None or depth > recovery.last_used_depth:
                    recovery.last_used_depth = depth
            if spent is False:
                webcash = placeholder.with_amount(server_amount(amount, hashed_value))
                if self.sweep_payments or chain_code != ChainCode.PAY.value:
                    self._sweep(webcash, recovery)
                else:
                    logger.info("Found known webcash of amount: %s", decimal_amount_to_string(webcash.amount))
                    recovery.unswept.append(webcash)
        return found

    def _sweep(self, webcash: SecretWebcash, recovery: ChainRecovery) -> None:
        if any(item.secret_value == webcash.secret_value for item in self.confirmed):
            return
        logger.info("Recovered webcash: %s", decimal_amount_to_string(webcash.amount))
        self.confirmed.append(webcash)
        self.pending[:] = [item for item in self.pending if item.secret_value != webcash.secret_value]
        recovery.recovered.append(webcash)
