"""Webcash wallet state and its insert / pay / check / recover operations."""

from __future__ import annotations

from decimal import Decimal
import logging
import threading
import time
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence, TypeVar

from .amounts import decimal_amount_to_string, exact_arithmetic, to_amount
from .client import WebcashServer, WebcashServerClient
from .derivation import CHAIN_CODES, ChainCode, chain_index, chain_key, derive_secret
from .errors import WebcashFormatError, WebcashPolicyError, WebcashTransportError
from .models import DEFAULT_WALLET_VERSION, HealthCheckResult, WalletContents
from .reconciliation import ReconciliationEngine, ReconciliationSummary
from .recovery import DEFAULT_GAP_LIMIT, RecoveryReport, RecoveryScanner
from .selection import select_inputs, total_amount
from .tokens import SecretWebcash, Webcash, deserialize_secret, deserialize_webcash, generate_random_value

if TYPE_CHECKING:
    from .storage import WalletStore

logger = logging.getLogger(__name__)

DEFAULT_WALLETDEPTHS: dict[str, int] = {code: 0 for code in CHAIN_CODES}
DEFAULT_LEGALESE: dict[str, Any] = {"terms": None}
HEALTH_CHECK_BATCH_SIZE = 25

_T = TypeVar("_T")


def chunk_array(items: Sequence[_T], chunk_size: int) -> list[list[_T]]:
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    return [list(items[start : start + chunk_size]) for start in range(0, len(items), chunk_size)]


class Wallet:
    """In-memory wallet aggregate.

    ``confirmed`` holds spendable secrets in insertion order (coin selection
    depends on it). ``pending`` holds secrets the server has not confirmed yet
    as well as secrets a health check flagged for review. Every mutating
    operation holds the wallet lock from start to finish; tokens staged in
    ``pending`` before a failed server call are left there on purpose so a
    later ``check``/``recover`` can finish the exchange.
    """

    def __init__(
        self,
        *,
        version: str = DEFAULT_WALLET_VERSION,
        legalese: Mapping[str, Any] | None = None,
        webcash: Iterable[str | SecretWebcash] | None = None,
        unconfirmed: Iterable[str | SecretWebcash] | None = None,
        log: Iterable[dict[str, Any]] | None = None,
        master_secret: str = "",
        walletdepths: Mapping[str, int] | None = None,
        server: WebcashServer | None = None,
        store: "WalletStore | None" = None,
        health_check_batch_size: int = HEALTH_CHECK_BATCH_SIZE,
    ) -> None:
        if health_check_batch_size < 1:
            raise ValueError("health_check_batch_size must be >= 1")
        self.version = version
        self.legalese: dict[str, Any] = dict(legalese) if legalese is not None else dict(DEFAULT_LEGALESE)
        self.confirmed: list[SecretWebcash] = [deserialize_secret(item) for item in (webcash or [])]
        self.pending: list[SecretWebcash] = [deserialize_secret(item) for item in (unconfirmed or [])]
        self.log: list[dict[str, Any]] = list(log or [])
        self.master_secret = master_secret or generate_random_value(32)
        self.walletdepths: dict[str, int] = dict(DEFAULT_WALLETDEPTHS)
        for chain_code, depth in (walletdepths or {}).items():
            chain_index(chain_code)
            self.walletdepths[chain_key(chain_code)] = int(depth)
        self.server: WebcashServer = server if server is not None else WebcashServerClient()
        self.store = store
        self.health_check_batch_size = int(health_check_batch_size)
        self._lock = threading.RLock()

    @classmethod
    def from_contents(
        cls,
        contents: Mapping[str, Any],
        *,
        server: WebcashServer | None = None,
        store: "WalletStore | None" = None,
        health_check_batch_size: int = HEALTH_CHECK_BATCH_SIZE,
    ) -> "Wallet":
        parsed = WalletContents(**dict(contents))
        return cls(
            version=parsed.version,
            legalese=parsed.legalese,
            webcash=parsed.webcash,
            unconfirmed=parsed.unconfirmed,
            log=parsed.log,
            master_secret=parsed.master_secret,
            walletdepths=parsed.walletdepths,
            server=server,
            store=store,
            health_check_batch_size=health_check_batch_size,
        )

    # Legal terms

    def check_legal_agreements(self) -> bool:
        return self.legalese.get("terms") is True

    def set_legal_agreements_to_true(self) -> None:
        with self._lock:
            self.legalese["terms"] = True

    # Read-only views

    def get_contents(self) -> dict[str, Any]:
        """Persisted wallet structure, with tokens serialized as strings."""
        return {
            "master_secret": self.master_secret,
            "walletdepths": dict(self.walletdepths),
            "webcash": [str(item) for item in self.confirmed],
            "unconfirmed": [str(item) for item in self.pending],
            "log": [dict(item) for item in self.log],
            "version": self.version,
            "legalese": dict(self.legalese),
        }

    def get_balance(self) -> Decimal:
        return total_amount(self.confirmed)

    def save(self) -> None:
        if self.store is None:
            return
        with self._lock:
            self.store.save(self.get_contents())

    # Secret derivation

    def generate_next_secret(self, chain_code: str | ChainCode, seek: int | None = None) -> str:
        """Derive the next secret on ``chain_code``.

        Without ``seek`` the chain's stored depth is used and then advanced by
        one. With an explicit ``seek`` depth the counter is left untouched.
        """
        chain_index(chain_code)
        key = chain_key(chain_code)
        with self._lock:
            depth = int(self.walletdepths.get(key, 0)) if seek is None else int(seek)
            secret = derive_secret(self.master_secret, key, depth)
            if seek is None:
                self.walletdepths[key] = depth + 1
            return secret

    # Operations

    def insert(self, webcash: str | Webcash, memo: str = "") -> str:
        with self._lock:
            if isinstance(webcash, str):
                webcash = deserialize_webcash(webcash)
            if not isinstance(webcash, SecretWebcash):
                raise WebcashFormatError("Only secret webcash can be inserted into the wallet.")
            self._require_terms()

            new_webcash = SecretWebcash(webcash.amount, self.generate_next_secret(ChainCode.RECEIVE))

            # Staged before the server call so the value survives a network error.
            self.pending.append(new_webcash)
            self.save()

            self._replace([webcash], [new_webcash], operation="insert")

            self.confirmed[:] = [item for item in self.confirmed if item != webcash]
            self._discard_pending([new_webcash])
            self.confirmed.append(new_webcash)
            self.log.append(
                {
                    "type": "insert",
                    "amount": decimal_amount_to_string(new_webcash.amount),
                    "webcash": str(webcash),
                    "new_webcash": str(new_webcash),
                    "memo": memo,
                    "timestamp": _timestamp(),
                }
            )
            self.save()
            logger.info("Inserted webcash amount=%s", decimal_amount_to_string(new_webcash.amount))
            return str(new_webcash)

    def pay(self, amount: Any, memo: str = "") -> str:
        with self._lock:
            amount = to_amount(amount)
            if amount <= 0:
                raise WebcashPolicyError("Payment amount must be greater than zero.")
            self._require_terms()

            input_webcash = select_inputs(self.confirmed, amount)
            with exact_arithmetic():
                change_amount = total_amount(input_webcash) - amount

            new_webcash: list[SecretWebcash] = []
            change_webcash: SecretWebcash | None = None
            if change_amount > 0:
                change_webcash = SecretWebcash(change_amount, self.generate_next_secret(ChainCode.CHANGE))
                new_webcash.append(change_webcash)
            transfer_webcash = SecretWebcash(amount, self.generate_next_secret(ChainCode.PAY))
            new_webcash.append(transfer_webcash)

            self.pending.append(transfer_webcash)
            if change_webcash is not None:
                self.pending.append(change_webcash)
            self.save()

            self._replace(input_webcash, new_webcash, operation="pay")

            self.confirmed[:] = [item for item in self.confirmed if item not in input_webcash]
            self._discard_pending(new_webcash)
            if change_webcash is not None:
                self.confirmed.append(change_webcash)
                self.log.append(
                    {
                        "type": "change",
                        "amount": decimal_amount_to_string(change_amount),
                        "webcash": str(change_webcash),
                        "timestamp": _timestamp(),
                    }
                )
            self.log.append(
                {
                    "type": "payment",
                    "amount": decimal_amount_to_string(transfer_webcash.amount),
                    "webcash": str(transfer_webcash),
                    "memo": memo,
                    "timestamp": _timestamp(),
                }
            )
            self.save()
            logger.info(
                "Paid webcash amount=%s inputs=%s change=%s",
                decimal_amount_to_string(amount),
                len(input_webcash),
                decimal_amount_to_string(change_amount),
            )
            return str(transfer_webcash)

    def check(self) -> ReconciliationSummary:
        """Health check every confirmed webcash and drop the invalid ones."""
        with self._lock:
            engine = ReconciliationEngine(self.confirmed, self.pending)
            index, duplicates = engine.deduplicate()
            summary = ReconciliationSummary(duplicates=len(duplicates))
            if duplicates:
                summary.warnings.extend(
                    f"DUPLICATE_WEBCASH:{item.to_public().hashed_value}" for item in duplicates
                )
                self.save()

            for chunk in chunk_array(list(self.confirmed), self.health_check_batch_size):
                health_check_request = [str(item.to_public()) for item in chunk]
                results = self._health_check(health_check_request)
                summary.merge(engine.reconcile(results, index))

            self.save()
            logger.info("Wallet check complete: %s", summary.as_dict())
            return summary

    def recover(self, gap_limit: int = DEFAULT_GAP_LIMIT, sweep_payments: bool = False) -> RecoveryReport:
        with self._lock:
            scanner = RecoveryScanner(
                master_secret=self.master_secret,
                walletdepths=self.walletdepths,
                confirmed=self.confirmed,
                pending=self.pending,
                health_check=self._health_check,
                gap_limit=gap_limit,
                sweep_payments=sweep_payments,
            )
            check_summary = self.check()
            report = scanner.scan()
            report.check = check_summary
            self.save()
            return report

    # Server boundary

    def _require_terms(self) -> None:
        if not self.check_legal_agreements():
            raise WebcashPolicyError("User hasn't agreed to the legal terms.")

    def _replace(self, webcashes: Sequence[SecretWebcash], new_webcashes: Sequence[SecretWebcash], *, operation: str) -> None:
        try:
            self.server.replace(
                [str(item) for item in webcashes],
                [str(item) for item in new_webcashes],
                dict(self.legalese),
            )
        except WebcashTransportError:
            logger.error("Could not successfully call the replacement API (operation=%s)", operation)
            raise
        except Exception as exc:
            logger.error("Could not successfully call the replacement API (operation=%s)", operation)
            raise WebcashTransportError(f"REPLACE_FAILED:{str(exc)[:256]}") from exc

    def _health_check(self, public_webcashes: Sequence[str]) -> Mapping[str, HealthCheckResult | Mapping[str, Any]]:
        try:
            return self.server.health_check(list(public_webcashes))
        except WebcashTransportError:
            logger.error("Could not successfully call the healthcheck API")
            raise
        except Exception as exc:
            logger.error("Could not successfully call the healthcheck API")
            raise WebcashTransportError(f"HEALTH_CHECK_FAILED:{str(exc)[:256]}") from exc

    def _discard_pending(self, webcashes: Sequence[SecretWebcash]) -> None:
        self.pending[:] = [item for item in self.pending if item not in webcashes]


def _timestamp() -> str:
    return str(int(time.time()))
