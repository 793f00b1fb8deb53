"""Webcash wallet: token grammar, deterministic secrets and server exchange."""

from .amounts import decimal_amount_to_string, parse_amount, to_amount
from .client import WebcashServer, WebcashServerClient
from .derivation import ChainCode, derive_secret
from .errors import (
    WebcashError,
    WebcashFormatError,
    WebcashInsufficientFundsError,
    WebcashPolicyError,
    WebcashPrecisionError,
    WebcashTransportError,
)
from .reconciliation import ReconciliationSummary
from .recovery import RecoveryReport
from .storage import JsonWalletStore, load_or_create_wallet
from .tokens import PublicWebcash, SecretWebcash, deserialize_webcash
from .wallet import Wallet

__all__ = [
    "ChainCode",
    "JsonWalletStore",
    "PublicWebcash",
    "ReconciliationSummary",
    "RecoveryReport",
    "SecretWebcash",
    "Wallet",
    "WebcashError",
    "WebcashFormatError",
    "WebcashInsufficientFundsError",
    "WebcashPolicyError",
    "WebcashPrecisionError",
    "WebcashServer",
    "WebcashServerClient",
    "WebcashTransportError",
    "decimal_amount_to_string",
    "derive_secret",
    "deserialize_webcash",
    "load_or_create_wallet",
    "parse_amount",
    "to_amount",
]
