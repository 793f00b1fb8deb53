"""CLI for a local webcash wallet file."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Sequence

from .amounts import decimal_amount_to_string
from .client import WebcashServerClient
from .config import WalletProfile, load_profile
from .errors import WebcashError
from .logging_utils import configure_logging
from .storage import JsonWalletStore, load_or_create_wallet
from .wallet import Wallet

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    base = argparse.ArgumentParser(add_help=False)
    base.add_argument("--profile", default=None, help="Path to wallet profile YAML")
    base.add_argument("--wallet", default=None, help="Wallet file path (overrides the profile)")
    base.add_argument("--log-level", default="INFO")

    parser = argparse.ArgumentParser(description="Webcash wallet CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup", parents=[base], help="Accept the terms of service")
    subparsers.add_parser("info", parents=[base], help="Show balance and chain depths")

    insert_parser = subparsers.add_parser("insert", parents=[base], help="Insert secret webcash")
    insert_parser.add_argument("webcash")
    insert_parser.add_argument("--memo", default="")

    pay_parser = subparsers.add_parser("pay", parents=[base], help="Create a payment token")
    pay_parser.add_argument("amount")
    pay_parser.add_argument("--memo", default="")

    subparsers.add_parser("check", parents=[base], help="Health check confirmed webcash")

    recover_parser = subparsers.add_parser("recover", parents=[base], help="Rediscover webcash from the master secret")
    recover_parser.add_argument("--gap-limit", type=int, default=None)
    recover_parser.add_argument("--sweep-payments", action="store_true", default=None)
    return parser


def _load_profile(args: argparse.Namespace) -> WalletProfile:
    profile = load_profile(Path(args.profile)) if args.profile else WalletProfile()
    if args.wallet:
        profile = profile.model_copy(update={"wallet_path": args.wallet})
    return profile


def _open_wallet(profile: WalletProfile) -> Wallet:
    server = WebcashServerClient(
        server_url=profile.server_url,
        timeout_seconds=profile.request_timeout_seconds,
    )
    store = JsonWalletStore(profile.wallet_path)
    return load_or_create_wallet(
        store,
        server=server,
        health_check_batch_size=profile.health_check_batch_size,
    )


def _info(wallet: Wallet) -> dict[str, Any]:
    return {
        "balance": decimal_amount_to_string(wallet.get_balance()),
        "webcash_count": len(wallet.confirmed),
        "unconfirmed_count": len(wallet.pending),
        "walletdepths": dict(wallet.walletdepths),
        "terms_accepted": wallet.check_legal_agreements(),
    }


def run(args: argparse.Namespace) -> dict[str, Any]:
    profile = _load_profile(args)
    wallet = _open_wallet(profile)
    if args.command == "setup":
        wallet.set_legal_agreements_to_true()
        wallet.save()
        return {"terms_accepted": True, "wallet_path": profile.wallet_path}
    if args.command == "info":
        return _info(wallet)
    if args.command == "insert":
        return {"webcash": wallet.insert(args.webcash, memo=args.memo)}
    if args.command == "pay":
        return {"webcash": wallet.pay(args.amount, memo=args.memo)}
    if args.command == "check":
        return wallet.check().as_dict()
    if args.command == "recover":
        gap_limit = args.gap_limit if args.gap_limit is not None else profile.gap_limit
        sweep = args.sweep_payments if args.sweep_payments is not None else profile.sweep_payments
        return wallet.recover(gap_limit=gap_limit, sweep_payments=sweep).as_dict()
    raise SystemExit(f"Unknown command: {args.command}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=getattr(logging, str(args.log_level).upper(), logging.INFO))
    try:
        result = run(args)
    except (WebcashError, ValueError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(json.dumps({"error": str(exc)}, sort_keys=True))
        return 1
    print(json.dumps(result, sort_keys=True, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
