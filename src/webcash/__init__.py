"""
Top-level package for the webcash wallet project.

Wallet code lives under `webcash.wallet`; this namespace only anchors the
install so the `webcash-wallet` CLI entry point stays importable.
"""

__all__: list[str] = []
