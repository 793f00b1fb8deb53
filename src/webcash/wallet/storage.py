"""JSON file persistence for wallet contents."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from .client import WebcashServer
from .errors import WebcashFormatError
from .models import WalletContents
from .wallet import HEALTH_CHECK_BATCH_SIZE, Wallet

logger = logging.getLogger(__name__)


class WalletStore(Protocol):
    def save(self, contents: dict[str, Any]) -> None:
        ...

    def load(self) -> dict[str, Any]:
        ...

    def exists(self) -> bool:
        ...


class JsonWalletStore:
    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def save(self, contents: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        data = json.dumps(contents, sort_keys=True, ensure_ascii=True, indent=2)
        tmp_path.write_text(data + "\n", encoding="utf-8")
        os.replace(tmp_path, self.path)

    def load(self) -> dict[str, Any]:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise WebcashFormatError(f"Wallet file is not valid JSON: {self.path}") from exc
        if not isinstance(payload, dict):
            raise WebcashFormatError(f"Wallet file must contain a JSON object: {self.path}")
        try:
            return WalletContents(**payload).model_dump(mode="json")
        except ValidationError as exc:
            raise WebcashFormatError(f"Wallet file has an invalid layout: {exc}") from exc


def load_wallet(
    store: WalletStore,
    *,
    server: WebcashServer | None = None,
    health_check_batch_size: int = HEALTH_CHECK_BATCH_SIZE,
) -> Wallet:
    return Wallet.from_contents(
        store.load(),
        server=server,
        store=store,
        health_check_batch_size=health_check_batch_size,
    )


def load_or_create_wallet(
    store: WalletStore,
    *,
    server: WebcashServer | None = None,
    health_check_batch_size: int = HEALTH_CHECK_BATCH_SIZE,
) -> Wallet:
    if store.exists():
        return load_wallet(store, server=server, health_check_batch_size=health_check_batch_size)
    logger.info("Wallet file not found; generating a new master secret")
    wallet = Wallet(server=server, store=store, health_check_batch_size=health_check_batch_size)
    wallet.save()
    return wallet
