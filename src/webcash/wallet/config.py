"""Configuration loader for wallet profiles."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from .client import DEFAULT_SERVER_URL

_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class WalletProfile(BaseModel):
    profile_id: str = "local"
    server_url: str = DEFAULT_SERVER_URL
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    wallet_path: str = "default_wallet.webcash"
    gap_limit: int = Field(default=20, ge=1)
    health_check_batch_size: int = Field(default=25, ge=1)
    sweep_payments: bool = False


def _expand_str(value: str) -> str:
    def replacer(match: re.Match[str]) -> str:
        token = match.group(1)
        if ":-" in token:
            key, default = token.split(":-", 1)
            actual = os.getenv(key, "")
            return actual if actual.strip() else default
        actual = os.getenv(token, "")
        if not actual.strip():
            raise ValueError(f"missing environment variable: {token}")
        return actual

    return _VAR_PATTERN.sub(replacer, value)


def _expand_payload(value: Any) -> Any:
    if isinstance(value, str):
        return _expand_str(value)
    if isinstance(value, list):
        return [_expand_payload(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _expand_payload(item) for key, item in value.items()}
    return value


def load_profile(path: Path) -> WalletProfile:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"wallet profile must be a mapping: {path}")
    expanded = _expand_payload(data)
    return WalletProfile(**expanded)
