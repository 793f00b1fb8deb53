"""Wire and persistence models for the wallet."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field, StrictBool, field_validator

DEFAULT_WALLET_VERSION = "1.0"


class HealthCheckResult(BaseModel):
    spent: Optional[StrictBool] = None
    amount: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_as_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return repr(value)
        return value


class HealthCheckResponse(BaseModel):
    status: Optional[str] = None
    results: dict[str, HealthCheckResult] = Field(default_factory=dict)


class WalletContents(BaseModel):
    version: str = DEFAULT_WALLET_VERSION
    legalese: dict[str, Any] = Field(default_factory=lambda: {"terms": None})
    webcash: list[str] = Field(default_factory=list)
    unconfirmed: list[str] = Field(default_factory=list)
    log: list[dict[str, Any]] = Field(default_factory=list)
    master_secret: str = ""
    walletdepths: dict[str, int] = Field(default_factory=dict)
