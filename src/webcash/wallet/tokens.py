"""Secret and public webcash tokens and their string grammar.

    token := [ "e" ] amount ":" kind ":" value
    kind  := "public" | "secret"
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
import hashlib
import secrets
from typing import Any, Union

from .amounts import decimal_amount_to_string, parse_amount, to_amount
from .errors import WebcashFormatError

KIND_SECRET = "secret"
KIND_PUBLIC = "public"
WEBCASH_KINDS = (KIND_PUBLIC, KIND_SECRET)


def convert_secret_value_to_public_value(secret_value: str) -> str:
    return hashlib.sha256(str(secret_value).encode("utf-8")).hexdigest()


def generate_random_value(length: int = 32) -> str:
    return secrets.token_hex(length)


@dataclass(frozen=True)
class PublicWebcash:
    amount: Decimal
    hashed_value: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_amount(self.amount))

    @classmethod
    def deserialize(cls, webcash: str) -> "Webcash":
        return deserialize_webcash(webcash)

    def is_equal(self, other: Any) -> bool:
        if isinstance(other, SecretWebcash):
            return self.hashed_value == other.to_public().hashed_value
        if isinstance(other, PublicWebcash):
            return self.hashed_value == other.hashed_value
        return False

    def __str__(self) -> str:
        return _serialize(self.amount, KIND_PUBLIC, self.hashed_value)


@dataclass(frozen=True)
class SecretWebcash:
    amount: Decimal
    secret_value: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_amount(self.amount))

    @classmethod
    def deserialize(cls, webcash: str) -> "Webcash":
        return deserialize_webcash(webcash)

    @classmethod
    def from_amount(cls, amount: Any) -> "SecretWebcash":
        return cls(to_amount(amount), generate_random_value(32))

    def with_amount(self, amount: Any) -> "SecretWebcash":
        return replace(self, amount=to_amount(amount))

    def to_public(self) -> PublicWebcash:
        return PublicWebcash(self.amount, convert_secret_value_to_public_value(self.secret_value))

    def is_equal(self, other: Any) -> bool:
        if isinstance(other, SecretWebcash):
            return self.secret_value == other.secret_value
        if isinstance(other, PublicWebcash):
            return self.to_public().hashed_value == other.hashed_value
        return False

    def __str__(self) -> str:
        return _serialize(self.amount, KIND_SECRET, self.secret_value)

    def __repr__(self) -> str:
        # Keep spendable secrets out of tracebacks and log lines.
        return f"SecretWebcash(amount={decimal_amount_to_string(self.amount)}, public={self.to_public().hashed_value[:16]})"


Webcash = Union[SecretWebcash, PublicWebcash]


def deserialize_webcash(webcash: str) -> Webcash:
    text = str(webcash).strip()
    if ":" not in text:
        raise WebcashFormatError("Unusable format for webcash.")
    parts = text.split(":")
    if len(parts) > 3:
        raise WebcashFormatError("Don't know how to deserialize this webcash.")
    amount_raw = parts[0]
    kind = parts[1]
    value = parts[2] if len(parts) == 3 else ""
    if not value:
        raise WebcashFormatError("Can't deserialize this webcash, value is missing.")
    if kind not in WEBCASH_KINDS:
        raise WebcashFormatError("Can't deserialize this webcash, needs to be either public/secret.")
    amount = parse_amount(amount_raw)
    if kind == KIND_SECRET:
        return SecretWebcash(amount, value)
    return PublicWebcash(amount, value)


def deserialize_secret(webcash: str | SecretWebcash) -> SecretWebcash:
    if isinstance(webcash, SecretWebcash):
        return webcash
    token = deserialize_webcash(webcash)
    if not isinstance(token, SecretWebcash):
        raise WebcashFormatError("Expected secret webcash, got public webcash.")
    return token


def create_webcash_with_random_secret_from_amount(amount: Any) -> str:
    return str(SecretWebcash.from_amount(amount))


def _serialize(amount: Decimal, kind: str, value: str) -> str:
    return f"e{decimal_amount_to_string(amount)}:{kind}:{value}"
