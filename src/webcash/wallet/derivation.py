"""Deterministic secret derivation from the wallet master secret."""

from __future__ import annotations

from enum import Enum
import hashlib

from .errors import WebcashPolicyError

WALLET_TAG_LITERAL = b"webcashwalletv1"
SEED_BYTES = 32


class ChainCode(str, Enum):
    RECEIVE = "RECEIVE"
    PAY = "PAY"
    CHANGE = "CHANGE"
    MINING = "MINING"


CHAIN_CODES: dict[str, int] = {
    ChainCode.RECEIVE.value: 0,
    ChainCode.PAY.value: 1,
    ChainCode.CHANGE.value: 2,
    ChainCode.MINING.value: 3,
}

_WALLET_TAG = hashlib.sha256(WALLET_TAG_LITERAL).digest()


def chain_key(chain_code: str | ChainCode) -> str:
    return chain_code.value if isinstance(chain_code, ChainCode) else str(chain_code)


def chain_index(chain_code: str | ChainCode) -> int:
    key = chain_key(chain_code)
    index = CHAIN_CODES.get(key)
    if index is None:
        raise WebcashPolicyError(f"Invalid chain code: {key}")
    return index


def hex_to_bytes(value: str) -> bytes:
    text = str(value).strip()
    if text[:2].lower() == "0x":
        text = text[2:]
    if len(text) % 2:
        text = text + "0"
    try:
        return bytes.fromhex(text)
    except ValueError as exc:
        raise WebcashPolicyError(f"Invalid hex value: {value!r}") from exc


def padded_bytes(data: bytes, padding_target_length: int = SEED_BYTES) -> bytes:
    if len(data) > padding_target_length:
        raise WebcashPolicyError(
            f"Can only handle up to {padding_target_length} bytes, int too big to convert"
        )
    return bytes(padding_target_length - len(data)) + bytes(data)


def hex_to_padded_bytes(value: str, padding_target_length: int = SEED_BYTES) -> bytes:
    return padded_bytes(hex_to_bytes(value), padding_target_length)


def long_to_bytes(number: int) -> bytes:
    """Encode ``number`` as 8 bytes, most significant byte first."""
    if number < 0 or number >= 1 << 64:
        raise WebcashPolicyError(f"Depth out of range: {number}")
    return int(number).to_bytes(8, "big")


def derive_secret(master_secret: str, chain_code: str | ChainCode, depth: int) -> str:
    index = chain_index(chain_code)
    material = (
        _WALLET_TAG
        + _WALLET_TAG
        + hex_to_padded_bytes(master_secret)
        + long_to_bytes(index)
        + long_to_bytes(int(depth))
    )
    return hashlib.sha256(material).hexdigest()
