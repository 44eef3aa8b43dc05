"""Solidity ABI encoding helpers and the contract types shared with the chain."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from Crypto.Hash import keccak

WORD_SIZE = 32
ADDRESS_SIZE = 20

L2_TO_L1_MESSAGE_PASSER = "0x4200000000000000000000000000000000000016"


def keccak256(data: bytes) -> bytes:
    """Return the Keccak-256 digest of ``data``."""
    hasher = keccak.new(digest_bits=256)
    hasher.update(bytes(data))
    return hasher.digest()


def _as_bytes(value: bytes | bytearray | memoryview | str, size: int, what: str) -> bytes:
    if isinstance(value, str):
        text = value[2:] if value[:2].lower() == "0x" else value
        try:
            raw = bytes.fromhex(text)
        except ValueError as exc:
            raise ValueError(f"invalid hex for {what}: {value!r}") from exc
    elif isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
    else:
        raise TypeError(f"{what} must be bytes or a hex string, not {type(value).__name__}")
    if len(raw) != size:
        raise ValueError(f"{what} must be {size} bytes, got {len(raw)}")
    return raw


def _encode_uint_bits(value: int, bits: int) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"uint{bits} must be an int, not {type(value).__name__}")
    if value < 0 or value >= 1 << bits:
        raise ValueError(f"value {value} does not fit in uint{bits}")
    return value.to_bytes(WORD_SIZE, "big")


def encode_bytes32(value: bytes | str) -> bytes:
    """Encode a ``bytes32`` value given as 32 raw bytes or a hex string."""
    return _as_bytes(value, WORD_SIZE, "bytes32")


def encode_uint(value: int) -> bytes:
    """Encode a ``uint256`` as one big-endian word."""
    return _encode_uint_bits(value, 256)


def encode_address(value: bytes | str) -> bytes:
    """Encode a 20-byte address, left padded to one word."""
    return bytes(WORD_SIZE - ADDRESS_SIZE) + _as_bytes(value, ADDRESS_SIZE, "address")


def function_selector(signature: str) -> bytes:
    """Return the four-byte selector of a function signature such as ``f(uint256)``."""
    return keccak256(signature.encode("utf-8"))[:4]


class GameStatus(enum.IntEnum):
    """The current status of a dispute game."""

    IN_PROGRESS = 0
    CHALLENGER_WINS = 1
    DEFENDER_WINS = 2


@dataclass(frozen=True)
class L2Output:
    """The preimage of an L2 output root."""

    zero: int
    l2_state_root: bytes
    l2_storage_hash: bytes
    l2_claim_hash: bytes

    def __post_init__(self) -> None:
        _encode_uint_bits(self.zero, 64)
        for name in ("l2_state_root", "l2_storage_hash", "l2_claim_hash"):
            object.__setattr__(self, name, encode_bytes32(getattr(self, name)))

    def abi_encode(self) -> bytes:
        """ABI-encode the output as four words."""
        return (
            _encode_uint_bits(self.zero, 64)
            + self.l2_state_root
            + self.l2_storage_hash
            + self.l2_claim_hash
        )

    def output_root(self) -> bytes:
        """Return the output root, the Keccak-256 hash of the encoding."""
        return keccak256(self.abi_encode())