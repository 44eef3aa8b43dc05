"""Witness data for the client program and the preimage store it is built from."""

from __future__ import annotations

import enum
import hashlib
import threading
from dataclasses import dataclass, field
from typing import Protocol

from opsuccinct.abi import encode_bytes32, keccak256


class PreimageKeyType(enum.IntEnum):
    """The kind of a preimage key, stored in its first byte."""

    LOCAL = 1
    KECCAK256 = 2
    GLOBAL_GENERIC = 3
    SHA256 = 4
    BLOB = 5
    PRECOMPILE = 6


@dataclass(frozen=True)
class PreimageKey:
    """A 32-byte preimage key: one type byte followed by 31 bytes of data."""

    data: bytes
    key_type: PreimageKeyType

    def __post_init__(self) -> None:
        data = bytes(self.data)
        if len(data) != 31:
            raise ValueError(f"preimage key data must be 31 bytes, got {len(data)}")
        object.__setattr__(self, "data", data)
        object.__setattr__(self, "key_type", PreimageKeyType(self.key_type))

    @classmethod
    def new(cls, key: bytes | str, key_type: PreimageKeyType) -> "PreimageKey":
        """Make a key from a 32-byte value, replacing its first byte with the type."""
        return cls(encode_bytes32(key)[1:], key_type)

    @classmethod
    def new_keccak256(cls, digest: bytes | str) -> "PreimageKey":
        """Make a Keccak-256 key from a digest."""
        return cls.new(digest, PreimageKeyType.KECCAK256)

    def __bytes__(self) -> bytes:
        return bytes([self.key_type]) + self.data


class InvalidPreimageKey(Exception):
    """The preimage does not match its key, or the key is unknown."""


def check_preimage(key: PreimageKey, value: bytes) -> None:
    """Check that ``value`` hashes to ``key``; raise ``InvalidPreimageKey`` if not."""
    key_type = key.key_type
    if key_type is PreimageKeyType.KECCAK256:
        expected = keccak256(value)
    elif key_type is PreimageKeyType.SHA256:
        expected = hashlib.sha256(bytes(value)).digest()
    elif key_type in (PreimageKeyType.LOCAL, PreimageKeyType.GLOBAL_GENERIC):
        return
    elif key_type is PreimageKeyType.PRECOMPILE:
        raise NotImplementedError("precompile preimages are not supported")
    else:
        raise ValueError("blob keys are validated in the blob witness")
    if key != PreimageKey.new(expected, key_type):
        raise InvalidPreimageKey(f"preimage does not match key {bytes(key).hex()}")


class PreimageOracle(Protocol):
    def get(self, key: PreimageKey) -> bytes: ...

    def get_exact(self, key: PreimageKey, length: int) -> bytes: ...

    def write(self, hint: str) -> None: ...

    def flush(self) -> None: ...


@dataclass
class PreimageStore:
    """An in-memory oracle holding verified preimages."""

    preimage_map: dict[PreimageKey, bytes] = field(default_factory=dict)
    hints: list[str] = field(default_factory=list, repr=False, compare=False)

    def check_preimages(self) -> None:
        """Check every stored preimage against its key."""
        for key, value in self.preimage_map.items():
            check_preimage(key, value)

    def save_preimage(self, key: PreimageKey, value: bytes) -> None:
        """Store a checked preimage; a key may not be rebound to a different value."""
        value = bytes(value)
        check_preimage(key, value)
        old = self.preimage_map.get(key)
        if old is not None and old != value:
            raise ValueError("cannot overwrite key")
        self.preimage_map[key] = value

    def get(self, key: PreimageKey) -> bytes:
        """Return the preimage for ``key``."""
        try:
            return self.preimage_map[key]
        except KeyError:
            raise InvalidPreimageKey(f"unknown preimage key {bytes(key).hex()}") from None

    def get_exact(self, key: PreimageKey, length: int) -> bytes:
        """Return the preimage for ``key``, which must be exactly ``length`` bytes."""
        value = self.get(key)
        if len(value) != length:
            raise ValueError(f"preimage is {len(value)} bytes, expected {length}")
        return value

    def write(self, hint: str) -> None:
        """Record a hint; the store already holds every preimage, so it needs no action."""
        if not isinstance(hint, str):
            raise TypeError(f"hint must be a string, got {type(hint).__name__}")
        self.hints.append(hint)

    def flush(self) -> None:
        """Discard the recorded hints; the preimages themselves are kept."""
        self.hints.clear()


@dataclass
class BlobData:
    """Blobs with their KZG commitments and proofs."""

    blobs: list[bytes] = field(default_factory=list)
    commitments: list[bytes] = field(default_factory=list)
    proofs: list[bytes] = field(default_factory=list)


@dataclass
class WitnessData:
    """Everything the client program needs to run without a host."""

    preimage_store: PreimageStore = field(default_factory=PreimageStore)
    blob_data: BlobData = field(default_factory=BlobData)


@dataclass
class PreimageWitnessCollector:
    """An oracle wrapper that records every preimage it serves."""

    preimage_oracle: PreimageOracle
    preimage_witness_store: PreimageStore = field(default_factory=PreimageStore)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def get(self, key: PreimageKey) -> bytes:
        value = self.preimage_oracle.get(key)
        self.save(key, value)
        return value

    def get_exact(self, key: PreimageKey, length: int) -> bytes:
        value = self.preimage_oracle.get_exact(key, length)
        self.save(key, value)
        return value

    def write(self, hint: str) -> None:
        self.preimage_oracle.write(hint)

    def flush(self) -> None:
        self.preimage_oracle.flush()

    def save(self, key: PreimageKey, value: bytes) -> None:
        """Record a preimage in the witness store."""
        with self._lock:
            self.preimage_witness_store.save_preimage(key, bytes(value))