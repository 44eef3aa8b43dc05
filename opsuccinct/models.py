"""Configuration and data records used when fetching chain data."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from typing import Any, Mapping
from urllib.parse import urlsplit


class RPCMode(enum.Enum):
    """The chain endpoint a request is sent to."""

    L1 = "l1"
    L1_BEACON = "l1_beacon"
    L2 = "l2"
    L2_NODE = "l2_node"


def _env_url(environ: Mapping[str, str], name: str) -> str:
    value = environ.get(name)
    if value is None:
        raise ValueError(f"{name} must be set")
    parts = urlsplit(value)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"{name} must be a valid URL")
    return value


@dataclass(frozen=True)
class RPCConfig:
    """The RPC endpoints of the L1, its beacon node, the L2 and the L2 rollup node."""

    l1_rpc: str
    l1_beacon_rpc: str
    l2_rpc: str
    l2_node_rpc: str

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RPCConfig":
        """Read the endpoints from ``L1_RPC``, ``L1_BEACON_RPC``, ``L2_RPC`` and ``L2_NODE_RPC``."""
        env = os.environ if environ is None else environ
        return cls(
            l1_rpc=_env_url(env, "L1_RPC"),
            l1_beacon_rpc=_env_url(env, "L1_BEACON_RPC"),
            l2_rpc=_env_url(env, "L2_RPC"),
            l2_node_rpc=_env_url(env, "L2_NODE_RPC"),
        )


def _quantity(value: Any, name: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value, 16) if value[:2].lower() == "0x" else int(value)
        except ValueError:
            pass
    raise ValueError(f"header field {name} is not a quantity: {value!r}")


def _hash(value: Any, name: str) -> bytes:
    if isinstance(value, str):
        text = value[2:] if value[:2].lower() == "0x" else value
        try:
            raw = bytes.fromhex(text)
        except ValueError:
            raw = b""
        if len(raw) == 32:
            return raw
    raise ValueError(f"header field {name} is not a 32-byte hash: {value!r}")


@dataclass(frozen=True)
class Header:
    """A block header as returned by an Ethereum JSON-RPC endpoint."""

    number: int
    hash: bytes
    parent_hash: bytes
    timestamp: int
    state_root: bytes
    gas_used: int
    gas_limit: int
    base_fee_per_gas: int | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_rpc(cls, data: Mapping[str, Any]) -> "Header":
        """Parse a header or block object from a JSON-RPC response."""
        if not isinstance(data, Mapping):
            raise ValueError("header must be a JSON object")

        def required(name: str) -> Any:
            if name not in data:
                raise ValueError(f"header is missing field {name}")
            return data[name]

        base_fee = data.get("baseFeePerGas")
        return cls(
            number=_quantity(required("number"), "number"),
            hash=_hash(required("hash"), "hash"),
            parent_hash=_hash(required("parentHash"), "parentHash"),
            timestamp=_quantity(required("timestamp"), "timestamp"),
            state_root=_hash(required("stateRoot"), "stateRoot"),
            gas_used=_quantity(required("gasUsed"), "gasUsed"),
            gas_limit=_quantity(required("gasLimit"), "gasLimit"),
            base_fee_per_gas=None if base_fee is None else _quantity(base_fee, "baseFeePerGas"),
            raw=dict(data),
        )


@dataclass(frozen=True)
class BlockInfo:
    """Aggregate statistics of one L2 block."""

    block_number: int
    transaction_count: int
    gas_used: int
    total_l1_fees: int
    total_tx_fees: int


@dataclass(frozen=True)
class FeeData:
    """The fees paid by one L2 transaction."""

    block_number: int
    tx_index: int
    tx_hash: bytes
    l1_gas_cost: int
    tx_fee: int