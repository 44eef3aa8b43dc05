"""Boot information committed to as the public inputs of a range proof."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Mapping

from opsuccinct.abi import _encode_uint_bits, encode_bytes32

# ABI encoding of the aggregation outputs is 6 * 32 bytes.
AGGREGATION_OUTPUTS_SIZE = 6 * 32


def hash_rollup_config(config: Mapping[str, Any]) -> bytes:
    """Hash the pretty-printed JSON of a rollup config with SHA-256.

    Key order is kept as given, so the hash matches the config's canonical field order.
    """
    serialized = json.dumps(config, indent=2, ensure_ascii=False)
    return hashlib.sha256(serialized.encode("utf-8")).digest()


@dataclass(frozen=True)
class BootInfo:
    """The boot information the client program starts from."""

    l1_head: bytes
    agreed_l2_output_root: bytes
    claimed_l2_output_root: bytes
    claimed_l2_block_number: int
    rollup_config: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        for name in ("l1_head", "agreed_l2_output_root", "claimed_l2_output_root"):
            object.__setattr__(self, name, encode_bytes32(getattr(self, name)))
        _encode_uint_bits(self.claimed_l2_block_number, 64)


@dataclass(frozen=True)
class BootInfoStruct:
    """The on-chain form of the boot information."""

    l1_head: bytes
    l2_pre_root: bytes
    l2_post_root: bytes
    l2_block_number: int
    rollup_config_hash: bytes

    def __post_init__(self) -> None:
        for name in ("l1_head", "l2_pre_root", "l2_post_root", "rollup_config_hash"):
            object.__setattr__(self, name, encode_bytes32(getattr(self, name)))
        _encode_uint_bits(self.l2_block_number, 64)

    def abi_encode(self) -> bytes:
        """ABI-encode the struct as five words."""
        return (
            self.l1_head
            + self.l2_pre_root
            + self.l2_post_root
            + _encode_uint_bits(self.l2_block_number, 64)
            + self.rollup_config_hash
        )

    @classmethod
    def from_boot_info(cls, boot_info: BootInfo) -> "BootInfoStruct":
        """Build the struct from boot information, hashing its rollup config."""
        return cls(
            l1_head=boot_info.l1_head,
            l2_pre_root=boot_info.agreed_l2_output_root,
            l2_post_root=boot_info.claimed_l2_output_root,
            l2_block_number=boot_info.claimed_l2_block_number,
            rollup_config_hash=hash_rollup_config(boot_info.rollup_config),
        )