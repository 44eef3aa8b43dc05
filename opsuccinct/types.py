"""Inputs and outputs of the aggregation program."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from opsuccinct.abi import _as_bytes, _encode_uint_bits, encode_address, encode_bytes32
from opsuccinct.boot import BootInfoStruct

_U32_MAX = (1 << 32) - 1


def _check_vkey(values: Sequence[int]) -> tuple[int, ...]:
    words = tuple(values)
    if len(words) != 8:
        raise ValueError(f"expected 8 words, got {len(words)}")
    for word in words:
        if isinstance(word, bool) or not isinstance(word, int) or not 0 <= word <= _U32_MAX:
            raise ValueError(f"{word!r} is not a u32")
    return words


def u32_to_u8(values: Sequence[int]) -> bytes:
    """Convert eight u32 words into 32 big-endian bytes."""
    return b"".join(word.to_bytes(4, "big") for word in _check_vkey(values))


@dataclass
class AggregationInputs:
    """What the aggregation program reads besides the range proofs."""

    boot_infos: list[BootInfoStruct]
    latest_l1_checkpoint_head: bytes
    multi_block_vkey: tuple[int, ...]
    prover_address: bytes
    _unused: None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.boot_infos = list(self.boot_infos)
        self.latest_l1_checkpoint_head = encode_bytes32(self.latest_l1_checkpoint_head)
        self.multi_block_vkey = _check_vkey(self.multi_block_vkey)
        self.prover_address = _as_bytes(self.prover_address, 20, "address")


@dataclass(frozen=True)
class AggregationOutputs:
    """The public values committed to by the aggregation program."""

    l1_head: bytes
    l2_pre_root: bytes
    l2_post_root: bytes
    l2_block_number: int
    rollup_config_hash: bytes
    multi_block_vkey: bytes
    prover_address: bytes

    def __post_init__(self) -> None:
        for name in (
            "l1_head",
            "l2_pre_root",
            "l2_post_root",
            "rollup_config_hash",
            "multi_block_vkey",
        ):
            object.__setattr__(self, name, encode_bytes32(getattr(self, name)))
        object.__setattr__(
            self, "prover_address", _as_bytes(self.prover_address, 20, "address")
        )
        _encode_uint_bits(self.l2_block_number, 64)

    def abi_encode(self) -> bytes:
        """ABI-encode the outputs as seven words."""
        return (
            self.l1_head
            + self.l2_pre_root
            + self.l2_post_root
            + _encode_uint_bits(self.l2_block_number, 64)
            + self.rollup_config_hash
            + self.multi_block_vkey
            + encode_address(self.prover_address)
        )