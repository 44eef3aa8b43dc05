"""Hosts that gather the arguments and the finalized bounds for proving L2 block ranges."""

from __future__ import annotations

import abc
import os
from dataclasses import dataclass
from typing import Any, Mapping

from opsuccinct.abi import function_selector
from opsuccinct.fetcher import HostArgs, OPSuccinctDataFetcher
from opsuccinct.models import RPCMode

# Blobstream contract addresses by L1 chain id.
_BLOBSTREAM_ADDRESSES: dict[int, str] = {
    1: "7Cf3876F681Dbb6EdA8f6FfC45D66B996Df08fAe",
    42161: "A83ca7775Bc2889825BcDeDfFa5b758cf69e8794",
    8453: "A83ca7775Bc2889825BcDeDfFa5b758cf69e8794",
    11155111: "f0c6429ebab2e7dc6e05dafb61128be21f13cb1e",
    421614: "c3e209eb245Fd59c8586777b499d6A665DF3ABD2",
    84532: "c3e209eb245Fd59c8586777b499d6A665DF3ABD2",
}

_EIP4844_TX_TYPE = 3
_ETH_DA_VERSION = 0x00
_ALT_DA_VERSION = 0x01
_CELESTIA_DA_LAYER = 0x0C


def _quantity(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = str(value)
    return int(text, 16) if text[:2].lower() == "0x" else int(text)


def _hex_to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    text = str(value)
    return bytes.fromhex(text[2:] if text[:2].lower() == "0x" else text)


def _require_safe_db_fallback(safe_db_fallback: bool | None) -> bool:
    if safe_db_fallback is None:
        raise ValueError("`safe_db_fallback` must be set")
    return safe_db_fallback


def get_blobstream_address(l1_chain_id: int) -> bytes:
    """Return the Blobstream contract address deployed on the given L1 chain."""
    try:
        return bytes.fromhex(_BLOBSTREAM_ADDRESSES[l1_chain_id])
    except KeyError:
        raise ValueError(f"Unsupported L1 chain ID: {l1_chain_id}") from None


def extract_celestia_height(tx: Mapping[str, Any]) -> int | None:
    """Return the Celestia height referenced by a batcher transaction.

    ``None`` means the batch is on Ethereum DA: a blob transaction, or calldata whose
    version byte is 0x00. A malformed Celestia commitment raises ``ValueError``.
    """
    tx_type = tx.get("type")
    if tx_type is not None and _quantity(tx_type) == _EIP4844_TX_TYPE:
        return None

    calldata = _hex_to_bytes(tx.get("input") or tx.get("data") or "0x")
    if not calldata:
        raise ValueError("Batcher transaction has no calldata")

    version = calldata[0]
    if version == _ETH_DA_VERSION:
        return None
    if version == _ALT_DA_VERSION:
        if len(calldata) < 11:
            raise ValueError("Celestia batcher transaction calldata is too short")
        if calldata[2] != _CELESTIA_DA_LAYER:
            raise ValueError("Invalid prefix for Celestia batcher transaction")
        return int.from_bytes(calldata[3:11], "little")
    raise ValueError("Invalid version byte for batcher transaction")


class OPSuccinctHost(abc.ABC):
    """A source of host arguments and of the highest L2 block that can be proven."""

    fetcher: OPSuccinctDataFetcher

    @abc.abstractmethod
    def fetch(
        self,
        l2_start_block: int,
        l2_end_block: int,
        l1_head_hash: bytes | None = None,
        safe_db_fallback: bool | None = None,
    ) -> Any:
        """Build the host arguments for a block range."""

    @abc.abstractmethod
    def get_l1_head_hash(self, args: Any) -> bytes | None:
        """Return the L1 head hash held in the host arguments."""

    @abc.abstractmethod
    def get_finalized_l2_block_number(
        self, fetcher: OPSuccinctDataFetcher, latest_proposed_block_number: int
    ) -> int | None:
        """Return the highest L2 block that can be included in a range proof."""


class SingleChainOPSuccinctHost(OPSuccinctHost):
    """The host for chains that post their batches on Ethereum."""

    def __init__(self, fetcher: OPSuccinctDataFetcher) -> None:
        self.fetcher = fetcher

    def fetch(
        self,
        l2_start_block: int,
        l2_end_block: int,
        l1_head_hash: bytes | None = None,
        safe_db_fallback: bool | None = None,
    ) -> HostArgs:
        return self.fetcher.get_host_args(
            l2_start_block,
            l2_end_block,
            l1_head_hash,
            _require_safe_db_fallback(safe_db_fallback),
        )

    def get_l1_head_hash(self, args: HostArgs) -> bytes | None:
        return args.l1_head

    def get_finalized_l2_block_number(
        self, fetcher: OPSuccinctDataFetcher, latest_proposed_block_number: int
    ) -> int | None:
        return fetcher.get_l2_header("finalized").number


@dataclass(frozen=True)
class CelestiaConfig:
    """Connection settings for a Celestia node."""

    celestia_connection: str | None = None
    auth_token: str | None = None
    namespace: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "CelestiaConfig":
        """Read ``CELESTIA_CONNECTION``, ``AUTH_TOKEN`` and ``NAMESPACE``; missing ones are None."""
        env = os.environ if environ is None else environ
        return cls(
            celestia_connection=env.get("CELESTIA_CONNECTION"),
            auth_token=env.get("AUTH_TOKEN"),
            namespace=env.get("NAMESPACE"),
        )


@dataclass(frozen=True)
class CelestiaChainHost:
    """Host arguments for a chain that posts its batches on Celestia."""

    single_host: HostArgs
    celestia_args: CelestiaConfig


class CelestiaOPSuccinctHost(OPSuccinctHost):
    """The host for chains that post their batches on Celestia."""

    def __init__(self, fetcher: OPSuccinctDataFetcher) -> None:
        self.fetcher = fetcher

    def fetch(
        self,
        l2_start_block: int,
        l2_end_block: int,
        l1_head_hash: bytes | None = None,
        safe_db_fallback: bool | None = None,
    ) -> CelestiaChainHost:
        host = self.fetcher.get_host_args(
            l2_start_block,
            l2_end_block,
            l1_head_hash,
            _require_safe_db_fallback(safe_db_fallback),
        )
        return CelestiaChainHost(single_host=host, celestia_args=CelestiaConfig.from_env())

    def get_l1_head_hash(self, args: CelestiaChainHost) -> bytes | None:
        return args.single_host.l1_head

    @staticmethod
    def _latest_celestia_block(fetcher: OPSuccinctDataFetcher, l1_chain_id: int) -> int:
        result = fetcher.l1_provider.call(
            get_blobstream_address(l1_chain_id), function_selector("latestBlock()")
        )
        if len(result) < 32:
            raise ValueError("Blobstream latestBlock() returned too little data")
        return int.from_bytes(result[:32], "big")

    def get_finalized_l2_block_number(
        self, fetcher: OPSuccinctDataFetcher, latest_proposed_block_number: int
    ) -> int | None:
        """Return the highest L2 block whose batch is covered by the latest Blobstream commitment.

        Binary searches L1 blocks from the one deriving the latest proposed block up to the
        finalized L1 block, looking at the batch transaction behind each safe head.
        """
        rollup_config = fetcher.rollup_config
        if rollup_config is None:
            raise RuntimeError("Rollup config not loaded.")
        batch_inbox = _hex_to_bytes(rollup_config["batch_inbox_address"])
        latest_celestia_block = self._latest_celestia_block(
            fetcher, _quantity(rollup_config["l1_chain_id"])
        )

        low = fetcher.get_safe_l1_block_for_l2_block(latest_proposed_block_number)[1]
        high = fetcher.get_l1_header("finalized").number
        l2_block_number: int | None = None

        while low <= high:
            mid = (high + low) // 2
            result = fetcher.fetch_rpc_data_with_mode(
                RPCMode.L2_NODE, "optimism_safeHeadAtL1Block", [hex(mid)]
            )
            safe_head_l1_block_number = _quantity(result["l1Block"]["number"])
            l2_safe_head_number = _quantity(result["safeHead"]["number"])
            block = fetcher.l1_provider.get_block(safe_head_l1_block_number, full=True)
            if block is None:
                raise LookupError(f"L1 block {safe_head_l1_block_number} not found")

            found_valid_tx = False
            for tx in block.get("transactions", []):
                if not isinstance(tx, Mapping) or not tx.get("to"):
                    continue
                if _hex_to_bytes(tx["to"]) != batch_inbox:
                    continue
                celestia_height = extract_celestia_height(tx)
                if celestia_height is None:
                    found_valid_tx = True
                    l2_block_number = fetcher.get_l2_header("finalized").number
                elif celestia_height < latest_celestia_block:
                    found_valid_tx = True
                    l2_block_number = l2_safe_head_number

            if found_valid_tx:
                low = mid + 1
            else:
                high = mid - 1

        return l2_block_number


def initialize_host(
    fetcher: OPSuccinctDataFetcher, celestia: bool = False
) -> OPSuccinctHost:
    """Create the Celestia host if ``celestia`` is set, otherwise the Ethereum DA host."""
    if celestia:
        return CelestiaOPSuccinctHost(fetcher)
    return SingleChainOPSuccinctHost(fetcher)