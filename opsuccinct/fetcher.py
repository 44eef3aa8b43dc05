"""Fetches L1 and L2 chain data and builds the host arguments for a block range."""

from __future__ import annotations

import json
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import httpx

from opsuccinct.abi import L2_TO_L1_MESSAGE_PASSER, L2Output
from opsuccinct.boot import BootInfoStruct
from opsuccinct.models import BlockInfo, FeeData, Header, RPCConfig, RPCMode
from opsuccinct.rpc import BlockId, EthProvider, JsonRpcClient, RpcError

logger = logging.getLogger(__name__)

# How many requests run at once when fetching data for many blocks.
_CONCURRENCY = 16
# Upper bound on how long after an L2 block its batch is posted on L1.
_MAX_BATCH_POST_DELAY_MINUTES = 40
# Extra L1 blocks added past the block whose safe head covers the end block.
_L1_HEAD_OFFSET = 20


def _number(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        return int(value, 16) if value[:2].lower() == "0x" else int(value)
    raise ValueError(f"not a number: {value!r}")


def _hash_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = str(value)
    return bytes.fromhex(text[2:] if text[:2].lower() == "0x" else text)


def _l1_origin(output: Mapping[str, Any]) -> Mapping[str, Any]:
    block_ref = output["blockRef"]
    return block_ref["l1origin"] if "l1origin" in block_ref else block_ref["l1Origin"]


@dataclass(frozen=True)
class HostArgs:
    """The arguments for a single-chain host run over one block range."""

    l1_head: bytes
    agreed_l2_output_root: bytes
    agreed_l2_head_hash: bytes
    claimed_l2_output_root: bytes
    claimed_l2_block_number: int
    l2_chain_id: int | None = None
    l2_node_address: str | None = None
    l1_node_address: str | None = None
    l1_beacon_address: str | None = None
    data_dir: Path | None = None
    native: bool = False
    server: bool = True
    rollup_config_path: Path | None = None


def fetch_and_save_rollup_config(
    rpc_config: RPCConfig,
    client: httpx.Client | None = None,
    config_dir: str | os.PathLike[str] = "configs",
) -> tuple[dict[str, Any], Path]:
    """Fetch the rollup config from the rollup node and save it as ``<chain id>.json``."""
    rpc = JsonRpcClient(rpc_config.l2_node_rpc, client)
    try:
        rollup_config = rpc.call("optimism_rollupConfig", [])
    finally:
        rpc.close()
    if not isinstance(rollup_config, dict):
        raise RpcError("optimism_rollupConfig returned no config")

    directory = Path(config_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{rollup_config['l2_chain_id']}.json"
    path.write_text(json.dumps(rollup_config, indent=2), encoding="utf-8")
    return rollup_config, path


def _is_holocene_active(rollup_config: Mapping[str, Any], timestamp: int) -> bool:
    activation = rollup_config.get("holocene_time")
    return activation is not None and timestamp >= activation


class OPSuccinctDataFetcher:
    """Fetches L2 output data and L2 claim data for block ranges."""

    def __init__(
        self,
        rpc_config: RPCConfig,
        client: httpx.Client | None = None,
        rollup_config: Mapping[str, Any] | None = None,
        rollup_config_path: Path | None = None,
    ) -> None:
        self.rpc_config = rpc_config
        self._client = httpx.Client() if client is None else client
        self._rpcs = {mode: JsonRpcClient(self.get_rpc_url(mode), self._client) for mode in RPCMode}
        self.l1_provider = EthProvider(self._rpcs[RPCMode.L1])
        self.l2_provider = EthProvider(self._rpcs[RPCMode.L2])
        self.rollup_config = None if rollup_config is None else dict(rollup_config)
        self.rollup_config_path = rollup_config_path

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, client: httpx.Client | None = None
    ) -> "OPSuccinctDataFetcher":
        """Build a fetcher from the RPC URLs in the environment."""
        return cls(RPCConfig.from_env(environ), client)

    @classmethod
    def new_with_rollup_config(
        cls,
        environ: Mapping[str, str] | None = None,
        client: httpx.Client | None = None,
        config_dir: str | os.PathLike[str] = "configs",
    ) -> "OPSuccinctDataFetcher":
        """Build a fetcher and fetch, save and load the chain's rollup config."""
        rpc_config = RPCConfig.from_env(environ)
        rollup_config, path = fetch_and_save_rollup_config(rpc_config, client, config_dir)
        if not _is_holocene_active(rollup_config, int(time.time())):
            logger.warning(
                "Chain is not using the Holocene hard fork. This will cause significant "
                "performance degradation compared to chains that have activated Holocene."
            )
        return cls(rpc_config, client, rollup_config, path)

    def _require_rollup_config(self) -> Mapping[str, Any]:
        if self.rollup_config is None:
            raise RuntimeError("Rollup config not loaded.")
        return self.rollup_config

    def get_l2_chain_id(self) -> int:
        return self.l2_provider.get_chain_id()

    def get_l2_head(self) -> Header:
        block = self.l2_provider.get_block("latest")
        if block is None:
            raise LookupError("Failed to get L2 head")
        return Header.from_rpc(block)

    def _parallel(self, func, items: Iterable[Any]) -> list[Any]:
        with ThreadPoolExecutor(max_workers=_CONCURRENCY) as pool:
            return list(pool.map(func, items))

    def get_l2_fee_data_range(self, start: int, end: int) -> list[FeeData]:
        """Return the fee data of every transaction in blocks ``start..=end``."""

        def block_fees(block_number: int) -> list[FeeData]:
            receipts = self.l2_provider.get_block_receipts(block_number)
            if receipts is None:
                raise LookupError(f"No receipts for block {block_number}")
            return [
                FeeData(
                    block_number=block_number,
                    tx_index=tx_index,
                    tx_hash=_hash_bytes(receipt["transactionHash"]),
                    l1_gas_cost=_number(receipt.get("l1Fee") or 0),
                    tx_fee=_number(receipt["effectiveGasPrice"]) * _number(receipt["gasUsed"]),
                )
                for tx_index, receipt in enumerate(receipts)
            ]

        per_block = self._parallel(block_fees, range(start, end + 1))
        return [fee for fees in per_block for fee in fees]

    def get_l2_block_data_range(self, start: int, end: int) -> list[BlockInfo]:
        """Return block statistics for ``start+1..=end``; the start block is not executed."""

        def block_info(block_number: int) -> BlockInfo:
            block = self.l2_provider.get_block(block_number)
            receipts = self.l2_provider.get_block_receipts(block_number)
            if block is None or receipts is None:
                raise LookupError(f"Block {block_number} not found")
            l1_fees = [_number(r.get("l1Fee") or 0) for r in receipts]
            l2_fees = [_number(r["effectiveGasPrice"]) * _number(r["gasUsed"]) for r in receipts]
            return BlockInfo(
                block_number=block_number,
                transaction_count=len(block.get("transactions", [])),
                gas_used=_number(block["gasUsed"]),
                total_l1_fees=sum(l1_fees),
                total_tx_fees=sum(l1_fees) + sum(l2_fees),
            )

        return self._parallel(block_info, range(start + 1, end + 1))

    def get_l1_header(self, block_id: BlockId) -> Header:
        block = self.l1_provider.get_block(block_id)
        if block is None:
            raise LookupError(f"Failed to get L1 header for block {block_id!r}")
        return Header.from_rpc(block)

    def get_l2_header(self, block_id: BlockId) -> Header:
        block = self.l2_provider.get_block(block_id)
        if block is None:
            raise LookupError(f"Failed to get L2 header for block {block_id!r}")
        return Header.from_rpc(block)

    def find_l1_block_by_timestamp(self, target_timestamp: int) -> tuple[bytes, int]:
        """Find the L1 block at, or the first after, ``target_timestamp``."""
        return self._find_block_by_timestamp(self.l1_provider, target_timestamp)

    def find_l2_block_by_timestamp(self, target_timestamp: int) -> tuple[bytes, int]:
        """Find the L2 block at, or the first after, ``target_timestamp``."""
        return self._find_block_by_timestamp(self.l2_provider, target_timestamp)

    @staticmethod
    def _header_of(provider: EthProvider, block_id: BlockId) -> Header:
        block = provider.get_block(block_id)
        if block is None:
            raise LookupError(f"Failed to get block for block {block_id!r}")
        return Header.from_rpc(block)

    def _find_block_by_timestamp(
        self, provider: EthProvider, target_timestamp: int
    ) -> tuple[bytes, int]:
        low = 0
        high = self._header_of(provider, "finalized").number
        while low <= high:
            mid = (low + high) // 2
            header = self._header_of(provider, mid)
            if header.timestamp == target_timestamp:
                return header.hash, header.number
            if header.timestamp < target_timestamp:
                low = mid + 1
            else:
                high = mid - 1
        header = self._header_of(provider, low)
        return header.hash, header.number

    def get_rpc_url(self, rpc_mode: RPCMode) -> str:
        return {
            RPCMode.L1: self.rpc_config.l1_rpc,
            RPCMode.L2: self.rpc_config.l2_rpc,
            RPCMode.L1_BEACON: self.rpc_config.l1_beacon_rpc,
            RPCMode.L2_NODE: self.rpc_config.l2_node_rpc,
        }[rpc_mode]

    def fetch_rpc_data_with_mode(
        self, rpc_mode: RPCMode, method: str, params: Sequence[Any] | None = None
    ) -> Any:
        """Call an arbitrary JSON-RPC method on the endpoint for ``rpc_mode``."""
        return self._rpcs[rpc_mode].call(method, params)

    def _l1_headers_of(self, boot_infos: Iterable[BootInfoStruct]) -> list[Header]:
        return [self.get_l1_header(boot_info.l1_head) for boot_info in boot_infos]

    def get_earliest_l1_head_in_batch(self, boot_infos: Sequence[BootInfoStruct]) -> Header:
        headers = self._l1_headers_of(boot_infos)
        if not headers:
            raise ValueError("Failed to get earliest L1 header")
        return min(headers, key=lambda header: header.number)

    def get_latest_l1_head_in_batch(self, boot_infos: Sequence[BootInfoStruct]) -> Header:
        headers = self._l1_headers_of(boot_infos)
        if not headers:
            raise ValueError("Failed to get latest L1 header")
        return max(headers, key=lambda header: header.number)

    def fetch_headers_in_range(self, start: int, end: int) -> list[Header]:
        """Fetch L1 headers ``start..=end`` one at a time."""
        return [self.get_l1_header(number) for number in range(start, end + 1)]

    def get_header_preimages(
        self, boot_infos: Sequence[BootInfoStruct], checkpoint_block_hash: bytes
    ) -> list[Header]:
        """Fetch the L1 headers from the earliest boot info head to the checkpoint block."""
        start_header = self.get_earliest_l1_head_in_batch(boot_infos)
        latest_header = self.get_l1_header(bytes(checkpoint_block_hash))
        return self.fetch_headers_in_range(start_header.number, latest_header.number)

    def get_l2_output_at_block(self, block_number: int) -> dict[str, Any]:
        return self.fetch_rpc_data_with_mode(
            RPCMode.L2_NODE, "optimism_outputAtBlock", [hex(block_number)]
        )

    def get_safe_l1_block_for_l2_block(self, l2_end_block: int) -> tuple[bytes, int]:
        """Binary search for the first L1 block whose L2 safe head is at least ``l2_end_block``."""
        latest_l1_header = self.get_l1_header("finalized")
        output = self.get_l2_output_at_block(l2_end_block)

        low = _number(_l1_origin(output)["number"])
        high = latest_l1_header.number
        first_valid: tuple[bytes, int] | None = None
        while low <= high:
            mid = low + (high - low) // 2
            result = self.fetch_rpc_data_with_mode(
                RPCMode.L2_NODE, "optimism_safeHeadAtL1Block", [hex(mid)]
            )
            if _number(result["safeHead"]["number"]) >= l2_end_block:
                l1_block = result["l1Block"]
                first_valid = (_hash_bytes(l1_block["hash"]), _number(l1_block["number"]))
                high = mid - 1
            else:
                low = mid + 1

        if first_valid is None:
            raise LookupError(
                "Could not find an L1 block with an L2 safe head greater than the L2 end block."
            )
        return first_valid

    def get_l1_head(self, l2_end_block: int, safe_db_fallback: bool) -> tuple[bytes, int]:
        """Find the L1 block from which ``l2_end_block`` can be derived.

        Uses the safe DB; if it is not available and ``safe_db_fallback`` is set, the
        block is estimated from the L2 block's timestamp instead.
        """
        self._require_rollup_config()
        try:
            return self.get_safe_l1_block_for_l2_block(l2_end_block)
        except (RpcError, LookupError, KeyError, ValueError) as exc:
            if not safe_db_fallback:
                raise RuntimeError(
                    "SafeDB is not activated on your op-node and the `SAFE_DB_FALLBACK` flag "
                    "is set to false. Please enable the safeDB on your op-node to fix this, or "
                    f"set `SAFE_DB_FALLBACK` flag to true, which will be more expensive: {exc}"
                ) from exc
            logger.warning(
                "SafeDB not activated - falling back to timestamp-based L1 head estimation. "
                "Derivation may fail if the L2 block batch is posted after the estimated L1 head."
            )
            l2_timestamp = self.get_l2_header(l2_end_block).timestamp
            finalized_timestamp = self.get_l1_header("finalized").timestamp
            target = min(l2_timestamp + _MAX_BATCH_POST_DELAY_MINUTES * 60, finalized_timestamp)
            return self.find_l1_block_by_timestamp(target)

    def get_l2_safe_head_from_l1_block_number(self, l1_block_number: int) -> int:
        result = self.fetch_rpc_data_with_mode(
            RPCMode.L2_NODE, "optimism_safeHeadAtL1Block", [hex(l1_block_number)]
        )
        return _number(result["safeHead"]["number"])

    def is_safe_db_activated(self) -> bool:
        """Return whether the rollup node answers safe head queries."""
        finalized = self.get_l1_header("finalized")
        try:
            self.fetch_rpc_data_with_mode(
                RPCMode.L2_NODE, "optimism_safeHeadAtL1Block", [hex(finalized.number)]
            )
        except RpcError:
            return False
        return True

    def _output_root_at(self, block_number: int) -> tuple[bytes, bytes]:
        block = self.l2_provider.get_block(block_number)
        if block is None:
            raise LookupError(f"Block not found for block number {block_number}")
        header = Header.from_rpc(block)
        proof = self.l2_provider.get_proof(L2_TO_L1_MESSAGE_PASSER, [], block_number)
        output = L2Output(
            zero=0,
            l2_state_root=header.state_root,
            l2_storage_hash=_hash_bytes(proof["storageHash"]),
            l2_claim_hash=header.hash,
        )
        return output.output_root(), header.hash

    def get_host_args(
        self,
        l2_start_block: int,
        l2_end_block: int,
        l1_head_hash: bytes | None = None,
        safe_db_fallback: bool = False,
    ) -> HostArgs:
        """Build the host arguments for proving ``l2_start_block`` to ``l2_end_block``."""
        self._require_rollup_config()
        if l2_start_block >= l2_end_block:
            raise ValueError(
                "L2 start block is greater than or equal to L2 end block. "
                f"Start: {l2_start_block}, End: {l2_end_block}"
            )

        agreed_output_root, agreed_head_hash = self._output_root_at(l2_start_block)
        claimed_output_root, _ = self._output_root_at(l2_end_block)

        if l1_head_hash is None:
            _, l1_head_number = self.get_l1_head(l2_end_block, safe_db_fallback)
            l1_head_number += _L1_HEAD_OFFSET
            finalized = self.get_l1_header("finalized")
            target = finalized.number if l1_head_number > finalized.number else l1_head_number
            l1_head_hash = self.get_l1_header(target).hash

        return HostArgs(
            l1_head=bytes(l1_head_hash),
            agreed_l2_output_root=agreed_output_root,
            agreed_l2_head_hash=agreed_head_hash,
            claimed_l2_output_root=claimed_output_root,
            claimed_l2_block_number=l2_end_block,
            l2_node_address=self.rpc_config.l2_rpc.rstrip("/"),
            l1_node_address=self.rpc_config.l1_rpc.rstrip("/"),
            l1_beacon_address=self.rpc_config.l1_beacon_rpc.rstrip("/"),
            rollup_config_path=self.rollup_config_path,
        )