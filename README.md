# opsuccinct

Host-side helpers for producing validity proofs of OP Stack L2 block ranges.
The package talks to L1, L2 execution and L2 rollup node endpoints over
JSON-RPC. It builds the arguments and public inputs a proving program needs,
splits block ranges into provable pieces and formats execution statistics.

## Installation

```
pip install opsuccinct
pip install "opsuccinct[test]"   # with the test dependencies
```

## Configuration

`RPCConfig.from_env()` and `OPSuccinctDataFetcher.from_env()` read four
endpoint URLs from the environment, or from a mapping passed as `environ`.
A missing or malformed URL raises `ValueError`.

| Variable        | Endpoint                        |
|-----------------|---------------------------------|
| `L1_RPC`        | L1 execution client             |
| `L1_BEACON_RPC` | L1 beacon node                  |
| `L2_RPC`        | L2 execution client             |
| `L2_NODE_RPC`   | L2 rollup node (`optimism_*`)   |

`OPSuccinctDataFetcher.new_with_rollup_config()` also fetches the chain's
rollup config with `optimism_rollupConfig` and saves it as
`<config_dir>/<l2_chain_id>.json` (`config_dir` defaults to `configs`). It logs
a warning when the Holocene hard fork is not yet active.

`CelestiaConfig.from_env()` reads `CELESTIA_CONNECTION`, `AUTH_TOKEN` and
`NAMESPACE`; any that are unset become `None`.

## Modules

- `opsuccinct.abi`: word encoders `encode_bytes32`, `encode_uint` and
  `encode_address`, `keccak256`, `function_selector`, the `GameStatus` enum,
  and `L2Output` with `abi_encode()` and `output_root()`.
- `opsuccinct.boot`: `BootInfo`, `BootInfoStruct` (with `abi_encode()` and
  `from_boot_info()`), `AGGREGATION_OUTPUTS_SIZE`, and `hash_rollup_config`,
  the SHA-256 of the rollup config pretty-printed as JSON with its keys in the
  given order.
- `opsuccinct.types`: `AggregationInputs`, `AggregationOutputs` and
  `u32_to_u8`, which turns eight u32 words into 32 big-endian bytes.
- `opsuccinct.witness`: `PreimageKeyType`, `PreimageKey`, `check_preimage`,
  `PreimageStore` (an in-memory oracle with `get`, `get_exact`, `write`,
  `flush`, `save_preimage` and `check_preimages`), `BlobData`, `WitnessData`,
  and `PreimageWitnessCollector`, which wraps another oracle and records every
  preimage it serves.
- `opsuccinct.models`: `RPCMode`, `RPCConfig`, `Header` (parsed with
  `Header.from_rpc`), `BlockInfo` and `FeeData`.
- `opsuccinct.rpc`: `JsonRpcClient`, `EthProvider`, `block_id_param`,
  `fetch_rpc_data` and `RpcError`.
- `opsuccinct.fetcher`: `OPSuccinctDataFetcher` and `HostArgs`, plus
  `fetch_and_save_rollup_config`.
- `opsuccinct.block_range`: `SpanBatchRange`, `split_range_basic`,
  `split_range_based_on_safe_heads`, `get_validated_block_range` and
  `get_rolling_block_range`.
- `opsuccinct.stats`: `ExecutionReport`, `ExecutionStats` (built with
  `ExecutionStats.from_report`) and `MarkdownExecutionStats`; `str()` of either
  renders a table.
- `opsuccinct.hosts`: `OPSuccinctHost`, `SingleChainOPSuccinctHost`,
  `CelestiaOPSuccinctHost`, `CelestiaConfig`, `CelestiaChainHost`,
  `get_blobstream_address`, `extract_celestia_height` and `initialize_host`.

## Example

```python
from opsuccinct.block_range import split_range_basic
from opsuccinct.fetcher import OPSuccinctDataFetcher

for r in split_range_basic(100, 250, 60):
    print(r.start, r.end)   # 100 160, 160 220, 220 250

fetcher = OPSuccinctDataFetcher.new_with_rollup_config()
args = fetcher.get_host_args(1_000, 1_010, None, False)
print(args.l1_head.hex(), args.claimed_l2_output_root.hex())
```

Block ids given to the fetcher and provider may be a block number, a tag such
as `"finalized"` or `"latest"`, or a 32-byte block hash.

## Errors

- A JSON-RPC response carrying an error, or a failed HTTP request, raises
  `RpcError`.
- A preimage that does not match its key, or an unknown key, raises
  `InvalidPreimageKey`; rebinding a stored key to another value raises
  `ValueError`.
- An invalid block range raises `ValueError`.
- A block, header or safe head that cannot be found raises `LookupError`.
- Calling `get_host_args` or `get_l1_head` before a rollup config is loaded
  raises `RuntimeError`.

## What the package does not do

The package prepares inputs and reads chain data; it does not prove anything.
It has no proving program, does not run derivation or block execution, and
does not generate or verify proofs. `PreimageStore` and `BlobData` hold
witness data but nothing here fills them by running a client, and blobs are
stored as given without KZG verification. The hosts build arguments and find
the highest provable L2 block; they do not start a preimage server. There is
no command-line tool and no metrics server.

## Tests

```
pytest
```