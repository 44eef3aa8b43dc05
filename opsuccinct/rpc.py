"""A small synchronous JSON-RPC client and an Ethereum provider built on it."""

from __future__ import annotations

import itertools
from typing import Any, Iterable, Sequence

import httpx

BLOCK_TAGS = frozenset({"latest", "earliest", "pending", "safe", "finalized"})

BlockId = int | str | bytes


class RpcError(Exception):
    """A JSON-RPC call failed or returned an error object."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


def _hex_bytes(value: bytes | str, size: int | None, what: str) -> str:
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
    elif isinstance(value, str):
        text = value[2:] if value[:2].lower() == "0x" else value
        try:
            raw = bytes.fromhex(text)
        except ValueError as exc:
            raise ValueError(f"invalid hex for {what}: {value!r}") from exc
    else:
        raise TypeError(f"{what} must be bytes or a hex string")
    if size is not None and len(raw) != size:
        raise ValueError(f"{what} must be {size} bytes, got {len(raw)}")
    return "0x" + raw.hex()


def block_id_param(block_id: BlockId) -> str | dict[str, str]:
    """Turn a block number, tag or hash into a JSON-RPC block parameter.

    Numbers and tags become quantity strings; hashes become ``{"blockHash": ...}``.
    """
    if isinstance(block_id, bool):
        raise TypeError("block id must not be a bool")
    if isinstance(block_id, int):
        if block_id < 0:
            raise ValueError(f"block number must not be negative: {block_id}")
        return hex(block_id)
    if isinstance(block_id, (bytes, bytearray, memoryview)):
        return {"blockHash": _hex_bytes(block_id, 32, "block hash")}
    if isinstance(block_id, str):
        if block_id in BLOCK_TAGS:
            return block_id
        if block_id[:2].lower() == "0x":
            if len(block_id) == 66:
                return {"blockHash": _hex_bytes(block_id, 32, "block hash")}
            try:
                return hex(int(block_id, 16))
            except ValueError:
                pass
        raise ValueError(f"invalid block id: {block_id!r}")
    raise TypeError(f"invalid block id type: {type(block_id).__name__}")


class JsonRpcClient:
    """Sends JSON-RPC 2.0 requests to one endpoint over HTTP."""

    def __init__(self, url: str, client: httpx.Client | None = None) -> None:
        self.url = url
        self._owns_client = client is None
        self._client = httpx.Client() if client is None else client
        self._ids = itertools.count(1)

    def call(self, method: str, params: Sequence[Any] | None = None) -> Any:
        """Call ``method`` and return its result, raising ``RpcError`` on failure."""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": list(params or []),
            "id": next(self._ids),
        }
        try:
            response = self._client.post(self.url, json=payload)
            body = response.json()
        except httpx.HTTPError as exc:
            raise RpcError(f"Error calling {method}: {exc}") from exc
        except ValueError as exc:
            raise RpcError(f"Error calling {method}: response is not JSON") from exc

        if not isinstance(body, dict):
            raise RpcError(f"Error calling {method}: malformed response")
        if "error" in body:
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else None
            code = error.get("code") if isinstance(error, dict) else None
            if not isinstance(message, str):
                message = "Unknown error"
            raise RpcError(f"Error calling {method}: {message}", code=code)
        return body.get("result")

    def close(self) -> None:
        """Close the HTTP client if this object created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "JsonRpcClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def fetch_rpc_data(
    url: str,
    method: str,
    params: Sequence[Any] | None = None,
    client: httpx.Client | None = None,
) -> Any:
    """Make a single JSON-RPC call to ``url`` and return the result."""
    with JsonRpcClient(url, client) as rpc:
        return rpc.call(method, params)


def _quantity(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value, 16)
        except ValueError:
            pass
    raise RpcError(f"expected a hex quantity, got {value!r}")


class EthProvider:
    """Ethereum JSON-RPC methods over a ``JsonRpcClient``."""

    def __init__(self, rpc: JsonRpcClient) -> None:
        self.rpc = rpc

    def get_chain_id(self) -> int:
        """Return the chain id."""
        return _quantity(self.rpc.call("eth_chainId"))

    def get_block(self, block_id: BlockId, full: bool = False) -> dict[str, Any] | None:
        """Return a block by number, tag or hash, or ``None`` if there is none."""
        param = block_id_param(block_id)
        if isinstance(param, dict):
            return self.rpc.call("eth_getBlockByHash", [param["blockHash"], full])
        return self.rpc.call("eth_getBlockByNumber", [param, full])

    def get_block_receipts(self, block_id: BlockId) -> list[dict[str, Any]] | None:
        """Return the receipts of every transaction in a block."""
        return self.rpc.call("eth_getBlockReceipts", [block_id_param(block_id)])

    def get_proof(
        self,
        address: bytes | str,
        keys: Iterable[bytes | str] = (),
        block_id: BlockId = "latest",
    ) -> dict[str, Any]:
        """Return the account and storage proof of ``address`` at a block."""
        storage_keys = [_hex_bytes(key, 32, "storage key") for key in keys]
        result = self.rpc.call(
            "eth_getProof",
            [_hex_bytes(address, 20, "address"), storage_keys, block_id_param(block_id)],
        )
        if not isinstance(result, dict):
            raise RpcError("eth_getProof returned no proof")
        return result

    def call(self, to: bytes | str, data: bytes | str, block_id: BlockId = "latest") -> bytes:
        """Run a read-only contract call and return the raw return data."""
        request = {"to": _hex_bytes(to, 20, "address"), "data": _hex_bytes(data, None, "calldata")}
        result = self.rpc.call("eth_call", [request, block_id_param(block_id)])
        if not isinstance(result, str):
            raise RpcError(f"eth_call returned {result!r}")
        text = result[2:] if result[:2].lower() == "0x" else result
        try:
            return bytes.fromhex(text)
        except ValueError as exc:
            raise RpcError(f"eth_call returned invalid hex: {result!r}") from exc