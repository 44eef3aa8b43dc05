from types import SimpleNamespace

import pytest

from opsuccinct.abi import function_selector
from opsuccinct.fetcher import HostArgs
from opsuccinct.hosts import (
    CelestiaChainHost,
    CelestiaConfig,
    CelestiaOPSuccinctHost,
    SingleChainOPSuccinctHost,
    extract_celestia_height,
    get_blobstream_address,
    initialize_host,
)
from opsuccinct.models import RPCMode

INBOX = "0x" + "ff" * 20
OTHER = "0x" + "ee" * 20


def _host_args(l1_head=b"\x11" * 32):
    return HostArgs(
        l1_head=l1_head,
        agreed_l2_output_root=b"\x22" * 32,
        agreed_l2_head_hash=b"\x33" * 32,
        claimed_l2_output_root=b"\x44" * 32,
        claimed_l2_block_number=10,
    )


def _celestia_input(height, prefix=0x0C, version=0x01):
    data = bytes([version, 0x00, prefix]) + height.to_bytes(8, "little") + b"\xab" * 32
    return "0x" + data.hex()


class FakeL1Provider:
    def __init__(self, latest_celestia, blocks):
        self.latest_celestia = latest_celestia
        self.blocks = blocks
        self.calls = []

    def call(self, to, data, block_id="latest"):
        self.calls.append((to, data))
        return self.latest_celestia.to_bytes(32, "big")

    def get_block(self, block_id, full=False):
        return self.blocks.get(block_id)


class FakeFetcher:
    def __init__(self, l1_provider=None, rollup_config=None, finalized_l2=500):
        self.l1_provider = l1_provider
        self.rollup_config = rollup_config
        self.finalized_l2 = finalized_l2
        self.host_args_calls = []

    def get_host_args(self, start, end, l1_head_hash, safe_db_fallback):
        self.host_args_calls.append((start, end, l1_head_hash, safe_db_fallback))
        return _host_args()

    def get_l2_header(self, block_id):
        assert block_id == "finalized"
        return SimpleNamespace(number=self.finalized_l2)

    def get_l1_header(self, block_id):
        assert block_id == "finalized"
        return SimpleNamespace(number=14)

    def get_safe_l1_block_for_l2_block(self, l2_block):
        return b"\x00" * 32, 10

    def fetch_rpc_data_with_mode(self, mode, method, params):
        assert mode is RPCMode.L2_NODE
        assert method == "optimism_safeHeadAtL1Block"
        number = int(params[0], 16)
        return {"l1Block": {"number": hex(number)}, "safeHead": {"number": 100 + number}}


def test_blobstream_address_mainnet():
    assert get_blobstream_address(1) == bytes.fromhex("7Cf3876F681Dbb6EdA8f6FfC45D66B996Df08fAe")


def test_blobstream_address_shared_between_chains():
    assert get_blobstream_address(42161) == get_blobstream_address(8453)
    assert get_blobstream_address(421614) == bytes.fromhex(
        "c3e209eb245Fd59c8586777b499d6A665DF3ABD2"
    )


def test_blobstream_address_unsupported_chain():
    with pytest.raises(ValueError, match="Unsupported L1 chain ID: 5"):
        get_blobstream_address(5)


def test_extract_height_blob_transaction():
    assert extract_celestia_height({"type": "0x3", "input": "0x"}) is None


def test_extract_height_eth_da_calldata():
    assert extract_celestia_height({"type": "0x2", "input": "0x00deadbeef"}) is None


def test_extract_height_celestia():
    tx = {"type": "0x2", "input": _celestia_input(123456)}
    assert extract_celestia_height(tx) == 123456


def test_extract_height_bad_prefix():
    with pytest.raises(ValueError, match="Invalid prefix"):
        extract_celestia_height({"type": "0x2", "input": _celestia_input(5, prefix=0x0B)})


def test_extract_height_bad_version():
    with pytest.raises(ValueError, match="Invalid version byte"):
        extract_celestia_height({"type": "0x2", "input": _celestia_input(5, version=0x02)})


def test_single_chain_fetch_passes_arguments():
    fetcher = FakeFetcher()
    host = SingleChainOPSuccinctHost(fetcher)
    args = host.fetch(1, 5, None, True)
    assert args == _host_args()
    assert fetcher.host_args_calls == [(1, 5, None, True)]


def test_single_chain_fetch_requires_fallback_flag():
    host = SingleChainOPSuccinctHost(FakeFetcher())
    with pytest.raises(ValueError, match="safe_db_fallback"):
        host.fetch(1, 5, None, None)


def test_single_chain_l1_head_hash():
    host = SingleChainOPSuccinctHost(FakeFetcher())
    assert host.get_l1_head_hash(_host_args(b"\x99" * 32)) == b"\x99" * 32


def test_single_chain_finalized_block():
    fetcher = FakeFetcher(finalized_l2=777)
    host = SingleChainOPSuccinctHost(fetcher)
    assert host.get_finalized_l2_block_number(fetcher, 3) == 777


def test_celestia_config_from_env():
    config = CelestiaConfig.from_env(
        {"CELESTIA_CONNECTION": "http://localhost:26658", "AUTH_TOKEN": "token"}
    )
    assert config == CelestiaConfig("http://localhost:26658", "token", None)


def test_celestia_fetch_reads_environment(monkeypatch):
    monkeypatch.setenv("CELESTIA_CONNECTION", "http://localhost:26658")
    monkeypatch.setenv("NAMESPACE", "abcd")
    monkeypatch.delenv("AUTH_TOKEN", raising=False)
    host = CelestiaOPSuccinctHost(FakeFetcher())
    result = host.fetch(2, 8, b"\x55" * 32, False)
    assert result == CelestiaChainHost(
        single_host=_host_args(),
        celestia_args=CelestiaConfig("http://localhost:26658", None, "abcd"),
    )
    assert host.get_l1_head_hash(result) == _host_args().l1_head


def test_celestia_fetch_requires_fallback_flag():
    host = CelestiaOPSuccinctHost(FakeFetcher())
    with pytest.raises(ValueError):
        host.fetch(2, 8)


def _celestia_fetcher(blocks, latest_celestia=125):
    provider = FakeL1Provider(latest_celestia, blocks)
    config = {"batch_inbox_address": INBOX, "l1_chain_id": 1}
    return FakeFetcher(provider, config), provider


def test_celestia_finalized_block_searches_highest_covered_batch():
    blocks = {
        n: {"transactions": [{"type": "0x2", "to": INBOX, "input": _celestia_input(n * 10)}]}
        for n in range(10, 15)
    }
    fetcher, provider = _celestia_fetcher(blocks)
    host = CelestiaOPSuccinctHost(fetcher)
    assert host.get_finalized_l2_block_number(fetcher, 50) == 112
    assert provider.calls[0] == (get_blobstream_address(1), function_selector("latestBlock()"))


def test_celestia_finalized_block_none_when_nothing_covered():
    blocks = {
        n: {"transactions": [{"type": "0x2", "to": INBOX, "input": _celestia_input(10_000)}]}
        for n in range(10, 15)
    }
    fetcher, _ = _celestia_fetcher(blocks)
    assert CelestiaOPSuccinctHost(fetcher).get_finalized_l2_block_number(fetcher, 50) is None


def test_celestia_finalized_block_eth_da_uses_finalized_l2():
    blocks = {
        n: {"transactions": [{"type": "0x3", "to": INBOX, "input": "0x"}]} for n in range(10, 15)
    }
    fetcher, _ = _celestia_fetcher(blocks)
    assert CelestiaOPSuccinctHost(fetcher).get_finalized_l2_block_number(fetcher, 50) == 500


def test_celestia_finalized_block_ignores_other_recipients():
    blocks = {
        n: {"transactions": [{"type": "0x2", "to": OTHER, "input": _celestia_input(1)}]}
        for n in range(10, 15)
    }
    fetcher, _ = _celestia_fetcher(blocks)
    assert CelestiaOPSuccinctHost(fetcher).get_finalized_l2_block_number(fetcher, 50) is None


def test_celestia_finalized_block_requires_rollup_config():
    fetcher = FakeFetcher(FakeL1Provider(1, {}), None)
    with pytest.raises(RuntimeError, match="Rollup config not loaded"):
        CelestiaOPSuccinctHost(fetcher).get_finalized_l2_block_number(fetcher, 1)


def test_initialize_host_default_and_celestia():
    fetcher = FakeFetcher()
    default_host = initialize_host(fetcher)
    celestia_host = initialize_host(fetcher, True)
    assert isinstance(default_host, SingleChainOPSuccinctHost)
    assert isinstance(celestia_host, CelestiaOPSuccinctHost)
    assert default_host.fetcher is fetcher
    assert celestia_host.fetcher is fetcher