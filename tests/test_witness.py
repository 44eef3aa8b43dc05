import hashlib

import pytest

from opsuccinct.abi import keccak256
from opsuccinct.witness import (
    BlobData,
    InvalidPreimageKey,
    PreimageKey,
    PreimageKeyType,
    PreimageStore,
    PreimageWitnessCollector,
    WitnessData,
    check_preimage,
)


def _keccak_key(value):
    return PreimageKey.new_keccak256(keccak256(value))


def test_key_bytes_start_with_type():
    digest = keccak256(b"hello")
    key = PreimageKey.new_keccak256(digest)
    raw = bytes(key)
    assert raw[0] == PreimageKeyType.KECCAK256
    assert raw[1:] == digest[1:]


def test_key_rejects_wrong_length():
    with pytest.raises(ValueError):
        PreimageKey(b"\x00" * 30, PreimageKeyType.LOCAL)


def test_keys_differ_by_type():
    digest = keccak256(b"x")
    assert PreimageKey.new(digest, PreimageKeyType.SHA256) != PreimageKey.new_keccak256(digest)


def test_save_and_get_keccak_preimage():
    store = PreimageStore()
    key = _keccak_key(b"hello")
    store.save_preimage(key, b"hello")
    assert store.get(key) == b"hello"
    assert store.get_exact(key, 5) == b"hello"


def test_save_sha256_preimage():
    store = PreimageStore()
    key = PreimageKey.new(hashlib.sha256(b"data").digest(), PreimageKeyType.SHA256)
    store.save_preimage(key, b"data")
    assert store.get(key) == b"data"


def test_mismatched_preimage_is_rejected():
    key = _keccak_key(b"hello")
    with pytest.raises(InvalidPreimageKey):
        check_preimage(key, b"world")
    store = PreimageStore()
    with pytest.raises(InvalidPreimageKey):
        store.save_preimage(key, b"world")
    assert key not in store.preimage_map


def test_local_keys_are_not_checked():
    store = PreimageStore()
    key = PreimageKey.new(b"\x00" * 31 + b"\x01", PreimageKeyType.LOCAL)
    store.save_preimage(key, b"anything")
    assert store.get(key) == b"anything"


def test_precompile_and_blob_keys_raise():
    with pytest.raises(NotImplementedError):
        check_preimage(PreimageKey.new(b"\x00" * 32, PreimageKeyType.PRECOMPILE), b"")
    with pytest.raises(ValueError):
        check_preimage(PreimageKey.new(b"\x00" * 32, PreimageKeyType.BLOB), b"")


def test_cannot_overwrite_with_different_value():
    store = PreimageStore()
    key = PreimageKey.new(b"\x00" * 32, PreimageKeyType.LOCAL)
    store.save_preimage(key, b"one")
    store.save_preimage(key, b"one")
    with pytest.raises(ValueError):
        store.save_preimage(key, b"two")
    assert store.get(key) == b"one"


def test_get_unknown_key_raises():
    with pytest.raises(InvalidPreimageKey):
        PreimageStore().get(_keccak_key(b"missing"))


def test_get_exact_wrong_length_raises():
    store = PreimageStore()
    key = _keccak_key(b"abc")
    store.save_preimage(key, b"abc")
    with pytest.raises(ValueError):
        store.get_exact(key, 4)


def test_check_preimages_detects_tampering():
    store = PreimageStore()
    key = _keccak_key(b"good")
    store.preimage_map[key] = b"bad"
    with pytest.raises(InvalidPreimageKey):
        store.check_preimages()


class _RecordingOracle:
    def __init__(self, store):
        self.store = store
        self.hints = []
        self.flushed = 0

    def get(self, key):
        return self.store.get(key)

    def get_exact(self, key, length):
        return self.store.get_exact(key, length)

    def write(self, hint):
        self.hints.append(hint)

    def flush(self):
        self.flushed += 1


def test_collector_records_served_preimages():
    source = PreimageStore()
    first, second = _keccak_key(b"first"), _keccak_key(b"second")
    source.save_preimage(first, b"first")
    source.save_preimage(second, b"second")
    oracle = _RecordingOracle(source)
    collector = PreimageWitnessCollector(oracle)

    assert collector.get(first) == b"first"
    assert collector.get_exact(second, 6) == b"second"
    assert collector.preimage_witness_store.preimage_map == {
        first: b"first",
        second: b"second",
    }


def test_collector_forwards_hints_and_flush():
    oracle = _RecordingOracle(PreimageStore())
    collector = PreimageWitnessCollector(oracle)
    collector.write("l2-output 0x00")
    collector.flush()
    assert oracle.hints == ["l2-output 0x00"]
    assert oracle.flushed == 1


def test_collector_propagates_oracle_errors():
    collector = PreimageWitnessCollector(_RecordingOracle(PreimageStore()))
    with pytest.raises(InvalidPreimageKey):
        collector.get(_keccak_key(b"nope"))
    assert collector.preimage_witness_store.preimage_map == {}


def test_witness_data_defaults_are_independent():
    first, second = WitnessData(), WitnessData()
    first.blob_data.blobs.append(b"\x00")
    assert second.blob_data == BlobData()
    assert first.blob_data.blobs == [b"\x00"]