from datetime import timedelta
from types import SimpleNamespace

import pytest

from opsuccinct.block_range import (
    SpanBatchRange,
    get_rolling_block_range,
    get_validated_block_range,
    split_range_basic,
    split_range_based_on_safe_heads,
)


class StubFetcher:
    def __init__(self, finalized=1000, timestamp=1234, safe_heads=()):
        self.finalized = finalized
        self.timestamp = timestamp
        self.safe_heads = list(safe_heads)
        self.requested = []

    def get_l2_header(self, block_id):
        return SimpleNamespace(number=self.finalized, timestamp=self.timestamp)

    def find_l2_block_by_timestamp(self, ts):
        self.requested.append(ts)
        return b"", ts // 2

    def get_safe_l1_block_for_l2_block(self, l2_end):
        return b"", len(self.safe_heads) - 1

    def fetch_rpc_data_with_mode(self, mode, method, params):
        if method == "optimism_outputAtBlock":
            return {"blockRef": {"l1origin": {"number": 0}}}
        return {"safeHead": {"number": self.safe_heads[int(params[0], 16)]}}


def test_validated_defaults_to_finalized():
    start, end = get_validated_block_range(StubFetcher(), None, None, 100)
    assert end == 1000
    assert end - start == 100


def test_validated_start_clamped_to_one():
    assert get_validated_block_range(StubFetcher(), None, 5, 100) == (1, 5)


def test_validated_errors():
    with pytest.raises(ValueError, match="greater than the latest finalized"):
        get_validated_block_range(StubFetcher(), None, 1001, 10)
    with pytest.raises(ValueError, match="must be less than"):
        get_validated_block_range(StubFetcher(), 50, 50, 10)


def test_rolling_range():
    fetcher = StubFetcher(timestamp=1234)
    start, end = get_rolling_block_range(fetcher, timedelta(minutes=1), 10)
    ts = fetcher.requested[0]
    assert ts % 60 == 0 and 1234 - 60 < ts <= 1234
    assert (start, end) == (ts // 2, ts // 2 + 10)
    with pytest.raises(ValueError):
        get_rolling_block_range(fetcher, 0, 10)


def test_split_basic_covers_range():
    ranges = split_range_basic(0, 10, 3)
    assert ranges[0].start == 0 and ranges[-1].end == 10
    assert all(a.end == b.start for a, b in zip(ranges, ranges[1:]))
    assert all(0 < r.end - r.start <= 3 for r in ranges)
    assert split_range_basic(5, 5, 3) == []


def test_split_on_safe_heads():
    fetcher = StubFetcher(safe_heads=[0, 27, 27, 49, 90, 90])
    ranges = split_range_based_on_safe_heads(fetcher, 0, 90, 30)
    assert ranges == [
        SpanBatchRange(0, 27),
        SpanBatchRange(27, 49),
        SpanBatchRange(49, 79),
        SpanBatchRange(79, 90),
    ]


def test_split_on_safe_heads_stops_at_end():
    fetcher = StubFetcher(safe_heads=[10, 40, 90])
    ranges = split_range_based_on_safe_heads(fetcher, 10, 60, 100)
    assert ranges == [SpanBatchRange(10, 40), SpanBatchRange(40, 60)]