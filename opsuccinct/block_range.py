"""Choosing and splitting ranges of L2 blocks to prove."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from opsuccinct.models import RPCMode

_SAFE_HEAD_CONCURRENCY = 15


def _number(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = str(value)
    return int(text, 16) if text[:2].lower() == "0x" else int(text)


@dataclass(frozen=True)
class SpanBatchRange:
    """A half-open range of L2 blocks proven together."""

    start: int
    end: int


def get_validated_block_range(
    data_fetcher: Any, start: int | None, end: int | None, default_range: int
) -> tuple[int, int]:
    """Resolve a block range, defaulting the end to the finalized L2 block."""
    finalized = data_fetcher.get_l2_header("finalized").number

    if end is None:
        l2_end_block = finalized
    elif end > finalized:
        raise ValueError(
            f"The end block ({end}) is greater than the latest finalized block ({finalized})"
        )
    else:
        l2_end_block = end

    l2_start_block = start if start is not None else max(1, max(0, l2_end_block - default_range))
    if l2_start_block >= l2_end_block:
        raise ValueError(
            f"Start block ({l2_start_block}) must be less than end block ({l2_end_block})"
        )
    return l2_start_block, l2_end_block


def get_rolling_block_range(
    data_fetcher: Any, interval: timedelta | int, range_size: int
) -> tuple[int, int]:
    """Return a range starting at the last interval boundary before the finalized block."""
    seconds = int(interval.total_seconds()) if isinstance(interval, timedelta) else int(interval)
    if seconds <= 0:
        raise ValueError("interval must be at least one second")
    header = data_fetcher.get_l2_header("finalized")
    start_timestamp = header.timestamp - header.timestamp % seconds
    _, l2_start_block = data_fetcher.find_l2_block_by_timestamp(start_timestamp)
    return l2_start_block, l2_start_block + range_size


def split_range_basic(start: int, end: int, max_range_size: int) -> list[SpanBatchRange]:
    """Split ``start..end`` into consecutive ranges of at most ``max_range_size`` blocks."""
    if max_range_size <= 0:
        raise ValueError("max_range_size must be positive")
    return [
        SpanBatchRange(current, min(current + max_range_size, end))
        for current in range(start, end, max_range_size)
    ]


def split_range_based_on_safe_heads(
    data_fetcher: Any, l2_start: int, l2_end: int, max_range_size: int
) -> list[SpanBatchRange]:
    """Split a range at the L2 safe heads reached by batch posts on L1.

    Each range ends at a safe head (or ``l2_end``) and holds at most
    ``max_range_size`` blocks.
    """
    if max_range_size <= 0:
        raise ValueError("max_range_size must be positive")
    output = data_fetcher.fetch_rpc_data_with_mode(
        RPCMode.L2_NODE, "optimism_outputAtBlock", [hex(l2_start)]
    )
    block_ref = output["blockRef"]
    origin = block_ref["l1origin"] if "l1origin" in block_ref else block_ref["l1Origin"]
    l1_start = _number(origin["number"])
    _, l1_head_number = data_fetcher.get_safe_l1_block_for_l2_block(l2_end)

    def safe_head_at(l1_block: int) -> int:
        result = data_fetcher.fetch_rpc_data_with_mode(
            RPCMode.L2_NODE, "optimism_safeHeadAtL1Block", [hex(l1_block)]
        )
        return _number(result["safeHead"]["number"])

    with ThreadPoolExecutor(max_workers=_SAFE_HEAD_CONCURRENCY) as pool:
        safe_heads = sorted(set(pool.map(safe_head_at, range(l1_start, l1_head_number + 1))))

    ranges: list[SpanBatchRange] = []
    current_start = l2_start
    for safe_head in safe_heads:
        if safe_head > current_start and current_start < l2_end:
            stop = min(l2_end, safe_head)
            range_start = current_start
            while range_start + max_range_size < stop:
                ranges.append(SpanBatchRange(range_start, range_start + max_range_size))
                range_start += max_range_size
            ranges.append(SpanBatchRange(range_start, stop))
            current_start = safe_head
    return ranges