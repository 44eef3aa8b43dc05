"""Execution statistics of a range program run, rendered as text tables."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

from opsuccinct.models import BlockInfo

_BORDER = "+--------------------------------+---------------------------+"
_MARKDOWN_RULE = "|--------------------------------|---------------------------|"

_ROWS: tuple[tuple[str, str], ...] = (
    ("Batch Start", "batch_start"),
    ("Batch End", "batch_end"),
    ("Witness Generation (seconds)", "witness_generation_time_sec"),
    ("Execution Duration (seconds)", "total_execution_time_sec"),
    ("Total Instruction Count", "total_instruction_count"),
    ("Oracle Verify Cycles", "oracle_verify_instruction_count"),
    ("Derivation Cycles", "derivation_instruction_count"),
    ("Block Execution Cycles", "block_execution_instruction_count"),
    ("Blob Verification Cycles", "blob_verification_instruction_count"),
    ("Total SP1 Gas", "total_sp1_gas"),
    ("Number of Blocks", "nb_blocks"),
    ("Number of Transactions", "nb_transactions"),
    ("Ethereum Gas Used", "eth_gas_used"),
    ("Cycles per Block", "cycles_per_block"),
    ("Cycles per Transaction", "cycles_per_transaction"),
    ("Transactions per Block", "transactions_per_block"),
    ("Gas Used per Block", "gas_used_per_block"),
    ("Gas Used per Transaction", "gas_used_per_transaction"),
    ("BN Pair Cycles", "bn_pair_cycles"),
    ("BN Add Cycles", "bn_add_cycles"),
    ("BN Mul Cycles", "bn_mul_cycles"),
    ("KZG Eval Cycles", "kzg_eval_cycles"),
    ("EC Recover Cycles", "ec_recover_cycles"),
    ("P256 Verify Cycles", "p256_verify_cycles"),
)


def _header_line() -> str:
    return f"| {'Metric':<30} | {'Value':<25} |"


def _stat_line(label: str, value: int) -> str:
    return f"| {label:<30} | {value:>25,} |"


@dataclass(frozen=True)
class ExecutionReport:
    """The result of executing a program: instruction counts and tracked cycles."""

    total_instruction_count: int
    cycle_tracker: Mapping[str, int] = field(default_factory=dict)
    gas: int | None = None

    def cycles(self, key: str) -> int:
        """Return the cycles tracked under ``key``, or 0 if none were."""
        return self.cycle_tracker.get(key, 0)


@dataclass
class ExecutionStats:
    """Statistics for the execution of a range of blocks."""

    l1_head: int = 0
    batch_start: int = 0
    batch_end: int = 0
    witness_generation_time_sec: int = 0
    total_execution_time_sec: int = 0
    total_instruction_count: int = 0
    oracle_verify_instruction_count: int = 0
    derivation_instruction_count: int = 0
    block_execution_instruction_count: int = 0
    blob_verification_instruction_count: int = 0
    total_sp1_gas: int = 0
    nb_blocks: int = 0
    nb_transactions: int = 0
    eth_gas_used: int = 0
    l1_fees: int = 0
    total_tx_fees: int = 0
    cycles_per_block: int = 0
    cycles_per_transaction: int = 0
    transactions_per_block: int = 0
    gas_used_per_block: int = 0
    gas_used_per_transaction: int = 0
    bn_pair_cycles: int = 0
    bn_add_cycles: int = 0
    bn_mul_cycles: int = 0
    kzg_eval_cycles: int = 0
    ec_recover_cycles: int = 0
    p256_verify_cycles: int = 0

    @classmethod
    def from_report(
        cls,
        l1_head: int,
        block_data: Sequence[BlockInfo],
        report: ExecutionReport,
        witness_generation_time_sec: int,
        total_execution_time_sec: int,
    ) -> "ExecutionStats":
        """Combine per-block data and an execution report into statistics.

        The block data excludes the first block of the range, which is not executed,
        so the batch start is one below the lowest block number given.
        """
        blocks = sorted(block_data, key=lambda block: block.block_number)
        if not blocks:
            raise ValueError("block data must not be empty")

        nb_blocks = len(blocks)
        nb_transactions = sum(block.transaction_count for block in blocks)
        total_gas_used = sum(block.gas_used for block in blocks)
        total_instructions = report.total_instruction_count

        return cls(
            l1_head=l1_head,
            batch_start=blocks[0].block_number - 1,
            batch_end=blocks[-1].block_number,
            witness_generation_time_sec=witness_generation_time_sec,
            total_execution_time_sec=total_execution_time_sec,
            total_instruction_count=total_instructions,
            total_sp1_gas=report.gas or 0,
            block_execution_instruction_count=report.cycles("block-execution"),
            oracle_verify_instruction_count=report.cycles("oracle-verify"),
            derivation_instruction_count=report.cycles("payload-derivation"),
            blob_verification_instruction_count=report.cycles("blob-verification"),
            bn_add_cycles=report.cycles("precompile-bn-add"),
            bn_mul_cycles=report.cycles("precompile-bn-mul"),
            bn_pair_cycles=report.cycles("precompile-bn-pair"),
            kzg_eval_cycles=report.cycles("precompile-kzg-eval"),
            ec_recover_cycles=report.cycles("precompile-ec-recover"),
            p256_verify_cycles=report.cycles("precompile-p256-verify"),
            nb_blocks=nb_blocks,
            nb_transactions=nb_transactions,
            eth_gas_used=total_gas_used,
            l1_fees=sum(block.total_l1_fees for block in blocks),
            total_tx_fees=sum(block.total_tx_fees for block in blocks),
            cycles_per_block=total_instructions // nb_blocks,
            cycles_per_transaction=total_instructions // nb_transactions,
            transactions_per_block=nb_transactions // nb_blocks,
            gas_used_per_block=total_gas_used // nb_blocks,
            gas_used_per_transaction=total_gas_used // nb_transactions,
        )

    def _stat_lines(self) -> list[str]:
        return [_stat_line(label, getattr(self, name)) for label, name in _ROWS]

    def __str__(self) -> str:
        lines = [_BORDER, _header_line(), _BORDER, *self._stat_lines(), _BORDER]
        return "\n".join(lines) + "\n"


class MarkdownExecutionStats:
    """Execution statistics rendered as a Markdown table."""

    def __init__(self, inner: ExecutionStats) -> None:
        self.inner = inner

    def __str__(self) -> str:
        lines = [_header_line(), _MARKDOWN_RULE, *self.inner._stat_lines()]
        return "\n".join(lines) + "\n"