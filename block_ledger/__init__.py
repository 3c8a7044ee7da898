"""
Block ledger: every native and token value movement of a single block.

Quick Start:
    from block_ledger import BlockLedgerService

    service = BlockLedgerService.from_endpoint("http://localhost:8545")
    ledger = service.build_ledger("0x7008451b...")
    for entry in ledger:
        print(entry.kind.value, entry.transfer.from_address, entry.transfer.amount)
"""

from .services import BlockLedgerService, NodeClient, build_block_ledger
from .services.extractors import (
    Address,
    CallTraceCollector,
    Ledger,
    LogTransferDecoder,
    NativeTransfer,
    TokenTransfer,
    TransferKind,
    collect_native_transfers,
    decode_transfer_logs,
    merge,
)

__version__ = "0.1.0"

__all__ = [
    'BlockLedgerService',
    'NodeClient',
    'build_block_ledger',
    'Address',
    'CallTraceCollector',
    'Ledger',
    'LogTransferDecoder',
    'NativeTransfer',
    'TokenTransfer',
    'TransferKind',
    'collect_native_transfers',
    'decode_transfer_logs',
    'merge',
]
