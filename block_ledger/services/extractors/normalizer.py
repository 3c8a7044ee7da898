"""
Result Normalizer

Merges the output of both extraction pipelines into one tagged Ledger.

No cross-referencing is attempted: a single economic movement can appear
both as a token event and as a native call (e.g. a wrapper contract), and
reconciling the two is left to the consumer.
"""

from typing import Any, Dict, Iterable, Optional
import logging

from .base import (
    Ledger,
    LedgerEntry,
    NativeTransfer,
    TokenTransfer,
    TransferKind,
)
from .exceptions import BlockLedgerError

logger = logging.getLogger(__name__)


def _skipped_record(item: Any) -> Dict[str, Any]:
    if isinstance(item, BlockLedgerError):
        return item.to_dict()
    return dict(item)


def merge(
    token_transfers: Iterable[TokenTransfer],
    native_transfers: Iterable[NativeTransfer],
    block_hash: Optional[str] = None,
    skipped: Iterable[Any] = (),
) -> Ledger:
    """
    Build the block ledger.

    Token transfers are placed first, ordered by log index; native transfers
    follow in the order the trace emitted them.

    Args:
        token_transfers: Output of LogTransferDecoder
        native_transfers: Output of CallTraceCollector
        block_hash: Block the transfers belong to
        skipped: Skipped-record errors (or their to_dict() records) from either pipeline

    Returns:
        Ledger with one entry per transfer
    """
    tokens = sorted(token_transfers, key=lambda t: t.log_index)

    entries = []
    for transfer in tokens:
        entries.append(LedgerEntry(TransferKind.TOKEN, transfer, len(entries)))
    for transfer in native_transfers:
        entries.append(LedgerEntry(TransferKind.NATIVE, transfer, len(entries)))

    ledger = Ledger(
        entries=tuple(entries),
        block_hash=block_hash,
        skipped=tuple(_skipped_record(item) for item in skipped),
    )
    logger.debug(f"Merged ledger: {ledger.summary()}")
    return ledger
