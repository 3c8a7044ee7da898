"""
Block transfer extractors.

- LogTransferDecoder: Transfer events from topic-filtered log queries
- CallTraceCollector: native transfers from an embedded opcode tracer
- merge: combines both into one ordered, tagged Ledger
"""

from .base import (
    # Enums
    TransferKind,
    # Primitives
    Address,
    parse_amount,
    parse_quantity,
    normalize_hash,
    format_address,
    # Dataclasses
    TokenTransfer,
    NativeTransfer,
    LedgerEntry,
    Ledger,
    LEDGER_COLUMNS,
)

from .exceptions import (
    BlockLedgerError,
    NodeCommunicationError,
    TraceExecutionError,
    MalformedEventError,
    MalformedTraceError,
)

from .log_decoder import LogTransferDecoder, decode_transfer_logs, event_topic
from .trace_collector import (
    CallTraceCollector,
    collect_native_transfers,
    TRACER_PROGRAM,
    TRACER_VERSION,
)
from .normalizer import merge

__all__ = [
    'TransferKind',
    'Address',
    'parse_amount',
    'parse_quantity',
    'normalize_hash',
    'format_address',
    'TokenTransfer',
    'NativeTransfer',
    'LedgerEntry',
    'Ledger',
    'LEDGER_COLUMNS',
    'BlockLedgerError',
    'NodeCommunicationError',
    'TraceExecutionError',
    'MalformedEventError',
    'MalformedTraceError',
    'LogTransferDecoder',
    'decode_transfer_logs',
    'event_topic',
    'CallTraceCollector',
    'collect_native_transfers',
    'TRACER_PROGRAM',
    'TRACER_VERSION',
    'merge',
]
