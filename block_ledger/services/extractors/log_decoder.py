"""
Log Transfer Decoder

Decodes fungible-token Transfer events emitted inside one block.

The node is asked only for logs whose first topic is the event identifier,
so unrelated events are never fetched or decoded. Each returned log is
decoded independently: a malformed entry is logged, recorded as skipped and
the scan continues.

Expected layout (Transfer(address indexed from, address indexed to, uint256 value)):
    topics[0]  keccak256 of the event signature
    topics[1]  from, left-zero-padded 32-byte word
    topics[2]  to, left-zero-padded 32-byte word
    data       value, 32-byte big-endian unsigned integer
"""

from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Tuple
from functools import lru_cache
import logging

from web3 import Web3

from ...config.node_config import (
    PIPELINE_TOKEN_LOGS,
    TRANSFER_EVENT_SIGNATURE,
    WORD_SIZE,
)
from .base import (
    Address,
    TokenTransfer,
    format_address,
    normalize_hash,
    parse_quantity,
    to_bytes,
)
from .exceptions import MalformedEventError, NodeCommunicationError

logger = logging.getLogger(__name__)

TRANSFER_TOPIC_COUNT = 3


@lru_cache(maxsize=32)
def event_topic(event_signature: str) -> str:
    """32-byte event identifier (topic 0) for a canonical event signature"""
    return Web3.to_hex(Web3.keccak(text=event_signature))


def _field(log: Dict[str, Any], *names: str) -> Any:
    for name in names:
        if name in log:
            return log[name]
    return None


class LogTransferDecoder:
    """
    Decoder for Transfer-shaped events of one block.

    Args:
        node: Object exposing get_logs(block_hash, topics), normally a NodeClient
        event_signature: Canonical signature of the event to decode
    """

    def __init__(self, node, event_signature: str = TRANSFER_EVENT_SIGNATURE):
        self.node = node
        self.event_signature = event_signature
        self.topic = event_topic(event_signature)

    def decode(self, block_hash: str) -> List[TokenTransfer]:
        """
        Decode every matching log of the block into TokenTransfer records.

        Raises:
            NodeCommunicationError: If the log query cannot be completed
        """
        transfers, _ = self.extract(block_hash)
        return transfers

    def extract(self, block_hash: str) -> Tuple[List[TokenTransfer], List[MalformedEventError]]:
        """
        Decode the block's logs and also return the entries that were skipped.

        Returns:
            (transfers sorted by log index, skipped-entry errors)
        """
        block_hash = normalize_hash(block_hash)
        try:
            logs = self.node.get_logs(block_hash, [self.topic])
        except NodeCommunicationError as e:
            e.pipeline = PIPELINE_TOKEN_LOGS
            e.block_hash = e.block_hash or block_hash
            raise
        logger.debug(f"Decoding {len(logs)} {self.event_signature} logs in block {block_hash[:18]}...")

        transfers, skipped = self.decode_logs(logs, block_hash=block_hash)

        if skipped:
            logger.warning(f"Skipped {len(skipped)} malformed {self.event_signature} logs "
                           f"in block {block_hash[:18]}...")
        logger.info(f"Decoded {len(transfers)} token transfers from block {block_hash[:18]}...")
        return transfers, skipped

    def decode_logs(
        self,
        logs: List[Dict[str, Any]],
        block_hash: Optional[str] = None,
    ) -> Tuple[List[TokenTransfer], List[MalformedEventError]]:
        """Decode already-fetched logs; per-entry failures are collected, not raised"""
        transfers = []
        skipped = []
        for log in logs:
            try:
                transfers.append(self.decode_log(log))
            except MalformedEventError as e:
                e.block_hash = block_hash
                logger.warning(f"Skipping log {e.log_index}: {e.message}")
                skipped.append(e)

        # Sort by log index for consistent ordering
        transfers.sort(key=lambda t: t.log_index)
        return transfers, skipped

    def decode_log(self, log: Dict[str, Any]) -> TokenTransfer:
        """
        Decode a single log entry.

        Raises:
            MalformedEventError: If topics or data do not match the expected layout
        """
        if not isinstance(log, Mapping):
            raise self._malformed("Log entry is not an object", log, None)

        raw_index = _field(log, 'logIndex', 'log_index')
        try:
            log_index = parse_quantity(raw_index)
        except ValueError as e:
            raise self._malformed(f"Invalid logIndex {raw_index!r}", log, None, e) from e

        topics = log.get('topics') or []
        if not isinstance(topics, (list, tuple)):
            raise self._malformed("Topics are not a list", log, log_index)
        if len(topics) != TRANSFER_TOPIC_COUNT:
            raise self._malformed(
                f"Expected {TRANSFER_TOPIC_COUNT} topics, got {len(topics)}", log, log_index
            )

        try:
            topic0 = to_bytes(topics[0])
            from_address = Address.from_word(topics[1])
            to_address = Address.from_word(topics[2])
        except ValueError as e:
            raise self._malformed(f"Undecodable topic: {e}", log, log_index, e) from e

        if topic0 != to_bytes(self.topic):
            raise self._malformed("Topic 0 does not match the event identifier", log, log_index)

        try:
            data = to_bytes(log.get('data') or b'')
        except ValueError as e:
            raise self._malformed(f"Undecodable data: {e}", log, log_index, e) from e
        if len(data) != WORD_SIZE:
            raise self._malformed(f"Expected {WORD_SIZE} data bytes, got {len(data)}", log, log_index)
        amount = str(int.from_bytes(data, 'big'))

        token_address = None
        raw_address = log.get('address')
        if raw_address:
            try:
                token_address = Address.parse(raw_address)
            except ValueError as e:
                raise self._malformed(f"Invalid emitting address: {e}", log, log_index, e) from e

        tx_hash = _field(log, 'transactionHash', 'transaction_hash')
        tx_index = _field(log, 'transactionIndex', 'transaction_index')
        try:
            tx_hash = normalize_hash(tx_hash) if tx_hash else None
            tx_index = parse_quantity(tx_index) if tx_index is not None else None
        except ValueError as e:
            raise self._malformed(f"Invalid transaction reference: {e}", log, log_index, e) from e

        logger.debug(f"Log {log_index}: {format_address(from_address)} -> {format_address(to_address)} amount={amount}")
        return TokenTransfer(
            from_address=from_address,
            to_address=to_address,
            amount=amount,
            log_index=log_index,
            token_address=token_address,
            transaction_hash=tx_hash,
            transaction_index=tx_index,
        )

    def _malformed(self, message, log, log_index, error=None) -> MalformedEventError:
        return MalformedEventError(
            message,
            pipeline=PIPELINE_TOKEN_LOGS,
            log_index=log_index,
            raw_log=log,
            original_error=error,
        )


def decode_transfer_logs(
    node,
    block_hash: str,
    event_signature: str = TRANSFER_EVENT_SIGNATURE,
) -> List[TokenTransfer]:
    """Decode the block's transfer events; see LogTransferDecoder.decode"""
    return LogTransferDecoder(node, event_signature).decode(block_hash)
