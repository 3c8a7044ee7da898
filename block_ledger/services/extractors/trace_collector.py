"""
Call Trace Collector

Recovers native-asset transfers of one block from an opcode-level trace.

A single debug_traceBlockByHash request carries a small JavaScript tracer
that the node runs once per transaction:

- step:   on every CALL (0xF1) record the executing contract (from), the
          destination operand (stack slot 1) and the value operand (stack
          slot 2). Slot 0 is the top of the stack and holds the gas operand.
- fault:  no-op.
- result: attach the transaction context (from, to, value) next to the
          recorded calls and return {callOps, from, to, value}.

The node answers with one result per transaction in block order, which is
flattened into NativeTransfer records: the transaction-level transfer
(depth 0) followed by every recorded call (depth 1).
"""

from typing import Any, Dict, List, Optional, Tuple
import logging

from ...config.node_config import (
    CALL_OPCODE,
    CALL_STACK_ADDRESS,
    CALL_STACK_VALUE,
    DEFAULT_TRACER_TIMEOUT,
    PIPELINE_NATIVE_TRACE,
    TRACE_METHOD,
)
from .base import Address, NativeTransfer, normalize_hash, parse_amount
from .exceptions import (
    MalformedTraceError,
    NodeCommunicationError,
    TraceExecutionError,
)

logger = logging.getLogger(__name__)

# Bumped whenever the result shape of TRACER_PROGRAM changes
TRACER_VERSION = "1"

# Stack offsets are fixed by the node's tracing API; changing them yields
# wrong addresses/amounts rather than an error.
TRACER_PROGRAM = """{
    retVal: {
        callOps: []
    },
    step: function (log, db) {
        if (log.op.toNumber() == 0x%(opcode)X)
            this.retVal.callOps.push({
                from: log.contract.getAddress(),
                addr: log.stack.peek(%(addr_slot)d),
                val: log.stack.peek(%(val_slot)d)
            });
    },
    fault: function (log, db) {},
    result: function (ctx, db) {
        this.retVal.from = ctx.from;
        this.retVal.to = ctx.to;
        this.retVal.value = ctx.value;
        return this.retVal;
    }
}""" % {
    'opcode': CALL_OPCODE,
    'addr_slot': CALL_STACK_ADDRESS,
    'val_slot': CALL_STACK_VALUE,
}

TRANSACTION_DEPTH = 0
CALL_DEPTH = 1


def _error_message(error: Any) -> str:
    """Extract the node's message from a string or JSON-RPC error object"""
    if isinstance(error, dict):
        return str(error.get('message') or error)
    return str(error)


class CallTraceCollector:
    """
    Collector for native transfers recorded by the embedded tracer.

    Args:
        node: Object exposing rpc_call(method, params), normally a NodeClient
        tracer_timeout: Node-side tracer budget (e.g. "60s"); None leaves the node default
    """

    def __init__(self, node, tracer_timeout: Optional[str] = DEFAULT_TRACER_TIMEOUT):
        self.node = node
        self.tracer_timeout = tracer_timeout

    def tracer_config(self) -> Dict[str, str]:
        config = {'tracer': TRACER_PROGRAM}
        if self.tracer_timeout:
            config['timeout'] = self.tracer_timeout
        return config

    def collect(self, block_hash: str) -> List[NativeTransfer]:
        """
        Trace the block and return its native transfers in execution order.

        Raises:
            NodeCommunicationError: On transport failure
            TraceExecutionError: If the node reports an execution error
            MalformedTraceError: If the response cannot be parsed
        """
        transfers, _ = self.extract(block_hash)
        return transfers

    def extract(self, block_hash: str) -> Tuple[List[NativeTransfer], List[MalformedTraceError]]:
        """
        Trace the block and also return the records that were skipped.

        Returns:
            (transfers in emission order, skipped-record errors)
        """
        block_hash = normalize_hash(block_hash)
        logger.debug(f"Tracing block {block_hash[:18]}... with call tracer v{TRACER_VERSION}")
        try:
            body = self.node.rpc_call(TRACE_METHOD, [block_hash, self.tracer_config()])
        except NodeCommunicationError as e:
            e.pipeline = PIPELINE_NATIVE_TRACE
            e.block_hash = e.block_hash or block_hash
            raise
        except ValueError as e:
            raise MalformedTraceError(
                f"{TRACE_METHOD} response is not a JSON object",
                pipeline=PIPELINE_NATIVE_TRACE,
                block_hash=block_hash,
                original_error=e,
            ) from e

        transfers, skipped = self.flatten(body, block_hash=block_hash)

        if skipped:
            logger.warning(f"Skipped {len(skipped)} malformed trace records "
                           f"in block {block_hash[:18]}...")
        logger.info(f"Collected {len(transfers)} native transfers from block {block_hash[:18]}...")
        return transfers, skipped

    def flatten(
        self,
        body: Dict[str, Any],
        block_hash: Optional[str] = None,
    ) -> Tuple[List[NativeTransfer], List[MalformedTraceError]]:
        """
        Flatten a decoded debug_traceBlockByHash response.

        Node-reported errors (top-level or per transaction) abort before any
        record is decoded, so an error response never yields partial output.
        """
        if not isinstance(body, dict):
            raise MalformedTraceError(
                "Trace response is not a JSON object",
                pipeline=PIPELINE_NATIVE_TRACE, block_hash=block_hash, raw_data=body,
            )

        error = body.get('error')
        if error is not None:
            raise TraceExecutionError(
                _error_message(error),
                pipeline=PIPELINE_NATIVE_TRACE,
                block_hash=block_hash,
                node_error=error,
            )

        results = body.get('result')
        if not isinstance(results, list):
            raise MalformedTraceError(
                "Trace response has no result list",
                pipeline=PIPELINE_NATIVE_TRACE, block_hash=block_hash,
                field_name='result', raw_data=results,
            )

        for tx_index, item in enumerate(results):
            if isinstance(item, dict) and item.get('error') is not None:
                raise TraceExecutionError(
                    f"Transaction {tx_index}: {_error_message(item['error'])}",
                    pipeline=PIPELINE_NATIVE_TRACE,
                    block_hash=block_hash,
                    node_error=item['error'],
                    transaction_index=tx_index,
                )

        transfers: List[NativeTransfer] = []
        skipped: List[MalformedTraceError] = []
        for tx_index, item in enumerate(results):
            try:
                trace, tx_hash = self._unwrap(item, tx_index)
            except MalformedTraceError as e:
                self._skip(e, block_hash, skipped)
                continue

            try:
                transfers.append(self._transaction_transfer(trace, tx_index, tx_hash))
            except MalformedTraceError as e:
                self._skip(e, block_hash, skipped)

            transfers.extend(self._call_transfers(trace, tx_index, tx_hash, block_hash, skipped))

        logger.debug(f"Flattened {len(results)} transaction traces into {len(transfers)} transfers")
        return transfers, skipped

    # ------------------------------------------------------------------------
    # Record decoding
    # ------------------------------------------------------------------------

    def _unwrap(self, item: Any, tx_index: int) -> Tuple[Dict[str, Any], Optional[str]]:
        """Accept both the bare tracer result and the {txHash, result} envelope"""
        if not isinstance(item, dict):
            raise MalformedTraceError(
                "Transaction trace is not an object",
                transaction_index=tx_index, raw_data=item,
            )

        tx_hash = None
        trace = item
        if 'result' in item and 'callOps' not in item:
            trace = item['result']
            raw_hash = item.get('txHash')
            if raw_hash:
                try:
                    tx_hash = normalize_hash(raw_hash)
                except ValueError as e:
                    raise MalformedTraceError(
                        f"Invalid txHash: {e}", transaction_index=tx_index,
                        field_name='txHash', raw_data=raw_hash, original_error=e,
                    ) from e

        if not isinstance(trace, dict):
            raise MalformedTraceError(
                "Tracer result is not an object",
                transaction_index=tx_index, raw_data=trace,
            )
        return trace, tx_hash

    def _transaction_transfer(
        self,
        trace: Dict[str, Any],
        tx_index: int,
        tx_hash: Optional[str],
    ) -> NativeTransfer:
        from_address = self._address(trace, 'from', tx_index)
        to_address = None
        if trace.get('to') is not None:
            to_address = self._address(trace, 'to', tx_index)
        amount = self._amount(trace, 'value', tx_index)
        return NativeTransfer(
            from_address=from_address,
            to_address=to_address,
            amount=amount,
            call_depth=TRANSACTION_DEPTH,
            transaction_index=tx_index,
            transaction_hash=tx_hash,
        )

    def _call_transfers(
        self,
        trace: Dict[str, Any],
        tx_index: int,
        tx_hash: Optional[str],
        block_hash: Optional[str],
        skipped: List[MalformedTraceError],
    ) -> List[NativeTransfer]:
        call_ops = trace.get('callOps')
        if call_ops is None:
            return []
        if not isinstance(call_ops, list):
            self._skip(MalformedTraceError(
                "callOps is not a list", transaction_index=tx_index,
                field_name='callOps', raw_data=call_ops,
            ), block_hash, skipped)
            return []

        transfers = []
        for call_index, op in enumerate(call_ops):
            try:
                if not isinstance(op, dict):
                    raise MalformedTraceError(
                        "Call record is not an object", raw_data=op,
                    )
                transfers.append(NativeTransfer(
                    from_address=self._address(op, 'from', tx_index),
                    # destination is a raw stack word: the CALL opcode masks it to 20 bytes
                    to_address=self._address(op, 'addr', tx_index, strict=False),
                    amount=self._amount(op, 'val', tx_index),
                    call_depth=CALL_DEPTH,
                    transaction_index=tx_index,
                    transaction_hash=tx_hash,
                ))
            except MalformedTraceError as e:
                e.transaction_index = tx_index
                e.call_index = call_index
                self._skip(e, block_hash, skipped)
        return transfers

    def _address(self, record: Dict[str, Any], name: str, tx_index: int, strict: bool = True) -> Address:
        if record.get(name) is None:
            raise MalformedTraceError(
                f"Missing '{name}'", transaction_index=tx_index, field_name=name, raw_data=record,
            )
        try:
            return Address.parse(record[name], strict=strict)
        except ValueError as e:
            raise MalformedTraceError(
                f"Invalid address in '{name}': {e}", transaction_index=tx_index,
                field_name=name, raw_data=record[name], original_error=e,
            ) from e

    def _amount(self, record: Dict[str, Any], name: str, tx_index: int) -> str:
        if record.get(name) is None:
            raise MalformedTraceError(
                f"Missing '{name}'", transaction_index=tx_index, field_name=name, raw_data=record,
            )
        try:
            return parse_amount(record[name])
        except ValueError as e:
            raise MalformedTraceError(
                f"Invalid amount in '{name}': {e}", transaction_index=tx_index,
                field_name=name, raw_data=record[name], original_error=e,
            ) from e

    def _skip(self, error: MalformedTraceError, block_hash: Optional[str], skipped: List[MalformedTraceError]):
        error.pipeline = PIPELINE_NATIVE_TRACE
        error.block_hash = block_hash
        where = f"tx {error.transaction_index}"
        if error.call_index is not None:
            where += f" call {error.call_index}"
        logger.warning(f"Skipping trace record ({where}): {error.message}")
        skipped.append(error)


def collect_native_transfers(
    node_endpoint,
    block_hash: str,
    tracer_timeout: Optional[str] = DEFAULT_TRACER_TIMEOUT,
) -> List[NativeTransfer]:
    """
    Collect the block's native transfers; see CallTraceCollector.collect.

    node_endpoint may be a node URL or an already-built NodeClient.
    """
    if isinstance(node_endpoint, str):
        # Import here to avoid circular imports
        from ..node_client import NodeClient
        node_endpoint = NodeClient(node_endpoint)
    return CallTraceCollector(node_endpoint, tracer_timeout).collect(block_hash)
