"""
Integration tests for the block ledger service.

Tests:
- Both pipelines run against the same block and are merged
- Skipped diagnostics from both pipelines reach the ledger
- A failing pipeline raises a tagged error, never a partial ledger
"""
import pytest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from block_ledger.services import BlockLedgerService, build_block_ledger
from block_ledger.services.extractors import (
    NodeCommunicationError,
    TraceExecutionError,
    TransferKind,
)
from conftest import (
    ADDR_A, ADDR_B, ADDR_C, ADDR_D, BLOCK_HASH,
    call_op, trace_response, transfer_log, tx_trace,
)


def _block_node(fake_node, **overrides):
    options = {
        'logs': [transfer_log(ADDR_A, ADDR_B, 1000, 3), transfer_log(ADDR_C, ADDR_D, 1, 1)],
        'trace_body': trace_response(tx_trace(ADDR_A, ADDR_B, "5", [call_op(ADDR_C, ADDR_D, "7")])),
    }
    options.update(overrides)
    return fake_node(**options)


class TestBuildLedger:
    def test_merges_both_pipelines(self, fake_node):
        node = _block_node(fake_node)
        ledger = BlockLedgerService(node).build_ledger(BLOCK_HASH)

        assert ledger.block_hash == BLOCK_HASH
        assert [e.kind for e in ledger] == [
            TransferKind.TOKEN, TransferKind.TOKEN, TransferKind.NATIVE, TransferKind.NATIVE,
        ]
        assert [t.log_index for t in ledger.token_transfers] == [1, 3]
        assert [t.amount for t in ledger.native_transfers] == ["5", "7"]
        assert ledger.is_complete

        methods = sorted(call[0] for call in node.calls)
        assert methods == ['debug_traceBlockByHash', 'get_logs']

    def test_skipped_records_from_both_pipelines(self, fake_node):
        bad_log = transfer_log(ADDR_A, ADDR_B, 1, 9)
        bad_log['data'] = "0x"
        bad_call = {'from': ADDR_C, 'addr': "??", 'val': "1"}
        node = _block_node(
            fake_node,
            logs=[transfer_log(ADDR_A, ADDR_B, 1, 0), bad_log],
            trace_body=trace_response(tx_trace(ADDR_A, ADDR_B, "0", [bad_call])),
        )
        ledger = BlockLedgerService(node).build_ledger(BLOCK_HASH)

        assert len(ledger) == 2
        assert sorted(r['pipeline'] for r in ledger.skipped) == ['native_trace', 'token_logs']

    def test_non_object_log_is_tagged_and_skipped(self, fake_node):
        node = _block_node(fake_node, logs=["garbage", transfer_log(ADDR_A, ADDR_B, 1, 0)])
        ledger = BlockLedgerService(node).build_ledger(BLOCK_HASH)

        assert len(ledger.token_transfers) == 1
        assert ledger.skipped[0]['error_type'] == "MalformedEventError"
        assert ledger.skipped[0]['pipeline'] == "token_logs"
        assert ledger.skipped[0]['stage'] == "decode"

    def test_build_block_ledger_accepts_client(self, fake_node):
        ledger = build_block_ledger(_block_node(fake_node), BLOCK_HASH)
        assert len(ledger) == 4


class TestPipelineFailures:
    def test_trace_failure_raises(self, fake_node):
        body = {'jsonrpc': '2.0', 'id': 0, 'error': {'code': -32601, 'message': "method not found"}}
        node = _block_node(fake_node, trace_body=body)

        with pytest.raises(TraceExecutionError) as exc:
            BlockLedgerService(node).build_ledger(BLOCK_HASH)
        assert exc.value.pipeline == "native_trace"
        # sibling still ran
        assert any(call[0] == 'get_logs' for call in node.calls)

    def test_log_failure_raises(self, fake_node):
        node = _block_node(fake_node, logs_error=NodeCommunicationError("connection reset"))
        with pytest.raises(NodeCommunicationError) as exc:
            BlockLedgerService(node).build_ledger(BLOCK_HASH)
        assert exc.value.pipeline == "token_logs"
        assert exc.value.block_hash == BLOCK_HASH

    def test_both_failures_report_token_first(self, fake_node):
        node = _block_node(
            fake_node,
            logs_error=NodeCommunicationError("logs down"),
            trace_error=NodeCommunicationError("trace down"),
        )
        with pytest.raises(NodeCommunicationError) as exc:
            BlockLedgerService(node).build_ledger(BLOCK_HASH)
        assert exc.value.pipeline == "token_logs"
        siblings = exc.value.context['sibling_errors']
        assert siblings[0]['pipeline'] == "native_trace"
