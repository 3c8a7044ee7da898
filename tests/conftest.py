"""
Shared fixtures for block ledger tests.

FakeNode stands in for NodeClient: it serves canned logs and trace
responses and records every request it receives.
"""
import pytest

from block_ledger.config.node_config import TRANSFER_TOPIC

BLOCK_HASH = "0x7008451b87e4f126e3b5428d4ea2c6f23167ddbb8a1c1fa1d4e1d9ca70faaca8"

ADDR_A = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
ADDR_B = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"
ADDR_C = "0xdbF03B407c01E7cD3CBea99509d93f8DDDC8C6FB"
ADDR_D = "0xD1220A0cf47c7B9Be7A2E6BA89F429762e7b9aDb"
TOKEN = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"


def pad(address: str) -> str:
    """Left-zero-pad an address into a 32-byte topic word"""
    return "0x" + "0" * 24 + address[2:].lower()


def dec(address: str) -> str:
    """Decimal-string encoding of an address"""
    return str(int(address, 16))


def word(value: int) -> str:
    """32-byte big-endian hex encoding of an unsigned integer"""
    return "0x" + format(value, "064x")


def byte_list(address: str) -> list:
    """Address as the byte array a JS tracer serializes"""
    return list(bytes.fromhex(address[2:]))


def transfer_log(from_addr, to_addr, amount, log_index, token=TOKEN, tx_index=0):
    return {
        'address': token,
        'topics': [TRANSFER_TOPIC, pad(from_addr), pad(to_addr)],
        'data': word(amount),
        'logIndex': log_index,
        'transactionIndex': tx_index,
        'transactionHash': "0x" + format(tx_index + 1, "064x"),
        'blockHash': BLOCK_HASH,
    }


def tx_trace(from_addr, to_addr, value, call_ops=()):
    return {
        'callOps': list(call_ops),
        'from': byte_list(from_addr),
        'to': byte_list(to_addr) if to_addr else None,
        'value': value,
    }


def call_op(from_addr, dest, value):
    return {'from': byte_list(from_addr), 'addr': dec(dest), 'val': value}


class FakeNode:
    """In-memory node serving canned responses"""

    def __init__(self, logs=None, trace_body=None, logs_error=None, trace_error=None):
        self.logs = logs or []
        self.trace_body = trace_body if trace_body is not None else {'jsonrpc': '2.0', 'id': 0, 'result': []}
        self.logs_error = logs_error
        self.trace_error = trace_error
        self.calls = []

    def get_logs(self, block_hash, topics):
        self.calls.append(('get_logs', block_hash, topics))
        if self.logs_error:
            raise self.logs_error
        return list(self.logs)

    def rpc_call(self, method, params):
        self.calls.append((method, params))
        if self.trace_error:
            raise self.trace_error
        return self.trace_body


def trace_response(*traces):
    return {'jsonrpc': '2.0', 'id': 0, 'result': list(traces)}


@pytest.fixture
def fake_node():
    """Factory fixture: fake_node(logs=..., trace_body=...)"""
    return FakeNode
