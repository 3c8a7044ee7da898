"""
Node Configuration Module

Contains the node-facing constants used by the block ledger extractors:
event signatures, JSON-RPC method names, the call opcode watched by the
tracer and request timeouts.
"""

import os

# JSON-RPC Configuration
JSONRPC_VERSION = "2.0"
LOGS_METHOD = "eth_getLogs"
TRACE_METHOD = "debug_traceBlockByHash"

# Default public endpoint used only when nothing is configured
DEFAULT_RPC_URL = "https://eth.llamarpc.com"

# Event Signatures
TRANSFER_EVENT_SIGNATURE = "Transfer(address,address,uint256)"
# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

# EVM Opcodes
CALL_OPCODE = 0xF1

# Stack positions read by the tracer for CALL (top of stack = 0)
CALL_STACK_GAS = 0
CALL_STACK_ADDRESS = 1
CALL_STACK_VALUE = 2

# Word / address sizes in bytes
WORD_SIZE = 32
ADDRESS_SIZE = 20

# Request Configuration
REQUEST_TIMEOUT = 60  # seconds, per HTTP round trip
DEFAULT_TRACER_TIMEOUT = "60s"  # node-side tracer execution budget
DEFAULT_MAX_WORKERS = 2  # one worker per extraction pipeline

# Pipeline names used to tag errors and diagnostics
PIPELINE_TOKEN_LOGS = "token_logs"
PIPELINE_NATIVE_TRACE = "native_trace"


def get_rpc_url() -> str:
    """Get RPC URL from environment"""
    return os.getenv("WEB3_HTTP_URL", os.getenv("MAINNET_RPC_URL", DEFAULT_RPC_URL))
