"""
Block Ledger - Print every token and native transfer of one block

Usage:
    block-ledger <block_hash>                     # Use WEB3_HTTP_URL / MAINNET_RPC_URL
    block-ledger <block_hash> --rpc http://...    # Explicit node endpoint
    block-ledger <block_hash> --skip-zero         # Hide zero-value native transfers
    block-ledger <block_hash> --output out.csv    # Export the ledger to CSV
    block-ledger <block_hash> --verbose           # Enable debug logging

The node must expose debug_traceBlockByHash with JavaScript tracer support.
"""

import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from .config.node_config import DEFAULT_TRACER_TIMEOUT, REQUEST_TIMEOUT, TRANSFER_EVENT_SIGNATURE, get_rpc_url
from .logging_config import setup_logging
from .services import BlockLedgerService
from .services.extractors import BlockLedgerError, Ledger, TransferKind

logger = logging.getLogger(__name__)


def print_section(title: str, char: str = "="):
    """Print a section header"""
    print(f"\n{char * 70}")
    print(f" {title}")
    print(f"{char * 70}")


def format_entry(entry) -> str:
    """One printable line per ledger entry"""
    t = entry.transfer
    to_text = t.to_address.checksum if t.to_address else "(contract creation)"
    if entry.kind is TransferKind.TOKEN:
        token = t.token_address.checksum if t.token_address else "?"
        return (f"[{entry.position}] ERC20 Transfer token={token} from={t.from_address.checksum} "
                f"to={to_text} amount={t.amount} log={t.log_index}")
    return (f"[{entry.position}] native transfer from={t.from_address.checksum} to={to_text} "
            f"amount={t.amount} tx={t.transaction_index} depth={t.call_depth}")


def print_ledger(ledger: Ledger, skip_zero: bool = False):
    print_section(f"BLOCK {ledger.block_hash}")
    for entry in ledger:
        if skip_zero and entry.kind is TransferKind.NATIVE and entry.transfer.is_zero:
            continue
        print(format_entry(entry))

    if ledger.skipped:
        print_section("SKIPPED RECORDS", "-")
        for record in ledger.skipped:
            print(f"[{record.get('pipeline')}] {record.get('error_type')}: {record.get('message')}")

    print_section("SUMMARY", "-")
    for key, value in ledger.summary().items():
        print(f"{key}: {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Extract every value transfer of one block')
    parser.add_argument('block_hash', help='Hash of the block to extract')
    parser.add_argument('--rpc', type=str, help='Node endpoint (default: WEB3_HTTP_URL / MAINNET_RPC_URL)')
    parser.add_argument('--event', type=str, default=TRANSFER_EVENT_SIGNATURE,
                        help=f'Event signature to decode (default: {TRANSFER_EVENT_SIGNATURE})')
    parser.add_argument('--timeout', type=float, default=REQUEST_TIMEOUT,
                        help=f'HTTP timeout in seconds (default: {REQUEST_TIMEOUT})')
    parser.add_argument('--tracer-timeout', type=str, default=DEFAULT_TRACER_TIMEOUT,
                        help=f'Node-side tracer timeout (default: {DEFAULT_TRACER_TIMEOUT})')
    parser.add_argument('--skip-zero', action='store_true', help='Hide zero-value native transfers')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    parser.add_argument('--output', '-o', type=str, help='Output CSV file path')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    # --verbose forces the debug file on; otherwise LEDGER_DEBUG decides
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, debug=args.verbose or None)

    rpc_url = args.rpc or get_rpc_url()
    try:
        service = BlockLedgerService.from_endpoint(
            rpc_url,
            timeout=args.timeout,
            event_signature=args.event,
            tracer_timeout=args.tracer_timeout,
        )
        ledger = service.build_ledger(args.block_hash)
    except BlockLedgerError as e:
        logger.error(f"Extraction failed: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Invalid input: {e}")
        return 2

    print_ledger(ledger, skip_zero=args.skip_zero)

    if args.output:
        ledger.to_dataframe().to_csv(args.output, index=False)
        print(f"\n[+] Ledger written to {args.output}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
