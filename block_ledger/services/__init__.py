from .node_client import NodeClient
from .ledger_service import BlockLedgerService, build_block_ledger

__all__ = ['NodeClient', 'BlockLedgerService', 'build_block_ledger']
