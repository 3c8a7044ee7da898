"""
Block Ledger Service

Runs the token-log and native-trace pipelines for one block and merges
their output. The pipelines share no state and each issues one round trip,
so they run side by side on a small thread pool and are joined before the
merge.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, Optional
import logging

from ..config.node_config import (
    DEFAULT_MAX_WORKERS,
    DEFAULT_TRACER_TIMEOUT,
    PIPELINE_NATIVE_TRACE,
    PIPELINE_TOKEN_LOGS,
    REQUEST_TIMEOUT,
    TRANSFER_EVENT_SIGNATURE,
)
from .extractors import (
    BlockLedgerError,
    CallTraceCollector,
    Ledger,
    LogTransferDecoder,
    merge,
    normalize_hash,
)
from .node_client import NodeClient

logger = logging.getLogger(__name__)


class BlockLedgerService:
    """
    Builds the ledger of every value movement in a block.

    A failing pipeline does not stop its sibling; once both have finished,
    the first failure (token logs before native trace) is raised so callers
    never receive a partial ledger.
    """

    def __init__(
        self,
        node,
        event_signature: str = TRANSFER_EVENT_SIGNATURE,
        tracer_timeout: Optional[str] = DEFAULT_TRACER_TIMEOUT,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.node = node
        self.log_decoder = LogTransferDecoder(node, event_signature)
        self.trace_collector = CallTraceCollector(node, tracer_timeout)
        self.max_workers = max_workers

    @classmethod
    def from_endpoint(cls, endpoint: str, timeout: float = REQUEST_TIMEOUT, **kwargs) -> "BlockLedgerService":
        return cls(NodeClient(endpoint, timeout=timeout), **kwargs)

    def _pipelines(self) -> Dict[str, Callable]:
        return {
            PIPELINE_TOKEN_LOGS: self.log_decoder.extract,
            PIPELINE_NATIVE_TRACE: self.trace_collector.extract,
        }

    def build_ledger(self, block_hash: str) -> Ledger:
        """
        Extract and merge all transfers of one block.

        Raises:
            BlockLedgerError: The failure of a pipeline, tagged with its pipeline and stage
        """
        block_hash = normalize_hash(block_hash)
        pipelines = self._pipelines()
        outcomes = {}
        errors: Dict[str, BlockLedgerError] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(run, block_hash): name for name, run in pipelines.items()}
            for future in as_completed(futures):
                name = futures[future]
                try:
                    outcomes[name] = future.result()
                except BlockLedgerError as e:
                    e.pipeline = e.pipeline or name
                    e.block_hash = e.block_hash or block_hash
                    logger.error(f"Pipeline {name} failed at stage {e.stage}: {e.message}")
                    errors[name] = e

        for name in pipelines:
            if name in errors:
                if len(errors) > 1:
                    errors[name].context['sibling_errors'] = [
                        e.to_dict() for other, e in errors.items() if other != name
                    ]
                raise errors[name]

        token_transfers, token_skipped = outcomes[PIPELINE_TOKEN_LOGS]
        native_transfers, native_skipped = outcomes[PIPELINE_NATIVE_TRACE]
        ledger = merge(
            token_transfers,
            native_transfers,
            block_hash=block_hash,
            skipped=[*token_skipped, *native_skipped],
        )
        logger.info(f"Ledger for {block_hash[:18]}...: {len(ledger.token_transfers)} token, "
                    f"{len(ledger.native_transfers)} native, {len(ledger.skipped)} skipped")
        return ledger


def build_block_ledger(node_endpoint, block_hash: str, **kwargs) -> Ledger:
    """Build one block's ledger from a node URL or NodeClient"""
    if isinstance(node_endpoint, str):
        node_endpoint = NodeClient(node_endpoint)
    return BlockLedgerService(node_endpoint, **kwargs).build_ledger(block_hash)
