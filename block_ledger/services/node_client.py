"""
Node Client Module

Single point of contact with the Ethereum node. Log queries go through a
Web3 HTTPProvider; the trace request is a raw JSON-RPC POST over the same
requests session, because it carries a custom tracer program that web3
has no typed method for.

Every call is a single best-effort round trip: retries are left to callers.
"""

from typing import Any, Dict, List, Optional
import itertools
import logging

import requests
from web3 import Web3
from web3.exceptions import Web3Exception

from ..config.node_config import JSONRPC_VERSION, LOGS_METHOD, REQUEST_TIMEOUT
from .extractors.base import normalize_hash
from .extractors.exceptions import NodeCommunicationError

logger = logging.getLogger(__name__)


class NodeClient:
    """
    Thin JSON-RPC client bound to one node endpoint.

    Args:
        endpoint: HTTP(S) URL of the node
        timeout: Per-request timeout in seconds
        session: Optional pre-configured requests session
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        if not endpoint:
            raise ValueError("Node endpoint is required")
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()
        self._ids = itertools.count()

        self.w3 = Web3(Web3.HTTPProvider(
            endpoint,
            request_kwargs={'timeout': timeout},
            session=self.session,
            exception_retry_configuration=None,
        ))
        logger.debug(f"NodeClient bound to {endpoint[:50]}")

    def next_id(self) -> int:
        return next(self._ids)

    def get_logs(self, block_hash: str, topics: List[Optional[str]]) -> List[Dict[str, Any]]:
        """
        Fetch all logs of one block matching a topic filter.

        Raises:
            NodeCommunicationError: If the query cannot be completed
        """
        log_filter = {
            'blockHash': normalize_hash(block_hash),
            'topics': topics,
        }
        try:
            logs = self.w3.eth.get_logs(log_filter)
        except (requests.exceptions.RequestException, Web3Exception) as e:
            raise NodeCommunicationError(
                f"Log query failed: {e}",
                block_hash=log_filter['blockHash'],
                method=LOGS_METHOD,
                original_error=e,
            ) from e

        logger.debug(f"{LOGS_METHOD} returned {len(logs)} logs for {log_filter['blockHash'][:18]}...")
        return [dict(log) for log in logs]

    def rpc_call(self, method: str, params: List[Any]) -> Dict[str, Any]:
        """
        POST one JSON-RPC request and return the decoded response envelope.

        The envelope is returned as-is (including any "error" member) so the
        caller can classify node-reported failures itself.

        Raises:
            NodeCommunicationError: On connection errors, timeouts or HTTP error statuses
            ValueError: If the response body is not JSON
        """
        payload = {
            'jsonrpc': JSONRPC_VERSION,
            'id': self.next_id(),
            'method': method,
            'params': params,
        }
        try:
            response = self.session.post(
                self.endpoint,
                json=payload,
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise NodeCommunicationError(
                f"{method} returned HTTP {status}",
                method=method,
                status_code=status,
                original_error=e,
            ) from e
        except requests.exceptions.RequestException as e:
            raise NodeCommunicationError(
                f"{method} request failed: {e}",
                method=method,
                original_error=e,
            ) from e

        body = response.json()
        if not isinstance(body, dict):
            raise ValueError(f"{method} response is not a JSON object")
        return body
