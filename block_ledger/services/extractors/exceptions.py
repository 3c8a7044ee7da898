"""
Block Ledger Exceptions - Error taxonomy for the extraction pipelines.

Request-level errors (NodeCommunicationError, TraceExecutionError) abort the
pipeline that raised them. Record-level errors (MalformedEventError,
MalformedTraceError) are raised per entry, logged, and collected as skipped
diagnostics while the surrounding scan continues.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


STAGE_REQUEST = "request"
STAGE_EXECUTION = "execution"
STAGE_DECODE = "decode"


class BlockLedgerError(Exception):
    """Base exception for all block ledger extraction errors."""

    default_stage: Optional[str] = None

    def __init__(
        self,
        message: str,
        pipeline: Optional[str] = None,
        stage: Optional[str] = None,
        block_hash: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.pipeline = pipeline
        self.stage = stage or self.default_stage
        self.block_hash = block_hash
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "pipeline": self.pipeline,
            "stage": self.stage,
            "block_hash": self.block_hash,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.pipeline:
            parts.append(f"[pipeline={self.pipeline}]")
        if self.stage:
            parts.append(f"[stage={self.stage}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class NodeCommunicationError(BlockLedgerError):
    """Transport or connection failure while talking to the node."""

    default_stage = STAGE_REQUEST

    def __init__(
        self,
        message: str,
        pipeline: Optional[str] = None,
        block_hash: Optional[str] = None,
        method: Optional[str] = None,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, pipeline, None, block_hash, original_error, context)
        self.method = method
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "method": self.method,
            "status_code": self.status_code,
        })
        return data


class TraceExecutionError(BlockLedgerError):
    """The node reported an execution error for the trace request."""

    default_stage = STAGE_EXECUTION

    def __init__(
        self,
        message: str,
        pipeline: Optional[str] = None,
        block_hash: Optional[str] = None,
        node_error: Optional[Any] = None,
        transaction_index: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, pipeline, None, block_hash, None, context)
        self.node_error = node_error
        self.transaction_index = transaction_index

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "node_error": self.node_error,
            "transaction_index": self.transaction_index,
        })
        return data


class MalformedEventError(BlockLedgerError):
    """A log entry does not conform to the transfer event layout."""

    default_stage = STAGE_DECODE

    def __init__(
        self,
        message: str,
        pipeline: Optional[str] = None,
        block_hash: Optional[str] = None,
        log_index: Optional[int] = None,
        raw_log: Optional[Any] = None,
        original_error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, pipeline, None, block_hash, original_error, context)
        self.log_index = log_index
        self.raw_log = raw_log

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "log_index": self.log_index,
            "raw_log": str(self.raw_log)[:500] if self.raw_log else None,
        })
        return data


class MalformedTraceError(BlockLedgerError):
    """The trace response (or one of its records) has an unexpected shape."""

    default_stage = STAGE_DECODE

    def __init__(
        self,
        message: str,
        pipeline: Optional[str] = None,
        block_hash: Optional[str] = None,
        transaction_index: Optional[int] = None,
        call_index: Optional[int] = None,
        field_name: Optional[str] = None,
        raw_data: Optional[Any] = None,
        original_error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, pipeline, None, block_hash, original_error, context)
        self.transaction_index = transaction_index
        self.call_index = call_index
        self.field_name = field_name
        self.raw_data = raw_data

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "transaction_index": self.transaction_index,
            "call_index": self.call_index,
            "field_name": self.field_name,
            "raw_data": str(self.raw_data)[:500] if self.raw_data else None,
        })
        return data
