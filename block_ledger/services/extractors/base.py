"""
Base data structures for block ledger extraction.
Provides the address/amount primitives and the transfer records shared by
the log decoder, the trace collector and the normalizer.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple, Union
import re
import logging

import pandas as pd
from eth_utils import decode_hex, to_checksum_address

from ...config.node_config import ADDRESS_SIZE, WORD_SIZE

logger = logging.getLogger(__name__)

_DECIMAL_RE = re.compile(r"^[0-9]+$")
_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")

ADDRESS_MAX = 2 ** (ADDRESS_SIZE * 8)
WORD_MAX = 2 ** (WORD_SIZE * 8)
ADDRESS_PADDING = WORD_SIZE - ADDRESS_SIZE


# ============================================================================
# ENUMS
# ============================================================================

class TransferKind(Enum):
    """Kind tag carried by every ledger entry"""
    TOKEN = "token"
    NATIVE = "native"


# ============================================================================
# PRIMITIVES
# ============================================================================

def to_bytes(value: Union[bytes, bytearray, str]) -> bytes:
    """Convert HexBytes/bytes or a hex string (with or without 0x) to bytes"""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return decode_hex(value.strip())
    raise ValueError(f"Expected bytes or hex string, got {type(value).__name__}")


def normalize_hash(value: Union[bytes, str]) -> str:
    """Normalize a 32-byte block/transaction hash to lowercase 0x-prefixed hex"""
    raw = to_bytes(value)
    if len(raw) != WORD_SIZE:
        raise ValueError(f"Hash must be {WORD_SIZE} bytes, got {len(raw)}")
    return "0x" + raw.hex()


def parse_quantity(value: Union[int, str]) -> int:
    """Parse a JSON-RPC quantity (int, 0x-hex or decimal string) into an int"""
    if isinstance(value, bool):
        raise ValueError("Boolean is not a quantity")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text[:2].lower() == "0x" and len(text) > 2 and _HEX_RE.match(text[2:]):
            return int(text[2:], 16)
        if _DECIMAL_RE.match(text):
            return int(text)
    raise ValueError(f"Invalid quantity: {value!r}")


def parse_amount(value: Union[int, str]) -> str:
    """
    Normalize a native value or token quantity to a canonical decimal string.

    Accepts Python ints, decimal strings and 0x-prefixed hex strings. Floats
    and booleans are rejected: JSON numbers that went through a float cannot
    be trusted to carry an exact wei amount.

    Raises:
        ValueError: If the value is negative or not an integer encoding
    """
    if isinstance(value, (bool, float)):
        raise ValueError(f"Amount must be an integer encoding, got {type(value).__name__}")
    amount = parse_quantity(value)
    if amount < 0:
        raise ValueError(f"Amount must be non-negative, got {amount}")
    return str(amount)


@dataclass(frozen=True, repr=False)
class Address:
    """
    A 20-byte account address.

    Every constructor normalizes to the same 20 raw bytes, so an address
    decoded from a padded log topic compares equal to the same address
    decoded from a decimal-encoded stack value.
    """
    raw: bytes

    def __post_init__(self):
        if not isinstance(self.raw, (bytes, bytearray)):
            raise ValueError(f"Address bytes expected, got {type(self.raw).__name__}")
        if len(self.raw) != ADDRESS_SIZE:
            raise ValueError(f"Address must be {ADDRESS_SIZE} bytes, got {len(self.raw)}")
        object.__setattr__(self, "raw", bytes(self.raw))

    # --- constructors -------------------------------------------------------

    @classmethod
    def from_word(cls, word: Union[bytes, str], strict: bool = True) -> "Address":
        """
        Build from a 32-byte word holding the address in its low 20 bytes.

        With strict=True (ABI-encoded topics) the high 12 bytes must be zero.
        With strict=False (EVM stack operands) they are dropped, matching the
        way the call opcode masks its address operand.
        """
        raw = to_bytes(word)
        if len(raw) != WORD_SIZE:
            raise ValueError(f"Word must be {WORD_SIZE} bytes, got {len(raw)}")
        if strict and any(raw[:ADDRESS_PADDING]):
            raise ValueError("Word has non-zero bytes above the address")
        return cls(raw[ADDRESS_PADDING:])

    @classmethod
    def from_int(cls, value: int, strict: bool = True) -> "Address":
        """Build from the integer whose big-endian bytes are the address"""
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Integer expected, got {type(value).__name__}")
        if value < 0 or value >= WORD_MAX:
            raise ValueError(f"Integer out of word range: {value}")
        if value >= ADDRESS_MAX:
            if strict:
                raise ValueError("Integer does not fit in an address")
            value %= ADDRESS_MAX
        return cls(value.to_bytes(ADDRESS_SIZE, "big"))

    @classmethod
    def from_decimal(cls, text: str, strict: bool = True) -> "Address":
        """Build from a decimal string encoding the address integer"""
        text = text.strip()
        if not _DECIMAL_RE.match(text):
            raise ValueError(f"Not a decimal string: {text!r}")
        return cls.from_int(int(text), strict=strict)

    @classmethod
    def from_hex(cls, text: str, strict: bool = True) -> "Address":
        """Build from 0x + 40 hex digits (address) or 0x + 64 hex digits (word)"""
        text = text.strip()
        if text[:2].lower() != "0x" or not _HEX_RE.match(text[2:]):
            raise ValueError(f"Not a 0x-prefixed hex string: {text!r}")
        digits = text[2:]
        if len(digits) == ADDRESS_SIZE * 2:
            return cls(bytes.fromhex(digits))
        if len(digits) == WORD_SIZE * 2:
            return cls.from_word(bytes.fromhex(digits), strict=strict)
        raise ValueError(f"Hex address must have 40 or 64 digits, got {len(digits)}")

    @classmethod
    def from_bytes(cls, data: Union[bytes, bytearray], strict: bool = True) -> "Address":
        """Build from 20 raw bytes or a 32-byte word"""
        data = bytes(data)
        if len(data) == ADDRESS_SIZE:
            return cls(data)
        if len(data) == WORD_SIZE:
            return cls.from_word(data, strict=strict)
        raise ValueError(f"Address bytes must be {ADDRESS_SIZE} or {WORD_SIZE} long, got {len(data)}")

    @classmethod
    def parse(cls, value: Any, strict: bool = True) -> "Address":
        """
        Decode any known wire encoding of an address.

        Encodings are tried in a fixed order: Address, raw bytes, list of
        byte values (JS tracer byte arrays), index-keyed object (serialized
        typed arrays), 0x-hex string, decimal string, integer. Anything else
        is rejected rather than guessed.

        Raises:
            ValueError: If no encoding matches
        """
        if isinstance(value, Address):
            return value
        if isinstance(value, (bytes, bytearray)):
            return cls.from_bytes(value, strict=strict)
        if isinstance(value, (list, tuple)):
            return cls.from_bytes(_byte_values(value), strict=strict)
        if isinstance(value, dict):
            keys = [str(i) for i in range(len(value))]
            if set(value.keys()) != set(keys):
                raise ValueError("Object is not an index-keyed byte array")
            return cls.from_bytes(_byte_values([value[k] for k in keys]), strict=strict)
        if isinstance(value, str):
            text = value.strip()
            if text[:2].lower() == "0x":
                return cls.from_hex(text, strict=strict)
            if _DECIMAL_RE.match(text):
                return cls.from_decimal(text, strict=strict)
            raise ValueError(f"Unrecognized address string: {value!r}")
        if isinstance(value, int) and not isinstance(value, bool):
            return cls.from_int(value, strict=strict)
        raise ValueError(f"Unsupported address encoding: {type(value).__name__}")

    # --- output forms -------------------------------------------------------

    @property
    def hex(self) -> str:
        return "0x" + self.raw.hex()

    @property
    def checksum(self) -> str:
        return to_checksum_address(self.hex)

    def to_word(self) -> bytes:
        """Left-zero-padded 32-byte ABI word"""
        return b"\x00" * ADDRESS_PADDING + self.raw

    def __str__(self) -> str:
        return self.checksum

    def __repr__(self) -> str:
        return f"Address('{self.checksum}')"


def _byte_values(values) -> bytes:
    if not all(isinstance(v, int) and not isinstance(v, bool) and 0 <= v <= 255 for v in values):
        raise ValueError("Byte array must contain integers in 0..255")
    return bytes(values)


def format_address(address: Optional[Address], length: int = 8) -> str:
    """Format address for display"""
    if address is None:
        return "(none)"
    text = address.checksum
    return f"{text[:length]}...{text[-4:]}"


# ============================================================================
# TRANSFER RECORDS
# ============================================================================

@dataclass(frozen=True)
class TokenTransfer:
    """Fungible-token transfer decoded from one Transfer log entry"""
    from_address: Address
    to_address: Address
    amount: str
    log_index: int
    token_address: Optional[Address] = None
    transaction_hash: Optional[str] = None
    transaction_index: Optional[int] = None

    kind: ClassVar[TransferKind] = TransferKind.TOKEN

    @property
    def is_zero(self) -> bool:
        return self.amount == "0"

    def to_dict(self) -> dict:
        return {
            'kind': self.kind.value,
            'from': self.from_address.checksum,
            'to': self.to_address.checksum,
            'amount': self.amount,
            'log_index': self.log_index,
            'call_depth': None,
            'transaction_index': self.transaction_index,
            'transaction_hash': self.transaction_hash,
            'token_address': self.token_address.checksum if self.token_address else None,
        }


@dataclass(frozen=True)
class NativeTransfer:
    """
    Native-asset movement recovered from the execution trace.

    call_depth is 0 for the transaction itself and 1 for every CALL the
    tracer recorded inside it. to_address is None only for contract
    creations the node reports without a destination.
    """
    from_address: Address
    to_address: Optional[Address]
    amount: str
    call_depth: int
    transaction_index: int = 0
    transaction_hash: Optional[str] = None

    kind: ClassVar[TransferKind] = TransferKind.NATIVE

    @property
    def is_zero(self) -> bool:
        return self.amount == "0"

    def to_dict(self) -> dict:
        return {
            'kind': self.kind.value,
            'from': self.from_address.checksum,
            'to': self.to_address.checksum if self.to_address else None,
            'amount': self.amount,
            'log_index': None,
            'call_depth': self.call_depth,
            'transaction_index': self.transaction_index,
            'transaction_hash': self.transaction_hash,
            'token_address': None,
        }


Transfer = Union[TokenTransfer, NativeTransfer]

LEDGER_COLUMNS = [
    'position', 'kind', 'from', 'to', 'amount', 'log_index', 'call_depth',
    'transaction_index', 'transaction_hash', 'token_address',
]


@dataclass(frozen=True)
class LedgerEntry:
    """One tagged transfer at its position in the ledger"""
    kind: TransferKind
    transfer: Transfer
    position: int

    def to_dict(self) -> dict:
        record = {'position': self.position}
        record.update(self.transfer.to_dict())
        return record


@dataclass(frozen=True)
class Ledger:
    """
    Ordered view of every value movement in one block.

    Token transfers come first in log-index order, followed by native
    transfers in trace emission order. skipped holds the diagnostics of
    records the extractors could not decode.
    """
    entries: Tuple[LedgerEntry, ...] = ()
    block_hash: Optional[str] = None
    skipped: Tuple[Dict[str, Any], ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[LedgerEntry]:
        return iter(self.entries)

    @property
    def token_transfers(self) -> List[TokenTransfer]:
        return [e.transfer for e in self.entries if e.kind is TransferKind.TOKEN]

    @property
    def native_transfers(self) -> List[NativeTransfer]:
        return [e.transfer for e in self.entries if e.kind is TransferKind.NATIVE]

    @property
    def is_complete(self) -> bool:
        """True when no record was skipped during extraction"""
        return not self.skipped

    def to_records(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self.entries]

    def to_dataframe(self) -> pd.DataFrame:
        """Tabular view; amounts stay decimal strings to avoid int64 overflow"""
        return pd.DataFrame(self.to_records(), columns=LEDGER_COLUMNS)

    def summary(self) -> Dict[str, Any]:
        natives = self.native_transfers
        return {
            'block_hash': self.block_hash,
            'token_transfers': len(self.entries) - len(natives),
            'native_transfers': len(natives),
            'zero_value_native': sum(1 for t in natives if t.is_zero),
            'skipped': len(self.skipped),
        }
