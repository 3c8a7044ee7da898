"""
Unit tests for address and amount normalization.

Tests:
- Address construction from every supported encoding
- Idempotent, representation-independent normalization
- Fail-closed decoding of unknown encodings
- Amount parsing to canonical decimal strings
"""
import pytest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from block_ledger.services.extractors.base import (
    Address,
    normalize_hash,
    parse_amount,
    parse_quantity,
)
from conftest import ADDR_A, ADDR_D, BLOCK_HASH, byte_list, dec, pad


class TestAddressEncodings:
    """Every wire encoding of the same 20 bytes yields the same Address."""

    def test_word_and_decimal_forms_are_equal(self):
        """Padded 32-byte topic and decimal stack value decode to the same address."""
        from_word = Address.from_word(pad(ADDR_D))
        from_decimal = Address.from_decimal(dec(ADDR_D))
        assert from_word == from_decimal
        assert from_word.checksum == ADDR_D

    def test_parse_accepts_all_known_encodings(self):
        expected = Address(bytes.fromhex(ADDR_A[2:]))
        encodings = [
            ADDR_A,
            ADDR_A.lower(),
            pad(ADDR_A),
            dec(ADDR_A),
            int(ADDR_A, 16),
            bytes.fromhex(ADDR_A[2:]),
            bytes.fromhex(pad(ADDR_A)[2:]),
            byte_list(ADDR_A),
            {str(i): b for i, b in enumerate(byte_list(ADDR_A))},
        ]
        for value in encodings:
            assert Address.parse(value) == expected, f"encoding {value!r} decoded differently"

    def test_normalization_is_idempotent(self):
        address = Address.parse(dec(ADDR_A))
        assert Address.parse(address) is address
        assert Address.parse(address.hex) == address
        assert Address.parse(address.to_word()) == address

    def test_to_word_is_left_padded(self):
        address = Address.parse(ADDR_A)
        assert address.to_word().hex() == pad(ADDR_A)[2:]
        assert len(address.to_word()) == 32

    def test_small_decimal_is_left_padded_to_20_bytes(self):
        """Precompile-style addresses keep their leading zero bytes."""
        address = Address.from_decimal("4")
        assert address.hex == "0x" + "00" * 19 + "04"

    def test_str_is_checksum(self):
        assert str(Address.parse(ADDR_A.lower())) == ADDR_A


class TestAddressStrictness:
    """High-order bytes of a word are rejected for ABI data but masked for stack operands."""

    def test_strict_word_rejects_dirty_high_bytes(self):
        dirty = "0x" + "ff" * 12 + ADDR_A[2:].lower()
        with pytest.raises(ValueError):
            Address.from_word(dirty)

    def test_lenient_word_keeps_low_20_bytes(self):
        dirty = "0x" + "ff" * 12 + ADDR_A[2:].lower()
        assert Address.from_word(dirty, strict=False) == Address.parse(ADDR_A)

    def test_lenient_decimal_masks_large_integer(self):
        dirty = (0xABCD << 160) | int(ADDR_A, 16)
        assert Address.from_decimal(str(dirty), strict=False) == Address.parse(ADDR_A)
        with pytest.raises(ValueError):
            Address.from_decimal(str(dirty))

    def test_integer_beyond_word_is_rejected(self):
        with pytest.raises(ValueError):
            Address.from_int(2 ** 256, strict=False)


class TestAddressRejections:
    """Unknown encodings fail closed with ValueError."""

    @pytest.mark.parametrize("value", [
        None,
        True,
        1.5,
        "",
        "not-an-address",
        "0x1234",
        "0x" + "zz" * 20,
        [1, 2, 3],
        [256] * 20,
        {"a": 1},
        b"\x01" * 21,
        -1,
    ])
    def test_invalid_values(self, value):
        with pytest.raises(ValueError):
            Address.parse(value)

    def test_wrong_raw_length(self):
        with pytest.raises(ValueError):
            Address(b"\x00" * 19)


class TestAmounts:
    """Amounts are carried as canonical decimal strings."""

    def test_decimal_hex_and_int_forms(self):
        assert parse_amount("1000") == "1000"
        assert parse_amount("0x3e8") == "1000"
        assert parse_amount(1000) == "1000"
        assert parse_amount("0") == "0"
        assert parse_amount("0x0") == "0"
        assert parse_amount("007") == "7"

    def test_amount_beyond_64_bits(self):
        big = 2 ** 255 + 12345
        assert parse_amount(str(big)) == str(big)
        assert parse_amount(hex(big)) == str(big)

    @pytest.mark.parametrize("value", [-1, "-5", 1.0, True, "abc", "0x", "", None, "1e18"])
    def test_invalid_amounts(self, value):
        with pytest.raises(ValueError):
            parse_amount(value)

    def test_parse_quantity(self):
        assert parse_quantity("0x3") == 3
        assert parse_quantity(3) == 3
        assert parse_quantity("3") == 3


class TestHashes:
    def test_normalize_hash_lowercases(self):
        assert normalize_hash(BLOCK_HASH.upper().replace("0X", "0x")) == BLOCK_HASH
        assert normalize_hash(bytes.fromhex(BLOCK_HASH[2:])) == BLOCK_HASH

    def test_short_hash_rejected(self):
        with pytest.raises(ValueError):
            normalize_hash("0x1234")
