"""
Binary codec for the booking program's instructions and accounts

Instruction data is an 8-byte discriminator followed by Borsh-encoded
arguments. Accounts start with an 8-byte discriminator followed by
fixed-size little-endian fields.
"""
import hashlib
import struct
from typing import List, Sequence

from solders.pubkey import Pubkey

DISCRIMINATOR_SIZE = 8
PUBKEY_SIZE = 32


class RecordDecodeError(ValueError):
    """Raised when account data does not match the expected layout"""
    pass


def instruction_discriminator(name: str) -> bytes:
    """Discriminator for a program instruction (snake_case name)"""
    return hashlib.sha256(f"global:{name}".encode()).digest()[:DISCRIMINATOR_SIZE]


def account_discriminator(name: str) -> bytes:
    """Discriminator for an account type (CamelCase name)"""
    return hashlib.sha256(f"account:{name}".encode()).digest()[:DISCRIMINATOR_SIZE]


def pack_u8(value: int) -> bytes:
    return struct.pack("<B", value)


def pack_u32(value: int) -> bytes:
    return struct.pack("<I", value)


def pack_u64(value: int) -> bytes:
    return struct.pack("<Q", value)


def pack_string(value: str) -> bytes:
    """Borsh string: u32 byte length followed by UTF-8 bytes"""
    raw = value.encode("utf-8")
    return pack_u32(len(raw)) + raw


def pack_pubkey_vec(keys: Sequence[Pubkey]) -> bytes:
    """Borsh Vec<Pubkey>: u32 count followed by 32 bytes per key"""
    return pack_u32(len(keys)) + b"".join(bytes(key) for key in keys)


def pack_fixed_bytes(raw: bytes, size: int) -> bytes:
    """Truncate or zero-pad to exactly ``size`` bytes"""
    return raw[:size].ljust(size, b"\x00")


class ByteReader:
    """Sequential little-endian reader over a byte buffer"""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = bytes(data)
        self.offset = offset

    def _take(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self.data):
            raise RecordDecodeError(
                f"Unexpected end of data: need {size} bytes at offset {self.offset}, have {len(self.data) - self.offset}"
            )
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def read_bytes(self, size: int) -> bytes:
        return self._take(size)

    def read_u8(self) -> int:
        return struct.unpack("<B", self._take(1))[0]

    def read_u32(self) -> int:
        return struct.unpack("<I", self._take(4))[0]

    def read_u64(self) -> int:
        return struct.unpack("<Q", self._take(8))[0]

    def read_pubkey(self) -> Pubkey:
        return Pubkey(self._take(PUBKEY_SIZE))

    def read_string(self) -> str:
        length = self.read_u32()
        return self._take(length).decode("utf-8", errors="replace")

    def read_pubkey_vec(self) -> List[Pubkey]:
        count = self.read_u32()
        return [self.read_pubkey() for _ in range(count)]

    def remaining(self) -> int:
        return len(self.data) - self.offset


def expect_discriminator(data: bytes, discriminator: bytes, record_type: str) -> ByteReader:
    """Check the leading discriminator and return a reader positioned after it"""
    if len(data) < DISCRIMINATOR_SIZE or bytes(data[:DISCRIMINATOR_SIZE]) != discriminator:
        raise RecordDecodeError(f"Account data is not a {record_type} record")
    return ByteReader(data, DISCRIMINATOR_SIZE)


def decode_fixed_text(raw: bytes, length: int, capacity: int, field: str) -> str:
    """Decode the first ``length`` bytes of a fixed-capacity text buffer"""
    if length > capacity:
        raise RecordDecodeError(f"{field} length {length} exceeds capacity {capacity}")
    return raw[:length].decode("utf-8", errors="replace")
