from __future__ import annotations

from enum import IntEnum

_MAX_VARINT_BYTES = 10
_U32 = 0xFFFFFFFF
_U64 = 0xFFFFFFFFFFFFFFFF


class WireType(IntEnum):
    VARINT = 0
    FIXED64 = 1
    LENGTH_DELIMITED = 2
    FIXED32 = 5


class WireFormatError(ValueError):
    """Base class for every failure raised while reading a record."""


class TruncatedInput(WireFormatError):
    pass


class UnknownWireType(WireFormatError):
    def __init__(self, wire_type: int) -> None:
        super().__init__(f"unknown wire type: {wire_type}")
        self.wire_type = wire_type


class MalformedVarint(WireFormatError):
    pass


class RecordReader:
    """
    Read cursor over an immutable byte buffer.
    Only the cursor moves; the buffer itself is never modified.
    """

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        self._data = bytes(data)
        self._pos = 0

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def has_more(self) -> bool:
        return self._pos < len(self._data)

    def _take(self, n: int) -> bytes:
        if n < 0 or n > self.remaining:
            raise TruncatedInput(
                f"need {n} bytes at offset {self._pos}, {self.remaining} remaining"
            )
        out = self._data[self._pos : self._pos + n]
        self._pos += n
        return out

    def read_varint(self) -> int:
        return self._read_raw_varint() & _U32

    def read_varint64(self) -> int:
        """Unsigned varint kept to 64 bits, for millisecond timestamps."""
        return self._read_raw_varint() & _U64

    def _read_raw_varint(self) -> int:
        result = 0
        shift = 0
        for _ in range(_MAX_VARINT_BYTES):
            if self._pos >= len(self._data):
                raise TruncatedInput(f"varint runs past end of buffer at offset {self._pos}")
            byte = self._data[self._pos]
            self._pos += 1
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result
            shift += 7
        raise MalformedVarint(f"varint longer than {_MAX_VARINT_BYTES} bytes")

    def read_fixed32(self) -> int:
        return int.from_bytes(self._take(4), "little")

    def read_fixed64(self) -> int:
        return int.from_bytes(self._take(8), "little")

    def read_length_delimited(self) -> bytes:
        # Peer-controlled length: the unmasked value is checked against what is left.
        length = self._read_raw_varint()
        if length > self.remaining:
            raise TruncatedInput(
                f"length prefix {length} exceeds {self.remaining} remaining bytes"
            )
        return self._take(length)

    def read_string(self) -> str:
        return self.read_length_delimited().decode("utf-8", errors="replace")

    def read_tag(self) -> tuple[int, int]:
        tag = self._read_raw_varint()
        return tag >> 3, tag & 0x7

    def skip(self, wire_type: int) -> None:
        if wire_type == WireType.VARINT:
            self.read_varint()
        elif wire_type == WireType.FIXED64:
            self._take(8)
        elif wire_type == WireType.LENGTH_DELIMITED:
            self.read_length_delimited()
        elif wire_type == WireType.FIXED32:
            self._take(4)
        else:
            raise UnknownWireType(wire_type)
