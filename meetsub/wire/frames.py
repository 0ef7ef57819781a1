from __future__ import annotations

from typing import Iterator

from meetsub.wire.reader import RecordReader, WireFormatError


def iter_frames(data: bytes) -> Iterator[bytes]:
    """
    Split a capture file of varint-length-prefixed frames.
    A truncated trailing frame is dropped.
    """
    reader = RecordReader(data)
    while reader.has_more():
        try:
            yield reader.read_length_delimited()
        except WireFormatError:
            return


def encode_frame(payload: bytes) -> bytes:
    n = len(payload)
    prefix = bytearray()
    while True:
        byte = n & 0x7F
        n >>= 7
        if n:
            prefix.append(byte | 0x80)
        else:
            prefix.append(byte)
            break
    return bytes(prefix) + payload
