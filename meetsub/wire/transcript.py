from __future__ import annotations

import logging
import random
import string
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from meetsub.contracts import DeviceInfo, TranscriptRecord
from meetsub.wire.reader import RecordReader, WireFormatError, WireType

logger = logging.getLogger(__name__)

UNKNOWN_SPEAKER = "Unknown"


class TranscriptField(IntEnum):
    MESSAGE_ID = 1
    SPEAKER = 2
    TEXT = 3
    TIMESTAMP = 4
    IS_FINAL = 5
    LANGUAGE_CODE = 6
    VERSION = 7


class SpeakerField(IntEnum):
    SPEAKER_ID = 1
    SPEAKER_NAME = 2


_WRAPPER_INNER_FIELD = 1


@dataclass
class _PartialRecord:
    message_id: str = ""
    speaker_id: str = ""
    speaker_name: str = ""
    text: str = ""
    timestamp: Optional[int] = None
    is_final: bool = False
    language_code: str = ""
    version: Optional[int] = None

    def usable(self) -> bool:
        return bool(self.text or self.speaker_name)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _synth_message_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"msg_{_now_ms()}_{suffix}"


def _decode_speaker(data: bytes, rec: _PartialRecord) -> None:
    reader = RecordReader(data)
    try:
        while reader.has_more():
            field_no, wire_type = reader.read_tag()
            if wire_type != WireType.LENGTH_DELIMITED:
                reader.skip(wire_type)
                continue
            value = reader.read_string()
            if field_no == SpeakerField.SPEAKER_ID:
                rec.speaker_id = value
            elif field_no == SpeakerField.SPEAKER_NAME:
                rec.speaker_name = value
    except WireFormatError as e:
        # Keep whatever identity fields were already read.
        logger.debug("speaker_decode_partial", extra={"error": str(e)})


def _read_field(reader: RecordReader, rec: _PartialRecord, field_no: int, wire_type: int) -> None:
    try:
        field = TranscriptField(field_no)
    except ValueError:
        reader.skip(wire_type)
        return

    if field is TranscriptField.MESSAGE_ID and wire_type == WireType.LENGTH_DELIMITED:
        rec.message_id = reader.read_string()
    elif field is TranscriptField.SPEAKER and wire_type == WireType.LENGTH_DELIMITED:
        _decode_speaker(reader.read_length_delimited(), rec)
    elif field is TranscriptField.TEXT and wire_type == WireType.LENGTH_DELIMITED:
        rec.text = reader.read_string()
    elif field is TranscriptField.TIMESTAMP and wire_type == WireType.VARINT:
        rec.timestamp = reader.read_varint64()
    elif field is TranscriptField.TIMESTAMP and wire_type == WireType.FIXED64:
        rec.timestamp = reader.read_fixed64()
    elif field is TranscriptField.IS_FINAL and wire_type == WireType.VARINT:
        rec.is_final = reader.read_varint() != 0
    elif field is TranscriptField.LANGUAGE_CODE and wire_type == WireType.LENGTH_DELIMITED:
        rec.language_code = reader.read_string()
    elif field is TranscriptField.VERSION and wire_type == WireType.VARINT:
        rec.version = reader.read_varint()
    else:
        reader.skip(wire_type)


def _parse_record(data: bytes, *, strict: bool) -> Optional[_PartialRecord]:
    """
    Walk one transcript record.

    A reader failure ends the walk: in strict mode the record is discarded,
    otherwise the fields read up to that point are kept.
    """
    rec = _PartialRecord()
    reader = RecordReader(data)
    try:
        while reader.has_more():
            field_no, wire_type = reader.read_tag()
            _read_field(reader, rec, field_no, wire_type)
    except WireFormatError as e:
        logger.debug("transcript_decode_failed", extra={"error": str(e), "strict": strict})
        if strict:
            return None
    return rec if rec.usable() else None


def _unwrap(data: bytes) -> Optional[bytes]:
    reader = RecordReader(data)
    inner: Optional[bytes] = None
    try:
        while reader.has_more():
            field_no, wire_type = reader.read_tag()
            if field_no == _WRAPPER_INNER_FIELD and wire_type == WireType.LENGTH_DELIMITED:
                inner = reader.read_length_delimited()
            else:
                reader.skip(wire_type)
    except WireFormatError as e:
        logger.debug("transcript_wrapper_failed", extra={"error": str(e)})
        return None
    return inner


def _finish(rec: _PartialRecord) -> TranscriptRecord:
    return TranscriptRecord(
        message_id=rec.message_id or _synth_message_id(),
        speaker_id=rec.speaker_id,
        speaker_name=rec.speaker_name or UNKNOWN_SPEAKER,
        text=rec.text,
        timestamp=rec.timestamp if rec.timestamp is not None else _now_ms(),
        is_final=rec.is_final,
        language_code=rec.language_code or None,
        version=rec.version,
    )


def decode_transcript(data: bytes | bytearray | memoryview) -> Optional[TranscriptRecord]:
    """
    Decode one transcript frame. Never raises on malformed input.

    The record usually sits inside a one-field wrapper; when the wrapper is
    missing or yields nothing usable the bytes are decoded as the record itself.
    """
    raw = bytes(data)
    if not raw:
        return None
    inner = _unwrap(raw)
    rec = _parse_record(inner, strict=True) if inner else None
    if rec is None:
        rec = _parse_record(raw, strict=False)
    if rec is None:
        return None
    return _finish(rec)


def _decode_device_entry(data: bytes) -> Optional[DeviceInfo]:
    reader = RecordReader(data)
    device_id = ""
    display_name = ""
    try:
        while reader.has_more():
            field_no, wire_type = reader.read_tag()
            if wire_type != WireType.LENGTH_DELIMITED:
                reader.skip(wire_type)
                continue
            value = reader.read_string()
            if field_no == 1:
                device_id = value
            elif field_no in (2, 3):
                display_name = value
    except WireFormatError:
        return None
    if device_id and display_name:
        return DeviceInfo(device_id=device_id, display_name=display_name)
    return None


def decode_device_info(data: bytes | bytearray | memoryview) -> list[DeviceInfo]:
    devices: list[DeviceInfo] = []
    reader = RecordReader(data)
    try:
        while reader.has_more():
            _, wire_type = reader.read_tag()
            if wire_type != WireType.LENGTH_DELIMITED:
                reader.skip(wire_type)
                continue
            entry = _decode_device_entry(reader.read_length_delimited())
            if entry is not None:
                devices.append(entry)
    except WireFormatError as e:
        logger.debug("device_info_decode_partial", extra={"error": str(e), "decoded": len(devices)})
    return devices
