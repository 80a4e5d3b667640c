"""Binary/text classification by content inspection.

Follows the usual isbinaryfile heuristic: BOM and header checks, any NUL byte,
then the share of bytes that are neither printable ASCII, common control
characters (7-14) nor part of a UTF-8 sequence. Samples with a few suspicious
bytes get one more look as a protobuf message.
"""
from __future__ import annotations

from pathlib import Path

SAMPLE_SIZE = 512

_TEXT_BOMS = (
    b"\xef\xbb\xbf",
    b"\x84\x31\x95\x33",  # GB 18030
)
# UTF-16/32 text is copied verbatim; a UTF-8 line pass would corrupt it.
_BINARY_BOMS = (
    b"\x00\x00\xfe\xff",
    b"\xff\xfe\x00\x00",
    b"\xfe\xff",
    b"\xff\xfe",
)

# Once this many bytes have been read, a high suspicious share decides early.
_EARLY_DECISION = 32


def _is_suspicious(b: int) -> bool:
    return (b < 7 or b > 14) and (b < 32 or b > 127)


def _is_continuation(sample: bytes, start: int, count: int) -> bool:
    return all(0x80 <= b <= 0xBF for b in sample[start : start + count])


def _over_threshold(suspicious: int, total: int) -> bool:
    return suspicious * 100 > total * 10


def _read_varint(sample: bytes, pos: int) -> tuple[int, int] | None:
    value = 0
    shift = 0
    while pos < len(sample) and shift < 64:
        b = sample[pos]
        pos += 1
        value |= (b & 0x7F) << shift
        if not b & 0x80:
            return value, pos
        shift += 7
    return None


def _looks_like_protobuf(sample: bytes) -> bool:
    """Walk the sample as protobuf wire format; True if it parses as fields.

    A field cut off at the end of a full-size sample counts as parsed.
    """
    truncated_ok = len(sample) >= SAMPLE_SIZE
    pos = 0
    fields = 0
    while pos < len(sample):
        key = _read_varint(sample, pos)
        if key is None:
            return truncated_ok and fields > 0
        tag, pos = key
        wire_type, field_number = tag & 0x7, tag >> 3
        if field_number == 0:
            return False
        if wire_type == 0:
            value = _read_varint(sample, pos)
            if value is None:
                return truncated_ok and fields > 0
            pos = value[1]
        elif wire_type in (1, 5):
            pos += 8 if wire_type == 1 else 4
        elif wire_type == 2:
            length = _read_varint(sample, pos)
            if length is None:
                return truncated_ok and fields > 0
            pos = length[1] + length[0]
        else:
            return False
        if pos > len(sample) and not truncated_ok:
            return False
        fields += 1
    return fields > 0


def is_binary_bytes(sample: bytes) -> bool:
    total = len(sample)
    if not total:
        return False
    if sample.startswith(_TEXT_BOMS):
        return False
    if sample.startswith(b"%PDF-"):
        return True
    if sample.startswith(_BINARY_BOMS):
        return True

    suspicious = 0
    i = 0
    while i < total:
        b = sample[i]
        if b == 0:
            return True
        if _is_suspicious(b):
            if 0xC0 <= b <= 0xDF and i + 1 < total:
                if _is_continuation(sample, i + 1, 1):
                    i += 2
                    continue
            elif 0xE0 <= b <= 0xEF and i + 2 < total:
                if _is_continuation(sample, i + 1, 2):
                    i += 3
                    continue
            elif 0xF0 <= b <= 0xF7 and i + 3 < total:
                if _is_continuation(sample, i + 1, 3):
                    i += 4
                    continue
            suspicious += 1
            if i >= _EARLY_DECISION and _over_threshold(suspicious, total):
                return True
        i += 1

    if _over_threshold(suspicious, total):
        return True
    return suspicious > 1 and _looks_like_protobuf(sample)


def is_binary_file(path: str | Path) -> bool:
    """Classify a file as binary by reading up to SAMPLE_SIZE bytes.

    Raises OSError when the file cannot be read.
    """
    with open(path, "rb") as fh:
        return is_binary_bytes(fh.read(SAMPLE_SIZE))
