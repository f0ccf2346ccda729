"""
Binary delta codec for version storage.

Changed regions are located line by line with difflib and, when small enough,
refined byte by byte, so a three-byte edit on a single long line still
produces a three-byte delta. The encoded form is:

    MAGIC | varint(target_length) | op*
    op := 0x01 varint(base_offset) varint(length)     copy from base
        | 0x02 varint(length) bytes                   literal insert
"""
import difflib
from typing import List, Tuple

from lakesync.core.config import DELTA_REFINE_LIMIT

MAGIC = b"LSD1"
OP_COPY = 0x01
OP_INSERT = 0x02
# Copies shorter than this cost more to encode than the literal bytes
MIN_COPY = 4


class DeltaError(ValueError):
    pass


def _write_varint(out: bytearray, value: int) -> None:
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return


def _read_varint(data: bytes, pos: int) -> Tuple[int, int]:
    shift = 0
    result = 0
    while True:
        if pos >= len(data):
            raise DeltaError("Truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7


def _offsets(lines: List[bytes]) -> List[int]:
    offsets = [0]
    for line in lines:
        offsets.append(offsets[-1] + len(line))
    return offsets


# Each op is ("copy", t_start, t_end, b_start) or ("insert", t_start, t_end, None)
Op = Tuple[str, int, int, int]


def _refine(base: bytes, target: bytes, b_start: int, b_end: int, t_start: int, t_end: int, ops: List[Op]) -> None:
    matcher = difflib.SequenceMatcher(None, base[b_start:b_end], target[t_start:t_end], autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            ops.append(("copy", t_start + j1, t_start + j2, b_start + i1))
        elif tag in ("replace", "insert"):
            ops.append(("insert", t_start + j1, t_start + j2, None))


def _opcodes(base: bytes, target: bytes, refine_limit: int) -> List[Op]:
    base_lines = base.splitlines(keepends=True)
    target_lines = target.splitlines(keepends=True)
    base_offsets = _offsets(base_lines)
    target_offsets = _offsets(target_lines)

    ops: List[Op] = []
    matcher = difflib.SequenceMatcher(None, base_lines, target_lines, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        b_start, b_end = base_offsets[i1], base_offsets[i2]
        t_start, t_end = target_offsets[j1], target_offsets[j2]
        if tag == "equal":
            ops.append(("copy", t_start, t_end, b_start))
        elif tag == "insert":
            ops.append(("insert", t_start, t_end, None))
        elif tag == "replace":
            if b_end - b_start <= refine_limit and t_end - t_start <= refine_limit:
                _refine(base, target, b_start, b_end, t_start, t_end, ops)
            else:
                ops.append(("insert", t_start, t_end, None))
    return _normalize(ops)


def _normalize(ops: List[Op]) -> List[Op]:
    merged: List[Op] = []
    for kind, t_start, t_end, b_start in ops:
        if t_end <= t_start:
            continue
        if kind == "copy" and t_end - t_start < MIN_COPY:
            kind, b_start = "insert", None
        if merged:
            prev_kind, prev_t_start, prev_t_end, prev_b_start = merged[-1]
            if kind == "insert" and prev_kind == "insert":
                merged[-1] = ("insert", prev_t_start, t_end, None)
                continue
            if (kind == "copy" and prev_kind == "copy"
                    and prev_b_start + (prev_t_end - prev_t_start) == b_start):
                merged[-1] = ("copy", prev_t_start, t_end, prev_b_start)
                continue
        merged.append((kind, t_start, t_end, b_start))
    return merged


def encode_delta(base: bytes, target: bytes, refine_limit: int = DELTA_REFINE_LIMIT) -> bytes:
    out = bytearray(MAGIC)
    _write_varint(out, len(target))
    for kind, t_start, t_end, b_start in _opcodes(base, target, refine_limit):
        if kind == "copy":
            out.append(OP_COPY)
            _write_varint(out, b_start)
            _write_varint(out, t_end - t_start)
        else:
            out.append(OP_INSERT)
            _write_varint(out, t_end - t_start)
            out += target[t_start:t_end]
    return bytes(out)


def apply_delta(base: bytes, delta: bytes) -> bytes:
    if not delta.startswith(MAGIC):
        raise DeltaError("Unknown delta format")
    expected, pos = _read_varint(delta, len(MAGIC))
    out = bytearray()
    while pos < len(delta):
        op = delta[pos]
        pos += 1
        if op == OP_COPY:
            offset, pos = _read_varint(delta, pos)
            length, pos = _read_varint(delta, pos)
            if offset + length > len(base):
                raise DeltaError("Copy outside of base content")
            out += base[offset:offset + length]
        elif op == OP_INSERT:
            length, pos = _read_varint(delta, pos)
            if pos + length > len(delta):
                raise DeltaError("Truncated literal")
            out += delta[pos:pos + length]
            pos += length
        else:
            raise DeltaError(f"Unknown delta op {op:#x}")
    if len(out) != expected:
        raise DeltaError(f"Delta produced {len(out)} bytes, expected {expected}")
    return bytes(out)
