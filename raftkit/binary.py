"""Little-endian primitives used by the wire and storage formats.

Readers are objects with a ``read(n)`` method and writers are objects with a
``write(b)`` method, such as ``io.BytesIO``, buffered files or socket files.
Strings and byte strings are written with a 32-bit length prefix.
"""

from __future__ import annotations

import struct
from typing import BinaryIO

_UINT64 = struct.Struct("<Q")
_UINT32 = struct.Struct("<I")
_UINT8 = struct.Struct("<B")

# keeps arbitrary bytes intact when they travel through str values
_TEXT_ERRORS = "surrogateescape"


def _read_full(r: BinaryIO, size: int) -> bytes:
    """Read exactly ``size`` bytes, raising EOFError if the stream ends first."""
    if size == 0:
        return b""
    chunks = []
    remaining = size
    while remaining:
        chunk = r.read(remaining)
        if not chunk:
            if remaining == size:
                raise EOFError("EOF")
            raise EOFError("unexpected EOF")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _pack(packer: struct.Struct, value: int) -> bytes:
    try:
        return packer.pack(value)
    except struct.error as exc:
        raise ValueError(f"value {value!r} out of range: {exc}") from None


def read_uint64(r: BinaryIO) -> int:
    """Read an unsigned 64-bit little-endian integer."""
    return _UINT64.unpack(_read_full(r, 8))[0]


def read_uint32(r: BinaryIO) -> int:
    """Read an unsigned 32-bit little-endian integer."""
    return _UINT32.unpack(_read_full(r, 4))[0]


def read_uint8(r: BinaryIO) -> int:
    """Read a single unsigned byte."""
    return _read_full(r, 1)[0]


def read_bool(r: BinaryIO) -> bool:
    """Read a byte and treat any non-zero value as True."""
    return read_uint8(r) > 0


def read_bytes(r: BinaryIO) -> bytes:
    """Read a byte string preceded by its 32-bit length."""
    size = read_uint32(r)
    return _read_full(r, size)


def read_string(r: BinaryIO) -> str:
    """Read a length-prefixed UTF-8 string."""
    return read_bytes(r).decode("utf-8", _TEXT_ERRORS)


def write_uint64(w: BinaryIO, v: int) -> None:
    """Write an unsigned 64-bit little-endian integer."""
    w.write(_pack(_UINT64, v))


def write_uint32(w: BinaryIO, v: int) -> None:
    """Write an unsigned 32-bit little-endian integer."""
    w.write(_pack(_UINT32, v))


def write_uint8(w: BinaryIO, v: int) -> None:
    """Write a single unsigned byte."""
    w.write(_pack(_UINT8, v))


def write_bool(w: BinaryIO, v: bool) -> None:
    """Write True as 1 and False as 0."""
    write_uint8(w, 1 if v else 0)


def write_bytes(w: BinaryIO, b: bytes) -> None:
    """Write a byte string preceded by its 32-bit length."""
    data = bytes(b)
    write_uint32(w, len(data))
    w.write(data)


def write_string(w: BinaryIO, s: str) -> None:
    """Write a string as length-prefixed UTF-8."""
    write_bytes(w, s.encode("utf-8", _TEXT_ERRORS))