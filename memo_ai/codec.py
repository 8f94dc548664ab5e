"""
Memo AI — Vector codec
Embedding <-> raw float32 blob, as stored in notes.embedding and sent to sqlite-vec.

Layout: D consecutive little-endian IEEE-754 float32 values, no header.
The vector length is byte_length // 4.
"""

from __future__ import annotations

import struct
from collections.abc import Sequence

from .errors import ConversionError, InvalidInputError

_FLOAT_SIZE = 4


def encode(vector: Sequence[float]) -> bytes:
    """Pack a float vector into little-endian float32 bytes."""
    if isinstance(vector, (str, bytes, bytearray)) or not isinstance(vector, Sequence):
        raise InvalidInputError("Embedding must be a sequence of floats")
    if len(vector) == 0:
        raise InvalidInputError("Embedding must not be empty")
    try:
        return struct.pack(f"<{len(vector)}f", *vector)
    except (struct.error, OverflowError, TypeError) as exc:
        raise InvalidInputError(f"Embedding is not representable as float32: {exc}") from exc


def decode(blob: bytes | bytearray | memoryview) -> list[float]:
    """Unpack a float32 blob. NaN/Inf are returned unchanged."""
    if not isinstance(blob, (bytes, bytearray, memoryview)):
        raise InvalidInputError("Embedding buffer must be bytes")
    size = len(blob)
    if size % _FLOAT_SIZE:
        raise ConversionError(
            f"Embedding buffer length {size} is not a multiple of {_FLOAT_SIZE}",
            details={"byte_length": size},
        )
    return list(struct.unpack(f"<{size // _FLOAT_SIZE}f", blob))


def dimensions_of(blob: bytes | None) -> int:
    """Vector length stored in a blob (0 for NULL)."""
    if not blob:
        return 0
    return len(blob) // _FLOAT_SIZE
